# answer_engine/repos/history_store.py
import threading
from abc import ABC, abstractmethod
from typing import Dict, List

from answer_engine import config
from answer_engine.schemas.history import QuestionRecord


class HistoryStore(ABC):
    """
    Per-user, oldest-first list of answered questions.

    `append` is a compare-and-append: it refuses (returns False) when a
    record with the same case-insensitive question is already stored.
    Backend failures raise HistoryStoreError.
    """

    @abstractmethod
    def get(self, userId: str) -> List[QuestionRecord]:
        ...

    @abstractmethod
    def append(self, userId: str, record: QuestionRecord) -> bool:
        ...

    @abstractmethod
    def delete(self, userId: str, index: int) -> bool:
        ...

    @abstractmethod
    def clear(self, userId: str) -> bool:
        ...


def has_question(records: List[QuestionRecord], question_key: str) -> bool:
    return any(r.key() == question_key for r in records)


# -------------------------------------------------
# In-memory store (LOCAL DEV / TESTS)
# -------------------------------------------------
class InMemoryHistoryRepo(HistoryStore):
    def __init__(self):
        self._data: Dict[str, List[QuestionRecord]] = {}
        self._lock = threading.Lock()

    def get(self, userId: str) -> List[QuestionRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._data.get(userId, [])]

    def append(self, userId: str, record: QuestionRecord) -> bool:
        with self._lock:
            records = self._data.setdefault(userId, [])
            if has_question(records, record.key()):
                return False
            records.append(record.model_copy(deep=True))
            return True

    def delete(self, userId: str, index: int) -> bool:
        with self._lock:
            records = self._data.get(userId, [])
            if not 0 <= index < len(records):
                return False
            del records[index]
            return True

    def clear(self, userId: str) -> bool:
        with self._lock:
            self._data.pop(userId, None)
            return True


# -------------------------------------------------
# Factory
# -------------------------------------------------
def get_history_repo(backend: str = None) -> HistoryStore:
    backend = backend or config.HISTORY_BACKEND

    if backend == "redis":
        from answer_engine.repos.redis_history import RedisHistoryRepo
        return RedisHistoryRepo()

    if backend == "firestore":
        from answer_engine.repos.firestore_history import FirestoreHistoryRepo
        return FirestoreHistoryRepo()

    return InMemoryHistoryRepo()
