# answer_engine/repos/redis_history.py
import logging
from typing import List

import redis
from pydantic import ValidationError

from answer_engine import config
from answer_engine.errors import HistoryStoreError
from answer_engine.repos.history_store import HistoryStore, has_question
from answer_engine.schemas.history import QuestionRecord

logger = logging.getLogger(__name__)

# Retries for optimistic (WATCH/MULTI) transactions
MAX_TX_ATTEMPTS = 5

_TOMBSTONE = "__deleted__"


class RedisHistoryRepo(HistoryStore):
    """
    One Redis list per user: `<REDIS_PREFIX><userId>`.
    Each element is a QuestionRecord serialised as JSON.
    """

    def __init__(self, client=None):
        if client is None:
            redis_url = config.REDIS_URL
            if not redis_url:
                raise RuntimeError("REDIS_URL is required for HISTORY_BACKEND=redis")
            client = redis.from_url(redis_url, decode_responses=True)

        self.client = client

    def _key(self, userId: str) -> str:
        return f"{config.REDIS_PREFIX}{userId}"

    @staticmethod
    def _decode(raw: List[str]) -> List[QuestionRecord]:
        try:
            return [QuestionRecord.model_validate_json(item) for item in raw]
        except ValidationError as e:
            raise HistoryStoreError(f"corrupt history entry in redis: {e}") from e

    # --------------------------------------------------
    # Read
    # --------------------------------------------------
    def get(self, userId: str) -> List[QuestionRecord]:
        try:
            raw = self.client.lrange(self._key(userId), 0, -1)
        except redis.RedisError as e:
            raise HistoryStoreError(f"redis read failed: {e}") from e
        return self._decode(raw)

    # --------------------------------------------------
    # Compare-and-append
    # --------------------------------------------------
    def append(self, userId: str, record: QuestionRecord) -> bool:
        key = self._key(userId)
        payload = record.model_dump_json()

        try:
            with self.client.pipeline() as pipe:
                for _ in range(MAX_TX_ATTEMPTS):
                    try:
                        pipe.watch(key)
                        existing = self._decode(pipe.lrange(key, 0, -1))

                        if has_question(existing, record.key()):
                            pipe.unwatch()
                            return False

                        pipe.multi()
                        pipe.rpush(key, payload)
                        pipe.execute()
                        return True
                    except redis.WatchError:
                        logger.debug("append conflict for user=%s, retrying", userId)
                        continue
        except redis.RedisError as e:
            raise HistoryStoreError(f"redis append failed: {e}") from e

        raise HistoryStoreError("redis append kept conflicting, giving up")

    # --------------------------------------------------
    # Delete one record by position
    # --------------------------------------------------
    def delete(self, userId: str, index: int) -> bool:
        key = self._key(userId)

        try:
            with self.client.pipeline() as pipe:
                for _ in range(MAX_TX_ATTEMPTS):
                    try:
                        pipe.watch(key)
                        size = pipe.llen(key)

                        if not 0 <= index < size:
                            pipe.unwatch()
                            return False

                        pipe.multi()
                        pipe.lset(key, index, _TOMBSTONE)
                        pipe.lrem(key, 1, _TOMBSTONE)
                        pipe.execute()
                        return True
                    except redis.WatchError:
                        continue
        except redis.RedisError as e:
            raise HistoryStoreError(f"redis delete failed: {e}") from e

        raise HistoryStoreError("redis delete kept conflicting, giving up")

    def clear(self, userId: str) -> bool:
        try:
            self.client.delete(self._key(userId))
        except redis.RedisError as e:
            raise HistoryStoreError(f"redis clear failed: {e}") from e
        return True
