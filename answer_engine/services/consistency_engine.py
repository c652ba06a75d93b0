# answer_engine/services/consistency_engine.py
"""
Answer consistency protocol.

One linear pass per call:

    VALIDATING -> MATCHING -> REPLAYING | GENERATING -> RECORDING -> DONE

MATCHING is skipped only when there is no question text (image-only).
Generation never starts before a match has been ruled out, and an
answer that was generated is returned even if it cannot be recorded.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import List, Optional

from answer_engine.errors import (
    AnswerEngineError,
    GenerationFailed,
    HistoryStoreError,
    InvalidInput,
    MatchLookupFailed,
    RecordingFailed,
)
from answer_engine.repos.history_store import HistoryStore, has_question
from answer_engine.schemas.history import QuestionRecord, normalize_question, utcnow
from answer_engine.services.answer_generator import AnswerGenerator, is_data_uri
from answer_engine.services.similarity import Match, NoMatch, SimilarityMatcher

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    VALIDATING = "validating"
    MATCHING = "matching"
    REPLAYING = "replaying"
    GENERATING = "generating"
    RECORDING = "recording"
    DONE = "done"


@dataclass(frozen=True)
class AnswerResult:
    answer: str
    replayed: bool
    score: Optional[float] = None
    # True when the answer is stored in the user's history after the call
    recorded: bool = False
    recording_error: Optional[RecordingFailed] = None


def next_timestamp(history: List[QuestionRecord]):
    now = utcnow()
    if history:
        last = max(r.timestamp for r in history)
        if now <= last:
            now = last + timedelta(microseconds=1)
    return now


class ConsistencyEngine:
    def __init__(
        self,
        store: HistoryStore,
        matcher: SimilarityMatcher,
        generator: AnswerGenerator,
    ):
        self.store = store
        self.matcher = matcher
        self.generator = generator

    @staticmethod
    def _stage(userId: str, stage: Stage):
        logger.debug("resolve user=%s stage=%s", userId, stage.value)

    # --------------------------------------------------
    # Public entry point
    # --------------------------------------------------
    def resolve_answer(
        self,
        userId: str,
        questionText: Optional[str] = None,
        questionImage: Optional[str] = None,
        profile: Optional[str] = None,
    ) -> AnswerResult:
        # ----------------------------------
        # VALIDATING
        # ----------------------------------
        self._stage(userId, Stage.VALIDATING)

        text = questionText if questionText and questionText.strip() else None
        image = questionImage if questionImage and questionImage.strip() else None

        if not userId or not userId.strip():
            raise InvalidInput("A user id is required.")
        if text is None and image is None:
            raise InvalidInput("Provide the question as text, an image, or both.")
        if image is not None and not is_data_uri(image):
            raise InvalidInput("The question image must be a base64 data URI.")
        if profile is None or not str(profile).strip():
            raise InvalidInput("Fill in your profile before asking a question.")

        try:
            history = self.store.get(userId)
        except HistoryStoreError as e:
            raise MatchLookupFailed() from e

        # ----------------------------------
        # MATCHING
        # ----------------------------------
        lookup = NoMatch()

        if text is not None:
            self._stage(userId, Stage.MATCHING)
            lookup = self.matcher.find_match(text, history)

        if isinstance(lookup, Match):
            self._stage(userId, Stage.REPLAYING)
            logger.info(
                "replaying answer user=%s score=%.4f exact=%s",
                userId, lookup.score, lookup.exact,
            )
            self._stage(userId, Stage.DONE)
            return AnswerResult(
                answer=lookup.record.answer,
                replayed=True,
                score=lookup.score,
                recorded=True,
            )

        # ----------------------------------
        # GENERATING
        # ----------------------------------
        self._stage(userId, Stage.GENERATING)
        logger.info(
            "generating answer user=%s has_text=%s has_image=%s best_score=%s",
            userId, text is not None, image is not None, lookup.best_score,
        )

        try:
            answer = self.generator.generate(text, image, profile)
        except AnswerEngineError:
            raise
        except Exception as e:
            raise GenerationFailed() from e

        if not answer or not answer.strip():
            raise GenerationFailed("The model returned an empty answer. Please try again.")

        if text is None:
            self._stage(userId, Stage.DONE)
            return AnswerResult(answer=answer, replayed=False, score=lookup.best_score)

        # ----------------------------------
        # RECORDING
        # ----------------------------------
        self._stage(userId, Stage.RECORDING)
        recorded, error = self._record(userId, text, answer, history, lookup)

        self._stage(userId, Stage.DONE)
        return AnswerResult(
            answer=answer,
            replayed=False,
            score=lookup.best_score,
            recorded=recorded,
            recording_error=error,
        )

    def _record(self, userId, text, answer, history, lookup: NoMatch):
        if has_question(history, normalize_question(text)):
            logger.info("question already in history, not appending user=%s", userId)
            return False, None

        record = QuestionRecord(
            question=text,
            answer=answer,
            embedding=lookup.candidate_embedding,
            embedding_model=self.matcher.model if lookup.candidate_embedding else None,
            timestamp=next_timestamp(history),
        )

        try:
            appended = self.store.append(userId, record)
        except Exception as e:
            logger.warning("recording failed user=%s: %s", userId, e, exc_info=True)
            error = RecordingFailed()
            error.__cause__ = e
            return False, error

        if not appended:
            # Concurrent request stored the same question first
            logger.info("append rejected as duplicate user=%s", userId)

        return appended, None

    # --------------------------------------------------
    # History management
    # --------------------------------------------------
    def history(self, userId: str) -> List[QuestionRecord]:
        return self.store.get(userId)

    def delete_record(self, userId: str, index: int) -> bool:
        return self.store.delete(userId, index)

    def clear_history(self, userId: str) -> bool:
        return self.store.clear(userId)
