# answer_engine/services/similarity.py
"""
Decides whether a new question was already answered for a user.

Lookup order:
1) case-insensitive exact match on the question text (no embedding call)
2) cosine similarity against every stored question; the best score
   wins (ties go to the most recent record) and counts as a match only
   when it is strictly above the threshold.

Embedding failures are never turned into "no match": they raise
MatchLookupFailed so the caller cannot silently answer twice.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from answer_engine import config
from answer_engine.errors import MatchLookupFailed
from answer_engine.schemas.history import QuestionRecord, normalize_question
from answer_engine.services.embeddings import EmbeddingProvider, Vector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    record: QuestionRecord
    score: float
    index: int
    exact: bool = False


@dataclass(frozen=True)
class NoMatch:
    best_score: Optional[float] = None
    # Embedding of the candidate, when one was computed
    candidate_embedding: Optional[Vector] = None


MatchResult = Union[Match, NoMatch]


def cosine_scores(candidate: Vector, vectors: Sequence[Vector]) -> List[float]:
    """
    Cosine similarity of `candidate` against each vector, in one
    matrix-vector product. Zero-norm vectors score 0.0.
    All vectors must share the candidate's dimension (ValueError otherwise).
    """
    if len(vectors) == 0:
        return []

    c = np.asarray(candidate, dtype=np.float64)
    try:
        m = np.asarray(vectors, dtype=np.float64)
    except ValueError as e:
        raise ValueError("embeddings have mixed dimensions") from e

    if c.ndim != 1 or m.ndim != 2 or m.shape[1] != c.shape[0]:
        raise ValueError(
            f"embedding dimension mismatch: candidate {c.shape}, history {m.shape}"
        )

    denom = np.linalg.norm(m, axis=1) * np.linalg.norm(c)
    dots = m @ c
    scores = np.where(denom == 0, 0.0, dots / np.where(denom == 0, 1.0, denom))

    return np.clip(scores, -1.0, 1.0).tolist()


class SimilarityMatcher:
    def __init__(self, embeddings: EmbeddingProvider, threshold: Optional[float] = None):
        self.embeddings = embeddings
        self.threshold = config.SIMILARITY_THRESHOLD if threshold is None else threshold

    @property
    def model(self) -> Optional[str]:
        return self.embeddings.model

    def _reusable(self, record: QuestionRecord) -> bool:
        return bool(record.embedding) and record.embedding_model == self.model

    # --------------------------------------------------
    # Step 1: exact (case-insensitive)
    # --------------------------------------------------
    @staticmethod
    def _exact(candidate: str, history: Sequence[QuestionRecord]) -> Optional[Match]:
        key = normalize_question(candidate)
        best = None

        for i, record in enumerate(history):
            if record.key() != key:
                continue
            if best is None or record.timestamp >= best.record.timestamp:
                best = Match(record=record, score=1.0, index=i, exact=True)

        return best

    # --------------------------------------------------
    # Step 2: embeddings
    # --------------------------------------------------
    def _call(self, texts: List[str]) -> List[Vector]:
        try:
            vectors = self.embeddings.embed(texts)
        except Exception as e:
            raise MatchLookupFailed() from e

        if len(vectors) != len(texts):
            raise MatchLookupFailed() from ValueError(
                f"expected {len(texts)} embeddings, got {len(vectors)}"
            )
        return vectors

    def _embed(self, candidate: str, history: Sequence[QuestionRecord]):
        # Stored vectors from another (or unknown) model are recomputed
        pending = [i for i, r in enumerate(history) if not self._reusable(r)]
        vectors = self._call([candidate] + [history[i].question for i in pending])

        candidate_vec = vectors[0]
        stored = [r.embedding for r in history]
        for i, vec in zip(pending, vectors[1:]):
            stored[i] = vec

        # Same model label but a different dimension: stale vector, recompute
        stale = [i for i, v in enumerate(stored) if len(v) != len(candidate_vec)]
        if stale:
            logger.info("re-embedding %d stored questions with stale vectors", len(stale))
            for i, vec in zip(stale, self._call([history[i].question for i in stale])):
                stored[i] = vec

        try:
            scores = cosine_scores(candidate_vec, stored)
        except ValueError as e:
            # Provider returned inconsistent dimensions; never treat as "no match"
            raise MatchLookupFailed() from e

        return candidate_vec, scores

    def find_match(self, candidate: str, history: Sequence[QuestionRecord]) -> MatchResult:
        if not history or not candidate or not candidate.strip():
            return NoMatch()

        exact = self._exact(candidate, history)
        if exact:
            logger.debug("exact match at index=%d", exact.index)
            return exact

        candidate_vec, scores = self._embed(candidate, history)

        # Highest score, then latest timestamp, then latest position
        best_i = max(
            range(len(history)),
            key=lambda i: (scores[i], history[i].timestamp, i),
        )
        best_score = scores[best_i]

        logger.debug(
            "best similarity=%.4f index=%d threshold=%.4f",
            best_score, best_i, self.threshold,
        )

        if best_score > self.threshold:
            return Match(record=history[best_i], score=best_score, index=best_i)

        return NoMatch(best_score=best_score, candidate_embedding=candidate_vec)
