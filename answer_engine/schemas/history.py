# answer_engine/schemas/history.py
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

# Label shown for questions submitted as a screenshot only.
# The engine never records such questions.
IMAGE_QUESTION_PLACEHOLDER = "Image Question"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_question(text: str) -> str:
    return (text or "").strip().casefold()


class QuestionRecord(BaseModel):
    question: str
    answer: str
    embedding: Optional[List[float]] = None
    # Model that produced `embedding`; vectors from another model are recomputed
    embedding_model: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)

    def key(self) -> str:
        return normalize_question(self.question)

    def public(self) -> "HistoryItem":
        return HistoryItem(
            question=self.question,
            answer=self.answer,
            timestamp=self.timestamp,
        )


class HistoryItem(BaseModel):
    question: str
    answer: str
    timestamp: datetime


class HistoryResponse(BaseModel):
    userId: str
    records: List[HistoryItem]
