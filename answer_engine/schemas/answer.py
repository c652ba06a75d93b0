# answer_engine/schemas/answer.py
from pydantic import BaseModel, Field
from typing import Optional, Union

from answer_engine.schemas.profile import ProfileData


class ResolveRequest(BaseModel):
    userId: str = Field(..., min_length=1, description="Authenticated user ID")

    questionText: Optional[str] = Field(
        None,
        description="Survey question text"
    )

    questionImage: Optional[str] = Field(
        None,
        description="Screenshot of the question as data:<mime>;base64,<data>"
    )

    profile: Optional[Union[ProfileData, str]] = Field(
        None,
        description="Structured profile or an already formatted profile string"
    )

    def profile_text(self) -> Optional[str]:
        if isinstance(self.profile, ProfileData):
            return self.profile.to_prompt()
        return self.profile


class ResolveResponse(BaseModel):
    userId: str
    answer: str
    source: str  # "history" | "generated"
    score: Optional[float] = None
    recorded: bool
    warning: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
