# answer_engine/errors.py
from typing import Optional


class AnswerEngineError(Exception):
    """
    Base error for the answer pipeline.

    Every error carries a message that is safe to show to the end user,
    and a flag telling the caller whether trying again can help.
    """

    retryable = False
    default_message = "Something went wrong while answering the question."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(AnswerEngineError):
    default_message = "Provide a question (text or image) and a profile."


class MatchLookupFailed(AnswerEngineError):
    retryable = True
    default_message = "Could not check your answer history. Please try again."


class GenerationFailed(AnswerEngineError):
    retryable = True
    default_message = "Could not generate an answer. Please try again."


class RecordingFailed(AnswerEngineError):
    retryable = True
    default_message = "The answer could not be saved to your history."


# --------------------------------------------------
# Collaborator-level errors (wrapped by the engine)
# --------------------------------------------------
class EmbeddingError(Exception):
    pass


class HistoryStoreError(Exception):
    pass
