import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from answer_engine.config import APP_NAME, LOG_LEVEL
from answer_engine.errors import (
    AnswerEngineError,
    GenerationFailed,
    HistoryStoreError,
    InvalidInput,
    MatchLookupFailed,
)
from answer_engine.routes import router
from answer_engine.schemas.answer import ErrorResponse

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=APP_NAME,
    version="1.0.0"
)

# ---------------------------
# Routes
# ---------------------------
app.include_router(router)

# ---------------------------
# Errors -> human-readable JSON
# ---------------------------
STATUS_CODES = {
    InvalidInput: 400,
    MatchLookupFailed: 503,
    GenerationFailed: 502,
}


@app.exception_handler(AnswerEngineError)
def answer_engine_error(request: Request, exc: AnswerEngineError):
    status = STATUS_CODES.get(type(exc), 500)
    if status >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.__cause__)

    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            error=type(exc).__name__,
            message=exc.message,
            retryable=exc.retryable,
        ).model_dump(),
    )


@app.exception_handler(HistoryStoreError)
def history_store_error(request: Request, exc: HistoryStoreError):
    logger.warning("history store failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            error="HistoryUnavailable",
            message="Your answer history is temporarily unavailable. Please try again.",
            retryable=True,
        ).model_dump(),
    )


# ---------------------------
# Health check
# ---------------------------
@app.get("/", tags=["health"])
def health():
    return {
        "status": "ok",
        "service": APP_NAME
    }
