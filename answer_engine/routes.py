from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Response

from answer_engine.config import API_PREFIX
from answer_engine.repos.history_store import get_history_repo
from answer_engine.schemas.answer import ResolveRequest, ResolveResponse
from answer_engine.schemas.history import HistoryResponse
from answer_engine.services.answer_generator import LLMAnswerGenerator
from answer_engine.services.consistency_engine import ConsistencyEngine
from answer_engine.services.embeddings import build_embedding_provider
from answer_engine.services.similarity import SimilarityMatcher

router = APIRouter(prefix=API_PREFIX)


@lru_cache(maxsize=1)
def get_engine() -> ConsistencyEngine:
    return ConsistencyEngine(
        store=get_history_repo(),
        matcher=SimilarityMatcher(build_embedding_provider()),
        generator=LLMAnswerGenerator(),
    )


# --------------------------------------------------
# Resolve an answer (replay or generate)
# --------------------------------------------------
@router.post("/answers", response_model=ResolveResponse)
def resolve_answer(
    req: ResolveRequest,
    engine: ConsistencyEngine = Depends(get_engine),
):
    result = engine.resolve_answer(
        req.userId,
        questionText=req.questionText,
        questionImage=req.questionImage,
        profile=req.profile_text(),
    )

    return ResolveResponse(
        userId=req.userId,
        answer=result.answer,
        source="history" if result.replayed else "generated",
        score=result.score,
        recorded=result.recorded,
        warning=result.recording_error.message if result.recording_error else None,
    )


# --------------------------------------------------
# History
# --------------------------------------------------
@router.get("/history/{userId}", response_model=HistoryResponse)
def get_history(userId: str, engine: ConsistencyEngine = Depends(get_engine)):
    records = engine.history(userId)
    return HistoryResponse(
        userId=userId,
        records=[r.public() for r in records],
    )


@router.delete("/history/{userId}/{index}", status_code=204)
def delete_history_item(
    userId: str,
    index: int,
    engine: ConsistencyEngine = Depends(get_engine),
):
    if not engine.delete_record(userId, index):
        raise HTTPException(status_code=404, detail="History record not found")
    return Response(status_code=204)


@router.delete("/history/{userId}", status_code=204)
def clear_history(userId: str, engine: ConsistencyEngine = Depends(get_engine)):
    engine.clear_history(userId)
    return Response(status_code=204)
