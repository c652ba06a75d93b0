# answer_engine/services/embeddings.py
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import List, Optional, Sequence

from langchain_openai import OpenAIEmbeddings

from answer_engine import config
from answer_engine.errors import EmbeddingError

logger = logging.getLogger(__name__)

Vector = List[float]


class EmbeddingProvider(ABC):
    """
    Turns texts into vectors.
    One vector per input, same order. Fails as a unit (EmbeddingError).

    `model` names the vector space; vectors are only comparable when it matches.
    """

    model: Optional[str] = None

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> List[Vector]:
        ...


def check_batch(texts: Sequence[str], vectors) -> List[Vector]:
    vectors = list(vectors or [])
    if len(vectors) != len(texts):
        raise EmbeddingError(
            f"expected {len(texts)} embeddings, got {len(vectors)}"
        )
    if any(not v for v in vectors):
        raise EmbeddingError("embedding provider returned an empty vector")
    return [list(map(float, v)) for v in vectors]


# -------------------------
# OpenAI (via LangChain)
# -------------------------
class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(self, model: Optional[str] = None, client=None):
        self.model = model or config.EMBEDDING_MODEL

        if client is None:
            if not config.OPENAI_API_KEY:
                raise RuntimeError("OPENAI_API_KEY is required")
            client = OpenAIEmbeddings(
                model=self.model,
                api_key=config.OPENAI_API_KEY,
            )
        self.client = client

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        texts = list(texts)
        if not texts:
            return []

        try:
            vectors = self.client.embed_documents(texts)
        except Exception as e:
            raise EmbeddingError(f"embedding request failed: {e}") from e

        return check_batch(texts, vectors)


# -------------------------
# LRU cache in front of any provider
# -------------------------
class CachedEmbeddingProvider(EmbeddingProvider):
    """
    Keyed on the exact text. Only missing texts reach the inner
    provider, and they go in a single batch.
    """

    def __init__(self, inner: EmbeddingProvider, max_size: Optional[int] = None):
        self.inner = inner
        self.model = inner.model
        self.max_size = config.EMBEDDING_CACHE_SIZE if max_size is None else max_size
        self._cache: "OrderedDict[str, Vector]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def _lookup(self, text: str):
        with self._lock:
            vec = self._cache.get(text)
            if vec is not None:
                self._cache.move_to_end(text)
            return vec

    def _store(self, text: str, vec: Vector):
        if self.max_size <= 0:
            return
        with self._lock:
            self._cache[text] = vec
            self._cache.move_to_end(text)
            while len(self._cache) > self.max_size:
                self._cache.popitem(last=False)

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        texts = list(texts)
        out = [self._lookup(t) for t in texts]

        missing = []
        for t, vec in zip(texts, out):
            if vec is None and t not in missing:
                missing.append(t)

        if missing:
            logger.debug("embedding cache miss: %d of %d", len(missing), len(texts))
            fresh = dict(zip(missing, check_batch(missing, self.inner.embed(missing))))
            for t, vec in fresh.items():
                self._store(t, vec)
            out = [vec if vec is not None else fresh[t] for t, vec in zip(texts, out)]

        return out


def build_embedding_provider() -> EmbeddingProvider:
    provider = OpenAIEmbeddingProvider()
    if config.EMBEDDING_CACHE_SIZE > 0:
        return CachedEmbeddingProvider(provider)
    return provider
