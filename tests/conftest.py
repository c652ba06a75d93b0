"""
Shared pytest fixtures.

External collaborators (embeddings, answer generation) are replaced by
small in-process fakes so the suite runs without network access or keys.
"""

import pytest

from answer_engine.errors import EmbeddingError
from answer_engine.repos.history_store import InMemoryHistoryRepo
from answer_engine.services.consistency_engine import ConsistencyEngine
from answer_engine.services.similarity import SimilarityMatcher

from tests.fakes import FakeEmbeddings, FakeGenerator


@pytest.fixture
def store():
    return InMemoryHistoryRepo()


@pytest.fixture
def embeddings():
    return FakeEmbeddings()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def matcher(embeddings):
    return SimilarityMatcher(embeddings, threshold=0.95)


@pytest.fixture
def engine(store, matcher, generator):
    return ConsistencyEngine(store=store, matcher=matcher, generator=generator)


@pytest.fixture
def failing_embeddings(embeddings):
    embeddings.fail_with = EmbeddingError("service unavailable")
    return embeddings
