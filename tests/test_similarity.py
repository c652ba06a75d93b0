from datetime import datetime, timedelta, timezone

import pytest

from answer_engine.errors import MatchLookupFailed
from answer_engine.schemas.history import QuestionRecord
from answer_engine.services.similarity import (
    Match,
    NoMatch,
    SimilarityMatcher,
    cosine_scores,
)

from tests.fakes import AGE, FAKE_MODEL, HOW_OLD, INCOME, VECTORS, unit

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def rec(question, answer, minutes=0, embedding=None, model=FAKE_MODEL):
    return QuestionRecord(
        question=question,
        answer=answer,
        embedding=embedding,
        embedding_model=model if embedding else None,
        timestamp=T0 + timedelta(minutes=minutes),
    )


# --------------------------------------------------
# cosine_scores
# --------------------------------------------------
def test_cosine_identical_and_orthogonal():
    scores = cosine_scores([1.0, 0.0], [[2.0, 0.0], [0.0, 3.0], [-1.0, 0.0]])
    assert scores == pytest.approx([1.0, 0.0, -1.0])


def test_cosine_zero_norm_scores_zero():
    assert cosine_scores([0.0, 0.0], [[1.0, 0.0]]) == [0.0]
    assert cosine_scores([1.0, 0.0], [[0.0, 0.0]]) == [0.0]


def test_cosine_dimension_mismatch_is_an_error():
    with pytest.raises(ValueError):
        cosine_scores([1.0, 0.0], [[1.0, 0.0, 0.0]])
    with pytest.raises(ValueError):
        cosine_scores([1.0, 0.0], [[1.0, 0.0], [1.0, 0.0, 0.0]])


def test_cosine_empty_history():
    assert cosine_scores([1.0, 0.0], []) == []


# --------------------------------------------------
# Short circuits
# --------------------------------------------------
def test_empty_history_makes_no_embedding_calls(matcher, embeddings):
    assert matcher.find_match(AGE, []) == NoMatch()
    assert embeddings.call_count == 0


@pytest.mark.parametrize("candidate", ["", "   ", "\n\t", None])
def test_blank_candidate_makes_no_embedding_calls(matcher, embeddings, candidate):
    history = [rec(AGE, "34")]
    assert matcher.find_match(candidate, history) == NoMatch()
    assert embeddings.call_count == 0


def test_case_insensitive_exact_match_skips_embeddings(matcher, embeddings):
    history = [rec(INCOME, "$60k"), rec(AGE, "34", minutes=1)]

    result = matcher.find_match("  what IS your age?  ", history)

    assert isinstance(result, Match)
    assert result.exact
    assert result.score == 1.0
    assert result.record.answer == "34"
    assert result.index == 1
    assert embeddings.call_count == 0


# --------------------------------------------------
# Embedding path
# --------------------------------------------------
def test_paraphrase_above_threshold_matches(matcher):
    history = [rec(AGE, "34")]

    result = matcher.find_match("Please state your age", history)

    assert isinstance(result, Match)
    assert not result.exact
    assert result.score > 0.95
    assert result.record.answer == "34"


def test_unrelated_question_below_threshold(matcher):
    history = [rec(INCOME, "$60k")]

    result = matcher.find_match(HOW_OLD, history)

    assert isinstance(result, NoMatch)
    assert result.best_score == pytest.approx(0.40)
    assert result.candidate_embedding == pytest.approx(VECTORS[HOW_OLD])


def test_score_equal_to_threshold_is_not_a_match(embeddings):
    history = [rec(AGE, "34")]
    score = cosine_scores(VECTORS["Please state your age"], [VECTORS[AGE]])[0]

    matcher = SimilarityMatcher(embeddings, threshold=score)

    assert isinstance(matcher.find_match("Please state your age", history), NoMatch)


def test_best_score_wins_over_first_above_threshold(embeddings):
    embeddings.table["Q close"] = unit(1.0, 0.2, 0.0)
    embeddings.table["Q closer"] = unit(1.0, 0.05, 0.0)
    embeddings.table["candidate"] = unit(1.0, 0.0, 0.0)
    matcher = SimilarityMatcher(embeddings, threshold=0.9)

    history = [rec("Q close", "first"), rec("Q closer", "second", minutes=1)]
    result = matcher.find_match("candidate", history)

    assert isinstance(result, Match)
    assert result.record.answer == "second"


def test_ties_prefer_most_recent_timestamp(embeddings, matcher):
    vec = VECTORS[AGE]
    newer = rec("Your age?", "newer", minutes=10, embedding=vec)
    older = rec("Age in years?", "older", minutes=1, embedding=vec)

    # Position in the list must not decide the tie
    result = matcher.find_match("Please state your age", [newer, older])

    assert isinstance(result, Match)
    assert result.record.answer == "newer"


def test_stored_embeddings_are_reused(matcher, embeddings):
    history = [
        rec(AGE, "34", embedding=VECTORS[AGE]),
        rec(INCOME, "$60k"),
    ]

    matcher.find_match(HOW_OLD, history)

    # One batch: the candidate plus the single record lacking an embedding
    assert embeddings.calls == [[HOW_OLD, INCOME]]


def test_embedding_failure_propagates(matcher, failing_embeddings):
    with pytest.raises(MatchLookupFailed) as exc:
        matcher.find_match(HOW_OLD, [rec(INCOME, "$60k")])

    assert exc.value.retryable


def test_short_embedding_batch_fails_lookup(embeddings, matcher):
    embeddings.embed = lambda texts: [[1.0, 0.0]]

    with pytest.raises(MatchLookupFailed):
        matcher.find_match(HOW_OLD, [rec(INCOME, "$60k"), rec("Other?", "x")])


# --------------------------------------------------
# Stored vectors from another model
# --------------------------------------------------
def test_vectors_from_other_model_are_recomputed(matcher, embeddings):
    # Same dimension, unrelated vector space
    history = [rec(AGE, "34", embedding=VECTORS[INCOME], model="old-model")]

    result = matcher.find_match("Please state your age", history)

    assert isinstance(result, Match)
    assert result.record.answer == "34"
    assert embeddings.calls == [["Please state your age", AGE]]


def test_unlabelled_vectors_are_recomputed(matcher, embeddings):
    history = [rec(AGE, "34", embedding=VECTORS[INCOME], model=None)]

    assert isinstance(matcher.find_match("Please state your age", history), Match)
    assert embeddings.calls == [["Please state your age", AGE]]


def test_vectors_with_wrong_dimension_are_recomputed(matcher, embeddings):
    history = [rec(AGE, "34", embedding=[1.0] * 8)]

    result = matcher.find_match("Please state your age", history)

    assert isinstance(result, Match)
    assert result.score > 0.95
    assert embeddings.calls == [["Please state your age"], [AGE]]


def test_inconsistent_provider_dimensions_fail_lookup(embeddings, matcher):
    embeddings.table[AGE] = [1.0, 0.0, 0.0]

    with pytest.raises(MatchLookupFailed):
        matcher.find_match("Please state your age", [rec(AGE, "34")])
