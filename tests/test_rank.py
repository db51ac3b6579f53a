import pytest

from nit.config import PickerConfig
from nit.pipeline_types import MatchResult
from nit.rank import combine


def test_non_matches_are_dropped_even_with_high_recency():
    matches = [
        MatchResult(index=0, fuzzy_score=None),
        MatchResult(index=1, fuzzy_score=0.2),
    ]
    ranked = combine(matches, [100.0, 0.0], PickerConfig())
    assert [e.index for e in ranked] == [1]


def test_one_use_outweighs_fuzzy_gap():
    matches = [
        MatchResult(index=0, fuzzy_score=0.95),
        MatchResult(index=1, fuzzy_score=0.10),
    ]
    ranked = combine(matches, [0.0, 15.0], PickerConfig())
    assert [e.index for e in ranked] == [1, 0]
    assert ranked[0].combined_score == pytest.approx(15.10)


def test_fuzzy_breaks_ties_between_equally_recent_items():
    matches = [
        MatchResult(index=0, fuzzy_score=0.3),
        MatchResult(index=1, fuzzy_score=0.9),
    ]
    ranked = combine(matches, [15.0, 15.0], PickerConfig())
    assert [e.index for e in ranked] == [1, 0]


def test_equal_scores_keep_catalog_order():
    matches = [MatchResult(index=i, fuzzy_score=0.5) for i in (4, 2, 7, 0)]
    ranked = combine(matches, [0.0] * 4, PickerConfig())
    assert [e.index for e in ranked] == [0, 2, 4, 7]


def test_weights_are_configurable():
    matches = [
        MatchResult(index=0, fuzzy_score=0.9),
        MatchResult(index=1, fuzzy_score=0.1),
    ]
    cfg = PickerConfig(recency_weight=0.0)
    ranked = combine(matches, [0.0, 15.0], cfg)
    assert [e.index for e in ranked] == [0, 1]


def test_spans_and_components_are_carried_through():
    matches = [MatchResult(index=3, fuzzy_score=0.5, spans=((1, 2),))]
    (entry,) = combine(matches, [2.0], PickerConfig())
    assert entry.spans == ((1, 2),)
    assert entry.fuzzy_score == pytest.approx(0.5)
    assert entry.recency_score == pytest.approx(2.0)


def test_empty_and_mismatched_inputs():
    assert combine([], [], PickerConfig()) == []
    with pytest.raises(ValueError):
        combine([MatchResult(index=0, fuzzy_score=0.1)], [], PickerConfig())
