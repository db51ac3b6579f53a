import pytest

from nit.config import CaseMatching, Normalization
from nit.fuzzy import FuzzyMatcher, max_raw_score, match_term, to_spans


def test_empty_query_matches_everything_neutrally():
    m = FuzzyMatcher()
    assert m.score("", "github:NixOS/templates#rust") == (0.0, ())
    assert m.score("   ", "anything") == (0.0, ())


def test_non_matching_query_returns_none():
    m = FuzzyMatcher()
    assert m.score("xyz", "github:NixOS/templates#rust") is None
    # order matters for a subsequence
    assert m.score("tsur", "rust") is None


def test_spans_point_at_matched_characters():
    m = FuzzyMatcher()
    text = "github:NixOS/templates#rust"
    score, spans = m.score("rust", text)
    assert spans == ((23, 4),)
    assert text[23:27] == "rust"
    assert 0.0 < score <= 1.0


def test_tight_boundary_match_beats_scattered_match():
    m = FuzzyMatcher()
    tight, _ = m.score("rust", "templates#rust")
    scattered, _ = m.score("rust", "rxuxsxt")
    assert tight > scattered


def test_backward_scan_picks_shortest_window():
    # "ab" first completes at index 3; the backward scan should anchor at 2
    raw, positions = match_term("ab", "a_ab", "a_ab")
    assert positions == [2, 3]
    assert raw > 0


def test_smart_case_is_insensitive_for_lowercase_queries():
    m = FuzzyMatcher(case_matching=CaseMatching.SMART)
    assert m.score("nixos", "github:NixOS/templates#default") is not None
    assert m.score("NixOS", "github:NixOS/templates#default") is not None
    assert m.score("NIXOS", "github:NixOS/templates#default") is None


def test_respect_and_ignore_case():
    assert FuzzyMatcher(case_matching=CaseMatching.RESPECT).score("nixos", "NixOS") is None
    assert FuzzyMatcher(case_matching=CaseMatching.IGNORE).score("NIXOS", "NixOS") is not None


def test_smart_normalization_folds_unless_query_has_accents():
    m = FuzzyMatcher(normalization=Normalization.SMART)
    found = m.score("cafe", "Le Café")
    assert found is not None
    assert found[1] == ((3, 4),)
    assert m.score("café", "Le Cafe") is None
    assert m.score("café", "Le Café") is not None


def test_always_and_never_normalization():
    assert FuzzyMatcher(normalization=Normalization.ALWAYS).score("café", "Le Cafe") is not None
    assert FuzzyMatcher(normalization=Normalization.NEVER).score("cafe", "Le Café") is None


def test_whitespace_terms_must_all_match():
    m = FuzzyMatcher()
    score, spans = m.score("nix rust", "github:NixOS/templates#rust")
    assert spans == ((7, 3), (23, 4))
    assert 0.0 < score <= 1.0
    assert m.score("nix haskell", "github:NixOS/templates#rust") is None


def test_scores_are_deterministic_and_bounded():
    m = FuzzyMatcher()
    candidates = ["rust", "templates#rust", "r u s t", "trust", "rusty-nail", "crates/rust-bin"]
    first = [m.score("rust", c) for c in candidates]
    second = [m.score("rust", c) for c in candidates]
    assert first == second
    for score, _ in first:
        assert 0.0 <= score <= 1.0


def test_exact_boundary_match_scores_full_marks():
    m = FuzzyMatcher()
    score, spans = m.score("r", "r")
    assert spans == ((0, 1),)
    assert score == pytest.approx(1.0)


def test_non_string_candidate_raises():
    with pytest.raises(TypeError):
        FuzzyMatcher().score("rust", None)


def test_invalid_policy_value_raises():
    with pytest.raises(ValueError):
        FuzzyMatcher(case_matching="sometimes")


def test_to_spans_merges_runs():
    assert to_spans([5, 1, 2, 3, 5, 9]) == ((1, 3), (5, 1), (9, 1))
    assert to_spans([]) == ()


def test_max_raw_score():
    assert max_raw_score(0) == 0
    assert max_raw_score(1) == 36
    assert max_raw_score(3) == 36 + 2 * 26
