from __future__ import annotations

"""
Fuzzy subsequence matcher with highlight positions.

Scoring follows the usual fzf v1 shape: find the first window of the
candidate that contains the query as a subsequence, shrink it from the
right with a backward scan, then walk the window once adding a per-char
match score, boundary / camelCase bonuses, a consecutive-run bonus and gap
penalties.  Raw scores are normalised into [0, 1] by the best possible raw
score for the query length so they combine cleanly with recency.

Whitespace splits the query into terms that must all match (in any order).
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .config import CaseMatching, Normalization
from .normalize import fold_accents, fold_case, has_foldable, has_uppercase, split_terms
from .pipeline_types import Span

SCORE_MATCH = 16
SCORE_GAP_START = -3
SCORE_GAP_EXTENSION = -1

BONUS_BOUNDARY = SCORE_MATCH // 2
BONUS_NON_WORD = SCORE_MATCH // 2
BONUS_CAMEL123 = BONUS_BOUNDARY + SCORE_GAP_EXTENSION
BONUS_CONSECUTIVE = -(SCORE_GAP_START + SCORE_GAP_EXTENSION)
BONUS_FIRST_CHAR_MULTIPLIER = 2
BONUS_BOUNDARY_WHITE = BONUS_BOUNDARY + 2
BONUS_BOUNDARY_DELIMITER = BONUS_BOUNDARY + 1

DELIMITERS = "/,:;|#"

# character classes, ordered: anything above NON_WORD counts as a word char
CHAR_WHITE = 0
CHAR_NON_WORD = 1
CHAR_DELIMITER = 2
CHAR_LOWER = 3
CHAR_UPPER = 4
CHAR_LETTER = 5
CHAR_NUMBER = 6

Match = Tuple[float, Tuple[Span, ...]]


def char_class(ch: str) -> int:
    if ch.isspace():
        return CHAR_WHITE
    if ch in DELIMITERS:
        return CHAR_DELIMITER
    if ch.islower():
        return CHAR_LOWER
    if ch.isupper():
        return CHAR_UPPER
    if ch.isdigit():
        return CHAR_NUMBER
    if ch.isalpha():
        return CHAR_LETTER
    return CHAR_NON_WORD


def bonus_for(prev_class: int, cls: int) -> int:
    if cls > CHAR_NON_WORD:
        if prev_class == CHAR_WHITE:
            return BONUS_BOUNDARY_WHITE
        if prev_class == CHAR_DELIMITER:
            return BONUS_BOUNDARY_DELIMITER
        if prev_class == CHAR_NON_WORD:
            return BONUS_BOUNDARY
    if (prev_class == CHAR_LOWER and cls == CHAR_UPPER) or (
        prev_class != CHAR_NUMBER and cls == CHAR_NUMBER
    ):
        return BONUS_CAMEL123
    if cls in (CHAR_NON_WORD, CHAR_DELIMITER):
        return BONUS_NON_WORD
    if cls == CHAR_WHITE:
        return BONUS_BOUNDARY_WHITE
    return 0


def max_raw_score(length: int) -> int:
    """Best achievable raw score for a term of ``length`` characters."""
    if length <= 0:
        return 0
    first = SCORE_MATCH + BONUS_BOUNDARY_WHITE * BONUS_FIRST_CHAR_MULTIPLIER
    rest = (length - 1) * (SCORE_MATCH + BONUS_BOUNDARY_WHITE)
    return first + rest


def to_spans(positions: Sequence[int]) -> Tuple[Span, ...]:
    """Collapse sorted unique positions into (start, length) runs."""
    spans: List[Span] = []
    for pos in sorted(set(positions)):
        if spans and spans[-1][0] + spans[-1][1] == pos:
            start, length = spans[-1]
            spans[-1] = (start, length + 1)
        else:
            spans.append((pos, 1))
    return tuple(spans)


def match_term(term: str, text: str, original: str) -> Optional[Tuple[int, List[int]]]:
    """
    Score one term against prepared ``text``.

    ``original`` is the untouched candidate (same length as ``text``) and is
    only used for character classes.  Returns ``(raw_score, positions)``.
    """
    n = len(term)
    if n == 0:
        return 0, []

    # forward scan: earliest end of a full subsequence match
    pidx = 0
    start = -1
    end = -1
    for i, ch in enumerate(text):
        if ch == term[pidx]:
            if start < 0:
                start = i
            pidx += 1
            if pidx == n:
                end = i + 1
                break
    if end < 0:
        return None

    # backward scan: tightest start for that end
    pidx = n - 1
    for i in range(end - 1, start - 1, -1):
        if text[i] == term[pidx]:
            pidx -= 1
            if pidx < 0:
                start = i
                break

    score = 0
    positions: List[int] = []
    in_gap = False
    consecutive = 0
    first_bonus = 0
    pidx = 0
    prev_class = char_class(original[start - 1]) if start > 0 else CHAR_WHITE
    for idx in range(start, end):
        cls = char_class(original[idx])
        if pidx < n and text[idx] == term[pidx]:
            positions.append(idx)
            score += SCORE_MATCH
            bonus = bonus_for(prev_class, cls)
            if consecutive == 0:
                first_bonus = bonus
            else:
                if bonus >= BONUS_BOUNDARY and bonus > first_bonus:
                    first_bonus = bonus
                bonus = max(bonus, first_bonus, BONUS_CONSECUTIVE)
            score += bonus * BONUS_FIRST_CHAR_MULTIPLIER if pidx == 0 else bonus
            in_gap = False
            consecutive += 1
            pidx += 1
        else:
            score += SCORE_GAP_EXTENSION if in_gap else SCORE_GAP_START
            in_gap = True
            consecutive = 0
            first_bonus = 0
        prev_class = cls

    return score, positions


@dataclass(frozen=True)
class CompiledQuery:
    """A query with its case/normalisation policy resolved once per pass."""

    raw: str
    terms: Tuple[str, ...]
    ignore_case: bool
    fold: bool

    @property
    def is_empty(self) -> bool:
        return not self.terms

    def prepare(self, candidate: str) -> str:
        text = candidate
        if self.fold:
            text = fold_accents(text)
        if self.ignore_case:
            text = fold_case(text)
        return text

    def score(self, candidate: str) -> Optional[Match]:
        if not isinstance(candidate, str):
            raise TypeError(f"candidate text must be str, got {type(candidate).__name__}")
        if self.is_empty:
            return 0.0, ()

        text = self.prepare(candidate)
        total = 0.0
        positions: List[int] = []
        for term in self.terms:
            found = match_term(term, text, candidate)
            if found is None:
                return None
            raw, pos = found
            total += min(1.0, max(0.0, raw / max_raw_score(len(term))))
            positions.extend(pos)
        return total / len(self.terms), to_spans(positions)


class FuzzyMatcher:
    """
    Stateless scorer for (query, candidate) pairs under a fixed policy.
    """

    def __init__(
        self,
        case_matching: CaseMatching = CaseMatching.SMART,
        normalization: Normalization = Normalization.SMART,
    ) -> None:
        self.case_matching = CaseMatching(case_matching)
        self.normalization = Normalization(normalization)

    def compile(self, query: str) -> CompiledQuery:
        if self.case_matching is CaseMatching.IGNORE:
            ignore_case = True
        elif self.case_matching is CaseMatching.RESPECT:
            ignore_case = False
        else:
            ignore_case = not has_uppercase(query)

        if self.normalization is Normalization.ALWAYS:
            fold = True
        elif self.normalization is Normalization.NEVER:
            fold = False
        else:
            fold = not has_foldable(query)

        terms = split_terms(query)
        if fold:
            terms = [fold_accents(t) for t in terms]
        if ignore_case:
            terms = [fold_case(t) for t in terms]
        return CompiledQuery(raw=query, terms=tuple(terms), ignore_case=ignore_case, fold=fold)

    def score(self, query: str, candidate: str) -> Optional[Match]:
        """
        Match ``candidate`` against ``query``.

        Returns ``(score, spans)`` with score in [0, 1], or None when the
        query does not match.  The empty query matches everything with 0.0.
        """
        return self.compile(query).score(candidate)
