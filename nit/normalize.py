from __future__ import annotations

"""
Text normalisation helpers shared by the matcher and the catalog.

Every folding helper here is *length preserving*: one input character maps
to exactly one output character.  Highlight spans computed on folded text
can therefore be used as-is on the original display text.

Public helpers:

* fold_case(text) -> str
    Per-character lowercase.

* fold_accents(text) -> str
    Per-character accent stripping via NFD decomposition.

* basic_clean(text) -> str
    Whitespace collapse used for catalog descriptions.
"""

from functools import lru_cache
import re
import unicodedata

_WS_RX = re.compile(r"\s+")


@lru_cache(maxsize=4096)
def _lower_char(ch: str) -> str:
    low = ch.lower()
    # e.g. 'İ'.lower() is two code points; keep the original to stay aligned
    return low if len(low) == 1 else ch


@lru_cache(maxsize=4096)
def _fold_char(ch: str) -> str:
    if ch.isascii():
        return ch
    decomposed = unicodedata.normalize("NFD", ch)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return base if len(base) == 1 else ch


def fold_case(text: str) -> str:
    return "".join(_lower_char(c) for c in text)


def fold_accents(text: str) -> str:
    if text.isascii():
        return text
    return "".join(_fold_char(c) for c in text)


def has_uppercase(text: str) -> bool:
    return any(c.isupper() for c in text)


def has_foldable(text: str) -> bool:
    """True if accent folding would change ``text``."""
    return fold_accents(text) != text


def split_terms(query: str) -> list[str]:
    return [t for t in _WS_RX.split(query.strip()) if t]


def basic_clean(text: str) -> str:
    """
    Light-weight clean: strip and collapse runs of whitespace.
    """
    if not text:
        return ""
    return _WS_RX.sub(" ", str(text)).strip()
