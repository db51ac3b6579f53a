from __future__ import annotations

from typing import List, Sequence

import numpy as np

from .config import PickerConfig
from .pipeline_types import MatchResult, RankedEntry


def combine(
    matches: Sequence[MatchResult],
    recency_scores: Sequence[float],
    cfg: PickerConfig,
) -> List[RankedEntry]:
    """
    Merge fuzzy and recency scores into one deterministic ordering.

      1) drop every match whose fuzzy_score is None (hard filter)
      2) combined = recency_weight * recency + fuzzy_weight * fuzzy
      3) sort by (-combined, catalog index)

    ``recency_scores`` is aligned with ``matches``.
    """
    if len(matches) != len(recency_scores):
        raise ValueError(
            f"matches ({len(matches)}) and recency scores ({len(recency_scores)}) differ in length"
        )

    kept = [(m, float(r)) for m, r in zip(matches, recency_scores) if m.fuzzy_score is not None]
    if not kept:
        return []

    fuzzy = np.array([m.fuzzy_score for m, _ in kept], dtype="float64")
    recency = np.array([r for _, r in kept], dtype="float64")
    index = np.array([m.index for m, _ in kept], dtype=np.int64)

    combined = cfg.recency_weight * recency + cfg.fuzzy_weight * fuzzy

    # lexsort: last key is primary
    order = np.lexsort((index, -combined))

    return [
        RankedEntry(
            index=int(index[i]),
            combined_score=float(combined[i]),
            fuzzy_score=float(fuzzy[i]),
            recency_score=float(recency[i]),
            spans=kept[i][0].spans,
        )
        for i in order
    ]
