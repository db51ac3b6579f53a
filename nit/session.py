from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Dict, Generic, Optional, Sequence

from loguru import logger

from . import config
from .action import FlakeInitAction
from .catalog_build import load_cache, to_items
from .config import PickerConfig
from .frecency import RecencyStore
from .fuzzy import FuzzyMatcher
from .pipeline_types import Item, T
from .scheduler import PipelineScheduler, ViewCallback
from .selection import Action, CommitOutcome, SelectionController


class PickerSession(Generic[T]):
    """
    One picker run: immutable catalog, shared store, scheduler and controller.
    """

    def __init__(
        self,
        items: Sequence[Item[T]],
        store: RecencyStore,
        action: Action,
        cfg: PickerConfig,
        on_view: Optional[ViewCallback] = None,
        action_timeout: Optional[float] = config.ACTION_TIMEOUT_SECS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.matcher = FuzzyMatcher(cfg.case_matching, cfg.normalization)
        self.scheduler: PipelineScheduler[T] = PipelineScheduler(
            items, store, self.matcher, cfg, on_view=on_view, clock=clock
        )
        self.controller = SelectionController(
            store, action, bonus=cfg.recency_bonus, timeout=action_timeout, clock=clock
        )
        self._by_identity: Dict[str, Item[T]] = {}
        for item in self.scheduler.items:
            if item.identity in self._by_identity:
                logger.warning("Duplicate identity {}; keeping the first entry", item.identity)
                continue
            self._by_identity[item.identity] = item

    @classmethod
    def from_config(
        cls,
        cfg: PickerConfig,
        re_cache: bool = False,
        store_path: Path = config.FRECENCY_PATH,
        cwd: Optional[Path] = None,
        on_view: Optional[ViewCallback] = None,
    ) -> "PickerSession":
        items = to_items(load_cache(re_cache=re_cache))
        store = RecencyStore.open(store_path, type_ident=cfg.type_ident, half_life=cfg.half_life_secs)
        return cls(items, store, FlakeInitAction(cwd=cwd), cfg, on_view=on_view)

    def __len__(self) -> int:
        return len(self.scheduler.items)

    def find(self, identity: str) -> Optional[Item[T]]:
        return self._by_identity.get(identity)

    def commit(self, identity: str) -> CommitOutcome:
        item = self.find(identity)
        if item is None:
            raise KeyError(identity)
        return self.controller.commit(item)

    def close(self) -> None:
        self.scheduler.close()

    def __enter__(self) -> "PickerSession[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
