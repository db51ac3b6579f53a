from __future__ import annotations

"""
Query-driven re-ranking.

Each query edit allocates a new revision.  A pass scores the whole catalog
for one revision in batches, checking between batches whether a newer
revision exists and abandoning itself if so.  Finished passes go through a
delivery gate: only the latest revision, and only if it is newer than what
was already delivered, ever reaches the UI.  Older passes that complete
late are dropped.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Generic, List, Optional, Sequence

from loguru import logger

from .config import PickerConfig
from .frecency import RecencyStore
from .fuzzy import CompiledQuery, FuzzyMatcher
from .pipeline_types import Item, MatchResult, RankedView, T
from .rank import combine

ViewCallback = Callable[[RankedView], None]


class PipelineScheduler(Generic[T]):
    def __init__(
        self,
        items: Sequence[Item[T]],
        store: RecencyStore,
        matcher: FuzzyMatcher,
        cfg: PickerConfig,
        on_view: Optional[ViewCallback] = None,
        max_workers: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._items: tuple = tuple(items)
        self._identities: List[str] = [item.identity for item in self._items]
        self.store = store
        self.matcher = matcher
        self.cfg = cfg
        self.on_view = on_view
        self.clock = clock
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

        self._cond = threading.Condition(threading.Lock())
        self._revision = 0
        self._delivered = 0
        self._view: RankedView = RankedView(revision=0, query="", entries=[], catalog=self._items)

        self._notify_lock = threading.Lock()
        self._notified = 0

        if not self._items:
            logger.warning("Catalog is empty; every ranked view will be empty.")
        else:
            logger.info("Scheduler ready with {} items (batch size {})", len(self._items), cfg.batch_size)

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple:
        return self._items

    @property
    def latest_revision(self) -> int:
        return self._revision

    @property
    def delivered_revision(self) -> int:
        return self._delivered

    @property
    def latest_view(self) -> RankedView:
        return self._view

    def revise(self, query: str) -> int:
        """Allocate the revision for a new query state."""
        with self._cond:
            self._revision += 1
            revision = self._revision
        logger.debug("Query revision {}: {!r}", revision, query)
        return revision

    def is_stale(self, revision: int) -> bool:
        return revision < self._revision

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _score_batch(self, compiled: CompiledQuery, start: int, stop: int) -> List[MatchResult]:
        out: List[MatchResult] = []
        for idx in range(start, stop):
            item = self._items[idx]
            try:
                found = compiled.score(item.display)
            except Exception as e:
                logger.warning("Skipping item {!r}: scoring failed: {}", getattr(item, "identity", idx), e)
                continue
            if found is None:
                continue
            score, spans = found
            out.append(MatchResult(index=idx, fuzzy_score=score, spans=spans))
        return out

    def compute(self, revision: int, query: str, cancellable: bool = True) -> Optional[RankedView]:
        """
        Score and combine the whole catalog for ``query``.

        Returns None when ``cancellable`` and a newer revision showed up
        between batches.
        """
        compiled = self.matcher.compile(query)
        batch = self.cfg.batch_size
        matches: List[MatchResult] = []
        for start in range(0, len(self._items), batch):
            if cancellable and self.is_stale(revision):
                logger.debug("Abandoning pass for revision {} (latest {})", revision, self._revision)
                return None
            matches.extend(self._score_batch(compiled, start, min(start + batch, len(self._items))))

        recency = self.store.lookup_many(
            (self._identities[m.index] for m in matches),
            now=self.clock(),
        )
        entries = combine(matches, recency, self.cfg)
        return RankedView(revision=revision, query=query, entries=entries, catalog=self._items)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def deliver(self, view: RankedView) -> bool:
        """Publish ``view`` if it is for the latest revision and not older than the last one shown."""
        with self._cond:
            if view.revision != self._revision or view.revision <= self._delivered:
                logger.debug(
                    "Discarding stale view for revision {} (latest {}, delivered {})",
                    view.revision, self._revision, self._delivered,
                )
                return False
            self._delivered = view.revision
            self._view = view
            self._cond.notify_all()

        if self.on_view is not None:
            with self._notify_lock:
                # a newer view may have been notified while we waited
                if view.revision > self._notified:
                    self._notified = view.revision
                    self.on_view(view)
        return True

    def run_pass(self, revision: int, query: str) -> Optional[RankedView]:
        """One unit of work: compute and deliver. Returns the view if it was delivered."""
        view = self.compute(revision, query)
        if view is None:
            return None
        return view if self.deliver(view) else None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="nit-rank")
        return self._executor

    def submit(self, query: str) -> "Future[Optional[RankedView]]":
        """Re-rank in the background; the UI thread never blocks on scoring."""
        revision = self.revise(query)
        return self._get_executor().submit(self.run_pass, revision, query)

    def rank(self, query: str) -> RankedView:
        """Synchronous re-rank; always returns the view for ``query``."""
        revision = self.revise(query)
        view = self.compute(revision, query, cancellable=False)
        if view is None:
            raise RuntimeError(f"non-cancellable pass for revision {revision} produced no view")
        if not self.deliver(view):
            logger.debug("Revision {} superseded before delivery; returning it to the caller anyway", revision)
        return view

    def wait(self, revision: int, timeout: Optional[float] = None) -> Optional[RankedView]:
        """Block until ``revision`` (or something newer) is delivered."""
        with self._cond:
            ok = self._cond.wait_for(lambda: self._delivered >= revision, timeout=timeout)
            return self._view if ok else None

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None

    def __enter__(self) -> "PipelineScheduler[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
