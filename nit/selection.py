from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from loguru import logger

from . import config
from .errors import ActionFailed, CommitInProgress
from .frecency import RecencyStore
from .pipeline_types import Item


class Action(Protocol):
    def __call__(self, item: Item, timeout: Optional[float] = None) -> None: ...


class ControllerState(str, Enum):
    IDLE = "idle"
    ACTING = "acting"


@dataclass(frozen=True)
class CommitOutcome:
    identity: str
    score: float


class SelectionController:
    """
    Runs the action on a committed item and rewards it in the store.

    One commit at a time: a second ``commit`` while the first is acting is
    rejected with CommitInProgress.  Failed actions leave the store alone.
    """

    def __init__(
        self,
        store: RecencyStore,
        action: Action,
        bonus: float = config.RECENCY_BONUS,
        timeout: Optional[float] = config.ACTION_TIMEOUT_SECS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.action = action
        self.bonus = bonus
        self.timeout = timeout
        self.clock = clock
        self._commit_lock = threading.Lock()
        self._state = ControllerState.IDLE

    @property
    def state(self) -> ControllerState:
        return self._state

    def commit(self, item: Item) -> CommitOutcome:
        if not self._commit_lock.acquire(blocking=False):
            logger.warning("Rejected commit of {}: another commit is in flight", item.identity)
            raise CommitInProgress(f"commit already in progress; {item.identity!r} was not run")

        try:
            self._state = ControllerState.ACTING
            logger.info("Running action for {}", item.identity)
            try:
                self.action(item, timeout=self.timeout)
            except ActionFailed as e:
                logger.error("Action failed for {}: {}", item.identity, e)
                raise
            except Exception as e:
                logger.error("Action raised for {}: {}", item.identity, e)
                raise ActionFailed(f"action for {item.identity} raised: {e}") from e

            score = self.store.record_use(item.identity, self.bonus, now=self.clock())
            logger.info("Committed {} (frecency {:.2f})", item.identity, score)
            return CommitOutcome(identity=item.identity, score=score)
        finally:
            self._state = ControllerState.IDLE
            self._commit_lock.release()
