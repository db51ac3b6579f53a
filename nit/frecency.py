from __future__ import annotations

"""
Persistent frecency store.

Every identity keeps the score it had at its last use plus the time of that
use.  The live score is the stored score decayed with an exponential
half-life, so nothing has to be rewritten while time passes:

    score(now) = score_at_use * 2 ** (-(now - last_used) / half_life)

A use ("bump") first decays the stored value up to ``now`` and then adds the
bonus.  The whole store for all namespaces lives in one JSON document; a
store instance only ever reads and writes its own ``type_ident`` namespace.
"""

import json
import math
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

import numpy as np
from loguru import logger

from . import config
from .errors import StoreCorrupt, StoreWriteFailed

STORE_VERSION = 1


@dataclass(frozen=True)
class RecencyEntry:
    last_used: float
    score: float


def decay(score: float, elapsed: float, half_life: float) -> float:
    """Decay ``score`` over ``elapsed`` seconds. Negative elapsed counts as zero."""
    if elapsed <= 0.0:
        return score
    return score * math.pow(2.0, -elapsed / half_life)


class RecencyStore:
    """
    Identity -> decaying usage score for one namespace of a shared JSON file.

    Reads are lock-free snapshots of an immutable entry; every mutation and
    every write to disk happens under ``self._lock``.
    """

    def __init__(
        self,
        path: Optional[Path],
        type_ident: str = config.TYPE_IDENT,
        half_life: float = config.HALF_LIFE_SECS,
    ) -> None:
        if half_life <= 0:
            raise ValueError(f"half_life must be positive, got {half_life}")
        self.path = Path(path) if path is not None else None
        self.type_ident = type_ident
        self.half_life = float(half_life)
        self._entries: Dict[str, RecencyEntry] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        path: Optional[Path] = config.FRECENCY_PATH,
        type_ident: str = config.TYPE_IDENT,
        half_life: float = config.HALF_LIFE_SECS,
    ) -> "RecencyStore":
        """Create a store and load it, falling back to empty on any read problem."""
        store = cls(path, type_ident=type_ident, half_life=half_life)
        try:
            store.load()
        except StoreCorrupt as e:
            logger.warning("Frecency store unreadable, starting empty: {}", e)
        return store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: str) -> bool:
        return identity in self._entries

    def entry(self, identity: str) -> Optional[RecencyEntry]:
        return self._entries.get(identity)

    def lookup(self, identity: str, now: Optional[float] = None) -> float:
        """Current decayed score of ``identity``; 0.0 when never used."""
        entry = self._entries.get(identity)
        if entry is None:
            return 0.0
        if now is None:
            now = time.time()
        return decay(entry.score, now - entry.last_used, self.half_life)

    def lookup_many(self, identities: Iterable[str], now: Optional[float] = None) -> np.ndarray:
        """Vectorised :meth:`lookup` for a whole scoring pass."""
        if now is None:
            now = time.time()
        entries = self._entries
        rows = [entries.get(i) for i in identities]
        scores = np.array([e.score if e else 0.0 for e in rows], dtype="float64")
        last_used = np.array([e.last_used if e else now for e in rows], dtype="float64")
        if scores.size == 0:
            return scores
        elapsed = np.maximum(now - last_used, 0.0)
        return scores * np.exp2(-elapsed / self.half_life)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def bump(self, identity: str, bonus: float, now: Optional[float] = None) -> float:
        """
        Record a use of ``identity``: decay to ``now``, then add ``bonus``.

        Returns the new score.
        """
        if bonus < 0 or math.isnan(bonus):
            raise ValueError(f"bonus must be a non-negative number, got {bonus}")
        if now is None:
            now = time.time()
        with self._lock:
            current = self.lookup(identity, now)
            entry = self._entries.get(identity)
            # a bump older than the last recorded use keeps the newer timestamp
            last_used = now if entry is None else max(now, entry.last_used)
            new_score = current + bonus
            self._entries[identity] = RecencyEntry(last_used=last_used, score=new_score)
        logger.debug("Bumped {} to {:.3f} in namespace {}", identity, new_score, self.type_ident)
        return new_score

    def record_use(self, identity: str, bonus: float, now: Optional[float] = None) -> float:
        """
        Bump and persist as one serialized write.

        If the write fails the entry is put back as it was and
        StoreWriteFailed is raised, so memory never runs ahead of disk.
        """
        with self._lock:
            previous = self._entries.get(identity)
            score = self.bump(identity, bonus, now)
            try:
                self.persist()
            except OSError as e:
                if previous is None:
                    del self._entries[identity]
                else:
                    self._entries[identity] = previous
                logger.error("Could not persist frecency for {}: {}", identity, e)
                raise StoreWriteFailed(f"could not write {self.path}: {e}") from e
        return score

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _read_document(self) -> dict:
        if self.path is None or not self.path.exists():
            return {"version": STORE_VERSION, "namespaces": {}}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreCorrupt(f"cannot read {self.path}: {e}") from e
        if not isinstance(doc, dict) or not isinstance(doc.get("namespaces"), dict):
            raise StoreCorrupt(f"{self.path} is not a frecency store document")
        return doc

    def load(self) -> None:
        """
        Replace in-memory entries with this namespace from disk.

        Missing file -> empty. Malformed individual entries are skipped with
        a warning; an unreadable document raises StoreCorrupt and leaves the
        store empty.
        """
        with self._lock:
            self._entries = {}
            doc = self._read_document()
            raw = doc["namespaces"].get(self.type_ident, {})
            if not isinstance(raw, dict):
                raise StoreCorrupt(f"namespace {self.type_ident!r} is not a mapping")

            loaded: Dict[str, RecencyEntry] = {}
            skipped = 0
            for identity, value in raw.items():
                try:
                    last_used = float(value["last_used"])
                    score = float(value["score"])
                except (TypeError, KeyError, ValueError):
                    skipped += 1
                    continue
                if not (math.isfinite(last_used) and math.isfinite(score)) or score < 0:
                    skipped += 1
                    continue
                loaded[str(identity)] = RecencyEntry(last_used=last_used, score=score)

            if skipped:
                logger.warning("Skipped {} malformed frecency entries in {}", skipped, self.path)
            self._entries = loaded
            logger.info("Loaded {} frecency entries for {}", len(loaded), self.type_ident)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            identity: {"last_used": e.last_used, "score": e.score}
            for identity, e in sorted(self._entries.items())
        }

    def persist(self) -> None:
        """
        Atomically rewrite the store file, keeping other namespaces intact.
        """
        if self.path is None:
            return
        with self._lock:
            try:
                doc = self._read_document()
            except StoreCorrupt as e:
                logger.warning("Overwriting unreadable frecency store: {}", e)
                doc = {"version": STORE_VERSION, "namespaces": {}}
            doc["version"] = STORE_VERSION
            doc["namespaces"][self.type_ident] = self.to_dict()

            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".frecency-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(doc, f, indent=2, sort_keys=True)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise
        logger.debug("Persisted {} frecency entries to {}", len(self._entries), self.path)
