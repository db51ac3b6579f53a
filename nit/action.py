from __future__ import annotations

import subprocess
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from . import config
from .catalog_build import Template
from .errors import ActionFailed
from .pipeline_types import Item

Runner = Callable[..., subprocess.CompletedProcess]


class FlakeInitAction:
    """
    ``nix flake init -t <uri>#<name>`` in ``cwd`` for the chosen template.
    """

    def __init__(self, cwd: Optional[Path] = None, runner: Runner = subprocess.run) -> None:
        self.cwd = cwd
        self.runner = runner

    def __call__(self, item: Item[Template], timeout: Optional[float] = None) -> None:
        template_uri = item.payload.ref
        cmd = [config.NIX_BIN, "flake", "init", "-t", template_uri]
        logger.info("Running {}", " ".join(cmd))
        try:
            proc = self.runner(cmd, capture_output=True, text=True, timeout=timeout, cwd=self.cwd)
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
            raise ActionFailed(
                f"nix flake init -t {template_uri} timed out after {timeout}s", stderr=stderr
            ) from e
        except OSError as e:
            raise ActionFailed(f"failed to run nix flake init -t {template_uri}: {e}") from e

        if proc.returncode != 0:
            raise ActionFailed(
                f"failed to run nix flake init -t {template_uri}",
                returncode=proc.returncode,
                stderr=proc.stderr or "",
            )


class CallableAction:
    """
    Adapt a plain ``fn(item)`` into an action.

    ``fn`` runs on a worker thread. When it overruns ``timeout`` the commit
    fails with ActionFailed and the worker is abandoned, not joined.
    """

    def __init__(self, fn: Callable[[Item], None]) -> None:
        self.fn = fn

    def __call__(self, item: Item, timeout: Optional[float] = None) -> None:
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="nit-action")
        try:
            future = pool.submit(self.fn, item)
            done, _ = wait([future], timeout=timeout)
            if not done:
                logger.warning("Action for {} still running after {}s, abandoning it", item.identity, timeout)
                raise ActionFailed(f"action for {item.identity} timed out after {timeout}s")
            future.result()
        finally:
            pool.shutdown(wait=False)
