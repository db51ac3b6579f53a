"""Error taxonomy for the picker."""

from __future__ import annotations

from typing import Optional


class NitError(Exception):
    """Base class for every error the picker raises on purpose."""


class CatalogUnavailable(NitError):
    """No catalog could be produced (missing config, failing `nix flake show`)."""


class StoreCorrupt(NitError):
    """The persisted frecency store could not be read."""


class MatchConfigInvalid(NitError):
    """Matching / ranking configuration failed validation."""


class CommitInProgress(NitError):
    """A commit was requested while another one was still running."""


class ActionFailed(NitError):
    """
    The action collaborator reported a failure.

    ``stderr`` carries the collaborator's diagnostic output verbatim.
    """

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self) -> str:
        if self.stderr:
            return f"{self.message}, err: {self.stderr.strip()}"
        return self.message


class StoreWriteFailed(NitError):
    """The frecency store could not be written; the in-memory store was rolled back."""
