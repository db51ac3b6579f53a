from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .errors import MatchConfigInvalid


# ---------------------------
# Paths
# ---------------------------

APP_NAME = "nix-nit"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    raw = os.getenv(env_var)
    base = Path(raw) if raw else Path.home() / fallback
    return base / APP_NAME


CONFIG_DIR = _xdg_dir("XDG_CONFIG_HOME", ".config")
CACHE_DIR = _xdg_dir("XDG_CACHE_HOME", ".cache")
DATA_DIR = _xdg_dir("XDG_DATA_HOME", ".local/share")

CONFIG_PATH = CONFIG_DIR / "config.toml"
CACHE_PATH = CACHE_DIR / "cache.json"
FRECENCY_PATH = Path(os.getenv("NIT_FRECENCY_PATH", str(DATA_DIR / "frecency.json")))

LOG_DIR = CACHE_DIR / "logs"


# ---------------------------
# Ranking settings & env toggles
# ---------------------------

SECS_PER_DAY = 60 * 60 * 24

HALF_LIFE_DAYS = float(os.getenv("NIT_HALF_LIFE_DAYS", "30"))
HALF_LIFE_SECS = HALF_LIFE_DAYS * SECS_PER_DAY

# one use is worth this many recency units; fuzzy scores live in [0, 1]
RECENCY_BONUS = float(os.getenv("NIT_RECENCY_BONUS", "15.0"))
RECENCY_WEIGHT = 1.0
FUZZY_WEIGHT = 1.0

BATCH_SIZE = int(os.getenv("NIT_BATCH_SIZE", "1000"))

TYPE_IDENT = os.getenv("NIT_TYPE_IDENT", "nix-nit")


# ---------------------------
# Action / UI
# ---------------------------

ACTION_TIMEOUT_SECS = float(os.getenv("NIT_ACTION_TIMEOUT", "300"))
NIX_BIN = os.getenv("NIT_NIX_BIN", "nix")

INLINE_ROWS = 12
FULLSCREEN_ROWS = 40

API_HOST = "127.0.0.1"
API_PORT = int(os.getenv("NIT_API_PORT", "8765"))
# comma-separated; empty means no cross-origin access at all
API_CORS_ORIGINS = [o.strip() for o in os.getenv("NIT_CORS_ORIGINS", "").split(",") if o.strip()]


# ---------------------------
# Logging / observability
# ---------------------------

LOG_LEVEL = os.getenv("NIT_LOG_LEVEL", "INFO")


def setup_logging(level: str = LOG_LEVEL, log_dir: Optional[Path] = LOG_DIR) -> None:
    """
    Route loguru to stderr at ``level`` plus a rotating file sink.

    Safe to call more than once; each call replaces the previous sinks.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    if log_dir is None:
        return
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Cannot create log directory {}: {}", log_dir, e)
        return
    logger.add(
        log_dir / "nit.log",
        level="DEBUG",
        rotation="1 MB",
        retention=5,
        enqueue=True,
    )


# ---------------------------
# Matching policy
# ---------------------------

class CaseMatching(str, Enum):
    RESPECT = "respect"
    IGNORE = "ignore"
    SMART = "smart"


class Normalization(str, Enum):
    NEVER = "never"
    ALWAYS = "always"
    SMART = "smart"


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class PickerConfig(BaseModel):
    """
    Everything the ranking pipeline needs to know, validated once at startup.
    """

    half_life_secs: float = Field(default=HALF_LIFE_SECS, gt=0)
    recency_bonus: float = Field(default=RECENCY_BONUS, ge=0)
    recency_weight: float = Field(default=RECENCY_WEIGHT, ge=0)
    fuzzy_weight: float = Field(default=FUZZY_WEIGHT, ge=0)
    batch_size: int = Field(default=BATCH_SIZE, ge=1)
    case_matching: CaseMatching = CaseMatching.SMART
    normalization: Normalization = Normalization.SMART
    type_ident: str = Field(default=TYPE_IDENT, min_length=1)


def load_picker_config(**overrides) -> PickerConfig:
    """
    Build a PickerConfig, turning validation errors into MatchConfigInvalid.

    ``None`` overrides are ignored so CLI flags can be passed straight through.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return PickerConfig(**values)
    except ValidationError as e:
        raise MatchConfigInvalid(f"Invalid picker configuration: {e}") from e


class RankRequest(BaseModel):
    query: str = ""
    limit: int = Field(default=50, ge=1, le=10_000)


class RankedRow(BaseModel):
    identity: str
    display: str
    spans: List[Tuple[int, int]]
    combined_score: float
    fuzzy_score: float
    recency_score: float


class RankResponse(BaseModel):
    """
    Response body for POST /rank.
    """

    revision: int
    query: str
    total: int
    rows: List[RankedRow]


class CommitRequest(BaseModel):
    identity: str = Field(..., min_length=1)


class CommitResponse(BaseModel):
    """
    Response body for POST /commit.
    """

    identity: str
    score: float


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
    items: int
