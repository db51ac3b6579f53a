from __future__ import annotations

"""
FastAPI surface for the picker.

- POST /rank re-ranks the catalog for a query and returns rows with highlights
- POST /commit runs the action for an identity and bumps its frecency
- Commits are serialized by the session's controller; overlap -> 409
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from . import config
from .config import (
    CommitRequest,
    CommitResponse,
    HealthResponse,
    RankedRow,
    RankRequest,
    RankResponse,
    load_picker_config,
)
from .errors import ActionFailed, CatalogUnavailable, CommitInProgress, StoreWriteFailed
from .session import PickerSession


# -----------------------
# FastAPI app + startup
# -----------------------

_session: Optional[PickerSession] = None


def attach_session(session: Optional[PickerSession]) -> None:
    global _session
    _session = session


def startup_event() -> None:
    global _session
    if _session is not None:
        return
    logger.info("Starting picker session...")
    try:
        _session = PickerSession.from_config(load_picker_config())
    except CatalogUnavailable as e:
        logger.error("Catalog unavailable: {}", e)
        return
    logger.info("Picker session ready with {} items", len(_session))


def shutdown_event() -> None:
    if _session is not None:
        _session.close()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    startup_event()
    yield
    shutdown_event()


app = FastAPI(title="nix-nit", lifespan=lifespan)
# /commit writes into the working directory; only listed origins may call it
if config.API_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.API_CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )


def _require_session() -> PickerSession:
    if _session is None:
        raise HTTPException(status_code=503, detail="Catalog not loaded")
    return _session


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    if _session is None:
        return HealthResponse(status="loading", items=0)
    return HealthResponse(status="healthy", items=len(_session))


@app.post("/rank", response_model=RankResponse)
def rank(req: RankRequest) -> RankResponse:
    session = _require_session()
    view = session.scheduler.rank(req.query)
    rows = []
    for entry in view.entries[: req.limit]:
        item = view.catalog[entry.index]
        rows.append(
            RankedRow(
                identity=item.identity,
                display=item.display,
                spans=list(entry.spans),
                combined_score=entry.combined_score,
                fuzzy_score=entry.fuzzy_score,
                recency_score=entry.recency_score,
            )
        )
    return RankResponse(revision=view.revision, query=view.query, total=len(view), rows=rows)


@app.post("/commit", response_model=CommitResponse)
def commit(req: CommitRequest) -> CommitResponse:
    session = _require_session()
    try:
        outcome = session.commit(req.identity)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown identity: {req.identity}")
    except CommitInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ActionFailed as e:
        raise HTTPException(
            status_code=502,
            detail={"message": e.message, "returncode": e.returncode, "stderr": e.stderr},
        )
    except StoreWriteFailed as e:
        raise HTTPException(status_code=500, detail=str(e))
    return CommitResponse(identity=outcome.identity, score=outcome.score)
