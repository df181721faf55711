"""FastAPI application exposing the Kepler data layer as JSON."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, List, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from kepler.config import AppConfig
from kepler.errors import DocumentNotFoundError, KeplerError
from kepler.net.ratelimit import describe, is_low
from kepler.service import Kepler, Track
from kepler.view.filters import FilterState, Selection, SortState, apply_view, facet_values, is_stale
from kepler.view.stats import (
    count_by_status,
    count_by_subgroup,
    count_by_year,
    join_changes,
    related_numbers,
)

LOGGER = logging.getLogger(__name__)

CONFIG = AppConfig.from_env()

app = FastAPI(title="Kepler API", version="0.1.0", root_path=CONFIG.base_path)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_kepler: Kepler | None = None


class PageResponse(BaseModel):
    items: List[dict[str, Any]]
    page: int
    total_pages: int
    total_count: int
    facets: dict[str, List[str]]


class RateLimitResponse(BaseModel):
    remaining: int | None
    limit: int | None
    reset: str | None
    is_rate_limited: bool
    is_low: bool
    summary: str


def get_kepler() -> Kepler:
    global _kepler
    if _kepler is None:
        _kepler = Kepler(CONFIG)
    return _kepler


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    global _kepler
    if _kepler is not None:
        await _kepler.aclose()
        _kepler = None


def _track(kepler: Kepler, name: str) -> Track:
    try:
        return kepler.track(name)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _selection(values: Optional[List[str]], name: str, none_selected: List[str]) -> Selection:
    if name in none_selected:
        return Selection.none()
    return Selection.of(values) if values else Selection.unset()


def _serialize(record: Any, threshold: timedelta) -> dict[str, Any]:
    data = record.to_dict()
    data["stale"] = is_stale(record, threshold=threshold)
    return data


@app.get("/api/{track}/documents", response_model=PageResponse)
async def list_documents(
    track: str,
    q: str = "",
    sig: Optional[List[str]] = Query(None),
    status: Optional[List[str]] = Query(None),
    stage: Optional[List[str]] = Query(None),
    none_selected: List[str] = Query([], description="Filters explicitly set to match nothing"),
    stale: bool = False,
    bookmarked: bool = False,
    sort: str = "number",
    desc: bool = True,
    page: int = 1,
    kepler: Kepler = Depends(get_kepler),
) -> dict[str, Any]:
    selected = _track(kepler, track)
    try:
        records = await selected.documents.fetch_all()
    except (KeplerError, httpx.HTTPError) as exc:
        LOGGER.error("Unable to load %s documents: %s", track, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    filters = FilterState(
        query=q,
        subgroup=_selection(sig, "sig", none_selected),
        status=_selection(status, "status", none_selected),
        stage=_selection(stage, "stage", none_selected),
        stale_only=stale,
        bookmarked_only=bookmarked,
        bookmarks=selected.bookmarks.all(),
    )
    try:
        result = apply_view(
            records,
            filters,
            SortState(sort, desc),
            page,
            page_size=kepler.config.page_size,
            threshold=kepler.config.stale_threshold,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "items": [_serialize(record, kepler.config.stale_threshold) for record in result.items],
        "page": result.page,
        "total_pages": result.total_pages,
        "total_count": result.total_count,
        "facets": {
            "sig": facet_values(records, "subgroup"),
            "status": facet_values(records, "status"),
        },
    }


@app.get("/api/{track}/documents/{number}")
async def get_document(track: str, number: str, kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    selected = _track(kepler, track)
    try:
        record = await selected.documents.fetch_document(number)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (KeplerError, httpx.HTTPError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    data = _serialize(record, kepler.config.stale_threshold)
    data["bookmarked"] = selected.bookmarks.contains(record.number)
    data["related"] = related_numbers(record)
    return data


@app.get("/api/{track}/recent")
async def recent_changes(track: str, limit: int = 10, kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    selected = _track(kepler, track)
    events = await selected.activity.find_recently_changed(limit)
    records = selected.documents.cached_records() or []
    return {
        "changes": [event.to_dict() for event in events],
        "documents": [
            {"number": record.number, "title": record.title, "status": record.status, "date": date.isoformat()}
            for record, date in join_changes(events, records, limit)
        ],
    }


@app.get("/api/{track}/stats")
async def track_stats(track: str, kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    selected = _track(kepler, track)
    try:
        records = await selected.documents.fetch_all()
    except (KeplerError, httpx.HTTPError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {
        "total": len(records),
        "by_status": dict(count_by_status(records)),
        "by_sig": dict(count_by_subgroup(records)),
        "by_year": dict(count_by_year(records)),
    }


@app.post("/api/{track}/refresh")
async def refresh(track: str, kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    """Drop the track's cached listings and load the collection again."""
    selected = _track(kepler, track)
    cleared = selected.documents.invalidate()
    try:
        records = await selected.documents.fetch_all()
    except (KeplerError, httpx.HTTPError) as exc:
        LOGGER.error("Unable to reload %s documents: %s", track, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"status": "ok", "cleared": cleared, "count": len(records)}


@app.post("/api/{track}/bookmarks/{number}")
async def toggle_bookmark(track: str, number: str, kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    selected = _track(kepler, track)
    return {"number": number, "bookmarked": selected.bookmarks.toggle(number)}


@app.get("/api/rate-limit", response_model=RateLimitResponse)
async def rate_limit(kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    info = kepler.rate_limit.snapshot()
    return {
        "remaining": info.remaining,
        "limit": info.limit,
        "reset": info.reset.isoformat() if info.reset else None,
        "is_rate_limited": info.is_rate_limited,
        "is_low": is_low(info),
        "summary": describe(info),
    }


@app.get("/api/cache")
async def cache_status(kepler: Kepler = Depends(get_kepler)) -> dict[str, Any]:
    return {"age_ms": kepler.freshness()}
