"""
FastAPI API routes for the Caffeine Tracker.
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import httpx
from fastapi import (
    APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request,
)

from tracker.config import (
    API_KEY, HALF_LIFE_HOURS, KNOT_OFFSET_SECONDS, LOOKBACK_HOURS,
    MAX_SAMPLES, RANGE_RESOLUTION, TIMEZONE, UP_WEBHOOK_SECRET,
)
from tracker.core.classifier import predefined_event
from tracker.core.database import (
    delete_event,
    get_latest_event,
    get_total_cost,
    get_total_intake,
    insert_event,
    query_event_rows,
    query_events,
)
from tracker.core.levels import InvalidRange, SeriesTooLarge, build_series, level_at
from tracker.core.upbank import UpApiError, UpClient, handle_webhook_event, validate_signature

log = logging.getLogger("caffeine.api")

router = APIRouter(prefix="/api")

_SUMMARY_START = datetime(1, 1, 1, tzinfo=timezone.utc)


# --- Auth ---

def verify_api_key(x_api_key: str = Header(default="")):
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


# --- Helpers ---

def parse_time(value: str, name: str) -> datetime:
    """ISO 8601 / RFC 3339 -> aware datetime. Naive input is local time."""
    try:
        t = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"invalid {name} time")
    if t.tzinfo is None:
        t = t.replace(tzinfo=ZoneInfo(TIMEZONE))
    return t


def _event_row_out(row: dict) -> dict:
    return {
        "id": row["id"],
        "timestamp": datetime.fromtimestamp(row["timestamp"], tz=timezone.utc).isoformat(),
        "description": row["description"],
        "amount": row["amount"],
        "cost": row["cost"],
    }


# --- Levels ---

@router.get("/levels", dependencies=[Depends(verify_api_key)])
def get_levels(start: str, end: str):
    """
    Decaying caffeine level over [start, end].
    Events from LOOKBACK_HOURS before start are included so earlier doses still count.
    """
    t_start = parse_time(start, "start")
    t_end = parse_time(end, "end")

    events = query_events(t_start - timedelta(hours=LOOKBACK_HOURS), t_end)
    try:
        series = build_series(t_start, t_end, events, max_samples=MAX_SAMPLES)
    except (InvalidRange, SeriesTooLarge) as e:
        raise HTTPException(status_code=400, detail=str(e))

    return [
        {"timestamp": int(s.timestamp.timestamp()), "level": s.level}
        for s in series
    ]


@router.get("/levels/current", dependencies=[Depends(verify_api_key)])
def get_current_level():
    """Caffeine level right now."""
    now = datetime.now(timezone.utc)
    events = query_events(now - timedelta(hours=LOOKBACK_HOURS), now)
    return {"timestamp": int(now.timestamp()), "level": level_at(now, events)}


# --- Events ---

@router.get("/events", dependencies=[Depends(verify_api_key)])
def get_events(start: str, end: str):
    """Caffeine events in [start, end]."""
    rows = query_event_rows(parse_time(start, "start"), parse_time(end, "end"))
    return [_event_row_out(r) for r in rows]


@router.get("/events/summary", dependencies=[Depends(verify_api_key)])
def get_events_summary(start: Optional[str] = None, end: Optional[str] = None):
    """Total intake (mg) and cost (cents). Defaults: all time up to tomorrow."""
    t_start = parse_time(start, "start") if start else _SUMMARY_START
    t_end = parse_time(end, "end") if end else datetime.now(timezone.utc) + timedelta(days=1)
    return {
        "intake": get_total_intake(t_start, t_end),
        "cost": get_total_cost(t_start, t_end),
    }


@router.delete("/events/{event_id}", dependencies=[Depends(verify_api_key)])
def delete_event_route(event_id: int):
    """Delete a caffeine event by ID."""
    if not delete_event(event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return {"deleted": event_id, "status": "ok"}


@router.post("/predefined-event", dependencies=[Depends(verify_api_key)])
def log_predefined_event(kind: int = Query(..., alias="type", ge=1)):
    """Log one of the predefined drinks at the current time."""
    event = predefined_event(kind, datetime.now(timezone.utc))
    if event is None:
        raise HTTPException(status_code=404, detail="Unknown predefined event type")
    row_id = insert_event(event)
    log.info("Predefined event: %s %.0fmg logged (#%d)", event.description, event.amount, row_id)
    return {"id": row_id, "description": event.description, "amount": event.amount, "status": "ok"}


# --- Up Bank webhook ---

def _ingest_webhook(payload: bytes):
    client = UpClient()
    try:
        handle_webhook_event(payload, client, insert_event)
    except (UpApiError, httpx.HTTPError) as e:
        log.error("Failed to retrieve transaction: %s", e)
    except (ValueError, KeyError) as e:
        log.error("Failed to parse webhook event: %s", e)
    except sqlite3.Error as e:
        log.error("Failed to store webhook event: %s", e)
    finally:
        client.close()


@router.post("/webhook/up", status_code=202)
async def up_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Receive Up Bank webhook callbacks.
    Signature is checked synchronously; fetching + classifying happens after the response.
    """
    body = await request.body()
    signature = request.headers.get("x-up-authenticity-signature", "")
    if not validate_signature(body, signature, UP_WEBHOOK_SECRET):
        log.warning("Invalid webhook signature: %s", signature)
        raise HTTPException(status_code=401, detail="Unauthorized")

    background_tasks.add_task(_ingest_webhook, body)
    return {"status": "accepted"}


@router.get("/status")
def status():
    """Health check endpoint."""
    latest = get_latest_event()
    return {
        "service": "caffeine-tracker",
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "last_event": latest.timestamp.isoformat() if latest else None,
        "model": {
            "half_life_hours": HALF_LIFE_HOURS,
            "lookback_hours": LOOKBACK_HOURS,
            "range_resolution": RANGE_RESOLUTION,
            "knot_offset_seconds": KNOT_OFFSET_SECONDS,
            "max_samples": MAX_SAMPLES,
        },
    }
