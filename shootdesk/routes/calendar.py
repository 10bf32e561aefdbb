"""Calendar view - cached Google Calendar events for the UI"""

import logging
from datetime import datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import get_current_admin, get_current_user
from ..database import get_db
from ..domain.calendar.repository import CalendarRepository
from ..models import User
from ..utils.date_time import duration_minutes, isoformat_utc, parse_client_datetime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["Calendar"])


def serialize_cached_event(event) -> dict:
    return {
        "id": event.google_event_id,
        "title": event.title,
        "description": event.description,
        "startTime": isoformat_utc(event.start_time),
        "endTime": isoformat_utc(event.end_time),
        "location": event.location,
        "status": event.status,
        "attendees": event.attendees or [],
        "isRecurring": bool(event.is_recurring),
        "conflictDetected": bool(event.conflict_detected),
        "conflictDetails": event.conflict_details or None,
        "syncStatus": event.sync_status,
        "shootId": event.shoot_id,
        "isShootEvent": event.shoot_id is not None,
        "duration": duration_minutes(event.start_time, event.end_time),
        "lastModified": isoformat_utc(event.last_modified),
    }


@router.get("/events")
async def get_calendar_events(
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    filter: str = Query("all"),
    calendarId: str = Query("primary"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cached events from today forward, optionally limited to a date range or to shoots"""
    if filter not in ("all", "shoots"):
        raise HTTPException(status_code=400, detail="filter must be 'all' or 'shoots'")

    today = datetime.combine(datetime.utcnow().date(), time.min)
    events = CalendarRepository.get_cached_events(db, current_user.email, calendarId)

    if startDate and endDate:
        start = parse_client_datetime(startDate)
        end = parse_client_datetime(endDate)
        if start is None or end is None:
            raise HTTPException(status_code=400, detail="Invalid date format")
        start = max(start, today)
        events = [event for event in events if event.start_time >= start and event.end_time <= end]
    else:
        events = [event for event in events if event.start_time >= today]

    if filter == "shoots":
        events = [event for event in events if event.shoot_id is not None]

    return {
        "success": True,
        "events": [serialize_cached_event(event) for event in events],
        "totalCount": len(events),
        "filter": filter,
        "dateRange": {"startDate": startDate, "endDate": endDate} if startDate and endDate else None,
    }


@router.post("/cleanup")
async def cleanup_orphaned_events(
    current_user: User = Depends(get_current_admin), db: Session = Depends(get_db)
):
    """Drop cached events whose shoot has been deleted"""
    cleaned = CalendarRepository.cleanup_orphaned_calendar_events(db)
    logger.info(f"🧹 Orphan cleanup by {current_user.email}: {cleaned} removed")
    return {"success": True, "cleaned": cleaned}
