"""
Google Calendar Integration Routes
Handles OAuth connection, calendar selection, manual sync, conflict checks
and Google push notifications
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import FRONTEND_URL, GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_WEBHOOK_URL
from ..database import SessionLocal, get_db
from ..domain.calendar.repository import CalendarRepository
from ..domain.calendar.schemas import ConflictCheckRequest, SyncRequest, WatchRequest
from ..domain.integrations.repository import (
    DEFAULT_CALENDAR_SETTINGS,
    GOOGLE_CALENDAR,
    GOOGLE_DRIVE,
    IntegrationRepository,
    validate_calendar_settings,
)
from ..models import User
from ..security_utils import constant_time_compare, create_jwt_token, verify_jwt_token
from ..services.google_calendar_client import (
    CalendarError,
    build_authorization_url,
    exchange_code_for_tokens,
    fetch_user_email,
    revoke_token,
)
from ..services.google_calendar_sync import GoogleCalendarSync, get_calendar_sync
from ..utils.date_time import duration_minutes, isoformat_utc, parse_client_datetime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["Integrations"])

OAUTH_STATE_PURPOSE = "google-calendar-connect"
OAUTH_STATE_TTL = timedelta(minutes=15)


def integrations_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}/account/integrations?{query}", status_code=307)


def integration_status(integration) -> dict:
    return {
        "connected": bool(integration and integration.connected),
        "email": integration.connected_email if integration else None,
        "lastSync": isoformat_utc(integration.last_sync) if integration else None,
        "error": integration.error if integration else None,
    }


async def run_background_sync(user_email: str, calendar_id: str = "primary") -> None:
    """Incremental sync triggered by a push notification, on its own session"""
    db = SessionLocal()
    try:
        result = await GoogleCalendarSync(db).sync_calendar(user_email, calendar_id)
        if result.success:
            logger.info(
                f"✅ Webhook sync for {user_email}: {result.synced_events} synced, "
                f"{result.deleted_events} deleted"
            )
        else:
            logger.error(f"❌ Webhook sync failed for {user_email}: {result.error}")
    except Exception as e:
        logger.error(f"❌ Webhook sync crashed for {user_email}: {e}")
    finally:
        db.close()


# ============================================================================
# STATUS & OAUTH
# ============================================================================


@router.get("/status")
async def get_integrations_status(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Connection status of every provider (never exposes tokens)"""
    repo = IntegrationRepository()
    return {
        "success": True,
        "integrations": {
            "googleCalendar": integration_status(repo.get_integration(db, current_user.email, GOOGLE_CALENDAR)),
            "googleDrive": integration_status(repo.get_integration(db, current_user.email, GOOGLE_DRIVE)),
        },
    }


@router.post("/google-calendar/connect")
async def initiate_google_calendar_oauth(current_user: User = Depends(get_current_user)):
    """Initiate Google Calendar OAuth flow"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(
            status_code=500,
            detail="Google OAuth not configured. Please add GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET.",
        )

    state = create_jwt_token(
        {"sub": current_user.email, "purpose": OAUTH_STATE_PURPOSE}, expires_delta=OAUTH_STATE_TTL
    )
    logger.info(f"Google Calendar OAuth initiated for user: {current_user.email}")
    return {"success": True, "authUrl": build_authorization_url(state)}


@router.get("/google-calendar/callback")
async def handle_google_calendar_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_db),
    calendar_sync: GoogleCalendarSync = Depends(get_calendar_sync),
):
    """Google redirects the browser here; always answers with a redirect to the frontend"""
    if error or not code or not state:
        return integrations_redirect(f"error={error or 'invalid_request'}")

    payload = verify_jwt_token(state)
    if not payload or payload.get("purpose") != OAUTH_STATE_PURPOSE or not payload.get("sub"):
        logger.warning("⚠️ Google Calendar callback with invalid state")
        return integrations_redirect("error=invalid_state")
    user_email = payload["sub"]

    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        return integrations_redirect("error=oauth_not_configured")

    try:
        tokens = await exchange_code_for_tokens(code, transport=calendar_sync.transport)
        access_token = tokens.get("access_token")
        if not access_token:
            return integrations_redirect("error=callback_failed")

        google_email = await fetch_user_email(access_token, transport=calendar_sync.transport)
        if not google_email:
            return integrations_redirect("error=no_email")

        repo = IntegrationRepository()
        existing = repo.get_integration(db, user_email, GOOGLE_CALENDAR)
        repo.upsert_integration(
            db,
            user_email,
            GOOGLE_CALENDAR,
            access_token=access_token,
            refresh_token=tokens.get("refresh_token"),
            connected=True,
            connected_email=google_email,
            expiry_date=datetime.utcnow() + timedelta(seconds=tokens.get("expires_in", 3600)),
            settings=repo.get_settings(existing) or dict(DEFAULT_CALENDAR_SETTINGS),
            error=None,
            last_sync=datetime.utcnow(),
        )

        logger.info(f"✅ Google Calendar connected for user: {user_email} ({google_email})")
        return integrations_redirect("success=google-calendar")

    except Exception as e:
        logger.error(f"❌ Google Calendar callback error: {str(e)}")
        db.rollback()
        return integrations_redirect("error=callback_failed")


@router.post("/google-calendar/disconnect")
async def disconnect_google_calendar(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar_sync: GoogleCalendarSync = Depends(get_calendar_sync),
):
    """Disconnect Google Calendar integration"""
    repo = IntegrationRepository()
    integration = repo.get_integration(db, current_user.email, GOOGLE_CALENDAR)

    try:
        if integration:
            await calendar_sync.stop_webhook_channels(current_user.email)

            # Revoke Google tokens
            token = repo.get_refresh_token(integration) or repo.get_access_token(integration)
            if token:
                try:
                    await revoke_token(token, transport=calendar_sync.transport)
                except Exception as e:
                    logger.warning(f"Failed to revoke Google tokens: {str(e)}")

        repo.remove_integration(db, current_user.email, GOOGLE_CALENDAR)
    except Exception as e:
        logger.error(f"❌ Failed to disconnect Google Calendar: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to disconnect Google Calendar") from e

    logger.info(f"✅ Google Calendar disconnected for user: {current_user.email}")
    return {"success": True, "message": "Google Calendar disconnected successfully"}


# ============================================================================
# CALENDAR SELECTION
# ============================================================================


@router.get("/google-calendar/calendars")
async def list_google_calendars(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar_sync: GoogleCalendarSync = Depends(get_calendar_sync),
):
    repo = IntegrationRepository()
    settings = {
        **DEFAULT_CALENDAR_SETTINGS,
        **repo.get_settings(repo.get_integration(db, current_user.email, GOOGLE_CALENDAR)),
    }
    selected = set(settings.get("selectedCalendars") or [])

    try:
        items = await calendar_sync.list_calendars(current_user.email)
    except CalendarError as e:
        if e.status_code == 401:
            raise HTTPException(status_code=401, detail="Calendar access unauthorized - please reconnect") from e
        if e.status_code == 403:
            raise HTTPException(status_code=403, detail="Insufficient permissions to access calendars") from e
        logger.error(f"❌ Failed to fetch calendars for {current_user.email}: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to fetch calendars") from e

    calendars = []
    for item in items:
        calendar_id = item.get("id")
        calendars.append(
            {
                "id": calendar_id,
                "name": item.get("summary"),
                "description": item.get("description"),
                "primary": bool(item.get("primary")),
                "accessRole": item.get("accessRole"),
                "backgroundColor": item.get("backgroundColor"),
                "foregroundColor": item.get("foregroundColor"),
                "selected": calendar_id in selected or (bool(item.get("primary")) and "primary" in selected),
                "timeZone": item.get("timeZone"),
            }
        )

    return {"success": True, "calendars": calendars, "settings": settings}


@router.post("/google-calendar/calendars")
async def save_calendar_settings(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        body = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from e

    # Accept both {"selectedCalendars": [...]} and a full settings object
    new_settings = body.get("settings", body) if isinstance(body, dict) else body
    is_valid, message = validate_calendar_settings(new_settings)
    if not is_valid:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {message}")

    repo = IntegrationRepository()
    integration = repo.get_integration(db, current_user.email, GOOGLE_CALENDAR)
    if not integration or not integration.connected:
        raise HTTPException(status_code=400, detail="Google Calendar not connected")

    clean = {key: value for key, value in new_settings.items() if key != "data"}
    integration = repo.save_settings(db, integration, clean)

    logger.info(f"✅ Calendar settings saved for {current_user.email}")
    return {
        "success": True,
        "message": "Calendar settings saved successfully",
        "settings": repo.get_settings(integration),
    }


# ============================================================================
# SYNC & CONFLICTS
# ============================================================================


@router.post("/google-calendar/sync")
async def sync_google_calendar(
    data: Optional[SyncRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    calendar_sync: GoogleCalendarSync = Depends(get_calendar_sync),
):
    data = data or SyncRequest()

    if data.clearCache:
        CalendarRepository.clear_event_cache(db, current_user.email, data.calendarId)
        return {"success": True, "message": "Calendar cache cleared successfully"}

    result = await calendar_sync.sync_calendar(current_user.email, data.calendarId, data.forceFullSync)
    if not result.success:
        return JSONResponse(status_code=500, content={"success": False, "error": result.error or "Sync failed"})

    return {
        "success": True,
        "message": "Calendar sync completed successfully",
        "syncedEvents": result.synced_events,
        "deletedEvents": result.deleted_events,
        "conflicts": result.conflicts,
    }


@router.post("/google-calendar/conflicts")
async def check_calendar_conflicts(
    data: ConflictCheckRequest,
    current_user: User = Depends(get_current_user),
    calendar_sync: GoogleCalendarSync = Depends(get_calendar_sync),
):
    if not data.startTime or not data.endTime:
        raise HTTPException(status_code=400, detail="Start time and end time are required")

    start = parse_client_datetime(data.startTime)
    end = parse_client_datetime(data.endTime)
    if start is None or end is None:
        raise HTTPException(status_code=400, detail="Invalid date format")
    if start >= end:
        raise HTTPException(status_code=400, detail="Start time must be before end time")

    info = calendar_sync.check_conflicts_for_shoot(
        current_user.email, start, end, data.excludeEventId, data.calendarId
    )

    return {
        "success": True,
        "hasConflicts": len(info.conflicting_events) > 0,
        "conflictCount": len(info.conflicting_events),
        "shootTime": {"start": isoformat_utc(info.shoot_start), "end": isoformat_utc(info.shoot_end)},
        "conflicts": [
            {
                "id": event.id,
                "title": event.title,
                "startTime": isoformat_utc(event.start_time),
                "endTime": isoformat_utc(event.end_time),
                "duration": duration_minutes(event.start_time, event.end_time),
            }
            for event in info.conflicting_events
        ],
    }


# ============================================================================
# PUSH NOTIFICATIONS
# ============================================================================


@router.post("/google-calendar/watch")
async def watch_google_calendar(
    data: Optional[WatchRequest] = None,
    current_user: User = Depends(get_current_user),
    calendar_sync: GoogleCalendarSync = Depends(get_calendar_sync),
):
    """Register a push channel so Google notifies us about changes"""
    data = data or WatchRequest()
    if not GOOGLE_WEBHOOK_URL:
        raise HTTPException(status_code=400, detail="Push notifications not configured")

    try:
        channel = await calendar_sync.register_webhook_channel(
            current_user.email, GOOGLE_WEBHOOK_URL, data.calendarId
        )
    except CalendarError as e:
        logger.error(f"❌ Failed to watch calendar for {current_user.email}: {e.message}")
        status_code = e.status_code if e.status_code in (400, 401, 403, 404) else 500
        raise HTTPException(status_code=status_code, detail=e.message) from e

    return {
        "success": True,
        "channelId": channel.channel_id,
        "calendarId": channel.calendar_id,
        "expiration": isoformat_utc(channel.expiration),
    }


@router.post("/google-calendar/webhook")
async def google_calendar_webhook(
    request: Request, background_tasks: BackgroundTasks, db: Session = Depends(get_db)
):
    """
    Google push notification receiver.
    Notifications carry no payload, only headers; an "exists" state means
    something changed, so an incremental sync is queued.
    """
    try:
        channel_id = request.headers.get("X-Goog-Channel-ID")
        channel_token = request.headers.get("X-Goog-Channel-Token")
        resource_state = request.headers.get("X-Goog-Resource-State")
        resource_id = request.headers.get("X-Goog-Resource-ID")
        user_agent = request.headers.get("User-Agent") or ""

        logger.info(f"📥 Calendar webhook: channel={channel_id} state={resource_state}")

        if "APIs-Google" not in user_agent:
            return JSONResponse(status_code=400, content={"error": "Invalid request"})

        if not channel_id:
            return JSONResponse(status_code=400, content={"error": "Missing channel ID"})

        channel = CalendarRepository.get_webhook_channel_by_id(db, channel_id)
        if not channel or not channel.active:
            return JSONResponse(status_code=404, content={"error": "Channel not found"})

        if channel_token and channel.token and not constant_time_compare(channel_token, channel.token):
            logger.warning(f"⚠️ Webhook token mismatch for channel {channel_id}")
            return JSONResponse(status_code=403, content={"error": "Invalid token"})

        if resource_id and channel.resource_id and resource_id != channel.resource_id:
            logger.warning(f"⚠️ Webhook resource mismatch for channel {channel_id}")
            return JSONResponse(status_code=403, content={"error": "Invalid resource"})

        if resource_state == "sync":
            logger.info(f"ℹ️ Channel {channel_id} handshake received")
        elif resource_state == "exists":
            background_tasks.add_task(run_background_sync, channel.user_email, channel.calendar_id)
        elif resource_state == "not_exists":
            CalendarRepository.deactivate_webhook_channel(db, channel_id)
            logger.info(f"ℹ️ Channel {channel_id} deactivated (resource gone)")
        else:
            logger.warning(f"⚠️ Unknown resource state: {resource_state}")

    except Exception as e:
        # Acknowledge anyway so Google does not keep retrying
        logger.error(f"❌ Calendar webhook error: {str(e)}")

    return {"success": True}


@router.get("/google-calendar/webhook")
async def verify_google_calendar_webhook(request: Request):
    mode = request.query_params.get("hub.mode")
    challenge = request.query_params.get("hub.challenge")

    if mode == "subscribe" and challenge:
        return PlainTextResponse(challenge)

    return JSONResponse(status_code=400, content={"error": "Invalid verification request"})
