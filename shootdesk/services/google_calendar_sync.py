"""
Google Calendar Sync Service
Keeps the local event cache in step with Google Calendar (incremental and
full sync), pushes shoot events to Google and flags scheduling conflicts
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from functools import partial
from typing import Optional

import httpx
from fastapi import Depends
from sqlalchemy.orm import Session

from ..config import CALENDAR_SYNC_WINDOW_DAYS, GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
from ..database import get_db
from ..domain.calendar.repository import CalendarRepository
from ..domain.integrations.repository import GOOGLE_CALENDAR, IntegrationRepository
from ..models import Shoot
from ..models_google_calendar import CalendarEventCache, CalendarWebhookChannel, Integration
from ..security_utils import generate_secure_token
from .google_calendar_client import (
    CalendarError,
    CalendarEventBase,
    GoogleCalendarClient,
    base_to_google_event,
    get_status_code,
    google_event_to_base,
    map_google_error,
    parse_event_time,
    parse_timestamp,
    partial_to_google_event,
    refresh_access_token,
    retry_with_backoff,
)

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_BUFFER = timedelta(minutes=5)
WEBHOOK_TTL_SECONDS = 7 * 24 * 60 * 60
AUTH_EXPIRED_MESSAGE = "Calendar authentication expired. Please reconnect your Google Calendar."
EXTERNALLY_DELETED_MESSAGE = "Calendar event deleted externally"


@dataclass
class SyncResult:
    success: bool
    synced_events: int = 0
    deleted_events: int = 0
    conflicts: int = 0
    next_sync_token: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ConflictingEvent:
    id: str
    title: str
    start_time: datetime
    end_time: datetime


@dataclass
class ConflictInfo:
    shoot_start: datetime
    shoot_end: datetime
    conflicting_events: list[ConflictingEvent] = field(default_factory=list)


def get_sync_window(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """[today 00:00 UTC, today + CALENDAR_SYNC_WINDOW_DAYS)"""
    now = now or datetime.utcnow()
    start = datetime.combine(now.date(), time.min)
    return start, start + timedelta(days=CALENDAR_SYNC_WINDOW_DAYS)


def serialize_conflict(event: CalendarEventCache) -> dict:
    return {
        "eventId": event.google_event_id,
        "title": event.title,
        "startTime": event.start_time.isoformat(),
        "endTime": event.end_time.isoformat(),
    }


class GoogleCalendarSync:
    """Bidirectional sync between Google Calendar and the local event cache"""

    def __init__(
        self,
        db: Session,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        self.db = db
        self.transport = transport
        self.sleep = sleep
        self.repo = CalendarRepository()
        self.integrations = IntegrationRepository()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def validate_config(self) -> None:
        if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
            raise CalendarError(
                "Google Calendar API not configured - missing client credentials",
                "CONFIG_MISSING",
                500,
            )

    def get_integration(self, user_email: str) -> Optional[Integration]:
        return self.integrations.get_integration(self.db, user_email, GOOGLE_CALENDAR)

    def is_connected(self, user_email: str) -> bool:
        integration = self.get_integration(user_email)
        return bool(integration and integration.connected and integration.access_token)

    @staticmethod
    def is_token_expired(integration: Integration, now: Optional[datetime] = None) -> bool:
        if not integration.expiry_date:
            return False
        now = now or datetime.utcnow()
        return integration.expiry_date <= now + TOKEN_EXPIRY_BUFFER

    async def initialize_auth(self, user_email: str) -> GoogleCalendarClient:
        integration = self.get_integration(user_email)
        if not integration or not integration.connected or not integration.access_token:
            raise CalendarError("Google Calendar not connected for this user", "NOT_CONNECTED", 401)

        if self.is_token_expired(integration):
            logger.info(f"🔄 Google Calendar token expired for {user_email}, refreshing...")
            access_token = await self.refresh_access_token(user_email)
        else:
            access_token = self.integrations.get_access_token(integration)

        if not access_token:
            raise CalendarError("Failed to initialize calendar authentication", "AUTH_INIT_FAILED", 500)

        return GoogleCalendarClient(access_token, transport=self.transport)

    async def refresh_access_token(self, user_email: str) -> str:
        integration = self.get_integration(user_email)
        refresh_token = self.integrations.get_refresh_token(integration) if integration else None
        if not refresh_token:
            raise CalendarError("Failed to refresh access token", "TOKEN_REFRESH_FAILED", 401)

        try:
            tokens = await refresh_access_token(refresh_token, transport=self.transport)
        except Exception as e:
            logger.error(f"❌ Token refresh failed for {user_email}: {e}")
            raise CalendarError("Failed to refresh access token", "TOKEN_REFRESH_FAILED", 401, e) from e

        access_token = tokens.get("access_token")
        if not access_token:
            raise CalendarError("Failed to refresh access token", "TOKEN_REFRESH_FAILED", 401)

        self.integrations.upsert_integration(
            self.db,
            user_email,
            GOOGLE_CALENDAR,
            access_token=access_token,
            refresh_token=tokens.get("refresh_token"),
            expiry_date=datetime.utcnow() + timedelta(seconds=tokens.get("expires_in", 3600)),
        )
        logger.info(f"✅ Google Calendar token refreshed for {user_email}")
        return access_token

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_calendar(
        self,
        user_email: str,
        calendar_id: str = "primary",
        force_full_sync: bool = False,
        _auth_retried: bool = False,
    ) -> SyncResult:
        """
        Pull changes from Google into the event cache.

        Uses the stored sync token when there is one (incremental sync);
        otherwise, or when forced, wipes the cache and lists the sync window.
        An expired sync token falls back to a full sync and an auth failure
        refreshes the access token once before giving up.
        """
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)

            sync_token = None
            is_full_sync = force_full_sync
            if not force_full_sync:
                stored = self.repo.get_sync_token(self.db, user_email, calendar_id)
                sync_token = stored.sync_token if stored else None
                if not sync_token:
                    is_full_sync = True

            logger.info(
                f"🔄 Starting {'full' if is_full_sync else 'incremental'} calendar sync "
                f"for {user_email} ({calendar_id})"
            )
            result = await self._perform_sync(client, user_email, calendar_id, sync_token, is_full_sync)
            self._record_sync_outcome(user_email, None)
            return result

        except Exception as e:
            self.db.rollback()
            error = map_google_error(e, "sync")

            if error.code == "SYNC_TOKEN_EXPIRED" and not force_full_sync:
                logger.warning(f"⚠️ Sync token expired for {user_email}, running full sync")
                return await self.sync_calendar(user_email, calendar_id, True, _auth_retried)

            if error.code == "TOKEN_REFRESH_FAILED" or (
                _auth_retried and (error.code == "UNAUTHORIZED" or self._is_invalid_grant(e))
            ):
                self._record_sync_outcome(user_email, AUTH_EXPIRED_MESSAGE)
                return SyncResult(success=False, error=AUTH_EXPIRED_MESSAGE)

            if error.code == "UNAUTHORIZED" or self._is_invalid_grant(e):
                logger.warning(f"⚠️ Calendar auth rejected for {user_email}, refreshing token")
                try:
                    await self.refresh_access_token(user_email)
                except CalendarError:
                    self._record_sync_outcome(user_email, AUTH_EXPIRED_MESSAGE)
                    return SyncResult(success=False, error=AUTH_EXPIRED_MESSAGE)
                return await self.sync_calendar(user_email, calendar_id, force_full_sync, True)

            logger.error(f"❌ Calendar sync failed for {user_email}: {error.message}")
            self._record_sync_outcome(user_email, error.message)
            return SyncResult(success=False, error=error.message)

    @staticmethod
    def _is_invalid_grant(error: BaseException) -> bool:
        return "invalid_grant" in str(getattr(error, "reason", "") or "") or "invalid_grant" in str(error)

    def _record_sync_outcome(self, user_email: str, error: Optional[str]) -> None:
        integration = self.get_integration(user_email)
        if not integration:
            return
        if error is None:
            integration.last_sync = datetime.utcnow()
        integration.error = error
        self.db.commit()

    async def _perform_sync(
        self,
        client: GoogleCalendarClient,
        user_email: str,
        calendar_id: str,
        sync_token: Optional[str],
        is_full_sync: bool,
    ) -> SyncResult:
        if is_full_sync:
            self.repo.clear_event_cache(self.db, user_email, calendar_id)
            self.repo.delete_sync_token(self.db, user_email, calendar_id)

        window_start, window_end = get_sync_window()
        synced_events = 0
        deleted_events = 0
        page_token = None
        next_sync_token = None

        while True:
            if is_full_sync:
                request = partial(
                    client.list_events,
                    calendar_id,
                    page_token=page_token,
                    time_min=window_start,
                    time_max=window_end,
                )
            else:
                request = partial(
                    client.list_events, calendar_id, sync_token=sync_token, page_token=page_token
                )
            response = await retry_with_backoff(request, sleep=self.sleep)

            for google_event in response.get("items") or []:
                event_id = google_event.get("id")
                if not event_id:
                    continue
                try:
                    if google_event.get("status") == "cancelled":
                        await self.handle_externally_deleted_event(user_email, event_id, calendar_id)
                        deleted_events += 1
                        continue

                    if not (google_event.get("summary") and google_event.get("start") and google_event.get("end")):
                        logger.debug(f"Skipping incomplete event {event_id}")
                        continue

                    start = parse_event_time(google_event["start"])
                    end = parse_event_time(google_event["end"])
                    if start is None or end is None:
                        continue
                    if end <= window_start or start >= window_end:
                        # Moved out of the mirrored window
                        self.repo.delete_cached_event(self.db, user_email, event_id, calendar_id)
                        continue

                    self._cache_google_event(user_email, calendar_id, google_event)
                    synced_events += 1
                except Exception as e:
                    self.db.rollback()
                    logger.warning(f"⚠️ Failed to process calendar event {event_id}: {e}")

            page_token = response.get("nextPageToken")
            next_sync_token = response.get("nextSyncToken") or next_sync_token
            if not page_token:
                break

        if next_sync_token:
            self.repo.upsert_sync_token(self.db, user_email, next_sync_token, calendar_id)

        conflicts = self.detect_conflicts(user_email, calendar_id)

        logger.info(
            f"✅ Calendar sync complete for {user_email}: {synced_events} synced, "
            f"{deleted_events} deleted, {conflicts} conflicts"
        )
        return SyncResult(
            success=True,
            synced_events=synced_events,
            deleted_events=deleted_events,
            conflicts=conflicts,
            next_sync_token=next_sync_token,
        )

    def _cache_google_event(self, user_email: str, calendar_id: str, google_event: dict) -> CalendarEventCache:
        event_id = google_event.get("id")
        if not event_id:
            raise CalendarError("Cannot convert event without ID", "INVALID_EVENT")

        base = google_event_to_base(google_event)
        status = google_event.get("status") or "confirmed"
        if status not in ("confirmed", "tentative", "cancelled"):
            status = "confirmed"

        shoot = (
            self.db.query(Shoot)
            .filter(Shoot.google_calendar_event_id == event_id, Shoot.deleted_at.is_(None))
            .first()
        )

        return self.repo.upsert_cached_event(
            self.db,
            user_email,
            event_id,
            calendar_id,
            shoot_id=shoot.id if shoot else None,
            title=base.title,
            description=base.description,
            start_time=base.start_time,
            end_time=base.end_time,
            location=base.location,
            status=status,
            attendees=base.attendees,
            is_recurring=base.is_recurring,
            recurring_event_id=google_event.get("recurringEventId"),
            etag=google_event.get("etag"),
            last_modified=parse_timestamp(google_event.get("updated")) or datetime.utcnow(),
            sync_status="synced",
            conflict_detected=False,
            conflict_details=None,
        )

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def detect_conflicts(self, user_email: str, calendar_id: str = "primary") -> int:
        """
        Flag every cached event that overlaps another one.
        Rows that no longer overlap anything are cleared again, so repeated
        runs over the same cache give the same result.
        """
        try:
            events = self.repo.get_cached_events(self.db, user_email, calendar_id)
            active = [event for event in events if event.status != "cancelled"]
            conflict_count = 0

            for event in events:
                overlapping = []
                if event.status != "cancelled":
                    overlapping = [
                        other
                        for other in active
                        if other.id != event.id
                        and event.start_time < other.end_time
                        and event.end_time > other.start_time
                    ]

                if overlapping:
                    event.conflict_detected = True
                    event.sync_status = "error"
                    event.conflict_details = [serialize_conflict(other) for other in overlapping]
                    conflict_count += 1
                elif event.conflict_detected:
                    event.conflict_detected = False
                    event.sync_status = "synced"
                    event.conflict_details = None

            self.db.commit()
            return conflict_count
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Conflict detection failed for {user_email}: {e}")
            return 0

    def check_conflicts_for_shoot(
        self,
        user_email: str,
        start_time: datetime,
        end_time: datetime,
        exclude_event_id: Optional[str] = None,
        calendar_id: str = "primary",
    ) -> ConflictInfo:
        info = ConflictInfo(shoot_start=start_time, shoot_end=end_time)
        try:
            conflicts = self.repo.check_scheduling_conflicts(
                self.db, user_email, start_time, end_time, exclude_event_id, calendar_id
            )
        except Exception as e:
            logger.error(f"❌ Conflict check failed for {user_email}: {e}")
            return info

        info.conflicting_events = [
            ConflictingEvent(
                id=event.google_event_id,
                title=event.title,
                start_time=event.start_time,
                end_time=event.end_time,
            )
            for event in conflicts
        ]
        return info

    # ------------------------------------------------------------------
    # Event writes
    # ------------------------------------------------------------------

    async def create_event(
        self, user_email: str, event: CalendarEventBase, calendar_id: str = "primary"
    ) -> dict:
        """Insert an event (attendees notified) and cache it; returns the Google event resource"""
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)

            body = base_to_google_event(event)
            created = await retry_with_backoff(
                partial(client.insert_event, calendar_id, body), sleep=self.sleep
            )
            if not created.get("id"):
                raise CalendarError("Event created but no ID returned", "CREATE_ERROR")

            self._cache_google_event(user_email, calendar_id, created)
            logger.info(f"✅ Google Calendar event created: {created['id']}")
            return created
        except Exception as e:
            self.db.rollback()
            raise map_google_error(e, "create event") from e

    async def update_event(
        self, user_email: str, event_id: str, updates: dict, calendar_id: str = "primary"
    ) -> Optional[dict]:
        """
        Merge updates onto the remote event.
        Returns None when the event no longer exists in Google; its cache row is dropped.
        """
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)

            current = await client.get_event(calendar_id, event_id)
            merged = {**current, **partial_to_google_event(updates)}
            updated = await retry_with_backoff(
                partial(client.update_event, calendar_id, event_id, merged), sleep=self.sleep
            )

            self._cache_google_event(user_email, calendar_id, updated)
            logger.info(f"✅ Google Calendar event updated: {event_id}")
            return updated
        except Exception as e:
            self.db.rollback()
            if get_status_code(e) == 404:
                logger.warning(f"⚠️ Event {event_id} no longer exists in Google Calendar")
                self.repo.delete_cached_event(self.db, user_email, event_id, calendar_id)
                return None
            raise map_google_error(e, "update event") from e

    async def delete_event(self, user_email: str, event_id: str, calendar_id: str = "primary") -> None:
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)
            await retry_with_backoff(partial(client.delete_event, calendar_id, event_id), sleep=self.sleep)
            self.repo.delete_cached_event(self.db, user_email, event_id, calendar_id)
            logger.info(f"✅ Google Calendar event deleted: {event_id}")
        except Exception as e:
            self.db.rollback()
            raise map_google_error(e, "delete event") from e

    async def delete_calendar_event(
        self, user_email: str, event_id: str, calendar_id: str = "primary"
    ) -> bool:
        """Delete for shoot removal; an already missing event counts as deleted"""
        try:
            await self.delete_event(user_email, event_id, calendar_id)
            return True
        except CalendarError as e:
            if e.status_code == 404:
                self.repo.delete_cached_event(self.db, user_email, event_id, calendar_id)
                return True
            logger.error(f"❌ Failed to delete calendar event {event_id}: {e.message}")
            return False

    async def handle_externally_deleted_event(
        self, user_email: str, event_id: str, calendar_id: str = "primary"
    ) -> None:
        """Drop the cache row and unlink the shoot that pointed at a vanished event"""
        try:
            self.repo.delete_cached_event(self.db, user_email, event_id, calendar_id)

            shoot = self.db.query(Shoot).filter(Shoot.google_calendar_event_id == event_id).first()
            if shoot:
                shoot.google_calendar_event_id = None
                shoot.google_calendar_sync_status = None
                shoot.google_calendar_last_sync = None
                shoot.google_calendar_html_link = None
                shoot.google_calendar_etag = None
                shoot.google_calendar_error = EXTERNALLY_DELETED_MESSAGE
                shoot.updated_at = datetime.utcnow()
                self.db.commit()
                logger.info(f"🗑️ Shoot {shoot.id} unlinked from deleted calendar event {event_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to handle deleted calendar event {event_id}: {e}")

    async def verify_event_exists(self, user_email: str, event_id: str, calendar_id: str = "primary") -> bool:
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)
            await client.get_event(calendar_id, event_id)
            return True
        except Exception as e:
            if get_status_code(e) == 404:
                return False
            # Auth or network trouble says nothing about the event
            return True

    # ------------------------------------------------------------------
    # Calendars & push channels
    # ------------------------------------------------------------------

    async def list_calendars(self, user_email: str) -> list[dict]:
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)
            return await retry_with_backoff(client.list_calendars, sleep=self.sleep)
        except Exception as e:
            raise map_google_error(e, "list calendars") from e

    async def register_webhook_channel(
        self, user_email: str, address: str, calendar_id: str = "primary"
    ) -> CalendarWebhookChannel:
        """Start a push channel for a calendar, replacing the previous one"""
        try:
            self.validate_config()
            client = await self.initialize_auth(user_email)

            channel_id = str(uuid.uuid4())
            token = generate_secure_token(24)
            response = await retry_with_backoff(
                partial(
                    client.watch_events,
                    calendar_id,
                    channel_id,
                    token,
                    address,
                    ttl_seconds=WEBHOOK_TTL_SECONDS,
                ),
                sleep=self.sleep,
            )
        except Exception as e:
            raise map_google_error(e, "watch calendar") from e

        previous = self.repo.get_webhook_channel(self.db, user_email, calendar_id)
        if previous and previous.resource_id:
            try:
                await client.stop_channel(previous.channel_id, previous.resource_id)
            except Exception as e:
                logger.warning(f"⚠️ Failed to stop previous channel {previous.channel_id}: {e}")

        expiration = None
        if response.get("expiration"):
            expiration = datetime.fromtimestamp(
                int(response["expiration"]) / 1000, tz=timezone.utc
            ).replace(tzinfo=None)

        channel = self.repo.create_webhook_channel(
            self.db,
            user_email,
            channel_id,
            resource_id=response.get("resourceId"),
            resource_uri=response.get("resourceUri"),
            token=token,
            expiration=expiration,
            calendar_id=calendar_id,
        )
        logger.info(f"✅ Push channel {channel_id} registered for {user_email} ({calendar_id})")
        return channel

    async def stop_webhook_channels(self, user_email: str) -> int:
        """Stop and deactivate every active channel of a user (best-effort remotely)"""
        channels = self.repo.get_active_webhook_channels(self.db, user_email)
        if not channels:
            return 0

        client = None
        try:
            client = await self.initialize_auth(user_email)
        except CalendarError as e:
            logger.warning(f"⚠️ Cannot stop push channels remotely for {user_email}: {e.message}")

        for channel in channels:
            if client and channel.resource_id:
                try:
                    await client.stop_channel(channel.channel_id, channel.resource_id)
                except Exception as e:
                    logger.warning(f"⚠️ Failed to stop channel {channel.channel_id}: {e}")
            self.repo.deactivate_webhook_channel(self.db, channel.channel_id)

        return len(channels)


def get_calendar_sync(db: Session = Depends(get_db)) -> GoogleCalendarSync:
    """Dependency injection for GoogleCalendarSync"""
    return GoogleCalendarSync(db)
