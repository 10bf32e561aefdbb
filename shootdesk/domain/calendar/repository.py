"""Calendar repository - sync tokens, push channels and the local event cache"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Shoot
from ...models_google_calendar import (
    CalendarEventCache,
    CalendarSyncToken,
    CalendarWebhookChannel,
)

logger = logging.getLogger(__name__)

CACHED_EVENT_FIELDS = (
    "shoot_id",
    "title",
    "description",
    "start_time",
    "end_time",
    "location",
    "status",
    "attendees",
    "is_recurring",
    "recurring_event_id",
    "etag",
    "last_modified",
    "sync_status",
    "conflict_detected",
    "conflict_details",
)


class CalendarRepository:
    """Repository for calendar sync state"""

    # ------------------------------------------------------------------
    # Sync tokens
    # ------------------------------------------------------------------

    @staticmethod
    def get_sync_token(db: Session, user_email: str, calendar_id: str = "primary") -> Optional[CalendarSyncToken]:
        return (
            db.query(CalendarSyncToken)
            .filter(
                CalendarSyncToken.user_email == user_email,
                CalendarSyncToken.calendar_id == calendar_id,
            )
            .first()
        )

    @staticmethod
    def upsert_sync_token(
        db: Session, user_email: str, sync_token: str, calendar_id: str = "primary"
    ) -> CalendarSyncToken:
        row = CalendarRepository.get_sync_token(db, user_email, calendar_id)
        now = datetime.utcnow()
        if row:
            row.sync_token = sync_token
            row.last_sync = now
            row.updated_at = now
        else:
            row = CalendarSyncToken(
                user_email=user_email,
                calendar_id=calendar_id,
                sync_token=sync_token,
                last_sync=now,
            )
            db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def delete_sync_token(db: Session, user_email: str, calendar_id: str = "primary") -> bool:
        deleted = (
            db.query(CalendarSyncToken)
            .filter(
                CalendarSyncToken.user_email == user_email,
                CalendarSyncToken.calendar_id == calendar_id,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted > 0

    # ------------------------------------------------------------------
    # Push notification channels
    # ------------------------------------------------------------------

    @staticmethod
    def get_webhook_channel(
        db: Session, user_email: str, calendar_id: str = "primary"
    ) -> Optional[CalendarWebhookChannel]:
        """Most recent active channel for a user's calendar"""
        return (
            db.query(CalendarWebhookChannel)
            .filter(
                CalendarWebhookChannel.user_email == user_email,
                CalendarWebhookChannel.calendar_id == calendar_id,
                CalendarWebhookChannel.active.is_(True),
            )
            .order_by(CalendarWebhookChannel.created_at.desc(), CalendarWebhookChannel.id.desc())
            .first()
        )

    @staticmethod
    def get_webhook_channel_by_id(db: Session, channel_id: str) -> Optional[CalendarWebhookChannel]:
        return (
            db.query(CalendarWebhookChannel)
            .filter(CalendarWebhookChannel.channel_id == channel_id)
            .first()
        )

    @staticmethod
    def get_active_webhook_channels(db: Session, user_email: str) -> list[CalendarWebhookChannel]:
        return (
            db.query(CalendarWebhookChannel)
            .filter(
                CalendarWebhookChannel.user_email == user_email,
                CalendarWebhookChannel.active.is_(True),
            )
            .all()
        )

    @staticmethod
    def create_webhook_channel(
        db: Session,
        user_email: str,
        channel_id: str,
        resource_id: Optional[str] = None,
        resource_uri: Optional[str] = None,
        token: Optional[str] = None,
        expiration: Optional[datetime] = None,
        calendar_id: str = "primary",
    ) -> CalendarWebhookChannel:
        """Store a new channel; any other active channel for the same calendar is deactivated"""
        now = datetime.utcnow()
        db.query(CalendarWebhookChannel).filter(
            CalendarWebhookChannel.user_email == user_email,
            CalendarWebhookChannel.calendar_id == calendar_id,
            CalendarWebhookChannel.active.is_(True),
        ).update({"active": False, "updated_at": now}, synchronize_session=False)

        channel = CalendarWebhookChannel(
            user_email=user_email,
            calendar_id=calendar_id,
            channel_id=channel_id,
            resource_id=resource_id,
            resource_uri=resource_uri,
            token=token,
            expiration=expiration,
            active=True,
        )
        db.add(channel)
        db.commit()
        db.refresh(channel)
        return channel

    @staticmethod
    def deactivate_webhook_channel(db: Session, channel_id: str) -> bool:
        updated = (
            db.query(CalendarWebhookChannel)
            .filter(CalendarWebhookChannel.channel_id == channel_id)
            .update({"active": False, "updated_at": datetime.utcnow()}, synchronize_session=False)
        )
        db.commit()
        return updated > 0

    @staticmethod
    def get_expired_webhook_channels(db: Session, now: Optional[datetime] = None) -> list[CalendarWebhookChannel]:
        now = now or datetime.utcnow()
        return (
            db.query(CalendarWebhookChannel)
            .filter(
                CalendarWebhookChannel.active.is_(True),
                CalendarWebhookChannel.expiration.isnot(None),
                CalendarWebhookChannel.expiration < now,
            )
            .all()
        )

    # ------------------------------------------------------------------
    # Event cache
    # ------------------------------------------------------------------

    @staticmethod
    def get_cached_events(
        db: Session,
        user_email: str,
        calendar_id: str = "primary",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[CalendarEventCache]:
        query = db.query(CalendarEventCache).filter(
            CalendarEventCache.user_email == user_email,
            CalendarEventCache.calendar_id == calendar_id,
        )
        if start:
            query = query.filter(CalendarEventCache.end_time > start)
        if end:
            query = query.filter(CalendarEventCache.start_time < end)
        return query.order_by(CalendarEventCache.start_time).all()

    @staticmethod
    def get_cached_event(
        db: Session, user_email: str, google_event_id: str, calendar_id: str = "primary"
    ) -> Optional[CalendarEventCache]:
        return (
            db.query(CalendarEventCache)
            .filter(
                CalendarEventCache.user_email == user_email,
                CalendarEventCache.calendar_id == calendar_id,
                CalendarEventCache.google_event_id == google_event_id,
            )
            .first()
        )

    @staticmethod
    def upsert_cached_event(
        db: Session, user_email: str, google_event_id: str, calendar_id: str = "primary", **data
    ) -> CalendarEventCache:
        """
        Insert or update one cached event keyed by (user, calendar, event id).
        A shoot link already on the row is kept unless a new shoot_id is given,
        or the linked shoot no longer exists or is soft-deleted.
        """
        row = CalendarRepository.get_cached_event(db, user_email, google_event_id, calendar_id)
        if row is None:
            row = CalendarEventCache(
                user_email=user_email,
                calendar_id=calendar_id,
                google_event_id=google_event_id,
            )
            db.add(row)

        for key in CACHED_EVENT_FIELDS:
            if key not in data:
                continue
            if key == "shoot_id" and data[key] is None:
                continue
            setattr(row, key, data[key])

        if row.shoot_id is not None and "shoot_id" in data and data["shoot_id"] is None:
            linked = db.query(Shoot).filter(Shoot.id == row.shoot_id, Shoot.deleted_at.is_(None)).first()
            if linked is None:
                logger.info(f"🔗 Dropping stale shoot link {row.shoot_id} from event {google_event_id}")
                row.shoot_id = None

        row.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def delete_cached_event(
        db: Session, user_email: str, google_event_id: str, calendar_id: str = "primary"
    ) -> bool:
        deleted = (
            db.query(CalendarEventCache)
            .filter(
                CalendarEventCache.user_email == user_email,
                CalendarEventCache.calendar_id == calendar_id,
                CalendarEventCache.google_event_id == google_event_id,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted > 0

    @staticmethod
    def link_event_to_shoot(
        db: Session, user_email: str, google_event_id: str, shoot_id: int, calendar_id: str = "primary"
    ) -> bool:
        updated = (
            db.query(CalendarEventCache)
            .filter(
                CalendarEventCache.user_email == user_email,
                CalendarEventCache.calendar_id == calendar_id,
                CalendarEventCache.google_event_id == google_event_id,
            )
            .update({"shoot_id": shoot_id, "updated_at": datetime.utcnow()}, synchronize_session=False)
        )
        db.commit()
        return updated > 0

    @staticmethod
    def unlink_shoot_events(db: Session, shoot_id: int) -> int:
        """Detach every cached event from a shoot that is being deleted"""
        updated = (
            db.query(CalendarEventCache)
            .filter(CalendarEventCache.shoot_id == shoot_id)
            .update({"shoot_id": None, "updated_at": datetime.utcnow()}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def clear_event_cache(db: Session, user_email: str, calendar_id: str = "primary") -> int:
        deleted = (
            db.query(CalendarEventCache)
            .filter(
                CalendarEventCache.user_email == user_email,
                CalendarEventCache.calendar_id == calendar_id,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info(f"🧹 Cleared {deleted} cached events for {user_email} ({calendar_id})")
        return deleted

    # ------------------------------------------------------------------
    # Conflicts & cleanup
    # ------------------------------------------------------------------

    @staticmethod
    def check_scheduling_conflicts(
        db: Session,
        user_email: str,
        start_time: datetime,
        end_time: datetime,
        exclude_event_id: Optional[str] = None,
        calendar_id: str = "primary",
    ) -> list[CalendarEventCache]:
        """Cached events overlapping [start_time, end_time); touching edges do not overlap"""
        query = db.query(CalendarEventCache).filter(
            CalendarEventCache.user_email == user_email,
            CalendarEventCache.calendar_id == calendar_id,
            CalendarEventCache.start_time < end_time,
            CalendarEventCache.end_time > start_time,
            CalendarEventCache.status != "cancelled",
        )
        if exclude_event_id:
            query = query.filter(CalendarEventCache.google_event_id != exclude_event_id)

        conflicts = query.order_by(CalendarEventCache.start_time).all()
        logger.info(
            f"🔍 Found {len(conflicts)} conflicts for {user_email} "
            f"between {start_time.isoformat()} and {end_time.isoformat()}"
        )
        return conflicts

    @staticmethod
    def cleanup_orphaned_calendar_events(db: Session, user_email: Optional[str] = None) -> int:
        """Drop cached events whose linked shoot is gone or soft-deleted"""
        query = db.query(CalendarEventCache).filter(CalendarEventCache.shoot_id.isnot(None))
        if user_email:
            query = query.filter(CalendarEventCache.user_email == user_email)

        cleaned = 0
        for event in query.all():
            shoot = db.query(Shoot).filter(Shoot.id == event.shoot_id).first()
            if shoot is None or shoot.deleted_at is not None:
                logger.info(f"🧹 Removing orphaned event '{event.title}' (shoot {event.shoot_id})")
                db.delete(event)
                cleaned += 1

        db.commit()
        logger.info(f"✅ Cleaned up {cleaned} orphaned calendar events")
        return cleaned
