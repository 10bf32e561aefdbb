"""
Google Calendar Integration Models
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("user_email", "provider", name="uq_integration_user_provider"),)

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    provider = Column(String(50), nullable=False)  # google-calendar, google-drive
    connected = Column(Boolean, default=False, nullable=False)
    connected_email = Column(String(255), nullable=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    expiry_date = Column(DateTime, nullable=True)

    # Provider settings, e.g. {"selectedCalendars": ["primary"]}
    settings = Column("metadata", JSON, nullable=True)
    error = Column(Text, nullable=True)
    last_sync = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CalendarSyncToken(Base):
    __tablename__ = "calendar_sync_tokens"
    __table_args__ = (UniqueConstraint("user_email", "calendar_id", name="uq_sync_token_user_calendar"),)

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    calendar_id = Column(String(255), nullable=False, default="primary")
    sync_token = Column(Text, nullable=False)
    last_sync = Column(DateTime, server_default=func.now())
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CalendarWebhookChannel(Base):
    __tablename__ = "calendar_webhook_channels"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    calendar_id = Column(String(255), nullable=False, default="primary")
    channel_id = Column(String(255), nullable=False, unique=True, index=True)
    resource_id = Column(String(255), nullable=True)
    resource_uri = Column(Text, nullable=True)
    token = Column(String(255), nullable=True)  # echoed back in X-Goog-Channel-Token
    expiration = Column(DateTime, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CalendarEventCache(Base):
    __tablename__ = "calendar_events_cache"
    __table_args__ = (
        UniqueConstraint("user_email", "calendar_id", "google_event_id", name="uq_cached_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)
    calendar_id = Column(String(255), nullable=False, default="primary")
    google_event_id = Column(String(255), nullable=False, index=True)
    shoot_id = Column(Integer, ForeignKey("shoots.id", ondelete="SET NULL"), nullable=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)  # UTC
    end_time = Column(DateTime, nullable=False)  # UTC
    location = Column(String(500), nullable=True)
    status = Column(String(20), default="confirmed")  # confirmed, tentative, cancelled
    attendees = Column(JSON, nullable=True)
    is_recurring = Column(Boolean, default=False)
    recurring_event_id = Column(String(255), nullable=True)
    etag = Column(String(255), nullable=True)
    last_modified = Column(DateTime, nullable=True)

    sync_status = Column(String(20), default="synced")  # synced, pending, error
    conflict_detected = Column(Boolean, default=False, nullable=False)
    conflict_details = Column(JSON, nullable=True)  # [{eventId, title, startTime, endTime}]

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    shoot = relationship("Shoot")
