from datetime import timedelta

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


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), default="user", nullable=False)  # admin, user
    status = Column(String(20), default="active", nullable=False)  # active, inactive, pending
    is_first_login = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True, nullable=False)
    primary_contact_name = Column(String(255), nullable=True)
    primary_contact_email = Column(String(255), nullable=True)
    primary_contact_phone = Column(String(50), nullable=True)
    website = Column(String(500), nullable=True)
    social_media = Column(JSON, nullable=True)  # {"instagram": "@handle", ...}
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    shoots = relationship("Shoot", back_populates="client")
    post_ideas = relationship("PostIdea", back_populates="client")


class PostIdea(Base):
    __tablename__ = "post_ideas"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    platforms = Column(JSON, nullable=False, default=list)  # ["instagram", "tiktok"]
    content_type = Column(String(20), nullable=False)  # photo, video, reel, story
    caption = Column(Text, nullable=True)
    shot_list = Column(JSON, nullable=False, default=list)
    status = Column(String(20), default="planned", nullable=False)  # planned, shot, uploaded
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="post_ideas")
    shoot_links = relationship(
        "ShootPostIdea", back_populates="post_idea", cascade="all, delete-orphan"
    )
    uploaded_files = relationship("UploadedFile", back_populates="post_idea")


class Shoot(Base):
    __tablename__ = "shoots"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    scheduled_at = Column(DateTime, nullable=False, index=True)  # UTC
    duration = Column(Integer, nullable=False)  # minutes
    location = Column(String(500), nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(
        String(20), default="scheduled", nullable=False
    )  # scheduled, active, completed, cancelled
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Google Calendar link
    google_calendar_event_id = Column(String(255), nullable=True, index=True)
    google_calendar_sync_status = Column(String(20), default="pending")  # pending, synced, error
    google_calendar_last_sync = Column(DateTime, nullable=True)
    google_calendar_error = Column(Text, nullable=True)
    google_calendar_html_link = Column(String(1000), nullable=True)
    google_calendar_etag = Column(String(255), nullable=True)

    # Soft delete
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="shoots")
    post_links = relationship("ShootPostIdea", back_populates="shoot", cascade="all, delete-orphan")
    uploaded_files = relationship("UploadedFile", back_populates="shoot")

    @property
    def end_time(self):
        return self.scheduled_at + timedelta(minutes=self.duration or 0)


class ShootPostIdea(Base):
    __tablename__ = "shoot_post_ideas"
    __table_args__ = (UniqueConstraint("shoot_id", "post_idea_id", name="uq_shoot_post_idea"),)

    id = Column(Integer, primary_key=True, index=True)
    shoot_id = Column(Integer, ForeignKey("shoots.id"), nullable=False, index=True)
    post_idea_id = Column(Integer, ForeignKey("post_ideas.id"), nullable=False, index=True)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    shoot = relationship("Shoot", back_populates="post_links")
    post_idea = relationship("PostIdea", back_populates="shoot_links")


class UploadedFile(Base):
    __tablename__ = "uploaded_files"

    id = Column(Integer, primary_key=True, index=True)
    post_idea_id = Column(Integer, ForeignKey("post_ideas.id"), nullable=False, index=True)
    shoot_id = Column(Integer, ForeignKey("shoots.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(1000), nullable=False)  # R2 object key, not a URL
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    uploaded_at = Column(DateTime, server_default=func.now())

    post_idea = relationship("PostIdea", back_populates="uploaded_files")
    shoot = relationship("Shoot", back_populates="uploaded_files")
