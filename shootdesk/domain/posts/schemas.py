"""Post idea domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

CONTENT_TYPES = ("photo", "video", "reel", "story")
POST_STATUSES = ("planned", "shot", "uploaded")


class PostIdeaCreate(BaseModel):
    title: Optional[str] = None
    clientName: Optional[str] = None
    platforms: Optional[list[str]] = None
    contentType: Optional[str] = None
    caption: Optional[str] = None
    shotList: Optional[list[str]] = None
    notes: Optional[str] = None


class PostIdeaUpdate(BaseModel):
    title: Optional[str] = None
    platforms: Optional[list[str]] = None
    contentType: Optional[str] = None
    caption: Optional[str] = None
    shotList: Optional[list[str]] = None
    notes: Optional[str] = None
    status: Optional[str] = None


class ShootAssignment(BaseModel):
    shootId: Optional[int] = None


class ShotCreate(BaseModel):
    text: Optional[str] = None
    notes: Optional[str] = None


class ShotUpdate(BaseModel):
    shotId: Optional[int] = None
    text: Optional[str] = None
    notes: Optional[str] = None


class CompletionUpdate(BaseModel):
    shootId: Optional[int] = None
    completed: bool = True


class ClientSummary(BaseModel):
    id: int
    name: str


class PostIdeaResponse(BaseModel):
    """Schema for post idea response"""

    id: int
    title: str
    platforms: list[str]
    contentType: str
    caption: Optional[str]
    shotList: list[str]
    status: str
    notes: Optional[str]
    client: Optional[ClientSummary] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, post) -> "PostIdeaResponse":
        return cls(
            id=post.id,
            title=post.title,
            platforms=post.platforms or [],
            contentType=post.content_type,
            caption=post.caption,
            shotList=post.shot_list or [],
            status=post.status,
            notes=post.notes,
            client=ClientSummary(id=post.client.id, name=post.client.name) if post.client else None,
            createdAt=post.created_at,
            updatedAt=post.updated_at,
        )
