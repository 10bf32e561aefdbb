"""Client domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


def _strip_or_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    name: Optional[str] = None
    primaryContactName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    socialMedia: Optional[dict] = None
    notes: Optional[str] = None

    @field_validator("name", "primaryContactName", "email", "phone", "website", "notes")
    @classmethod
    def strip_strings(cls, v):
        return _strip_or_none(v)


class ClientUpdate(BaseModel):
    """Schema for updating an existing client"""

    name: Optional[str] = None
    primaryContactName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    socialMedia: Optional[dict] = None
    notes: Optional[str] = None

    @field_validator("name", "primaryContactName", "email", "phone", "website")
    @classmethod
    def strip_strings(cls, v):
        return _strip_or_none(v)


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: int
    name: str
    primaryContactName: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    website: Optional[str]
    socialMedia: Optional[dict]
    notes: Optional[str]
    shootsCount: int = 0
    postIdeasCount: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
