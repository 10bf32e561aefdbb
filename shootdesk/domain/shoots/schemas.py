"""Shoot domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel

SHOOT_STATUSES = ("scheduled", "active", "completed", "cancelled")


class ShootCreate(BaseModel):
    """Schema for scheduling a new shoot

    Required fields are optional here so that missing values answer 400
    with the same message the UI already handles.
    """

    title: Optional[str] = None
    clientName: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM, UTC
    duration: Optional[int] = None  # minutes
    location: Optional[str] = None
    notes: Optional[str] = None
    forceCreate: bool = False


class ShootUpdate(BaseModel):
    """Schema for editing shoot details"""

    title: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class ShootStatusUpdate(BaseModel):
    status: Optional[str] = None
    action: Optional[str] = None  # start, complete
