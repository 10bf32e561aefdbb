"""Shoot router - FastAPI endpoints for shoots"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.google_calendar_sync import GoogleCalendarSync, get_calendar_sync
from .schemas import ShootCreate, ShootStatusUpdate, ShootUpdate
from .service import ShootService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shoots", tags=["Shoots"])


def get_shoot_service(
    db: Session = Depends(get_db),
    calendar: GoogleCalendarSync = Depends(get_calendar_sync),
) -> ShootService:
    """Dependency injection for ShootService"""
    return ShootService(db, calendar)


@router.get("")
async def get_shoots(
    client: Optional[str] = Query(None),
    filter: str = Query("shoots"),
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    """Shoots and/or cached calendar events as one sorted timeline"""
    return service.list_events(current_user, client, filter, startDate, endDate)


@router.post("")
async def create_shoot(
    data: ShootCreate,
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
    db: Session = Depends(get_db),
):
    try:
        return await service.create_shoot(current_user, data)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Failed to create shoot: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create shoot") from e


@router.get("/{shoot_id}")
async def get_shoot(
    shoot_id: int,
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    return service.get_shoot_detail(shoot_id)


@router.patch("/{shoot_id}")
async def update_shoot_status(
    shoot_id: int,
    data: ShootStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    return service.update_status(shoot_id, data)


@router.put("/{shoot_id}")
async def update_shoot(
    shoot_id: int,
    data: ShootUpdate,
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    return await service.update_shoot(current_user, shoot_id, data)


@router.delete("/{shoot_id}")
async def delete_shoot(
    shoot_id: int,
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    return await service.delete_shoot(current_user, shoot_id)


@router.get("/{shoot_id}/available-posts")
async def get_available_posts(
    shoot_id: int,
    search: str = Query(""),
    status: str = Query(""),
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    return service.get_available_posts(shoot_id, search, status)


@router.post("/{shoot_id}/sync-statuses")
async def sync_post_statuses(
    shoot_id: int,
    current_user: User = Depends(get_current_user),
    service: ShootService = Depends(get_shoot_service),
):
    return service.sync_post_statuses(shoot_id)
