"""Shoot service - Scheduling, status tracking and the Google Calendar side of shoots"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Shoot, User
from ...services.google_calendar_client import CalendarError, CalendarEventBase
from ...services.google_calendar_sync import GoogleCalendarSync
from ...utils.date_time import duration_minutes, isoformat_utc, parse_client_datetime
from ..calendar.repository import CalendarRepository
from ..posts.repository import PostRepository
from ..posts.schemas import PostIdeaResponse
from .repository import ShootRepository
from .schemas import SHOOT_STATUSES, ShootCreate, ShootStatusUpdate, ShootUpdate

logger = logging.getLogger(__name__)

EVENT_FILTERS = ("shoots", "calendar", "all")
SHOOT_EVENT_PREFIX = "📸 "


def serialize_shoot(shoot: Shoot, post_ideas_count: int = 0) -> dict:
    return {
        "id": shoot.id,
        "title": shoot.title,
        "client": {"id": shoot.client.id, "name": shoot.client.name} if shoot.client else None,
        "scheduledAt": isoformat_utc(shoot.scheduled_at),
        "endTime": isoformat_utc(shoot.end_time),
        "duration": shoot.duration,
        "location": shoot.location,
        "notes": shoot.notes,
        "status": shoot.status,
        "startedAt": isoformat_utc(shoot.started_at),
        "completedAt": isoformat_utc(shoot.completed_at),
        "postIdeasCount": post_ideas_count,
        "googleCalendarEventId": shoot.google_calendar_event_id,
        "googleCalendarSyncStatus": shoot.google_calendar_sync_status,
        "googleCalendarError": shoot.google_calendar_error,
        "googleCalendarHtmlLink": shoot.google_calendar_html_link,
    }


def combine_date_time(date: str, time_of_day: str) -> Optional[datetime]:
    """'YYYY-MM-DD' + 'HH:MM' as naive UTC; None when either part is malformed"""
    return parse_client_datetime(f"{date.strip()}T{time_of_day.strip()}")


def event_description(client_name: str, notes: Optional[str]) -> str:
    return f"Content shoot for {client_name}\n\n{notes or ''}".strip()


class ShootService:
    """Service layer for shoot business logic"""

    def __init__(self, db: Session, calendar: GoogleCalendarSync):
        self.db = db
        self.calendar = calendar
        self.repo = ShootRepository()
        self.posts = PostRepository()
        self.calendar_repo = CalendarRepository()

    def get_shoot(self, shoot_id: int) -> Shoot:
        shoot = self.repo.get_shoot_by_id(self.db, shoot_id)
        if not shoot:
            raise HTTPException(status_code=404, detail="Shoot not found")
        return shoot

    # ========================================================================
    # UNIFIED EVENT LIST
    # ========================================================================

    def list_events(
        self,
        user: User,
        client_name: Optional[str] = None,
        event_filter: str = "shoots",
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> dict:
        """Shoots and cached calendar events merged into one timeline"""
        if event_filter not in EVENT_FILTERS:
            raise HTTPException(status_code=400, detail="filter must be one of: shoots, calendar, all")

        shoots: list[Shoot] = []
        if event_filter in ("shoots", "all"):
            if client_name and client_name != "All Clients":
                client = self.repo.get_client_by_name(self.db, client_name)
                shoots = self.repo.get_shoots(self.db, client.id) if client else []
            else:
                shoots = self.repo.get_shoots(self.db)

        calendar_events = []
        if event_filter in ("calendar", "all"):
            today = datetime.combine(datetime.utcnow().date(), time.min)
            start = parse_client_datetime(start_date) if start_date else today
            end = parse_client_datetime(end_date) if end_date else today + relativedelta(months=3)
            if start is None or end is None:
                raise HTTPException(status_code=400, detail="Invalid date format")

            calendar_events = [
                event
                for event in self.calendar_repo.get_cached_events(self.db, user.email, "primary")
                if start <= event.start_time <= end
                and not (event_filter == "calendar" and event.shoot_id is not None)
            ]

        counts = self.repo.get_post_idea_counts(self.db, [s.id for s in shoots])
        timeline = [
            (
                shoot.scheduled_at,
                {
                    "type": "shoot",
                    "id": f"shoot-{shoot.id}",
                    "title": shoot.title,
                    "startTime": isoformat_utc(shoot.scheduled_at),
                    "endTime": isoformat_utc(shoot.end_time),
                    "duration": shoot.duration,
                    "location": shoot.location,
                    "client": shoot.client.name if shoot.client else None,
                    "shootStatus": shoot.status,
                    "postIdeasCount": counts.get(shoot.id, 0),
                    "shootId": shoot.id,
                    "notes": shoot.notes,
                },
            )
            for shoot in shoots
        ]
        timeline += [
            (
                event.start_time,
                {
                    "type": "calendar",
                    "id": f"calendar-{event.google_event_id}",
                    "title": event.title,
                    "startTime": isoformat_utc(event.start_time),
                    "endTime": isoformat_utc(event.end_time),
                    "duration": duration_minutes(event.start_time, event.end_time),
                    "location": event.location,
                    "description": event.description,
                    "status": event.status,
                    "attendees": event.attendees or [],
                    "isRecurring": bool(event.is_recurring),
                    "conflictDetected": bool(event.conflict_detected),
                    "syncStatus": event.sync_status,
                    "isShootEvent": event.shoot_id is not None,
                    "shootId": event.shoot_id,
                    "lastModified": isoformat_utc(event.last_modified),
                },
            )
            for event in calendar_events
        ]
        timeline.sort(key=lambda item: item[0])

        return {
            "success": True,
            "events": [item for _, item in timeline],
            "totalCount": len(timeline),
            "filter": event_filter,
            "shootsCount": len(shoots),
            "calendarEventsCount": len(calendar_events),
        }

    # ========================================================================
    # CORE CRUD OPERATIONS
    # ========================================================================

    async def create_shoot(self, user: User, data: ShootCreate) -> dict:
        """
        Schedule a shoot.

        With Google Calendar connected, overlapping cached events block the
        shoot unless forceCreate is set; otherwise a calendar event is created
        first. A calendar failure is recorded on the shoot and never prevents
        the shoot itself from being created.
        """
        if not all([data.title, data.clientName, data.date, data.time, data.duration, data.location]):
            raise HTTPException(status_code=400, detail="Missing required fields")
        if data.duration <= 0:
            raise HTTPException(status_code=400, detail="Duration must be a positive number of minutes")

        client = self.repo.get_client_by_name(self.db, data.clientName)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        scheduled_at = combine_date_time(data.date, data.time)
        if scheduled_at is None:
            raise HTTPException(status_code=400, detail="Invalid date or time format")
        end_time = scheduled_at + timedelta(minutes=data.duration)

        connected = self.calendar.is_connected(user.email)
        created_event = None
        sync_status = "pending"
        calendar_error = None

        if connected:
            if not data.forceCreate:
                info = self.calendar.check_conflicts_for_shoot(user.email, scheduled_at, end_time)
                if info.conflicting_events:
                    count = len(info.conflicting_events)
                    logger.info(f"⚠️ Shoot '{data.title}' blocked by {count} calendar conflict(s)")
                    return {
                        "success": False,
                        "hasConflicts": True,
                        "conflicts": [
                            {
                                "id": event.id,
                                "title": event.title,
                                "startTime": isoformat_utc(event.start_time),
                                "endTime": isoformat_utc(event.end_time),
                            }
                            for event in info.conflicting_events
                        ],
                        "message": (
                            f"Cannot schedule shoot - conflicts detected with {count} "
                            f"existing event{'s' if count > 1 else ''}"
                        ),
                        "shootData": {
                            "title": data.title,
                            "clientName": data.clientName,
                            "date": data.date,
                            "time": data.time,
                            "duration": data.duration,
                            "location": data.location,
                            "notes": data.notes,
                        },
                    }

            try:
                created_event = await self.calendar.create_event(
                    user.email,
                    CalendarEventBase(
                        title=f"{SHOOT_EVENT_PREFIX}{data.title}",
                        description=event_description(client.name, data.notes),
                        start_time=scheduled_at,
                        end_time=end_time,
                        location=data.location,
                    ),
                )
                sync_status = "synced"
            except CalendarError as e:
                logger.error(f"❌ Failed to add shoot '{data.title}' to Google Calendar: {e.message}")
                calendar_error = e.message
                sync_status = "error"

        shoot = self.repo.create_shoot(
            self.db,
            title=data.title,
            client_id=client.id,
            scheduled_at=scheduled_at,
            duration=data.duration,
            location=data.location,
            notes=data.notes or None,
            status="scheduled",
            google_calendar_event_id=created_event["id"] if created_event else None,
            google_calendar_sync_status=sync_status,
            google_calendar_last_sync=datetime.utcnow() if connected else None,
            google_calendar_error=calendar_error,
            google_calendar_html_link=created_event.get("htmlLink") if created_event else None,
            google_calendar_etag=created_event.get("etag") if created_event else None,
        )
        logger.info(f"✅ Shoot {shoot.id} created for client {client.name}")

        if created_event:
            linked = self.calendar_repo.link_event_to_shoot(self.db, user.email, created_event["id"], shoot.id)
            if not linked:
                logger.warning(f"⚠️ Calendar event {created_event['id']} not in cache, shoot {shoot.id} unlinked")

        response = {"success": True, "shoot": serialize_shoot(shoot)}
        if created_event:
            response["message"] = "Shoot created and added to your Google Calendar"
        elif connected and calendar_error:
            response["warning"] = "Shoot created but failed to add to Google Calendar"
        elif not connected:
            response["info"] = (
                "Shoot created. Connect Google Calendar to automatically add shoots to your calendar."
            )
        return response

    def get_shoot_detail(self, shoot_id: int) -> dict:
        """A shoot with its assigned post ideas and their shot lists"""
        shoot = self.get_shoot(shoot_id)
        links = self.repo.get_post_links(self.db, shoot.id)

        post_ideas = []
        for link in links:
            post = link.post_idea
            post_ideas.append(
                {
                    **PostIdeaResponse.from_model(post).model_dump(exclude={"client"}),
                    "completed": link.completed,
                    "completedAt": isoformat_utc(link.completed_at),
                    "shots": [
                        {
                            "id": index,
                            "text": text,
                            "completed": link.completed,
                            "postIdeaId": post.id,
                        }
                        for index, text in enumerate(post.shot_list or [])
                    ],
                }
            )

        return {
            "success": True,
            "shoot": serialize_shoot(shoot, len(links)),
            "postIdeas": post_ideas,
        }

    def update_status(self, shoot_id: int, data: ShootStatusUpdate) -> dict:
        if not data.status:
            raise HTTPException(status_code=400, detail="Status is required")
        if data.status not in SHOOT_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status: {data.status}")

        shoot = self.get_shoot(shoot_id)
        updates = {"status": data.status}
        if data.status == "active" and data.action == "start":
            updates["started_at"] = datetime.utcnow()
        elif data.status == "completed" and data.action == "complete":
            updates["completed_at"] = datetime.utcnow()

        shoot = self.repo.update_shoot(self.db, shoot, **updates)
        logger.info(f"🔄 Shoot {shoot.id} status -> {shoot.status}")
        return {
            "success": True,
            "message": f"Shoot status changed to {data.status}",
            "shoot": {
                "id": shoot.id,
                "title": shoot.title,
                "status": shoot.status,
                "startedAt": isoformat_utc(shoot.started_at),
                "completedAt": isoformat_utc(shoot.completed_at),
            },
        }

    async def update_shoot(self, user: User, shoot_id: int, data: ShootUpdate) -> dict:
        """Edit shoot details and push them to the linked calendar event"""
        shoot = self.get_shoot(shoot_id)

        updates = {}
        if data.title is not None:
            if not data.title.strip():
                raise HTTPException(status_code=400, detail="Title cannot be empty")
            updates["title"] = data.title.strip()
        if data.location is not None:
            updates["location"] = data.location
        if data.notes is not None:
            updates["notes"] = data.notes or None
        if data.duration is not None:
            if data.duration <= 0:
                raise HTTPException(status_code=400, detail="Duration must be a positive number of minutes")
            updates["duration"] = data.duration
        if data.date is not None or data.time is not None:
            date = data.date or shoot.scheduled_at.strftime("%Y-%m-%d")
            time_of_day = data.time or shoot.scheduled_at.strftime("%H:%M")
            scheduled_at = combine_date_time(date, time_of_day)
            if scheduled_at is None:
                raise HTTPException(status_code=400, detail="Invalid date or time format")
            updates["scheduled_at"] = scheduled_at

        shoot = self.repo.update_shoot(self.db, shoot, **updates)
        response = {"success": True, "message": "Shoot updated successfully"}

        event_id = shoot.google_calendar_event_id
        if event_id and self.calendar.is_connected(user.email):
            try:
                updated_event = await self.calendar.update_event(
                    user.email,
                    event_id,
                    {
                        "title": f"{SHOOT_EVENT_PREFIX}{shoot.title}",
                        "description": event_description(shoot.client.name, shoot.notes),
                        "location": shoot.location,
                        "start_time": shoot.scheduled_at,
                        "end_time": shoot.end_time,
                    },
                )
                if updated_event is None:
                    await self.calendar.handle_externally_deleted_event(user.email, event_id)
                    response["warning"] = "Calendar event no longer exists and was unlinked from this shoot"
                else:
                    shoot = self.repo.update_shoot(
                        self.db,
                        shoot,
                        google_calendar_sync_status="synced",
                        google_calendar_last_sync=datetime.utcnow(),
                        google_calendar_error=None,
                        google_calendar_etag=updated_event.get("etag"),
                        google_calendar_html_link=updated_event.get("htmlLink") or shoot.google_calendar_html_link,
                    )
            except CalendarError as e:
                logger.error(f"❌ Failed to update calendar event for shoot {shoot.id}: {e.message}")
                shoot = self.repo.update_shoot(
                    self.db,
                    shoot,
                    google_calendar_sync_status="error",
                    google_calendar_last_sync=datetime.utcnow(),
                    google_calendar_error=e.message,
                )
                response["warning"] = "Shoot updated but failed to update Google Calendar"

        self.db.refresh(shoot)
        response["shoot"] = serialize_shoot(shoot, len(shoot.post_links))
        return response

    async def delete_shoot(self, user: User, shoot_id: int) -> dict:
        """Soft delete; the calendar event is removed best-effort"""
        shoot = self.get_shoot(shoot_id)

        calendar_deleted = None
        event_id = shoot.google_calendar_event_id
        if event_id and self.calendar.is_connected(user.email):
            calendar_deleted = await self.calendar.delete_calendar_event(user.email, event_id)
            if not calendar_deleted:
                logger.warning(f"⚠️ Calendar event {event_id} kept after deleting shoot {shoot.id}")

        self.repo.soft_delete_shoot(self.db, shoot, deleted_by=user.email)
        unlinked = self.calendar_repo.unlink_shoot_events(self.db, shoot.id)
        if unlinked:
            logger.info(f"🔗 Unlinked {unlinked} cached event(s) from deleted shoot {shoot.id}")
        logger.info(f"🗑️ Shoot {shoot_id} soft-deleted by {user.email}")
        return {
            "success": True,
            "message": "Shoot deleted successfully",
            "calendarEventDeleted": calendar_deleted,
        }

    # ========================================================================
    # POST IDEAS
    # ========================================================================

    def get_available_posts(self, shoot_id: int, search: str = "", status: str = "") -> dict:
        """Post ideas of the shoot's client that are not assigned to it yet"""
        shoot = self.get_shoot(shoot_id)
        assigned = set(self.repo.get_assigned_post_idea_ids(self.db, shoot.id))
        posts = [p for p in self.repo.get_client_post_ideas(self.db, shoot.client_id) if p.id not in assigned]

        if search:
            needle = search.lower()
            posts = [
                p
                for p in posts
                if needle in p.title.lower()
                or needle in (p.caption or "").lower()
                or any(needle in platform.lower() for platform in p.platforms or [])
                or needle in p.content_type.lower()
            ]
        if status and status != "all":
            posts = [p for p in posts if p.status == status]

        return {
            "success": True,
            "posts": [PostIdeaResponse.from_model(p) for p in posts],
            "totalCount": len(posts),
            "assignedCount": len(assigned),
            "shoot": {
                "id": shoot.id,
                "title": shoot.title,
                "client": {"id": shoot.client.id, "name": shoot.client.name},
            },
        }

    def sync_post_statuses(self, shoot_id: int) -> dict:
        """Re-derive the status of every post idea in a shoot from its uploads"""
        shoot = self.get_shoot(shoot_id)
        links = self.repo.get_post_links(self.db, shoot.id)

        if not links:
            return {
                "success": True,
                "message": "No post ideas found for this shoot",
                "shootId": shoot.id,
                "totalPosts": 0,
                "syncedPosts": 0,
                "updatedPosts": 0,
                "results": [],
            }

        results = []
        updated = 0
        for link in links:
            post = link.post_idea
            previous_status = post.status
            try:
                result = self.posts.sync_status_with_uploads(self.db, post)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Status sync failed for post idea {post.id}: {e}")
                results.append(
                    {
                        "postId": post.id,
                        "title": post.title,
                        "previousStatus": previous_status,
                        "currentStatus": previous_status,
                        "hasFiles": False,
                        "updated": False,
                        "error": "Sync failed",
                    }
                )
                continue

            updated += int(result["updated"])
            results.append(
                {
                    "postId": post.id,
                    "title": post.title,
                    "previousStatus": result["previousStatus"],
                    "currentStatus": result["currentStatus"],
                    "hasFiles": result["hasFiles"],
                    "updated": result["updated"],
                }
            )

        logger.info(f"✅ Bulk status sync for shoot {shoot.id}: {updated} updated")
        return {
            "success": True,
            "message": f"Bulk sync completed: {updated} posts updated",
            "shootId": shoot.id,
            "totalPosts": len(links),
            "syncedPosts": len(results),
            "updatedPosts": updated,
            "results": results,
        }
