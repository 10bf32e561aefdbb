"""Tests for the /shoots endpoints and their Google Calendar side effects"""

import json
from datetime import datetime, timedelta

import pytest

from shootdesk.domain.calendar.repository import CalendarRepository
from shootdesk.models import Shoot, ShootPostIdea, UploadedFile
from shootdesk.services.google_calendar_sync import EXTERNALLY_DELETED_MESSAGE

from conftest import EVENTS_PATH, event_at, google_error, tomorrow_at

EMAIL = "producer@example.com"


def echo_created(event_id):
    """Insert handler answering with the posted body plus Google's fields"""

    def _respond(request):
        body = json.loads(request.content)
        return {
            **body,
            "id": event_id,
            "status": "confirmed",
            "etag": f'"{event_id}-etag"',
            "htmlLink": f"https://calendar.google.com/event?eid={event_id}",
        }

    return _respond


def shoot_payload(**overrides):
    payload = {
        "title": "Spring menu shoot",
        "clientName": "Acme Coffee",
        "date": tomorrow_at(9).strftime("%Y-%m-%d"),
        "time": "09:30",
        "duration": 90,
        "location": "Acme Roastery",
        "notes": "Bring the macro lens",
    }
    payload.update(overrides)
    return payload


def reload_shoot(db, shoot_id):
    db.expire_all()
    return db.query(Shoot).filter(Shoot.id == shoot_id).first()


class TestCreateShoot:
    def test_without_calendar_creates_with_info(self, client, auth_headers, brand):
        response = client.post("/shoots", json=shoot_payload(), headers=auth_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert "Connect Google Calendar" in body["info"]
        assert body["shoot"]["scheduledAt"] == tomorrow_at(9, 30).isoformat() + "Z"
        assert body["shoot"]["endTime"] == tomorrow_at(11).isoformat() + "Z"
        assert body["shoot"]["googleCalendarSyncStatus"] == "pending"
        assert body["shoot"]["client"]["name"] == "Acme Coffee"

    def test_with_calendar_creates_linked_event(self, client, db, auth_headers, brand, connect_calendar, google):
        connect_calendar()
        google.add("POST", EVENTS_PATH, json=echo_created("evt-new"))

        response = client.post("/shoots", json=shoot_payload(), headers=auth_headers)

        body = response.json()
        assert body["message"] == "Shoot created and added to your Google Calendar"
        assert body["shoot"]["googleCalendarEventId"] == "evt-new"
        assert body["shoot"]["googleCalendarSyncStatus"] == "synced"

        sent = json.loads(google.calls("POST", EVENTS_PATH)[0].content)
        assert sent["summary"] == "📸 Spring menu shoot"
        assert sent["description"] == "Content shoot for Acme Coffee\n\nBring the macro lens"
        assert sent["start"]["dateTime"] == tomorrow_at(9, 30).isoformat() + "Z"

        db.expire_all()
        cached = CalendarRepository.get_cached_event(db, EMAIL, "evt-new")
        assert cached.shoot_id == body["shoot"]["id"]

    def test_conflicts_block_creation(self, client, db, auth_headers, brand, connect_calendar, google):
        connect_calendar()
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "busy", title="Dentist", start_time=tomorrow_at(10), end_time=tomorrow_at(11)
        )

        response = client.post("/shoots", json=shoot_payload(), headers=auth_headers)

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is False
        assert body["hasConflicts"] is True
        assert body["message"] == "Cannot schedule shoot - conflicts detected with 1 existing event"
        assert body["conflicts"] == [
            {
                "id": "busy",
                "title": "Dentist",
                "startTime": tomorrow_at(10).isoformat() + "Z",
                "endTime": tomorrow_at(11).isoformat() + "Z",
            }
        ]
        assert body["shootData"]["title"] == "Spring menu shoot"
        assert db.query(Shoot).count() == 0
        assert google.requests == []

    def test_force_create_ignores_conflicts(self, client, db, auth_headers, brand, connect_calendar, google):
        connect_calendar()
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "busy", title="Dentist", start_time=tomorrow_at(10), end_time=tomorrow_at(11)
        )
        google.add("POST", EVENTS_PATH, json=echo_created("evt-forced"))

        response = client.post("/shoots", json=shoot_payload(forceCreate=True), headers=auth_headers)

        assert response.json()["success"] is True
        assert response.json()["shoot"]["googleCalendarEventId"] == "evt-forced"

    def test_touching_event_is_not_a_conflict(self, client, db, auth_headers, brand, connect_calendar, google):
        connect_calendar()
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "before", title="Standup", start_time=tomorrow_at(9), end_time=tomorrow_at(9, 30)
        )
        google.add("POST", EVENTS_PATH, json=echo_created("evt-ok"))

        response = client.post("/shoots", json=shoot_payload(), headers=auth_headers)

        assert response.json()["success"] is True

    def test_calendar_failure_still_creates_shoot(self, client, db, auth_headers, brand, connect_calendar, google):
        connect_calendar()
        google.add("POST", EVENTS_PATH, 403, google_error(403, "Forbidden", "forbidden"))

        response = client.post("/shoots", json=shoot_payload(), headers=auth_headers)

        body = response.json()
        assert body["success"] is True
        assert body["warning"] == "Shoot created but failed to add to Google Calendar"
        shoot = reload_shoot(db, body["shoot"]["id"])
        assert shoot.google_calendar_sync_status == "error"
        assert shoot.google_calendar_error == "Calendar access forbidden - insufficient permissions"
        assert shoot.google_calendar_event_id is None

    @pytest.mark.parametrize(
        "overrides,status,detail",
        [
            ({"location": ""}, 400, "Missing required fields"),
            ({"duration": -30}, 400, "Duration must be a positive number of minutes"),
            ({"clientName": "Nobody"}, 404, "Client not found"),
            ({"time": "25:99"}, 400, "Invalid date or time format"),
        ],
    )
    def test_validation(self, client, auth_headers, brand, overrides, status, detail):
        response = client.post("/shoots", json=shoot_payload(**overrides), headers=auth_headers)

        assert response.status_code == status
        assert response.json()["detail"] == detail


class TestListShoots:
    def test_unified_timeline(self, client, db, auth_headers, make_shoot):
        shoot = make_shoot(start=tomorrow_at(11))
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "meeting", title="Client call", start_time=tomorrow_at(9), end_time=tomorrow_at(10)
        )
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "linked", title="📸 Linked", start_time=tomorrow_at(11), end_time=tomorrow_at(12),
            shoot_id=shoot.id,
        )

        all_events = client.get("/shoots", params={"filter": "all"}, headers=auth_headers).json()
        assert [e["id"] for e in all_events["events"]] == ["calendar-meeting", f"shoot-{shoot.id}", "calendar-linked"]
        assert all_events["shootsCount"] == 1
        assert all_events["calendarEventsCount"] == 2

        calendar_only = client.get("/shoots", params={"filter": "calendar"}, headers=auth_headers).json()
        assert [e["id"] for e in calendar_only["events"]] == ["calendar-meeting"]

        shoots_only = client.get("/shoots", headers=auth_headers).json()
        assert shoots_only["filter"] == "shoots"
        assert [e["type"] for e in shoots_only["events"]] == ["shoot"]

    def test_filters_by_client(self, client, auth_headers, make_shoot):
        make_shoot()

        response = client.get("/shoots", params={"client": "Someone Else"}, headers=auth_headers)

        assert response.json()["events"] == []

    def test_bad_filter(self, client, auth_headers):
        response = client.get("/shoots", params={"filter": "everything"}, headers=auth_headers)
        assert response.status_code == 400

    def test_bad_dates(self, client, auth_headers):
        response = client.get("/shoots", params={"filter": "calendar", "startDate": "soon"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid date format"


class TestShootDetailAndStatus:
    def test_detail_includes_post_ideas_and_shots(self, client, db, auth_headers, make_shoot, make_post):
        shoot = make_shoot()
        post = make_post()
        db.add(ShootPostIdea(shoot_id=shoot.id, post_idea_id=post.id))
        db.commit()

        body = client.get(f"/shoots/{shoot.id}", headers=auth_headers).json()

        assert body["shoot"]["postIdeasCount"] == 1
        idea = body["postIdeas"][0]
        assert idea["title"] == "Latte art reel"
        assert idea["completed"] is False
        assert idea["shots"] == [
            {"id": 0, "text": "Pour close-up", "completed": False, "postIdeaId": post.id},
            {"id": 1, "text": "Finished cup", "completed": False, "postIdeaId": post.id},
        ]

        edited = client.patch(
            f"/posts/{post.id}/shots", json={"shotId": idea["shots"][1]["id"], "text": "Empty cup"}, headers=auth_headers
        )
        assert edited.json()["shotList"] == ["Pour close-up", "Empty cup"]

    def test_unknown_shoot(self, client, auth_headers, user):
        assert client.get("/shoots/999", headers=auth_headers).status_code == 404

    def test_start_and_complete(self, client, db, auth_headers, make_shoot):
        shoot = make_shoot()

        started = client.patch(f"/shoots/{shoot.id}", json={"status": "active", "action": "start"}, headers=auth_headers)
        assert started.json()["message"] == "Shoot status changed to active"
        assert started.json()["shoot"]["startedAt"] is not None

        completed = client.patch(
            f"/shoots/{shoot.id}", json={"status": "completed", "action": "complete"}, headers=auth_headers
        )
        assert completed.json()["shoot"]["completedAt"] is not None

    @pytest.mark.parametrize("body,detail", [({}, "Status is required"), ({"status": "wrapped"}, "Invalid status: wrapped")])
    def test_status_validation(self, client, auth_headers, make_shoot, body, detail):
        shoot = make_shoot()

        response = client.patch(f"/shoots/{shoot.id}", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == detail


class TestUpdateShoot:
    def test_updates_linked_event(self, client, db, auth_headers, make_shoot, connect_calendar, google):
        connect_calendar()
        shoot = make_shoot(google_calendar_event_id="evt-1", google_calendar_sync_status="synced")
        path = f"{EVENTS_PATH}/evt-1"
        google.add("GET", path, json=event_at("evt-1", tomorrow_at(9), summary="📸 Morning latte shoot"))
        google.add("PUT", path, json=lambda request: {**json.loads(request.content), "etag": '"v2"'})

        response = client.put(
            f"/shoots/{shoot.id}", json={"time": "14:00", "title": "Afternoon shoot"}, headers=auth_headers
        )

        body = response.json()
        assert response.status_code == 200
        assert body["shoot"]["scheduledAt"] == tomorrow_at(14).isoformat() + "Z"
        assert "warning" not in body
        sent = json.loads(google.calls("PUT", path)[0].content)
        assert sent["summary"] == "📸 Afternoon shoot"
        assert sent["start"]["dateTime"] == tomorrow_at(14).isoformat() + "Z"
        shoot = reload_shoot(db, shoot.id)
        assert shoot.google_calendar_etag == '"v2"'
        assert shoot.google_calendar_sync_status == "synced"

    def test_externally_deleted_event_is_unlinked(self, client, db, auth_headers, make_shoot, connect_calendar):
        connect_calendar()
        shoot = make_shoot(google_calendar_event_id="evt-gone", google_calendar_sync_status="synced")

        response = client.put(f"/shoots/{shoot.id}", json={"location": "Park"}, headers=auth_headers)

        assert "no longer exists" in response.json()["warning"]
        shoot = reload_shoot(db, shoot.id)
        assert shoot.location == "Park"
        assert shoot.google_calendar_event_id is None
        assert shoot.google_calendar_error == EXTERNALLY_DELETED_MESSAGE

    def test_calendar_failure_is_a_warning(self, client, db, auth_headers, make_shoot, connect_calendar, google):
        connect_calendar()
        shoot = make_shoot(google_calendar_event_id="evt-1")
        google.add("GET", f"{EVENTS_PATH}/evt-1", 403, google_error(403, "Forbidden", "forbidden"))

        response = client.put(f"/shoots/{shoot.id}", json={"notes": "New notes"}, headers=auth_headers)

        assert response.json()["warning"] == "Shoot updated but failed to update Google Calendar"
        assert reload_shoot(db, shoot.id).google_calendar_sync_status == "error"

    def test_rejects_empty_title(self, client, auth_headers, make_shoot):
        shoot = make_shoot()
        response = client.put(f"/shoots/{shoot.id}", json={"title": "  "}, headers=auth_headers)
        assert response.status_code == 400


class TestDeleteShoot:
    def test_deletes_event_and_soft_deletes(self, client, db, auth_headers, make_shoot, connect_calendar, google):
        connect_calendar()
        shoot = make_shoot(google_calendar_event_id="evt-1")
        google.add("DELETE", f"{EVENTS_PATH}/evt-1", 204)

        response = client.delete(f"/shoots/{shoot.id}", headers=auth_headers)

        assert response.json() == {
            "success": True,
            "message": "Shoot deleted successfully",
            "calendarEventDeleted": True,
        }
        shoot = reload_shoot(db, shoot.id)
        assert shoot.deleted_at is not None
        assert shoot.deleted_by == EMAIL
        assert client.get(f"/shoots/{shoot.id}", headers=auth_headers).status_code == 404

    def test_calendar_failure_does_not_block_delete(self, client, db, auth_headers, make_shoot, connect_calendar, google):
        connect_calendar()
        shoot = make_shoot(google_calendar_event_id="evt-1")
        google.add("DELETE", f"{EVENTS_PATH}/evt-1", 403, google_error(403, "Forbidden", "forbidden"))

        response = client.delete(f"/shoots/{shoot.id}", headers=auth_headers)

        assert response.json()["calendarEventDeleted"] is False
        assert reload_shoot(db, shoot.id).deleted_at is not None

    def test_refused_calendar_delete_still_unlinks_cached_event(
        self, client, db, auth_headers, make_shoot, connect_calendar, google
    ):
        connect_calendar()
        shoot = make_shoot(google_calendar_event_id="evt-1")
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "evt-1", title="📸 Shoot", start_time=tomorrow_at(9), end_time=tomorrow_at(10), shoot_id=shoot.id
        )
        CalendarRepository.upsert_sync_token(db, EMAIL, "sync-1")
        google.add("DELETE", f"{EVENTS_PATH}/evt-1", 403, google_error(403, "Forbidden", "forbidden"))
        google.add("GET", EVENTS_PATH, json={"items": [event_at("evt-1", tomorrow_at(9))], "nextSyncToken": "sync-2"})

        client.delete(f"/shoots/{shoot.id}", headers=auth_headers)
        db.expire_all()
        assert CalendarRepository.get_cached_event(db, EMAIL, "evt-1").shoot_id is None

        synced = client.post("/integrations/google-calendar/sync", json={}, headers=auth_headers).json()
        assert synced["success"] is True

        db.expire_all()
        assert CalendarRepository.get_cached_event(db, EMAIL, "evt-1").shoot_id is None
        shoot_events = client.get("/calendar/events", params={"filter": "shoots"}, headers=auth_headers).json()
        assert shoot_events["events"] == []

    def test_orphan_cleanup_drops_deleted_shoot_events(self, client, db, auth_headers, make_shoot):
        shoot = make_shoot(deleted_at=datetime.utcnow())
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "evt-1", title="x", start_time=tomorrow_at(9), end_time=tomorrow_at(10), shoot_id=shoot.id
        )

        response = client.post("/calendar/cleanup", headers=auth_headers)

        assert response.json() == {"success": True, "cleaned": 1}


class TestShootPosts:
    def test_available_posts_excludes_assigned(self, client, db, auth_headers, make_shoot, make_post):
        shoot = make_shoot()
        assigned = make_post("Assigned reel")
        make_post("Behind the scenes", content_type="story", platforms=["tiktok"])
        db.add(ShootPostIdea(shoot_id=shoot.id, post_idea_id=assigned.id))
        db.commit()

        body = client.get(f"/shoots/{shoot.id}/available-posts", headers=auth_headers).json()
        assert [p["title"] for p in body["posts"]] == ["Behind the scenes"]
        assert body["assignedCount"] == 1

        searched = client.get(
            f"/shoots/{shoot.id}/available-posts", params={"search": "tiktok"}, headers=auth_headers
        ).json()
        assert searched["totalCount"] == 1

        filtered = client.get(
            f"/shoots/{shoot.id}/available-posts", params={"status": "uploaded"}, headers=auth_headers
        ).json()
        assert filtered["posts"] == []

    def test_sync_statuses(self, client, db, auth_headers, make_shoot, make_post):
        shoot = make_shoot()
        with_files = make_post("Has footage")
        completed = make_post("Shot already")
        untouched = make_post("Still planned", status="shot")
        for post in (with_files, completed, untouched):
            db.add(ShootPostIdea(shoot_id=shoot.id, post_idea_id=post.id, completed=post is completed))
        db.add(
            UploadedFile(
                post_idea_id=with_files.id, shoot_id=shoot.id, file_name="a.mp4", file_path="k/a.mp4", file_size=10
            )
        )
        db.commit()

        body = client.post(f"/shoots/{shoot.id}/sync-statuses", headers=auth_headers).json()

        statuses = {r["title"]: r["currentStatus"] for r in body["results"]}
        assert statuses == {"Has footage": "uploaded", "Shot already": "shot", "Still planned": "planned"}
        assert body["updatedPosts"] == 3
        assert body["message"] == "Bulk sync completed: 3 posts updated"

    def test_sync_statuses_without_posts(self, client, auth_headers, make_shoot):
        shoot = make_shoot()

        body = client.post(f"/shoots/{shoot.id}/sync-statuses", headers=auth_headers).json()

        assert body["message"] == "No post ideas found for this shoot"
        assert body["totalPosts"] == 0


class TestCalendarEventsView:
    def test_lists_upcoming_cached_events(self, client, db, auth_headers, make_shoot):
        shoot = make_shoot()
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "past", title="Old", start_time=tomorrow_at(9) - timedelta(days=3),
            end_time=tomorrow_at(10) - timedelta(days=3),
        )
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "dentist", title="Dentist", start_time=tomorrow_at(12), end_time=tomorrow_at(12, 45)
        )
        CalendarRepository.upsert_cached_event(
            db, EMAIL, "shoot-evt", title="📸 Shoot", start_time=tomorrow_at(9), end_time=tomorrow_at(10),
            shoot_id=shoot.id,
        )

        body = client.get("/calendar/events", headers=auth_headers).json()
        assert [e["id"] for e in body["events"]] == ["shoot-evt", "dentist"]
        assert body["events"][1]["duration"] == 45
        assert body["events"][0]["isShootEvent"] is True

        shoots_only = client.get("/calendar/events", params={"filter": "shoots"}, headers=auth_headers).json()
        assert [e["id"] for e in shoots_only["events"]] == ["shoot-evt"]

    def test_rejects_unknown_filter(self, client, auth_headers, user):
        response = client.get("/calendar/events", params={"filter": "tasks"}, headers=auth_headers)
        assert response.status_code == 400
