"""Tests for Google error mapping, retry with backoff and event conversion"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from shootdesk.services.google_calendar_client import (
    MAX_BACKOFF_SECONDS,
    CalendarError,
    CalendarEventBase,
    GoogleApiError,
    GoogleCalendarClient,
    _raise_for_status,
    backoff_delay,
    base_to_google_event,
    google_event_to_base,
    is_rate_limit_error,
    is_retryable_error,
    map_google_error,
    parse_event_time,
    retry_with_backoff,
)

from conftest import EVENTS_PATH, FakeGoogle, google_error


class TestErrorMapping:
    @pytest.mark.parametrize(
        "status,code",
        [
            (401, "UNAUTHORIZED"),
            (403, "FORBIDDEN"),
            (404, "NOT_FOUND"),
            (409, "CONFLICT"),
            (410, "SYNC_TOKEN_EXPIRED"),
            (429, "RATE_LIMITED"),
        ],
    )
    def test_known_statuses(self, status, code):
        error = map_google_error(GoogleApiError(status, "boom"), "sync")
        assert error.code == code
        assert error.status_code == status

    def test_unknown_status_becomes_generic_error(self):
        error = map_google_error(GoogleApiError(500, "backend exploded"), "sync")
        assert error.code == "CALENDAR_ERROR"
        assert error.status_code == 500
        assert error.message == "Calendar sync failed: backend exploded"

    def test_plain_exception_keeps_message(self):
        error = map_google_error(RuntimeError("socket closed"), "create event")
        assert error.message == "Calendar create event failed: socket closed"

    def test_calendar_error_passes_through(self):
        original = CalendarError("nope", "NOT_CONNECTED", 401)
        assert map_google_error(original, "sync") is original

    def test_rate_limit_detection(self):
        assert is_rate_limit_error(GoogleApiError(429, "slow down"))
        assert is_rate_limit_error(GoogleApiError(403, "quota", reason="userRateLimitExceeded"))
        assert not is_rate_limit_error(GoogleApiError(403, "forbidden", reason="forbidden"))

    def test_retryable_classification(self):
        assert is_retryable_error(GoogleApiError(429, "slow down"))
        assert is_retryable_error(GoogleApiError(503, "unavailable"))
        assert is_retryable_error(httpx.ConnectError("refused"))
        for status in (400, 401, 403, 404, 409, 410, 422):
            assert not is_retryable_error(GoogleApiError(status, "client error"))
        assert not is_retryable_error(ValueError("Expecting value: line 1 column 1"))

    def test_backoff_is_capped(self):
        assert 1.0 <= backoff_delay(0) <= 1.1
        assert 4.0 <= backoff_delay(2) <= 4.4
        assert backoff_delay(20) == MAX_BACKOFF_SECONDS


class TestRaiseForStatus:
    def test_success_does_nothing(self):
        _raise_for_status(httpx.Response(200, json={}))

    def test_api_error_body(self):
        response = httpx.Response(403, json=google_error(403, "Rate Limit Exceeded", "rateLimitExceeded"))
        with pytest.raises(GoogleApiError) as exc:
            _raise_for_status(response)
        assert exc.value.status_code == 403
        assert exc.value.reason == "rateLimitExceeded"
        assert exc.value.message == "Rate Limit Exceeded"

    def test_oauth_error_body(self):
        response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token revoked"})
        with pytest.raises(GoogleApiError) as exc:
            _raise_for_status(response)
        assert exc.value.reason == "invalid_grant"
        assert "invalid_grant" in exc.value.message

    def test_non_json_body(self):
        with pytest.raises(GoogleApiError) as exc:
            _raise_for_status(httpx.Response(502, text="Bad Gateway"))
        assert exc.value.message == "Bad Gateway"


class TestRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_retries_transient_failures_then_succeeds(self):
        calls = []
        delays = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise GoogleApiError(503, "unavailable")
            return "ok"

        async def fake_sleep(delay):
            delays.append(delay)

        assert await retry_with_backoff(operation, sleep=fake_sleep) == "ok"
        assert len(calls) == 3
        assert len(delays) == 2
        assert delays[1] > delays[0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        async def operation():
            calls.append(1)
            raise GoogleApiError(429, "slow down")

        async def fake_sleep(_delay):
            return None

        with pytest.raises(GoogleApiError):
            await retry_with_backoff(operation, max_retries=2, sleep=fake_sleep)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_errors_fail_fast(self):
        calls = []

        async def operation():
            calls.append(1)
            raise GoogleApiError(410, "gone")

        async def fake_sleep(_delay):
            raise AssertionError("should not sleep")

        with pytest.raises(GoogleApiError):
            await retry_with_backoff(operation, sleep=fake_sleep)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_body_is_not_retried(self):
        calls = []

        async def operation():
            calls.append(1)
            raise ValueError("Expecting value: line 1 column 1")

        async def fake_sleep(_delay):
            raise AssertionError("should not sleep")

        with pytest.raises(ValueError):
            await retry_with_backoff(operation, sleep=fake_sleep)
        assert len(calls) == 1


class TestEventConversion:
    def test_timed_event_normalised_to_utc(self):
        assert parse_event_time({"dateTime": "2026-03-01T10:00:00+02:00"}) == datetime(2026, 3, 1, 8, 0)

    def test_all_day_event(self):
        assert parse_event_time({"date": "2026-03-01"}) == datetime(2026, 3, 1, 0, 0)

    def test_missing_time(self):
        assert parse_event_time(None) is None
        assert parse_event_time({}) is None

    def test_google_event_to_base(self):
        base = google_event_to_base(
            {
                "id": "evt-1",
                "start": {"dateTime": "2026-03-01T10:00:00Z"},
                "end": {"dateTime": "2026-03-01T11:00:00Z"},
                "recurringEventId": "series-1",
                "attendees": [{"email": "a@example.com", "responseStatus": "accepted"}, {"displayName": "No mail"}],
            }
        )
        assert base.title == "Untitled Event"
        assert base.is_recurring is True
        assert base.attendees == [{"email": "a@example.com", "displayName": None, "responseStatus": "accepted"}]

    def test_base_to_google_event(self):
        start = datetime(2026, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=1)))
        body = base_to_google_event(
            CalendarEventBase(
                title="📸 Acme",
                start_time=start,
                end_time=start + timedelta(hours=2),
                location="Studio",
                attendees=[{"email": "a@example.com", "displayName": None}],
            )
        )
        assert body["start"] == {"dateTime": "2026-03-01T09:00:00Z", "timeZone": "UTC"}
        assert body["end"] == {"dateTime": "2026-03-01T11:00:00Z", "timeZone": "UTC"}
        assert body["location"] == "Studio"
        assert "description" not in body
        assert body["attendees"] == [{"email": "a@example.com"}]


class TestGoogleCalendarClient:
    @pytest.mark.asyncio
    async def test_incremental_listing_sends_only_sync_token(self):
        google = FakeGoogle().add("GET", EVENTS_PATH, json={"items": [], "nextSyncToken": "t2"})
        client = GoogleCalendarClient("token", transport=google.transport)

        await client.list_events("primary", sync_token="t1", time_min=datetime(2026, 1, 1))

        request = google.requests[0]
        assert request.headers["Authorization"] == "Bearer token"
        assert request.url.params["syncToken"] == "t1"
        assert request.url.params["singleEvents"] == "true"
        assert "timeMin" not in request.url.params

    @pytest.mark.asyncio
    async def test_full_listing_sends_window(self):
        google = FakeGoogle().add("GET", EVENTS_PATH, json={"items": []})
        client = GoogleCalendarClient("token", transport=google.transport)

        await client.list_events("primary", time_min=datetime(2026, 1, 1), time_max=datetime(2026, 1, 15))

        params = google.requests[0].url.params
        assert params["timeMin"] == "2026-01-01T00:00:00Z"
        assert params["timeMax"] == "2026-01-15T00:00:00Z"
        assert "syncToken" not in params

    @pytest.mark.asyncio
    async def test_writes_notify_attendees(self):
        google = FakeGoogle().add("DELETE", f"{EVENTS_PATH}/evt-1", 204)
        client = GoogleCalendarClient("token", transport=google.transport)

        await client.delete_event("primary", "evt-1")

        assert google.requests[0].url.params["sendUpdates"] == "all"

    @pytest.mark.asyncio
    async def test_calendar_list_follows_pages(self):
        path = "/calendar/v3/users/me/calendarList"
        google = (
            FakeGoogle()
            .add("GET", path, json={"items": [{"id": "primary"}], "nextPageToken": "p2"})
            .add("GET", path, json={"items": [{"id": "team@group.calendar.google.com"}]})
        )
        client = GoogleCalendarClient("token", transport=google.transport)

        calendars = await client.list_calendars()

        assert [c["id"] for c in calendars] == ["primary", "team@group.calendar.google.com"]
        assert google.requests[1].url.params["pageToken"] == "p2"
