"""
Google Calendar API client
Thin httpx wrapper over the Calendar v3 REST API and the OAuth endpoints,
plus error mapping and retry with exponential backoff
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import quote, urlencode

import httpx
from dateutil import parser as date_parser

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REDIRECT_URI

logger = logging.getLogger(__name__)

T = TypeVar("T")

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]

MAX_RESULTS_PER_PAGE = 250
MAX_BACKOFF_SECONDS = 60.0
RATE_LIMIT_MARKERS = ("rateLimitExceeded", "userRateLimitExceeded", "Rate Limit")


class GoogleApiError(Exception):
    """Non-2xx response from a Google endpoint"""

    def __init__(self, status_code: int, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.reason = reason


class CalendarError(Exception):
    """Calendar failure with a stable error code for callers"""

    def __init__(
        self,
        message: str,
        code: str = "CALENDAR_ERROR",
        status_code: int = 500,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.original_error = original_error


# Status code -> (code, message)
GOOGLE_ERROR_MAP = {
    401: ("UNAUTHORIZED", "Calendar access unauthorized - please reconnect"),
    403: ("FORBIDDEN", "Calendar access forbidden - insufficient permissions"),
    404: ("NOT_FOUND", "Calendar or event not found"),
    409: ("CONFLICT", "Calendar conflict detected"),
    410: ("SYNC_TOKEN_EXPIRED", "Sync token expired - full resync required"),
    429: ("RATE_LIMITED", "Calendar API rate limit exceeded"),
}


def get_status_code(error: BaseException) -> Optional[int]:
    if isinstance(error, (GoogleApiError, CalendarError)):
        return error.status_code
    return None


def map_google_error(error: BaseException, operation: str) -> CalendarError:
    """Translate a low-level failure into a CalendarError"""
    if isinstance(error, CalendarError):
        return error

    status_code = get_status_code(error)
    if status_code in GOOGLE_ERROR_MAP:
        code, message = GOOGLE_ERROR_MAP[status_code]
        return CalendarError(message, code, status_code, error)

    detail = getattr(error, "message", None) or str(error) or "Unknown error"
    return CalendarError(f"Calendar {operation} failed: {detail}", "CALENDAR_ERROR", 500, error)


def is_rate_limit_error(error: BaseException) -> bool:
    status_code = get_status_code(error)
    if status_code == 429:
        return True
    if status_code == 403:
        text = f"{getattr(error, 'reason', '') or ''} {getattr(error, 'message', '') or ''}"
        return any(marker in text for marker in RATE_LIMIT_MARKERS)
    return False


def is_retryable_error(error: BaseException) -> bool:
    """Only rate limits, Google 5xx and transport failures are retried"""
    if is_rate_limit_error(error):
        return True
    status_code = get_status_code(error)
    if status_code is None:
        return isinstance(error, httpx.TransportError)
    return status_code >= 500


def backoff_delay(attempt: int, base_delay: float = 1.0) -> float:
    exponential = base_delay * (2**attempt)
    jitter = random.random() * 0.1 * exponential  # noqa: S311 - not security sensitive
    return min(exponential + jitter, MAX_BACKOFF_SECONDS)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 5,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run an async operation, retrying rate limits and transient failures.

    Makes up to max_retries + 1 attempts; the delay before retry n is
    base_delay * 2**n plus up to 10% jitter, capped at one minute.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not is_retryable_error(e) or attempt >= max_retries:
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                f"⏳ Calendar request failed ({e}), retrying in {delay:.1f}s "
                f"(attempt {attempt + 1}/{max_retries})"
            )
            await sleep(delay)
            attempt += 1


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return

    message = response.text or f"HTTP {response.status_code}"
    reason = None
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message") or message
            errors = error.get("errors") or []
            if errors and isinstance(errors[0], dict):
                reason = errors[0].get("reason")
        elif isinstance(error, str):
            # OAuth endpoints answer {"error": "invalid_grant", "error_description": "..."}
            reason = error
            message = f"{error}: {body.get('error_description', '')}".strip(": ")

    raise GoogleApiError(response.status_code, message, reason)


# ============================================================================
# DATE HELPERS
# ============================================================================


def to_utc_naive(value: datetime) -> datetime:
    """Normalise to naive UTC (the storage convention)"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_rfc3339(value: datetime) -> str:
    return to_utc_naive(value).replace(microsecond=0).isoformat() + "Z"


def parse_event_time(value: Optional[dict]) -> Optional[datetime]:
    """Read a Google {dateTime} or all-day {date} value as naive UTC"""
    if not value:
        return None
    if value.get("dateTime"):
        return to_utc_naive(date_parser.isoparse(value["dateTime"]))
    if value.get("date"):
        day = date.fromisoformat(value["date"])
        return datetime.combine(day, time.min)
    return None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_utc_naive(date_parser.isoparse(value))
    except ValueError:
        return None


# ============================================================================
# EVENT CONVERSION
# ============================================================================


@dataclass
class CalendarEventBase:
    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    attendees: list = field(default_factory=list)
    is_recurring: bool = False
    id: Optional[str] = None


def google_event_to_base(event: dict) -> CalendarEventBase:
    return CalendarEventBase(
        id=event.get("id"),
        title=event.get("summary") or "Untitled Event",
        description=event.get("description"),
        start_time=parse_event_time(event.get("start")),
        end_time=parse_event_time(event.get("end")),
        location=event.get("location"),
        attendees=[
            {
                "email": attendee.get("email"),
                "displayName": attendee.get("displayName"),
                "responseStatus": attendee.get("responseStatus"),
            }
            for attendee in event.get("attendees") or []
            if attendee.get("email")
        ],
        is_recurring=bool(event.get("recurringEventId")),
    )


def base_to_google_event(event: CalendarEventBase) -> dict:
    body = {
        "summary": event.title,
        "start": {"dateTime": format_rfc3339(event.start_time), "timeZone": "UTC"},
        "end": {"dateTime": format_rfc3339(event.end_time), "timeZone": "UTC"},
    }
    if event.description is not None:
        body["description"] = event.description
    if event.location is not None:
        body["location"] = event.location
    if event.attendees:
        body["attendees"] = [
            {k: v for k, v in attendee.items() if v is not None} for attendee in event.attendees
        ]
    return body


def partial_to_google_event(updates: dict) -> dict:
    """Google body fragment for a partial update keyed like CalendarEventBase"""
    body = {}
    if updates.get("title") is not None:
        body["summary"] = updates["title"]
    if updates.get("description") is not None:
        body["description"] = updates["description"]
    if updates.get("location") is not None:
        body["location"] = updates["location"]
    if updates.get("start_time") is not None:
        body["start"] = {"dateTime": format_rfc3339(updates["start_time"]), "timeZone": "UTC"}
    if updates.get("end_time") is not None:
        body["end"] = {"dateTime": format_rfc3339(updates["end_time"]), "timeZone": "UTC"}
    return body


# ============================================================================
# CALENDAR API
# ============================================================================


class GoogleCalendarClient:
    """Calendar v3 calls for one access token"""

    def __init__(
        self,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.access_token = access_token
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GOOGLE_CALENDAR_API,
            headers={"Authorization": f"Bearer {self.access_token}"},
            transport=self.transport,
            timeout=self.timeout,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Optional[dict]:
        async with self._client() as client:
            response = await client.request(method, path, **kwargs)
        _raise_for_status(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _events_path(calendar_id: str) -> str:
        return f"/calendars/{quote(calendar_id, safe='')}/events"

    async def list_events(
        self,
        calendar_id: str = "primary",
        sync_token: Optional[str] = None,
        page_token: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> dict:
        params = {"maxResults": MAX_RESULTS_PER_PAGE, "singleEvents": "true"}
        if sync_token:
            # Google rejects timeMin/timeMax alongside a syncToken
            params["syncToken"] = sync_token
        else:
            if time_min:
                params["timeMin"] = format_rfc3339(time_min)
            if time_max:
                params["timeMax"] = format_rfc3339(time_max)
        if page_token:
            params["pageToken"] = page_token

        return await self._request("GET", self._events_path(calendar_id), params=params) or {}

    async def get_event(self, calendar_id: str, event_id: str) -> dict:
        path = f"{self._events_path(calendar_id)}/{quote(event_id, safe='')}"
        return await self._request("GET", path) or {}

    async def insert_event(self, calendar_id: str, body: dict) -> dict:
        return (
            await self._request(
                "POST", self._events_path(calendar_id), params={"sendUpdates": "all"}, json=body
            )
            or {}
        )

    async def update_event(self, calendar_id: str, event_id: str, body: dict) -> dict:
        path = f"{self._events_path(calendar_id)}/{quote(event_id, safe='')}"
        return await self._request("PUT", path, params={"sendUpdates": "all"}, json=body) or {}

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        path = f"{self._events_path(calendar_id)}/{quote(event_id, safe='')}"
        await self._request("DELETE", path, params={"sendUpdates": "all"})

    async def watch_events(
        self,
        calendar_id: str,
        channel_id: str,
        token: str,
        address: str,
        ttl_seconds: Optional[int] = None,
    ) -> dict:
        body = {"id": channel_id, "type": "web_hook", "address": address, "token": token}
        if ttl_seconds:
            body["params"] = {"ttl": str(ttl_seconds)}
        return await self._request("POST", f"{self._events_path(calendar_id)}/watch", json=body) or {}

    async def stop_channel(self, channel_id: str, resource_id: str) -> None:
        await self._request("POST", "/channels/stop", json={"id": channel_id, "resourceId": resource_id})

    async def list_calendars(self) -> list[dict]:
        calendars = []
        page_token = None
        while True:
            params = {"pageToken": page_token} if page_token else None
            data = await self._request("GET", "/users/me/calendarList", params=params) or {}
            calendars.extend(data.get("items") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                return calendars


# ============================================================================
# OAUTH
# ============================================================================


def build_authorization_url(state: str) -> str:
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(
    code: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> dict:
    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )
    _raise_for_status(response)
    return response.json()


async def refresh_access_token(
    refresh_token: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> dict:
    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
    _raise_for_status(response)
    return response.json()


async def fetch_user_email(
    access_token: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Optional[str]:
    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        response = await client.get(
            GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )
    if response.status_code != 200:
        logger.error(f"❌ Failed to get Google user info: {response.text}")
        return None
    return response.json().get("email")


async def revoke_token(token: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bool:
    async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
        response = await client.post(GOOGLE_REVOKE_URL, params={"token": token})
    return response.status_code == 200
