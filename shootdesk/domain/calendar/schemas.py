"""Calendar schemas - request bodies for the Google Calendar endpoints"""

from typing import Optional

from pydantic import BaseModel


class SyncRequest(BaseModel):
    forceFullSync: bool = False
    clearCache: bool = False
    calendarId: str = "primary"


class ConflictCheckRequest(BaseModel):
    # Kept as strings so unparsable values answer 400 rather than 422
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    excludeEventId: Optional[str] = None
    calendarId: str = "primary"


class WatchRequest(BaseModel):
    calendarId: str = "primary"
