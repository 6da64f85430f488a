"""
Pydantic models used across the backend.

`UserRecord` is the stored shape and is what the repository returns.
The create route does not bind its body to a model: the service applies
its own ordered validation so clients get the exact error messages the
API documents.

Guidelines:
- `birthday` is always timezone-aware UTC once it leaves the service.
- Responses render it the way JavaScript's `Date#toISOString` does
  (`2000-01-01T00:00:00.000Z`) so existing consumers parse it unchanged.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, field_serializer


def to_iso_z(ts: datetime) -> str:
    """UTC ISO-8601 string with millisecond precision and a `Z` suffix."""

    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


class UserRecord(BaseModel):
    """A stored user.

    Fields:
    - `id`: caller-assigned integer, unique across all users.
    - `first_name` / `last_name`: non-empty strings.
    - `birthday`: timezone-aware timestamp.
    """

    id: int
    first_name: str
    last_name: str
    birthday: datetime

    @field_serializer("birthday")
    def _serialize_birthday(self, birthday: datetime) -> str:
        return to_iso_z(birthday)


class UserWithTotal(BaseModel):
    """Response shape of `GET /api/{id}`."""

    first_name: str
    last_name: str
    id: int
    total: int | float


class ExistsOut(BaseModel):
    exists: bool


class RequestOutcome(BaseModel):
    """One record per completed request, handed to the request observer.

    Field names follow the log sink's camelCase schema.
    """

    service: str
    method: str
    url: str
    statusCode: int
    endpoint: str
    timestamp: datetime
    durationMs: int
    message: str
    error: str | None = None

    @field_serializer("timestamp")
    def _serialize_timestamp(self, timestamp: datetime) -> str:
        return to_iso_z(timestamp)
