"""
Service / facade layer for users.

This module implements validation and orchestration. It is free of SQL
and HTTP: it calls `UserRepo` for persistence and `CostServiceClient`
for the total-cost lookup, and reports every failure as an `ApiError`
subclass that the route layer renders.

Key responsibilities:
- validate create payloads in a fixed order (first failure wins)
- parse path ids
- map repository and cost-service failures onto the error taxonomy
"""

import math
from datetime import date, datetime, timezone
from typing import Any, List

import structlog
from starlette.concurrency import run_in_threadpool

from cost_client import CostServiceClient, CostServiceError
from errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
    WriteRejectedError,
)
from models import UserRecord, UserWithTotal
from repo_users import DuplicateKeyError, UserRepo

log = structlog.get_logger(__name__)

MISSING_FIELDS = "Missing required fields: id, first_name, last_name, birthday"


class _NotANumber(Exception):
    pass


class _NotAnInteger(Exception):
    pass


def _parse_int(value: Any) -> int:
    """Parse a JSON number or numeric string into an int.

    Raises `_NotANumber` for anything non-numeric (booleans, blank
    strings, NaN, infinities) and `_NotAnInteger` for fractional values.
    """

    if isinstance(value, bool):
        raise _NotANumber()
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise _NotANumber() from None
    if not isinstance(value, float) or not math.isfinite(value):
        raise _NotANumber()
    if not value.is_integer():
        raise _NotAnInteger()
    return int(value)


def parse_user_id(raw: Any) -> int:
    """Parse an id taken from a URL path.

    Non-numeric input fails with "User id must be a number". Numeric but
    fractional input (`1.5`) also fails, with "User id must be an
    integer", instead of being looked up: stored ids are integers.
    """

    try:
        return _parse_int(raw)
    except _NotANumber:
        raise ValidationError("User id must be a number") from None
    except _NotAnInteger:
        raise ValidationError("User id must be an integer") from None


def parse_birthday(raw: Any) -> datetime | None:
    """Return a UTC datetime, or None when `raw` is not a valid date.

    Accepts `YYYY-MM-DD` (midnight UTC), ISO-8601 date-times (naive values
    are taken as UTC) and numbers of milliseconds since the epoch.
    """

    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    try:
        if len(text) == 10:
            d = date.fromisoformat(text)
            return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def validate_new_user(payload: Any) -> UserRecord:
    """Apply the create-user checks in order and build the record.

    Raises `ValidationError` naming the first offending field.
    """

    if not isinstance(payload, dict):
        raise ValidationError(MISSING_FIELDS)

    raw_id = payload.get("id")
    first_name = payload.get("first_name")
    last_name = payload.get("last_name")
    birthday = payload.get("birthday")

    # Falsy names/birthday count as missing; id only when absent or null.
    if raw_id is None or not first_name or not last_name or not birthday:
        raise ValidationError(MISSING_FIELDS)

    try:
        user_id = _parse_int(raw_id)
    except _NotANumber:
        raise ValidationError("id must be a number") from None
    except _NotAnInteger:
        raise ValidationError("id must be an integer") from None

    parsed_birthday = parse_birthday(birthday)
    if parsed_birthday is None:
        raise ValidationError("birthday must be a valid date")

    return UserRecord(
        id=user_id,
        first_name=str(first_name),
        last_name=str(last_name),
        birthday=parsed_birthday,
    )


class UserService:
    """Validation + orchestration over `UserRepo` and `CostServiceClient`.

    Example usage:
        svc = UserService(UserRepo(), CostServiceClient())
        svc.create_user({"id": 10, "first_name": "Test", ...})
    """

    def __init__(self, repo: UserRepo, cost_client: CostServiceClient):
        self.repo = repo
        self.cost_client = cost_client

    def list_users(self) -> List[UserRecord]:
        try:
            return self.repo.find()
        except Exception as e:
            log.error("list_users_failed", error=str(e))
            raise DependencyError(str(e)) from e

    def create_user(self, payload: Any) -> UserRecord:
        """Validate and persist one user.

        The `exists` check is a fast path; the insert's unique constraint
        is what actually rejects a duplicate under concurrency.

        Raises:
        - `ValidationError` for bad input
        - `ConflictError` when the id is taken
        - `WriteRejectedError` for any other repository failure
        """

        user = validate_new_user(payload)

        try:
            if self.repo.exists(user.id):
                raise ConflictError("User already exists")
            saved = self.repo.insert(user)
        except DuplicateKeyError:
            log.info("create_user_lost_race", user_id=user.id)
            raise ConflictError("User with this id already exists") from None
        except ConflictError:
            raise
        except Exception as e:
            log.error("create_user_failed", user_id=user.id, error=str(e))
            raise WriteRejectedError(str(e)) from e

        log.info("user_created", user_id=saved.id)
        return saved

    def user_exists(self, raw_id: Any) -> bool:
        user_id = parse_user_id(raw_id)
        try:
            return self.repo.exists(user_id)
        except Exception as e:
            log.error("user_exists_failed", user_id=user_id, error=str(e))
            raise DependencyError(str(e)) from e

    async def get_user_with_total(self, raw_id: Any) -> UserWithTotal:
        """Look the user up, then ask the cost service for their total.

        The two calls run in sequence. A lookup miss raises `NotFoundError`
        without contacting the cost service; any failure after that is a
        `DependencyError`, never a partial result.
        """

        user_id = parse_user_id(raw_id)

        try:
            user = await run_in_threadpool(self.repo.find_one, user_id)
        except Exception as e:
            log.error("find_user_failed", user_id=user_id, error=str(e))
            raise DependencyError(str(e)) from e
        if user is None:
            raise NotFoundError("User not found")

        try:
            total = await self.cost_client.get_total(user_id)
        except CostServiceError as e:
            log.error("cost_lookup_failed", user_id=user_id, error=str(e))
            raise DependencyError(str(e)) from e

        return UserWithTotal(
            first_name=user.first_name,
            last_name=user.last_name,
            id=user.id,
            total=total,
        )

    def health_check(self) -> None:
        self.repo.ping()
