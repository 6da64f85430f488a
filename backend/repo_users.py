"""
Repository: SQL operations for `users`.

This file contains only DB interaction code. It maps `UserRecord` to SQL
parameters and DB rows back to `UserRecord`. Keep business rules out of
this module.

Important notes:
- `users.id` is the table's PRIMARY KEY. That constraint is what makes
  two concurrent inserts of the same id produce exactly one row; the
  service's `exists()` pre-check is only a fast path.
- `insert` is a single statement committed once, so a failed insert
  leaves nothing behind.
"""

from typing import List

from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row

from db import get_conn
from models import UserRecord


class DuplicateKeyError(Exception):
    """Insert rejected because a user with the same id already exists."""


_COLUMNS = "id, first_name, last_name, birthday"


class UserRepo:
    """DB access only. No business logic here.

    Every method opens its own connection through `get_conn()` and lets
    `psycopg.Error` propagate, except for unique violations on insert
    which become `DuplicateKeyError`.
    """

    def find(self) -> List[UserRecord]:
        """Return all users in the table's natural order."""

        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM users")
                return [UserRecord(**r) for r in cur.fetchall()]

    def find_one(self, user_id: int) -> UserRecord | None:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM users WHERE id=%s", (user_id,))
                row = cur.fetchone()
                return UserRecord(**row) if row else None

    def exists(self, user_id: int) -> bool:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT EXISTS (SELECT 1 FROM users WHERE id=%s)", (user_id,))
                return bool(cur.fetchone()[0])

    def insert(self, user: UserRecord) -> UserRecord:
        """Insert one user and return the row as stored.

        Raises `DuplicateKeyError` when `user.id` is already taken.
        """

        try:
            with get_conn() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        f"INSERT INTO users ({_COLUMNS}) VALUES (%s, %s, %s, %s) "
                        f"RETURNING {_COLUMNS}",
                        (user.id, user.first_name, user.last_name, user.birthday),
                    )
                    row = cur.fetchone()
                conn.commit()
        except UniqueViolation as e:
            raise DuplicateKeyError(str(e)) from e
        return UserRecord(**row)

    def ping(self) -> None:
        """Lightweight DB health check. Raises on error."""

        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
