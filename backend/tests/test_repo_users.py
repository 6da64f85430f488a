from datetime import datetime, timezone

import pytest
from psycopg.errors import UniqueViolation

import repo_users
from models import UserRecord
from repo_users import DuplicateKeyError, UserRepo


class FakeCursor:
    def __init__(self, conn: "FakeConn") -> None:
        self.conn = conn

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def execute(self, sql, params=None) -> None:
        self.conn.executed.append((sql, params))
        if self.conn.raise_on_execute is not None:
            raise self.conn.raise_on_execute

    def fetchone(self):
        return self.conn.rows[0] if self.conn.rows else None

    def fetchall(self):
        return list(self.conn.rows)


class FakeConn:
    def __init__(self, rows=None, raise_on_execute=None) -> None:
        self.rows = rows or []
        self.raise_on_execute = raise_on_execute
        self.executed = []
        self.committed = False

    def __enter__(self) -> "FakeConn":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def cursor(self, row_factory=None) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.committed = True


ROW = {
    "id": 10,
    "first_name": "Test",
    "last_name": "User",
    "birthday": datetime(2000, 1, 1, tzinfo=timezone.utc),
}


def _use(monkeypatch, conn: FakeConn) -> FakeConn:
    monkeypatch.setattr(repo_users, "get_conn", lambda: conn)
    return conn


def test_insert_returns_stored_row_and_commits(monkeypatch) -> None:
    conn = _use(monkeypatch, FakeConn(rows=[ROW]))

    saved = UserRepo().insert(UserRecord(**ROW))

    assert saved == UserRecord(**ROW)
    assert conn.committed is True
    sql, params = conn.executed[0]
    assert sql.startswith("INSERT INTO users")
    assert params[0] == 10


def test_insert_unique_violation_becomes_duplicate_key_error(monkeypatch) -> None:
    conn = _use(monkeypatch, FakeConn(raise_on_execute=UniqueViolation("duplicate key")))

    with pytest.raises(DuplicateKeyError):
        UserRepo().insert(UserRecord(**ROW))
    assert conn.committed is False


def test_find_one_missing_returns_none(monkeypatch) -> None:
    _use(monkeypatch, FakeConn(rows=[]))
    assert UserRepo().find_one(99) is None


def test_exists_reads_boolean(monkeypatch) -> None:
    _use(monkeypatch, FakeConn(rows=[(True,)]))
    assert UserRepo().exists(10) is True


def test_find_maps_rows(monkeypatch) -> None:
    _use(monkeypatch, FakeConn(rows=[ROW, {**ROW, "id": 11}]))
    assert [u.id for u in UserRepo().find()] == [10, 11]
