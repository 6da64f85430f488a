import os

# Must be set before `settings` is imported anywhere.
os.environ["APP_ENV"] = "test"

from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from cost_client import get_cost_client
from main import app, get_user_repo
from models import RequestOutcome, UserRecord
from repo_users import DuplicateKeyError


class FakeUserRepo:
    """
    In-memory stand-in for UserRepo.

    Set `fail_with` to make every call raise that exception, or
    `race_on_insert` to simulate losing the exists/insert race.
    """

    def __init__(self) -> None:
        self._rows: Dict[int, UserRecord] = {}
        self.fail_with: Exception | None = None
        self.race_on_insert = False
        self.insert_calls = 0

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def add(self, user: UserRecord) -> None:
        self._rows[user.id] = user

    def find(self) -> List[UserRecord]:
        self._check()
        return list(self._rows.values())

    def find_one(self, user_id: int) -> UserRecord | None:
        self._check()
        return self._rows.get(user_id)

    def exists(self, user_id: int) -> bool:
        self._check()
        return user_id in self._rows

    def insert(self, user: UserRecord) -> UserRecord:
        self._check()
        self.insert_calls += 1
        if self.race_on_insert or user.id in self._rows:
            raise DuplicateKeyError(f"duplicate key value violates unique constraint (id)=({user.id})")
        self._rows[user.id] = user
        return user

    def ping(self) -> None:
        self._check()


class FakeCostClient:
    def __init__(self) -> None:
        self.totals: Dict[int, float] = {}
        self.fail_with: Exception | None = None
        self.calls: List[int] = []

    async def get_total(self, user_id: int) -> float:
        self.calls.append(user_id)
        if self.fail_with is not None:
            raise self.fail_with
        return self.totals[user_id]


class RecordingObserver:
    def __init__(self) -> None:
        self.outcomes: List[RequestOutcome] = []

    def notify(self, outcome: RequestOutcome) -> None:
        self.outcomes.append(outcome)


@pytest.fixture()
def fake_repo() -> FakeUserRepo:
    return FakeUserRepo()


@pytest.fixture()
def fake_cost_client() -> FakeCostClient:
    return FakeCostClient()


@pytest.fixture()
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture()
def client(fake_repo, fake_cost_client, observer):
    app.dependency_overrides[get_user_repo] = lambda: fake_repo
    app.dependency_overrides[get_cost_client] = lambda: fake_cost_client
    original_observer = app.state.observer
    app.state.observer = observer
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_user_repo, None)
        app.dependency_overrides.pop(get_cost_client, None)
        app.state.observer = original_observer
