"""
Shared fixtures.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from helpers import NOW, USER_ID, FakeClock, FakeMeetingStore, FakeTokenStore, RecordingSleep
from utils.schemas import TokenRecord


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_store() -> FakeTokenStore:
    store = FakeTokenStore()
    store.records[USER_ID] = TokenRecord(
        access_token="old-token",
        refresh_token="refresh-1",
        expires_at=NOW + timedelta(minutes=30),
    )
    return store


@pytest.fixture
def meeting_store() -> FakeMeetingStore:
    return FakeMeetingStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
