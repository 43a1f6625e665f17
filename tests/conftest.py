"""Pytest configuration and shared fixtures."""

import os
import uuid
from zoneinfo import ZoneInfo

import pytest

# Set testing mode BEFORE importing the app to use NullPool
os.environ["TESTING"] = "true"

from reminder_scheduler.config import settings

settings.testing = True

from tests.fakes import WARSAW, FakeReminderStore


@pytest.fixture
def warsaw() -> ZoneInfo:
    return WARSAW


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def store() -> FakeReminderStore:
    return FakeReminderStore()
