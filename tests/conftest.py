import datetime as dt
import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import todo_timer as tt  # noqa: E402

from .helpers import FakeClock  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock(dt.datetime(2024, 1, 10, 12, 0, 0, tzinfo=dt.timezone.utc))


@pytest.fixture
def session(clock):
    return tt.Session(clock=clock)


@pytest.fixture
def temp_db_path(tmp_path):
    """Return a unique state file path per test to avoid cross-test contamination."""
    return tmp_path / "todo_timer.yml"
