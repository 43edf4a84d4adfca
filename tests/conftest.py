from concurrent.futures import Future
from datetime import datetime, timezone

import pytest

from usage_api import UsageSnapshot, UsageWindow


class ImmediateExecutor:
    """Runs submitted work inline and returns a finished Future."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args):
        self.calls.append(args)
        fut = Future()
        try:
            fut.set_result(fn(*args))
        except Exception as e:
            fut.set_exception(e)
        return fut


class ManualExecutor:
    """Holds submitted work until complete() is called."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args):
        fut = Future()
        self.pending.append((fut, fn, args))
        return fut

    def complete(self):
        for fut, fn, args in self.pending:
            fut.set_result(fn(*args))
        self.pending.clear()


@pytest.fixture
def immediate_executor():
    return ImmediateExecutor()


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def snapshot():
    return UsageSnapshot(
        five_hour=UsageWindow(42.0, datetime(2025, 1, 1, 5, 0, tzinfo=timezone.utc)),
        seven_day=UsageWindow(10.0, datetime(2025, 1, 5, 0, 0, tzinfo=timezone.utc)),
    )


@pytest.fixture
def usage_body():
    return {
        "five_hour": {"utilization": 42.0, "resets_at": "2025-01-01T05:00:00.000Z"},
        "seven_day": {"utilization": 10.0, "resets_at": "2025-01-05T00:00:00.000Z"},
    }
