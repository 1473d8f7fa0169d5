import os
from datetime import datetime, timedelta, timezone

import pytest


os.environ.setdefault("INTENT_CRAWLER_LOG_LEVEL", "DEBUG")
os.environ.setdefault("INTENT_CRAWLER_CONFIG_PATH", os.path.join(os.path.dirname(__file__), "missing-config.yaml"))


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks end-to-end pipeline tests")


class StepClock:
    """Deterministic clock: returns ``start`` and moves forward on demand."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> StepClock:
    return StepClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))
