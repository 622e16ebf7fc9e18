"""Shared fixtures: a fixed calendar day, a stepping clock and a YAML store in tmp_path."""

from datetime import date, datetime, timedelta, timezone

import pytest

from compliance import ComplianceService, Settings, YamlStore

TODAY = date(2025, 1, 15)


class SteppingClock:
    """Returns a timestamp one second later on every call."""

    def __init__(self, start=datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def store(tmp_path):
    return YamlStore(tmp_path / "data", timeout=1.0)


@pytest.fixture
def service(store, clock, tmp_path):
    settings = Settings(data_dir=tmp_path / "data")
    return ComplianceService(store, settings, clock=lambda: TODAY, now=clock)
