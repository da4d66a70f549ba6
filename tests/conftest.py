"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone

from models.database import Database
from models.resources import DispatchResult
from datasource import DataSourceRegistry
from actions import ActionRegistry
from alarms.manager import AlarmManager
from alarms.engine import AutoScaleEngine
from wizard.autoscale import AutoScaleWizard


class FixedClock:
    """Clock that only moves when told to."""
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class RecordingDispatcher:
    """Dispatcher that records calls and returns a preset result."""
    def __init__(self, result=None, exc=None):
        self.result = result or DispatchResult()
        self.exc = exc
        self.calls = []

    def dispatch(self, action, instance, envs):
        self.calls.append((action.name, instance, envs))
        if self.exc:
            raise self.exc
        return self.result


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    os.unlink(db_path)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def components(temp_db, clock):
    """Registries, engine and wizard wired to a temp database and a fixed clock."""
    datasources = DataSourceRegistry(temp_db)
    actions = ActionRegistry(temp_db)
    alarms = AlarmManager(temp_db)
    engine = AutoScaleEngine(temp_db, datasources, actions, clock=clock,
                             dispatch_timeout=2, workers=1)
    wizard = AutoScaleWizard(temp_db, alarms, datasources.templates)
    return {
        "db": temp_db, "datasources": datasources, "actions": actions,
        "alarms": alarms, "engine": engine, "wizard": wizard, "clock": clock,
    }


@pytest.fixture
def units_document():
    """Units document as returned by the platform API."""
    return {
        "lock": {"Locked": False},
        "units": [
            {"ID": "u1", "ProcessName": "web"},
            {"ID": "u2", "ProcessName": "web"},
            {"ID": "u3", "ProcessName": "worker"},
        ],
    }


def metric_document(value, aggregator="max"):
    """Time-series aggregation document whose last bucket holds ``value``."""
    return {
        "aggregations": {
            "range": {
                "buckets": [{
                    "date": {
                        "buckets": [
                            {aggregator: {"value": 1.0}},
                            {aggregator: {"value": value}},
                        ]
                    }
                }]
            }
        }
    }
