"""Data models."""
from models.enums import ActionName, EventType, ActionKind, TickOutcome
from models.alarm import Alarm, Event
from models.resources import DataSource, Action, DispatchResult
from models.wizard import AutoScale, ScaleAction
from models.errors import (
    AutoScaleError, DataSourceError, EvaluationError, DispatchError, ConfigError, NotFoundError,
)
