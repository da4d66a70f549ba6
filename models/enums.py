"""Enums for action kinds, event types and tick outcomes."""
from enum import Enum


class ActionName(str, Enum):
    SCALE_UP = "scale_up"
    SCALE_DOWN = "scale_down"


class EventType(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class ActionKind(str, Enum):
    WEBHOOK = "webhook"
    LOG = "log"


class TickOutcome(str, Enum):
    IDLE = "idle"
    COOLDOWN = "cooldown"
    FIRED = "fired"
    BUSY = "busy"
    ERROR = "error"


# Event type recorded for each well-known action name
EVENT_TYPES = {
    ActionName.SCALE_UP.value: EventType.INCREASE.value,
    ActionName.SCALE_DOWN.value: EventType.DECREASE.value,
}

VALID_OPERATORS = {">", ">=", "<", "<=", "==", "!="}
