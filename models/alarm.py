"""Dataclasses for alarms and the events they record."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional

from models.enums import EVENT_TYPES, EventType


@dataclass
class Alarm:
    name: str = ""
    expression: str = ""
    enabled: bool = True
    data_sources: list = field(default_factory=list)
    actions: list = field(default_factory=list)
    instance: str = ""
    wait: float = 0.0  # seconds
    envs: dict = field(default_factory=dict)

    def event_type(self):
        """Direction recorded on events fired by this alarm."""
        if not self.actions:
            return EventType.INCREASE.value
        return EVENT_TYPES.get(self.actions[0], self.actions[0])

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, d):
        return cls(
            name=d.get("name", ""),
            expression=d.get("expression", ""),
            enabled=bool(d.get("enabled", True)),
            data_sources=list(d.get("data_sources") or []),
            actions=list(d.get("actions") or []),
            instance=d.get("instance", ""),
            wait=float(d.get("wait") or 0),
            envs=dict(d.get("envs") or {}),
        )


@dataclass
class Event:
    """One remediation attempt. ``end_time`` stays None while in flight."""
    id: Optional[int] = None
    alarm_name: str = ""
    instance: str = ""
    actions: list = field(default_factory=list)
    type: str = EventType.INCREASE.value
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    successful: bool = False
    error: str = ""

    @property
    def in_flight(self):
        return self.end_time is None

    def close(self, successful, error="", when=None):
        if self.end_time is not None:
            raise ValueError(f"event {self.id} is already closed")
        self.end_time = when or datetime.now(timezone.utc)
        self.successful = successful
        self.error = "" if successful else (error or "")

    def to_dict(self):
        return {
            "id": self.id,
            "alarm_name": self.alarm_name,
            "instance": self.instance,
            "actions": list(self.actions),
            "type": self.type,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "successful": self.successful,
            "error": self.error,
        }
