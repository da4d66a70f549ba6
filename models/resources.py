"""Dataclasses for datasources, actions and dispatch results."""
from dataclasses import dataclass, field, asdict

from models.enums import ActionKind


@dataclass
class DataSource:
    name: str = ""
    url: str = ""
    method: str = "GET"
    body: str = ""
    headers: dict = field(default_factory=dict)
    expression_template: str = ""

    def to_dict(self):
        return asdict(self)


@dataclass
class Action:
    name: str = ""
    kind: str = ActionKind.WEBHOOK.value
    url: str = ""
    method: str = "POST"
    body: str = ""
    headers: dict = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)


@dataclass
class DispatchResult:
    successful: bool = True
    error: str = ""

    @classmethod
    def failure(cls, error):
        return cls(successful=False, error=str(error))
