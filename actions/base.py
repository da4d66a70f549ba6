"""Dispatcher contract shared by every action kind."""
from typing import Protocol, runtime_checkable

from models.resources import Action, DispatchResult


@runtime_checkable
class ActionDispatcher(Protocol):
    def dispatch(self, action: Action, instance: str, envs: dict) -> DispatchResult: ...
