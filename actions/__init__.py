"""Action registry: maps action kinds to dispatchers and runs actions by name."""
import logging

from actions.base import ActionDispatcher
from actions.log import LogDispatcher
from actions.webhook import WebhookDispatcher
from models.enums import ActionKind
from models.errors import ConfigError, DispatchError, NotFoundError
from models.resources import Action, DispatchResult

logger = logging.getLogger("autoscale.actions")


class ActionRegistry:
    def __init__(self, db, client=None):
        self.db = db
        self.kinds = {
            ActionKind.WEBHOOK.value: WebhookDispatcher(client),
            ActionKind.LOG.value: LogDispatcher(),
        }
        self._bound = {}

    def register_kind(self, kind, dispatcher: ActionDispatcher):
        self.kinds[kind] = dispatcher

    def register(self, name, dispatcher: ActionDispatcher):
        """Bind an in-process dispatcher directly to an action name."""
        self._bound[name] = dispatcher

    def add(self, action: Action):
        if not action.name:
            raise ConfigError("action name is required")
        if action.kind not in self.kinds:
            raise ConfigError(f"unknown action kind {action.kind!r}")
        if action.kind == ActionKind.WEBHOOK.value and not action.url:
            raise ConfigError(f"webhook action {action.name!r} needs a url")
        action.method = (action.method or "POST").upper()
        self.db.save_action(action)
        logger.info(f"Saved action {action.name} ({action.kind})")
        return action

    def get(self, name):
        action = self.db.get_action(name)
        if action is None:
            raise NotFoundError("action", name)
        return action

    def list(self):
        return self.db.list_actions()

    def remove(self, name):
        self.db.remove_action(name)
        logger.info(f"Removed action {name}")

    def dispatch(self, name, instance, envs):
        """Run action ``name``. Failures come back as a failed DispatchResult."""
        dispatcher = self._bound.get(name)
        if dispatcher is not None:
            action = Action(name=name, kind="bound")
        else:
            action = self.db.get_action(name)
            if action is None:
                return DispatchResult.failure(f"action {name!r} not found")
            dispatcher = self.kinds.get(action.kind)
            if dispatcher is None:
                return DispatchResult.failure(f"unknown action kind {action.kind!r}")
        try:
            result = dispatcher.dispatch(action, instance, envs)
        except DispatchError as e:
            logger.warning(f"Action {name} for {instance} failed: {e}")
            return DispatchResult.failure(e)
        except Exception as e:
            logger.warning(f"Action {name} raised: {e}")
            return DispatchResult.failure(e)
        if result is None:
            return DispatchResult()
        if not isinstance(result, DispatchResult):
            logger.warning(f"Action {name} returned {type(result).__name__}, not a DispatchResult")
            return DispatchResult.failure(f"action {name} returned an invalid result: {result!r}")
        return result
