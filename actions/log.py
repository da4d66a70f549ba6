"""Log-only action, handy as a dry run."""
import logging

from models.resources import DispatchResult

logger = logging.getLogger("autoscale.actions.log")


class LogDispatcher:
    def dispatch(self, action, instance, envs):
        logger.info(f"[dry-run] {action.name} on {instance} with {envs or {}}")
        return DispatchResult()
