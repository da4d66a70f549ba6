"""Alarm creation, lookup and enable/disable/remove."""
import logging

from alarms.expression import compile_expression
from models.alarm import Alarm
from models.errors import ConfigError, EvaluationError, NotFoundError
from utils.templating import unresolved

logger = logging.getLogger("autoscale.alarms.manager")


class AlarmManager:
    def __init__(self, db):
        self.db = db

    def new_alarm(self, alarm: Alarm):
        """Validate and persist a new alarm.

        The name must be unused and the expression must compile with no
        ``{placeholder}`` left in it.
        """
        if not alarm.name:
            raise ConfigError("alarm name is required")
        leftover = unresolved(alarm.expression)
        if leftover:
            raise ConfigError(
                f"alarm {alarm.name!r} has unresolved placeholders: {', '.join(leftover)}"
            )
        try:
            compile_expression(alarm.expression)
        except EvaluationError as e:
            raise ConfigError(f"alarm {alarm.name!r}: {e}")
        if alarm.wait < 0:
            raise ConfigError(f"alarm {alarm.name!r}: wait must not be negative")
        self.db.save_alarm(alarm)
        logger.info(f"Created alarm {alarm.name}")
        return alarm

    def find_by_name(self, name):
        alarm = self.db.get_alarm(name)
        if alarm is None:
            raise NotFoundError("alarm", name)
        return alarm

    def list(self, enabled_only=False):
        return self.db.list_alarms(enabled_only=enabled_only)

    def enable(self, name):
        self.db.set_alarm_enabled(name, True)
        logger.info(f"Enabled alarm {name}")

    def disable(self, name):
        self.db.set_alarm_enabled(name, False)
        logger.info(f"Disabled alarm {name}")

    def remove(self, name):
        """Remove the alarm. Its events stay for audit; see purge_events."""
        self.db.remove_alarm(name)
        logger.info(f"Removed alarm {name}")

    def events(self, name, limit=None):
        return self.db.events_for_alarm(name, limit=limit)

    def purge_events(self, name):
        count = self.db.purge_events(name)
        logger.info(f"Purged {count} events for alarm {name}")
        return count
