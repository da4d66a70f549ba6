"""Autoscale wizard: compile a scale-up/scale-down configuration into two alarms."""
import logging

from models.alarm import Alarm
from models.enums import ActionName, VALID_OPERATORS
from models.errors import ConfigError, NotFoundError
from models.wizard import AutoScale
from utils.templating import substitute, unresolved

logger = logging.getLogger("autoscale.wizard")

UNITS_DATASOURCE = "units"

# scale-down guard: the pool is unlocked and still above the floor
UNITS_MIN_EXPRESSION = (
    'not units.lock.Locked and '
    'count(u for u in units.units if u.ProcessName == "{process}") > {minUnits}'
)
# scale-up guard, only used when a ceiling is configured
UNITS_MAX_EXPRESSION = (
    'count(u for u in units.units if u.ProcessName == "{process}") < {maxUnits}'
)
# last bucket of a time-series aggregation compared to the threshold
DEFAULT_EXPRESSION = (
    "{metric}.aggregations.range.buckets[0].date.buckets[-1].{aggregator}.value "
    "{operator} {value}"
)

DEFAULT_AGGREGATOR = "max"
EVENT_ACTIONS = [ActionName.SCALE_UP.value, ActionName.SCALE_DOWN.value]


class AutoScaleWizard:
    def __init__(self, db, alarms, templates=None, events_limit=200):
        self.db = db
        self.alarms = alarms
        self.templates = templates if templates is not None else {}
        self.events_limit = events_limit

    # ── composition ──────────────────────────────────

    def _validate(self, autoscale: AutoScale):
        if not autoscale.name:
            raise ConfigError("autoscale name is required")
        for kind, action in ((ActionName.SCALE_UP, autoscale.scale_up),
                             (ActionName.SCALE_DOWN, autoscale.scale_down)):
            if not action.metric:
                raise ConfigError(f"{kind.value}: metric is required")
            if action.operator not in VALID_OPERATORS:
                raise ConfigError(f"{kind.value}: invalid operator {action.operator!r}")
            if action.value == "":
                raise ConfigError(f"{kind.value}: value is required")
            if action.wait < 0:
                raise ConfigError(f"{kind.value}: wait must not be negative")
        if autoscale.min_units <= 0:
            autoscale.min_units = 1
        if autoscale.max_units < 0:
            raise ConfigError("max_units must not be negative")
        if autoscale.max_units and autoscale.max_units <= autoscale.min_units:
            raise ConfigError("max_units must be greater than min_units")

    def datasources_for(self, autoscale: AutoScale, kind):
        if kind == ActionName.SCALE_UP.value:
            action = autoscale.scale_up
            if autoscale.max_units:
                return [UNITS_DATASOURCE, action.metric]
            return [action.metric]
        return [UNITS_DATASOURCE, autoscale.scale_down.metric]

    def _template_for(self, datasource, kind):
        if datasource == UNITS_DATASOURCE:
            if kind == ActionName.SCALE_UP.value:
                return UNITS_MAX_EXPRESSION
            return self.templates.get(datasource) or UNITS_MIN_EXPRESSION
        return self.templates.get(datasource) or DEFAULT_EXPRESSION

    def compose_expression(self, autoscale: AutoScale, kind):
        """AND the per-datasource templates together and fill in placeholders."""
        action = autoscale.scale_up if kind == ActionName.SCALE_UP.value else autoscale.scale_down
        parts = [self._template_for(d, kind) for d in self.datasources_for(autoscale, kind)]
        expression = " and ".join(parts)
        values = {
            "aggregator": action.aggregator or DEFAULT_AGGREGATOR,
            "operator": action.operator,
            "value": action.value,
            "minUnits": autoscale.min_units,
            "maxUnits": autoscale.max_units,
            "metric": action.metric,
            "process": autoscale.process_name,
        }
        expression = substitute(expression, values)
        leftover = unresolved(expression)
        if leftover:
            raise ConfigError(
                f"{kind} expression for {autoscale.name!r} has unresolved placeholders: "
                f"{', '.join(leftover)}"
            )
        return expression

    def build_alarm(self, autoscale: AutoScale, kind):
        action = autoscale.scale_up if kind == ActionName.SCALE_UP.value else autoscale.scale_down
        name = f"{kind}_{autoscale.suffix}"
        return Alarm(
            name=name,
            expression=self.compose_expression(autoscale, kind),
            enabled=True,
            data_sources=self.datasources_for(autoscale, kind),
            actions=[kind],
            instance=autoscale.name,
            wait=action.wait,
            envs={
                "step": action.step,
                "process": autoscale.process_name,
                "aggregator": action.aggregator or DEFAULT_AGGREGATOR,
            },
        )

    def build_alarms(self, autoscale: AutoScale):
        self._validate(autoscale)
        return [self.build_alarm(autoscale, kind) for kind in EVENT_ACTIONS]

    # ── lifecycle ────────────────────────────────────

    def _create_alarms(self, alarms):
        created = []
        try:
            for alarm in alarms:
                self.alarms.new_alarm(alarm)
                created.append(alarm.name)
        except Exception:
            self._rollback(created)
            raise
        return created

    def _rollback(self, names):
        for name in names:
            try:
                self.alarms.remove(name)
                logger.info(f"Rolled back alarm {name}")
            except Exception as e:
                logger.error(f"Rollback of alarm {name} failed: {e}")

    def create(self, autoscale: AutoScale):
        """Create both alarms and store the configuration.

        A failure at any step removes whatever was already created.
        """
        alarms = self.build_alarms(autoscale)
        if self.db.get_autoscale(autoscale.name) is not None:
            raise ConfigError(f"autoscale {autoscale.name!r} already exists")
        created = self._create_alarms(alarms)
        try:
            self.db.insert_autoscale(autoscale)
        except Exception:
            self._rollback(created)
            raise
        logger.info(f"Created autoscale {autoscale.name}")
        return autoscale

    def update(self, autoscale: AutoScale):
        """Replace the alarm pair and the stored configuration.

        If the new pair cannot be created the old pair is restored.
        """
        old = self.find_by_name(autoscale.name)
        alarms = self.build_alarms(autoscale)
        old_alarms = [self.alarms.find_by_name(n) for n in old.alarm_names()]
        for alarm in old_alarms:
            self.alarms.remove(alarm.name)
        try:
            self._create_alarms(alarms)
        except Exception:
            logger.error(f"Update of autoscale {autoscale.name} failed, restoring previous alarms")
            self._create_alarms(old_alarms)
            raise
        self.db.update_autoscale(autoscale)
        logger.info(f"Updated autoscale {autoscale.name}")
        return autoscale

    def remove(self, name):
        """Remove the configuration and its alarms. Events are kept."""
        autoscale = self.find_by_name(name)
        for alarm_name in autoscale.alarm_names():
            self.alarms.remove(alarm_name)
        self.db.remove_autoscale(name)
        logger.info(f"Removed autoscale {name}")

    def find_by_name(self, name):
        autoscale = self.db.get_autoscale(name)
        if autoscale is None:
            raise NotFoundError("autoscale", name)
        return autoscale

    def list(self):
        return self.db.list_autoscales()

    def _pair(self, autoscale):
        return [self.alarms.find_by_name(n) for n in autoscale.alarm_names()]

    def enable(self, name):
        autoscale = self.find_by_name(name)
        for alarm in self._pair(autoscale):
            self.alarms.enable(alarm.name)

    def disable(self, name):
        autoscale = self.find_by_name(name)
        for alarm in self._pair(autoscale):
            self.alarms.disable(alarm.name)

    def enabled(self, autoscale: AutoScale):
        """True only if both alarms exist and are enabled."""
        try:
            return all(a.enabled for a in self._pair(autoscale))
        except NotFoundError:
            return False

    def events(self, name, limit=None):
        """Most recent scale events for the configuration, newest first."""
        autoscale = self.find_by_name(name)
        limit = min(limit or self.events_limit, self.events_limit)
        return self.db.events_for_instance(autoscale.name, EVENT_ACTIONS, limit=limit)

    def to_dict(self, autoscale: AutoScale):
        d = autoscale.to_dict()
        d["enabled"] = self.enabled(autoscale)
        return d
