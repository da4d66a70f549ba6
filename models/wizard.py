"""Dataclasses for autoscale configurations compiled by the wizard."""
from dataclasses import dataclass, field, asdict

from models.errors import ConfigError


def _text(value):
    return "" if value is None else str(value)


def _number(cast, value, default, label):
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{label} must be a number, got {value!r}")


@dataclass
class ScaleAction:
    aggregator: str = ""
    metric: str = ""
    operator: str = ""
    value: str = ""
    step: str = ""
    wait: float = 0.0  # seconds

    @classmethod
    def from_dict(cls, d, label="scale"):
        d = d or {}
        if not isinstance(d, dict):
            raise ConfigError(f"{label} must be an object")
        return cls(
            aggregator=d.get("aggregator", "") or "",
            metric=d.get("metric", "") or "",
            operator=d.get("operator", "") or "",
            value=_text(d.get("value")),
            step=_text(d.get("step")),
            wait=_number(float, d.get("wait"), 0.0, f"{label}.wait"),
        )


@dataclass
class AutoScale:
    name: str = ""
    scale_up: ScaleAction = field(default_factory=ScaleAction)
    scale_down: ScaleAction = field(default_factory=ScaleAction)
    min_units: int = 1
    max_units: int = 0
    process: str = ""

    @property
    def process_name(self):
        return self.process or "web"

    @property
    def suffix(self):
        if self.process:
            return f"{self.name}_{self.process}"
        return self.name

    def alarm_names(self):
        """Names of the scale-up and scale-down alarms, in that order."""
        return [f"scale_up_{self.suffix}", f"scale_down_{self.suffix}"]

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, d):
        """Build from snake_case or camelCase keys. Malformed numbers raise ConfigError."""
        return cls(
            name=d.get("name", ""),
            scale_up=ScaleAction.from_dict(d.get("scale_up") or d.get("scaleUp"), "scale_up"),
            scale_down=ScaleAction.from_dict(d.get("scale_down") or d.get("scaleDown"), "scale_down"),
            min_units=_number(int, d.get("min_units", d.get("minUnits")), 1, "min_units"),
            max_units=_number(int, d.get("max_units", d.get("maxUnits")), 0, "max_units"),
            process=d.get("process", "") or "",
        )
