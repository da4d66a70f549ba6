"""Error taxonomy for alarms, datasources, actions and the wizard."""


class AutoScaleError(Exception):
    """Base class for every error raised by the autoscale engine."""


class DataSourceError(AutoScaleError):
    """Fetching a datasource document failed."""
    def __init__(self, message, datasource=None):
        super().__init__(message)
        self.datasource = datasource


class EvaluationError(AutoScaleError):
    """Expression is malformed or does not match the document shape."""
    def __init__(self, message, expression=None):
        super().__init__(message)
        self.expression = expression


class DispatchError(AutoScaleError):
    """Action invocation failed."""


class ConfigError(AutoScaleError):
    """Invalid alarm or autoscale configuration."""


class NotFoundError(AutoScaleError):
    """Lookup by name failed."""
    def __init__(self, kind, name):
        super().__init__(f"{kind} {name!r} not found")
        self.kind = kind
        self.name = name
