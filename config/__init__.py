"""Configuration management."""
import os
import yaml
from pathlib import Path

_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"
PROJECT_DIR = Path(__file__).parent.parent

# env var -> (config path, type)
ENV_OVERRIDES = {
    "AUTOSCALE_DB_PATH": (("database", "path"), str),
    "AUTOSCALE_INTERVAL": (("autoscale", "interval"), int),
    "AUTOSCALE_WORKERS": (("autoscale", "workers"), int),
    "AUTOSCALE_DISPATCH_TIMEOUT": (("autoscale", "dispatch_timeout"), float),
    "AUTOSCALE_HTTP_TIMEOUT": (("http", "timeout"), float),
    "AUTOSCALE_TEMPLATES_PATH": (("templates", "path"), str),
    "AUTOSCALE_WEB_PORT": (("web", "port"), int),
    "AUTOSCALE_LOG_LEVEL": (("logging", "level"), str),
}


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides.

    Precedence: environment variables, then the file at ``path``, then
    ``default_config.yaml``.
    """
    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    for env_key, (config_path, cast) in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if not val:
            continue
        d = config
        for k in config_path[:-1]:
            d = d.setdefault(k, {})
        try:
            d[config_path[-1]] = cast(val)
        except ValueError:
            raise ValueError(f"{env_key} must be {cast.__name__}, got {val!r}")

    _validate_config(config)
    return config


def resolve_path(path):
    """Relative paths are tried from the working directory, then the project root."""
    path = Path(path)
    if path.is_absolute() or path.exists():
        return path
    return PROJECT_DIR / path


def web_loop_enabled(environ=None):
    """Whether the WSGI app runs the autoscale loop in-process.

    Off unless ``AUTOSCALE_WEB_LOOP`` is ``1``. Locks are per process, so only
    enable it with a single worker.
    """
    environ = os.environ if environ is None else environ
    return environ.get("AUTOSCALE_WEB_LOOP", "0").strip().lower() in ("1", "true", "yes")


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    required_sections = ["database", "autoscale", "http", "templates", "web", "logging"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    scale = config["autoscale"]
    if scale["interval"] < 1:
        raise ValueError("autoscale.interval must be >= 1 second")
    if scale["workers"] < 1:
        raise ValueError("autoscale.workers must be >= 1")
    if scale["dispatch_timeout"] <= 0:
        raise ValueError("autoscale.dispatch_timeout must be positive")
    if scale.get("events_limit", 1) < 1:
        raise ValueError("autoscale.events_limit must be >= 1")
    if config["http"].get("max_retries", 0) < 0:
        raise ValueError("http.max_retries must not be negative")
