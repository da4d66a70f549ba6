"""Tests for configuration loading and component wiring."""
import pytest

from config import load_config, _deep_merge


def test_defaults():
    config = load_config()
    assert config["autoscale"]["interval"] == 30
    assert config["autoscale"]["workers"] == 4
    assert config["autoscale"]["dispatch_timeout"] == 60
    assert config["autoscale"]["events_limit"] == 200
    assert config["web"]["port"] == 8080


def test_override_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("autoscale:\n  interval: 10\n")
    config = load_config(str(path))
    assert config["autoscale"]["interval"] == 10
    assert config["autoscale"]["workers"] == 4


def test_missing_override_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config["autoscale"]["interval"] == 30


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("AUTOSCALE_INTERVAL", "5")
    monkeypatch.setenv("AUTOSCALE_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("AUTOSCALE_LOG_LEVEL", "DEBUG")
    config = load_config()
    assert config["autoscale"]["interval"] == 5
    assert config["database"]["path"] == str(tmp_path / "env.db")
    assert config["logging"]["level"] == "DEBUG"


@pytest.mark.parametrize("override", [
    "autoscale:\n  interval: 0\n",
    "autoscale:\n  workers: 0\n",
    "autoscale:\n  dispatch_timeout: 0\n",
])
def test_invalid_values_rejected(tmp_path, override):
    path = tmp_path / "config.yaml"
    path.write_text(override)
    with pytest.raises(ValueError):
        load_config(str(path))


def test_deep_merge():
    base = {"a": {"b": 1, "c": 2}, "d": 3}
    merged = _deep_merge(base, {"a": {"b": 10}, "e": 4})
    assert merged == {"a": {"b": 10, "c": 2}, "d": 3, "e": 4}
    assert base["a"]["b"] == 1


def test_init_components(tmp_path):
    from main import init_components

    config = load_config()
    config["database"]["path"] = str(tmp_path / "wired.db")
    components = init_components(config)
    try:
        assert components["engine"].workers == 4
        assert components["engine"].dispatch_timeout == 60
        assert components["wizard"].events_limit == 200
        assert "cpu_max" in components["wizard"].templates
    finally:
        components["db"].close()


def test_env_override_wrong_type(monkeypatch):
    monkeypatch.setenv("AUTOSCALE_WORKERS", "many")
    with pytest.raises(ValueError, match="AUTOSCALE_WORKERS"):
        load_config()


def test_env_override_float(monkeypatch):
    monkeypatch.setenv("AUTOSCALE_DISPATCH_TIMEOUT", "2.5")
    assert load_config()["autoscale"]["dispatch_timeout"] == 2.5


def test_resolve_path(tmp_path, monkeypatch):
    from config import resolve_path, PROJECT_DIR

    monkeypatch.chdir(tmp_path)
    assert resolve_path("config/expression_templates.yaml") == (
        PROJECT_DIR / "config" / "expression_templates.yaml"
    )
    assert resolve_path(tmp_path / "x.yaml") == tmp_path / "x.yaml"


@pytest.mark.parametrize("value,expected", [
    (None, False),
    ("0", False),
    ("1", True),
    ("true", True),
])
def test_web_loop_off_by_default(value, expected):
    from config import web_loop_enabled

    environ = {} if value is None else {"AUTOSCALE_WEB_LOOP": value}
    assert web_loop_enabled(environ) is expected
