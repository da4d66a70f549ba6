"""Tests for CLI commands."""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from click.testing import CliRunner
from main import cli
from models.database import Database


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    db_path = tmp_path / "autoscale.db"
    path = tmp_path / "config.yaml"
    path.write_text(
        "database:\n"
        f"  path: {db_path}\n"
        "templates:\n"
        f"  path: {tmp_path / 'no_templates.yaml'}\n"
    )
    return str(path), str(db_path)


def _invoke(runner, config_file, *args, **kwargs):
    return runner.invoke(cli, ["--config", config_file[0], *args], **kwargs)


def _db(config_file):
    return Database(config_file[1])


AUTOSCALE_ARGS = [
    "--up-metric", "cpu", "--up-value", "80", "--up-aggregator", "avg",
    "--down-metric", "cpu", "--down-value", "20", "--down-wait", "600",
    "--min-units", "2",
]


def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Autoscale" in result.output


def test_cli_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


@pytest.mark.parametrize("group,commands", [
    ("alarm", ["list", "show", "check", "enable", "disable", "remove", "events", "purge-events"]),
    ("autoscale", ["create", "update", "list", "show", "remove", "enable", "disable", "events"]),
    ("datasource", ["add", "list", "remove"]),
    ("action", ["add", "list", "remove"]),
])
def test_group_help(runner, group, commands):
    result = runner.invoke(cli, [group, "--help"])
    assert result.exit_code == 0
    for command in commands:
        assert command in result.output


def test_run_and_web_help(runner):
    assert runner.invoke(cli, ["run", "--help"]).exit_code == 0
    assert runner.invoke(cli, ["web", "--help"]).exit_code == 0
    assert runner.invoke(cli, ["tick", "--help"]).exit_code == 0


def test_autoscale_create_and_manage(runner, config_file):
    result = _invoke(runner, config_file, "autoscale", "create", "api", *AUTOSCALE_ARGS)
    assert result.exit_code == 0, result.output
    assert "created" in result.output

    with _db(config_file) as db:
        alarm = db.get_alarm("scale_up_api")
        assert alarm.expression == (
            "cpu.aggregations.range.buckets[0].date.buckets[-1].avg.value > 80"
        )
        assert db.get_alarm("scale_down_api").wait == 600
        assert db.get_autoscale("api").min_units == 2

    assert _invoke(runner, config_file, "autoscale", "list").exit_code == 0
    assert _invoke(runner, config_file, "autoscale", "show", "api").exit_code == 0

    result = _invoke(runner, config_file, "autoscale", "disable", "api")
    assert result.exit_code == 0
    with _db(config_file) as db:
        assert not any(a.enabled for a in db.list_alarms())

    assert _invoke(runner, config_file, "autoscale", "enable", "api").exit_code == 0
    assert _invoke(runner, config_file, "autoscale", "events", "api").exit_code == 0

    result = _invoke(runner, config_file, "autoscale", "remove", "api")
    assert result.exit_code == 0
    with _db(config_file) as db:
        assert db.list_alarms() == []


def test_autoscale_create_duplicate_fails(runner, config_file):
    _invoke(runner, config_file, "autoscale", "create", "api", *AUTOSCALE_ARGS)
    result = _invoke(runner, config_file, "autoscale", "create", "api", *AUTOSCALE_ARGS)
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_autoscale_update(runner, config_file):
    _invoke(runner, config_file, "autoscale", "create", "api", *AUTOSCALE_ARGS)
    args = [a if a != "80" else "90" for a in AUTOSCALE_ARGS]
    result = _invoke(runner, config_file, "autoscale", "update", "api", *args)
    assert result.exit_code == 0, result.output
    with _db(config_file) as db:
        assert db.get_alarm("scale_up_api").expression.endswith("> 90")


def test_autoscale_show_missing(runner, config_file):
    result = _invoke(runner, config_file, "autoscale", "show", "missing")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_alarm_commands(runner, config_file):
    _invoke(runner, config_file, "autoscale", "create", "api", *AUTOSCALE_ARGS)
    assert _invoke(runner, config_file, "alarm", "list").exit_code == 0
    assert _invoke(runner, config_file, "alarm", "show", "scale_up_api").exit_code == 0

    assert _invoke(runner, config_file, "alarm", "disable", "scale_up_api").exit_code == 0
    with _db(config_file) as db:
        assert db.get_alarm("scale_up_api").enabled is False
    assert _invoke(runner, config_file, "alarm", "enable", "scale_up_api").exit_code == 0

    assert _invoke(runner, config_file, "alarm", "events", "scale_up_api").exit_code == 0
    result = _invoke(runner, config_file, "alarm", "purge-events", "scale_up_api", "--yes")
    assert result.exit_code == 0
    assert "Deleted 0 events" in result.output

    assert _invoke(runner, config_file, "alarm", "remove", "scale_up_api").exit_code == 0
    assert _invoke(runner, config_file, "alarm", "remove", "scale_up_api").exit_code == 1


def test_alarm_check_missing(runner, config_file):
    result = _invoke(runner, config_file, "alarm", "check", "missing")
    assert result.exit_code == 1


def test_datasource_commands(runner, config_file):
    result = _invoke(runner, config_file, "datasource", "add", "cpu",
                     "--url", "http://metrics.local/{instance}",
                     "--header", "X-Token: secret",
                     "--template", "cpu.v {operator} {value}")
    assert result.exit_code == 0, result.output
    with _db(config_file) as db:
        ds = db.get_datasource("cpu")
        assert ds.headers == {"X-Token": "secret"}
        assert ds.expression_template == "cpu.v {operator} {value}"

    assert _invoke(runner, config_file, "datasource", "list").exit_code == 0
    assert _invoke(runner, config_file, "datasource", "remove", "cpu").exit_code == 0
    assert _invoke(runner, config_file, "datasource", "remove", "cpu").exit_code == 1


def test_datasource_bad_header(runner, config_file):
    result = _invoke(runner, config_file, "datasource", "add", "cpu",
                     "--url", "http://x", "--header", "no-colon")
    assert result.exit_code != 0


def test_action_commands(runner, config_file):
    result = _invoke(runner, config_file, "action", "add", "scale_up", "--kind", "log")
    assert result.exit_code == 0, result.output
    with _db(config_file) as db:
        assert db.get_action("scale_up").kind == "log"
    assert _invoke(runner, config_file, "action", "list").exit_code == 0
    assert _invoke(runner, config_file, "action", "remove", "scale_up").exit_code == 0

    result = _invoke(runner, config_file, "action", "add", "hook", "--kind", "webhook")
    assert result.exit_code == 1
    assert "needs a url" in result.output


def test_tick_without_alarms(runner, config_file):
    result = _invoke(runner, config_file, "tick")
    assert result.exit_code == 0
    assert "No enabled alarms" in result.output


def test_tick_reports_errors(runner, config_file):
    _invoke(runner, config_file, "autoscale", "create", "api", *AUTOSCALE_ARGS)
    result = _invoke(runner, config_file, "tick")
    assert result.exit_code == 0
    assert "error" in result.output
