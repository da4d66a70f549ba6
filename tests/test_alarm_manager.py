"""Tests for alarm creation and lifecycle."""
import pytest

from models.alarm import Alarm, Event
from models.errors import ConfigError, NotFoundError


def test_new_alarm_persists(components):
    alarms = components["alarms"]
    alarms.new_alarm(Alarm(name="cpu_high", expression="cpu.v > 80", data_sources=["cpu"]))
    assert alarms.find_by_name("cpu_high").data_sources == ["cpu"]


@pytest.mark.parametrize("alarm,message", [
    (Alarm(name="", expression="true"), "name is required"),
    (Alarm(name="a", expression="cpu.v > {value}"), "unresolved placeholders: value"),
    (Alarm(name="a", expression="cpu.v >"), "invalid expression"),
    (Alarm(name="a", expression="true", wait=-5), "wait must not be negative"),
])
def test_new_alarm_validation(components, alarm, message):
    with pytest.raises(ConfigError, match=message):
        components["alarms"].new_alarm(alarm)


def test_duplicate_name_rejected(components):
    alarms = components["alarms"]
    alarms.new_alarm(Alarm(name="a", expression="true"))
    with pytest.raises(ConfigError):
        alarms.new_alarm(Alarm(name="a", expression="false"))


def test_enable_disable_list(components):
    alarms = components["alarms"]
    alarms.new_alarm(Alarm(name="a", expression="true"))
    alarms.new_alarm(Alarm(name="b", expression="true"))
    alarms.disable("a")
    assert [a.name for a in alarms.list(enabled_only=True)] == ["b"]
    alarms.enable("a")
    assert len(alarms.list(enabled_only=True)) == 2
    with pytest.raises(NotFoundError):
        alarms.enable("missing")


def test_remove_keeps_events_until_purged(components):
    alarms = components["alarms"]
    alarms.new_alarm(Alarm(name="a", expression="true"))
    components["db"].create_event(Event(alarm_name="a"))
    alarms.remove("a")
    with pytest.raises(NotFoundError):
        alarms.find_by_name("a")
    assert len(alarms.events("a")) == 1
    assert alarms.purge_events("a") == 1
    assert alarms.events("a") == []
