"""Alarm evaluation and the autoscale loop."""
from alarms.engine import AutoScaleEngine, TickResult
from alarms.expression import Expression, compile_expression, evaluate
from alarms.manager import AlarmManager
from alarms.scheduler import AutoScaleScheduler
