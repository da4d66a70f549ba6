"""Autoscale engine: evaluate alarms, apply cooldowns, fire actions, record events."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from alarms.expression import compile_expression
from models.alarm import Alarm, Event
from models.enums import TickOutcome
from models.resources import DispatchResult

logger = logging.getLogger("autoscale.alarms.engine")


def utcnow():
    return datetime.now(timezone.utc)


@dataclass
class TickResult:
    alarm_name: str
    outcome: TickOutcome
    event: Optional[Event] = None
    phase: str = ""
    error: str = ""


class AutoScaleEngine:
    def __init__(self, db, datasources, actions, clock=None, dispatch_timeout=60, workers=4):
        self.db = db
        self.datasources = datasources
        self.actions = actions
        self.clock = clock or utcnow
        self.dispatch_timeout = dispatch_timeout
        self.workers = max(1, int(workers))
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._compiled = {}

    # ── check ────────────────────────────────────────

    def _compile(self, alarm: Alarm):
        """Compiled expression for the alarm, recompiled when its source changes."""
        cached = self._compiled.get(alarm.name)
        if cached is not None and cached[0] == alarm.expression:
            return cached[1]
        expr = compile_expression(alarm.expression)
        self._compiled[alarm.name] = (alarm.expression, expr)
        return expr

    def documents(self, alarm: Alarm):
        """Fetch every datasource of the alarm, keyed by datasource name.

        The first document is also available as ``data``.
        """
        context = dict(alarm.envs)
        context["instance"] = alarm.instance
        docs = {}
        for name in alarm.data_sources:
            docs[name] = self.datasources.fetch(name, context)
        if alarm.data_sources:
            docs.setdefault("data", docs[alarm.data_sources[0]])
        return docs

    def check(self, alarm: Alarm):
        """Fetch the alarm's documents and evaluate its expression.

        Raises DataSourceError or EvaluationError; never touches event history.
        """
        expr = self._compile(alarm)
        return expr.evaluate(self.documents(alarm))

    # ── cooldown ─────────────────────────────────────

    def should_wait(self, alarm: Alarm, now=None):
        """True while the alarm's last event is in flight or ended within ``alarm.wait``."""
        now = now or self.clock()
        last = self.db.last_event(alarm.name)
        if last is None:
            return False
        if last.end_time is None:
            return True
        elapsed = (now - last.end_time).total_seconds()
        return not elapsed > alarm.wait

    # ── fire ─────────────────────────────────────────

    def _dispatch(self, action_name, alarm):
        holder = {}

        def run():
            holder["result"] = self.actions.dispatch(action_name, alarm.instance, dict(alarm.envs))

        worker = threading.Thread(target=run, name=f"dispatch-{alarm.name}", daemon=True)
        worker.start()
        worker.join(self.dispatch_timeout)
        if worker.is_alive():
            logger.error(f"Action {action_name} for alarm {alarm.name} timed out "
                         f"after {self.dispatch_timeout}s")
            return DispatchResult.failure(f"dispatch timed out after {self.dispatch_timeout}s")
        result = holder.get("result")
        if not isinstance(result, DispatchResult):
            return DispatchResult.failure(f"action {action_name} returned no dispatch result")
        return result

    def _close(self, event):
        try:
            self.db.close_event(event)
        except Exception as e:
            # an open event keeps its alarm waiting; retry once
            logger.error(f"Closing event {event.id} for {event.alarm_name} failed: {e}")
            self.db.close_event(event)

    def fire(self, alarm: Alarm):
        """Open an event, run the alarm's actions in order, then close the event.

        The event is closed even when dispatching raises.
        """
        event = Event(
            alarm_name=alarm.name,
            instance=alarm.instance,
            actions=list(alarm.actions),
            type=alarm.event_type(),
            start_time=self.clock(),
        )
        self.db.create_event(event)

        errors = []
        try:
            for action_name in alarm.actions:
                result = self._dispatch(action_name, alarm)
                if not result.successful:
                    errors.append(result.error or f"action {action_name} failed")
        except Exception as e:
            errors.append(f"dispatch failed: {e}")
        finally:
            event.close(not errors, "; ".join(errors), when=self.clock())
            self._close(event)

        if errors:
            logger.warning(f"Alarm {alarm.name} fired with errors: {event.error}")
        else:
            logger.info(f"Alarm {alarm.name} fired ({event.type}) for {alarm.instance}")
        return event

    # ── per-alarm pipeline ───────────────────────────

    def scale_if_needed(self, alarm: Alarm):
        """check → should_wait → fire. Errors are logged and returned, not raised."""
        phase = "check"
        try:
            if not self.check(alarm):
                return TickResult(alarm.name, TickOutcome.IDLE)
            phase = "wait"
            if self.should_wait(alarm):
                logger.debug(f"Alarm {alarm.name} is cooling down")
                return TickResult(alarm.name, TickOutcome.COOLDOWN)
            phase = "dispatch"
            event = self.fire(alarm)
            return TickResult(alarm.name, TickOutcome.FIRED, event=event)
        except Exception as e:
            logger.error(f"Alarm {alarm.name} failed during {phase}: {e}")
            return TickResult(alarm.name, TickOutcome.ERROR, phase=phase, error=str(e))

    def _lock_for(self, name):
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def process(self, alarm: Alarm):
        """Run one alarm, skipping it if an earlier tick still holds it."""
        lock = self._lock_for(alarm.name)
        if not lock.acquire(blocking=False):
            logger.debug(f"Alarm {alarm.name} still running from a previous tick")
            return TickResult(alarm.name, TickOutcome.BUSY)
        try:
            return self.scale_if_needed(alarm)
        finally:
            lock.release()

    def _forget_stale(self, names):
        """Drop cached expressions and idle locks of alarms no longer enabled."""
        with self._locks_guard:
            for name in [n for n in self._locks if n not in names]:
                if not self._locks[name].locked():
                    del self._locks[name]
        for name in [n for n in self._compiled if n not in names]:
            self._compiled.pop(name, None)

    # ── tick ─────────────────────────────────────────

    def run_once(self):
        """Evaluate every enabled alarm once."""
        alarms = [a for a in self.db.list_alarms(enabled_only=True) if a.enabled]
        self._forget_stale({a.name for a in alarms})
        if not alarms:
            return []

        if self.workers == 1 or len(alarms) == 1:
            results = [self.process(a) for a in alarms]
        else:
            with ThreadPoolExecutor(max_workers=min(self.workers, len(alarms))) as pool:
                results = list(pool.map(self.process, alarms))

        fired = sum(1 for r in results if r.outcome == TickOutcome.FIRED)
        failed = sum(1 for r in results if r.outcome == TickOutcome.ERROR)
        logger.info(f"Tick: {len(results)} alarms, {fired} fired, {failed} errors")
        return results
