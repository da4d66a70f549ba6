"""SQLite database for storing alarms, events, datasources, actions and autoscales."""
import json
import sqlite3
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from models.alarm import Alarm, Event
from models.errors import ConfigError, NotFoundError
from models.resources import Action, DataSource
from models.wizard import AutoScale

logger = logging.getLogger("autoscale.db")


def _ts(value):
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_ts(value):
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class Database:
    def __init__(self, db_path="data/autoscale.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alarms (
                name TEXT PRIMARY KEY,
                expression TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 1,
                data_sources TEXT NOT NULL DEFAULT '[]',
                actions TEXT NOT NULL DEFAULT '[]',
                instance TEXT NOT NULL DEFAULT '',
                wait REAL NOT NULL DEFAULT 0,
                envs TEXT NOT NULL DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alarm_name TEXT NOT NULL,
                instance TEXT NOT NULL DEFAULT '',
                actions TEXT NOT NULL DEFAULT '[]',
                type TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                successful INTEGER NOT NULL DEFAULT 0,
                error TEXT NOT NULL DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_events_alarm_start
                ON events(alarm_name, start_time DESC);

            CREATE INDEX IF NOT EXISTS idx_events_instance_start
                ON events(instance, start_time DESC);

            CREATE TABLE IF NOT EXISTS datasources (
                name TEXT PRIMARY KEY,
                url TEXT NOT NULL,
                method TEXT NOT NULL DEFAULT 'GET',
                body TEXT NOT NULL DEFAULT '',
                headers TEXT NOT NULL DEFAULT '{}',
                expression_template TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS actions (
                name TEXT PRIMARY KEY,
                kind TEXT NOT NULL DEFAULT 'webhook',
                url TEXT NOT NULL DEFAULT '',
                method TEXT NOT NULL DEFAULT 'POST',
                body TEXT NOT NULL DEFAULT '',
                headers TEXT NOT NULL DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS autoscales (
                name TEXT PRIMARY KEY,
                config TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def _execute(self, query, params=()):
        with self._lock:
            cur = self.conn.execute(query, params)
            self.conn.commit()
            return cur

    def _fetchall(self, query, params=()):
        with self._lock:
            return self.conn.execute(query, params).fetchall()

    def _fetchone(self, query, params=()):
        with self._lock:
            return self.conn.execute(query, params).fetchone()

    # --- Alarms ---

    def save_alarm(self, alarm: Alarm):
        try:
            self._execute("""
                INSERT INTO alarms
                (name, expression, enabled, data_sources, actions, instance, wait, envs)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                alarm.name, alarm.expression, int(alarm.enabled),
                json.dumps(alarm.data_sources), json.dumps(alarm.actions),
                alarm.instance, alarm.wait, json.dumps(alarm.envs),
            ))
        except sqlite3.IntegrityError:
            raise ConfigError(f"alarm {alarm.name!r} already exists")
        logger.debug(f"Saved alarm {alarm.name}")

    def get_alarm(self, name):
        row = self._fetchone("SELECT * FROM alarms WHERE name = ?", (name,))
        return self._row_to_alarm(row) if row else None

    def list_alarms(self, enabled_only=False):
        query = "SELECT * FROM alarms"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY name ASC"
        return [self._row_to_alarm(r) for r in self._fetchall(query)]

    def set_alarm_enabled(self, name, enabled):
        cur = self._execute(
            "UPDATE alarms SET enabled = ? WHERE name = ?", (int(enabled), name)
        )
        if cur.rowcount == 0:
            raise NotFoundError("alarm", name)

    def remove_alarm(self, name):
        cur = self._execute("DELETE FROM alarms WHERE name = ?", (name,))
        if cur.rowcount == 0:
            raise NotFoundError("alarm", name)

    @staticmethod
    def _row_to_alarm(row):
        d = dict(row)
        d["data_sources"] = json.loads(d["data_sources"])
        d["actions"] = json.loads(d["actions"])
        d["envs"] = json.loads(d["envs"])
        return Alarm.from_dict(d)

    # --- Events ---

    def create_event(self, event: Event):
        cur = self._execute("""
            INSERT INTO events
            (alarm_name, instance, actions, type, start_time, end_time, successful, error)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.alarm_name, event.instance, json.dumps(event.actions), event.type,
            _ts(event.start_time), _ts(event.end_time), int(event.successful), event.error,
        ))
        event.id = cur.lastrowid
        return event

    def close_event(self, event: Event):
        """Persist the outcome of an event. Only an open event can be closed."""
        cur = self._execute("""
            UPDATE events SET end_time = ?, successful = ?, error = ?
            WHERE id = ? AND end_time IS NULL
        """, (_ts(event.end_time), int(event.successful), event.error, event.id))
        if cur.rowcount == 0:
            raise NotFoundError("open event", event.id)

    def get_event(self, event_id):
        row = self._fetchone("SELECT * FROM events WHERE id = ?", (event_id,))
        return self._row_to_event(row) if row else None

    def events_for_alarm(self, alarm_name, limit=None):
        query = """
            SELECT * FROM events WHERE alarm_name = ?
            ORDER BY start_time DESC, id DESC
        """
        params = [alarm_name]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        return [self._row_to_event(r) for r in self._fetchall(query, params)]

    def last_event(self, alarm_name):
        events = self.events_for_alarm(alarm_name, limit=1)
        return events[0] if events else None

    def events_for_instance(self, instance, actions=None, limit=200):
        query = "SELECT * FROM events WHERE instance = ?"
        params = [instance]
        if actions:
            placeholders = ", ".join("?" for _ in actions)
            query += f"""
                AND EXISTS (SELECT 1 FROM json_each(events.actions)
                            WHERE json_each.value IN ({placeholders}))
            """
            params.extend(actions)
        query += " ORDER BY start_time DESC, id DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_event(r) for r in self._fetchall(query, params)]

    def get_recent_events(self, limit=50):
        rows = self._fetchall(
            "SELECT * FROM events ORDER BY start_time DESC, id DESC LIMIT ?", (limit,)
        )
        return [self._row_to_event(r) for r in rows]

    def purge_events(self, alarm_name):
        cur = self._execute("DELETE FROM events WHERE alarm_name = ?", (alarm_name,))
        return cur.rowcount

    @staticmethod
    def _row_to_event(row):
        d = dict(row)
        return Event(
            id=d["id"],
            alarm_name=d["alarm_name"],
            instance=d["instance"],
            actions=json.loads(d["actions"]),
            type=d["type"],
            start_time=_parse_ts(d["start_time"]),
            end_time=_parse_ts(d["end_time"]),
            successful=bool(d["successful"]),
            error=d["error"] or "",
        )

    # --- Datasources ---

    def save_datasource(self, ds: DataSource):
        self._execute("""
            INSERT OR REPLACE INTO datasources
            (name, url, method, body, headers, expression_template)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (ds.name, ds.url, ds.method, ds.body, json.dumps(ds.headers), ds.expression_template))

    def get_datasource(self, name):
        row = self._fetchone("SELECT * FROM datasources WHERE name = ?", (name,))
        if row is None:
            return None
        d = dict(row)
        d["headers"] = json.loads(d["headers"])
        return DataSource(**d)

    def list_datasources(self):
        rows = self._fetchall("SELECT name FROM datasources ORDER BY name ASC")
        return [self.get_datasource(r["name"]) for r in rows]

    def remove_datasource(self, name):
        cur = self._execute("DELETE FROM datasources WHERE name = ?", (name,))
        if cur.rowcount == 0:
            raise NotFoundError("datasource", name)

    # --- Actions ---

    def save_action(self, action: Action):
        self._execute("""
            INSERT OR REPLACE INTO actions (name, kind, url, method, body, headers)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (action.name, action.kind, action.url, action.method, action.body,
              json.dumps(action.headers)))

    def get_action(self, name):
        row = self._fetchone("SELECT * FROM actions WHERE name = ?", (name,))
        if row is None:
            return None
        d = dict(row)
        d["headers"] = json.loads(d["headers"])
        return Action(**d)

    def list_actions(self):
        rows = self._fetchall("SELECT name FROM actions ORDER BY name ASC")
        return [self.get_action(r["name"]) for r in rows]

    def remove_action(self, name):
        cur = self._execute("DELETE FROM actions WHERE name = ?", (name,))
        if cur.rowcount == 0:
            raise NotFoundError("action", name)

    # --- Autoscales ---

    def insert_autoscale(self, autoscale: AutoScale):
        now = datetime.now(timezone.utc).isoformat()
        try:
            self._execute("""
                INSERT INTO autoscales (name, config, created_at, updated_at)
                VALUES (?, ?, ?, ?)
            """, (autoscale.name, json.dumps(autoscale.to_dict()), now, now))
        except sqlite3.IntegrityError:
            raise ConfigError(f"autoscale {autoscale.name!r} already exists")

    def update_autoscale(self, autoscale: AutoScale):
        cur = self._execute("""
            UPDATE autoscales SET config = ?, updated_at = ? WHERE name = ?
        """, (json.dumps(autoscale.to_dict()), datetime.now(timezone.utc).isoformat(),
              autoscale.name))
        if cur.rowcount == 0:
            raise NotFoundError("autoscale", autoscale.name)

    def get_autoscale(self, name):
        row = self._fetchone("SELECT config FROM autoscales WHERE name = ?", (name,))
        return AutoScale.from_dict(json.loads(row["config"])) if row else None

    def list_autoscales(self):
        rows = self._fetchall("SELECT config FROM autoscales ORDER BY name ASC")
        return [AutoScale.from_dict(json.loads(r["config"])) for r in rows]

    def remove_autoscale(self, name):
        cur = self._execute("DELETE FROM autoscales WHERE name = ?", (name,))
        if cur.rowcount == 0:
            raise NotFoundError("autoscale", name)
