#!/usr/bin/env python3
"""Autoscale - CLI Entry Point."""
import sys
import json
import logging
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from __version__ import __version__

console = Console()
logger = logging.getLogger("autoscale.cli")


def init_components(config):
    """Wire database, registries, engine and wizard from a loaded config."""
    from config import resolve_path
    from models.database import Database
    from utils.http_client import HTTPClient
    from datasource import DataSourceRegistry, load_templates
    from actions import ActionRegistry
    from alarms.manager import AlarmManager
    from alarms.engine import AutoScaleEngine
    from wizard.autoscale import AutoScaleWizard

    db = Database(config["database"]["path"])
    db.connect()

    http_cfg = config.get("http", {})
    client = HTTPClient(timeout=http_cfg.get("timeout", 30), max_retries=http_cfg.get("max_retries", 2))

    templates = load_templates(resolve_path(config["templates"]["path"]))
    datasources = DataSourceRegistry(db, client, templates)
    actions = ActionRegistry(db, HTTPClient(timeout=http_cfg.get("timeout", 30), max_retries=0))
    alarms = AlarmManager(db)

    scale_cfg = config["autoscale"]
    engine = AutoScaleEngine(
        db, datasources, actions,
        dispatch_timeout=scale_cfg["dispatch_timeout"],
        workers=scale_cfg["workers"],
    )
    wizard = AutoScaleWizard(db, alarms, datasources.templates,
                             events_limit=scale_cfg.get("events_limit", 200))

    return {
        "config": config, "db": db, "datasources": datasources, "actions": actions,
        "alarms": alarms, "engine": engine, "wizard": wizard,
    }


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))
    return init_components(config)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="autoscale")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Autoscale - alarm-driven scale up / scale down for application units."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _fail(err):
    console.print(f"[red]✗[/red] {escape(str(err))}")
    raise SystemExit(1)


def _events_table(events, title):
    from utils.formatters import format_event_status, format_timestamp

    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Alarm")
    table.add_column("Type")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Status")
    table.add_column("Error")
    for e in events:
        table.add_row(str(e.id), e.alarm_name, e.type, format_timestamp(e.start_time),
                      format_timestamp(e.end_time), format_event_status(e), e.error)
    return table


# ──────────────────────────────────────────────────────
# LOOP
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--interval", default=None, type=int, help="Seconds between ticks (default: config)")
@click.pass_context
def run(ctx, interval):
    """Run the autoscale loop until interrupted."""
    from alarms.scheduler import AutoScaleScheduler

    c = _get_components(ctx)
    interval = interval or c["config"]["autoscale"]["interval"]
    scheduler = AutoScaleScheduler(c["engine"], interval_seconds=interval)
    console.print(f"[bold]Autoscale loop[/bold] every {interval}s. Press Ctrl+C to stop.")
    scheduler.start()
    try:
        scheduler.join()
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        scheduler.stop()
        c["db"].close()


@cli.command()
@click.pass_context
def tick(ctx):
    """Evaluate every enabled alarm once."""
    c = _get_components(ctx)
    results = c["engine"].run_once()
    if not results:
        console.print("No enabled alarms.")
        return
    table = Table(title="Tick", show_header=True)
    table.add_column("Alarm")
    table.add_column("Outcome")
    table.add_column("Detail")
    colors = {"fired": "green", "error": "red", "cooldown": "yellow"}
    for r in results:
        outcome = r.outcome.value
        color = colors.get(outcome, "white")
        detail = r.error and f"{r.phase}: {r.error}"
        if r.event is not None:
            detail = "ok" if r.event.successful else r.event.error
        table.add_row(r.alarm_name, f"[{color}]{outcome}[/{color}]", detail or "")
    console.print(table)


# ──────────────────────────────────────────────────────
# ALARMS
# ──────────────────────────────────────────────────────
@cli.group()
def alarm():
    """Inspect and manage alarms."""
    pass


@alarm.command("list")
@click.pass_context
def alarm_list(ctx):
    """List all alarms."""
    from utils.formatters import format_duration

    c = _get_components(ctx)
    table = Table(title="Alarms", show_header=True)
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Instance")
    table.add_column("Actions")
    table.add_column("Wait")
    table.add_column("Datasources", style="dim")
    for a in c["alarms"].list():
        enabled = "[green]yes[/green]" if a.enabled else "[red]no[/red]"
        table.add_row(a.name, enabled, a.instance, ", ".join(a.actions),
                      format_duration(a.wait), ", ".join(a.data_sources))
    console.print(table)


@alarm.command("show")
@click.argument("name")
@click.pass_context
def alarm_show(ctx, name):
    """Show one alarm as JSON."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        console.print_json(json.dumps(c["alarms"].find_by_name(name).to_dict()))
    except AutoScaleError as e:
        _fail(e)


@alarm.command("check")
@click.argument("name")
@click.pass_context
def alarm_check(ctx, name):
    """Evaluate an alarm's expression now, without firing."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        a = c["alarms"].find_by_name(name)
        result = c["engine"].check(a)
        wait = c["engine"].should_wait(a)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"{name}: condition [bold]{result}[/bold], "
                  f"{'cooling down' if wait else 'eligible to fire'}")


@alarm.command("enable")
@click.argument("name")
@click.pass_context
def alarm_enable(ctx, name):
    """Enable an alarm."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["alarms"].enable(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Alarm {name} enabled")


@alarm.command("disable")
@click.argument("name")
@click.pass_context
def alarm_disable(ctx, name):
    """Disable an alarm."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["alarms"].disable(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Alarm {name} disabled")


@alarm.command("remove")
@click.argument("name")
@click.pass_context
def alarm_remove(ctx, name):
    """Remove an alarm (its events are kept)."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["alarms"].remove(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Alarm {name} removed")


@alarm.command("events")
@click.argument("name")
@click.option("--limit", default=20, type=int, help="Number of events")
@click.pass_context
def alarm_events(ctx, name, limit):
    """Show an alarm's events, newest first."""
    c = _get_components(ctx)
    console.print(_events_table(c["alarms"].events(name, limit=limit), f"Events: {name}"))


@alarm.command("purge-events")
@click.argument("name")
@click.confirmation_option(prompt="Delete all events for this alarm?")
@click.pass_context
def alarm_purge_events(ctx, name):
    """Delete an alarm's event history."""
    c = _get_components(ctx)
    count = c["alarms"].purge_events(name)
    console.print(f"[green]✓[/green] Deleted {count} events")


# ──────────────────────────────────────────────────────
# AUTOSCALE (wizard)
# ──────────────────────────────────────────────────────
@cli.group()
def autoscale():
    """Create and manage scale-up / scale-down pairs."""
    pass


def _autoscale_options(f):
    options = [
        click.option("--process", default="", help="Process name (default: web)"),
        click.option("--min-units", default=1, type=int, help="Never scale below this"),
        click.option("--max-units", default=0, type=int, help="Never scale above this (0: no limit)"),
        click.option("--up-metric", required=True, help="Scale-up datasource / metric"),
        click.option("--up-operator", default=">", help="Scale-up comparison operator"),
        click.option("--up-value", required=True, help="Scale-up threshold"),
        click.option("--up-step", default="1", help="Units added per scale-up"),
        click.option("--up-wait", default=300, type=float, help="Scale-up cooldown (seconds)"),
        click.option("--up-aggregator", default="max", help="Scale-up aggregator"),
        click.option("--down-metric", required=True, help="Scale-down datasource / metric"),
        click.option("--down-operator", default="<", help="Scale-down comparison operator"),
        click.option("--down-value", required=True, help="Scale-down threshold"),
        click.option("--down-step", default="1", help="Units removed per scale-down"),
        click.option("--down-wait", default=300, type=float, help="Scale-down cooldown (seconds)"),
        click.option("--down-aggregator", default="max", help="Scale-down aggregator"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _autoscale_from_options(name, opts):
    from models.wizard import AutoScale, ScaleAction

    return AutoScale(
        name=name,
        process=opts["process"],
        min_units=opts["min_units"],
        max_units=opts["max_units"],
        scale_up=ScaleAction(
            aggregator=opts["up_aggregator"], metric=opts["up_metric"],
            operator=opts["up_operator"], value=opts["up_value"],
            step=opts["up_step"], wait=opts["up_wait"],
        ),
        scale_down=ScaleAction(
            aggregator=opts["down_aggregator"], metric=opts["down_metric"],
            operator=opts["down_operator"], value=opts["down_value"],
            step=opts["down_step"], wait=opts["down_wait"],
        ),
    )


@autoscale.command("create")
@click.argument("name")
@_autoscale_options
@click.pass_context
def autoscale_create(ctx, name, **opts):
    """Create an autoscale and its two alarms."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    a = _autoscale_from_options(name, opts)
    try:
        c["wizard"].create(a)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Autoscale {name} created: {', '.join(a.alarm_names())}")


@autoscale.command("update")
@click.argument("name")
@_autoscale_options
@click.pass_context
def autoscale_update(ctx, name, **opts):
    """Replace an autoscale's configuration."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["wizard"].update(_autoscale_from_options(name, opts))
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Autoscale {name} updated")


@autoscale.command("list")
@click.pass_context
def autoscale_list(ctx):
    """List autoscale configurations."""
    c = _get_components(ctx)
    wizard = c["wizard"]
    table = Table(title="Autoscales", show_header=True)
    table.add_column("Name")
    table.add_column("Process")
    table.add_column("Units")
    table.add_column("Scale up")
    table.add_column("Scale down")
    table.add_column("Enabled")
    for a in wizard.list():
        up, down = a.scale_up, a.scale_down
        units = f"{a.min_units}..{a.max_units or '∞'}"
        enabled = "[green]yes[/green]" if wizard.enabled(a) else "[red]no[/red]"
        table.add_row(a.name, a.process_name, units,
                      f"{up.metric} {up.operator} {up.value} (+{up.step})",
                      f"{down.metric} {down.operator} {down.value} (-{down.step})",
                      enabled)
    console.print(table)


@autoscale.command("show")
@click.argument("name")
@click.pass_context
def autoscale_show(ctx, name):
    """Show an autoscale configuration as JSON."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        a = c["wizard"].find_by_name(name)
    except AutoScaleError as e:
        _fail(e)
    console.print_json(json.dumps(c["wizard"].to_dict(a)))


@autoscale.command("remove")
@click.argument("name")
@click.pass_context
def autoscale_remove(ctx, name):
    """Remove an autoscale and both alarms (events are kept)."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["wizard"].remove(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Autoscale {name} removed")


@autoscale.command("enable")
@click.argument("name")
@click.pass_context
def autoscale_enable(ctx, name):
    """Enable both alarms of an autoscale."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["wizard"].enable(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Autoscale {name} enabled")


@autoscale.command("disable")
@click.argument("name")
@click.pass_context
def autoscale_disable(ctx, name):
    """Disable both alarms of an autoscale."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["wizard"].disable(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Autoscale {name} disabled")


@autoscale.command("events")
@click.argument("name")
@click.option("--limit", default=200, type=int, help="Number of events (max 200)")
@click.pass_context
def autoscale_events(ctx, name, limit):
    """Show scale events for an autoscale, newest first."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        events = c["wizard"].events(name, limit=limit)
    except AutoScaleError as e:
        _fail(e)
    console.print(_events_table(events, f"Scale events: {name}"))


# ──────────────────────────────────────────────────────
# DATASOURCES
# ──────────────────────────────────────────────────────
@cli.group()
def datasource():
    """Manage metric datasources."""
    pass


@datasource.command("add")
@click.argument("name")
@click.option("--url", required=True, help="URL; {key} placeholders come from alarm envs")
@click.option("--method", default="GET", help="HTTP method")
@click.option("--body", default="", help="Request body template")
@click.option("--header", "headers", multiple=True, help="Header as Key:Value (repeatable)")
@click.option("--template", default="", help="Expression template used by the wizard")
@click.pass_context
def datasource_add(ctx, name, url, method, body, headers, template):
    """Add or replace a datasource."""
    from models.errors import AutoScaleError
    from models.resources import DataSource

    c = _get_components(ctx)
    ds = DataSource(name=name, url=url, method=method, body=body,
                    headers=_parse_headers(headers), expression_template=template)
    try:
        c["datasources"].add(ds)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Datasource {name} saved")


@datasource.command("list")
@click.pass_context
def datasource_list(ctx):
    """List datasources."""
    c = _get_components(ctx)
    table = Table(title="Datasources", show_header=True)
    table.add_column("Name")
    table.add_column("Method")
    table.add_column("URL")
    table.add_column("Template", style="dim")
    for ds in c["datasources"].list():
        table.add_row(ds.name, ds.method, ds.url, ds.expression_template)
    console.print(table)


@datasource.command("remove")
@click.argument("name")
@click.pass_context
def datasource_remove(ctx, name):
    """Remove a datasource."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["datasources"].remove(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Datasource {name} removed")


# ──────────────────────────────────────────────────────
# ACTIONS
# ──────────────────────────────────────────────────────
@cli.group()
def action():
    """Manage remediation actions."""
    pass


@action.command("add")
@click.argument("name")
@click.option("--kind", default="webhook", type=click.Choice(["webhook", "log"]))
@click.option("--url", default="", help="Webhook URL; {instance} and env placeholders allowed")
@click.option("--method", default="POST", help="HTTP method")
@click.option("--body", default="", help="Request body template")
@click.option("--header", "headers", multiple=True, help="Header as Key:Value (repeatable)")
@click.pass_context
def action_add(ctx, name, kind, url, method, body, headers):
    """Add or replace an action."""
    from models.errors import AutoScaleError
    from models.resources import Action

    c = _get_components(ctx)
    a = Action(name=name, kind=kind, url=url, method=method, body=body,
               headers=_parse_headers(headers))
    try:
        c["actions"].add(a)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Action {name} saved")


@action.command("list")
@click.pass_context
def action_list(ctx):
    """List actions."""
    c = _get_components(ctx)
    table = Table(title="Actions", show_header=True)
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Method")
    table.add_column("URL")
    for a in c["actions"].list():
        table.add_row(a.name, a.kind, a.method, a.url)
    console.print(table)


@action.command("remove")
@click.argument("name")
@click.pass_context
def action_remove(ctx, name):
    """Remove an action."""
    from models.errors import AutoScaleError

    c = _get_components(ctx)
    try:
        c["actions"].remove(name)
    except AutoScaleError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Action {name} removed")


def _parse_headers(values):
    headers = {}
    for raw in values:
        if ":" not in raw:
            raise click.BadParameter(f"expected Key:Value, got {raw!r}", param_hint="--header")
        key, _, value = raw.partition(":")
        headers[key.strip()] = value.strip()
    return headers


# ──────────────────────────────────────────────────────
# WEB
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--host", default=None, type=str, help="Host to bind to")
@click.option("--with-loop", is_flag=True, help="Also run the autoscale loop in the background")
@click.pass_context
def web(ctx, port, host, with_loop):
    """Launch the JSON API."""
    from web.app import create_app

    c = _get_components(ctx)
    web_cfg = c["config"].get("web", {})
    port = port or web_cfg.get("port", 8080)
    host = host or web_cfg.get("host", "0.0.0.0")

    scheduler = None
    if with_loop:
        from alarms.scheduler import AutoScaleScheduler
        scheduler = AutoScaleScheduler(c["engine"], c["config"]["autoscale"]["interval"])
        scheduler.start()

    app = create_app(c["config"], c)
    console.print(f"\n[bold]Autoscale API[/bold] on http://{host}:{port}\n")
    try:
        app.run(host=host, port=port, debug=False)
    finally:
        if scheduler is not None:
            scheduler.stop()


if __name__ == "__main__":
    cli()
