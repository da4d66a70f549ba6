"""
Flask JSON API for managing autoscales, alarms, datasources and actions.

  GET    /healthcheck
  GET    /api/autoscale                 list autoscale configurations
  POST   /api/autoscale                 create one (compiles two alarms)
  GET    /api/autoscale/<name>
  PUT    /api/autoscale/<name>          replace
  DELETE /api/autoscale/<name>          remove (events are kept)
  POST   /api/autoscale/<name>/enable
  POST   /api/autoscale/<name>/disable
  GET    /api/autoscale/<name>/events   newest first, at most 200
  GET    /api/alarm
  GET    /api/alarm/<name>/events
  GET    /api/datasource   POST /api/datasource
  GET    /api/action       POST /api/action

Started via: python main.py web [--port 8080] [--host 0.0.0.0]
"""
import logging

from flask import Flask, jsonify, request

from models.errors import AutoScaleError, ConfigError, NotFoundError
from models.resources import Action, DataSource
from models.wizard import AutoScale

logger = logging.getLogger("autoscale.web.app")


def create_app(config: dict, engines: dict) -> Flask:
    """
    Factory function. Receives initialized components from main.py.

    Args:
        config: Application config dict
        engines: dict with db, alarms, wizard, datasources and actions
    """
    app = Flask(__name__)
    wizard = engines["wizard"]
    alarms = engines["alarms"]
    datasources = engines["datasources"]
    actions = engines["actions"]

    @app.errorhandler(AutoScaleError)
    def handle_error(e):
        if isinstance(e, NotFoundError):
            status = 404
        elif isinstance(e, ConfigError):
            status = 400
        else:
            status = 500
            logger.error(f"{request.method} {request.path} failed: {e}")
        return jsonify({"error": str(e)}), status

    def _json_body():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ConfigError("request body must be a JSON object")
        return data

    def _limit(default):
        try:
            return max(1, int(request.args.get("limit", default)))
        except ValueError:
            raise ConfigError("limit must be an integer")

    @app.route("/healthcheck")
    def healthcheck():
        return "WORKING"

    # ─── Autoscale ───────────────────────────────────────

    @app.route("/api/autoscale", methods=["GET"])
    def autoscale_list():
        return jsonify([wizard.to_dict(a) for a in wizard.list()])

    @app.route("/api/autoscale", methods=["POST"])
    def autoscale_create():
        autoscale = AutoScale.from_dict(_json_body())
        wizard.create(autoscale)
        return jsonify(wizard.to_dict(autoscale)), 201

    @app.route("/api/autoscale/<name>", methods=["GET"])
    def autoscale_show(name):
        return jsonify(wizard.to_dict(wizard.find_by_name(name)))

    @app.route("/api/autoscale/<name>", methods=["PUT"])
    def autoscale_update(name):
        data = _json_body()
        data["name"] = name
        autoscale = AutoScale.from_dict(data)
        wizard.update(autoscale)
        return jsonify(wizard.to_dict(autoscale))

    @app.route("/api/autoscale/<name>", methods=["DELETE"])
    def autoscale_remove(name):
        wizard.remove(name)
        return "", 204

    @app.route("/api/autoscale/<name>/enable", methods=["POST"])
    def autoscale_enable(name):
        wizard.enable(name)
        return jsonify({"name": name, "enabled": True})

    @app.route("/api/autoscale/<name>/disable", methods=["POST"])
    def autoscale_disable(name):
        wizard.disable(name)
        return jsonify({"name": name, "enabled": False})

    @app.route("/api/autoscale/<name>/events")
    def autoscale_events(name):
        events = wizard.events(name, limit=_limit(wizard.events_limit))
        return jsonify([e.to_dict() for e in events])

    # ─── Alarms ──────────────────────────────────────────

    @app.route("/api/alarm")
    def alarm_list():
        return jsonify([a.to_dict() for a in alarms.list()])

    @app.route("/api/alarm/<name>/events")
    def alarm_events(name):
        alarms.find_by_name(name)
        events = alarms.events(name, limit=_limit(50))
        return jsonify([e.to_dict() for e in events])

    # ─── Datasources & actions ───────────────────────────

    @app.route("/api/datasource", methods=["GET"])
    def datasource_list():
        return jsonify([d.to_dict() for d in datasources.list()])

    @app.route("/api/datasource", methods=["POST"])
    def datasource_create():
        data = _json_body()
        ds = DataSource(
            name=data.get("name", ""),
            url=data.get("url", ""),
            method=data.get("method", "GET"),
            body=data.get("body", ""),
            headers=data.get("headers") or {},
            expression_template=data.get("expression_template", ""),
        )
        datasources.add(ds)
        return jsonify(ds.to_dict()), 201

    @app.route("/api/action", methods=["GET"])
    def action_list():
        return jsonify([a.to_dict() for a in actions.list()])

    @app.route("/api/action", methods=["POST"])
    def action_create():
        data = _json_body()
        action = Action(
            name=data.get("name", ""),
            kind=data.get("kind", "webhook"),
            url=data.get("url", ""),
            method=data.get("method", "POST"),
            body=data.get("body", ""),
            headers=data.get("headers") or {},
        )
        actions.add(action)
        return jsonify(action.to_dict()), 201

    return app
