"""Webhook action: call an HTTP endpoint with the alarm's instance and envs."""
import json
import logging

from models.errors import DispatchError
from models.resources import DispatchResult
from utils.http_client import APIError, HTTPClient
from utils.templating import substitute

logger = logging.getLogger("autoscale.actions.webhook")


class WebhookDispatcher:
    """Calls ``action.url``.

    ``{instance}``, ``{action}`` and any ``{<env>}`` placeholder in the url,
    body and header values are substituted. With no body configured a JSON
    document ``{"action", "instance", "envs"}`` is sent.
    """

    def __init__(self, client=None):
        self.client = client or HTTPClient(max_retries=0)

    def dispatch(self, action, instance, envs):
        values = dict(envs or {})
        values["instance"] = instance
        values["action"] = action.name
        url = substitute(action.url, values)
        headers = {k: substitute(v, values) for k, v in (action.headers or {}).items()}
        if action.body:
            body = substitute(action.body, values)
        else:
            body = json.dumps({"action": action.name, "instance": instance, "envs": envs or {}})
            headers.setdefault("Content-Type", "application/json")

        if not url:
            raise DispatchError(f"action {action.name!r} has no url")
        try:
            self.client.request(action.method or "POST", url, body=body, headers=headers)
        except APIError as e:
            raise DispatchError(str(e))
        logger.info(f"Webhook {action.name} called for {instance}")
        return DispatchResult()
