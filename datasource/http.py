"""HTTP datasource: fetch a JSON document described by a DataSource record."""
import logging

from models.errors import DataSourceError
from utils.http_client import APIError, HTTPClient
from utils.templating import substitute

logger = logging.getLogger("autoscale.datasource.http")


class HTTPDataSource:
    def __init__(self, datasource, client=None):
        self.datasource = datasource
        self.client = client or HTTPClient()

    def fetch(self, context=None):
        """Fetch the document, substituting ``{key}`` placeholders from context."""
        context = context or {}
        ds = self.datasource
        url = substitute(ds.url, context)
        body = substitute(ds.body, context)
        headers = {k: substitute(v, context) for k, v in (ds.headers or {}).items()}
        try:
            data = self.client.request_json(ds.method or "GET", url, body=body, headers=headers)
        except APIError as e:
            raise DataSourceError(f"datasource {ds.name!r}: {e}", datasource=ds.name)
        logger.debug(f"Fetched datasource {ds.name} from {url}")
        return data
