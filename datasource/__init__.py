"""Datasource registry: stored HTTP datasources plus in-process providers."""
import logging

from datasource.http import HTTPDataSource
from datasource.templates import ExpressionTemplates, load_templates
from models.errors import ConfigError, DataSourceError, NotFoundError
from models.resources import DataSource
from utils.http_client import HTTPClient

logger = logging.getLogger("autoscale.datasource")


class DataSourceRegistry:
    def __init__(self, db, client=None, templates=None):
        self.db = db
        self.client = client or HTTPClient()
        self.templates = ExpressionTemplates(db, templates)
        self._providers = {}

    def register(self, name, provider):
        """Register an in-process provider: ``provider(context) -> document``."""
        self._providers[name] = provider

    def add(self, ds: DataSource):
        if not ds.name or not ds.name.isidentifier():
            raise ConfigError(f"datasource name must be an identifier, got {ds.name!r}")
        if not ds.url:
            raise ConfigError(f"datasource {ds.name!r} needs a url")
        ds.method = (ds.method or "GET").upper()
        self.db.save_datasource(ds)
        logger.info(f"Saved datasource {ds.name}")
        return ds

    def get(self, name):
        ds = self.db.get_datasource(name)
        if ds is None:
            raise NotFoundError("datasource", name)
        return ds

    def list(self):
        return self.db.list_datasources()

    def remove(self, name):
        self.db.remove_datasource(name)
        logger.info(f"Removed datasource {name}")

    def fetch(self, name, context=None):
        """Fetch the document for ``name``; any failure is a DataSourceError."""
        provider = self._providers.get(name)
        if provider is not None:
            try:
                return provider(context or {})
            except DataSourceError:
                raise
            except Exception as e:
                raise DataSourceError(f"datasource {name!r}: {e}", datasource=name)
        ds = self.db.get_datasource(name)
        if ds is None:
            raise DataSourceError(f"datasource {name!r} not found", datasource=name)
        return HTTPDataSource(ds, self.client).fetch(context)


__all__ = ["DataSourceRegistry", "ExpressionTemplates", "HTTPDataSource", "load_templates"]
