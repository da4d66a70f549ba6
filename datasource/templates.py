"""Expression templates keyed by datasource name."""
import logging
from collections.abc import Mapping
from pathlib import Path

import yaml

logger = logging.getLogger("autoscale.datasource.templates")


def load_templates(path):
    """Read a ``{datasource: template}`` mapping from YAML."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Expression templates file not found: {path}")
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    templates = {}
    for name, template in (data.get("templates") or {}).items():
        if not isinstance(template, str) or not template.strip():
            logger.warning(f"Ignoring empty template for datasource {name}")
            continue
        templates[str(name)] = template.strip()
    logger.info(f"Loaded {len(templates)} expression templates")
    return templates


class ExpressionTemplates(Mapping):
    """Read-only view of templates: the datasource's own template wins over
    the file-configured one."""

    def __init__(self, db=None, defaults=None):
        self.db = db
        self.defaults = dict(defaults or {})

    def __getitem__(self, name):
        if self.db is not None:
            ds = self.db.get_datasource(name)
            if ds is not None and ds.expression_template:
                return ds.expression_template
        return self.defaults[name]

    def _names(self):
        names = set(self.defaults)
        if self.db is not None:
            names.update(ds.name for ds in self.db.list_datasources() if ds.expression_template)
        return sorted(names)

    def __iter__(self):
        return iter(self._names())

    def __len__(self):
        return len(self._names())
