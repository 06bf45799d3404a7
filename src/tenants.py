"""
Tenant registry.

Loads the static tenant (subdomain) configuration once at process start.
The registry is read-only afterwards and safe to share between threads.
"""

import json
import logging
import os
from typing import Any, Dict, Iterable, Iterator, List, Optional

from src.errors import ConfigError
from src.models import TenantConfig

logger = logging.getLogger(__name__)


def _ordered_unique(values: Iterable[str]) -> tuple:
    seen = set()
    result = []
    for value in values:
        cleaned = str(value).strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return tuple(result)


def _parse_tenant(raw: Dict[str, Any]) -> TenantConfig:
    key = str(raw.get("key", "")).strip()
    category = str(raw.get("category", "")).strip()
    if not key or not category:
        raise ConfigError(f"Tenant entry needs a key and a category: {raw!r}")
    keywords = _ordered_unique(raw.get("keywords", []))
    if not keywords:
        raise ConfigError(f"Tenant {key} has no keywords")
    return TenantConfig(
        key=key,
        topic_category=category,
        keywords=keywords,
        display_name=str(raw.get("displayName") or key.title()),
    )


class TenantRegistry:
    """Immutable mapping of tenant key to TenantConfig, in file order."""

    def __init__(self, tenants: Iterable[TenantConfig]):
        self._tenants: Dict[str, TenantConfig] = {}
        for tenant in tenants:
            if tenant.key in self._tenants:
                raise ConfigError(f"Duplicate tenant key: {tenant.key}")
            self._tenants[tenant.key] = tenant

    @classmethod
    def from_dicts(cls, entries: Iterable[Dict[str, Any]]) -> "TenantRegistry":
        return cls(_parse_tenant(entry) for entry in entries)

    @classmethod
    def from_file(cls, filename: str = "tenants.json") -> "TenantRegistry":
        """Loads tenants from a JSON file (relative paths resolve next to this module)."""
        path = filename
        if not os.path.isabs(path):
            path = os.path.join(os.path.dirname(os.path.abspath(__file__)), filename)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigError(f"Tenant file not found at {path}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Tenant file {path} is not valid JSON: {e}") from e

        registry = cls.from_dicts(data.get("tenants", []))
        logger.info("Loaded %d tenants from %s", len(registry), path)
        return registry

    def keys(self) -> List[str]:
        return list(self._tenants)

    def all(self) -> List[TenantConfig]:
        return list(self._tenants.values())

    def get(self, key: str) -> Optional[TenantConfig]:
        return self._tenants.get(key)

    def __len__(self) -> int:
        return len(self._tenants)

    def __iter__(self) -> Iterator[TenantConfig]:
        return iter(self._tenants.values())
