"""
Plugins loader: resolves configured plugin entries and registers them with the host.
- Each entry is a dotted path "package.module:attribute" pointing at a
  ServicePlugin, a ClientPlugin or a PluginPair.
"""
from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..core.config import get_settings_instance
from ..core.exceptions import PluginRegistrationError
from .base import ClientPlugin, PluginDefinition, PluginPair, ServicePlugin
from .runtime import PluginHost

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PluginRecord:
    entry: str  # dotted path "package.module:attribute"
    definitions: tuple[PluginDefinition, ...]


class PluginLoader:
    def __init__(self, entries: Iterable[str] | None = None):
        if entries is None:
            entries = get_settings_instance().plugin_modules
        self.entries = tuple(entries)

    def resolve(self, entry: str) -> PluginRecord:
        module_path, sep, attr = entry.partition(":")
        if not sep or not module_path or not attr:
            raise PluginRegistrationError(
                f"Invalid plugin entry '{entry}': expected 'package.module:attribute'",
                details={"entry": entry},
            )
        try:
            mod = importlib.import_module(module_path)
        except ImportError as e:
            raise PluginRegistrationError(
                f"Cannot import plugin module '{module_path}': {e}",
                details={"entry": entry},
            ) from e
        try:
            target: Any = getattr(mod, attr)
        except AttributeError as e:
            raise PluginRegistrationError(
                f"Module '{module_path}' has no attribute '{attr}'",
                details={"entry": entry},
            ) from e

        if isinstance(target, PluginPair):
            definitions: tuple[PluginDefinition, ...] = tuple(target)
        elif isinstance(target, (ServicePlugin, ClientPlugin)):
            definitions = (target,)
        else:
            raise PluginRegistrationError(
                f"Entry '{entry}' is not a plugin definition or pair",
                details={"entry": entry, "type": type(target).__name__},
            )
        return PluginRecord(entry=entry, definitions=definitions)

    def discover(self) -> list[PluginRecord]:
        return [self.resolve(entry) for entry in self.entries]

    def load_into(self, host: PluginHost, overrides: Mapping[str, Mapping[str, Any]] | None = None) -> list[str]:
        """Register every configured definition; ``overrides`` is keyed by plugin id."""
        overrides = overrides or {}
        registered: list[str] = []
        for record in self.discover():
            for definition in record.definitions:
                host.register(definition, overrides.get(definition.id))
                registered.append(definition.id)
            logger.info("Loaded plugin entry %s (%d definitions)", record.entry, len(record.definitions))
        return registered
