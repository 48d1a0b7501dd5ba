"""
hotswap

Runtime for hot-swappable plugins inside a running host process.

This module provides:
- Plugin: Abstract base class for all plugins
- PluginMetadata: Plugin identity and start policy
- PluginGroup: Named category of plugins
- PluginRegistry: Group registration, plugin load/unload/reload
- CrashEscalationController: Crash containment and fatal shutdown
- EventSubscriptionProxy: Per-plugin ledger of host event subscriptions
- Host: Reference host (event emitter owning a registry)
- HotReloadWatcher: Automatic plugin reload on file changes
- Exception hierarchy for plugin errors

Example:
    from hotswap import Host, Plugin, PluginMetadata

    class JokePlugin(Plugin):
        @property
        def metadata(self):
            return PluginMetadata(name='joke', group_id='fun')

        def setup(self):
            self.events.on('message', self.handle_message)

        def handle_message(self, text):
            if text == '!joke':
                self.host.emit('reply', 'Knock knock')

    host = Host()
    host.plugins.register_group('fun', 'Fun', autostart=True)
    host.plugins.load_plugin(JokePlugin)
"""

from .base import Plugin
from .code_units import CodeUnit, CodeUnitLoader, ModuleCodeUnits
from .config import ConfigError, RuntimeConfig, configure_logger, load_config
from .crash import CrashEscalationController
from .errors import (
    DuplicatePluginError,
    GroupNotFoundError,
    GuardedError,
    NotLoadedError,
    PluginError,
    UnresolvableError,
    ValidationError,
)
from .event_proxy import EventSubscriptionProxy
from .group import PluginGroup
from .host import Host
from .hot_reload import HotReloadWatcher, ReloadHandler
from .keys import PluginKey
from .metadata import PluginMetadata
from .registry import PluginRegistry

__version__ = "1.0.0"

__all__ = [
    "Plugin",
    "PluginMetadata",
    "PluginGroup",
    "PluginKey",
    "PluginRegistry",
    "CrashEscalationController",
    "EventSubscriptionProxy",
    "CodeUnit",
    "CodeUnitLoader",
    "ModuleCodeUnits",
    "Host",
    "HotReloadWatcher",
    "ReloadHandler",
    "RuntimeConfig",
    "ConfigError",
    "configure_logger",
    "load_config",
    "PluginError",
    "ValidationError",
    "GroupNotFoundError",
    "DuplicatePluginError",
    "GuardedError",
    "NotLoadedError",
    "UnresolvableError",
]
