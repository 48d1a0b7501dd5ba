"""
hotswap/host.py

Synchronous event emitter that hosts a PluginRegistry.
"""

import collections
import logging
from typing import Callable, Optional

from .config import RuntimeConfig
from .hot_reload import HotReloadWatcher
from .registry import PluginRegistry


class Host:
    """
    Host process object owning the event bus and the plugin registry.

    Attributes
    ----------
    plugins : `hotswap.registry.PluginRegistry`
        Plugin registry.
    config : `hotswap.config.RuntimeConfig`
        Runtime settings.
    handlers : `collections.defaultdict` of (`str`, `list` of `function`)
        Event handlers.
    destroyed : `bool`
        Whether destroy() has been called.

    Example:
        host = Host()
        host.plugins.register_group('fun', 'Fun', autostart=True)
        host.plugins.load_plugin(JokePlugin)
        host.emit('ready')
    """

    def __init__(self, config: Optional[RuntimeConfig] = None, code_units=None,
                 logger: Optional[logging.Logger] = None):
        self.config = config or RuntimeConfig()
        self.logger = logger or logging.getLogger("hotswap.host")
        self.handlers = collections.defaultdict(list)
        self.destroyed = False
        self.hot_reload = None

        self.on('debug', self._on_debug)
        self.on('warn', self._on_warn)

        self.plugins = PluginRegistry(self, code_units=code_units)
        self.plugins.crash_controller.grace_period = self.config.fatal_grace_period

    def _on_debug(self, message):
        self.logger.debug(message)

    def _on_warn(self, message):
        self.logger.warning(message)

    def on(self, event, *handlers):
        """Add event handlers.

        Parameters
        ----------
        event : `str`
            Event name.
        handlers : `list` of `function`
            Event handlers.
        """
        ev_handlers = self.handlers[event]
        for handler in handlers:
            if handler not in ev_handlers:
                ev_handlers.append(handler)
            else:
                self.logger.warning('on: handler exists: %s %s', event, handler)
        return self

    def once(self, event, handler: Callable):
        """Add a handler that is removed after its first call.

        Parameters
        ----------
        event : `str`
            Event name.
        handler : `function`
            Event handler; also the key for off().
        """
        def once_wrapper(*args):
            # Remove this registration only, not an on() of the same handler
            ev_handlers = self.handlers.get(event, [])
            if once_wrapper in ev_handlers:
                ev_handlers.remove(once_wrapper)
            return handler(*args)

        once_wrapper.__wrapped__ = handler
        self.handlers[event].append(once_wrapper)
        return self

    def off(self, event, *handlers):
        """Remove event handlers.

        Parameters
        ----------
        event : `str`
            Event name.
        handlers : `list` of `function`
            Event handlers, as passed to on() or once().
        """
        ev_handlers = self.handlers.get(event, [])
        for handler in handlers:
            for registered in ev_handlers:
                if registered is handler or getattr(registered, '__wrapped__', None) is handler:
                    ev_handlers.remove(registered)
                    break
            else:
                self.logger.debug('off: handler not found: %s %s', event, handler)
        return self

    def emit(self, event, *args) -> bool:
        """Call every handler of an event.

        A failing handler is logged and the remaining handlers still run.

        Returns
        -------
        `bool`
            Whether any handler was called.
        """
        handlers = list(self.handlers.get(event, ()))
        for handler in handlers:
            # Removed by an earlier handler of this same event
            if handler not in self.handlers.get(event, ()):
                continue
            try:
                handler(*args)
            except Exception as e:
                self.logger.error(f"Error in handler for '{event}': {e}", exc_info=True)
        return bool(handlers)

    def listener_count(self, event) -> int:
        return len(self.handlers.get(event, ()))

    def enable_hot_reload(self):
        """Start watching loaded plugin sources (needs a running event loop)."""
        if self.hot_reload is None:
            self.hot_reload = HotReloadWatcher(
                self.plugins,
                enabled=True,
                debounce_delay=self.config.hot_reload_delay,
            )
        return self.hot_reload

    def configure_hot_reload(self):
        """Enable hot reload if the config asks for it."""
        if not self.config.hot_reload:
            return None
        return self.enable_hot_reload()

    def destroy(self):
        """Shut the host down. Safe to call more than once."""
        if self.destroyed:
            return
        self.destroyed = True
        self.logger.info('Destroying host')

        self.emit('destroy')
        if self.hot_reload is not None:
            self.hot_reload.stop()
            self.hot_reload = None
        self.handlers.clear()

    def __repr__(self):
        state = 'destroyed' if self.destroyed else 'running'
        return f'<Host: {state}, {self.plugins!r}>'
