"""
hotswap/base.py

Abstract plugin base class.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .metadata import PluginMetadata


class Plugin(ABC):
    """
    Abstract base class for hot-swappable plugins.

    Plugins are constructed by the PluginRegistry, never by hand. Each
    instance receives a private EventSubscriptionProxy; every host event
    subscription made through it is cancelled when the plugin is torn down.

    Lifecycle:
        1. __init__() - Construct plugin (fast, no I/O)
        2. start() - Runs setup(), plugin is now started
        3. [plugin runs, handles host events]
        4. destroy() - Runs teardown(), subscriptions are cancelled

    Attributes:
        events: EventSubscriptionProxy for host event subscriptions
        group: Owning PluginGroup (set by the registry on load)
        logger: Logger instance for this plugin

    Example:
        class JokePlugin(Plugin):
            @property
            def metadata(self):
                return PluginMetadata(name='joke', group_id='fun')

            def setup(self):
                self.events.on('message', self.handle_message)

            def handle_message(self, message):
                if message == '!joke':
                    self.host.emit('reply', 'Knock knock')
    """

    def __init__(self, events):
        """
        Initialize plugin.

        Args:
            events: EventSubscriptionProxy bound to this plugin
        """
        self.events = events
        self.group = None
        self.logger = logging.getLogger(f"plugin.{self.group_id}.{self.name}")
        self._started = False
        self._destroyed = False

    @property
    @abstractmethod
    def metadata(self) -> PluginMetadata:
        """
        Plugin metadata (name, group, guarded, autostart, start_on).

        This should return a constant PluginMetadata instance.
        """

    # =================================================================
    # Identity
    # =================================================================

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def group_id(self) -> str:
        return self.metadata.group_id

    @property
    def guarded(self) -> bool:
        return self.metadata.guarded

    @property
    def autostart(self) -> Optional[bool]:
        return self.metadata.autostart

    @property
    def start_on(self) -> List[str]:
        return self.metadata.start_on

    @property
    def identifier(self) -> str:
        return self.metadata.identifier

    @property
    def started(self) -> bool:
        """Whether the plugin is currently running."""
        return self._started

    @property
    def destroyed(self) -> bool:
        """Whether teardown has run; a destroyed plugin never starts again."""
        return self._destroyed

    @property
    def host(self):
        return self.events.host

    @property
    def registry(self):
        return self.events.registry

    # =================================================================
    # Lifecycle Hooks
    # =================================================================

    def setup(self) -> None:
        """
        Called when the plugin starts.

        Register host event handlers through self.events here.
        """

    def teardown(self) -> None:
        """
        Called when the plugin is destroyed.

        Exceptions raised here are not swallowed: a plugin that cannot be
        torn down is left in an undefined state.
        """

    # =================================================================
    # Lifecycle
    # =================================================================

    def start(self) -> None:
        """Start the plugin (runs setup())."""
        if self._destroyed:
            self.logger.warning(f"Refusing to start destroyed plugin {self.identifier}")
            return
        if self._started:
            self.logger.debug(f"{self.identifier} already started")
            return

        self.setup()
        self._started = True
        self.logger.info(f"Started {self.identifier}")

    def destroy(self) -> None:
        """Tear the plugin down (runs teardown())."""
        try:
            self.teardown()
        finally:
            self._started = False
            self._destroyed = True
        self.logger.info(f"Destroyed {self.identifier}")

    # =================================================================
    # Registry shortcuts
    # =================================================================

    def crash(self, error: BaseException) -> None:
        """Report an unrecoverable error in this plugin."""
        self.registry.crash(self, error)

    def unload(self) -> None:
        self.registry.unload_plugin(self)

    def reload(self, throw_on_fail: bool = False) -> Optional[Exception]:
        return self.registry.reload_plugin(self, throw_on_fail)

    # =================================================================
    # Utility
    # =================================================================

    def __str__(self) -> str:
        """String representation for logs."""
        return self.identifier

    def __repr__(self) -> str:
        """Developer representation."""
        status = "started" if self._started else "stopped"
        return f"<{type(self).__name__} {self.identifier} ({status})>"
