"""
hotswap/event_proxy.py

Per-plugin proxy over the host's event subscription capability.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

Subscription = Tuple[str, Callable]


class EventSubscriptionProxy:
    """
    Records every host event subscription made on behalf of one plugin.

    The plugin subscribes through the proxy instead of the host. Each
    handler is wrapped before it reaches the host so that:
        - an exception raised by the handler crashes the plugin instead of
          propagating into the host's dispatch loop
        - a once() handler drops its own record when it fires

    cancel_all() removes every subscription the plugin still holds and
    closes the proxy. The registry calls it whenever the plugin is torn
    down (unload, reload, crash).

    Args:
        host: Object providing on(event, handler), once(event, handler)
            and off(event, handler)
        registry: PluginRegistry that owns the plugin
        logger: Optional logger instance

    Example:
        proxy = EventSubscriptionProxy(host, registry)
        proxy.on('message', plugin.handle_message)
        proxy.cancel_all()
    """

    def __init__(self, host, registry, logger: Optional[logging.Logger] = None):
        self._host = host
        self._registry = registry
        self.logger = logger or logging.getLogger("hotswap.event_proxy")
        self.plugin = None

        # (event, handler) -> wrapper registered on the host
        self._ledger: Dict[Subscription, Callable] = {}
        self._closed = False

    @property
    def host(self):
        return self._host

    @property
    def registry(self):
        return self._registry

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, plugin) -> None:
        """Attach the plugin whose subscriptions this proxy records."""
        self.plugin = plugin

    # =================================================================
    # Subscription
    # =================================================================

    def on(self, event: str, handler: Callable) -> "EventSubscriptionProxy":
        """Subscribe handler to a host event until the plugin is torn down."""
        return self._subscribe(event, handler, once=False)

    def once(self, event: str, handler: Callable) -> "EventSubscriptionProxy":
        """Subscribe handler to the next occurrence of a host event."""
        return self._subscribe(event, handler, once=True)

    def off(self, event: str, handler: Callable) -> "EventSubscriptionProxy":
        """Cancel a single subscription made through this proxy."""
        wrapper = self._ledger.pop((event, handler), None)
        if wrapper is None:
            self.logger.debug(f"off: no subscription for {event} {handler}")
            return self

        self._host.off(event, wrapper)
        return self

    def cancel_all(self) -> int:
        """
        Cancel every subscription still recorded and close the proxy.

        Returns:
            Number of subscriptions cancelled
        """
        self._closed = True
        cancelled = 0

        for (event, _), wrapper in list(self._ledger.items()):
            self._host.off(event, wrapper)
            cancelled += 1
        self._ledger.clear()

        if cancelled:
            self.logger.debug(f"Cancelled {cancelled} subscription(s) of {self._owner()}")
        return cancelled

    @property
    def subscriptions(self) -> List[Subscription]:
        """Snapshot of (event, handler) pairs currently held."""
        return list(self._ledger.keys())

    def __len__(self) -> int:
        return len(self._ledger)

    # =================================================================
    # Internals
    # =================================================================

    def _subscribe(self, event: str, handler: Callable, once: bool):
        if self._closed:
            self.logger.warning(
                f"Ignoring subscription to '{event}' from torn down plugin {self._owner()}"
            )
            return self

        key = (event, handler)
        if key in self._ledger:
            self.logger.debug(f"{self._owner()} already subscribed to '{event}'")
            return self

        wrapper = self._wrap(key, handler, once)
        self._ledger[key] = wrapper

        if once:
            self._host.once(event, wrapper)
        else:
            self._host.on(event, wrapper)
        return self

    def _wrap(self, key: Subscription, handler: Callable, once: bool) -> Callable:
        def wrapper(*args):
            if once:
                self._ledger.pop(key, None)
            try:
                return handler(*args)
            except Exception as e:
                if self.plugin is None:
                    raise
                self.logger.error(
                    f"Handler for '{key[0]}' in {self._owner()} failed: {e}",
                    exc_info=True,
                )
                self._registry.crash(self.plugin, e)
                return None

        wrapper.__wrapped__ = handler
        return wrapper

    def _owner(self) -> str:
        return self.plugin.identifier if self.plugin is not None else "<unbound>"

    def __repr__(self) -> str:
        """Developer representation."""
        return f"<EventSubscriptionProxy: {self._owner()}, {len(self._ledger)} subscriptions>"
