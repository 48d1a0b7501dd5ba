"""
hotswap/crash.py

Crash containment for plugins, escalating to process shutdown when a
crashed plugin cannot be removed cleanly.
"""

import logging
import os
import threading
from typing import Callable, List, Optional, Set

DEFAULT_GRACE_PERIOD = 5.0


class CrashEscalationController:
    """
    Contain crashed plugins, or take the process down.

    Per plugin identity ('group:name'):
        idle -> crashing: crash() called, pluginError emitted
        crashing -> idle: unload (or reload, for guarded plugins) succeeded
        crashing -> fatal: containment raised; the plugin is in an
            undefined state

    On fatal, exit_func(1) is scheduled after grace_period seconds so
    observers (log sinks, ...) can react, pluginFatal is emitted and the
    host is destroyed. The timer is never cancelled.

    Repeated crash() calls for an identity that is still being handled
    are ignored, so a plugin crashing again from its own teardown cannot
    recurse.

    Args:
        registry: PluginRegistry holding the plugins
        grace_period: Seconds between a fatal crash and process exit
        exit_func: Called with exit status 1 when the grace period ends
        timer_factory: threading.Timer compatible factory
        logger: Optional logger instance
    """

    def __init__(
        self,
        registry,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        exit_func: Callable[[int], None] = os._exit,
        timer_factory: Callable = threading.Timer,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.grace_period = grace_period
        self.exit_func = exit_func
        self.timer_factory = timer_factory
        self.logger = logger or logging.getLogger("hotswap.crash")

        self._crashing: Set[str] = set()
        self._fatal = False
        self._timer = None

    @property
    def fatal(self) -> bool:
        """Whether containment has failed and shutdown is underway."""
        return self._fatal

    @property
    def crashing(self) -> List[str]:
        return sorted(self._crashing)

    def is_crashing(self, identifier: str) -> bool:
        return identifier in self._crashing

    def crash(self, plugin, error: BaseException) -> None:
        """
        Handle an unrecoverable error reported by (or on behalf of) plugin.

        Never raises.
        """
        identifier = plugin.identifier
        if identifier in self._crashing:
            self.logger.debug(f"Ignoring crash of {identifier}, already crashing")
            return
        self._crashing.add(identifier)

        self.logger.error(f"💥 Plugin {identifier} crashed: {error}")
        host = self.registry.host
        host.emit("pluginError", plugin, error)

        try:
            if self._is_guarded(plugin):
                plugin.reload(True)
            else:
                plugin.unload()
            self._crashing.discard(identifier)
            self.logger.info(f"Contained crash of {identifier}")
        except Exception as e:
            self._escalate(identifier, e)

    def _escalate(self, identifier: str, error: Exception) -> None:
        self._fatal = True
        self.logger.critical(
            f"Failed to unload crashed plugin {identifier}: {error}; "
            f"exiting in {self.grace_period}s",
            exc_info=True,
        )

        # Never cancelled, even if the host shuts down cleanly
        self._timer = self.timer_factory(self.grace_period, self.exit_func, args=(1,))
        self._timer.daemon = False
        self._timer.start()

        host = self.registry.host
        try:
            host.emit("pluginFatal", "Failed to unload crashed plugin", error)
            host.destroy()
        except Exception as e:
            self.logger.error(f"Host shutdown after fatal crash failed: {e}", exc_info=True)

    @staticmethod
    def _is_guarded(plugin) -> bool:
        group = plugin.group
        return plugin.guarded or (group is not None and group.guarded)

    def __repr__(self) -> str:
        """Developer representation."""
        state = "fatal" if self._fatal else f"{len(self._crashing)} crashing"
        return f"<CrashEscalationController: {state}>"
