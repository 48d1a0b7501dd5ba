"""
hotswap/hot_reload.py

File system watching and automatic plugin reloading.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer


class ReloadHandler(FileSystemEventHandler):
    """
    Handle file system events for plugin hot reload.

    Features:
        - Debouncing (wait for quiet period after changes)
        - Queue reloads (avoid duplicate reloads)
        - Error isolation (reload failure doesn't crash watcher)

    Reloads run on the asyncio loop, never on the watchdog thread, so
    registry mutations stay on a single thread.

    Args:
        registry: PluginRegistry to reload plugins in
        debounce_delay: Seconds to wait after last change (default: 0.5)
        logger: Optional logger instance

    Example:
        handler = ReloadHandler(registry, debounce_delay=0.5)
        await handler.start()
        # ... file changes detected automatically ...
        await handler.stop()
    """

    def __init__(
        self,
        registry,
        debounce_delay: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__()
        self.registry = registry
        self.debounce_delay = debounce_delay
        self.logger = logger or logging.getLogger("hotswap.hot_reload")

        # Pending reloads: path -> timestamp of last change
        self._pending: Dict[Path, float] = {}

        # Currently reloading (prevent duplicate reloads)
        self._reloading: Set[Path] = set()

        self._reload_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    def plugin_for_path(self, file_path: Path):
        """Loaded plugin whose code unit lives in file_path (None if none)."""
        file_path = Path(file_path).resolve()
        for plugin in self.registry.plugins():
            unit = self.registry.resolve_code_unit(plugin)
            if unit is not None and unit.path == file_path:
                return plugin
        return None

    def on_modified(self, event):
        """
        Handle file modification event.

        Called by watchdog on its observer thread. Only queues the path;
        matching it to a loaded plugin happens in process_ready().
        """
        if event.is_directory:
            return

        if not str(event.src_path).endswith(".py"):
            return

        file_path = Path(event.src_path).resolve()
        self._pending[file_path] = time.time()
        self.logger.debug(f"Queued for reload: {file_path.name}")

    async def start(self):
        """Start background reload task."""
        if self._reload_task and not self._reload_task.done():
            self.logger.warning("Reload task already running")
            return

        self._stop_event.clear()
        self._reload_task = asyncio.create_task(self._reload_loop())
        self.logger.info("Hot reload handler started")

    def request_stop(self):
        """Ask the reload loop to exit after its current pass."""
        self._stop_event.set()

    async def stop(self):
        """Stop background reload task, waiting for current reloads."""
        self.request_stop()
        if self._reload_task:
            await self._reload_task
            self._reload_task = None
        self.logger.info("Hot reload handler stopped")

    def process_ready(self, now: Optional[float] = None) -> List[Path]:
        """
        Reload every queued plugin whose debounce delay has elapsed.

        Returns:
            Paths that were processed
        """
        now = time.time() if now is None else now
        ready = [
            path
            for path, queued_time in list(self._pending.items())
            if now - queued_time >= self.debounce_delay and path not in self._reloading
        ]

        for file_path in ready:
            self._pending.pop(file_path, None)
            self._reloading.add(file_path)
            try:
                plugin = self.plugin_for_path(file_path)
                if plugin is None:
                    self.logger.debug(f"Ignoring file with no loaded plugin: {file_path.name}")
                    continue

                self.logger.info(f"🔄 Reloading plugin: {plugin.identifier}")
                error = self.registry.reload_plugin(plugin)
                if error is None:
                    self.logger.info(f"✅ Reloaded: {plugin.identifier}")
                else:
                    self.logger.error(f"❌ Reload rolled back for {plugin.identifier}: {error}")

            except Exception as e:
                self.logger.error(f"❌ Reload failed for {file_path}: {e}", exc_info=True)

            finally:
                self._reloading.discard(file_path)

        return ready

    async def _reload_loop(self):
        while not self._stop_event.is_set():
            self.process_ready()
            await asyncio.sleep(0.1)


class HotReloadWatcher:
    """
    File system watcher for plugin hot reload.

    Uses watchdog to monitor the directories holding loaded plugins'
    source files and reloads a plugin when its file changes.

    Args:
        registry: PluginRegistry instance
        enabled: Start watching immediately (default: False)
        debounce_delay: Seconds to wait after last change (default: 0.5)
        logger: Optional logger instance

    Example:
        watcher = HotReloadWatcher(registry)
        watcher.start()
        # ... plugins reload automatically on file changes ...
        watcher.stop()
    """

    def __init__(
        self,
        registry,
        enabled: bool = False,
        debounce_delay: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.debounce_delay = debounce_delay
        self.logger = logger or logging.getLogger("hotswap.hot_reload")

        self._observer: Optional[Observer] = None
        self._handler: Optional[ReloadHandler] = None
        self._enabled = False

        if enabled:
            self.start()

    def watched_directories(self) -> List[Path]:
        """Directories containing the source of a loaded plugin."""
        directories = set()
        for plugin in self.registry.plugins():
            unit = self.registry.resolve_code_unit(plugin)
            if unit is not None and unit.path is not None:
                directories.add(unit.path.parent)
        return sorted(directories)

    def start(self):
        """
        Start watching plugin source directories.

        Must be called from a running event loop.
        """
        if self._enabled:
            self.logger.warning("Hot reload already started")
            return

        loop = asyncio.get_running_loop()
        directories = self.watched_directories()
        if not directories:
            self.logger.warning("No loaded plugin has a source file to watch")

        self._handler = ReloadHandler(
            self.registry, debounce_delay=self.debounce_delay, logger=self.logger
        )

        self._observer = Observer()
        for directory in directories:
            self._observer.schedule(self._handler, str(directory), recursive=False)
        self._observer.start()

        loop.create_task(self._handler.start())

        self._enabled = True
        self.logger.info(f"🔥 Hot reload enabled: {len(directories)} director(y/ies)")

    def stop(self):
        """Stop watching for file changes."""
        if not self._enabled:
            return

        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None

        if self._handler:
            self._handler.request_stop()
            self._handler = None

        self._enabled = False
        self.logger.info("Hot reload disabled")

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def __repr__(self) -> str:
        """Developer representation."""
        status = "enabled" if self._enabled else "disabled"
        return f"<HotReloadWatcher: {status}>"
