"""
tests/unit/test_hot_reload.py

Unit tests for the hot reload watcher and reload handler.
"""

import asyncio
import importlib
import logging
from unittest.mock import Mock

import pytest

from hotswap import Host, HotReloadWatcher, ReloadHandler, RuntimeConfig


# =================================================================
# Fixtures
# =================================================================


@pytest.fixture
def source_host(plugin_package):
    """Host with one plugin loaded from a source file"""
    host = Host()
    host.plugins.register_group("fun", "Fun", autostart=True)
    plugin_package.write("joke", version="1.0.0")
    module = importlib.import_module(plugin_package.module_name("joke"))
    host.plugins.load_plugin(module.SourcePlugin)
    return host


@pytest.fixture
def registry(source_host):
    return source_host.plugins


@pytest.fixture
def plugin_file(plugin_package):
    return (plugin_package.directory / "joke.py").resolve()


@pytest.fixture
def handler(registry):
    return ReloadHandler(registry, debounce_delay=0.5)


def modified(path, is_directory=False):
    return Mock(src_path=str(path), is_directory=is_directory)


# =================================================================
# ReloadHandler
# =================================================================


def test_plugin_for_path(handler, registry, plugin_file, plugin_package):
    assert handler.plugin_for_path(plugin_file) is registry.resolve("fun:source")
    assert handler.plugin_for_path(plugin_package.directory / "other.py") is None


def test_on_modified_queues_plugin_file(handler, plugin_file):
    handler.on_modified(modified(plugin_file))

    assert list(handler._pending) == [plugin_file]


@pytest.mark.parametrize(
    "make_event",
    [
        lambda directory: modified(directory / "joke.py", is_directory=True),
        lambda directory: modified(directory / "notes.txt"),
    ],
)
def test_on_modified_ignores(handler, plugin_package, make_event):
    handler.on_modified(make_event(plugin_package.directory))

    assert handler._pending == {}


def test_on_modified_does_not_touch_registry(plugin_package):
    registry = Mock()
    handler = ReloadHandler(registry)
    path = plugin_package.directory / "unrelated.py"

    handler.on_modified(modified(path))

    assert list(handler._pending) == [path.resolve()]
    assert registry.mock_calls == []


def test_process_ready_drops_file_with_no_plugin(handler, registry, plugin_package):
    old = registry.resolve("fun:source")
    path = (plugin_package.directory / "unrelated.py").resolve()
    handler.on_modified(modified(path))

    assert handler.process_ready(now=handler._pending[path] + 1) == [path]

    assert handler._pending == {}
    assert registry.resolve("fun:source") is old


def test_process_ready_waits_for_debounce(handler, registry, plugin_file):
    old = registry.resolve("fun:source")
    handler.on_modified(modified(plugin_file))
    queued = handler._pending[plugin_file]

    assert handler.process_ready(now=queued + 0.1) == []
    assert registry.resolve("fun:source") is old


def test_process_ready_reloads(handler, registry, plugin_file, plugin_package):
    old = registry.resolve("fun:source")
    plugin_package.write("joke", version="2.0.0")
    handler.on_modified(modified(plugin_file))
    queued = handler._pending[plugin_file]

    assert handler.process_ready(now=queued + 1) == [plugin_file]

    new = registry.resolve("fun:source")
    assert new is not old
    assert new.VERSION == "2.0.0"
    assert handler._pending == {}
    assert handler._reloading == set()


def test_process_ready_logs_rolled_back_reload(handler, registry, plugin_file, plugin_package,
                                               caplog):
    old = registry.resolve("fun:source")
    plugin_package.write("joke", source="class SourcePlugin(:\n")
    handler.on_modified(modified(plugin_file))

    with caplog.at_level(logging.ERROR, logger="hotswap.hot_reload"):
        handler.process_ready(now=handler._pending[plugin_file] + 1)

    assert registry.resolve("fun:source") is old
    assert "rolled back" in caplog.text


def test_process_ready_isolates_errors(plugin_file, caplog):
    registry = Mock()
    handler = ReloadHandler(registry, debounce_delay=0)
    handler._pending[plugin_file] = 0
    handler.plugin_for_path = Mock(side_effect=RuntimeError("lookup failed"))

    with caplog.at_level(logging.ERROR, logger="hotswap.hot_reload"):
        assert handler.process_ready(now=1) == [plugin_file]

    assert "lookup failed" in caplog.text
    assert handler._reloading == set()


@pytest.mark.asyncio
async def test_handler_start_stop(handler):
    await handler.start()
    assert handler._reload_task is not None
    assert not handler._reload_task.done()

    await handler.stop()
    assert handler._reload_task is None


@pytest.mark.asyncio
async def test_reload_loop_processes_queue(handler, registry, plugin_file, plugin_package):
    old = registry.resolve("fun:source")
    plugin_package.write("joke", version="2.0.0")
    handler.debounce_delay = 0
    handler.on_modified(modified(plugin_file))

    await handler.start()
    await asyncio.sleep(0.3)
    await handler.stop()

    assert registry.resolve("fun:source") is not old


# =================================================================
# HotReloadWatcher
# =================================================================


def test_watcher_disabled_by_default(registry):
    watcher = HotReloadWatcher(registry)

    assert not watcher.is_enabled
    assert "disabled" in repr(watcher)


def test_watched_directories(registry, plugin_package):
    watcher = HotReloadWatcher(registry)

    assert watcher.watched_directories() == [plugin_package.directory.resolve()]


def test_watcher_needs_running_loop(registry):
    watcher = HotReloadWatcher(registry)

    with pytest.raises(RuntimeError):
        watcher.start()

    assert not watcher.is_enabled


@pytest.mark.asyncio
async def test_watcher_start_stop(registry):
    watcher = HotReloadWatcher(registry, enabled=True)

    assert watcher.is_enabled
    watcher.start()  # already started, no-op

    watcher.stop()
    assert not watcher.is_enabled
    watcher.stop()
    await asyncio.sleep(0.2)


@pytest.mark.asyncio
async def test_host_enable_hot_reload(source_host):
    watcher = source_host.enable_hot_reload()

    assert watcher.is_enabled
    assert source_host.enable_hot_reload() is watcher

    source_host.destroy()

    assert not watcher.is_enabled
    assert source_host.hot_reload is None
    await asyncio.sleep(0.2)


def test_hot_reload_off_by_config(source_host):
    assert source_host.configure_hot_reload() is None
    assert source_host.hot_reload is None


@pytest.mark.asyncio
async def test_hot_reload_on_by_config(plugin_package):
    host = Host(RuntimeConfig(hot_reload=True, hot_reload_delay=0.1))
    host.plugins.register_group("fun", "Fun", autostart=True)
    plugin_package.write("joke")
    module = importlib.import_module(plugin_package.module_name("joke"))
    host.plugins.load_plugin(module.SourcePlugin)

    watcher = host.configure_hot_reload()

    assert watcher.is_enabled
    assert watcher.debounce_delay == 0.1

    host.destroy()
    await asyncio.sleep(0.2)
