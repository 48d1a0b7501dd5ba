"""
Global pytest configuration and fixtures for hotswap tests

Provides:
- Host wired to in-memory code units
- Registry with the standard test groups
- Event recorder for emitted host events
- Fake timer for the fatal shutdown path
"""

import pytest
from unittest.mock import MagicMock

from hotswap import Host, RuntimeConfig
from tests.fixtures.mock_plugins import FakeCodeUnits


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")


# ============================================================================
# Host & Registry
# ============================================================================

class EventRecorder:
    """Records every (event, args) emitted on the host"""

    def __init__(self, host, *events):
        self.events = []
        for event in events:
            host.on(event, self._recorder(event))

    def _recorder(self, event):
        def record(*args):
            self.events.append((event, args))
        return record

    def names(self):
        return [name for name, _ in self.events]

    def of(self, event):
        return [args for name, args in self.events if name == event]


@pytest.fixture
def code_units():
    """In-memory module cache"""
    return FakeCodeUnits()


@pytest.fixture
def fake_timer():
    """threading.Timer replacement that never fires on its own"""
    return MagicMock(name="timer_factory")


@pytest.fixture
def exit_func():
    return MagicMock(name="exit_func")


@pytest.fixture
def host(code_units, fake_timer, exit_func):
    """Host using fake code units and a fake fatal-shutdown timer"""
    host = Host(RuntimeConfig(fatal_grace_period=5.0), code_units=code_units)
    controller = host.plugins.crash_controller
    controller.timer_factory = fake_timer
    controller.exit_func = exit_func
    return host


@pytest.fixture
def recorder(host):
    return EventRecorder(
        host,
        "debug",
        "warn",
        "pluginGroupRegister",
        "pluginLoaded",
        "pluginError",
        "pluginFatal",
        "destroy",
    )


@pytest.fixture
def registry(host):
    """Registry with the groups used by tests/fixtures/mock_plugins.py"""
    registry = host.plugins
    registry.register_groups([
        {"id": "fun", "name": "Fun", "autostart": True},
        ("manual", "Manual"),
        ("core", "Core", True),
        ("locked", "Locked", True),
    ])
    return registry


# ============================================================================
# Plugin Source Files
# ============================================================================

PLUGIN_TEMPLATE = '''
from hotswap import Plugin, PluginMetadata


class {class_name}(Plugin):
    VERSION = "{version}"

    @property
    def metadata(self):
        return PluginMetadata(name="{name}", group_id="fun", version=self.VERSION)

    def setup(self):
        self.events.on("message", self.handle_message)

    def handle_message(self, text):
        self.host.emit("reply", self.VERSION, text)
'''


class PluginPackage:
    """Importable package of plugin modules written to a temp directory"""

    def __init__(self, root, package):
        self.root = root
        self.package = package
        self.directory = root / package
        self.directory.mkdir()
        (self.directory / "__init__.py").write_text("")

    def write(self, module, source=None, class_name="SourcePlugin", name="source",
              version="1.0.0"):
        if source is None:
            source = PLUGIN_TEMPLATE.format(class_name=class_name, name=name, version=version)
        path = self.directory / f"{module}.py"
        path.write_text(source)
        return path

    def module_name(self, module):
        return f"{self.package}.{module}"


@pytest.fixture
def plugin_package(tmp_path, monkeypatch, request):
    """Plugin package on sys.path, removed from sys.modules afterwards"""
    import sys

    # Source files are rewritten within the same second; never use stale bytecode
    monkeypatch.setattr(sys, "dont_write_bytecode", True)
    monkeypatch.syspath_prepend(str(tmp_path))

    name = "".join(c if c.isalnum() else "_" for c in request.node.name)
    package = PluginPackage(tmp_path, f"hs_plugins_{name}")
    yield package

    for name in list(sys.modules):
        if name == package.package or name.startswith(package.package + "."):
            del sys.modules[name]
