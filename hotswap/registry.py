"""
hotswap/registry.py

Plugin registry: group registration, plugin loading, unloading,
hot reloading and crash handling.
"""

import inspect
import logging
from collections.abc import Mapping
from typing import Dict, Iterator, List, Optional

from .base import Plugin
from .code_units import CodeUnit, CodeUnitLoader, ModuleCodeUnits
from .crash import CrashEscalationController
from .errors import (
    DuplicatePluginError,
    GroupNotFoundError,
    GuardedError,
    NotLoadedError,
    UnresolvableError,
    ValidationError,
)
from .event_proxy import EventSubscriptionProxy
from .group import PluginGroup
from .keys import PluginKey


def is_plugin_class(obj) -> bool:
    """Whether obj is a concrete Plugin subclass the registry can construct."""
    return (
        inspect.isclass(obj)
        and issubclass(obj, Plugin)
        and obj is not Plugin
        and not inspect.isabstract(obj)
    )


class PluginRegistry:
    """
    Process-wide registry of plugin groups and the plugins they hold.

    Groups are keyed by ID; plugins by name within their group. Every
    accessor takes a composite key: a PluginKey, a (group_id, plugin_name)
    pair of arguments, or the string form 'group' / 'group:plugin'.

    Features:
        - Register groups (idempotent; re-registering renames)
        - Load plugins, deciding whether and when they start
        - Unload plugins, refusing guarded ones
        - Hot reload plugins with rollback on failure
        - Crash handling with escalation to process shutdown

    Args:
        host: Host providing emit/on/once/off/destroy
        code_units: CodeUnitLoader used by unload and reload
            (default: ModuleCodeUnits over sys.modules)
        crash_controller: Optional CrashEscalationController
        logger: Optional logger instance

    Example:
        registry = PluginRegistry(host)
        registry.register_groups([('fun', 'Fun'), ('core', 'Core', True)])
        registry.load_plugins([JokePlugin, CorePlugin])

        registry.exists('fun:joke')         # True
        joke = registry.resolve('fun', 'joke')
        registry.unload_plugin(joke)
    """

    def __init__(
        self,
        host,
        code_units: Optional[CodeUnitLoader] = None,
        crash_controller: Optional[CrashEscalationController] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.code_units = code_units or ModuleCodeUnits()
        self.logger = logger or logging.getLogger("hotswap.registry")
        self.crash_controller = crash_controller or CrashEscalationController(self)

        # Group registry: group_id -> PluginGroup
        self._groups: Dict[str, PluginGroup] = {}

        # Subscription proxy of every loaded plugin instance
        self._proxies: Dict[int, EventSubscriptionProxy] = {}

    # =================================================================
    # Composite key access
    # =================================================================

    def exists(self, key, plugin_name: Optional[str] = None) -> bool:
        """
        Check whether a group, or a plugin within a group, is registered.

        Returns False for a plugin key whose group is missing.
        """
        key = PluginKey.of(key, plugin_name)
        group = self._groups.get(key.group_id)
        if key.is_group:
            return group is not None
        return group is not None and group.has(key.plugin_name)

    def resolve(self, key, plugin_name: Optional[str] = None):
        """
        Get the group for a group key, or the plugin for a plugin key.

        Returns None if either the group or the plugin is absent.
        """
        key = PluginKey.of(key, plugin_name)
        group = self._groups.get(key.group_id)
        if group is None or key.is_group:
            return group
        return group.get(key.plugin_name)

    def assign(self, key, value) -> "PluginRegistry":
        """
        Set a group (group key) or a plugin within an existing group.

        Prefer register_group() and load_plugin(); this performs no checks
        beyond the group's existence.

        Raises:
            GroupNotFoundError: Plugin key names an unregistered group
        """
        key = PluginKey.of(key)
        if key.is_group:
            self._groups[key.group_id] = value
            return self

        group = self._groups.get(key.group_id)
        if group is None:
            raise GroupNotFoundError(f"Group {key.group_id} not found")
        group.set(key.plugin_name, value)
        return self

    def groups(self) -> List[PluginGroup]:
        return list(self._groups.values())

    def plugins(self) -> List[Plugin]:
        """All loaded plugins, in group then load order."""
        return [plugin for group in self._groups.values() for plugin in group]

    def __contains__(self, key) -> bool:
        return self.exists(key)

    def __getitem__(self, key):
        found = self.resolve(key)
        if found is None:
            raise KeyError(key)
        return found

    def __iter__(self) -> Iterator[PluginGroup]:
        return iter(self.groups())

    def __len__(self) -> int:
        return len(self._groups)

    def is_loaded(self, plugin: Plugin) -> bool:
        """Whether this exact instance is reachable through the registry."""
        return self.resolve(plugin.group_id, plugin.name) is plugin

    def subscriptions_of(self, plugin: Plugin) -> list:
        """(event, handler) pairs the plugin currently holds on the host."""
        proxy = self._proxies.get(id(plugin))
        return proxy.subscriptions if proxy is not None else []

    # =================================================================
    # Groups
    # =================================================================

    def register_group(
        self,
        group,
        name: Optional[str] = None,
        guarded: bool = False,
        autostart: bool = False,
    ) -> "PluginRegistry":
        """
        Register a single group.

        Args:
            group: PluginGroup instance, group factory (called with the host),
                mapping with id/name/guarded/autostart, or a group ID
            name: Display name (when group is an ID)
            guarded: Whether the group is guarded (when group is an ID)
            autostart: Default start policy (when group is an ID)

        Raises:
            ValidationError: group is none of the above, or has no ID

        Registering an ID that already exists only renames that group;
        its plugins are kept.
        """
        if isinstance(group, str):
            if not group:
                raise ValidationError("Group ID must be a non-empty string.")
            group = PluginGroup(self.host, group, name, guarded, autostart)
        elif isinstance(group, Mapping):
            if not isinstance(group.get("id"), str) or not group.get("id"):
                raise ValidationError(f"Group descriptor has no ID: {dict(group)!r}")
            group = PluginGroup(
                self.host,
                group.get("id"),
                group.get("name"),
                group.get("guarded", False),
                group.get("autostart", False),
            )
        elif not isinstance(group, PluginGroup) and callable(group):
            group = group(self.host)

        if not isinstance(group, PluginGroup):
            raise ValidationError(f"Cannot register {group!r} as a plugin group")

        existing = self._groups.get(group.id)
        if existing is not None:
            existing.name = group.name
            self._debug(
                f'Plugin group {group.id} is already registered; renamed it to "{group.name}".'
            )
        else:
            self.assign(group.id, group)
            self.host.emit("pluginGroupRegister", group, self)
            self._debug(f"Registered plugin group {group.id}.")

        return self

    def register_groups(self, groups) -> "PluginRegistry":
        """
        Register multiple groups.

        Args:
            groups: List of anything register_group() accepts, or of
                argument lists to spread into it

        Raises:
            ValidationError: groups is not a list or tuple

        Example:
            registry.register_groups([
                ('fun', 'Fun'),
                {'id': 'mod', 'name': 'Moderation', 'guarded': True},
            ])
        """
        if not isinstance(groups, (list, tuple)):
            raise ValidationError("Groups must be a list or tuple.")

        for group in groups:
            if isinstance(group, (list, tuple)):
                self.register_group(*group)
            else:
                self.register_group(group)
        return self

    # =================================================================
    # Loading
    # =================================================================

    def load_plugin(self, plugin_class) -> "PluginRegistry":
        """
        Instantiate, register and (maybe) start a plugin.

        Raises:
            ValidationError: plugin_class is not a concrete Plugin subclass
            GroupNotFoundError: The plugin's group is not registered
            DuplicatePluginError: The group already holds a plugin by that name
        """
        self._apply_start(self._attach(plugin_class))
        return self

    def _attach(self, plugin_class) -> Plugin:
        """Validate, instantiate and wire a plugin into its group, unstarted."""
        if not inspect.isclass(plugin_class):
            raise ValidationError(f"Plugin is not a class: {plugin_class!r}")
        if not is_plugin_class(plugin_class):
            raise ValidationError(f"{plugin_class!r} is not a concrete subclass of Plugin")

        proxy = EventSubscriptionProxy(self.host, self)
        plugin = plugin_class(proxy)
        proxy.bind(plugin)

        # Make sure there aren't any conflicts
        group = self._groups.get(plugin.group_id)
        if group is None:
            proxy.cancel_all()
            raise GroupNotFoundError(f'Group "{plugin.group_id}" is not registered.')
        if group.has(plugin.name):
            proxy.cancel_all()
            raise DuplicatePluginError(
                f'A plugin with the name "{plugin.name}" is already loaded in group {group.name}.'
            )

        plugin.group = group
        group.set(plugin.name, plugin)
        self._proxies[id(plugin)] = proxy

        self.host.emit("pluginLoaded", plugin, self)
        self._debug(f"Loaded plugin {plugin.identifier}.")
        return plugin

    def _apply_start(self, plugin: Plugin) -> None:
        if self._should_start(plugin, plugin.group):
            if plugin.start_on:
                self._defer_start(plugin)
            else:
                plugin.start()

    def load_plugins(self, plugin_classes, ignore_invalid: bool = False) -> "PluginRegistry":
        """
        Load plugins in order.

        Args:
            plugin_classes: List of Plugin subclasses
            ignore_invalid: Skip (with a warning) anything that is not a
                concrete Plugin subclass instead of failing. Missing groups
                and duplicates still abort the batch.
        """
        if not isinstance(plugin_classes, (list, tuple)):
            raise ValidationError("Plugins must be a list or tuple.")

        for plugin_class in plugin_classes:
            if ignore_invalid and not is_plugin_class(plugin_class):
                self._warn(
                    f"Attempting to register an invalid plugin class: {plugin_class!r}; skipping."
                )
                continue
            self.load_plugin(plugin_class)
        return self

    def _should_start(self, plugin: Plugin, group: PluginGroup) -> bool:
        """Apply the start policy and warn on contradictory settings."""
        should_start = (
            plugin.autostart is True
            or (plugin.autostart is None and group.autostart)
            or plugin.guarded
            or group.guarded
        )
        if not should_start or plugin.autostart is not False:
            return should_start

        if plugin.guarded:
            self._warn(
                f"{plugin.name} has autostart disabled, but has guarded set. "
                "This is probably incorrect. Guarded overrides autostart, "
                "so autostarting plugin anyway"
            )
        else:
            self._warn(
                f"{plugin.name} has autostart disabled, but is part of {group.id} "
                "which has guarded set. This is probably incorrect. Guarded "
                "overrides autostart, so autostarting plugin anyway"
            )
        return True

    def _defer_start(self, plugin: Plugin) -> None:
        """Start plugin once every event in start_on has fired."""
        pending = set(plugin.start_on)

        def make_handler(event):
            def on_event(*_):
                pending.discard(event)
                if pending:
                    return
                if plugin.destroyed or not self.is_loaded(plugin):
                    self.logger.debug(f"Skipping deferred start of unloaded {plugin.identifier}")
                    return
                plugin.start()

            return on_event

        for event in plugin.start_on:
            plugin.events.once(event, make_handler(event))
        self._debug(f"Deferred start of {plugin.identifier} until {', '.join(plugin.start_on)}.")

    # =================================================================
    # Unloading & Reloading
    # =================================================================

    def resolve_code_unit(self, plugin: Plugin) -> Optional[CodeUnit]:
        """Code unit handle that defines the plugin's class (None if unknown)."""
        return self.code_units.resolve(type(plugin))

    def unload_plugin(self, plugin) -> None:
        """
        Tear down and remove a plugin.

        Args:
            plugin: Plugin instance or its composite key

        Raises:
            NotLoadedError: Plugin is not loaded
            GuardedError: Plugin or its group is guarded
            UnresolvableError: The plugin's code unit cannot be found
        """
        if not isinstance(plugin, Plugin) and plugin is not None:
            plugin = self.resolve(plugin)
        if not isinstance(plugin, Plugin) or not self.is_loaded(plugin):
            raise NotLoadedError("Plugin not loaded")

        group = self._groups[plugin.group_id]
        if plugin.guarded:
            raise GuardedError(f"Refusing to unload plugin, {plugin.name} is guarded")
        if group.guarded:
            raise GuardedError(
                f"Refusing to unload plugin, {plugin.name} is part of {group.id} "
                "and that group is guarded"
            )

        unit = self.resolve_code_unit(plugin)
        if unit is None:
            raise UnresolvableError(f"Plugin {plugin.identifier} cannot be unloaded.")

        self._destroy(plugin)

        self.code_units.invalidate(unit)
        group.delete(plugin.name)
        self._debug(f"Unloaded plugin {plugin.identifier}.")

    def reload_plugin(self, plugin: Plugin, throw_on_fail: bool = False) -> Optional[Exception]:
        """
        Replace a plugin with a freshly loaded instance of its code.

        Args:
            plugin: Loaded plugin instance
            throw_on_fail: Re-raise errors instead of rolling back and
                returning them

        Returns:
            None on success, otherwise the error that caused the rollback

        Raises:
            UnresolvableError: The plugin's code unit cannot be found
            Exception: Any error once teardown of the old instance was
                attempted (rollback is no longer possible), or any error
                when throw_on_fail is set
        """
        if not self.is_loaded(plugin):
            raise NotLoadedError(f"Plugin {plugin.identifier} is not loaded")

        started = plugin.started
        unit = self.resolve_code_unit(plugin)
        if unit is None:
            raise UnresolvableError(f"Cannot find code unit of {plugin.identifier}")

        group = plugin.group
        replacement = None
        snapshot = None
        invalidated = False
        destroy_attempted = False
        try:
            snapshot = self.code_units.snapshot(unit)
            self.code_units.invalidate(unit)
            invalidated = True
            new_class = self.code_units.reload(unit)

            group.delete(plugin.name)
            replacement = self._attach(new_class)
            self._apply_start(replacement)

            destroy_attempted = True
            self._destroy(plugin)
            self._debug(f"Reloaded plugin {plugin.identifier}.")
            return None
        except Exception as e:
            if destroy_attempted:
                self.logger.error(f"Reload of {plugin.identifier} failed after teardown: {e}")
                raise

            if invalidated:
                self._rollback(plugin, group, replacement, unit, snapshot, started)
            self.logger.warning(f"Reload of {plugin.identifier} failed, rolled back: {e}")
            if throw_on_fail:
                raise
            return e

    def _rollback(self, plugin, group, replacement, unit, snapshot, started) -> None:
        self.code_units.restore(unit, snapshot)

        # The new instance may have been wired in under a different key
        if replacement is not None:
            new_group = replacement.group
            if new_group is not None and new_group.get(replacement.name) is replacement:
                new_group.delete(replacement.name)
            proxy = self._proxies.pop(id(replacement), None)
            if proxy is not None:
                proxy.cancel_all()

        group.set(plugin.name, plugin)
        if started and not plugin.started:
            plugin.start()

    def _destroy(self, plugin: Plugin) -> None:
        """Run the plugin's teardown, then drop its subscriptions."""
        proxy = self._proxies.pop(id(plugin), None)
        if proxy is None:
            proxy = plugin.events
        try:
            plugin.destroy()
        finally:
            proxy.cancel_all()

    # =================================================================
    # Crash handling
    # =================================================================

    def crash(self, plugin: Plugin, error: BaseException) -> None:
        """
        Crash a plugin. See CrashEscalationController.

        Never raises; an uncontainable crash shuts the process down.
        """
        self.crash_controller.crash(plugin, error)

    # =================================================================
    # Utility
    # =================================================================

    def _debug(self, message: str) -> None:
        self.host.emit("debug", message)

    def _warn(self, message: str) -> None:
        self.host.emit("warn", message)

    def __repr__(self) -> str:
        """Developer representation."""
        count = sum(len(group) for group in self._groups.values())
        return f"<PluginRegistry: {len(self._groups)} groups, {count} plugins>"
