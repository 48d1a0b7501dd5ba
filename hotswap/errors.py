"""
hotswap/errors.py

Plugin runtime exceptions.
"""


class PluginError(Exception):
    """Base exception for plugin runtime errors."""
    pass


class ValidationError(PluginError, TypeError):
    """Argument has the wrong shape (not a sequence, not a plugin class)."""
    pass


class GroupNotFoundError(PluginError, LookupError):
    """Plugin group is not registered."""
    pass


class DuplicatePluginError(PluginError):
    """A plugin with the same name is already loaded in the group."""
    pass


class GuardedError(PluginError):
    """Plugin (or its group) is guarded and cannot be unloaded."""
    pass


class NotLoadedError(PluginError, LookupError):
    """Plugin is not reachable through the registry."""
    pass


class UnresolvableError(PluginError):
    """Plugin class cannot be matched back to a loaded code unit."""
    pass
