"""
hotswap/keys.py

Composite keys addressing a group or a plugin inside a group.
"""

from typing import NamedTuple, Optional

SEPARATOR = ":"


class PluginKey(NamedTuple):
    """
    Structured registry key.

    A key with no plugin name addresses the group itself.

    Example:
        PluginKey('fun')            # the 'fun' group
        PluginKey('fun', 'joke')    # plugin 'joke' in group 'fun'
        PluginKey.parse('fun:joke') # same as above
    """

    group_id: str
    plugin_name: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "PluginKey":
        """
        Parse 'group' or 'group:plugin'.

        Splits on the first separator only, so plugin names may contain
        the separator but group IDs may not. An empty remainder is a
        group-level key.
        """
        group_id, _, plugin_name = text.partition(SEPARATOR)
        return cls(group_id, plugin_name or None)

    @classmethod
    def of(cls, key, plugin_name: Optional[str] = None) -> "PluginKey":
        """Build a key from a PluginKey, a string or a (group, plugin) pair."""
        if isinstance(key, PluginKey):
            return key
        if plugin_name is not None:
            return cls(key, plugin_name or None)
        if isinstance(key, str):
            return cls.parse(key)
        return cls(key)

    @property
    def is_group(self) -> bool:
        return not self.plugin_name

    def __str__(self) -> str:
        if self.is_group:
            return str(self.group_id)
        return f"{self.group_id}{SEPARATOR}{self.plugin_name}"
