"""
hotswap/group.py

Named, ordered container of plugins sharing a category.
"""

from typing import Dict, Iterator, List, Optional


class PluginGroup:
    """
    Ordered, name-keyed set of plugins.

    Lookups here take a bare plugin name; composite 'group:plugin' keys
    are handled by the PluginRegistry.

    Args:
        host: Host that owns the registry
        group_id: Unique group identifier (immutable)
        name: Display name (defaults to group_id, mutable)
        guarded: No member plugin may be unloaded (immutable)
        autostart: Default start policy for members that leave it unset

    Example:
        group = PluginGroup(host, 'fun', 'Fun', autostart=True)
        registry.register_group(group)
    """

    def __init__(
        self,
        host,
        group_id: str,
        name: Optional[str] = None,
        guarded: bool = False,
        autostart: bool = False,
    ):
        if not isinstance(group_id, str) or not group_id:
            raise ValueError(f"Group ID must be a non-empty string, got {group_id!r}")

        self.host = host
        self._id = group_id
        self.name = name or group_id
        self._guarded = bool(guarded)
        self.autostart = bool(autostart)
        self._plugins: Dict[str, object] = {}

    @property
    def id(self) -> str:
        return self._id

    @property
    def guarded(self) -> bool:
        return self._guarded

    def has(self, name: str) -> bool:
        return name in self._plugins

    def get(self, name: str):
        return self._plugins.get(name)

    def set(self, name: str, plugin) -> "PluginGroup":
        self._plugins[name] = plugin
        return self

    def delete(self, name: str) -> bool:
        """Remove a plugin by name; returns whether it was present."""
        return self._plugins.pop(name, None) is not None

    def names(self) -> List[str]:
        return list(self._plugins.keys())

    def plugins(self) -> List[object]:
        return list(self._plugins.values())

    def __contains__(self, name: str) -> bool:
        return name in self._plugins

    def __getitem__(self, name: str):
        return self._plugins[name]

    def __iter__(self) -> Iterator[object]:
        return iter(list(self._plugins.values()))

    def __len__(self) -> int:
        return len(self._plugins)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        flags = ", guarded" if self._guarded else ""
        return f"<PluginGroup: {self._id} ({len(self._plugins)} plugins{flags})>"
