"""
hotswap/metadata.py

Plugin metadata structure.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from .errors import ValidationError
from .keys import SEPARATOR


@dataclass
class PluginMetadata:
    """
    Plugin identity and start policy.

    Attributes:
        name: Plugin name, unique within its group
        group_id: ID of the owning PluginGroup
        version: Version string (PEP 440, e.g. '1.0.0')
        description: Short description of plugin functionality
        guarded: Plugin can never be unloaded (only reloaded)
        autostart: Start on load; None defers to the group's default
        start_on: Host events that must all fire before the plugin starts

    Example:
        metadata = PluginMetadata(
            name='joke',
            group_id='fun',
            description='Tells jokes',
            start_on=['ready'],
        )
    """
    name: str
    group_id: str
    version: str = "1.0.0"
    description: str = ""
    guarded: bool = False
    autostart: Optional[bool] = None
    start_on: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate metadata after initialization."""
        if not self.name:
            raise ValidationError("Plugin name must not be empty")

        if not self.group_id:
            raise ValidationError(f"Plugin '{self.name}' has no group_id")

        # Group IDs are the left half of a composite key
        if SEPARATOR in self.group_id:
            raise ValidationError(
                f"Group ID '{self.group_id}' must not contain '{SEPARATOR}'"
            )

        try:
            Version(self.version)
        except InvalidVersion:
            raise ValidationError(
                f"Plugin version '{self.version}' is not a valid version string"
            ) from None

        self.start_on = list(self.start_on or [])

    @property
    def identifier(self) -> str:
        """Composite key of the plugin ('group:name')."""
        return f"{self.group_id}{SEPARATOR}{self.name}"

    def __str__(self) -> str:
        """String representation for logs."""
        return f"{self.identifier} v{self.version}"

    def __repr__(self) -> str:
        """Developer representation."""
        flags = ", guarded" if self.guarded else ""
        return f"PluginMetadata(id='{self.identifier}', version='{self.version}'{flags})"
