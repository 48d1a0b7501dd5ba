"""
hotswap/code_units.py

Resolving, invalidating and re-reading the code behind a plugin class.
"""

import importlib
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Optional, Protocol

from .errors import UnresolvableError


@dataclass(frozen=True)
class CodeUnit:
    """
    Handle to the cached code unit that defines a plugin class.

    Attributes:
        module_name: Key of the module in sys.modules
        attribute: Module attribute holding the plugin class
        path: Source file of the module (None for built-in or dynamic modules)
    """

    module_name: str
    attribute: str
    path: Optional[Path] = None

    def __str__(self) -> str:
        return f"{self.module_name}.{self.attribute}"


class CodeUnitLoader(Protocol):
    """Interface the registry needs for unload and reload."""

    def resolve(self, factory) -> Optional[CodeUnit]:
        ...

    def snapshot(self, unit: CodeUnit) -> Any:
        ...

    def invalidate(self, unit: CodeUnit) -> None:
        ...

    def reload(self, unit: CodeUnit):
        ...

    def restore(self, unit: CodeUnit, snapshot: Any) -> None:
        ...


class ModuleCodeUnits:
    """
    CodeUnitLoader backed by Python's module cache (sys.modules).

    Example:
        units = ModuleCodeUnits()
        unit = units.resolve(JokePlugin)   # CodeUnit('plugins.fun.joke', 'JokePlugin')
        units.invalidate(unit)
        JokePlugin = units.reload(unit)    # freshly imported class
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("hotswap.code_units")

    def resolve(self, factory) -> Optional[CodeUnit]:
        """
        Find the cached module exporting factory.

        The defining module is checked first so the common case does not
        scan all of sys.modules.
        """
        module_name = getattr(factory, "__module__", None)
        module = sys.modules.get(module_name) if module_name else None
        if module is not None:
            attribute = self._find_attribute(module, factory)
            if attribute:
                return self._unit(module_name, attribute, module)

        for name, candidate in list(sys.modules.items()):
            if not isinstance(candidate, ModuleType) or name == module_name:
                continue
            attribute = self._find_attribute(candidate, factory)
            if attribute:
                return self._unit(name, attribute, candidate)

        self.logger.debug(f"No code unit exports {factory!r}")
        return None

    def snapshot(self, unit: CodeUnit) -> Optional[ModuleType]:
        return sys.modules.get(unit.module_name)

    def invalidate(self, unit: CodeUnit) -> None:
        sys.modules.pop(unit.module_name, None)
        importlib.invalidate_caches()
        self.logger.debug(f"Invalidated {unit.module_name}")

    def reload(self, unit: CodeUnit):
        """Import the module fresh and return the plugin class it exports."""
        module = importlib.import_module(unit.module_name)
        factory = getattr(module, unit.attribute, None)
        if factory is None:
            raise UnresolvableError(
                f"Module {unit.module_name} no longer exports {unit.attribute}"
            )
        self.logger.debug(f"Re-read {unit}")
        return factory

    def restore(self, unit: CodeUnit, snapshot: Optional[ModuleType]) -> None:
        if snapshot is None:
            sys.modules.pop(unit.module_name, None)
            return

        sys.modules[unit.module_name] = snapshot
        # Keep the parent package attribute pointing at the restored module
        parent_name, _, child = unit.module_name.rpartition(".")
        parent = sys.modules.get(parent_name) if parent_name else None
        if parent is not None:
            setattr(parent, child, snapshot)
        self.logger.debug(f"Restored {unit.module_name}")

    @staticmethod
    def _find_attribute(module: ModuleType, factory) -> Optional[str]:
        preferred = getattr(factory, "__name__", None)
        try:
            if preferred and getattr(module, preferred, None) is factory:
                return preferred
            for attribute, value in vars(module).items():
                if value is factory:
                    return attribute
        except Exception:
            # Lazy or proxy modules can raise on attribute access
            return None
        return None

    @staticmethod
    def _unit(module_name: str, attribute: str, module: ModuleType) -> CodeUnit:
        file = getattr(module, "__file__", None)
        return CodeUnit(module_name, attribute, Path(file).resolve() if file else None)
