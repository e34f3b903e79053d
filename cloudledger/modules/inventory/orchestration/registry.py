from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cloudledger.modules.inventory.orchestration.host import UnitContext

from cloudledger.shared.core.exceptions import UnitNotFoundError

UnitFn = Callable[["UnitContext", dict[str, Any]], Awaitable[Any]]


class UnitRegistry:
    """
    String-keyed dispatch table for units.
    Registration is explicit; the host only ever resolves units by name.
    """

    def __init__(self) -> None:
        self._units: dict[str, UnitFn] = {}

    def register(self, name: str, fn: UnitFn | None = None) -> Any:
        """Register ``fn`` under ``name``; without ``fn`` acts as a decorator."""

        def wrapper(unit_fn: UnitFn) -> UnitFn:
            existing = self._units.get(name)
            # Re-registering the same callable is a no-op; a different one is a conflict.
            if existing is not None and existing is not unit_fn:
                raise ValueError(f"Duplicate unit registration for '{name}'")
            self._units[name] = unit_fn
            return unit_fn

        if fn is not None:
            return wrapper(fn)
        return wrapper

    def get(self, name: str) -> UnitFn:
        unit_fn = self._units.get(name)
        if unit_fn is None:
            raise UnitNotFoundError(name)
        return unit_fn

    def names(self) -> list[str]:
        return sorted(self._units)

    def __contains__(self, name: object) -> bool:
        return name in self._units
