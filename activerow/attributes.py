from __future__ import annotations
from .errors import aert, tert
from types import MappingProxyType
from typing import Any, Iterable, Optional


def differs(a: Any, b: Any) -> bool:
    """Strict comparison: values of different types always differ, so
        1, 1.0 and True are three distinct values.
    """
    return type(a) is not type(b) or a != b


class AttributeStore:
    """Holds the current and last-persisted values of a record's
        attributes and computes which ones are dirty. A store whose old
        snapshot is None has never been persisted.
    """
    names: tuple[str]
    _current: dict[str, Any]
    _old: Optional[dict[str, Any]]

    def __init__(self, names: Iterable[str]) -> None:
        """Initialize the instance with the declared attribute names.
            Raises TypeError for non-str names.
        """
        names = tuple(names)
        tert(all([type(n) is str for n in names]), 'names must be Iterable[str]')
        self.names = names
        self._current = {}
        self._old = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(current={self._current}, old={self._old})"

    @property
    def current(self) -> MappingProxyType:
        """Read-only view of the live values."""
        return MappingProxyType(self._current)

    @property
    def old(self) -> Optional[MappingProxyType]:
        """Read-only view of the persisted values, or None if never
            persisted.
        """
        return None if self._old is None else MappingProxyType(self._old)

    def has(self, name: str) -> bool:
        return name in self._current

    def get(self, name: str) -> Any:
        return self._current.get(name)

    def set(self, name: str, value: Any) -> None:
        """Store the raw value. Raises AttributeError if name is not a
            declared attribute.
        """
        aert(name in self.names, f'{name} is not a declared attribute')
        self._current[name] = value

    def unset(self, name: str) -> None:
        self._current.pop(name, None)

    def get_old(self, name: str) -> Any:
        return None if self._old is None else self._old.get(name)

    def set_old(self, name: str, value: Any) -> None:
        """Set a single old value, starting a snapshot if there was none.
            Raises AttributeError if name is not a declared attribute.
        """
        aert(name in self.names, f'{name} is not a declared attribute')
        if self._old is None:
            self._old = {}
        self._old[name] = value

    def is_new(self) -> bool:
        return self._old is None

    def is_changed(self, name: str, identical: bool = True) -> bool:
        """Whether the attribute differs from its old value. With
            identical=False, loose equality is used instead.
        """
        if name not in self._current:
            return self._old is not None and name in self._old
        if self._old is None or name not in self._old:
            return True
        if identical:
            return differs(self._current[name], self._old[name])
        return self._current[name] != self._old[name]

    def dirty(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Return the set values among names (default all) that differ
            from the old snapshot. Every set value is dirty for a new
            store.
        """
        wanted = set(self.names if names is None else names)
        if self._old is None:
            return {k: v for k, v in self._current.items() if k in wanted}
        return {
            k: v for k, v in self._current.items()
            if k in wanted and (k not in self._old or differs(v, self._old[k]))
        }

    def mark_dirty(self, name: str) -> None:
        """Force the attribute to be written on the next save."""
        if self._old is not None:
            self._old.pop(name, None)

    def commit(self, values: Optional[dict[str, Any]]) -> None:
        """Replace the old snapshot. Passing None marks the store new."""
        tert(values is None or isinstance(values, dict), 'values must be dict or None')
        self._old = None if values is None else dict(values)

    def populate(self, values: dict[str, Any]) -> None:
        """Replace both snapshots with the given values. Names are not
            validated, as hydrated rows may carry extra columns.
        """
        tert(isinstance(values, dict), 'values must be dict')
        self._current = dict(values)
        self._old = dict(values)

    def reset(self, current: dict[str, Any], old: Optional[dict[str, Any]]) -> None:
        self._current = dict(current)
        self._old = None if old is None else dict(old)
