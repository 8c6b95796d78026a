"""
Per-instance record of attributes assigned since load or the last save.
"""
from collections.abc import Iterator, Mapping
from typing import Any


class DirtyTracker:
    """Ordered set of flagged attribute names.

    Flagging records an intent to write, not a value change: assigning the
    same value again still flags the attribute.

    >>> dirty = DirtyTracker()
    >>> dirty.flag('name'); dirty.flag('state'); dirty.flag('name')
    >>> dirty.diff({'name': 'b', 'state': 'open', 'id': 1})
    {'name': 'b', 'state': 'open'}
    """

    __slots__ = ('_names',)

    def __init__(self) -> None:
        self._names: dict[str, None] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __bool__(self) -> bool:
        return bool(self._names)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __repr__(self) -> str:
        return f'DirtyTracker({list(self._names)!r})'

    def flag(self, name: str) -> None:
        self._names.setdefault(name, None)

    def unflag(self, name: str) -> None:
        self._names.pop(name, None)

    def diff(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Flagged names paired with their current values, in flag order.

        Names missing from attributes are skipped.
        """
        return {name: attributes[name] for name in self._names if name in attributes}

    def clear(self) -> None:
        self._names.clear()

    def copy(self) -> 'DirtyTracker':
        other = DirtyTracker()
        other._names = dict(self._names)
        return other
