"""Write-once context store shared by the tasks of a single run.

Each key is written exactly once, by the task of that name (or by the
caller's seed before dispatch).  Every write takes a private snapshot of
the value, so the writer cannot change an entry after handing it over.

Executors read entries through a frozen :class:`Context`:

* Values built from plain containers and scalars are frozen recursively:
  mappings become read-only ``MappingProxyType`` views, lists and tuples
  become tuples, sets become frozensets.  Mutation attempts raise
  ``TypeError`` inside the offending executor.
* Anything else is deep-copied on every read, so a reader can mutate its
  copy but never the stored value.

The caller of a run reads through a thawed :class:`Context` instead: each
read returns a fresh copy with the container types that were written, so
a list comes back as a list and compares equal to it.
"""

from __future__ import annotations

import copy
import datetime
import decimal
import enum
import fractions
import threading
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from flowmanager.core.exceptions import ContextWriteError

_SCALARS = (
    str,
    bytes,
    int,
    float,
    complex,
    bool,
    type(None),
    enum.Enum,
    range,
    decimal.Decimal,
    fractions.Fraction,
    uuid.UUID,
    datetime.date,
    datetime.time,
    datetime.timedelta,
)


def _freeze(value: Any) -> tuple[Any, bool]:
    """Return ``(frozen, complete)``; *complete* is False if any leaf is opaque."""
    if isinstance(value, _SCALARS):
        return value, True
    if isinstance(value, Mapping):
        items = {key: _freeze(item) for key, item in value.items()}
        return (
            MappingProxyType({key: frozen for key, (frozen, _) in items.items()}),
            all(complete for _, complete in items.values()),
        )
    if isinstance(value, (list, tuple)):
        items = [_freeze(item) for item in value]
        frozen = [item for item, _ in items]
        if isinstance(value, tuple) and hasattr(value, "_fields"):
            result = type(value)(*frozen)
        else:
            result = tuple(frozen)
        return result, all(complete for _, complete in items)
    if isinstance(value, (set, frozenset)):
        items = [_freeze(item) for item in value]
        return frozenset(item for item, _ in items), all(complete for _, complete in items)
    return value, False


def freeze(value: Any) -> Any:
    """Return a deeply read-only equivalent of *value*.

    Raises ``TypeError`` if *value* contains something that cannot be frozen.
    """
    frozen, complete = _freeze(value)
    if not complete:
        raise TypeError(f"{type(value).__name__} value cannot be frozen")
    return frozen


def _thaw(value: Any) -> Any:
    """Return a mutable deep copy of *value*.

    Read-only mappings are copied into dicts; every other container keeps
    its own type.
    """
    if isinstance(value, _SCALARS):
        return value
    cls = type(value)
    if cls is dict or cls is MappingProxyType:
        return {key: _thaw(item) for key, item in value.items()}
    if cls is list:
        return [_thaw(item) for item in value]
    if cls is set:
        return {_thaw(item) for item in value}
    if cls is tuple:
        return tuple(_thaw(item) for item in value)
    if isinstance(value, tuple) and hasattr(value, "_fields"):
        return cls(*(_thaw(item) for item in value))
    return copy.deepcopy(value)


@dataclass(frozen=True)
class _Entry:
    snapshot: Any
    frozen: Any
    shared: bool

    @classmethod
    def capture(cls, key: str, value: Any) -> _Entry:
        try:
            snapshot = _thaw(value)
        except Exception as exc:
            raise ContextWriteError(key, f"value cannot be frozen or copied ({exc})") from exc
        frozen, complete = _freeze(snapshot)
        return cls(snapshot, frozen if complete else None, shared=complete)

    def get(self, thawed: bool = False) -> Any:
        if self.shared and not thawed:
            return self.frozen
        return _thaw(self.snapshot)


class ContextStore:
    """Single-writer-per-key store backing one run.

    Writes are check-and-set under a lock, so a double write is rejected
    even if an executor thread races the event loop.
    """

    def __init__(self, seed: Mapping[str, Any] | None = None) -> None:
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        for key, value in (seed or {}).items():
            self.write(key, value)

    def write(self, key: str, value: Any) -> None:
        """Store *value* under *key*; raises :class:`ContextWriteError` if already set."""
        entry = _Entry.capture(key, value)
        with self._lock:
            if key in self._entries:
                raise ContextWriteError(key)
            self._entries[key] = entry

    def read(self, key: str, *, thawed: bool = False) -> Any:
        """Return the entry for *key*, frozen by default or as a mutable copy."""
        return self._entries[key].get(thawed)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def view(self, *, thawed: bool = False) -> Context:
        return Context(self, thawed=thawed)


class Context(Mapping[str, Any]):
    """Read-only mapping view of a :class:`ContextStore`.

    The view is live: entries written after it was created become visible.
    A *thawed* view returns mutable copies that compare equal to the
    values as written; the store itself is never affected.
    """

    __slots__ = ("_store", "_thawed")

    def __init__(self, store: ContextStore, *, thawed: bool = False) -> None:
        self._store = store
        self._thawed = thawed

    def __getitem__(self, key: str) -> Any:
        if key not in self._store:
            raise KeyError(key)
        return self._store.read(key, thawed=self._thawed)

    def __iter__(self) -> Iterator[str]:
        return iter(self._store.keys())

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"Context({self._store.keys()!r})"
