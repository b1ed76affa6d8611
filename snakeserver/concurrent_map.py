"""A thread-safe map of 16-bit unsigned integer keys split into locked shards."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import ExitStack
from typing import Any

DEFAULT_SHARD_COUNT = 32

_MAX_KEY = 0xFFFF
_MISSING = object()

UpsertCallback = Callable[[bool, Any, Any], Any]
RemoveCallback = Callable[[int, Any, bool], bool]
IterCallback = Callable[[int, Any], None]


def _check_key(key: int) -> int:
    if isinstance(key, bool) or not isinstance(key, int):
        raise TypeError(f"key must be an integer, got {type(key).__name__}")
    if not 0 <= key <= _MAX_KEY:
        raise ValueError(f"key out of range 0..{_MAX_KEY}: {key}")
    return key


class _Shard:
    __slots__ = ("items", "lock")

    def __init__(self) -> None:
        self.items: dict[int, Any] = {}
        self.lock = threading.Lock()


class ConcurrentMap:
    """Map from uint16 keys to arbitrary values, divided into shards.

    Each shard has its own lock so that operations on keys in different
    shards do not contend with each other.
    """

    def __init__(self, shard_count: int = DEFAULT_SHARD_COUNT) -> None:
        if shard_count < 1:
            raise ValueError("invalid shard count: less than 1")
        self._shards = [_Shard() for _ in range(shard_count)]

    @property
    def shard_count(self) -> int:
        return len(self._shards)

    def shard_index(self, key: int) -> int:
        """Return the index of the shard that holds ``key``."""
        return _check_key(key) % len(self._shards)

    def _shard(self, key: int) -> _Shard:
        return self._shards[self.shard_index(key)]

    def _group_items(self, data: Mapping[int, Any]) -> dict[int, list[tuple[int, Any]]]:
        grouped: dict[int, list[tuple[int, Any]]] = {}
        for key, value in data.items():
            grouped.setdefault(self.shard_index(key), []).append((key, value))
        return grouped

    def _group_keys(self, keys: Iterable[int]) -> dict[int, list[int]]:
        grouped: dict[int, list[int]] = {}
        for key in keys:
            grouped.setdefault(self.shard_index(key), []).append(key)
        return grouped

    def mset(self, data: Mapping[int, Any]) -> None:
        """Set every key/value pair of ``data``."""
        for index, pairs in self._group_items(data).items():
            shard = self._shards[index]
            with shard.lock:
                shard.items.update(pairs)

    def mset_if_all_absent(self, data: Mapping[int, Any]) -> bool:
        """Set all pairs of ``data`` only if none of its keys is present.

        Returns True if the pairs were stored, False if nothing changed.
        """
        grouped = self._group_items(data)
        with ExitStack() as stack:
            for index in sorted(grouped):
                stack.enter_context(self._shards[index].lock)
            for index, pairs in grouped.items():
                items = self._shards[index].items
                if any(key in items for key, _ in pairs):
                    return False
            for index, pairs in grouped.items():
                self._shards[index].items.update(pairs)
        return True

    def mset_if_absent(self, data: Mapping[int, Any]) -> list[int]:
        """Set each pair whose key is absent; return the keys that were set."""
        stored: list[int] = []
        for index, pairs in self._group_items(data).items():
            shard = self._shards[index]
            with shard.lock:
                for key, value in pairs:
                    if key not in shard.items:
                        shard.items[key] = value
                        stored.append(key)
        return stored

    def set(self, key: int, value: Any) -> None:
        shard = self._shard(key)
        with shard.lock:
            shard.items[key] = value

    def upsert(self, key: int, value: Any, callback: UpsertCallback) -> Any:
        """Store ``callback(exists, current, value)`` under ``key`` and return it.

        The callback runs while the shard lock is held and must not touch
        this map.
        """
        shard = self._shard(key)
        with shard.lock:
            exists = key in shard.items
            result = callback(exists, shard.items.get(key), value)
            shard.items[key] = result
        return result

    def set_if_absent(self, key: int, value: Any) -> bool:
        """Store ``value`` if ``key`` is absent; return whether it was stored."""
        shard = self._shard(key)
        with shard.lock:
            if key in shard.items:
                return False
            shard.items[key] = value
            return True

    def get(self, key: int, default: Any = None) -> Any:
        shard = self._shard(key)
        with shard.lock:
            return shard.items.get(key, default)

    def mget(self, keys: Iterable[int]) -> dict[int, Any]:
        """Return a dict of those ``keys`` that are present, with their values."""
        found: dict[int, Any] = {}
        for index, shard_keys in self._group_keys(keys).items():
            shard = self._shards[index]
            with shard.lock:
                for key in shard_keys:
                    value = shard.items.get(key, _MISSING)
                    if value is not _MISSING:
                        found[key] = value
        return found

    def count(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.items)
        return total

    def __len__(self) -> int:
        return self.count()

    def has(self, key: int) -> bool:
        shard = self._shard(key)
        with shard.lock:
            return key in shard.items

    def __contains__(self, key: object) -> bool:
        if isinstance(key, bool) or not isinstance(key, int) or not 0 <= key <= _MAX_KEY:
            return False
        return self.has(key)

    def has_any(self, keys: Iterable[int]) -> bool:
        for index, shard_keys in self._group_keys(keys).items():
            shard = self._shards[index]
            with shard.lock:
                if any(key in shard.items for key in shard_keys):
                    return True
        return False

    def has_all(self, keys: Iterable[int]) -> bool:
        for index, shard_keys in self._group_keys(keys).items():
            shard = self._shards[index]
            with shard.lock:
                if not all(key in shard.items for key in shard_keys):
                    return False
        return True

    def remove(self, key: int) -> None:
        """Remove ``key`` if present; a missing key is ignored."""
        shard = self._shard(key)
        with shard.lock:
            shard.items.pop(key, None)

    def mremove(self, keys: Iterable[int]) -> None:
        for index, shard_keys in self._group_keys(keys).items():
            shard = self._shards[index]
            with shard.lock:
                for key in shard_keys:
                    shard.items.pop(key, None)

    def remove_cb(self, key: int, callback: RemoveCallback) -> bool:
        """Call ``callback(key, value, exists)`` under the shard lock.

        The element is removed if the callback returns true and it exists.
        The callback's result is returned either way.
        """
        shard = self._shard(key)
        with shard.lock:
            exists = key in shard.items
            remove = bool(callback(key, shard.items.get(key), exists))
            if remove and exists:
                del shard.items[key]
        return remove

    def mremove_cb(self, keys: Iterable[int], callback: RemoveCallback) -> None:
        """Remove each present key for which ``callback(key, value, True)`` is true."""
        for index, shard_keys in self._group_keys(keys).items():
            shard = self._shards[index]
            with shard.lock:
                for key in shard_keys:
                    value = shard.items.get(key, _MISSING)
                    if value is not _MISSING and callback(key, value, True):
                        del shard.items[key]

    def pop(self, key: int) -> Any:
        """Remove ``key`` and return its value; raise KeyError if absent."""
        shard = self._shard(key)
        with shard.lock:
            return shard.items.pop(key)

    def is_empty(self) -> bool:
        return self.count() == 0

    def _snapshot(self) -> list[tuple[int, Any]]:
        pairs: list[tuple[int, Any]] = []
        for shard in self._shards:
            with shard.lock:
                pairs.extend(shard.items.items())
        return pairs

    def iter(self) -> Iterator[tuple[int, Any]]:
        """Iterate over a snapshot of (key, value) pairs taken at call time."""
        return iter(self._snapshot())

    def __iter__(self) -> Iterator[int]:
        """Iterate over a snapshot of the keys."""
        return iter(self.keys())

    def items(self) -> dict[int, Any]:
        """Return a snapshot of all elements as a plain dict."""
        return dict(self._snapshot())

    def iter_cb(self, callback: IterCallback) -> None:
        """Call ``callback(key, value)`` for every element, shard by shard.

        Each shard's lock is held while its elements are visited.
        """
        for shard in self._shards:
            with shard.lock:
                for key, value in shard.items.items():
                    callback(key, value)

    def keys(self) -> list[int]:
        keys: list[int] = []
        for shard in self._shards:
            with shard.lock:
                keys.extend(shard.items)
        return keys

    def to_json(self) -> str:
        """Encode all elements as a compact JSON object with sorted string keys."""
        return json.dumps(
            {str(key): value for key, value in self._snapshot()},
            sort_keys=True,
            separators=(",", ":"),
        )