"""Registry of game groups with limits on groups and connections."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

FIRST_GROUP_ID = 1

logger = logging.getLogger(__name__)


class ManagedGroup(Protocol):
    limit: int

    @property
    def count(self) -> int: ...

    @property
    def rate(self) -> int: ...


class AddGroupError(Exception):
    """Raised when a group cannot be added."""

    GROUP_LIMIT_REACHED = "limit group count reached"
    CANNOT_GET_ID = "cannot get id for group"
    CONNS_LIMIT_REACHED = "cannot reserve connections for group: connections count reached"

    def __init__(self, reason: str) -> None:
        super().__init__(f"cannot add group: {reason}")
        self.reason = reason


class DeleteGroupError(Exception):
    """Raised when a group cannot be deleted."""

    NOT_EMPTY = "group is not empty"
    NOT_FOUND = "group not found"

    def __init__(self, reason: str) -> None:
        super().__init__(f"cannot delete group: {reason}")
        self.reason = reason


class GroupNotFoundError(LookupError):
    """Raised when no group has the requested id."""

    def __init__(self, group_id: int) -> None:
        super().__init__("not found group")
        self.group_id = group_id


@dataclass(frozen=True)
class Metric:
    """A gauge sample for the metrics exporter."""

    name: str
    help: str
    value: float
    labels: dict[str, str] = field(default_factory=dict)


_CAPACITY = ("server_capacity", "Capacity of the server", ())
_GAMES = ("server_games", "Games number", ())
_PLAYERS = ("server_games_players", "Players number", ("game_id",))
_RATE = ("server_games_rate", "Game rate", ("game_id",))


class ConnectionGroupManager:
    """Assigns ids to groups and reserves connections for them."""

    def __init__(self, group_limit: int, conns_limit: int) -> None:
        if group_limit <= 0:
            raise ValueError("cannot create connection group manager: invalid group limit")
        self._groups: dict[int, ManagedGroup] = {}
        self._lock = threading.RLock()
        self._group_limit = group_limit
        self._conns_limit = conns_limit
        self._conns_count = 0

    def _is_full(self) -> bool:
        return len(self._groups) == self._group_limit

    def is_full(self) -> bool:
        with self._lock:
            return self._is_full()

    def add(self, group: ManagedGroup) -> int:
        """Register ``group`` and return its id.

        The group's limit is reduced to the connections still available.
        """
        with self._lock:
            if self._is_full():
                raise AddGroupError(AddGroupError.GROUP_LIMIT_REACHED)

            available = self._conns_limit - self._conns_count
            if group.limit > available:
                if available < 1:
                    raise AddGroupError(AddGroupError.CONNS_LIMIT_REACHED)
                group.limit = available

            self._conns_count += group.limit

            for group_id in range(FIRST_GROUP_ID, len(self._groups) + FIRST_GROUP_ID + 1):
                if group_id not in self._groups:
                    self._groups[group_id] = group
                    return group_id

            raise AddGroupError(AddGroupError.CANNOT_GET_ID)

    def delete(self, group: ManagedGroup) -> None:
        """Unregister an empty group and release its connections."""
        with self._lock:
            if group.count != 0:
                raise DeleteGroupError(DeleteGroupError.NOT_EMPTY)
            for group_id, registered in self._groups.items():
                if registered is group:
                    del self._groups[group_id]
                    self._conns_count -= group.limit
                    return
            raise DeleteGroupError(DeleteGroupError.NOT_FOUND)

    def get(self, group_id: int) -> ManagedGroup:
        with self._lock:
            try:
                return self._groups[group_id]
            except KeyError:
                raise GroupNotFoundError(group_id) from None

    def groups(self) -> dict[int, ManagedGroup]:
        """Return a copy of the id-to-group mapping."""
        with self._lock:
            return dict(self._groups)

    @property
    def group_limit(self) -> int:
        return self._group_limit

    @property
    def conns_count(self) -> int:
        """Connections reserved by registered groups."""
        with self._lock:
            return self._conns_count

    def group_count(self) -> int:
        with self._lock:
            return len(self._groups)

    def _capacity(self) -> float:
        connected = sum(group.count for group in self._groups.values())
        return connected / self._conns_limit

    def capacity(self) -> float:
        """Return the share of the connection limit currently in use."""
        with self._lock:
            return self._capacity()

    def describe(self) -> list[tuple[str, str, tuple[str, ...]]]:
        """Return (name, help, label names) of every exported metric."""
        return [_CAPACITY, _GAMES, _PLAYERS, _RATE]

    def collect(self) -> list[Metric]:
        """Return the current gauge values."""
        with self._lock:
            metrics = [
                Metric(_CAPACITY[0], _CAPACITY[1], float(self._capacity())),
                Metric(_GAMES[0], _GAMES[1], float(len(self._groups))),
            ]
            for group_id in sorted(self._groups):
                group = self._groups[group_id]
                labels = {"game_id": str(group_id)}
                metrics.append(Metric(_PLAYERS[0], _PLAYERS[1], float(group.count), dict(labels)))
                metrics.append(Metric(_RATE[0], _RATE[1], float(group.rate), dict(labels)))
            return metrics