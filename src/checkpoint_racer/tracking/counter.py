"""LapCounter — credits completed laps to a player or a team."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from checkpoint_racer.errors import UnknownEntity
from checkpoint_racer.telemetry.models import PlayerRecord

_logger = logging.getLogger(__name__)


@dataclass
class LapCredit:
    """Result of crediting one lap.

    ``scope_id`` is the player id for ``"player"`` scope and the team id for
    ``"team"`` scope.  ``deactivated`` is True when this lap reached the cap.
    """

    player_id: str
    scope: str
    scope_id: str | int
    lap_count: int
    deactivated: bool = False


class LapCounter:
    """Applies lap completions to the configured counter.

    Increments for one counter are serialized by a lock keyed on
    ``(scope, scope_id)`` so that the increment and the cap check form one
    step even when several players of a team finish together.

    Parameters
    ----------
    storage:
        A :class:`~checkpoint_racer.telemetry.storage.RaceStorage`.
    scope:
        ``"player"`` or ``"team"``.
    lap_cap:
        Deactivate the counter's owner once its lap count reaches this value.
        None disables the cap.
    """

    def __init__(self, storage, scope: str = "player", lap_cap: int | None = None) -> None:
        if scope not in ("player", "team"):
            raise ValueError(f"unknown lap scope {scope!r}")
        self._storage = storage
        self._scope = scope
        self._cap = lap_cap
        self._locks: dict[tuple[str, str | int], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def scope(self) -> str:
        return self._scope

    def apply(self, player: PlayerRecord, timestamp: float) -> LapCredit | None:
        """Credit one lap for *player*.

        Returns None when the player or team is no longer eligible (inactive
        or capped).

        Raises
        ------
        UnknownEntity
            If the player has no team, or its team no longer exists.
        """
        if player.team_id is None:
            raise UnknownEntity(f"player {player.player_id!r} has no team")
        if not player.is_active:
            return None

        key: str | int = player.team_id if self._scope == "team" else player.player_id
        with self._lock_for(key):
            if self._scope == "team":
                count = self._storage.increment_team_laps(player.team_id)
                if count is None:
                    if self._storage.get_team(player.team_id) is None:
                        raise UnknownEntity(f"team {player.team_id} does not exist")
                    return None
            else:
                count = self._storage.increment_player_laps(player.player_id)
                if count is None:
                    return None

            self._storage.record_lap(player.player_id, player.team_id, timestamp)

            deactivated = self._cap is not None and count >= self._cap
            if deactivated:
                if self._scope == "team":
                    self._storage.deactivate_team(player.team_id)
                else:
                    self._storage.deactivate_player(player.player_id)
                _logger.info("%s %s reached the lap cap (%d)", self._scope, key, self._cap)

        return LapCredit(
            player_id=player.player_id,
            scope=self._scope,
            scope_id=key,
            lap_count=count,
            deactivated=deactivated,
        )

    def forget(self, scope_id: str | int) -> None:
        """Drop the lock of a deleted player or team in the current scope."""
        with self._locks_guard:
            self._locks.pop((self._scope, scope_id), None)

    def _lock_for(self, key: str | int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get((self._scope, key))
            if lock is None:
                lock = self._locks[(self._scope, key)] = threading.Lock()
            return lock
