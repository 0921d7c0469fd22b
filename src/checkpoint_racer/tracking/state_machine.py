"""LapStateMachine — per-player checkpoint collection and lap completion.

A player is always *collecting*.  Crossing a regular checkpoint adds it to
the player's collected set; crossing a start/finish checkpoint completes a
lap when the collected set covers every regular checkpoint of the current
catalog, which clears the set.  Ids that disappeared from the catalog are
dropped rather than counted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from checkpoint_racer.errors import CatalogInconsistency
from checkpoint_racer.geometry.models import Box3
from checkpoint_racer.tracking.catalog import CatalogSnapshot

_logger = logging.getLogger(__name__)


class LapStateMachine:
    """Tracks collected regular checkpoints for every player.

    Calls for one player must be serialized by the caller.
    """

    def __init__(self) -> None:
        self._collected: dict[str, set[int]] = {}

    def knows(self, player_id: str) -> bool:
        return player_id in self._collected

    def restore(self, player_id: str, checkpoint_ids: Iterable[int]) -> None:
        """Seed a player's collected set, e.g. from storage after a restart."""
        self._collected[player_id] = set(checkpoint_ids)

    def collected(self, player_id: str) -> frozenset[int]:
        return frozenset(self._collected.get(player_id, ()))

    def has_collected(self, player_id: str, checkpoint_id: int) -> bool:
        return checkpoint_id in self._collected.get(player_id, ())

    def prune(self, player_id: str, snapshot: CatalogSnapshot) -> set[int]:
        """Drop ids that are no longer regular checkpoints; return the dropped ids."""
        collected = self._collected.setdefault(player_id, set())
        stale = collected - snapshot.regular_ids
        if stale:
            _logger.debug("Player %s: dropping stale checkpoints %s", player_id, sorted(stale))
            collected -= stale
        return stale

    def on_crossing(self, player_id: str, checkpoint: Box3, snapshot: CatalogSnapshot) -> bool:
        """Apply one crossing and return True if it completed a lap.

        Re-crossing an already collected regular checkpoint is a no-op.  A
        checkpoint absent from *snapshot* is ignored.
        """
        try:
            snapshot.get(checkpoint.checkpoint_id)
        except CatalogInconsistency as exc:
            _logger.debug("Player %s: ignoring crossing: %s", player_id, exc)
            return False

        self.prune(player_id, snapshot)
        collected = self._collected[player_id]

        if not checkpoint.is_start_finish:
            collected.add(checkpoint.checkpoint_id)
            return False

        if snapshot.regular_ids <= collected:
            collected.clear()
            return True

        _logger.debug(
            "Player %s crossed start/finish with %d/%d checkpoints",
            player_id,
            len(collected),
            len(snapshot.regular_ids),
        )
        return False

    def forget(self, player_id: str) -> None:
        self._collected.pop(player_id, None)
