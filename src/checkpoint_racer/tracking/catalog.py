"""CheckpointCatalog — copy-on-write set of checkpoint volumes.

Readers take a :class:`CatalogSnapshot` (an immutable tuple) once per sample
and iterate it without locking.  Writers build a new snapshot under a lock
and swap the reference, so a reader never sees a half-applied edit.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from checkpoint_racer.errors import CatalogInconsistency
from checkpoint_racer.geometry.models import Box3


@dataclass(frozen=True)
class CatalogSnapshot:
    """One consistent catalog version, ordered by ``order`` then id."""

    checkpoints: tuple[Box3, ...] = ()
    version: int = 0
    regular_ids: frozenset[int] = field(init=False)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.checkpoints, key=Box3.sort_key))
        object.__setattr__(self, "checkpoints", ordered)
        object.__setattr__(
            self,
            "regular_ids",
            frozenset(c.checkpoint_id for c in ordered if not c.is_start_finish),
        )

    def __iter__(self) -> Iterator[Box3]:
        return iter(self.checkpoints)

    def __len__(self) -> int:
        return len(self.checkpoints)

    def get(self, checkpoint_id: int) -> Box3:
        """Return the checkpoint with *checkpoint_id*.

        Raises
        ------
        CatalogInconsistency
            If the id is not part of this snapshot.
        """
        for c in self.checkpoints:
            if c.checkpoint_id == checkpoint_id:
                return c
        raise CatalogInconsistency(f"checkpoint {checkpoint_id} is not in catalog v{self.version}")


class CheckpointCatalog:
    """Holds the current :class:`CatalogSnapshot` and applies admin edits."""

    def __init__(self, checkpoints: Iterable[Box3] = ()) -> None:
        self._write_lock = threading.Lock()
        self._snapshot = CatalogSnapshot(tuple(checkpoints), version=0)

    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def ordered(self) -> tuple[Box3, ...]:
        """Return the current checkpoints in processing order."""
        return self._snapshot.checkpoints

    def replace_all(self, checkpoints: Iterable[Box3]) -> CatalogSnapshot:
        with self._write_lock:
            return self._swap(tuple(checkpoints))

    def reload(self, storage) -> CatalogSnapshot:
        """Replace the catalog with ``storage.list_checkpoints()``."""
        return self.replace_all(storage.list_checkpoints())

    def upsert(self, box: Box3) -> CatalogSnapshot:
        """Add *box*, or fully replace the entry with the same id."""
        with self._write_lock:
            kept = tuple(c for c in self._snapshot if c.checkpoint_id != box.checkpoint_id)
            return self._swap(kept + (box,))

    def remove(self, checkpoint_id: int) -> bool:
        """Drop *checkpoint_id*.  Returns False if it was not present."""
        with self._write_lock:
            kept = tuple(c for c in self._snapshot if c.checkpoint_id != checkpoint_id)
            if len(kept) == len(self._snapshot):
                return False
            self._swap(kept)
            return True

    def _swap(self, checkpoints: tuple[Box3, ...]) -> CatalogSnapshot:
        snap = CatalogSnapshot(checkpoints, version=self._snapshot.version + 1)
        self._snapshot = snap
        return snap
