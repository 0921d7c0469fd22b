"""DetectionOrchestrator — one telemetry sample in, one acknowledgment out.

Per sample:

1. decode the raw message;
2. load the player's collected checkpoints (once) and registration;
3. advance the player's trajectory window;
4. test the segment against each catalog checkpoint in order, skipping
   regular checkpoints the player already holds;
5. feed crossings to the state machine and credit completed laps;
6. store the position and return a :class:`SampleAck`.

A storage failure before step 3 rejects the sample untouched.  Later
failures abort the rest of the sample and produce a failure ack; in-memory
state already updated for that sample is kept as is.  Unregistered and
teamless players are acknowledged with a note on every sample.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from checkpoint_racer.errors import CollaboratorUnavailable, UnknownEntity
from checkpoint_racer.geometry.intersect import DEFAULT_EPSILON, segment_intersects_box
from checkpoint_racer.telemetry.models import SampleAck, TelemetrySample
from checkpoint_racer.telemetry.parser import SampleDecoder
from checkpoint_racer.tracking.catalog import CheckpointCatalog
from checkpoint_racer.tracking.counter import LapCounter, LapCredit
from checkpoint_racer.tracking.state_machine import LapStateMachine
from checkpoint_racer.tracking.trajectory import TrajectoryTracker

_logger = logging.getLogger(__name__)


@dataclass
class LapEvent:
    """Emitted to listeners whenever a player completes a lap.

    ``credit`` is None when the lap was not credited (unknown player,
    inactive, capped).
    """

    player_id: str
    timestamp: float
    credit: LapCredit | None = None


@contextlib.contextmanager
def _collaborator(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise CollaboratorUnavailable(f"{action} failed: {exc}") from exc


class DetectionOrchestrator:
    """Wires decoder, tracker, catalog, state machine and counter together.

    Samples for the same player are serialized by a per-player lock; samples
    for different players may be handled concurrently from any thread.

    Parameters
    ----------
    storage:
        A :class:`~checkpoint_racer.telemetry.storage.RaceStorage`.
    catalog:
        The shared :class:`CheckpointCatalog`.
    counter:
        The :class:`LapCounter` configured for this deployment.
    epsilon:
        Parallel-axis tolerance passed to the intersection test.
    """

    def __init__(
        self,
        storage,
        catalog: CheckpointCatalog,
        counter: LapCounter,
        tracker: TrajectoryTracker | None = None,
        machine: LapStateMachine | None = None,
        decoder: SampleDecoder | None = None,
        epsilon: float = DEFAULT_EPSILON,
    ) -> None:
        self._storage = storage
        self._catalog = catalog
        self._counter = counter
        self._tracker = tracker or TrajectoryTracker()
        self._machine = machine or LapStateMachine()
        self._decoder = decoder or SampleDecoder()
        self._epsilon = epsilon
        self._listeners: list[Callable[[LapEvent], None]] = []
        self._player_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def tracker(self) -> TrajectoryTracker:
        return self._tracker

    @property
    def machine(self) -> LapStateMachine:
        return self._machine

    def register_lap_listener(self, listener: Callable[[LapEvent], None]) -> None:
        """Register *listener* to be called with a :class:`LapEvent` per completed lap."""
        self._listeners.append(listener)

    def handle(self, raw: str | bytes | dict) -> SampleAck:
        """Decode and process one raw message.  Never raises."""
        result = self._decoder.decode(raw)
        if not result.ok:
            _logger.warning("Rejected malformed sample: %s", result.error)
            return SampleAck(
                status="failure",
                player_id=result.player_id,
                error=f"malformed sample: {result.error}",
            )
        return self.process(result.sample)  # type: ignore[arg-type]

    def process(self, sample: TelemetrySample) -> SampleAck:
        """Process one decoded sample.  Never raises for storage failures."""
        player_id = sample.player_id
        with self._lock_for(player_id):
            try:
                return self._process_locked(sample)
            except CollaboratorUnavailable as exc:
                _logger.warning("Sample for %s failed: %s", player_id, exc)
                return SampleAck(status="failure", player_id=player_id, error=str(exc))

    def forget(self, player_id: str) -> None:
        """Drop in-memory trajectory, collection state and the lock for *player_id*."""
        lock = self._lock_for(player_id)
        with lock:
            self._tracker.forget(player_id)
            self._machine.forget(player_id)
        with self._locks_guard:
            if self._player_locks.get(player_id) is lock:
                del self._player_locks[player_id]
        self._counter.forget(player_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _process_locked(self, sample: TelemetrySample) -> SampleAck:
        player_id = sample.player_id

        # Reads first: a failure here rejects the sample before any state moves.
        if not self._machine.knows(player_id):
            with _collaborator("loading collected checkpoints"):
                self._machine.restore(player_id, self._storage.get_collected(player_id))
        with _collaborator("loading player"):
            entity_note = self._entity_note(player_id)

        segment = self._tracker.observe(player_id, sample.position.to_point())

        lap_completed = False
        lap_count: int | None = None
        note: str | None = None

        if segment is not None:
            snapshot = self._catalog.snapshot()
            self._machine.prune(player_id, snapshot)

            for checkpoint in snapshot:
                cid = checkpoint.checkpoint_id
                if not checkpoint.is_start_finish and self._machine.has_collected(player_id, cid):
                    continue
                if not segment_intersects_box(
                    segment.start, segment.end, checkpoint, self._epsilon
                ):
                    continue

                _logger.debug(
                    "Player %s crossed checkpoint %s (%s)", player_id, cid, checkpoint.name
                )
                completed = self._machine.on_crossing(player_id, checkpoint, snapshot)

                if completed:
                    with _collaborator("clearing collected checkpoints"):
                        self._storage.clear_collected(player_id)
                    lap_completed = True
                    credit, note = self._credit(player_id, sample.timestamp)
                    if credit is not None:
                        lap_count = credit.lap_count
                    self._emit(LapEvent(player_id, sample.timestamp, credit))
                elif not checkpoint.is_start_finish:
                    with _collaborator("recording collected checkpoint"):
                        self._storage.record_collected(player_id, cid)

        if note is None and entity_note is not None:
            note = f"laps not credited: {entity_note}"

        ack = SampleAck(
            status="success",
            player_id=player_id,
            lap_completed=lap_completed,
            lap_count=lap_count,
            note=note,
        )

        # Stored last; a failed write leaves the detection result in the ack.
        try:
            with _collaborator("saving position"):
                self._storage.save_position(
                    player_id, sample.timestamp, sample.position.to_point(), sample.auxiliary()
                )
        except CollaboratorUnavailable as exc:
            _logger.warning("Sample for %s failed: %s", player_id, exc)
            return ack.model_copy(update={"status": "failure", "error": str(exc)})
        return ack

    def _entity_note(self, player_id: str) -> str | None:
        """Describe why laps of *player_id* cannot be credited, or None."""
        player = self._storage.get_player(player_id)
        if player is None:
            return f"player {player_id!r} is not registered"
        if player.team_id is None:
            return f"player {player_id!r} has no team"
        if self._counter.scope == "team" and self._storage.get_team(player.team_id) is None:
            return f"team {player.team_id} does not exist"
        return None

    def _credit(self, player_id: str, timestamp: float) -> tuple[LapCredit | None, str | None]:
        """Apply the lap to the counter; return ``(credit, note)``."""
        with _collaborator("crediting lap"):
            player = self._storage.get_player(player_id)
            try:
                if player is None:
                    raise UnknownEntity(f"player {player_id!r} is not registered")
                credit = self._counter.apply(player, timestamp)
            except UnknownEntity as exc:
                _logger.info("Lap by %s not credited: %s", player_id, exc)
                return None, f"lap not credited: {exc}"

        if credit is None:
            _logger.info("Lap by %s not credited: not eligible", player_id)
            return None, "lap not credited: not eligible"

        _logger.info(
            "Lap completed by %s (%s %s now at %d)",
            player_id,
            credit.scope,
            credit.scope_id,
            credit.lap_count,
        )
        return credit, None

    def _emit(self, event: LapEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                _logger.exception("Lap listener failed for %s", event.player_id)

    def _lock_for(self, player_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._player_locks.get(player_id)
            if lock is None:
                lock = self._player_locks[player_id] = threading.Lock()
            return lock
