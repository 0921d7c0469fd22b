"""SampleDispatcher — per-player ordered, cross-player parallel sample processing."""

from __future__ import annotations

import logging
import queue
import threading
import zlib
from collections.abc import Callable

from checkpoint_racer.telemetry.models import SampleAck, TelemetrySample

_logger = logging.getLogger(__name__)

_STOP = object()


class SampleDispatcher:
    """Routes samples to a fixed pool of worker threads keyed by player id.

    Every sample of one player lands on the same worker queue, so a player's
    samples are handled in submission order while different players run in
    parallel.  Queues block when full; samples are never dropped because a
    skipped sample would change the detected segment.

    Parameters
    ----------
    handler:
        Called with each :class:`TelemetrySample`; returns a
        :class:`SampleAck` (normally ``DetectionOrchestrator.process``).
    workers:
        Number of worker threads.
    queue_maxsize:
        Per-worker queue bound before :meth:`submit` blocks.
    on_ack:
        Optional callback receiving every acknowledgment, from worker threads.
    """

    def __init__(
        self,
        handler: Callable[[TelemetrySample], SampleAck],
        workers: int = 4,
        queue_maxsize: int = 1000,
        on_ack: Callable[[SampleAck], None] | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._handler = handler
        self._on_ack = on_ack
        self._queues: list[queue.Queue] = [
            queue.Queue(maxsize=queue_maxsize) for _ in range(workers)
        ]
        self._threads: list[threading.Thread] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker threads."""
        if self._threads:
            return
        for i, q in enumerate(self._queues):
            t = threading.Thread(
                target=self._run, args=(q,), daemon=True, name=f"SampleWorker-{i}"
            )
            t.start()
            self._threads.append(t)

    def submit(self, sample: TelemetrySample) -> None:
        """Queue *sample* on its player's worker."""
        self._queues[self._route(sample.player_id)].put(sample)

    def join(self) -> None:
        """Block until every submitted sample has been handled."""
        for q in self._queues:
            q.join()

    def stop(self, timeout: float = 5.0) -> None:
        """Finish queued samples, then stop and join the workers."""
        for q in self._queues:
            q.put(_STOP)
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads = []

    def queue_sizes(self) -> list[int]:
        return [q.qsize() for q in self._queues]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _route(self, player_id: str) -> int:
        return zlib.crc32(player_id.encode("utf-8")) % len(self._queues)

    def _run(self, q: queue.Queue) -> None:
        while True:
            item = q.get()
            try:
                if item is _STOP:
                    return
                try:
                    ack = self._handler(item)
                except Exception:
                    _logger.exception("Handler failed for %s", item.player_id)
                    ack = SampleAck(
                        status="failure", player_id=item.player_id, error="internal error"
                    )
                if self._on_ack is not None:
                    self._on_ack(ack)
            finally:
                q.task_done()
