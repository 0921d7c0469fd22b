"""TrajectoryTracker — two-slot position window per player."""

from __future__ import annotations

from dataclasses import dataclass

from checkpoint_racer.geometry.models import Point3


@dataclass(frozen=True)
class Segment:
    """Motion between two consecutive samples of one player."""

    start: Point3
    end: Point3


@dataclass
class TrajectoryWindow:
    previous: Point3 | None = None
    current: Point3 | None = None


class TrajectoryTracker:
    """Keeps the two most recent positions of every player.

    Not thread-safe per player: callers must serialize :meth:`observe` for a
    given player id in arrival order.  Different players may be observed
    concurrently.
    """

    def __init__(self) -> None:
        self._windows: dict[str, TrajectoryWindow] = {}

    def observe(self, player_id: str, position: Point3) -> Segment | None:
        """Shift *position* into the window and return the new segment.

        Returns None on the first observation of *player_id*.
        """
        window = self._windows.get(player_id)
        if window is None:
            window = TrajectoryWindow()
            self._windows[player_id] = window

        window.previous = window.current
        window.current = position

        if window.previous is None:
            return None
        return Segment(window.previous, window.current)

    def window(self, player_id: str) -> TrajectoryWindow | None:
        """Return a copy of the player's window, or None if never observed."""
        window = self._windows.get(player_id)
        if window is None:
            return None
        return TrajectoryWindow(window.previous, window.current)

    def forget(self, player_id: str) -> None:
        self._windows.pop(player_id, None)
