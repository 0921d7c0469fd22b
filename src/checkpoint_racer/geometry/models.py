"""Geometry value types — points and axis-aligned checkpoint volumes."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Point3:
    """A point in world space.

    Coordinates use whatever units the telemetry source reports
    (typically metres).
    """

    x: float
    y: float
    z: float

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class Box3:
    """An axis-aligned checkpoint volume.

    Inverted corners are swapped component-wise on construction so that
    ``min <= max`` always holds on every axis.

    ``order`` only affects iteration order; two checkpoints may share it,
    in which case ``checkpoint_id`` breaks the tie.
    """

    checkpoint_id: int
    min: Point3
    max: Point3
    is_start_finish: bool = False
    order: int = 0
    name: str = ""

    def __post_init__(self) -> None:
        lo = tuple(min(a, b) for a, b in zip(self.min.as_tuple(), self.max.as_tuple()))
        hi = tuple(max(a, b) for a, b in zip(self.min.as_tuple(), self.max.as_tuple()))
        object.__setattr__(self, "min", Point3(*lo))
        object.__setattr__(self, "max", Point3(*hi))

    def contains(self, p: Point3) -> bool:
        """Return True if *p* lies inside the closed box (faces included)."""
        return (
            self.min.x <= p.x <= self.max.x
            and self.min.y <= p.y <= self.max.y
            and self.min.z <= p.z <= self.max.z
        )

    def sort_key(self) -> tuple[int, int]:
        return (self.order, self.checkpoint_id)
