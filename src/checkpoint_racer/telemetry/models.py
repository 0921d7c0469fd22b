"""Telemetry models — wire samples, acknowledgments and player records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat

from checkpoint_racer.geometry.models import Point3


class Vector3(BaseModel):
    """A 3-component vector as sent by the client.

    Components must be JSON numbers; strings and booleans are not coerced.
    """

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    x: StrictFloat
    y: StrictFloat
    z: StrictFloat

    def to_point(self) -> Point3:
        return Point3(self.x, self.y, self.z)


class TelemetrySample(BaseModel):
    """One position update for one player.

    ``timestamp`` is informational only; detection relies on arrival order.
    ``velocity`` and ``orientation`` are opaque to detection and are only
    forwarded to storage.
    """

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    player_id: str = Field(min_length=1, strict=True)
    timestamp: float = Field(ge=0, strict=True)
    position: Vector3
    velocity: Vector3 | None = None
    orientation: dict[str, StrictFloat] | None = None

    def auxiliary(self) -> dict:
        """Return the opaque auxiliary fields as a JSON-serializable dict."""
        aux: dict = {}
        if self.velocity is not None:
            aux["velocity"] = self.velocity.model_dump()
        if self.orientation is not None:
            aux["orientation"] = dict(self.orientation)
        return aux


class SampleAck(BaseModel):
    """Per-sample outcome sent back to the telemetry source."""

    status: Literal["success", "failure"]
    player_id: str | None = None
    lap_completed: bool = False
    lap_count: int | None = None
    note: str | None = None
    error: str | None = None


@dataclass
class PlayerRecord:
    """A persisted player row.

    ``team_id`` is None when the player has no team assignment.
    """

    player_id: str
    name: str
    team_id: int | None = None
    lap_count: int = 0
    is_active: bool = True
    on_pitstop: bool = False
