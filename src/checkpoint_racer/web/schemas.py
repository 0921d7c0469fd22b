"""Pydantic request/response schemas for the Web API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from checkpoint_racer.geometry.models import Box3
from checkpoint_racer.telemetry.models import Vector3


class HealthResponse(BaseModel):
    status: str
    version: str
    checkpoints: int


class StatusResponse(BaseModel):
    status: str
    message: str


class TeamCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str = Field(min_length=1)


class TeamCreated(StatusResponse):
    team_id: int


class TeamRecord(BaseModel):
    id: int
    name: str
    color: str
    lap_count: int
    is_active: bool
    player_count: int = 0


class PlayerIn(BaseModel):
    """Full replacement of a player's administrative fields."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    team_id: int
    is_active: bool = True
    on_pitstop: bool = False


class PlayerOut(BaseModel):
    player_id: str
    name: str
    team_id: int | None
    team_name: str | None = None
    team_color: str | None = None
    lap_count: int
    is_active: bool
    on_pitstop: bool


class ToggleResponse(StatusResponse):
    value: bool


class LapAdded(StatusResponse):
    lap_id: int


class LapEntry(BaseModel):
    player_id: str
    name: str
    color: str | None
    timestamp: float


class CheckpointIn(BaseModel):
    """Every field is required: updates are full replaces."""

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    name: str = Field(min_length=1)
    is_start_finish: bool
    min: Vector3
    max: Vector3
    order: int


class CheckpointOut(BaseModel):
    id: int
    name: str
    is_start_finish: bool
    min: Vector3
    max: Vector3
    order: int

    @classmethod
    def from_box(cls, box: Box3) -> CheckpointOut:
        return cls(
            id=box.checkpoint_id,
            name=box.name,
            is_start_finish=box.is_start_finish,
            min=Vector3(x=box.min.x, y=box.min.y, z=box.min.z),
            max=Vector3(x=box.max.x, y=box.max.y, z=box.max.z),
            order=box.order,
        )


def checkpoint_box(checkpoint_id: int, body: CheckpointIn) -> Box3:
    return Box3(
        checkpoint_id=checkpoint_id,
        min=body.min.to_point(),
        max=body.max.to_point(),
        is_start_finish=body.is_start_finish,
        order=body.order,
        name=body.name,
    )
