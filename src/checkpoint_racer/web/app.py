"""FastAPI application — telemetry WebSocket plus race administration."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from starlette.concurrency import run_in_threadpool

from checkpoint_racer.config import RaceConfig
from checkpoint_racer.context import RaceContext
from checkpoint_racer.telemetry.models import PlayerRecord
from checkpoint_racer.tracking.orchestrator import LapEvent
from checkpoint_racer.web.schemas import (
    CheckpointIn,
    CheckpointOut,
    HealthResponse,
    LapAdded,
    LapEntry,
    PlayerIn,
    PlayerOut,
    StatusResponse,
    TeamCreate,
    TeamCreated,
    TeamRecord,
    ToggleResponse,
    checkpoint_box,
)

_logger = logging.getLogger(__name__)

VERSION = "0.1.0"

router = APIRouter()


def _context(request: Request) -> RaceContext:
    return request.app.state.race


def _log_lap(event: LapEvent) -> None:
    if event.credit is None:
        _logger.info("Lap by %s at %.3f (not credited)", event.player_id, event.timestamp)
    else:
        _logger.info(
            "Lap by %s at %.3f: %s %s has %d",
            event.player_id,
            event.timestamp,
            event.credit.scope,
            event.credit.scope_id,
            event.credit.lap_count,
        )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(config: RaceConfig | None = None) -> FastAPI:
    """Build the app.  The :class:`RaceContext` is opened on startup.

    With no *config*, settings come from ``RACE_*`` environment variables
    (``.env`` is loaded first).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config is None:
            load_dotenv()
        ctx = RaceContext.open(config or RaceConfig.from_env())
        ctx.orchestrator.register_lap_listener(_log_lap)
        app.state.race = ctx
        try:
            yield
        finally:
            ctx.close()

    app = FastAPI(title="Checkpoint Racer", version=VERSION, lifespan=lifespan)
    app.include_router(router)
    return app


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
def health(ctx: RaceContext = Depends(_context)) -> HealthResponse:
    return HealthResponse(status="ok", version=VERSION, checkpoints=len(ctx.catalog.snapshot()))


@router.websocket("/ws/telemetry")
async def telemetry_socket(websocket: WebSocket) -> None:
    """One JSON sample per message in, one JSON ack per message out.

    Text and binary frames are both decoded; anything that is not a valid
    sample gets a failure ack.  Messages of one connection are handled
    strictly one after another.
    """
    ctx: RaceContext = websocket.app.state.race
    await websocket.accept()
    _logger.info("Telemetry connection opened: %s", websocket.client)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            ack = await run_in_threadpool(ctx.orchestrator.handle, raw)
            await websocket.send_text(ack.model_dump_json())
    except WebSocketDisconnect:
        _logger.info("Telemetry connection closed: %s", websocket.client)


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


@router.get("/api/teams", response_model=list[TeamRecord])
def list_teams(ctx: RaceContext = Depends(_context)) -> list[TeamRecord]:
    return [TeamRecord(**t) for t in ctx.storage.list_teams()]


@router.post("/api/teams", response_model=TeamCreated)
def create_team(body: TeamCreate, ctx: RaceContext = Depends(_context)) -> TeamCreated:
    team_id = ctx.storage.create_team(body.name, body.color)
    return TeamCreated(status="success", message="Team created successfully", team_id=team_id)


@router.delete("/api/teams/{team_id}", response_model=StatusResponse)
def delete_team(team_id: int, ctx: RaceContext = Depends(_context)) -> StatusResponse:
    if not ctx.storage.delete_team(team_id):
        raise HTTPException(status_code=404, detail="Team not found")
    ctx.counter.forget(team_id)
    return StatusResponse(status="success", message="Team deleted successfully")


@router.get("/api/teams/leaderboard", response_model=list[TeamRecord])
def team_leaderboard(
    active_only: bool = False, ctx: RaceContext = Depends(_context)
) -> list[TeamRecord]:
    return [TeamRecord(**t) for t in ctx.storage.team_leaderboard(active_only)]


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------


@router.get("/api/players", response_model=list[PlayerOut])
def list_players(ctx: RaceContext = Depends(_context)) -> list[PlayerOut]:
    return [PlayerOut(**p) for p in ctx.storage.list_players()]


@router.get("/api/players/{player_id}", response_model=PlayerOut)
def get_player(player_id: str, ctx: RaceContext = Depends(_context)) -> PlayerOut:
    row = ctx.storage.get_player_details(player_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return PlayerOut(**row)


@router.put("/api/players/{player_id}", response_model=StatusResponse)
def put_player(
    player_id: str, body: PlayerIn, ctx: RaceContext = Depends(_context)
) -> StatusResponse:
    """Create the player or replace its name, team and flags."""
    if ctx.storage.get_team(body.team_id) is None:
        raise HTTPException(status_code=422, detail=f"Team {body.team_id} does not exist")
    ctx.storage.put_player(
        PlayerRecord(
            player_id=player_id,
            name=body.name,
            team_id=body.team_id,
            is_active=body.is_active,
            on_pitstop=body.on_pitstop,
        )
    )
    return StatusResponse(status="success", message="Player updated successfully")


@router.delete("/api/players/{player_id}", response_model=StatusResponse)
def delete_player(player_id: str, ctx: RaceContext = Depends(_context)) -> StatusResponse:
    if not ctx.storage.delete_player(player_id):
        raise HTTPException(status_code=404, detail="Player not found")
    ctx.orchestrator.forget(player_id)
    return StatusResponse(status="success", message="Player deleted successfully")


@router.put("/api/players/{player_id}/pitstop", response_model=ToggleResponse)
def toggle_pitstop(player_id: str, ctx: RaceContext = Depends(_context)) -> ToggleResponse:
    value = ctx.storage.toggle_pitstop(player_id)
    if value is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return ToggleResponse(status="success", message="Pitstop status toggled", value=value)


@router.put("/api/players/{player_id}/active", response_model=ToggleResponse)
def toggle_active(player_id: str, ctx: RaceContext = Depends(_context)) -> ToggleResponse:
    value = ctx.storage.toggle_active(player_id)
    if value is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return ToggleResponse(status="success", message="Active status toggled", value=value)


@router.get("/api/players/{player_id}/laps", response_model=list[float])
def player_laps(player_id: str, ctx: RaceContext = Depends(_context)) -> list[float]:
    return ctx.storage.list_player_laps(player_id)


@router.post("/api/players/{player_id}/laps", response_model=LapAdded)
def add_lap(player_id: str, ctx: RaceContext = Depends(_context)) -> LapAdded:
    """Add a lap by hand, stamped with the server clock."""
    lap_id = ctx.storage.add_manual_lap(player_id, time.time(), ctx.config.lap_scope)
    if lap_id is None:
        raise HTTPException(status_code=404, detail="Player not found")
    _logger.info("Manual lap added for %s", player_id)
    return LapAdded(status="success", message="Lap added successfully", lap_id=lap_id)


@router.delete("/api/players/{player_id}/lap", response_model=StatusResponse)
def delete_last_lap(player_id: str, ctx: RaceContext = Depends(_context)) -> StatusResponse:
    """Remove the player's most recent lap."""
    if not ctx.storage.delete_last_lap(player_id, ctx.config.lap_scope):
        raise HTTPException(status_code=404, detail="Lap not found")
    _logger.info("Last lap removed for %s", player_id)
    return StatusResponse(status="success", message="Lap deleted successfully")


@router.get("/api/leaderboard", response_model=list[PlayerOut])
def leaderboard(active_only: bool = False, ctx: RaceContext = Depends(_context)) -> list[PlayerOut]:
    return [PlayerOut(**p) for p in ctx.storage.leaderboard(active_only)]


@router.get("/api/laps", response_model=list[LapEntry])
def recent_laps(limit: int = 50, ctx: RaceContext = Depends(_context)) -> list[LapEntry]:
    return [LapEntry(**r) for r in ctx.storage.recent_laps(limit)]


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------


@router.get("/api/checkpoints", response_model=list[CheckpointOut])
def list_checkpoints(ctx: RaceContext = Depends(_context)) -> list[CheckpointOut]:
    return [CheckpointOut.from_box(b) for b in ctx.catalog.ordered()]


@router.post("/api/checkpoints", response_model=CheckpointOut, status_code=201)
def create_checkpoint(body: CheckpointIn, ctx: RaceContext = Depends(_context)) -> CheckpointOut:
    box = ctx.storage.create_checkpoint(
        body.name,
        body.min.to_point(),
        body.max.to_point(),
        is_start_finish=body.is_start_finish,
        order=body.order,
    )
    ctx.catalog.upsert(box)
    return CheckpointOut.from_box(box)


@router.put("/api/checkpoints/{checkpoint_id}", response_model=CheckpointOut)
def put_checkpoint(
    checkpoint_id: int, body: CheckpointIn, ctx: RaceContext = Depends(_context)
) -> CheckpointOut:
    box = checkpoint_box(checkpoint_id, body)
    if not ctx.storage.put_checkpoint(box):
        raise HTTPException(status_code=404, detail="Checkpoint not found")
    ctx.catalog.upsert(box)
    return CheckpointOut.from_box(box)


@router.delete("/api/checkpoints/{checkpoint_id}", response_model=StatusResponse)
def delete_checkpoint(checkpoint_id: int, ctx: RaceContext = Depends(_context)) -> StatusResponse:
    if not ctx.storage.delete_checkpoint(checkpoint_id):
        raise HTTPException(status_code=404, detail="Checkpoint not found")
    ctx.catalog.remove(checkpoint_id)
    return StatusResponse(status="success", message="Checkpoint deleted successfully")


app = create_app()
