"""Deployment configuration, read from the environment (``.env`` supported)."""

from __future__ import annotations

import os
from dataclasses import dataclass

LAP_SCOPES = frozenset({"player", "team"})


@dataclass
class RaceConfig:
    """Settings consumed by storage, the lap counter and the web app.

    ``lap_scope`` selects whether a completed lap is credited to the player
    or to the player's team.  ``lap_cap`` of None disables the cap.
    """

    db_path: str = "race.db"
    lap_scope: str = "player"
    lap_cap: int | None = None
    epsilon: float = 1e-9
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.lap_scope not in LAP_SCOPES:
            raise ValueError(
                f"lap_scope must be one of {sorted(LAP_SCOPES)}, got {self.lap_scope!r}"
            )
        if self.lap_cap is not None and self.lap_cap < 1:
            raise ValueError(f"lap_cap must be a positive integer, got {self.lap_cap}")

    @classmethod
    def from_env(cls) -> RaceConfig:
        """Build a config from ``RACE_*`` environment variables.

        Call :func:`dotenv.load_dotenv` first if a ``.env`` file should be
        honoured.  ``RACE_LAP_CAP=0`` (or unset) means no cap.
        """
        raw_cap = os.environ.get("RACE_LAP_CAP", "").strip()
        try:
            cap = int(raw_cap) if raw_cap else 0
        except ValueError as exc:
            raise ValueError(f"RACE_LAP_CAP must be an integer, got {raw_cap!r}") from exc
        if cap < 0:
            raise ValueError(f"RACE_LAP_CAP must not be negative, got {cap}")

        return cls(
            db_path=os.environ.get("RACE_DB", "race.db"),
            lap_scope=os.environ.get("RACE_LAP_SCOPE", "player").strip().lower(),
            lap_cap=cap or None,
            epsilon=float(os.environ.get("RACE_EPSILON", "1e-9")),
            log_level=os.environ.get("RACE_LOG_LEVEL", "INFO").upper(),
        )
