"""RaceStorage — persists teams, players, checkpoints and laps to SQLite.

Schema design notes:
  - Lap counters live on ``teams`` and ``players`` and are bumped with a single
    ``UPDATE ... SET lap_count = lap_count + 1`` so concurrent credits never
    lose an increment.  ``laps`` keeps one row per credited lap for history.
  - ``collected`` mirrors each player's in-memory checkpoint progress so it
    survives a restart.  Deleting a checkpoint deletes its ``collected`` rows.
  - ``positions`` stores every accepted sample; auxiliary fields (velocity,
    orientation) are opaque here and kept as JSON text.
  - One connection is shared by web worker threads and dispatcher threads;
    every public method holds ``_lock`` for its whole duration.
"""

from __future__ import annotations

import json
import sqlite3
import threading

from checkpoint_racer.geometry.models import Box3, Point3
from checkpoint_racer.telemetry.models import PlayerRecord

_DDL = """
PRAGMA journal_mode = WAL;
PRAGMA synchronous  = NORMAL;

CREATE TABLE IF NOT EXISTS teams (
    id         INTEGER PRIMARY KEY,
    name       TEXT    NOT NULL,
    color      TEXT    NOT NULL,
    lap_count  INTEGER NOT NULL DEFAULT 0,
    is_active  INTEGER NOT NULL DEFAULT 1,
    created_at TEXT    NOT NULL
               DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE TABLE IF NOT EXISTS players (
    player_id  TEXT    PRIMARY KEY,
    name       TEXT    NOT NULL,
    team_id    INTEGER,
    lap_count  INTEGER NOT NULL DEFAULT 0,
    is_active  INTEGER NOT NULL DEFAULT 1,
    on_pitstop INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS checkpoints (
    id              INTEGER PRIMARY KEY,
    name            TEXT    NOT NULL,
    is_start_finish INTEGER NOT NULL DEFAULT 0,
    min_x           REAL    NOT NULL,
    min_y           REAL    NOT NULL,
    min_z           REAL    NOT NULL,
    max_x           REAL    NOT NULL,
    max_y           REAL    NOT NULL,
    max_z           REAL    NOT NULL,
    sort_order      INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS collected (
    player_id     TEXT    NOT NULL,
    checkpoint_id INTEGER NOT NULL,
    PRIMARY KEY (player_id, checkpoint_id)
);

CREATE TABLE IF NOT EXISTS laps (
    id        INTEGER PRIMARY KEY,
    player_id TEXT    NOT NULL,
    team_id   INTEGER,
    timestamp REAL    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_laps_player
    ON laps (player_id);

CREATE TABLE IF NOT EXISTS positions (
    player_id TEXT NOT NULL,
    timestamp REAL NOT NULL,
    x         REAL NOT NULL,
    y         REAL NOT NULL,
    z         REAL NOT NULL,
    aux_json  TEXT
);

CREATE INDEX IF NOT EXISTS idx_positions_player
    ON positions (player_id);
"""

_SELECT_CHECKPOINTS = """
SELECT id, name, is_start_finish,
       min_x, min_y, min_z, max_x, max_y, max_z, sort_order
FROM   checkpoints
"""

_SELECT_PLAYERS = """
SELECT p.player_id, p.name, p.team_id, p.lap_count, p.is_active, p.on_pitstop,
       t.name AS team_name, t.color AS team_color
FROM   players p
LEFT   JOIN teams t ON t.id = p.team_id
"""

_UPSERT_PLAYER = """
INSERT INTO players (player_id, name, team_id, is_active, on_pitstop)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT (player_id) DO UPDATE SET
    name       = excluded.name,
    team_id    = excluded.team_id,
    is_active  = excluded.is_active,
    on_pitstop = excluded.on_pitstop
"""


def _row_to_box(row: sqlite3.Row) -> Box3:
    return Box3(
        checkpoint_id=int(row["id"]),
        min=Point3(row["min_x"], row["min_y"], row["min_z"]),
        max=Point3(row["max_x"], row["max_y"], row["max_z"]),
        is_start_finish=bool(row["is_start_finish"]),
        order=int(row["sort_order"]),
        name=row["name"],
    )


def _player_dict(row: sqlite3.Row) -> dict:
    d = dict(row)
    d["is_active"] = bool(d["is_active"])
    d["on_pitstop"] = bool(d["on_pitstop"])
    return d


class RaceStorage:
    """Stores and retrieves race state from a SQLite database.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Pass ``":memory:"`` for in-process testing.

    Every method may raise :class:`sqlite3.Error`; callers decide how to
    recover.
    """

    def __init__(self, db_path: str = "race.db") -> None:
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        for stmt in _DDL.strip().split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, name: str, color: str) -> int:
        """Insert a team and return its id."""
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO teams (name, color) VALUES (?, ?)", (name, color)
            )
            self._conn.commit()
            return cursor.lastrowid  # type: ignore[return-value]

    def get_team(self, team_id: int) -> dict | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM teams WHERE id = ?", (team_id,)
            ).fetchone()
        if row is None:
            return None
        d = dict(row)
        d["is_active"] = bool(d["is_active"])
        return d

    def list_teams(self) -> list[dict]:
        """Return all teams with a ``player_count`` column, ordered by name."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT t.id, t.name, t.color, t.lap_count, t.is_active, t.created_at,
                       COUNT(p.player_id) AS player_count
                FROM   teams t
                LEFT   JOIN players p ON p.team_id = t.id
                GROUP  BY t.id
                ORDER  BY t.name, t.id
                """
            ).fetchall()
        result = []
        for r in rows:
            d = dict(r)
            d["is_active"] = bool(d["is_active"])
            result.append(d)
        return result

    def delete_team(self, team_id: int) -> bool:
        """Delete a team; its players keep playing but lose their assignment."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM teams WHERE id = ?", (team_id,))
            if cursor.rowcount:
                self._conn.execute(
                    "UPDATE players SET team_id = NULL WHERE team_id = ?", (team_id,)
                )
            self._conn.commit()
            return cursor.rowcount > 0

    def increment_team_laps(self, team_id: int) -> int | None:
        """Add one lap to an *active* team and return the new count.

        Returns None if the team does not exist or is inactive.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE teams SET lap_count = lap_count + 1 WHERE id = ? AND is_active = 1",
                (team_id,),
            )
            self._conn.commit()
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(
                "SELECT lap_count FROM teams WHERE id = ?", (team_id,)
            ).fetchone()
        return int(row["lap_count"])

    def deactivate_team(self, team_id: int) -> None:
        with self._lock:
            self._conn.execute("UPDATE teams SET is_active = 0 WHERE id = ?", (team_id,))
            self._conn.commit()

    def team_leaderboard(self, active_only: bool = False) -> list[dict]:
        """Return teams ordered by active first, laps descending, name."""
        where = "WHERE is_active = 1" if active_only else ""
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT id, name, color, lap_count, is_active
                FROM   teams
                {where}
                ORDER  BY is_active DESC, lap_count DESC, name
                """
            ).fetchall()
        result = []
        for r in rows:
            d = dict(r)
            d["is_active"] = bool(d["is_active"])
            result.append(d)
        return result

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def put_player(self, player: PlayerRecord) -> None:
        """Create or fully replace a player's administrative fields.

        ``lap_count`` is never overwritten here; it only moves through
        :meth:`increment_player_laps`.
        """
        with self._lock:
            self._conn.execute(
                _UPSERT_PLAYER,
                (
                    player.player_id,
                    player.name,
                    player.team_id,
                    int(player.is_active),
                    int(player.on_pitstop),
                ),
            )
            self._conn.commit()

    def get_player(self, player_id: str) -> PlayerRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM players WHERE player_id = ?", (player_id,)
            ).fetchone()
        if row is None:
            return None
        return PlayerRecord(
            player_id=row["player_id"],
            name=row["name"],
            team_id=row["team_id"],
            lap_count=int(row["lap_count"]),
            is_active=bool(row["is_active"]),
            on_pitstop=bool(row["on_pitstop"]),
        )

    def get_player_details(self, player_id: str) -> dict | None:
        """Return a player row joined with its team name and color."""
        with self._lock:
            row = self._conn.execute(
                _SELECT_PLAYERS + " WHERE p.player_id = ?", (player_id,)
            ).fetchone()
        return _player_dict(row) if row else None

    def list_players(self) -> list[dict]:
        with self._lock:
            rows = self._conn.execute(_SELECT_PLAYERS + " ORDER BY p.name").fetchall()
        return [_player_dict(r) for r in rows]

    def delete_player(self, player_id: str) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM players WHERE player_id = ?", (player_id,)
            )
            self._conn.execute("DELETE FROM collected WHERE player_id = ?", (player_id,))
            self._conn.commit()
            return cursor.rowcount > 0

    def toggle_pitstop(self, player_id: str) -> bool | None:
        """Flip ``on_pitstop`` and return the new value, or None if missing."""
        return self._toggle(player_id, "on_pitstop")

    def toggle_active(self, player_id: str) -> bool | None:
        """Flip ``is_active`` and return the new value, or None if missing."""
        return self._toggle(player_id, "is_active")

    def increment_player_laps(self, player_id: str) -> int | None:
        """Add one lap to an *active* player and return the new count.

        Returns None if the player does not exist or is inactive.
        """
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE players SET lap_count = lap_count + 1 "
                "WHERE player_id = ? AND is_active = 1",
                (player_id,),
            )
            self._conn.commit()
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(
                "SELECT lap_count FROM players WHERE player_id = ?", (player_id,)
            ).fetchone()
        return int(row["lap_count"])

    def deactivate_player(self, player_id: str) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE players SET is_active = 0 WHERE player_id = ?", (player_id,)
            )
            self._conn.commit()

    def leaderboard(self, active_only: bool = False) -> list[dict]:
        """Return players ordered by active first, laps descending, name.

        ``lap_count`` here is the number of recorded laps, so the board is
        meaningful in team scope too, where ``players.lap_count`` stays 0.
        """
        where = "WHERE p.is_active = 1" if active_only else ""
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT p.player_id, p.name, p.team_id, COUNT(l.id) AS lap_count,
                       p.is_active, p.on_pitstop,
                       t.name AS team_name, t.color AS team_color
                FROM   players p
                LEFT   JOIN teams t ON t.id = p.team_id
                LEFT   JOIN laps  l ON l.player_id = p.player_id
                {where}
                GROUP  BY p.player_id
                ORDER  BY p.is_active DESC, lap_count DESC, p.name
                """
            ).fetchall()
        return [_player_dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Laps
    # ------------------------------------------------------------------

    def record_lap(self, player_id: str, team_id: int | None, timestamp: float) -> int:
        """Persist one credited lap and return the new row id."""
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO laps (player_id, team_id, timestamp) VALUES (?, ?, ?)",
                (player_id, team_id, timestamp),
            )
            self._conn.commit()
            return cursor.lastrowid  # type: ignore[return-value]

    def list_player_laps(self, player_id: str) -> list[float]:
        """Return lap timestamps for *player_id*, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT timestamp FROM laps WHERE player_id = ? ORDER BY timestamp DESC, id DESC",
                (player_id,),
            ).fetchall()
        return [float(r["timestamp"]) for r in rows]

    def add_manual_lap(self, player_id: str, timestamp: float, scope: str = "player") -> int | None:
        """Record a lap entered by hand and bump the counter of *scope*.

        Active flags and caps are not checked; this is an admin correction.
        Returns the new lap id, or None if the player does not exist.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT team_id FROM players WHERE player_id = ?", (player_id,)
            ).fetchone()
            if row is None:
                return None
            team_id = row["team_id"]
            cursor = self._conn.execute(
                "INSERT INTO laps (player_id, team_id, timestamp) VALUES (?, ?, ?)",
                (player_id, team_id, timestamp),
            )
            self._adjust_laps(scope, player_id, team_id, +1)
            self._conn.commit()
            return cursor.lastrowid  # type: ignore[return-value]

    def delete_last_lap(self, player_id: str, scope: str = "player") -> bool:
        """Remove the player's newest lap and take it off the counter of *scope*.

        Returns False if the player has no laps.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT id, team_id FROM laps WHERE player_id = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT 1",
                (player_id,),
            ).fetchone()
            if row is None:
                return False
            self._conn.execute("DELETE FROM laps WHERE id = ?", (row["id"],))
            self._adjust_laps(scope, player_id, row["team_id"], -1)
            self._conn.commit()
            return True

    def recent_laps(self, limit: int = 50) -> list[dict]:
        """Return the most recent lap completions with player name and team color."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT l.player_id, p.name, t.color, l.timestamp
                FROM   laps l
                JOIN   players p ON p.player_id = l.player_id
                LEFT   JOIN teams t ON t.id = p.team_id
                ORDER  BY l.timestamp DESC, l.id DESC
                LIMIT  ?
                """,
                (limit,),
            ).fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def list_checkpoints(self) -> list[Box3]:
        """Return every checkpoint ordered by ``order`` then id."""
        with self._lock:
            rows = self._conn.execute(
                _SELECT_CHECKPOINTS + " ORDER BY sort_order, id"
            ).fetchall()
        return [_row_to_box(r) for r in rows]

    def get_checkpoint(self, checkpoint_id: int) -> Box3 | None:
        with self._lock:
            row = self._conn.execute(
                _SELECT_CHECKPOINTS + " WHERE id = ?", (checkpoint_id,)
            ).fetchone()
        return _row_to_box(row) if row else None

    def create_checkpoint(
        self,
        name: str,
        min_corner: Point3,
        max_corner: Point3,
        is_start_finish: bool = False,
        order: int = 0,
    ) -> Box3:
        """Insert a checkpoint and return it with its assigned id."""
        box = Box3(
            checkpoint_id=0,
            min=min_corner,
            max=max_corner,
            is_start_finish=is_start_finish,
            order=order,
            name=name,
        )
        with self._lock:
            cursor = self._conn.execute(
                """
                INSERT INTO checkpoints
                    (name, is_start_finish, min_x, min_y, min_z,
                     max_x, max_y, max_z, sort_order)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (name, int(is_start_finish), *box.min.as_tuple(), *box.max.as_tuple(), order),
            )
            self._conn.commit()
            new_id = cursor.lastrowid
        return Box3(
            checkpoint_id=new_id,  # type: ignore[arg-type]
            min=box.min,
            max=box.max,
            is_start_finish=is_start_finish,
            order=order,
            name=name,
        )

    def put_checkpoint(self, box: Box3) -> bool:
        """Fully replace an existing checkpoint.  Returns False if it does not exist."""
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE checkpoints
                SET    name = ?, is_start_finish = ?,
                       min_x = ?, min_y = ?, min_z = ?,
                       max_x = ?, max_y = ?, max_z = ?,
                       sort_order = ?
                WHERE  id = ?
                """,
                (
                    box.name,
                    int(box.is_start_finish),
                    *box.min.as_tuple(),
                    *box.max.as_tuple(),
                    box.order,
                    box.checkpoint_id,
                ),
            )
            self._conn.commit()
            return cursor.rowcount > 0

    def delete_checkpoint(self, checkpoint_id: int) -> bool:
        """Delete a checkpoint and every player's collected membership for it."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM checkpoints WHERE id = ?", (checkpoint_id,)
            )
            self._conn.execute(
                "DELETE FROM collected WHERE checkpoint_id = ?", (checkpoint_id,)
            )
            self._conn.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Collected checkpoints
    # ------------------------------------------------------------------

    def get_collected(self, player_id: str) -> set[int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT checkpoint_id FROM collected WHERE player_id = ?", (player_id,)
            ).fetchall()
        return {int(r["checkpoint_id"]) for r in rows}

    def record_collected(self, player_id: str, checkpoint_id: int) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO collected (player_id, checkpoint_id) VALUES (?, ?)",
                (player_id, checkpoint_id),
            )
            self._conn.commit()

    def clear_collected(self, player_id: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM collected WHERE player_id = ?", (player_id,))
            self._conn.commit()

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def save_position(
        self,
        player_id: str,
        timestamp: float,
        position: Point3,
        aux: dict | None = None,
    ) -> None:
        """Persist one accepted sample.  *aux* is stored verbatim as JSON."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO positions (player_id, timestamp, x, y, z, aux_json) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (player_id, timestamp, *position.as_tuple(), json.dumps(aux) if aux else None),
            )
            self._conn.commit()

    def get_positions(self, player_id: str) -> list[dict]:
        """Return stored samples for *player_id* in insertion order."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT timestamp, x, y, z, aux_json FROM positions "
                "WHERE player_id = ? ORDER BY rowid",
                (player_id,),
            ).fetchall()
        result = []
        for row in rows:
            d = dict(row)
            aux = d.pop("aux_json")
            d["aux"] = json.loads(aux) if aux else {}
            result.append(d)
        return result

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _toggle(self, player_id: str, column: str) -> bool | None:
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE players SET {column} = 1 - {column} WHERE player_id = ?",
                (player_id,),
            )
            self._conn.commit()
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(
                f"SELECT {column} FROM players WHERE player_id = ?", (player_id,)
            ).fetchone()
        return bool(row[column])

    def _adjust_laps(self, scope: str, player_id: str, team_id: int | None, delta: int) -> None:
        # Caller holds _lock and commits.
        if scope == "team":
            if team_id is not None:
                self._conn.execute(
                    "UPDATE teams SET lap_count = MAX(lap_count + ?, 0) WHERE id = ?",
                    (delta, team_id),
                )
        else:
            self._conn.execute(
                "UPDATE players SET lap_count = MAX(lap_count + ?, 0) WHERE player_id = ?",
                (delta, player_id),
            )
