"""Replay a JSON-lines telemetry file through the detection pipeline.

Each line is one telemetry sample, e.g.::

    {"player_id": "p1", "timestamp": 1.0, "position": {"x": 0, "y": 0, "z": 0}}

Usage:
    uv run python scripts/replay.py samples.jsonl
    uv run python scripts/replay.py samples.jsonl --db race.db --workers 8
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from dotenv import load_dotenv

load_dotenv()

from checkpoint_racer.config import RaceConfig  # noqa: E402
from checkpoint_racer.context import RaceContext  # noqa: E402
from checkpoint_racer.errors import MalformedSample  # noqa: E402
from checkpoint_racer.stream.dispatcher import SampleDispatcher  # noqa: E402
from checkpoint_racer.telemetry.models import SampleAck  # noqa: E402
from checkpoint_racer.telemetry.parser import SampleDecoder  # noqa: E402


def main() -> None:
    ap = argparse.ArgumentParser(description="Checkpoint Racer — telemetry replay")
    ap.add_argument("path", help="JSON-lines file of telemetry samples")
    ap.add_argument("--db", default=None, help="SQLite database path (overrides RACE_DB)")
    ap.add_argument("--workers", type=int, default=4, help="Worker threads")
    args = ap.parse_args()

    cfg = RaceConfig.from_env()
    if args.db:
        cfg.db_path = args.db
    logging.basicConfig(level=cfg.log_level, format="%(levelname)s %(name)s: %(message)s")

    ctx = RaceContext.open(cfg)
    counts = {"success": 0, "failure": 0, "laps": 0}
    counts_lock = threading.Lock()

    def on_ack(ack: SampleAck) -> None:
        with counts_lock:
            counts[ack.status] += 1
            if ack.lap_completed:
                counts["laps"] += 1

    decoder = SampleDecoder()
    dispatcher = SampleDispatcher(ctx.orchestrator.process, workers=args.workers, on_ack=on_ack)
    dispatcher.start()
    try:
        with open(args.path, encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    dispatcher.submit(decoder.parse(line))
                except MalformedSample as exc:
                    print(f"line {lineno}: {exc}", file=sys.stderr)
                    with counts_lock:
                        counts["failure"] += 1
        dispatcher.join()
    finally:
        dispatcher.stop()

    print(
        f"Processed {counts['success']} sample(s), "
        f"{counts['failure']} failure(s), {counts['laps']} lap(s)."
    )
    board = (
        ctx.storage.team_leaderboard() if cfg.lap_scope == "team" else ctx.storage.leaderboard()
    )
    for row in board:
        flag = "" if row["is_active"] else "  (inactive)"
        print(f"  {row['name']:<20} {row['lap_count']:>4}{flag}")
    ctx.close()


if __name__ == "__main__":
    main()
