"""Run the race server (HTTP API + telemetry WebSocket).

Usage:
    uv run python scripts/serve.py
    uv run python scripts/serve.py --host 0.0.0.0 --port 8080
    RACE_LAP_SCOPE=team RACE_LAP_CAP=20 uv run python scripts/serve.py
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

load_dotenv()

import uvicorn  # noqa: E402

from checkpoint_racer.config import RaceConfig  # noqa: E402
from checkpoint_racer.web.app import create_app  # noqa: E402


def main() -> None:
    ap = argparse.ArgumentParser(description="Checkpoint Racer server")
    ap.add_argument("--host", default="127.0.0.1", help="Bind address")
    ap.add_argument("--port", type=int, default=8000, help="Bind port")
    ap.add_argument("--db", default=None, help="SQLite database path (overrides RACE_DB)")
    args = ap.parse_args()

    cfg = RaceConfig.from_env()
    if args.db:
        cfg.db_path = args.db
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(create_app(cfg), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
