"""Application entrypoint — start the API server or run one-off commands."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Iterator, TextIO

import structlog
import uvicorn
from pydantic import ValidationError

from adaptive_bls.config import get_settings
from adaptive_bls.control.controller import AdaptiveBLSController
from adaptive_bls.logger import setup_logging
from adaptive_bls.models import EmotionSample

logger = structlog.get_logger(__name__)


def _read_samples(path: Path, *, signed: bool) -> Iterator[EmotionSample]:
    """Yield samples from a JSON-lines file of ``{"arousal", "valence"[, "timestamp"]}``."""
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                raw = json.loads(line)
                if signed:
                    yield EmotionSample.from_signed(
                        float(raw["arousal"]), float(raw["valence"]), timestamp=raw.get("timestamp")
                    )
                else:
                    yield EmotionSample.model_validate(raw)
            except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as exc:
                logger.warning("replay.bad_line", line=lineno, error=str(exc))


def replay(path: Path, *, signed: bool = False, out: TextIO | None = None) -> int:
    """Run a recorded emotion stream through a fresh controller.

    Prints one JSON line per emitted configuration, then a final
    ``{"metrics": ...}`` line.  Returns the number of emitted configurations.
    """
    out = out or sys.stdout
    settings = get_settings()
    controller = AdaptiveBLSController(
        settings.adaptive_parameters(),
        session_id=f"replay:{path.name}",
        history_capacity=settings.history_capacity,
        trajectory_window=settings.trajectory_window,
        crisis_detection=settings.crisis_detection_enabled,
    )

    emitted = 0
    for cycle, sample in enumerate(_read_samples(path, signed=signed), start=1):
        config = controller.process_sample(sample)
        if config is None:
            continue
        emitted += 1
        record = {
            "cycle": cycle,
            "config": config.model_dump(mode="json"),
            "trajectory": controller.trajectory().model_dump(mode="json"),
        }
        out.write(json.dumps(record) + "\n")

    out.write(json.dumps({"metrics": controller.get_metrics().model_dump(mode="json")}) + "\n")
    return emitted


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="adaptive-bls",
        description="Emotion-driven bilateral stimulation control service.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── serve ─────────────────────────────────────────────────
    serve_parser = sub.add_parser("serve", help="Start the API server.")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    # ── init-db ───────────────────────────────────────────────
    sub.add_parser("init-db", help="Create database tables.")

    # ── replay ────────────────────────────────────────────────
    replay_parser = sub.add_parser("replay", help="Replay a JSON-lines emotion stream offline.")
    replay_parser.add_argument("path", type=Path)
    replay_parser.add_argument(
        "--signed",
        action="store_true",
        help="Input arousal/valence are on the [-1, 1] scale.",
    )

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "serve":
        uvicorn.run(
            "adaptive_bls.api.server:app",
            host=args.host or settings.api_host,
            port=args.port or settings.api_port,
            reload=args.reload,
        )
    elif args.command == "init-db":
        from adaptive_bls.storage.database import init_db

        asyncio.run(init_db())
        print("Database tables created.")
    elif args.command == "replay":
        if not args.path.exists():
            parser.error(f"no such file: {args.path}")
        replay(args.path, signed=args.signed)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
