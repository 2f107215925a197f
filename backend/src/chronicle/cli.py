"""Command line entry point: ``chronicle rebuild <world_id>`` and ``chronicle init-db``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

import chronicle.db.session as db_session
from chronicle.config import configure_logging, settings
from chronicle.core.errors import ChronicleError, ReplayFailure
from chronicle.core.ledger.replay import CORRUPTED_TITLE, rebuild
from chronicle.core.rules.registry import build_registry
from chronicle.db.init_db import init_db, seed_conditions
from chronicle.db.models import World

logger = logging.getLogger("chronicle.cli")


def _cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    db = db_session.SessionLocal()
    try:
        created = seed_conditions(db, build_registry(settings.default_ruleset))
    finally:
        db.close()
    logger.info("database ready at %s (%d conditions seeded)", settings.database_url, created)
    return 0


def _cmd_rebuild(args: argparse.Namespace) -> int:
    db = db_session.SessionLocal()
    try:
        if db.get(World, args.world_id) is None:
            logger.error("world %s not found", args.world_id)
            return 1

        try:
            report = rebuild(db, args.world_id, corrupt=args.corrupt)
        except ReplayFailure as exc:
            logger.error("rebuild failed at event %s (%s): %s", exc.event_id, exc.event_type, exc.cause)
            return 1

        world = db.get(World, args.world_id)
        if world is None or world.title == CORRUPTED_TITLE:
            logger.error("world %s still corrupted after rebuild", args.world_id)
            return 1

        logger.info(
            "world %s rebuilt from %d events, title=%r",
            report.world_id,
            report.events_applied,
            world.title,
        )
        return 0
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chronicle", description="Campaign ledger tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init-db", help="create tables and seed the condition catalog")
    p_init.set_defaults(func=_cmd_init_db)

    p_rebuild = sub.add_parser("rebuild", help="replay a world's events into its projections")
    p_rebuild.add_argument("world_id")
    p_rebuild.add_argument(
        "--corrupt",
        action="store_true",
        help="overwrite projected names first, then rebuild and verify",
    )
    p_rebuild.set_defaults(func=_cmd_rebuild)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings)
    try:
        return args.func(args)
    except ChronicleError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
