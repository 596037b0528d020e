"""Command-line entry point for operating on character edits."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence, TextIO

from .auth import Actor, Role
from .deployment import DeploymentOrchestrator, build_orchestrator
from .errors import ConfigurationError, RateLimited, StarguideError
from .settings import StarguideSettings

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", *, stream: TextIO | None = None) -> None:
    """Attach a single stream handler to the ``starguide`` logger."""

    package_logger = logging.getLogger("starguide")
    package_logger.setLevel(level.upper())
    if not package_logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        package_logger.addHandler(handler)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="starguide-admin",
        description="Deploy and inspect Starguide character edits",
    )
    parser.add_argument(
        "--edit-root",
        type=Path,
        help=(
            "Directory holding edits as JSON files. "
            "Defaults to STARGUIDE_EDIT_ROOT when unset."
        ),
    )
    parser.add_argument(
        "--content-root",
        type=Path,
        help=(
            "Local checkout to read and write character files instead of GitHub. "
            "Defaults to STARGUIDE_CONTENT_ROOT when unset."
        ),
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level (default: STARGUIDE_LOG_LEVEL or INFO).",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    deploy = commands.add_parser("deploy", help="Deploy an approved edit.")
    deploy.add_argument("edit_id", type=int, help="Identifier of the edit to deploy.")
    deploy.add_argument("--actor-id", required=True, help="Admin performing the deployment.")
    deploy.add_argument("--actor-email", help="Email recorded in the commit message.")

    show = commands.add_parser("show", help="Print the current record of a character.")
    show.add_argument("character_id", help="Kebab-case character identifier.")

    finalize = commands.add_parser(
        "finalize", help="Mark an already committed edit as deployed."
    )
    finalize.add_argument("edit_id", type=int, help="Identifier of the committed edit.")
    finalize.add_argument("--revision", required=True, help="Commit revision to record.")
    finalize.add_argument("--actor-id", required=True, help="Admin reconciling the edit.")

    return parser.parse_args(argv)


def _run(args: argparse.Namespace, orchestrator: DeploymentOrchestrator) -> None:
    if args.command == "deploy":
        actor = Actor(id=args.actor_id, role=Role.ADMIN, email=args.actor_email)
        result = orchestrator.deploy(args.edit_id, actor)
        print(result.message)
        print(f"revision: {result.revision}")
        if result.tier_edits_warning:
            print(f"warning: {result.tier_edits_warning}")
        if not result.status_recorded:
            print(f"warning: {result.reconciliation_warning}")
    elif args.command == "show":
        snapshot = orchestrator.read_character(args.character_id)
        print(json.dumps(snapshot.record, indent=2, ensure_ascii=False))
    elif args.command == "finalize":
        actor = Actor(id=args.actor_id, role=Role.ADMIN)
        edit = orchestrator.finalize(args.edit_id, args.revision, actor)
        print(f"Edit {edit.id} marked deployed at {edit.commit_revision}")


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> int:
    """Run the admin command line and return its exit code."""

    args = _parse_args(argv)

    try:
        settings = StarguideSettings.from_env(environ)
    except ValueError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    overrides = {}
    if args.edit_root is not None:
        overrides["edit_root"] = args.edit_root.expanduser()
    if args.content_root is not None:
        overrides["content_root"] = args.content_root.expanduser()
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        settings = replace(settings, **overrides)

    try:
        configure_logging(settings.log_level)
    except ValueError:
        print(f"configuration error: unknown log level '{settings.log_level}'", file=sys.stderr)
        return 2

    try:
        orchestrator = build_orchestrator(settings)
        _run(args, orchestrator)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2
    except StarguideError as exc:
        if exc.status_code >= 500:
            logger.error("%s failed: %s", args.command, exc)
        print(f"error [{exc.kind.value}]: {exc.public_message}", file=sys.stderr)
        if isinstance(exc, RateLimited):
            print(f"retry after {exc.retry_after} seconds", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
