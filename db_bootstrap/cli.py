from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from db_bootstrap.errors import BootstrapError, DuplicateStep
from db_bootstrap.logging import configure_logging, logger
from db_bootstrap.plan import build_default_plan
from db_bootstrap.sequencer import BootstrapSequencer, render_report
from db_bootstrap.settings import BootstrapSettings
from db_bootstrap.store import create_store_engine, open_store, wait_until_ready


EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser(settings: BootstrapSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="family-db-bootstrap",
        description="Ensure roles, schema and seed data of the family store. Safe to re-run.",
    )
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL / POSTGRES_* settings.")
    parser.add_argument("--log-level", default=settings.log_level)
    parser.add_argument("--app-role", default=settings.app_role_name)
    parser.add_argument("--default-user", default=settings.default_user_name)
    parser.add_argument("--picture-path", default=settings.default_picture_path)
    parser.add_argument("--connect-attempts", type=int, default=settings.connect_attempts)
    parser.add_argument("--connect-interval", type=float, default=settings.connect_interval_s)
    parser.add_argument("--no-wait", action="store_true", help="Do not wait for the store to accept connections.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = BootstrapSettings()
    except ValidationError as e:
        print(f"invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    args = build_parser(settings).parse_args(argv)
    settings = settings.model_copy(
        update={
            "database_url": args.database_url or settings.database_url,
            "log_level": args.log_level,
            "app_role_name": args.app_role,
            "default_user_name": args.default_user,
            "default_picture_path": args.picture_path,
            "connect_attempts": args.connect_attempts,
            "connect_interval_s": args.connect_interval,
        }
    )
    try:
        configure_logging(settings.log_level)
    except ValueError as e:
        print(f"invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if settings.app_role_password is None:
        logger.warning("app_role_without_password", role=settings.app_role_name)

    try:
        steps = build_default_plan(settings)
    except ValueError as e:
        print(f"invalid bootstrap plan: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    engine = create_store_engine(settings.resolved_database_url())
    try:
        if not args.no_wait:
            wait_until_ready(engine, attempts=settings.connect_attempts, interval_s=settings.connect_interval_s)
        with open_store(engine) as store:
            report = BootstrapSequencer(store).run(steps)
    except DuplicateStep as e:
        print(f"invalid bootstrap plan: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except BootstrapError as e:
        # Nothing ran: the store could not be reached or connected to.
        logger.error("bootstrap_aborted", error_kind=e.kind, error=str(e))
        print(f"bootstrap failed before the first step: {e.kind}: {e}")
        return EXIT_STEP_FAILED
    finally:
        engine.dispose()

    for line in render_report(report):
        print(line)
    return EXIT_OK if report.ok else EXIT_STEP_FAILED


if __name__ == "__main__":
    sys.exit(main())
