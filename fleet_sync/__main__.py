from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from fleet_sync.application.services.orchestrator import SyncRunService
from fleet_sync.application.services.scheduler import ProcessingScheduler, RunBudget
from fleet_sync.application.use_cases.extract_history import IncrementalHistoryExtractor
from fleet_sync.application.use_cases.observe_unit import UnitObserver
from fleet_sync.application.use_cases.summarize_dataset import summarize_dataset
from fleet_sync.config import ProcessingConfig, Settings
from fleet_sync.domain.errors import PersistenceError
from fleet_sync.infrastructure.persistence.state_repo import JsonDatasetRepository, JsonSnapshotCacheRepository
from fleet_sync.infrastructure.simulation.fleet_simulator import InMemoryFleetCollaborator
from fleet_sync.presentation.cli.report import format_dataset_summary, format_run_summary

log = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    level_name = settings.log_level.upper().strip() or "INFO"
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s %(message)s")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    if settings.log_to_console:
        console_handler = logging.StreamHandler(stream=sys.stdout)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_path = settings.log_file.strip()
    if log_path:
        path = Path(log_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=path,
            maxBytes=20 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.captureWarnings(True)
    log.info(
        "Logging configured level=%s console=%s file=%s",
        level_name,
        settings.log_to_console,
        log_path or "<disabled>",
    )


class _SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleet_sync", description="Incremental fleet synchronization")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="execute one synchronization run")
    run.add_argument(
        "--simulate",
        required=True,
        metavar="PATH",
        help="JSON fixture for the offline collaborator",
    )
    mode = run.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", dest="dry_run", action="store_true", default=None, help="never perform actions")
    mode.add_argument("--live", dest="dry_run", action="store_false", help="perform actions")
    run.add_argument("--timeout", type=float, default=None, help="run budget in seconds")
    run.add_argument("--max-opportunistic", type=int, default=None, help="cap on observe-only units")

    sub.add_parser("report", help="summarize the persisted dataset")
    return parser


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    config = ProcessingConfig.from_settings(settings)
    if args.dry_run is not None:
        config = replace(config, dry_run=args.dry_run)
    budget = RunBudget(
        timeout_seconds=args.timeout or settings.run_timeout_seconds,
        safety_margin_seconds=settings.safety_margin_seconds,
    )
    clock = _SystemClock()
    collaborator = InMemoryFleetCollaborator.from_file(args.simulate)
    observer = UnitObserver(collaborator, IncrementalHistoryExtractor())
    scheduler = ProcessingScheduler(collaborator, observer, config, budget, clock)
    service = SyncRunService(
        collaborator,
        scheduler,
        JsonSnapshotCacheRepository(settings.cache_path),
        JsonDatasetRepository(settings.dataset_path),
        config,
        clock,
        max_opportunistic=args.max_opportunistic,
    )
    summary = await service.run()
    print(format_run_summary(summary))
    return 0


async def _report(settings: Settings) -> int:
    dataset = await JsonDatasetRepository(settings.dataset_path).load()
    print(format_dataset_summary(summarize_dataset(dataset)))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings()
    _configure_logging(settings)
    log.info("%s starting pid=%s command=%s", settings.app_name, os.getpid(), args.command)
    try:
        if args.command == "run":
            return asyncio.run(_run(settings, args))
        return asyncio.run(_report(settings))
    except PersistenceError:
        log.exception("Persisted state could not be loaded or saved")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
