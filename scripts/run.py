#!/usr/bin/env python3
"""Entry point for SwitchBack."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

# Ensure src/ is on sys.path for local imports when running as a script
ROOT_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from switchback.backup.orchestrator import BackupOrchestrator  # noqa: E402
from switchback.common.console import ConsoleReporter  # noqa: E402
from switchback.common.run_summary import RunSummaryBuilder  # noqa: E402
from switchback.core.config import Settings, SettingsError, load_settings, verify_directories  # noqa: E402
from switchback.core.events import EventEmitter, LoggingSink  # noqa: E402
from switchback.core.inventory import InventoryError, load_inventory  # noqa: E402
from switchback.core.logging import setup_logging  # noqa: E402
from switchback.core.models import Device  # noqa: E402
from switchback.snmp.client import SnmpClient  # noqa: E402
from switchback.transfer.watcher import TransferWatcher  # noqa: E402
from switchback.vcs.repository import RepositoryManager  # noqa: E402
from switchback.vcs.store import GitStore, VersionStoreError  # noqa: E402

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_DEVICE_FAILURES = 3


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    selection_parent = argparse.ArgumentParser(add_help=False)
    selection_parent.add_argument(
        "--group",
        action="append",
        default=None,
        help="Only handle switches of this group (repeatable)",
    )

    parser = argparse.ArgumentParser(
        description=(
            "Archive switch configurations under version control. Switches push their "
            "running configuration over TFTP when asked via SNMP."
        ),
    )

    parser.add_argument(
        "--config-file",
        type=Path,
        default=ROOT_DIR / "config" / "local.yml",
        help="Path to the local settings file (YAML)",
    )
    parser.add_argument(
        "--inventory",
        type=Path,
        default=None,
        help="Directory holding the per-group switch lists. Overrides config/local.yml.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting. Overrides config/local.yml logging.level.",
    )

    subcommands = parser.add_subparsers(dest="command", title="commands")

    backup_parser = subcommands.add_parser(
        "backup",
        help="Retrieve and archive the configuration of every listed switch",
        parents=[selection_parent],
    )
    backup_parser.add_argument(
        "--device",
        action="append",
        default=None,
        help="Only handle the switch with this name (repeatable)",
    )
    backup_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which switches would be backed up without contacting them",
    )
    backup_parser.add_argument(
        "--no-nvram",
        action="store_true",
        help="Never ask changed switches to save their running configuration",
    )
    backup_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of switches handled concurrently. Overrides config/local.yml backup.workers.",
    )

    subcommands.add_parser("list", help="Print the switches found in the inventory", parents=[selection_parent])

    show_parser = subcommands.add_parser("show", help="Print the last committed configuration of a switch")
    show_parser.add_argument("group")
    show_parser.add_argument("device")

    subcommands.add_parser(
        "pending",
        help="Show archived configurations that differ from their last commit",
        parents=[selection_parent],
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = setup_logging(args.config_file, cli_level=logging.DEBUG if args.debug else None)
    logger.info("SwitchBack run started.")

    if args.command is None:
        parser.print_help()
        logger.info("SwitchBack run finished.")
        return EXIT_OK

    try:
        settings = load_settings(args.config_file, logger)
    except SettingsError:
        logger.exception("Failed to load settings.", extra={"device": "-"})
        return EXIT_CONFIG_ERROR
    if args.inventory is not None:
        settings.paths.inventory = args.inventory.expanduser()

    handlers = {
        "backup": _run_backup,
        "list": _run_list,
        "show": _run_show,
        "pending": _run_pending,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.error(f"Unknown command: {args.command}")
        return 2

    exit_code = handler(args, settings, logger)
    logger.info("SwitchBack run finished.")
    return exit_code


def _load_devices(args: argparse.Namespace, settings: Settings, logger: logging.Logger) -> list[Device] | None:
    logger.debug("loading inventory from %s", settings.paths.inventory)
    try:
        devices = load_inventory(
            settings.paths.inventory,
            community=settings.inventory.community,
            interface=settings.inventory.interface,
        )
    except (InventoryError, OSError):
        logger.exception("Failed to load switch inventory.", extra={"device": "-"})
        return None

    groups = set(args.group or [])
    names = set(getattr(args, "device", None) or [])
    selected = [
        device
        for device in devices
        if (not groups or device.group in groups) and (not names or device.name in names)
    ]

    logger.debug("total switches loaded=%d selected=%d", len(devices), len(selected))
    for group, count in sorted(Counter(device.group for device in selected).items()):
        logger.debug("group=%s switches selected=%d", group, count)
    return selected


def _repositories(settings: Settings) -> RepositoryManager:
    return RepositoryManager(GitStore(), settings.paths.repository_root, settings.paths.workdir)


def _run_backup(args: argparse.Namespace, settings: Settings, logger: logging.Logger) -> int:
    """Execute the backup workflow for all selected switches."""

    devices = _load_devices(args, settings, logger)
    if devices is None:
        return EXIT_CONFIG_ERROR

    if args.dry_run:
        logger.info("Dry run requested. Switches to process: %s", [device.label for device in devices])
        for device in devices:
            print(f"{device.label} {device.ip} tftp={device.local_ip or '-'}")
        return EXIT_OK

    try:
        verify_directories(settings.paths, logger)
    except SettingsError:
        logger.exception("Working directories are not usable.", extra={"device": "-"})
        return EXIT_CONFIG_ERROR

    workers = args.workers if args.workers is not None else settings.backup.workers
    nvram_write = settings.backup.nvram_write and not args.no_nvram

    events = EventEmitter([LoggingSink()])
    orchestrator = BackupOrchestrator(
        _repositories(settings),
        SnmpClient(
            timeout=settings.snmp.timeout,
            retries=settings.snmp.retries,
            port=settings.snmp.port,
            events=events,
        ),
        TransferWatcher(
            settings.paths.drop_dir,
            timeout=settings.transfer.timeout,
            poll_interval=settings.transfer.poll_interval,
            settle_time=settings.transfer.settle_time,
        ),
        events=events,
        console=ConsoleReporter(),
        nvram_write=nvram_write,
        workers=workers,
    )

    summary = RunSummaryBuilder(
        run_id=uuid.uuid4().hex[:12],
        timestamp=_timestamp(),
        groups=(device.group for device in devices),
    )
    summary.set_devices_total(len(devices))

    logger.info("Starting backup for %d switch(es) workers=%d nvram_write=%s.", len(devices), workers, nvram_write)
    results = asyncio.run(orchestrator.run(devices))
    for result in results:
        summary.add_device(result)

    try:
        summary.save(settings.paths.summary_dir, logger)
    except OSError:
        logger.exception("Unable to save run summary.", extra={"device": "-"})

    logger.info(
        "Backup finished success=%d failed=%d changed=%d new=%d",
        summary.devices_success,
        summary.devices_failed,
        summary.configs_changed,
        summary.configs_new,
    )
    return EXIT_DEVICE_FAILURES if summary.devices_failed else EXIT_OK


def _run_list(args: argparse.Namespace, settings: Settings, logger: logging.Logger) -> int:
    devices = _load_devices(args, settings, logger)
    if devices is None:
        return EXIT_CONFIG_ERROR

    for device in devices:
        print(f"{device.group}\t{device.name}\t{device.ip}\t{device.local_ip or '-'}")
    return EXIT_OK


def _run_show(args: argparse.Namespace, settings: Settings, logger: logging.Logger) -> int:
    repositories = _repositories(settings)
    archive = repositories.archive_path(args.group, args.device)
    if not archive.exists():
        logger.error("No archive for %s/%s at %s", args.group, args.device, archive, extra={"device": args.device})
        return EXIT_CONFIG_ERROR

    try:
        sys.stdout.write(repositories.store.cat_head(archive))
    except VersionStoreError:
        logger.exception("Unable to read committed configuration.", extra={"device": args.device})
        return EXIT_CONFIG_ERROR
    return EXIT_OK


def _run_pending(args: argparse.Namespace, settings: Settings, logger: logging.Logger) -> int:
    """Print uncommitted archive changes, typically left behind by failed commits."""

    repositories = _repositories(settings)
    workdir = settings.paths.workdir
    if not workdir.is_dir():
        logger.info("No checkouts under %s", workdir)
        return EXIT_OK

    groups = set(args.group or [])
    pending = 0
    for checkout in sorted(path for path in workdir.iterdir() if path.is_dir()):
        if groups and checkout.name not in groups:
            continue
        archives = sorted(path for path in checkout.iterdir() if path.is_file() and not path.name.startswith("."))
        for archive in archives:
            try:
                diff_text = repositories.store.diff_against_head(archive)
            except VersionStoreError:
                logger.exception("Unable to diff %s", archive, extra={"device": archive.name})
                continue
            if diff_text.strip():
                pending += 1
                print(f"==== pending change {checkout.name}/{archive.name} ====")
                sys.stdout.write(diff_text if diff_text.endswith("\n") else diff_text + "\n")

    logger.info("pending archives=%d", pending)
    return EXIT_OK


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d_%H%M%S")


if __name__ == "__main__":
    raise SystemExit(main())
