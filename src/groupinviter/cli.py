from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .app_logging import log_with_fields, setup_logger
from .config import AppConfig, ensure_local_paths, load_config
from .control import ControlError, ControlSurface
from .directory import DirectoryError, load_directory
from .dispatcher import Dispatcher
from .export import LastSeenWindow, MemberFilters
from .registry import AccountRegistry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="groupinviter", description="Rate-limited group invite dispatcher")
    parser.add_argument("--config", required=True, help="Path to groupinviter YAML config")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("accounts", help="List configured worker accounts")

    run_parser = subparsers.add_parser("run", help="Invite a list of usernames in the foreground")
    run_parser.add_argument("--group", required=True, help="Target group or invite link")
    run_parser.add_argument("--subjects-file", required=True, help="File with one username per line")
    run_parser.add_argument(
        "--workers",
        default="",
        help="Comma separated account names (default: all connected accounts)",
    )

    retry = subparsers.add_parser("retry", help="Invite a single username with a random account")
    retry.add_argument("--subject", required=True, help="Username to invite")
    retry.add_argument("--group", required=True, help="Target group or invite link")

    export = subparsers.add_parser("export", help="Export member identifiers of a group")
    export.add_argument("--account", required=True, help="Account used to read the group")
    export.add_argument("--group", required=True, help="Group or invite link")
    export.add_argument("--username", action="store_true", help="Only members with a username")
    export.add_argument("--photo", action="store_true", help="Only members with a profile photo")
    export.add_argument(
        "--last-seen",
        choices=[window.value for window in LastSeenWindow],
        default=LastSeenWindow.ALL.value,
        help="Only members seen within this window",
    )
    return parser


def _open_runtime(config: AppConfig) -> ControlSurface:
    ensure_local_paths(config)
    logger = setup_logger(config.paths.log, level=config.log.level)
    directory = load_directory(config.directory)
    registry = AccountRegistry(config.accounts, logger)
    registry.connect_all(directory.connect)
    dispatcher = Dispatcher(config=config.dispatch, registry=registry, directory=directory, logger=logger)
    return ControlSurface(dispatcher, registry, directory, logger)


def _read_subjects(path: Path) -> list[str]:
    lines = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
    return [line for line in lines if line and not line.startswith("#")]


def cmd_accounts(config: AppConfig) -> int:
    control = _open_runtime(config)
    accounts = control.accounts()
    if not accounts:
        print("(no connected accounts)")
    for account in accounts:
        phone = f" phone={account['phone']}" if account["phone"] else ""
        print(f"{account['name']}{phone}")
    return 0


def cmd_run(config: AppConfig, group: str, subjects_file: Path, workers: str) -> int:
    control = _open_runtime(config)
    worker_names = [name.strip() for name in workers.split(",") if name.strip()]
    if not worker_names:
        worker_names = control.registry.names()
    subjects = _read_subjects(subjects_file)
    try:
        print(control.start(group, subjects, worker_names))
        while not control.wait(timeout=1.0):
            pass
    except ControlError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        log_with_fields(logging.getLogger("groupinviter"), logging.INFO, "shutdown", reason="keyboard_interrupt")
        print(control.stop())
        control.wait()

    stats = control.stats()
    print(f"\nsuccess={stats['success']} fail={stats['fail']}")
    for row in control.outcomes():
        reason = row.get("error") or row.get("reason")
        detail = f" ({reason})" if reason else ""
        print(f"  {row['status']:8} {row['username']} via {row['account']}{detail}")
    cooldowns = control.cooldowns()
    if cooldowns:
        print("\nCooldowns:")
    for row in cooldowns:
        print(f"  {row['worker']}: until {row['end_time']} ({row['remaining_sec']}s)")
    return 0


def cmd_retry(config: AppConfig, subject: str, group: str) -> int:
    control = _open_runtime(config)
    try:
        report = control.retry(subject, group)
    except ControlError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    if not report.ok:
        print(report.message, file=sys.stderr)
        return 1
    print(report.message)
    return 0


def cmd_export(config: AppConfig, args: argparse.Namespace) -> int:
    control = _open_runtime(config)
    filters = MemberFilters(
        require_username=bool(args.username),
        require_photo=bool(args.photo),
        last_seen=LastSeenWindow(args.last_seen),
    )
    try:
        ids = control.export_members(args.account, args.group, filters)
    except ControlError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except DirectoryError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    for identifier in ids:
        print(identifier)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)

    if args.command == "accounts":
        return cmd_accounts(config)
    if args.command == "run":
        return cmd_run(config, args.group, Path(args.subjects_file), args.workers)
    if args.command == "retry":
        return cmd_retry(config, args.subject, args.group)
    if args.command == "export":
        return cmd_export(config, args)
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
