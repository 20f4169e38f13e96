"""
jetson-clocks command line
Shows, stores, restores and maximizes the clock settings of a Jetson board
"""
import argparse
import logging
import sys
from typing import Callable, List, Optional

from jetson_clocks.clock_enums import DomainKind
from jetson_clocks.clock_manager import ClockManager
from jetson_clocks.clock_settings import ClocksSettings
from jetson_clocks.clock_utils import configure_logging, format_cpu_frequency, format_frequency
from jetson_clocks.errors import ClocksError
from jetson_clocks.snapshot_manager import SnapshotManager, SnapshotReport, SnapshotStore
from jetson_clocks.sysfs_access import SysfsAccessor

logger = logging.getLogger("jetson_clocks.main")

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jetson-clocks",
        description="Maximize, show, store and restore Jetson CPU, GPU, EMC and fan clocks. "
                    "Without an action every clock is pinned to its maximum.",
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument("--show", action="store_true", help="Display the current settings")
    actions.add_argument(
        "--store", nargs="?", const="", metavar="FILE",
        help="Store the current settings (default: the configured snapshot path)",
    )
    actions.add_argument(
        "--restore", nargs="?", const="", metavar="FILE",
        help="Restore settings from a snapshot (default: the configured snapshot path)",
    )
    actions.add_argument("--max", action="store_true", help="Pin all clocks to their maximum")

    parser.add_argument("--fan", type=int, metavar="SPEED", help="Set the fan PWM speed (0-255)")
    parser.add_argument("--force", action="store_true", help="Overwrite an existing snapshot without asking")
    parser.add_argument("--config", metavar="DIR", help="Settings directory")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="Override the configured log level")
    return parser


def confirm(prompt: str, input_func: Callable[[str], str] = input) -> bool:
    """Ask a yes/no question, defaulting to no"""
    try:
        answer = input_func(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def format_report(report: SnapshotReport) -> List[str]:
    """Render captured domain states one line per domain"""
    lines = []
    snapshot = report.snapshot
    if snapshot is not None:
        lines.append(f"SOC family:{snapshot.board.family.value}  Machine:{snapshot.board.machine}")
        for domain, state in snapshot.domains:
            if domain.kind is DomainKind.CPU:
                lines.append(
                    f"{domain}: Governor={state.governor} "
                    f"MinFreq={format_cpu_frequency(state.min_freq)} "
                    f"MaxFreq={format_cpu_frequency(state.max_freq)} "
                    f"CurrentFreq={format_cpu_frequency(state.cur_freq)}"
                )
            elif domain.kind is DomainKind.GPU:
                lines.append(
                    f"GPU MinFreq={format_frequency(state.min_freq)} "
                    f"MaxFreq={format_frequency(state.max_freq)} "
                    f"CurrentFreq={format_frequency(state.cur_freq)}"
                )
            elif domain.kind is DomainKind.EMC:
                lines.append(f"EMC Freq={format_frequency(state.freq)}")
            else:
                lines.append(f"FAN Speed={state.pwm_speed}")

    for warning in report.warnings:
        lines.append(f"unavailable: {warning}")
    return lines


def main(argv: Optional[List[str]] = None, input_func: Callable[[str], str] = input) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = ClocksSettings(args.config)
    configure_logging(args.log_level or settings.log_level, settings.get("log_file") or None)

    clocks = ClockManager(SysfsAccessor(root=settings.sysfs_root))
    snapshots = SnapshotManager(clocks, SnapshotStore(settings.snapshot_path))

    report = None
    try:
        if args.show:
            report = snapshots.capture()
            for line in format_report(report):
                print(line)
            return 0 if report.ok else 1

        if args.store is not None:
            store = SnapshotStore(args.store or settings.snapshot_path)
            if store.exists() and not args.force and settings.get("confirm_overwrite"):
                if not confirm(f"File {store.path} already exists. Overwrite? [y/N] ", input_func):
                    logger.info("Not overwriting existing snapshot")
                    return 1
            report = snapshots.store(store.path)
        elif args.restore is not None:
            report = snapshots.restore(args.restore or None)
        elif args.max or args.fan is None:
            report = snapshots.maximize()

        if args.fan is not None:
            clocks.set_fan_speed(args.fan)
    except ClocksError as e:
        logger.error(f"{e}")
        return 1

    if report is not None:
        for warning in report.warnings:
            logger.warning(warning)
        return 0 if report.ok else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
