"""CCD - CLI entry point"""
import json
import logging
import signal
import sys
import threading
from typing import Dict, List, Optional, Set, Tuple

from . import __version__, config
from .config import ConfigurationError
from .continuity_ledger import ContinuityLedger, LedgerError
from .daemon_logger import setup_logging
from .record_store import RecordStoreClient, RecordStoreError
from .session_watcher import SessionWatcher, WatcherConfig, build_handoff_summary
from .smart import DiffGenerator

logger = logging.getLogger("ccd.cli")

VALUE_FLAGS = {"--project", "--logs", "--pb-url", "--repo", "--threshold"}
SWITCH_FLAGS = {"--basic", "-v", "--verbose"}


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher"""
    args = sys.argv[1:] if argv is None else argv

    if not args or args[0] in ("--help", "-h", "help"):
        _print_help()
        return 0

    cmd, rest = args[0], args[1:]
    if cmd in ("--version", "-V"):
        print(f"ccd {__version__}")
        return 0

    commands = {
        "watch": _watch,
        "latest": _latest,
        "diff": _diff,
        "handoff": _handoff,
        "doctor": _doctor,
    }
    if cmd not in commands:
        print(f"Unknown command: {cmd}")
        _print_help()
        return 1

    try:
        values, switches = _parse_flags(rest)
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    setup_logging(verbose=bool(switches & {"-v", "--verbose"}) or config.VERBOSE,
                  log_dir=config.DAEMON_LOG_DIR or None, level=config.LOG_LEVEL)
    return commands[cmd](values, switches)


def _parse_flags(args: List[str]) -> Tuple[Dict[str, str], Set[str]]:
    values: Dict[str, str] = {}
    switches: Set[str] = set()
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in VALUE_FLAGS:
            if i + 1 >= len(args):
                raise ValueError(f"{arg} needs a value")
            values[arg] = args[i + 1]
            i += 2
        elif arg in SWITCH_FLAGS:
            switches.add(arg)
            i += 1
        else:
            raise ValueError(f"Unknown option: {arg}")
    return values, switches


def _print_help():
    print(f"""ccd v{__version__} - Session context tracker for AI coding assistants

Usage:
  ccd watch       Watch conversation logs and track facts, ledger and handoffs
                    --project ID  --logs DIR  --pb-url URL  --repo PATH
                    --threshold N  --basic (no smart features)  -v
  ccd latest      Print the latest ledger entry as JSON     [--repo PATH]
  ccd diff        Diff the last two ledger entries          [--repo PATH]
  ccd handoff     Write a handoff from the latest entry now [--repo PATH] [--project ID]
  ccd doctor      Show the resolved configuration
  ccd --version   Show version
  ccd --help      Show this help

Environment:
  CCD_PB_URL, CCD_PROJECT_ID, CCD_LOG_DIR, CCD_REPO_PATH, CCD_SMART_MODE,
  CCD_COMPACT_THRESHOLD, CCD_VERBOSE, CCD_LOG_LEVEL (see ccd doctor)""")


def _open_ledger(values: Dict[str, str]) -> ContinuityLedger:
    repo = values.get("--repo", str(config.REPO_PATH))
    return ContinuityLedger(values.get("--project", config.PROJECT_ID), repo)


def _watch(values: Dict[str, str], switches: Set[str]) -> int:
    try:
        threshold = int(values["--threshold"]) if "--threshold" in values else None
        watcher_config = WatcherConfig.from_env(
            project_id=values.get("--project"),
            log_path=values.get("--logs"),
            repo_path=values.get("--repo"),
            compact_threshold=threshold,
            smart_mode=False if "--basic" in switches else None,
            verbose=True if switches & {"-v", "--verbose"} else None,
        )
        if not watcher_config.project_id:
            raise ConfigurationError("Project ID is required. Use --project or CCD_PROJECT_ID.")

        pb_url = values.get("--pb-url", config.PB_URL)
        client = RecordStoreClient(pb_url, timeout=config.HTTP_TIMEOUT)
        client.verify_project(watcher_config.project_id)

        logger.info("Starting CCD daemon")
        logger.info("Record store URL: %s", pb_url)
        logger.info("Project ID: %s", watcher_config.project_id)
        logger.info("Logs path: %s", watcher_config.log_path)

        watcher = SessionWatcher(watcher_config, client)
        watcher.start()
    except (ConfigurationError, RecordStoreError, OSError, ValueError) as e:
        logger.error("Failed to start: %s", e)
        return 1

    stop_requested = threading.Event()

    def _request_stop(signum, frame):
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    logger.info("Daemon started. Press Ctrl+C to stop.")
    while not stop_requested.wait(1):
        pass

    logger.info("Shutting down...")
    watcher.stop()
    return 0


def _latest(values: Dict[str, str], switches: Set[str]) -> int:
    try:
        entry = _open_ledger(values).get_latest_entry()
    except (LedgerError, OSError, ValueError) as e:
        print(f"No ledger entry: {e}")
        return 1
    print(json.dumps(entry.to_dict(), indent=2, ensure_ascii=False))
    return 0


def _diff(values: Dict[str, str], switches: Set[str]) -> int:
    try:
        entries = _open_ledger(values).get_recent_entries(2)
    except OSError as e:
        print(f"Could not read ledger: {e}")
        return 1
    if len(entries) < 2:
        print("Need at least two ledger entries to diff.")
        return 1

    previous, current = (e.to_snapshot() for e in entries)
    generator = DiffGenerator()
    print(generator.format_diff(generator.generate_diff(previous, current), previous, current))
    return 0


def _handoff(values: Dict[str, str], switches: Set[str]) -> int:
    try:
        ledger = _open_ledger(values)
        latest = ledger.get_latest_entry()
    except (LedgerError, OSError, ValueError) as e:
        print(f"Cannot create handoff: {e}")
        return 1

    try:
        path = ledger.create_handoff(latest.session_id, build_handoff_summary(latest), latest.facts)
    except OSError as e:
        print(f"Cannot create handoff: {e}")
        return 1
    print(f"Handoff written: {path}")
    return 0


def _doctor(values: Dict[str, str], switches: Set[str]) -> int:
    info = config.get_config_info()
    print(f"ccd v{__version__} - Configuration")
    print()
    for key, value in info.items():
        print(f"  {key + ':':<26}{value}")
    print()
    if not info["log_dir_exists"]:
        print("  Log directory not found. Set CCD_LOG_DIR or pass --logs to ccd watch.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
