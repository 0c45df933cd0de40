"""
CCD Configuration

Environment-variable driven configuration for the session monitor.
Every value has a default and can be overridden from the environment;
command-line flags override both.

Environment Variables:
    CCD_PB_URL: Record store base URL (default: http://localhost:8090)
    CCD_PROJECT_ID: Project record to attach facts and sessions to
    CCD_LOG_DIR: Conversation log directory (default: first existing Claude log dir)
    CCD_REPO_PATH: Repository root holding thoughts/ (default: current directory)
    CCD_SMART_MODE: Enable scoring, ledger and handoffs (default: 1)
    CCD_COMPACT_THRESHOLD: Precompact token threshold (default: 170000)
    CCD_MAX_FACTS_PER_TYPE: Facts kept per type when compressing (default: 10)
    CCD_HANDOFF_INTERVAL_MINUTES: Minimum minutes between handoffs (default: 30)
    CCD_LOG_SUFFIXES: Suffixes swept at startup, comma separated (default: .log)
    CCD_VERBOSE: Log recoverable failures (default: 0)
    CCD_LOG_LEVEL: Logging level (default: INFO)
    CCD_DAEMON_LOG_DIR: Directory for daily daemon log files (optional)
    CCD_HTTP_TIMEOUT: Seconds before a record store call gives up (optional)
"""
import os
import platform
from pathlib import Path
from typing import Dict, List, Optional


class ConfigurationError(Exception):
    """Raised when the daemon cannot start with the given configuration."""


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name, "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


# ============== LOG LOCATION ==============
def get_default_log_path() -> str:
    """Return the first Claude log directory that exists, or an empty string."""
    home = Path.home()
    candidates = [
        home / ".claude" / "logs",
        home / ".config" / "claude" / "logs",
        home / "Library" / "Application Support" / "Claude" / "logs",
    ]
    for path in candidates:
        if path.is_dir():
            return str(path)
    return ""


# ============== RECORD STORE ==============
PB_URL = os.environ.get("CCD_PB_URL", "http://localhost:8090")
PROJECT_ID = os.environ.get("CCD_PROJECT_ID", "")
HTTP_TIMEOUT = _env_float("CCD_HTTP_TIMEOUT")

# ============== WATCHER ==============
LOG_DIR = os.environ.get("CCD_LOG_DIR") or get_default_log_path()
REPO_PATH = Path(os.environ.get("CCD_REPO_PATH", os.getcwd()))
SMART_MODE = _env_bool("CCD_SMART_MODE", True)
VERBOSE = _env_bool("CCD_VERBOSE", False)
LOG_SUFFIXES: List[str] = [
    s.strip() for s in os.environ.get("CCD_LOG_SUFFIXES", ".log").split(",") if s.strip()
]

# ============== SMART FEATURES ==============
COMPACT_THRESHOLD = _env_int("CCD_COMPACT_THRESHOLD", 170000)
MAX_FACTS_PER_TYPE = _env_int("CCD_MAX_FACTS_PER_TYPE", 10)
HANDOFF_INTERVAL_MINUTES = _env_int("CCD_HANDOFF_INTERVAL_MINUTES", 30)

# ============== LOGGING ==============
LOG_LEVEL = os.environ.get("CCD_LOG_LEVEL", "INFO")
DAEMON_LOG_DIR = os.environ.get("CCD_DAEMON_LOG_DIR", "")


# ============== DERIVED PATHS ==============
def thoughts_dir(repo_path) -> Path:
    return Path(repo_path) / "thoughts"


def ledger_dir(repo_path) -> Path:
    """Directory holding the per-day CONTINUITY_*.jsonl files."""
    return thoughts_dir(repo_path) / "ledgers"


def handoff_dir(repo_path) -> Path:
    """Directory holding handoff markdown documents."""
    return thoughts_dir(repo_path) / "shared" / "handoffs"


def get_config_info() -> Dict:
    """Get current configuration for display."""
    return {
        "platform": platform.system(),
        "pb_url": PB_URL,
        "project_id": PROJECT_ID or "(not configured)",
        "log_dir": LOG_DIR or "(not found)",
        "log_dir_exists": bool(LOG_DIR) and Path(LOG_DIR).is_dir(),
        "repo_path": str(REPO_PATH),
        "ledger_dir": str(ledger_dir(REPO_PATH)),
        "handoff_dir": str(handoff_dir(REPO_PATH)),
        "smart_mode": SMART_MODE,
        "compact_threshold": COMPACT_THRESHOLD,
        "max_facts_per_type": MAX_FACTS_PER_TYPE,
        "handoff_interval_minutes": HANDOFF_INTERVAL_MINUTES,
        "log_suffixes": LOG_SUFFIXES,
        "http_timeout": HTTP_TIMEOUT,
        "verbose": VERBOSE,
        "log_level": LOG_LEVEL,
    }


if __name__ == "__main__":
    import json
    print("CCD Configuration:")
    print(json.dumps(get_config_info(), indent=2))
