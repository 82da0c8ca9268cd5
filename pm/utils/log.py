import threading
from pathlib import Path
from typing import Optional, Any

from .time import now_local

# Set by setup_logging(); until then lines only go to stdout.
LOG_DIR: Optional[Path] = None
CLIENT_LOG_NAME = "client"

_LOG_LOCK = threading.Lock()


def setup_logging(log_dir: Path, log_name: str = "client") -> None:
    global LOG_DIR, CLIENT_LOG_NAME
    LOG_DIR = Path(log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    CLIENT_LOG_NAME = log_name


def current_log_path() -> Optional[Path]:
    # One file per day, e.g. logs/client-2024-05-01.log
    if LOG_DIR is None:
        return None
    return LOG_DIR / f"{CLIENT_LOG_NAME}-{now_local().strftime('%Y-%m-%d')}.log"


def _append(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")


def format_line(msg: Any, level: str = "INFO") -> str:
    """
    Single timestamp, readable:
    - Prefix every line with: YYYY-MM-DD // HH:MM:SS+hh:mm - LEVEL |
    - No ISO 'T'.
    """
    line = str(msg).strip()
    prefix = now_local().strftime("%Y-%m-%d // %H:%M:%S%z")
    if len(prefix) >= 5:
        prefix = prefix[:-2] + ":" + prefix[-2:]
    return f"{prefix} - {level} | {line}" if line else f"{prefix} - {level} |"


def log_line(msg: Any, level: str = "INFO") -> None:
    with _LOG_LOCK:
        full = format_line(msg, level)
        path = current_log_path()
        if path:
            _append(path, full)
        print(full, flush=True)
