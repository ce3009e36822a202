import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("EXTCLIP_DATA_DIR", Path.home() / ".local" / "share" / "extclip"))
DB_PATH = DATA_DIR / "extclip.db"
LOG_PATH = DATA_DIR / "extclip.log"
SOCKET_PATH = DATA_DIR / "extclip.sock"

APP_DISPLAY_NAME = "ExtClip"


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _parse_seconds(name: str, default: float, low: float, high: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value != value:  # NaN
        return default
    return max(low, min(high, value))


def _parse_menu_display_count() -> int:
    raw = os.environ.get("EXTCLIP_MENU_DISPLAY_COUNT")
    if raw is None:
        return 10
    try:
        value = int(raw)
    except ValueError:
        return 10
    return max(5, min(50, value))


WATCHER_ENABLED = _parse_bool("EXTCLIP_WATCHER", True)
POLL_INTERVAL = _parse_seconds("EXTCLIP_POLL_INTERVAL", 1.5, 0.1, 60.0)  # seconds between clipboard reads
GUARD_DURATION = _parse_seconds("EXTCLIP_GUARD_DURATION", 3.0, 0.5, 30.0)  # self-copy exact-text guard
SUPPRESS_DURATION = _parse_seconds("EXTCLIP_SUPPRESS_DURATION", 3.2, 0.5, 30.0)  # echo window after a self-copy
RESOLVER_TIMEOUT = 1.0  # seconds allowed for frontmost app lookup
BACKGROUND_TIMEOUT = 0.5  # socket connect/handshake timeout for the daemon
DAEMON_POLL_INTERVAL = 0.25
MENU_REFRESH_INTERVAL = 0.5

MAX_ENTRIES = 500  # auto-purge threshold
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
PREVIEW_LENGTH = 60  # characters shown in menu item
MENU_DISPLAY_COUNT = _parse_menu_display_count()
