import logging
import os
import platform
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from extclip.config import APP_DISPLAY_NAME, RESOLVER_TIMEOUT

logger = logging.getLogger(__name__)

# Labels reported by cross-platform runtimes instead of the real app name.
# When our own process is focused they are replaced by our display name.
GENERIC_RUNTIME_NAMES = frozenset({"Electron", "Python", "python", "python3", "Java", "java", "node"})

# Process names that do not match what users call the app.
APP_NAME_OVERRIDES: dict[str, str] = {
    "Code": "Visual Studio Code",
    "Code - Insiders": "Visual Studio Code - Insiders",
    "code": "Visual Studio Code",
    "firefox-bin": "Firefox",
    "chrome": "Google Chrome",
    "gnome-terminal-": "GNOME Terminal",
}

_OSASCRIPT = (
    'tell application "System Events" to get {name, unix id} '
    "of first application process whose frontmost is true"
)


@dataclass(frozen=True)
class FrontmostApp:
    name: str
    pid: int | None = None


class FrontmostAppResolver:
    def __init__(
        self,
        own_name: str = APP_DISPLAY_NAME,
        own_pid: int | None = None,
        timeout: float = RESOLVER_TIMEOUT,
    ):
        self._own_name = own_name
        self._own_pid = own_pid if own_pid is not None else os.getpid()
        self._timeout = timeout

    def resolve(self) -> str | None:
        """Best-effort name of the focused app; None on any failure."""
        try:
            app = self._lookup()
        except Exception:
            logger.debug("Frontmost app lookup failed", exc_info=True)
            return None
        if app is None or not app.name:
            return None
        return self._apply_overrides(app)

    def _apply_overrides(self, app: FrontmostApp) -> str:
        if app.name in GENERIC_RUNTIME_NAMES and app.pid == self._own_pid:
            return self._own_name
        return APP_NAME_OVERRIDES.get(app.name, app.name)

    def _lookup(self) -> FrontmostApp | None:
        system = platform.system()
        if system == "Darwin":
            app = self._from_workspace()
            if app is None:
                app = self._from_osascript()
            return app
        if system == "Linux":
            return self._from_xdotool()
        return None

    def _from_workspace(self) -> FrontmostApp | None:
        try:
            from AppKit import NSWorkspace

            running = NSWorkspace.sharedWorkspace().frontmostApplication()
        except Exception:
            logger.debug("NSWorkspace unavailable", exc_info=True)
            return None
        if running is None:
            return None
        name = running.localizedName()
        if not name:
            return None
        return FrontmostApp(name=str(name), pid=int(running.processIdentifier()))

    def _from_osascript(self) -> FrontmostApp | None:
        if not shutil.which("osascript"):
            return None
        result = subprocess.run(
            ["osascript", "-e", _OSASCRIPT],
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        if result.returncode != 0:
            return None
        return parse_osascript_output(result.stdout)

    def _from_xdotool(self) -> FrontmostApp | None:
        if not shutil.which("xdotool"):
            return None
        result = subprocess.run(
            ["xdotool", "getactivewindow", "getwindowpid"],
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        if result.returncode != 0:
            return None
        pid = int(result.stdout.strip())
        name = Path(f"/proc/{pid}/comm").read_text().strip()
        return FrontmostApp(name=name, pid=pid)


def parse_osascript_output(output: str) -> FrontmostApp | None:
    # System Events returns "Safari, 1234"; names may themselves contain commas.
    output = output.strip()
    if not output:
        return None
    name, sep, pid_text = output.rpartition(", ")
    if not sep:
        return FrontmostApp(name=output)
    try:
        pid = int(pid_text)
    except ValueError:
        return FrontmostApp(name=output)
    return FrontmostApp(name=name, pid=pid)
