import argparse
import logging
import subprocess
import sys
from pathlib import Path
from xml.sax.saxutils import escape

from extclip.config import DATA_DIR, LOG_PATH, SOCKET_PATH
from extclip.utils import ensure_dirs

AGENT_LABEL = "com.extclip.daemon"
PLIST_NAME = f"{AGENT_LABEL}.plist"
LAUNCHAGENT_DIR = Path.home() / "Library" / "LaunchAgents"
PLIST_PATH = LAUNCHAGENT_DIR / PLIST_NAME


def get_extclip_path() -> str:
    """Get the path to the extclip executable."""
    import shutil

    extclip_path = shutil.which("extclip")
    if extclip_path:
        return extclip_path
    return f"{sys.executable} -m extclip"


def create_plist(extclip_path: str) -> str:
    """Generate the LaunchAgent plist that keeps the background daemon alive."""
    interpreter, module_flag, module = extclip_path.rpartition(" -m ")
    parts = [interpreter, module_flag.strip(), module] if module_flag else [extclip_path]
    program_args = "\n".join(f"        <string>{escape(part)}</string>" for part in parts)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{AGENT_LABEL}</string>
    <key>ProgramArguments</key>
    <array>
{program_args}
        <string>daemon</string>
    </array>
    <key>RunAtLoad</key>
    <true/>
    <key>KeepAlive</key>
    <true/>
    <key>StandardOutPath</key>
    <string>{DATA_DIR}/extclip-daemon.log</string>
    <key>StandardErrorPath</key>
    <string>{DATA_DIR}/extclip-daemon.log</string>
</dict>
</plist>
"""


def install_launchagent() -> int:
    """Install and start the background daemon LaunchAgent."""
    ensure_dirs()

    extclip_path = get_extclip_path()
    print(f"Installing LaunchAgent for: {extclip_path}")

    LAUNCHAGENT_DIR.mkdir(parents=True, exist_ok=True)

    if PLIST_PATH.exists():
        subprocess.run(
            ["launchctl", "unload", str(PLIST_PATH)],
            capture_output=True,
        )

    PLIST_PATH.write_text(create_plist(extclip_path))
    print(f"Created: {PLIST_PATH}")

    result = subprocess.run(
        ["launchctl", "load", str(PLIST_PATH)],
        capture_output=True,
        text=True,
    )

    if result.returncode == 0:
        print("Background clipboard daemon is now running.")
        print("It will start automatically on login.")
        return 0
    else:
        print(f"Failed to load LaunchAgent: {result.stderr}")
        return 1


def uninstall_launchagent() -> int:
    """Stop and remove the LaunchAgent."""
    if not PLIST_PATH.exists():
        print("LaunchAgent not installed.")
        return 0

    subprocess.run(
        ["launchctl", "unload", str(PLIST_PATH)],
        capture_output=True,
    )

    PLIST_PATH.unlink()
    print("LaunchAgent uninstalled.")
    print("The app will fall back to polling the clipboard.")
    return 0


def check_status() -> int:
    """Report whether the background daemon answers on its socket."""
    from extclip.background import BackgroundClient, BackgroundError

    try:
        active = BackgroundClient(SOCKET_PATH).is_active()
    except BackgroundError:
        active = False

    if active:
        print(f"Background daemon is running ({SOCKET_PATH}).")
        return 0

    print("Background daemon is not running.")
    if PLIST_PATH.exists():
        print(f"LaunchAgent installed but not answering: {PLIST_PATH}")
    else:
        print("LaunchAgent not installed. Run: extclip install")
    return 1


def setup_logging(verbose: bool = False) -> None:
    ensure_dirs()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
    )


def run_app(verbose: bool = False) -> None:
    """Run the menu bar application."""
    setup_logging(verbose)

    from extclip.app import ExtClipApp

    app = ExtClipApp()
    app.run()


def run_daemon(verbose: bool = False) -> None:
    """Run the background clipboard daemon in the foreground."""
    setup_logging(verbose)

    from extclip.background import BackgroundDaemon
    from extclip.clipboard import default_port
    from extclip.frontmost import FrontmostAppResolver

    daemon = BackgroundDaemon(default_port(), FrontmostAppResolver(), SOCKET_PATH)
    daemon.serve_forever()


def main():
    parser = argparse.ArgumentParser(
        description="extclip - clipboard history manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run         Run the menu bar app (default)
  daemon      Run the background clipboard daemon in the foreground
  install     Install the daemon as a LaunchAgent (runs on login)
  uninstall   Remove the LaunchAgent
  status      Check if the daemon is answering

Examples:
  extclip install    # Start pushing clipboard changes from the background
  extclip            # Open the menu bar app
""",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "daemon", "install", "uninstall", "status"],
        help="Command to run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")

    args = parser.parse_args()

    if args.command == "install":
        sys.exit(install_launchagent())
    elif args.command == "uninstall":
        sys.exit(uninstall_launchagent())
    elif args.command == "status":
        sys.exit(check_status())
    elif args.command == "daemon":
        run_daemon(args.verbose)
    else:
        run_app(args.verbose)


if __name__ == "__main__":
    main()
