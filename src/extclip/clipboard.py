"""Clipboard access: one port over interchangeable backends.

Reads go to the first backend that can read; writes fall through the
whole chain, ending with the Tk selection writer as a last resort.
"""

import logging
import platform
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

import pyperclip

logger = logging.getLogger(__name__)


class ClipboardError(Exception):
    pass


class ClipboardReadError(ClipboardError):
    pass


class ClipboardWriteError(ClipboardError):
    pass


class ClipboardBackend(ABC):
    name: str = "backend"
    can_read: bool = True

    @abstractmethod
    def read_text(self) -> str:
        ...

    @abstractmethod
    def write_text(self, text: str) -> None:
        ...


class PasteboardBackend(ClipboardBackend):
    """Native macOS pasteboard via AppKit."""

    name = "pasteboard"

    def read_text(self) -> str:
        try:
            from AppKit import NSPasteboard, NSPasteboardTypeString

            text = NSPasteboard.generalPasteboard().stringForType_(NSPasteboardTypeString)
        except Exception as exc:
            raise ClipboardReadError(f"pasteboard read failed: {exc}") from exc
        return str(text) if text else ""

    def write_text(self, text: str) -> None:
        try:
            from AppKit import NSPasteboard, NSPasteboardTypeString

            pb = NSPasteboard.generalPasteboard()
            pb.clearContents()
            ok = pb.setString_forType_(text, NSPasteboardTypeString)
        except Exception as exc:
            raise ClipboardWriteError(f"pasteboard write failed: {exc}") from exc
        if not ok:
            raise ClipboardWriteError("pasteboard refused the string")


class PyperclipBackend(ClipboardBackend):
    """Generic platform clipboard (pbcopy, xclip, wl-clipboard, win32)."""

    name = "pyperclip"

    def read_text(self) -> str:
        try:
            text = pyperclip.paste()
        except (pyperclip.PyperclipException, UnicodeError, OSError) as exc:
            raise ClipboardReadError(f"pyperclip read failed: {exc}") from exc
        return text or ""

    def write_text(self, text: str) -> None:
        try:
            pyperclip.copy(text)
        except (pyperclip.PyperclipException, UnicodeError, OSError) as exc:
            raise ClipboardWriteError(f"pyperclip write failed: {exc}") from exc


class TkSelectionBackend(ClipboardBackend):
    """Write-only fallback that takes clipboard ownership through Tk."""

    name = "tk"
    can_read = False

    def read_text(self) -> str:
        raise ClipboardReadError("tk backend is write-only")

    def write_text(self, text: str) -> None:
        try:
            import tkinter

            root = tkinter.Tk()
        except Exception as exc:
            raise ClipboardWriteError(f"tk unavailable: {exc}") from exc
        try:
            root.withdraw()
            root.clipboard_clear()
            root.clipboard_append(text)
            root.update()
        except tkinter.TclError as exc:
            raise ClipboardWriteError(f"tk write failed: {exc}") from exc
        finally:
            root.destroy()


class ClipboardPort:
    def __init__(self, backends: Sequence[ClipboardBackend]):
        self._backends = list(backends)

    @property
    def backends(self) -> list[ClipboardBackend]:
        return list(self._backends)

    def read_text(self) -> str:
        """Return the clipboard text, or "" when nothing can read it.

        Raises ClipboardReadError only if every readable backend failed.
        """
        failures = []
        for backend in self._backends:
            if not backend.can_read:
                continue
            try:
                return backend.read_text()
            except ClipboardReadError as exc:
                failures.append(str(exc))
            except Exception as exc:
                logger.debug("Clipboard read via %s raised", backend.name, exc_info=True)
                failures.append(f"{backend.name} read failed: {exc!r}")
        if failures:
            raise ClipboardReadError("; ".join(failures))
        return ""

    def write_text(self, text: str) -> str:
        """Write through the first backend that succeeds and return its name."""
        failures = []
        for backend in self._backends:
            try:
                backend.write_text(text)
            except Exception as exc:
                logger.debug("Clipboard write via %s failed: %s", backend.name, exc)
                failures.append(str(exc) or repr(exc))
                continue
            return backend.name
        raise ClipboardWriteError("; ".join(failures) or "no clipboard backend available")


def default_port() -> ClipboardPort:
    backends: list[ClipboardBackend] = []
    if platform.system() == "Darwin":
        backends.append(PasteboardBackend())
    backends.append(PyperclipBackend())
    backends.append(TkSelectionBackend())
    return ClipboardPort(backends)


def copy_clip(
    port: ClipboardPort,
    text: str,
    mark_self_copy: Callable[[str], Callable[[bool], None] | None] | None = None,
) -> bool:
    """Put ``text`` on the clipboard on behalf of the user.

    ``mark_self_copy`` is called before the write, so the watcher never sees
    our own text unguarded. If it returns a callable, that callable is told
    whether the write succeeded; a failed write disarms the guard.
    """
    settle = mark_self_copy(text) if mark_self_copy is not None else None
    try:
        backend_name = port.write_text(text)
    except ClipboardWriteError:
        logger.exception("Copy to clipboard failed")
        if callable(settle):
            settle(False)
        return False
    if callable(settle):
        settle(True)
    logger.debug("Copied %d chars via %s", len(text), backend_name)
    return True
