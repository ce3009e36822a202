import sys
from unittest.mock import MagicMock, patch

import pyperclip
import pytest

from extclip.clipboard import (
    ClipboardBackend,
    ClipboardPort,
    ClipboardReadError,
    ClipboardWriteError,
    PasteboardBackend,
    PyperclipBackend,
    TkSelectionBackend,
    copy_clip,
    default_port,
)


class StubBackend(ClipboardBackend):
    def __init__(self, name, text="", read_error=False, write_error=False, can_read=True):
        self.name = name
        self.text = text
        self.read_error = read_error
        self.write_error = write_error
        self.can_read = can_read
        self.written = []

    def read_text(self):
        if self.read_error:
            raise ClipboardReadError(f"{self.name} read failed")
        return self.text

    def write_text(self, text):
        if self.write_error:
            raise ClipboardWriteError(f"{self.name} write failed")
        self.written.append(text)


@pytest.fixture
def fake_appkit():
    appkit = MagicMock()
    pasteboard = appkit.NSPasteboard.generalPasteboard.return_value
    with patch.dict(sys.modules, {"AppKit": appkit}):
        yield pasteboard


class TestPasteboardBackend:
    def test_read(self, fake_appkit):
        fake_appkit.stringForType_.return_value = "from pasteboard"
        assert PasteboardBackend().read_text() == "from pasteboard"

    def test_read_none_is_empty(self, fake_appkit):
        fake_appkit.stringForType_.return_value = None
        assert PasteboardBackend().read_text() == ""

    def test_write(self, fake_appkit):
        fake_appkit.setString_forType_.return_value = True
        PasteboardBackend().write_text("hello")
        fake_appkit.clearContents.assert_called_once()
        assert fake_appkit.setString_forType_.call_args[0][0] == "hello"

    def test_write_refused(self, fake_appkit):
        fake_appkit.setString_forType_.return_value = False
        with pytest.raises(ClipboardWriteError):
            PasteboardBackend().write_text("hello")

    def test_missing_appkit_is_a_read_error(self):
        with patch.dict(sys.modules, {"AppKit": None}):
            with pytest.raises(ClipboardReadError):
                PasteboardBackend().read_text()


class TestPyperclipBackend:
    def test_read(self):
        with patch("extclip.clipboard.pyperclip.paste", return_value="copied"):
            assert PyperclipBackend().read_text() == "copied"

    def test_read_failure_wrapped(self):
        with patch("extclip.clipboard.pyperclip.paste", side_effect=pyperclip.PyperclipException("no xclip")):
            with pytest.raises(ClipboardReadError):
                PyperclipBackend().read_text()

    def test_undecodable_clipboard_is_a_read_error(self):
        bad_bytes = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        with patch("extclip.clipboard.pyperclip.paste", side_effect=bad_bytes):
            with pytest.raises(ClipboardReadError):
                PyperclipBackend().read_text()

    def test_write_failure_wrapped(self):
        with patch("extclip.clipboard.pyperclip.copy", side_effect=pyperclip.PyperclipException("no xclip")):
            with pytest.raises(ClipboardWriteError):
                PyperclipBackend().write_text("x")


class TestTkSelectionBackend:
    def test_write_takes_ownership(self):
        tk = MagicMock()
        tk.TclError = type("TclError", (Exception,), {})
        root = tk.Tk.return_value
        with patch.dict(sys.modules, {"tkinter": tk}):
            TkSelectionBackend().write_text("manual")
        root.clipboard_append.assert_called_once_with("manual")
        root.destroy.assert_called_once()

    def test_is_write_only(self):
        backend = TkSelectionBackend()
        assert backend.can_read is False
        with pytest.raises(ClipboardReadError):
            backend.read_text()


class TestClipboardPort:
    def test_reads_first_backend(self):
        port = ClipboardPort([StubBackend("a", "first"), StubBackend("b", "second")])
        assert port.read_text() == "first"

    def test_read_falls_through_failures(self):
        port = ClipboardPort([StubBackend("a", read_error=True), StubBackend("b", "second")])
        assert port.read_text() == "second"

    def test_unexpected_backend_error_becomes_read_error(self):
        broken = StubBackend("broken")
        broken.read_text = MagicMock(side_effect=OSError("pipe closed"))
        with pytest.raises(ClipboardReadError):
            ClipboardPort([broken]).read_text()
        assert ClipboardPort([broken, StubBackend("b", "second")]).read_text() == "second"

    def test_all_reads_failing_raises(self):
        port = ClipboardPort([StubBackend("a", read_error=True), StubBackend("b", read_error=True)])
        with pytest.raises(ClipboardReadError):
            port.read_text()

    def test_no_readable_backend_reads_empty(self):
        port = ClipboardPort([StubBackend("tk", can_read=False)])
        assert port.read_text() == ""
        assert ClipboardPort([]).read_text() == ""

    def test_write_falls_back_to_last_resort(self):
        host = StubBackend("host", write_error=True)
        generic = StubBackend("generic", write_error=True)
        manual = StubBackend("manual", can_read=False)
        port = ClipboardPort([host, generic, manual])
        assert port.write_text("x") == "manual"
        assert manual.written == ["x"]

    def test_write_with_nothing_available(self):
        with pytest.raises(ClipboardWriteError):
            ClipboardPort([]).write_text("x")


class TestDefaultPort:
    def test_macos_prefers_pasteboard(self):
        with patch("extclip.clipboard.platform.system", return_value="Darwin"):
            names = [b.name for b in default_port().backends]
        assert names == ["pasteboard", "pyperclip", "tk"]

    def test_linux_uses_generic_backends(self):
        with patch("extclip.clipboard.platform.system", return_value="Linux"):
            names = [b.name for b in default_port().backends]
        assert names == ["pyperclip", "tk"]


class TestCopyClip:
    def test_marks_self_copy_before_write(self):
        events = []

        class RecordingBackend(StubBackend):
            def write_text(self, text):
                events.append(("write", text))

        def mark(text):
            events.append(("mark", text))

        assert copy_clip(ClipboardPort([RecordingBackend("host")]), "again", mark) is True
        assert events == [("mark", "again"), ("write", "again")]

    def test_failed_write_is_reported_to_the_marker(self):
        settle = MagicMock()
        mark = MagicMock(return_value=settle)
        port = ClipboardPort([StubBackend("host", write_error=True)])
        assert copy_clip(port, "again", mark) is False
        mark.assert_called_once_with("again")
        settle.assert_called_once_with(False)

    def test_successful_write_is_reported_to_the_marker(self):
        settle = MagicMock()
        assert copy_clip(ClipboardPort([StubBackend("host")]), "again", MagicMock(return_value=settle)) is True
        settle.assert_called_once_with(True)

    def test_without_marker(self):
        backend = StubBackend("host")
        assert copy_clip(ClipboardPort([backend]), "plain") is True
        assert backend.written == ["plain"]
