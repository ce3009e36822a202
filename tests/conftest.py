import threading
import time

import pytest

from extclip.clipboard import ClipboardReadError, ClipboardWriteError
from extclip.storage import ClipStore


@pytest.fixture
def store():
    clip_store = ClipStore(db_path=":memory:")
    yield clip_store
    clip_store.close()


class FakePort:
    """Clipboard port whose contents the test controls."""

    def __init__(self, text: str = ""):
        self.text = text
        self.reads = 0
        self.writes: list[str] = []
        self.fail_reads = False
        self.read_exception: Exception | None = None
        self.fail_writes = False
        self._lock = threading.Lock()

    def read_text(self) -> str:
        with self._lock:
            self.reads += 1
            if self.fail_reads:
                raise ClipboardReadError("clipboard busy")
            if self.read_exception is not None:
                raise self.read_exception
            return self.text

    def write_text(self, text: str) -> str:
        if self.fail_writes:
            raise ClipboardWriteError("no clipboard")
        self.writes.append(text)
        self.text = text
        return "fake"


class FakeBackground:
    """Push source; ``emit`` plays the daemon side."""

    def __init__(self, active=True, error: Exception | None = None, gate: threading.Event | None = None):
        self.active = active
        self.error = error
        self.gate = gate
        self.callbacks = []
        self.unsubscribed = 0
        self.checks = 0

    def is_active(self) -> bool:
        self.checks += 1
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.error is not None:
            raise self.error
        return self.active

    def on_new(self, callback):
        self.callbacks.append(callback)

        def unsubscribe():
            self.unsubscribed += 1

        return unsubscribe

    def emit(self, text: str, app: str | None = None) -> None:
        for callback in list(self.callbacks):
            callback(text, app)


class FakeResolver:
    def __init__(self, name: str | None = "Safari"):
        self.name = name
        self.calls = 0

    def resolve(self) -> str | None:
        self.calls += 1
        return self.name


class RecordingGateway:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.clips: list[tuple[str, str | None]] = []
        self._lock = threading.Lock()

    def add_clip(self, content: str, from_app_name: str | None = None) -> None:
        if self.fail:
            raise RuntimeError("backend down")
        with self._lock:
            self.clips.append((content, from_app_name))


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def port():
    return FakePort()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def resolver():
    return FakeResolver()
