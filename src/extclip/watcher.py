import logging
import queue
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as DeliveryTimeout
from dataclasses import dataclass
from typing import Protocol

from extclip.clipboard import ClipboardPort, ClipboardReadError
from extclip.config import GUARD_DURATION, POLL_INTERVAL, SUPPRESS_DURATION, WATCHER_ENABLED
from extclip.detector import evaluate, prime
from extclip.frontmost import FrontmostAppResolver
from extclip.guard import mark_self_copy, revert_self_copy
from extclip.models import AttributedClip, ClipboardSample, Decision, ObservationMode, Reason, WatcherState

logger = logging.getLogger(__name__)

_CHANGE_REASONS = (Reason.NEW_CLIP, Reason.SELF_COPY, Reason.SUPPRESSED)


class PushSource(Protocol):
    def is_active(self) -> bool:
        ...

    def on_new(self, callback: Callable[[str, str | None], None]) -> Callable[[], None]:
        ...


class ClipGateway(Protocol):
    def add_clip(self, content: str, from_app_name: str | None = None) -> None:
        ...


@dataclass
class WatcherConfig:
    enabled: bool = WATCHER_ENABLED
    poll_interval: float = POLL_INTERVAL
    guard_duration: float = GUARD_DURATION
    suppress_duration: float = SUPPRESS_DURATION


# Inbox messages, consumed one at a time by the worker thread.
@dataclass(frozen=True)
class _Start:
    pass


@dataclass(frozen=True)
class _Tick:
    pass


@dataclass(frozen=True)
class _Push:
    text: str
    app_hint: str | None
    received_at: float


@dataclass(frozen=True)
class _Flush:
    done: threading.Event


_STOP = object()


class ClipboardWatcher:
    """Observes the clipboard by push or poll and records new external clips."""

    def __init__(
        self,
        port: ClipboardPort,
        gateway: ClipGateway,
        config: WatcherConfig | None = None,
        background: PushSource | None = None,
        resolver: FrontmostAppResolver | None = None,
        on_new_clip: Callable[[bool], None] | None = None,
        on_clipboard_change: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._port = port
        self._gateway = gateway
        self._config = config or WatcherConfig()
        self._background = background
        self._resolver = resolver
        self._on_new_clip = on_new_clip
        self._on_clipboard_change = on_clipboard_change
        self._clock = clock

        self._state = WatcherState()
        self._inbox: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        # Guards WatcherState; mark_self_copy runs on the caller's thread.
        self._state_lock = threading.Lock()
        self._pending_mark: object | None = None
        self._write_settled_at = float("-inf")
        self._stop_event = threading.Event()
        self._started = False
        self._mode: ObservationMode | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._timer: threading.Thread | None = None
        self._worker: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._lookup_executor: ThreadPoolExecutor | None = None
        self._tick_in_flight = False

    @property
    def mode(self) -> ObservationMode | None:
        return self._mode

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def running(self) -> bool:
        return self._started and not self._stop_event.is_set()

    def start(self) -> None:
        with self._lock:
            if self._started or self._stop_event.is_set():
                return
            self._started = True
        if not self._config.enabled:
            logger.info("Clipboard watcher disabled")
            return

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="extclip-deliver")
        self._lookup_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="extclip-lookup")
        self._worker = threading.Thread(target=self._run, daemon=True, name="extclip-watcher")
        self._worker.start()
        self._inbox.put(_Start())

    def stop(self) -> None:
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            timer, self._timer = self._timer, None

        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception:
                logger.exception("Error unsubscribing from background watcher")
        self._inbox.put(_STOP)

        current = threading.current_thread()
        for thread in (timer, self._worker):
            if thread is not None and thread is not current:
                thread.join(timeout=2.0)
        for executor in (self._lookup_executor, self._executor):
            if executor is not None:
                executor.shutdown(wait=False)
        logger.info("Clipboard watcher stopped")

    def mark_self_copy(self, text: str) -> Callable[[bool], None]:
        """Arm the self-copy guard for ``text`` before the app writes it.

        Returns a callable to report how the write went; a failed write
        disarms the guard again. Until then, and at most for the guard
        duration, poll reads that do not show ``text`` are discarded.
        """
        token = object()
        with self._state_lock:
            now = self._clock()
            previous = mark_self_copy(
                self._state,
                text,
                now,
                guard_duration=self._config.guard_duration,
                suppress_duration=self._config.suppress_duration,
            )
            self._pending_mark = token
            self._write_settled_at = now + self._config.guard_duration

        def settle(written: bool) -> None:
            with self._state_lock:
                if self._pending_mark is not token:
                    return
                self._pending_mark = None
                if not written:
                    revert_self_copy(self._state, previous, text)
                self._write_settled_at = self._clock()

        return settle

    def flush(self, timeout: float = 2.0) -> bool:
        """Wait until queued messages and deliveries have been processed."""
        if not self.running or self._worker is None:
            return False
        done = threading.Event()
        self._inbox.put(_Flush(done))
        if not done.wait(timeout):
            return False
        if self._executor is None:
            return True
        try:
            self._executor.submit(lambda: None).result(timeout=timeout)
        except (RuntimeError, DeliveryTimeout):
            return False
        return True

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            if message is _STOP or self._stop_event.is_set():
                break
            try:
                self._handle(message)
            except Exception:
                logger.exception("Clipboard watcher step failed")

    def _handle(self, message) -> None:
        if isinstance(message, _Tick):
            self._tick()
        elif isinstance(message, _Push):
            self._observe(ClipboardSample(message.text, message.received_at), message.app_hint)
        elif isinstance(message, _Start):
            self._begin()
        elif isinstance(message, _Flush):
            message.done.set()

    def _begin(self) -> None:
        mode = self._select_mode()
        if self._stop_event.is_set():
            return

        if mode == ObservationMode.PUSH:
            # Seed before subscribing: any event after this read is a real change.
            sample = self._read_sample()
            try:
                unsubscribe = self._background.on_new(self._on_push)
            except Exception:
                logger.warning("Background subscription failed, falling back to polling", exc_info=True)
                mode = ObservationMode.POLL
            else:
                with self._state_lock:
                    prime(self._state, sample.text if sample else "")
                with self._lock:
                    stale = unsubscribe if self._stop_event.is_set() else None
                    if stale is None:
                        self._unsubscribe = unsubscribe
                        self._mode = mode
                if stale is not None:
                    stale()
                    return
                logger.info("Clipboard watcher subscribed to background push events")
                return

        sample = self._read_sample()
        if sample is not None:
            self._observe(sample, polled=True)
        timer = threading.Thread(target=self._timer_loop, daemon=True, name="extclip-poll")
        with self._lock:
            if self._stop_event.is_set():
                return
            self._timer = timer
            self._mode = mode
        timer.start()
        logger.info("Clipboard watcher polling every %.2fs", self._config.poll_interval)

    def _select_mode(self) -> ObservationMode:
        if self._background is None:
            return ObservationMode.POLL
        try:
            active = self._background.is_active()
        except Exception as exc:
            logger.info("Background watcher unavailable (%s), polling instead", exc)
            return ObservationMode.POLL
        return ObservationMode.PUSH if active else ObservationMode.POLL

    def _timer_loop(self) -> None:
        while not self._stop_event.wait(self._config.poll_interval):
            with self._lock:
                if self._tick_in_flight:
                    continue
                self._tick_in_flight = True
            self._inbox.put(_Tick())

    def _on_push(self, text: str, app_hint: str | None = None) -> None:
        if self._stop_event.is_set():
            return
        self._inbox.put(_Push(text, app_hint, self._clock()))

    def _tick(self) -> None:
        try:
            sample = self._read_sample()
            if sample is not None:
                self._observe(sample, polled=True)
        finally:
            with self._lock:
                self._tick_in_flight = False

    def _read_sample(self) -> ClipboardSample | None:
        # Stamped when the read starts, so overlap with our own writes shows.
        started_at = self._clock()
        try:
            text = self._port.read_text()
        except ClipboardReadError as exc:
            logger.debug("Clipboard read failed, skipping: %s", exc)
            return None
        except Exception:
            logger.warning("Unexpected clipboard read error, skipping", exc_info=True)
            return None
        return ClipboardSample(text or "", started_at)

    def _observe(self, sample: ClipboardSample, app_hint: str | None = None, polled: bool = False) -> Decision:
        with self._state_lock:
            if polled and self._overlaps_self_copy(sample):
                # The next tick reads again.
                logger.debug("Discarding clipboard read that overlapped a self-copy")
                return Decision.ignore(Reason.UNCHANGED)
            decision = evaluate(sample, self._state)
        logger.debug("Clipboard observation: %s (%s)", decision.verdict.value, decision.reason.value)
        if decision.reason in _CHANGE_REASONS:
            self._notify_change()
        if decision.accepted:
            self._submit(AttributedClip(decision.text, app_hint))
        return decision

    def _overlaps_self_copy(self, sample: ClipboardSample) -> bool:
        if sample.observed_at >= self._write_settled_at:
            return False
        guard = self._state.self_copy_guard
        return guard is None or guard.text != sample.text

    def _submit(self, clip: AttributedClip) -> None:
        lookup = None
        try:
            if clip.source_app is None and self._resolver is not None:
                # Resolved at acceptance; delivery can lag behind a slow gateway.
                lookup = self._lookup_executor.submit(self._resolver.resolve)
            self._executor.submit(self._deliver, clip, lookup)
        except RuntimeError:
            logger.debug("Watcher stopped, dropping accepted clip")

    def _notify_change(self) -> None:
        if self._on_clipboard_change is None:
            return
        try:
            self._on_clipboard_change()
        except Exception:
            logger.exception("Clipboard change callback failed")

    def _deliver(self, clip: AttributedClip, lookup: Future | None) -> None:
        app_name = clip.source_app
        if lookup is not None:
            try:
                app_name = lookup.result()
            except Exception:
                logger.exception("Frontmost app lookup failed")

        added = True
        try:
            self._gateway.add_clip(clip.text, app_name)
        except Exception:
            logger.exception("Failed to add clip")
            added = False

        if self._on_new_clip is not None:
            try:
                self._on_new_clip(added)
            except Exception:
                logger.exception("New clip callback failed")


def start_watcher(config: WatcherConfig | None = None, **kwargs) -> ClipboardWatcher:
    """Create and start a watcher; see ClipboardWatcher for keyword arguments."""
    watcher = ClipboardWatcher(config=config, **kwargs)
    watcher.start()
    return watcher


def stop_watcher(watcher: ClipboardWatcher | None) -> None:
    if watcher is not None:
        watcher.stop()
