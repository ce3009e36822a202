"""Background clipboard daemon and the push client that subscribes to it.

The daemon runs as a LaunchAgent, watches the clipboard on its own and
publishes each change over a Unix socket as JSON lines:

    -> {"op": "ping"}          <- {"active": true}
    -> {"op": "subscribe"}     <- {"text": "...", "app": "Safari"} ...
"""

import json
import logging
import socket
import socketserver
import threading
from collections.abc import Callable
from pathlib import Path

from extclip.clipboard import ClipboardPort, ClipboardReadError
from extclip.config import BACKGROUND_TIMEOUT, DAEMON_POLL_INTERVAL, SOCKET_PATH
from extclip.frontmost import FrontmostAppResolver

logger = logging.getLogger(__name__)

PushCallback = Callable[[str, str | None], None]


class BackgroundError(Exception):
    pass


def _encode(payload: dict) -> bytes:
    return (json.dumps(payload) + "\n").encode("utf-8")


class BackgroundClient:
    def __init__(self, socket_path: str | Path = SOCKET_PATH, timeout: float = BACKGROUND_TIMEOUT):
        self._socket_path = str(socket_path)
        self._timeout = timeout

    def _connect(self) -> socket.socket:
        if not hasattr(socket, "AF_UNIX"):
            raise BackgroundError("unix sockets are not supported on this platform")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self._timeout)
        try:
            sock.connect(self._socket_path)
        except OSError as exc:
            sock.close()
            raise BackgroundError(f"background daemon not reachable at {self._socket_path}") from exc
        return sock

    def is_active(self) -> bool:
        sock = self._connect()
        with sock, sock.makefile("rb") as stream:
            try:
                sock.sendall(_encode({"op": "ping"}))
                line = stream.readline()
            except OSError as exc:
                raise BackgroundError("background daemon did not answer") from exc
        if not line:
            return False
        try:
            reply = json.loads(line)
        except ValueError as exc:
            raise BackgroundError("malformed reply from background daemon") from exc
        if not isinstance(reply, dict):
            raise BackgroundError("malformed reply from background daemon")
        return bool(reply.get("active"))

    def on_new(self, callback: PushCallback) -> Callable[[], None]:
        """Subscribe to clipboard changes; returns an idempotent unsubscribe."""
        sock = self._connect()
        try:
            sock.sendall(_encode({"op": "subscribe"}))
        except OSError as exc:
            sock.close()
            raise BackgroundError("subscribe request failed") from exc
        sock.settimeout(None)
        stopped = threading.Event()

        def listen() -> None:
            try:
                with sock.makefile("rb") as stream:
                    for line in stream:
                        if stopped.is_set():
                            break
                        self._dispatch(line, callback)
            except (OSError, ValueError):
                if not stopped.is_set():
                    logger.warning("Background subscription dropped", exc_info=True)
                return
            if not stopped.is_set():
                logger.info("Background daemon closed the subscription")

        listener = threading.Thread(target=listen, daemon=True, name="extclip-push")
        listener.start()

        def unsubscribe() -> None:
            if stopped.is_set():
                return
            stopped.set()
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # peer already gone
            sock.close()

        return unsubscribe

    @staticmethod
    def _dispatch(line: bytes, callback: PushCallback) -> None:
        try:
            payload = json.loads(line)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            logger.warning("Ignoring malformed push event")
            return
        text = str(payload.get("text") or "")
        if not text:
            return
        app = payload.get("app")
        app = str(app) if app else None
        try:
            callback(text, app)
        except Exception:
            logger.exception("Push callback failed")


class _DaemonRequestHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        daemon: BackgroundDaemon = self.server.owner
        line = self.rfile.readline()
        if not line:
            return
        try:
            request = json.loads(line)
        except ValueError:
            request = None
        if not isinstance(request, dict):
            logger.warning("Malformed request on daemon socket")
            return

        op = request.get("op")
        if op == "ping":
            self.wfile.write(_encode({"active": daemon.running}))
        elif op == "subscribe":
            daemon.add_subscriber(self.request)
            try:
                # Block until the subscriber hangs up.
                while self.rfile.readline():
                    pass
            finally:
                daemon.remove_subscriber(self.request)
        else:
            logger.warning("Unknown daemon op: %r", op)


class _DaemonServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True


class BackgroundDaemon:
    def __init__(
        self,
        port: ClipboardPort,
        resolver: FrontmostAppResolver | None = None,
        socket_path: str | Path = SOCKET_PATH,
        poll_interval: float = DAEMON_POLL_INTERVAL,
    ):
        self._port = port
        self._resolver = resolver
        self._socket_path = Path(socket_path)
        self._poll_interval = poll_interval
        self._subscribers: list[socket.socket] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._server: _DaemonServer | None = None
        self._threads: list[threading.Thread] = []
        self._last_text = ""
        self.running = False

    def start(self) -> None:
        if self.running:
            return
        self._socket_path.parent.mkdir(parents=True, exist_ok=True)
        if self._socket_path.exists():
            self._socket_path.unlink()

        self._last_text = self._read()
        self._stop_event.clear()
        self._server = _DaemonServer(str(self._socket_path), _DaemonRequestHandler)
        self._server.owner = self
        self.running = True

        self._threads = [
            threading.Thread(target=self._server.serve_forever, daemon=True, name="extclip-daemon-server"),
            threading.Thread(target=self._poll_loop, daemon=True, name="extclip-daemon-poll"),
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Background daemon listening on %s", self._socket_path)

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        self._stop_event.set()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        with self._lock:
            subscribers, self._subscribers = self._subscribers, []
        for sock in subscribers:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already disconnected
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads = []
        if self._socket_path.exists():
            self._socket_path.unlink()
        logger.info("Background daemon stopped")

    def serve_forever(self) -> None:
        self.start()
        try:
            while not self._stop_event.wait(1.0):
                continue
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def add_subscriber(self, sock: socket.socket) -> None:
        with self._lock:
            self._subscribers.append(sock)
        logger.debug("Subscriber connected (%d total)", len(self._subscribers))

    def remove_subscriber(self, sock: socket.socket) -> None:
        with self._lock:
            if sock in self._subscribers:
                self._subscribers.remove(sock)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def check_clipboard(self) -> bool:
        """Publish the clipboard if it changed since the last check."""
        text = self._read()
        if not text or text == self._last_text:
            return False
        self._last_text = text
        app = self._resolver.resolve() if self._resolver else None
        self.broadcast({"text": text, "app": app})
        return True

    def broadcast(self, payload: dict) -> None:
        data = _encode(payload)
        with self._lock:
            subscribers = list(self._subscribers)
        for sock in subscribers:
            try:
                sock.sendall(data)
            except OSError:
                logger.debug("Dropping dead subscriber")
                self.remove_subscriber(sock)

    def _read(self) -> str:
        try:
            return self._port.read_text()
        except ClipboardReadError as exc:
            logger.debug("Daemon clipboard read failed: %s", exc)
            return ""
        except Exception:
            logger.warning("Unexpected daemon clipboard read error", exc_info=True)
            return ""

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self._poll_interval):
            try:
                self.check_clipboard()
            except Exception:
                logger.exception("Error checking clipboard")
