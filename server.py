# server.py
"""
Process lifecycle for the webhook bot.

The HTTP server runs in a background thread; the main thread waits for
SIGTERM and then drains in-flight requests before exiting. A listening
socket handed over by go-server-starter (SERVER_STARTER_PORT) is preferred
so the bot can be restarted without dropping connections.
"""
from __future__ import annotations

import logging
import os
import signal
import socket
import sys
import threading
from typing import Optional

import uvicorn

logger = logging.getLogger("puroland.greeting.server")

DEFAULT_PORT = 14000


def inherited_listener() -> Optional[socket.socket]:
    """First socket passed in SERVER_STARTER_PORT ("addr=fd;addr=fd"), if any."""
    spec = os.getenv("SERVER_STARTER_PORT")
    if not spec:
        return None
    first = spec.split(";")[0]
    addr, _, fd = first.rpartition("=")
    if not addr or not fd.isdigit():
        raise ValueError(f"malformed SERVER_STARTER_PORT: {spec!r}")
    return socket.socket(fileno=int(fd))


def acquire_listener(port: int = DEFAULT_PORT) -> socket.socket:
    sock = inherited_listener()
    if sock is not None:
        logger.info("Using inherited listener %s", sock.getsockname())
        return sock
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("0.0.0.0", port))
    sock.listen(socket.SOMAXCONN)
    logger.info("Listening on port %s", port)
    return sock


class WebhookServer:
    def __init__(self, app, sock: socket.socket, shutdown_timeout: Optional[float] = None, log_level: str = "info"):
        self.sock = sock
        config = uvicorn.Config(app, timeout_graceful_shutdown=shutdown_timeout, log_level=log_level.lower())
        self._server = uvicorn.Server(config)
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._error: Optional[BaseException] = None
        self._terminating = False
        self._previous_sigterm = None
        self.state = "created"

    @property
    def started(self) -> bool:
        return self._server.started

    def _serve(self) -> None:
        try:
            # uvicorn leaves signal handling alone outside the main thread
            self._server.run(sockets=[self.sock])
        except BaseException as exc:
            self._error = exc
        finally:
            self._stop.set()

    def _on_sigterm(self, signum, frame) -> None:
        logger.info("Received SIGTERM, shutting down")
        self.request_shutdown()

    def start(self) -> None:
        # must run in the main thread; SIGTERM is caught from here on
        self._previous_sigterm = signal.signal(signal.SIGTERM, self._on_sigterm)
        self._thread = threading.Thread(target=self._serve, name="webhook-server", daemon=True)
        self._thread.start()
        self.state = "serving"

    def request_shutdown(self) -> None:
        self._terminating = True
        self._stop.set()

    def wait_for_termination(self) -> None:
        """Block the main thread until SIGTERM arrives or serving stops."""
        try:
            while not self._stop.wait(0.5):
                pass
        finally:
            if self._previous_sigterm is not None:
                signal.signal(signal.SIGTERM, self._previous_sigterm)
                self._previous_sigterm = None

    def shutdown(self) -> None:
        self.state = "shutting_down"
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join()
        if self._error is not None:
            raise RuntimeError("webhook server failed") from self._error
        if not self._terminating:
            raise RuntimeError("webhook server stopped before SIGTERM")
        logger.info("Shutdown complete")


def _shutdown_timeout() -> Optional[float]:
    value = os.getenv("SHUTDOWN_TIMEOUT", "30")
    if not value or float(value) <= 0:
        return None
    return float(value)


def run() -> None:
    from chatbot import app

    sock = acquire_listener(int(os.getenv("PORT", DEFAULT_PORT)))
    server = WebhookServer(app, sock, shutdown_timeout=_shutdown_timeout(), log_level=os.getenv("LOG_LEVEL", "INFO"))
    server.start()
    server.wait_for_termination()
    server.shutdown()


def main() -> None:
    try:
        run()
    except Exception:
        logger.critical("Webhook server exited with an error", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
