"""HTTP endpoint serving the current snapshot to scrapers."""

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Tuple

from ..utils.exposition import CONTENT_TYPE, render_snapshot
from .snapshot_store import SnapshotStore


class MetricsServer:
    """
    Threaded HTTP server rendering ``store.current()`` on every scrape.

    Requests only read the published snapshot; they never trigger or wait
    for a collection cycle.
    """

    def __init__(
        self,
        store: SnapshotStore,
        host: str = "0.0.0.0",
        port: int = 10000,
        metrics_path: str = "/",
        logger: logging.Logger = None
    ):
        self.store = store
        self.host = host
        self.port = port
        self.metrics_path = metrics_path
        self.logger = (logger or logging.getLogger(__name__)).getChild("MetricsServer")
        self.httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); differs from the configured port when 0 was requested."""
        if self.httpd is None:
            return self.host, self.port
        host, port = self.httpd.server_address[:2]
        return host, port

    def start(self):
        """Bind and serve in a background thread."""
        if self.httpd is not None:
            self.logger.warning("Metrics server is already running")
            return

        self.httpd = ThreadingHTTPServer((self.host, self.port), self._make_handler())
        self.httpd.daemon_threads = True
        self._thread = threading.Thread(
            target=self.httpd.serve_forever,
            name="metrics-server",
            daemon=True
        )
        self._thread.start()

        host, port = self.address
        self.logger.info(f"Serving metrics on {host}:{port}{self.metrics_path}")

    def stop(self):
        """Shut the server down and release the socket."""
        if self.httpd is None:
            return
        self.httpd.shutdown()
        self.httpd.server_close()
        if self._thread:
            self._thread.join(timeout=5)
        self.httpd = None
        self._thread = None

    def _make_handler(self):
        """Create a request handler with access to this server instance."""
        server = self

        class RequestHandler(BaseHTTPRequestHandler):
            def do_GET(self):
                path = self.path.split('?', 1)[0]
                if path == server.metrics_path:
                    self._handle_metrics()
                elif path == '/healthz':
                    self._handle_healthz()
                else:
                    self._handle_not_found()

            def _send(self, body: bytes, status_code=200, content_type=CONTENT_TYPE):
                self.send_response(status_code)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.send_header("Cache-Control", "no-store")
                self.end_headers()
                self.wfile.write(body)

            def _handle_metrics(self):
                snapshot = server.store.current()
                self._send(render_snapshot(snapshot).encode('utf-8'))

            def _handle_healthz(self):
                self._send(b"ok\n", content_type="text/plain")

            def _handle_not_found(self):
                self._send(b"not found\n", status_code=404, content_type="text/plain")

            def log_message(self, fmt, *args):
                server.logger.debug(f"{self.address_string()} - {fmt % args}")

        return RequestHandler
