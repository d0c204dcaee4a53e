#!/usr/bin/env python3
"""
HTTP server for Prometheus scrapes

Every GET /metrics runs one scrape cycle on the request's worker thread and
returns the resulting exposition, gzip-compressed when the client accepts it.
"""

import gzip
import logging
from io import BytesIO
from http.server import HTTPServer, BaseHTTPRequestHandler
from socketserver import ThreadingMixIn
from typing import Tuple

from prometheus_client import CONTENT_TYPE_LATEST

from .collector import NodeMetricsCollector

logger = logging.getLogger(__name__)

INDEX_PAGE = b"""<!DOCTYPE html>
<html>
<head><title>Bitcoin Node Exporter</title></head>
<body>
<h1>Bitcoin Node Exporter</h1>
<p>Prometheus exporter for Bitcoin Core node metrics.</p>
<p><a href="/metrics">View Metrics</a></p>
</body>
</html>"""


class ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    """HTTP Server with threading support for concurrent requests"""
    daemon_threads = True
    allow_reuse_address = True


def compress(data: bytes, compress_level: int = 6) -> bytes:
    buffer = BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode='wb', compresslevel=compress_level) as f:
        f.write(data)
    return buffer.getvalue()


def create_server(collector: NodeMetricsCollector, address: Tuple[str, int]) -> ThreadedHTTPServer:
    """Build (but do not start) the exporter HTTP server bound to address"""

    class MetricsHandler(BaseHTTPRequestHandler):
        """Serves /metrics, /health and an index page"""

        def log_message(self, format, *args):
            """Suppress default logging"""
            pass

        def _send(self, status: int, body: bytes, headers: dict):
            self.send_response(status)
            for name, value in headers.items():
                self.send_header(name, value)
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            path = self.path.split('?', 1)[0]
            try:
                if path == '/metrics':
                    self._serve_metrics()
                elif path == '/health':
                    self._send(200, b'ok', {'Content-Type': 'text/plain; charset=utf-8'})
                elif path == '/':
                    self._send(200, INDEX_PAGE, {'Content-Type': 'text/html'})
                else:
                    self.send_error(404, "Not Found")
            except (BrokenPipeError, ConnectionResetError):
                # Client disconnected, ignore silently
                pass

        def _serve_metrics(self):
            try:
                data = collector.scrape()
            except Exception as e:
                logger.error(f"Error serving metrics: {e}", exc_info=True)
                self.send_error(500, "Internal Server Error")
                return

            headers = {'Content-Type': CONTENT_TYPE_LATEST}
            if 'gzip' in self.headers.get('Accept-Encoding', ''):
                data = compress(data)
                headers['Content-Encoding'] = 'gzip'
            self._send(200, data, headers)

    return ThreadedHTTPServer(address, MetricsHandler)
