"""Static HTTP serving of the destination tree."""
from __future__ import annotations

import functools
import logging
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1880


class _QuietHandler(SimpleHTTPRequestHandler):
    extensions_map = {
        **SimpleHTTPRequestHandler.extensions_map,
        ".m3u8": "application/vnd.apple.mpegurl",
        ".ts": "video/mp2t",
    }

    def log_message(self, format: str, *args) -> None:  # noqa: A002 - signature from base class
        logger.debug("%s - %s", self.address_string(), format % args)


def serve_directory(root: Path, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> ThreadingHTTPServer:
    """Start serving ``root`` on a daemon thread and return the server.

    Call ``shutdown()`` and ``server_close()`` on the result to stop it.
    """

    handler = functools.partial(_QuietHandler, directory=str(root))
    httpd = ThreadingHTTPServer((host, port), handler)
    thread = threading.Thread(target=httpd.serve_forever, name="hlswatch-http", daemon=True)
    thread.start()
    bound_host, bound_port = httpd.server_address[:2]
    logger.info("Serving %s on http://%s:%s/", root, bound_host, bound_port)
    return httpd
