"""A threaded HTTP proxy that caches GET responses."""

from __future__ import annotations

import logging
import re
import socket
import sys
import threading
from datetime import datetime, timezone
from typing import Optional

from cachingproxy.cache import LRUCache
from cachingproxy.parse import ParsedRequest, ParseError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8081
MAX_CLIENTS = 10
MAX_BYTES = 4096
SERVER_NAME = "cachingproxy"

# status: (reason, extra body text, Content-Type before Connection)
_STATUSES = {
    400: ("Bad Request", "", False),
    403: ("Forbidden", "<br>Permission Denied", True),
    404: ("Not Found", "", True),
    500: ("Internal Server Error", "", False),
    501: ("Not Implemented", "", False),
    505: ("HTTP Version Not Supported", "", False),
}


def error_response(status_code: int, now: Optional[datetime] = None) -> bytes:
    """Build the full HTTP error response for ``status_code``."""
    try:
        reason, extra, type_first = _STATUSES[status_code]
    except KeyError:
        raise ValueError(f"unsupported status code {status_code}") from None
    if now is None:
        now = datetime.now(timezone.utc)
    title = f"{status_code} {reason}"
    body = (
        f"<HTML><HEAD><TITLE>{title}</TITLE></HEAD>\n"
        f"<BODY><H1>{title}</H1>{extra}\n</BODY></HTML>"
    )
    content_type = "Content-Type: text/html\r\n"
    connection = "Connection: keep-alive\r\n"
    middle = content_type + connection if type_first else connection + content_type
    head = (
        f"HTTP/1.1 {title}\r\n"
        f"Content-Length: {len(body)}\r\n"
        f"{middle}"
        f"Date: {now.strftime('%a, %d %b %Y %H:%M:%S')} GMT\r\n"
        f"Server: {SERVER_NAME}\r\n\r\n"
    )
    return (head + body).encode("latin-1")


def check_http_version(version: str) -> bool:
    """True for HTTP/1.0 and HTTP/1.1 requests."""
    return version.startswith(("HTTP/1.1", "HTTP/1.0"))


def connect_remote(host: str, port: int) -> socket.socket:
    """Open a TCP connection to the origin server."""
    try:
        return socket.create_connection((host, port))
    except OSError:
        logger.error("error connecting to %s:%s", host, port)
        raise


def _atoi(text: str) -> int:
    match = re.match(r"\s*[+-]?\d+", text)
    return int(match.group()) if match else 0


class ProxyServer:
    """Accepts client connections and serves each in its own thread."""

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        cache: Optional[LRUCache] = None,
        max_clients: int = MAX_CLIENTS,
    ) -> None:
        self.port = port
        self.cache = cache if cache is not None else LRUCache()
        self.max_clients = max_clients
        self._slots = threading.BoundedSemaphore(max_clients)

    def handle_client(self, conn: socket.socket) -> None:
        """Serve one client request, from the cache or the origin server."""
        with self._slots:
            try:
                self._serve(conn)
            finally:
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
                conn.close()

    def _serve(self, conn: socket.socket) -> None:
        buffer = b""
        last = 0
        while True:
            chunk = conn.recv(MAX_BYTES - len(buffer)) if len(buffer) < MAX_BYTES else b""
            last = len(chunk)
            buffer += chunk
            if not chunk or b"\r\n\r\n" in buffer:
                break

        key = buffer.decode("latin-1").split("\0", 1)[0]
        cached = self.cache.find(key)
        if cached is not None:
            conn.sendall(cached.data)
            logger.info("data retrieved from cache")
            return
        if last == 0:
            logger.info("client is disconnected")
            return

        try:
            request = ParsedRequest.parse(buffer)
        except ParseError:
            logger.info("parsing failed")
            return
        if not check_http_version(request.version):
            logger.info("only GET over HTTP/1.0 and HTTP/1.1 is supported")
            return
        try:
            self.forward_request(conn, request, key)
        except OSError:
            try:
                conn.sendall(error_response(500))
            except OSError:
                pass

    def forward_request(
        self, conn: socket.socket, request: ParsedRequest, key: str
    ) -> None:
        """Relay the request to the origin, stream the reply back and cache it."""
        if request.get_header("Host") is None:
            request.set_header("Host", request.host)
        outgoing = f"GET {request.path} {request.version}\r\n" + request.unparse_headers()
        port = _atoi(request.port) if request.port is not None else 80

        response = bytearray()
        with connect_remote(request.host, port) as remote:
            remote.sendall(outgoing.encode("latin-1"))
            while True:
                chunk = remote.recv(MAX_BYTES - 1)
                if not chunk:
                    break
                try:
                    conn.sendall(chunk)
                except OSError:
                    logger.error("error in sending data to the client")
                    break
                response += chunk
        self.cache.add(bytes(response), key)

    def serve_forever(self) -> None:
        """Listen on the configured port and handle clients until interrupted."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind(("", self.port))
            logger.info("binding on port %d", self.port)
            listener.listen(self.max_clients)
            while True:
                conn, (address, client_port) = listener.accept()
                logger.info("client connected from IP %s, port %d", address, client_port)
                threading.Thread(
                    target=self.handle_client, args=(conn,), daemon=True
                ).start()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the proxy on the port given as the only argument."""
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("Please enter one argument: <port>")
        return 1
    port = _atoi(args[0])
    logging.basicConfig(level=logging.INFO)
    print(f"Starting proxy server at port :{port}")
    try:
        ProxyServer(port).serve_forever()
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"Port is not available: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())