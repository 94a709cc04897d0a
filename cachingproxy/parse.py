"""Parsing and re-serialisation of proxied HTTP GET requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)

MAX_REQUEST_LEN = 65535
MIN_REQUEST_LEN = 4
ROOT_PATH = "/"


class ParseError(ValueError):
    """Raised when a request buffer cannot be parsed."""


@dataclass(frozen=True)
class ParsedHeader:
    """A single ``key: value`` header line."""

    key: str
    value: str

    @property
    def line_len(self) -> int:
        """Length of the header when written as ``key: value\\r\\n``."""
        return len(self.key) + len(self.value) + 4


def _strtok(text: str, delims: str) -> tuple[Optional[str], str]:
    """Split off the next token, skipping leading delimiters.

    Returns the token (or None when only delimiters remain) and the text
    after the single delimiter that ended the token.
    """
    start = 0
    while start < len(text) and text[start] in delims:
        start += 1
    if start == len(text):
        return None, ""
    end = start
    while end < len(text) and text[end] not in delims:
        end += 1
    return text[start:end], text[end + 1:]


def _fail(message: str) -> ParseError:
    logger.debug(message)
    return ParseError(message)


@dataclass
class ParsedRequest:
    """An absolute-URI GET request together with its headers."""

    method: str
    protocol: str
    host: str
    path: str
    version: str
    port: Optional[str] = None
    _headers: dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def parse(cls, data: Union[bytes, str]) -> "ParsedRequest":
        """Parse a request buffer that ends with an empty line."""
        raw = data.encode("latin-1") if isinstance(data, str) else bytes(data)
        if not MIN_REQUEST_LEN <= len(raw) <= MAX_REQUEST_LEN:
            raise _fail(f"invalid buffer length {len(raw)}")

        text = raw.decode("latin-1").split("\0", 1)[0]
        if "\r\n\r\n" not in text:
            raise _fail("invalid request line, no end of header")

        line_end = text.index("\r\n")
        request_line = text[:line_end]

        method, rest = _strtok(request_line, " ")
        if method is None:
            raise _fail("invalid request line, no whitespace")
        if method != "GET":
            raise _fail(f"invalid request line, method not 'GET': {method}")

        full_addr, version = _strtok(rest, " ")
        if full_addr is None:
            raise _fail("invalid request line, no full address")
        if not version.startswith("HTTP/"):
            raise _fail(f"invalid request line, unsupported version {version}")

        protocol, after_protocol = _strtok(full_addr, ":/")
        if protocol is None:
            raise _fail("invalid request line, missing protocol")
        abs_uri_len = len(full_addr[len(protocol) + 3:])

        host_port, after_host = _strtok(after_protocol, "/")
        if host_port is None:
            raise _fail("invalid request line, missing host")
        if len(host_port) == abs_uri_len:
            raise _fail("invalid request line, missing absolute path")

        path_token, _ = _strtok(after_host, " ")
        if path_token is None:
            path = ROOT_PATH
        elif path_token.startswith(ROOT_PATH):
            raise _fail(
                "invalid request line, path cannot begin with two slash characters"
            )
        else:
            path = ROOT_PATH + path_token

        host, after_name = _strtok(host_port, ":")
        if host is None:
            raise _fail("invalid request line, missing host")
        port, _ = _strtok(after_name, "/")

        request = cls(
            method=method,
            protocol=protocol,
            host=host,
            path=path,
            version=version,
            port=port,
        )
        for key, value in _iter_header_lines(text, line_end + 2):
            request.set_header(key, value)
        return request

    @property
    def headers(self) -> list[ParsedHeader]:
        """The headers in the order they will be written."""
        return [ParsedHeader(key, value) for key, value in self._headers.items()]

    def set_header(self, key: str, value: str) -> None:
        """Set a header, replacing and moving to the end any existing one."""
        self._headers.pop(key, None)
        self._headers[key] = value

    def get_header(self, key: str) -> Optional[ParsedHeader]:
        """Return the header with this exact key, or None."""
        if key not in self._headers:
            return None
        return ParsedHeader(key, self._headers[key])

    def remove_header(self, key: str) -> None:
        """Remove a header; raise KeyError if it is not present."""
        try:
            del self._headers[key]
        except KeyError:
            raise KeyError(key) from None

    def request_line(self) -> str:
        """The request line, terminated by CRLF."""
        port = f":{self.port}" if self.port is not None else ""
        return (
            f"{self.method} {self.protocol}://{self.host}{port}{self.path} "
            f"{self.version}\r\n"
        )

    def unparse_headers(self) -> str:
        """All headers followed by the terminating empty line."""
        return "".join(f"{h.key}: {h.value}\r\n" for h in self.headers) + "\r\n"

    def unparse(self) -> str:
        """The whole request: request line, headers and terminating CRLF."""
        return self.request_line() + self.unparse_headers()

    def headers_len(self) -> int:
        """Length of the unparsed headers including the final CRLF."""
        return sum(h.line_len for h in self.headers) + 2

    def total_len(self) -> int:
        """Length of the whole unparsed request."""
        return len(self.request_line()) + self.headers_len()


def _iter_header_lines(text: str, pos: int) -> Iterator[tuple[str, str]]:
    """Yield (key, value) pairs from the header block starting at ``pos``."""
    while pos < len(text) and not text.startswith("\r\n", pos):
        colon = text.find(":", pos)
        if colon < 0:
            raise _fail("no colon found in header")
        value_start = colon + 2
        value_end = text.find("\r\n", value_start)
        if value_end < 0:
            raise _fail("unterminated header value")
        yield text[pos:colon], text[value_start:value_end]

        line_end = text.find("\r\n", pos)
        if line_end < 0 or len(text) - line_end < 2:
            return
        pos = line_end + 2