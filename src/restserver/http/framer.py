"""
=============================================================================
INCREMENTAL HTTP REQUEST FRAMER
=============================================================================

Turns an arbitrarily fragmented TCP byte stream into complete HTTP requests.

=============================================================================
WHY INCREMENTAL?
=============================================================================

TCP does not preserve message boundaries. The same request

    POST /cmd HTTP/1.1\r\n
    Content-Length: 11\r\n
    \r\n
    hello world

can arrive as one recv(), as one recv() per byte, or split anywhere in
between. A worker only ever reads what is already waiting on the socket,
so the parser has to be able to stop in the middle of ANY line and resume
later with the next chunk, without re-parsing what it already consumed.

The framer therefore keeps all of its progress in fields, not in local
variables of a loop:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        FRAMER STATE MACHINE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   AWAITING_REQUEST_LINE ──CRLF──► AWAITING_HEADER_LINE ◄──┐         │
    │            │                            │   │             │         │
    │            │                            │   └──"k: v"CRLF─┘         │
    │            │                         empty line                     │
    │            │                            │                           │
    │            │               ┌────────────┴────────────┐              │
    │            │        Content-Length > 0        Content-Length == 0   │
    │            │               │                         │              │
    │            │               ▼                         │              │
    │            │         AWAITING_BODY ──N bytes──► COMPLETE ◄──┘       │
    │            │                                                         │
    │            └──bad request line / bad header / early EOF──► MALFORMED│
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

HEADER PHASE: bytes accumulate in a line buffer until it ends in CRLF.
    - The first line is the request line: exactly three space-separated
      tokens (METHOD TARGET VERSION).
    - Every other non-empty line is "Key: Value", split on the first colon,
      value trimmed. Keys are stored lower-cased.
    - The empty line ends the headers.

BODY PHASE: exactly Content-Length raw bytes are copied into the body.
    No line scanning happens here - a JSON body may contain "\r\n".

=============================================================================
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from ..errors import ProtocolError


CRLF = b"\r\n"

# Content-Length is 1*DIGIT. int() alone would also accept "+5", " 5" and "5_0".
_CONTENT_LENGTH_PATTERN = re.compile(r"^[0-9]+$")


class FramerState(Enum):
    """Where the framer is in the current request."""
    AWAITING_REQUEST_LINE = "awaiting_request_line"
    AWAITING_HEADER_LINE = "awaiting_header_line"
    AWAITING_BODY = "awaiting_body"
    COMPLETE = "complete"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class RequestLine:
    """The first line of a request: METHOD SP TARGET SP VERSION."""
    method: str
    target: str
    version: str

    def __str__(self) -> str:
        return f"{self.method} {self.target} {self.version}"


@dataclass(frozen=True)
class Request:
    """
    A completely framed request, handed to the command dispatcher.

    Attributes:
        request_line: Method, target and protocol version.
        headers: Header map with lower-cased keys.
        body: Exactly Content-Length bytes (empty when absent).
    """
    request_line: RequestLine
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def method(self) -> str:
        return self.request_line.method

    @property
    def target(self) -> str:
        return self.request_line.target

    @property
    def version(self) -> str:
        return self.request_line.version

    @property
    def content_type(self) -> Optional[str]:
        """
        Content-Type without parameters.

        "application/json; charset=utf-8" → "application/json"
        """
        value = self.headers.get("content-type", "")
        return value.split(";")[0].strip().lower() or None

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestFramer:
    """
    Per-connection incremental request parser.

    Usage:

        framer = RequestFramer()
        consumed = framer.feed(chunk)
        if framer.is_complete:
            request = framer.to_request()
            leftover = chunk[consumed:]   # start of a pipelined request
            framer.reset()

    feed() never consumes past the end of the current request, so bytes
    belonging to the next request stay with the caller.
    """

    def __init__(
        self,
        max_line_size: int = 8192,
        max_body_size: int = 8192,
        read_size: int = 8192,
    ):
        """
        Args:
            max_line_size: Longest header line accepted (including CRLF).
            max_body_size: Largest Content-Length accepted.
            read_size: How much to ask for per read in the header phase.
        """
        self.max_line_size = max_line_size
        self.max_body_size = max_body_size
        self.read_size = read_size
        self.reset()

    def reset(self) -> None:
        """Forget the current request and wait for the next request line."""
        self._state = FramerState.AWAITING_REQUEST_LINE
        self._line = bytearray()
        self._body = bytearray()
        self._headers: Dict[str, str] = {}
        self._request_line: Optional[RequestLine] = None
        self._declared_body_length = 0
        self._headers_done = False

    # =========================================================================
    # STATE ACCESSORS
    # =========================================================================

    @property
    def state(self) -> FramerState:
        return self._state

    @property
    def is_complete(self) -> bool:
        return self._state == FramerState.COMPLETE

    @property
    def is_idle(self) -> bool:
        """True when not a single byte of a new request has been consumed."""
        return self._state == FramerState.AWAITING_REQUEST_LINE and not self._line

    @property
    def headers_done(self) -> bool:
        return self._headers_done

    @property
    def declared_body_length(self) -> int:
        return self._declared_body_length

    @property
    def parse_offset(self) -> int:
        """
        Bytes written into the current segment.

        Length of the partial header line in the header phase, number of
        body bytes received in the body phase.
        """
        if self._headers_done:
            return len(self._body)
        return len(self._line)

    @property
    def request_line(self) -> Optional[RequestLine]:
        return self._request_line

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    @property
    def bytes_wanted(self) -> int:
        """
        Size of the next read.

        In the body phase this is exactly the number of bytes still missing,
        so a read never pulls in the start of a pipelined request. In the
        header phase the end of the headers is unknown; ask for read_size.
        """
        if self._state == FramerState.AWAITING_BODY:
            return self._declared_body_length - len(self._body)
        if self._state == FramerState.COMPLETE:
            return 0
        return self.read_size

    # =========================================================================
    # FEEDING BYTES
    # =========================================================================

    def feed(self, chunk: bytes) -> int:
        """
        Advance the state machine with newly received bytes.

        Args:
            chunk: Bytes received from the socket.

        Returns:
            Number of bytes consumed. Less than len(chunk) only when the
            request completed before the end of the chunk.

        Raises:
            ProtocolError: The bytes cannot be framed as a request. The
                framer stays MALFORMED until reset().
        """
        if self._state == FramerState.MALFORMED:
            raise ProtocolError("Framer is in a failed state")

        chunk = bytes(chunk)
        pos = 0

        while pos < len(chunk) and self._state != FramerState.COMPLETE:
            if self._state == FramerState.AWAITING_BODY:
                pos = self._feed_body(chunk, pos)
            else:
                pos = self._feed_header(chunk, pos)

        return pos

    def _feed_header(self, chunk: bytes, pos: int) -> int:
        """Consume bytes up to and including the next LF, or all of them."""
        newline = chunk.find(b"\n", pos)
        end = len(chunk) if newline == -1 else newline + 1

        self._line += chunk[pos:end]

        if len(self._line) > self.max_line_size:
            self._fail(f"Header line exceeds {self.max_line_size} bytes")

        # A bare LF is just another byte of the line; only CRLF ends it.
        if self._line.endswith(CRLF):
            line = bytes(self._line[:-2])
            self._line.clear()
            self._complete_line(line)

        return end

    def _feed_body(self, chunk: bytes, pos: int) -> int:
        missing = self._declared_body_length - len(self._body)
        taken = chunk[pos:pos + missing]
        self._body += taken

        if len(self._body) == self._declared_body_length:
            self._state = FramerState.COMPLETE

        return pos + len(taken)

    # =========================================================================
    # LINE HANDLING
    # =========================================================================

    def _complete_line(self, line: bytes) -> None:
        # Header bytes are ISO-8859-1 on the wire; this decode cannot fail.
        text = line.decode("iso-8859-1")

        if self._state == FramerState.AWAITING_REQUEST_LINE:
            if not text:
                # RFC 7230 3.5: ignore empty lines before the request line
                return
            self._request_line = self._parse_request_line(text)
            self._state = FramerState.AWAITING_HEADER_LINE
            return

        if not text:
            self._headers_done = True
            if self._declared_body_length == 0:
                self._state = FramerState.COMPLETE
            else:
                self._state = FramerState.AWAITING_BODY
            return

        self._parse_header_line(text)

    def _parse_request_line(self, text: str) -> RequestLine:
        """
        Split "GET /path HTTP/1.1" into its three parts.

        Anything other than exactly three non-empty tokens is malformed.
        """
        parts = text.split(" ")
        if len(parts) != 3 or not all(parts):
            self._fail(f"Invalid request line: {text!r}")

        method, target, version = parts
        return RequestLine(method=method, target=target, version=version)

    def _parse_header_line(self, text: str) -> None:
        name, sep, value = text.partition(":")
        name = name.strip().lower()
        if not sep or not name:
            self._fail(f"Invalid header line: {text!r}")

        value = value.strip()

        if name == "content-length":
            self._set_content_length(value)

        # Repeated headers fold into one comma-separated value (RFC 7230 3.2.2)
        if name in self._headers:
            self._headers[name] += ", " + value
        else:
            self._headers[name] = value

    def _set_content_length(self, value: str) -> None:
        if not _CONTENT_LENGTH_PATTERN.match(value):
            self._fail(f"Invalid Content-Length: {value!r}")

        length = int(value)

        if "content-length" in self._headers and length != self._declared_body_length:
            self._fail("Conflicting Content-Length headers")

        if length > self.max_body_size:
            self._fail(f"Body of {length} bytes exceeds {self.max_body_size}")

        self._declared_body_length = length

    # =========================================================================
    # TERMINATION
    # =========================================================================

    def eof(self) -> None:
        """
        The peer closed its side of the connection.

        Between requests this is an orderly close and returns normally.
        Anywhere inside a request it raises ProtocolError.
        """
        if self.is_idle or self.is_complete:
            return
        self._fail(f"Peer closed connection in state {self._state.value}")

    def to_request(self) -> Request:
        """Snapshot the framed request. Only valid once COMPLETE."""
        if not self.is_complete:
            raise RuntimeError(f"Request is not complete (state: {self._state.value})")

        return Request(
            request_line=self._request_line,
            headers=dict(self._headers),
            body=bytes(self._body),
        )

    def _fail(self, message: str) -> None:
        self._state = FramerState.MALFORMED
        raise ProtocolError(message)
