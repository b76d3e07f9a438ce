"""
=============================================================================
HTTP RESPONSE
=============================================================================

Every response this server writes has the same fixed shape:

    HTTP/1.1 200 OK\r\n
    Content-Length: 37\r\n                 ← exact byte length of the body
    Content-Type: application/json\r\n
    \r\n
    {"tag": "position", "x": 10, "y": 10}

Error responses use the same template with a different status line and an
{"error": "..."} body, so a client only ever has to parse one format.

Content-Length is computed from the ENCODED body, never from the str
length: a non-ASCII character takes more than one byte on the wire.
=============================================================================
"""

from dataclasses import dataclass
from typing import Any
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    A response ready to be serialized and sent.

    Attributes:
        status: HTTP status code.
        body: Response body bytes.
        content_type: Value of the Content-Type header.
    """

    status: HTTPStatus = HTTPStatus.OK
    body: bytes = b""
    content_type: str = "application/json"
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Get the HTTP status line, e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def to_bytes(self) -> bytes:
        """
        Serialize the response to bytes for sending over the socket.

        Returns:
            Complete HTTP response: status line, Content-Length,
            Content-Type, blank line, body.
        """
        head = (
            f"{self.status_line}\r\n"
            f"Content-Length: {len(self.body)}\r\n"
            f"Content-Type: {self.content_type}\r\n"
            "\r\n"
        )
        return head.encode("ascii") + self.body


def json_response(payload: Any, status: HTTPStatus = HTTPStatus.OK) -> HTTPResponse:
    """
    Build a JSON response.

    Uses json.dumps() defaults, so {"tag": "position", "x": 10, "y": 10}
    is encoded with ", " and ": " separators.
    """
    return HTTPResponse(status=status, body=json.dumps(payload).encode("utf-8"))


def error_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """Build a JSON error response: {"error": message}."""
    return json_response({"error": message}, status=status)
