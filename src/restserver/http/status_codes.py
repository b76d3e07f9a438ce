"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can answer with, and their reason phrases.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK                   - command processed              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request          - body is not a usable command   │
    │        │ 404 Not Found            - unknown command                │
    │        │ 405 Method Not Allowed   - unexpected request type        │
    │        │ 415 Unsupported Media    - unexpected content type        │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Error       - command handler crashed        │
    └────────┴───────────────────────────────────────────────────────────┘

Framing failures never get a status code: a request that cannot be framed
is answered by closing the connection.
=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so codes compare and format as plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200

    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    UNSUPPORTED_MEDIA_TYPE = 415

    INTERNAL_SERVER_ERROR = 500

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line ("HTTP/1.1 200 OK")."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400

    @classmethod
    def from_code(cls, code: int) -> "HTTPStatus":
        """
        Map an integer code onto the enum.

        Unknown codes collapse to 500 so an application error carrying an
        unexpected code still produces a valid status line.
        """
        try:
            return cls(code)
        except ValueError:
            return cls.INTERNAL_SERVER_ERROR


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.UNSUPPORTED_MEDIA_TYPE: "Unsupported Media Type",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}
