"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

The wire-level half of the server:

    framer.py        bytes ──► Request      (read side)
    response.py      payload ──► bytes      (write side)
    status_codes.py  HTTPStatus enum

Request framing:
- Request line terminated by CRLF
- Header lines "Key: Value" terminated by CRLF
- Empty line ends the headers
- Body length specified by Content-Length header (0 when absent)

=============================================================================
"""

from .framer import FramerState, Request, RequestFramer, RequestLine
from .response import HTTPResponse, json_response, error_response
from .status_codes import HTTPStatus

__all__ = [
    # Request framing
    "RequestFramer",
    "FramerState",
    "Request",
    "RequestLine",

    # Response building
    "HTTPResponse",
    "json_response",
    "error_response",

    # Status codes
    "HTTPStatus",
]
