"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can hit falls into one of three buckets, and each
bucket has exactly one way of being handled:

    ┌──────────────────┬──────────────────────────┬──────────────────────────┐
    │ Exception        │ Raised when              │ What the server does     │
    ├──────────────────┼──────────────────────────┼──────────────────────────┤
    │ TransportError   │ recv/send/accept/poll    │ close + deregister the   │
    │                  │ fails at the OS level    │ connection (accept and   │
    │                  │                          │ poll failures: log and   │
    │                  │                          │ keep looping)            │
    ├──────────────────┼──────────────────────────┼──────────────────────────┤
    │ ProtocolError    │ malformed request line,  │ close + deregister, no   │
    │                  │ bad header, peer closed  │ response (the peer broke │
    │                  │ mid-message              │ the contract)            │
    ├──────────────────┼──────────────────────────┼──────────────────────────┤
    │ ApplicationError │ the command dispatcher   │ send a JSON error        │
    │                  │ rejects the request      │ response, keep the       │
    │                  │                          │ connection               │
    └──────────────────┴──────────────────────────┴──────────────────────────┘

Nothing is dropped silently: a failure either closes the connection or is
answered with an explicit response.
=============================================================================
"""


class ServerError(Exception):
    """Base class for all errors raised by the server."""


class TransportError(ServerError):
    """A socket operation failed (read, write, accept, readiness wait)."""


class ProtocolError(ServerError):
    """
    The peer sent bytes that cannot be framed as an HTTP request.

    No response is sent for a protocol error; the connection is closed.
    """


class ApplicationError(ServerError):
    """
    The request was framed correctly but cannot be processed.

    Carries the HTTP status code of the error response:

        400 Bad Request            - body is not a JSON object, missing field
        404 Not Found              - unknown command
        405 Method Not Allowed     - unexpected request type
        415 Unsupported Media Type - unexpected content type
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code
