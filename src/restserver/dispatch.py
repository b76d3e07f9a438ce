"""
=============================================================================
COMMAND DISPATCHER
=============================================================================

Turns one framed request into one JSON payload.

Clients talk to the server with small JSON commands:

    POST /api HTTP/1.1
    Content-Type: application/json
    Content-Length: 52

    {"command": "echo", "userName": "kim", "text": "hi"}

- "command"  selects the handler
- "userName" identifies the caller (there is no separate login step)
- every other key is passed to the handler as an argument

A plain GET (no body) returns the default payload, the current position:

    {"tag": "position", "x": 10, "y": 10}

Anything the dispatcher cannot process raises ApplicationError. The
transport exchange itself succeeded, so the caller still answers it with a
proper HTTP error response.

Handlers are registered with a decorator:

    dispatcher = CommandDispatcher()

    @dispatcher.command("greet")
    def greet(user_name, args):
        return {"message": f"hello {user_name}"}

=============================================================================
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ApplicationError
from .http.framer import Request
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


CommandHandler = Callable[[str, Dict[str, Any]], Any]

BODY_METHODS = ("POST", "PUT")


def default_position() -> Dict[str, Any]:
    """The payload answered to every GET."""
    return {"tag": "position", "x": 10, "y": 10}


class CommandDispatcher:
    """
    Registry of named command handlers.

    dispatch() is called from worker threads; handlers must be thread-safe.
    """

    def __init__(self, default: Optional[Callable[[], Any]] = None):
        """
        Args:
            default: Produces the payload for requests without a body
                     (GET). Defaults to default_position().
        """
        self._commands: Dict[str, CommandHandler] = {}
        self._default = default or default_position

    def command(self, name: str) -> Callable[[CommandHandler], CommandHandler]:
        """Decorator registering a handler under a command name."""
        def decorator(handler: CommandHandler) -> CommandHandler:
            self.register(name, handler)
            return handler
        return decorator

    def register(self, name: str, handler: CommandHandler) -> None:
        if name in self._commands:
            raise ValueError(f"Command already registered: {name}")
        self._commands[name] = handler

    @property
    def commands(self) -> List[str]:
        return sorted(self._commands)

    def dispatch(self, request: Request) -> Tuple[HTTPStatus, Any]:
        """
        Process one complete request.

        Returns:
            (status, JSON-encodable payload)

        Raises:
            ApplicationError: The request type, content type or command
                is not acceptable.
        """
        if request.method == "GET":
            return HTTPStatus.OK, self._default()

        if request.method not in BODY_METHODS:
            raise ApplicationError(
                f"Unsupported request type: {request.method}",
                status_code=HTTPStatus.METHOD_NOT_ALLOWED,
            )

        if request.content_type != "application/json":
            raise ApplicationError(
                f"Unsupported content type: {request.content_type or 'none'}",
                status_code=HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
            )

        message = self._decode_body(request.body)

        name = message.pop("command", None)
        user_name = message.pop("userName", None)
        if not isinstance(name, str) or not name:
            raise ApplicationError("Missing field: command")
        if not isinstance(user_name, str) or not user_name:
            raise ApplicationError("Missing field: userName")

        handler = self._commands.get(name)
        if handler is None:
            raise ApplicationError(
                f"Unknown command: {name}",
                status_code=HTTPStatus.NOT_FOUND,
            )

        logger.debug(f"Dispatching {name!r} for {user_name!r}")
        return HTTPStatus.OK, handler(user_name, message)

    @staticmethod
    def _decode_body(body: bytes) -> Dict[str, Any]:
        try:
            message = json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ApplicationError(f"Invalid JSON body: {e}") from e

        if not isinstance(message, dict):
            raise ApplicationError("JSON body must be an object")
        return message


def create_dispatcher() -> CommandDispatcher:
    """Dispatcher with the built-in commands registered."""
    dispatcher = CommandDispatcher()

    @dispatcher.command("position")
    def position(user_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return default_position()

    @dispatcher.command("echo")
    def echo(user_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return {"userName": user_name, "args": args}

    return dispatcher
