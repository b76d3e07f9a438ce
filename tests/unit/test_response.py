"""
Unit tests for HTTP response serialization.
"""

import json

import pytest

from restserver.http.response import HTTPResponse, error_response, json_response
from restserver.http.status_codes import HTTPStatus
from restserver.dispatch import default_position


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_exact_wire_format(self):
        response = HTTPResponse(body=b"hello world")

        assert response.to_bytes() == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Length: 11\r\n"
            b"Content-Type: application/json\r\n"
            b"\r\n"
            b"hello world"
        )

    def test_empty_body(self):
        result = HTTPResponse().to_bytes()

        assert b"Content-Length: 0\r\n" in result
        assert result.endswith(b"\r\n\r\n")


class TestJSONResponse:

    def test_default_position_payload(self):
        """The GET payload is sent verbatim with its real byte length."""
        response = json_response(default_position())
        body = b'{"tag": "position", "x": 10, "y": 10}'

        assert response.body == body
        assert len(body) == 37
        assert response.to_bytes() == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Length: 37\r\n"
            b"Content-Type: application/json\r\n"
            b"\r\n" + body
        )

    def test_content_length_counts_encoded_bytes(self):
        response = json_response({"name": "Zoë"})

        assert f"Content-Length: {len(response.body)}\r\n".encode() in response.to_bytes()
        assert json.loads(response.body) == {"name": "Zoë"}

    def test_status_passed_through(self):
        response = json_response({"ok": True}, HTTPStatus.BAD_REQUEST)
        assert response.to_bytes().startswith(b"HTTP/1.1 400 Bad Request\r\n")


class TestErrorResponse:

    def test_error_body(self):
        response = error_response(HTTPStatus.NOT_FOUND, "Unknown command: fly")

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "Unknown command: fly"}


class TestHTTPStatus:

    @pytest.mark.parametrize("status,phrase", [
        (HTTPStatus.OK, "OK"),
        (HTTPStatus.BAD_REQUEST, "Bad Request"),
        (HTTPStatus.METHOD_NOT_ALLOWED, "Method Not Allowed"),
        (HTTPStatus.UNSUPPORTED_MEDIA_TYPE, "Unsupported Media Type"),
        (HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error"),
    ])
    def test_phrases(self, status, phrase):
        assert status.phrase == phrase

    def test_is_error(self):
        assert not HTTPStatus.OK.is_error
        assert HTTPStatus.BAD_REQUEST.is_error

    def test_from_code(self):
        assert HTTPStatus.from_code(404) is HTTPStatus.NOT_FOUND
        assert HTTPStatus.from_code(418) is HTTPStatus.INTERNAL_SERVER_ERROR
