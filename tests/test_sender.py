"""Tests for perch.server.sender — Response to ASGI messages."""

from typing import Any

from perch.http.response import Response, json_response
from perch.server.sender import send_response


async def _send(response: Response) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        messages.append(message)

    await send_response(response, send)
    return messages


class TestSendResponse:
    async def test_json_response(self) -> None:
        start, body = await _send(json_response({"ok": True}, status=201).with_header("X-Id", "7"))
        assert start["type"] == "http.response.start"
        assert start["status"] == 201
        assert start["headers"] == [
            (b"content-type", b"application/json"),
            (b"x-id", b"7"),
            (b"content-length", b"11"),
        ]
        assert body == {"type": "http.response.body", "body": b'{"ok":true}', "more_body": False}

    async def test_no_content_drops_body(self) -> None:
        start, body = await _send(Response("ignored", status=204))
        assert (b"content-length", b"0") in start["headers"]
        assert body["body"] == b""

    async def test_utf8_length(self) -> None:
        start, body = await _send(Response("é"))
        assert (b"content-length", b"2") in start["headers"]
        assert body["body"] == "é".encode()
