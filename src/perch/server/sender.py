"""Write a perch ``Response`` to the ASGI ``send`` channel.

Perch responses are always complete JSON (or handler-built) bodies, so a
response is exactly two messages: ``http.response.start`` then one
``http.response.body``.
"""

from perch._internal.asgi import Send
from perch.http.response import Response

# Statuses that must not carry a body (informational, 204, 304)
_BODYLESS = frozenset({204, 304})


def encode_headers(response: Response, content_length: int) -> list[tuple[bytes, bytes]]:
    """The ASGI header list: content type, response headers, then length."""
    encoded = [(b"content-type", response.content_type.encode("latin-1"))]
    encoded += [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers
    ]
    encoded.append((b"content-length", b"%d" % content_length))
    return encoded


async def send_response(response: Response, send: Send) -> None:
    """Send *response*, dropping the body where the status forbids one."""
    bodyless = response.status < 200 or response.status in _BODYLESS
    body = b"" if bodyless else response.body_bytes
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": encode_headers(response, len(body)),
        }
    )
    await send({"type": "http.response.body", "body": body, "more_body": False})
