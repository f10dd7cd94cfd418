import asyncio
import socket

import pytest

from htmock.wire import BadRequest, MockRequest, ResponseWriter, read_request


def parse(raw, timeout=1.0):
    async def _parse():
        reader = asyncio.StreamReader()
        reader.feed_data(raw)
        reader.feed_eof()
        return await read_request(reader, timeout)

    return asyncio.run(_parse())


def test_read_request_with_body():
    raw = (
        b"POST /items?id=7&tag=a&tag=b HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Content-Type: application/json\r\n"
        b"Content-Length: 13\r\n"
        b"\r\n"
        b'{"name": "x"}'
    )
    request = parse(raw)
    assert request.method == "POST"
    assert request.path == "/items"
    assert request.query == "id=7&tag=a&tag=b"
    assert request.args == {"id": "7", "tag": "a"}
    assert request.header("content-type") == "application/json"
    assert request.json() == {"name": "x"}


def test_read_chunked_body():
    raw = (
        b"PUT /up HTTP/1.1\r\n"
        b"Transfer-Encoding: chunked\r\n"
        b"\r\n"
        b"5\r\nhello\r\n"
        b"6\r\n world\r\n"
        b"0\r\n\r\n"
    )
    assert parse(raw).text() == "hello world"


def test_empty_connection_is_none():
    assert parse(b"") is None


@pytest.mark.parametrize("raw", [
    b"GARBAGE\r\n\r\n",
    b"GET /x HTTP/1.1\r\nno-colon-here\r\n\r\n",
    b"GET /x HTTP/1.1\r\nContent-Length: many\r\n\r\n",
    b"GET /x HTTP/1.1\r\nHost",
])
def test_malformed_requests(raw):
    with pytest.raises(BadRequest):
        parse(raw)


def test_path_keeps_trailing_slash_and_drops_query():
    request = MockRequest("GET", "/a/b/?q=1")
    assert request.path == "/a/b/"
    assert request.arg("q") == "1"
    assert request.arg("missing", "d") == "d"


def test_response_serialization():
    writer = ResponseWriter()
    writer.set_header("content-type", "application/json")
    writer.write_header(201)
    writer.write_header(500)
    writer.write('{"ok": true}')

    raw = writer.to_bytes()
    head, body = raw.split(b"\r\n\r\n", 1)
    lines = head.decode().split("\r\n")
    assert lines[0] == "HTTP/1.1 201 Created"
    assert "content-type: application/json" in lines
    assert "Content-Length: 12" in lines
    assert body == b'{"ok": true}'


def test_server_answers_400_to_garbage(htmock):
    host, port = htmock.host, htmock.port
    with socket.create_connection((host, port), timeout=5) as sock:
        sock.sendall(b"NONSENSE\r\n\r\n")
        data = b""
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            data += chunk
    assert data.startswith(b"HTTP/1.1 400 Bad Request")
    assert data.endswith(b"bad request")
    assert htmock.registry.unmatched() == {}


def test_response_header_set_twice_is_sent_once():
    writer = ResponseWriter()
    writer.set_header("content-type", "application/json")
    writer.set_header("Content-Type", "text/plain")
    head = writer.to_bytes().split(b"\r\n\r\n", 1)[0].decode()
    assert head.lower().count("content-type") == 1
    assert "content-type: text/plain" in head.split("\r\n")


def test_non_latin1_header_value_is_replaced():
    writer = ResponseWriter()
    writer.set_header("X-Name", "€uro")
    writer.write("body")
    head, body = writer.to_bytes().split(b"\r\n\r\n", 1)
    assert b"x-name: ?uro" in head.split(b"\r\n")
    assert body == b"body"
