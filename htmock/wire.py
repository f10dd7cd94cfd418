import asyncio
import json
import logging
from http import HTTPStatus
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger("Wire")

MAX_HEADER_BYTES = 64 * 1024


class BadRequest(Exception):
    pass


class MockRequest:
    """An incoming request as seen by filters, callbacks and responders"""

    def __init__(self, method, target, headers=None, body=b""):
        parts = urlsplit(target)
        self.method = method
        self.target = target
        self.path = parts.path
        self.query = parts.query
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.body = body
        self._args = None

    def __repr__(self):
        return f"<MockRequest {self.method} {self.target}>"

    @property
    def args(self):
        if self._args is None:
            self._args = {k: v[0] for k, v in parse_qs(self.query, keep_blank_values=True).items()}
        return self._args

    def arg(self, name, default=None):
        return self.args.get(name, default)

    def header(self, name, default=None):
        return self.headers.get(name.lower(), default)

    def text(self):
        return self.body.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.body or b"null")


class ResponseWriter:
    """Collects status, headers and body until the server flushes them"""

    def __init__(self):
        self.status = 200
        self.headers = {}
        self.body = bytearray()
        self._status_written = False

    def set_header(self, key, value):
        # Header names are case-insensitive, a later set replaces the earlier one
        self.headers[key.lower()] = str(value)

    def write_header(self, status):
        if self._status_written:
            logger.warning("Status already set to %s, ignoring %s", self.status, status)
            return
        self.status = int(status)
        self._status_written = True

    def write(self, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.body.extend(data)
        return len(data)

    def to_bytes(self):
        try:
            reason = HTTPStatus(self.status).phrase
        except ValueError:
            reason = ""
        lines = [f"HTTP/1.1 {self.status} {reason}".rstrip()]
        for k, v in self.headers.items():
            if k in ("content-length", "connection"):
                continue
            lines.append(f"{k}: {v}")
        lines.append(f"Content-Length: {len(self.body)}")
        lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1", errors="replace") + bytes(self.body)


async def read_request(reader, timeout):
    """Read one HTTP/1.1 request from the stream, None if the client sent nothing"""
    try:
        head = await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise BadRequest("incomplete request head")
    except asyncio.LimitOverrunError:
        raise BadRequest("request head too large")

    decoded = head.decode("latin-1")
    lines = decoded.split("\r\n")
    parts = lines[0].split()
    if len(parts) != 3 or not parts[2].startswith("HTTP/"):
        raise BadRequest(f"malformed request line: {lines[0]!r}")
    method, target, _ = parts

    headers = {}
    for line in lines[1:]:
        if not line:
            continue
        if ":" not in line:
            raise BadRequest(f"malformed header line: {line!r}")
        k, v = line.split(":", 1)
        headers[k.strip()] = v.strip()

    body = b""
    lowered = {k.lower(): v for k, v in headers.items()}
    length = lowered.get("content-length")
    if "chunked" in lowered.get("transfer-encoding", "").lower():
        body = await asyncio.wait_for(read_chunked(reader), timeout)
    elif length is not None:
        try:
            size = int(length)
        except ValueError:
            raise BadRequest(f"invalid content-length: {length!r}")
        if size > 0:
            body = await asyncio.wait_for(reader.readexactly(size), timeout)

    return MockRequest(method, target, headers, body)


async def read_chunked(reader):
    chunks = []
    while True:
        size_line = await reader.readuntil(b"\r\n")
        try:
            size = int(size_line.split(b";", 1)[0].strip(), 16)
        except ValueError:
            raise BadRequest(f"invalid chunk size: {size_line!r}")
        if size == 0:
            # Skip trailers up to the terminating blank line
            while await reader.readuntil(b"\r\n") != b"\r\n":
                pass
            return b"".join(chunks)
        chunks.append(await reader.readexactly(size))
        await reader.readexactly(2)
