import asyncio
import threading
import logging

from .registry import MockRegistry
from .wire import MAX_HEADER_BYTES, BadRequest, ResponseWriter, read_request

# Setup Logging
logger = logging.getLogger("MockServer")


class HtmockError(Exception):
    pass


class ServerStartError(HtmockError):
    pass


class MockServer:
    """Local HTTP server answering from a registry of mocks.

    The asyncio loop runs in a daemon thread so tests can keep using blocking
    clients; registration and assertions are plain method calls from the
    test's own thread.
    """

    def __init__(self, host='127.0.0.1', port=0, read_timeout=10.0,
                 start_timeout=5.0, registry=None, autostart=True):
        self.host = host
        self.port = port
        self.read_timeout = read_timeout
        self.start_timeout = start_timeout
        self.registry = registry if registry is not None else MockRegistry()
        self.server = None
        self.running = False
        self.log_queue = None  # queue.Queue, set by tests that want the traffic
        self._loop = None
        self._thread = None
        self._ready = threading.Event()
        self._start_error = None
        if autostart:
            self.start()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def log(self, message):
        logger.info(message)
        if self.log_queue is not None:
            self.log_queue.put(message)

    def start(self):
        if self.running:
            return self
        self._ready.clear()
        self._start_error = None
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name="htmock-server", daemon=True)
        self._thread.start()

        if not self._ready.wait(self.start_timeout):
            self._stop_loop()
            raise ServerStartError(f"mock server did not start within {self.start_timeout}s")
        if self._start_error is not None:
            self._stop_loop()
            raise ServerStartError(f"mock server failed to listen on {self.host}:{self.port}") from self._start_error

        self.running = True
        self.log(f"Mock server listening on {self.url()}")
        return self

    def _run_loop(self):
        asyncio.set_event_loop(self._loop)
        try:
            self.server = self._loop.run_until_complete(
                asyncio.start_server(self.handle_client, self.host, self.port, limit=MAX_HEADER_BYTES)
            )
            self.port = self.server.sockets[0].getsockname()[1]
        except OSError as e:
            self._start_error = e
            self._loop.close()
            self._ready.set()
            return
        self._ready.set()
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(self._shutdown())
            self._loop.close()

    async def _shutdown(self):
        self.server.close()
        try:
            await asyncio.wait_for(self.server.wait_closed(), self.read_timeout)
        except asyncio.TimeoutError:
            logger.warning("Connections still open after %ss, closing anyway", self.read_timeout)

    def _stop_loop(self):
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=self.start_timeout + self.read_timeout)
        self._thread = None

    def close(self):
        if not self.running:
            return
        self.running = False
        self._stop_loop()
        self.log(f"Mock server on {self.host}:{self.port} stopped")

    def url(self):
        return f"http://{self.host}:{self.port}"

    async def handle_client(self, reader, writer):
        try:
            try:
                request = await read_request(reader, self.read_timeout)
            except BadRequest as e:
                self.log(f"Bad request: {e}")
                response = ResponseWriter()
                response.write_header(400)
                response.write("bad request")
                await self.send_response(writer, response)
                return
            except asyncio.TimeoutError:
                self.log("Timed out waiting for request")
                return

            if request is None:
                return

            response = ResponseWriter()
            # Worker thread; the registry lock linearizes concurrent requests
            entry = await asyncio.get_running_loop().run_in_executor(
                None, self.registry.dispatch, request, response
            )
            if entry is None:
                self.log(f"[UNMATCHED] {request.method} {request.target} -> {response.status}")
            else:
                self.log(f"[MOCK] {request.method} {request.target} -> {response.status}")
            await self.send_response(writer, response)
        except Exception as e:
            logger.exception("Error handling client")
            self.log(f"Error handling client: {e}")
        finally:
            writer.close()

    async def send_response(self, writer, response):
        try:
            writer.write(response.to_bytes())
            await writer.drain()
        except (ConnectionError, OSError) as e:
            # Client went away; the next request is unaffected
            logger.warning("Failed writing response: %s", e)

    # Registration and assertions, delegated to the registry

    def mock(self, path, body, *callbacks):
        """Register body for GET path.

        With callbacks, each call consumes the next one (its return value is
        the status code, 0 keeps 200) and the mock stops matching once all
        have been used. Headers default to content-type: application/json.
        """
        return self.registry.mock(path, body, *callbacks)

    def mock_func(self, path, responder):
        """Register responder(writer, request) for GET path"""
        return self.registry.mock_func(path, responder)

    def assert_call_count(self, tb, method, path, expected):
        self.registry.assert_call_count(tb, method, path, expected)

    def assert_call_count_asserted(self, tb):
        self.registry.assert_call_count_asserted(tb)

    def assert_no_missing_mocks(self, tb):
        self.registry.assert_no_missing_mocks(tb)

    def assert_mocks_called(self, tb):
        self.registry.assert_mocks_called(tb)

    def assert_all(self, tb):
        self.assert_no_missing_mocks(tb)
        self.assert_mocks_called(tb)


def new(host='127.0.0.1', port=0, **kwargs):
    """Start a mock server on an ephemeral local port"""
    return MockServer(host=host, port=port, **kwargs)
