import threading

DEFAULT_HEADERS = {"content-type": "application/json"}


class StaticResponse:
    """Fixed body, optionally driven by one status callback per call"""

    def __init__(self, body, callbacks=()):
        self.body = body
        self.callbacks = list(callbacks)

    @property
    def capacity(self):
        # Each callback serves exactly one call
        return len(self.callbacks) if self.callbacks else None

    def produce(self, entry, request, writer):
        status = 0
        if self.callbacks:
            status = self.callbacks[entry.call_count - 1](request)
        if status:
            writer.write_header(status)
        writer.write(self.body)


class CustomResponse:
    """Hand the whole response over to a responder(writer, request)"""

    capacity = None

    def __init__(self, responder):
        self.responder = responder

    def produce(self, entry, request, writer):
        self.responder(writer, request)


class MockEntry:
    """One registered expectation: what to match, how to answer, how often"""

    def __init__(self, path, strategy, method="GET"):
        self.path = path
        self.method = method
        self.strategy = strategy
        self.headers = dict(DEFAULT_HEADERS)
        self.filter_func = None
        self.max_calls = None
        self.call_count = 0
        self.asserted = False
        self._lock = threading.Lock()

    def __repr__(self):
        return f"<MockEntry {self.method} {self.path} calls={self.call_count}>"

    def set_header(self, key, value):
        with self._lock:
            self.headers[key.lower()] = value
        return self

    def set_method(self, method):
        with self._lock:
            self.method = method
        return self

    def filter(self, predicate):
        """Only requests for which predicate(request) is true match this entry"""
        with self._lock:
            self.filter_func = predicate
        return self

    def once(self):
        return self.times(1)

    def times(self, n):
        """Limit this entry to n matches; 0 leaves it unbounded"""
        with self._lock:
            self.max_calls = n or None
        return self

    @property
    def has_filter(self):
        return self.filter_func is not None

    def matches(self, method, path):
        return self.path == path and self.method == method

    def check_filter(self, request):
        if self.filter_func is None:
            return True
        return bool(self.filter_func(request))

    def is_depleted(self):
        with self._lock:
            if self.max_calls is not None and self.call_count >= self.max_calls:
                return True
            capacity = self.strategy.capacity
            if capacity is None:
                return False
            return self.call_count >= capacity

    def serve(self, request, writer):
        """Apply headers, count the call and let the strategy write the response.

        Must be called with the registry lock held.
        """
        with self._lock:
            for k, v in self.headers.items():
                writer.set_header(k, v)
            self.call_count += 1
        self.strategy.produce(self, request, writer)

    def mark_asserted(self):
        with self._lock:
            self.asserted = True
            return self.call_count

    def assert_call_count(self, tb, expected):
        """Mark this entry as asserted and report if it was not called `expected` times"""
        count = self.mark_asserted()
        if count == 0:
            tb.error(f"url: {self.path} is mocked but never called. It was called {count} times")
            return
        if count != expected:
            tb.error(f"url: {self.path} expected to be called {expected} times. It was called {count} times")
