import threading
import logging

from .mock_engine import MockEntry, StaticResponse, CustomResponse

logger = logging.getLogger("MockRegistry")


class MockRegistry:
    """Registered mocks, unmatched requests and the dispatch between them.

    A single lock serializes dispatch so the depletion check and the call
    count increment of a request happen as one step.
    """

    def __init__(self):
        self._entries = []
        self._unmatched = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def entries(self):
        with self._lock:
            return list(self._entries)

    def unmatched(self):
        with self._lock:
            return dict(self._unmatched)

    def add(self, entry):
        with self._lock:
            self._entries.append(entry)
        return entry

    def mock(self, path, body, *callbacks):
        return self.add(MockEntry(path, StaticResponse(body, callbacks)))

    def mock_func(self, path, responder):
        return self.add(MockEntry(path, CustomResponse(responder)))

    def dispatch(self, request, writer):
        """Pick the entry for request and let it write the response.

        Returns the selected entry, or None when the request was unmatched.
        """
        method, path = request.method, request.path
        with self._lock:
            candidates = []
            depleted = []
            for entry in self._entries:
                if not entry.matches(method, path):
                    continue
                if entry.is_depleted():
                    depleted.append(entry)
                    continue
                candidates.append(entry)

            # Filtered entries first, registration order kept inside each group
            candidates.sort(key=lambda e: not e.has_filter)

            selected = None
            try:
                for entry in candidates:
                    if entry.check_filter(request):
                        selected = entry
                        break

                if selected is None:
                    if depleted:
                        logger.warning(
                            "No more mock responses available for %s %s; all have reached their call limit",
                            method, path,
                        )
                    key = f"{method} {path}"
                    self._unmatched[key] = self._unmatched.get(key, 0) + 1
                    writer.write_header(404)
                    writer.write(f"{path} not found")
                    return None

                selected.serve(request, writer)
            except Exception as e:
                logger.exception("Mock for %s %s raised", method, path)
                writer.status = 500
                writer.body.clear()
                writer.write(f"mock for {method} {path} raised {type(e).__name__}: {e}")
            return selected

    def assert_call_count(self, tb, method, path, expected):
        """Check that all mocks for method and path were called `expected` times in total"""
        with self._lock:
            count = 0
            for entry in self._entries:
                if entry.matches(method, path):
                    count += entry.mark_asserted()
        if count == 0:
            tb.error(f"mocked but never called path: {path} method: {method}")
            return
        if count != expected:
            tb.error(f"url: {method} {path} expected to be called {expected} times. It was called {count} times")

    def assert_call_count_asserted(self, tb):
        """Report every mock that no assert_call_count covered"""
        for entry in self.entries():
            if entry.asserted:
                continue
            tb.error(
                f"url: {entry.path} is mocked but never asserted. It was called {entry.call_count} times\n"
                f'create an assertion with: .assert_call_count(t, "{entry.method}", "{entry.path}", {entry.call_count})'
            )

    def assert_no_missing_mocks(self, tb):
        """Report every method and path that was requested without a matching mock"""
        for key, count in self.unmatched().items():
            method, path = key.split(" ", 1)
            if method == "GET":
                hint = f'.mock("{path}", "response")'
            else:
                hint = f'.mock("{path}", "response").set_method("{method}")'
            tb.error(
                f"url: {key} is called but not mocked. It was called {count} times\n"
                f"create a mock with: {hint}"
            )

    def assert_mocks_called(self, tb):
        """Report every mock that was neither called nor asserted"""
        for entry in self.entries():
            if entry.call_count == 0 and not entry.asserted:
                tb.error(f"{entry.method} {entry.path} mocked but never called.")
