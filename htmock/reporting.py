import threading
import logging

logger = logging.getLogger("Reporting")


class FailureCollector:
    """Test sink that records failures without stopping the test.

    Any object with an ``error(message)`` method can be passed where a sink is
    expected; this one keeps the messages so a test (or the pytest plugin at
    teardown) can decide what to do with them.
    """

    def __init__(self, name=None):
        self.name = name
        self.failures = []
        self._lock = threading.Lock()

    def error(self, message):
        logger.debug("assertion failure: %s", message)
        with self._lock:
            self.failures.append(message)

    @property
    def failed(self):
        return bool(self.failures)

    def clear(self):
        with self._lock:
            self.failures.clear()

    def report(self):
        header = f"{len(self.failures)} mock assertion failure(s)"
        if self.name:
            header += f" in {self.name}"
        return "\n".join([header + ":"] + [f"  - {msg}" for msg in self.failures])
