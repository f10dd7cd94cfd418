from .mock_engine import MockEntry, StaticResponse, CustomResponse
from .mock_server import MockServer, HtmockError, ServerStartError, new
from .registry import MockRegistry
from .reporting import FailureCollector
from .wire import MockRequest, ResponseWriter

__all__ = [
    "CustomResponse",
    "FailureCollector",
    "HtmockError",
    "MockEntry",
    "MockRegistry",
    "MockRequest",
    "MockServer",
    "ResponseWriter",
    "ServerStartError",
    "StaticResponse",
    "new",
]
