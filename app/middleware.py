"""
Per-request diagnostics.

Two counters are kept in context variables and reported as response
headers: SQL statements (counted by an engine event) and entity-store
calls.  The second is the interesting one for this service: every store
call is its own transaction and its own suspension point, so it is the
number of places a concurrent request could interleave with this one.
"""
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)
store_ops_var: ContextVar[int] = ContextVar("store_ops", default=0)

# Header name -> counter, in the order the headers are emitted.
_COUNTER_HEADERS: tuple[tuple[bytes, ContextVar[int]], ...] = (
    (b"x-query-count", query_count_var),
    (b"x-store-ops", store_ops_var),
)


def _bump(var: ContextVar[int]) -> None:
    var.set(var.get() + 1)


def install_query_counter(engine) -> None:
    """
    Count every SQL statement *engine* executes into ``query_count_var``.

    Call once per engine: the production engine in ``app.database`` and the
    test engine in ``tests/conftest.py``.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        _bump(query_count_var)


def increment_store_ops() -> None:
    """Count one entity-store call for the current request."""
    _bump(store_ops_var)


class TimingMiddleware:
    """
    Pure ASGI middleware adding ``X-Response-Time-Ms``, ``X-Query-Count``
    and ``X-Store-Ops`` to every HTTP response.

    ``BaseHTTPMiddleware`` would run the endpoint in a child task whose
    ``ContextVar`` writes are invisible here, so the ASGI interface is used
    directly.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        for _, var in _COUNTER_HEADERS:
            var.set(0)
        start = time.perf_counter()

        async def send_with_diagnostics(message: Message) -> None:
            if message["type"] == "http.response.start":
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(elapsed_ms).encode()))
                headers.extend((name, str(var.get()).encode()) for name, var in _COUNTER_HEADERS)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_diagnostics)
