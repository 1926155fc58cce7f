import asyncio
import time
import logging
from typing import Callable, Optional

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import Scope, Receive, Send
from starlette.websockets import WebSocketClose

from htm.core.metrics import REQUEST_COUNT, REQUEST_DURATION, ACTIVE_REQUESTS, UPSTREAM_ERRORS, UNMATCHED_ROUTE
from .forwarder import Forwarder, HttpxForwarder, UpstreamError
from .routing_table import RouteTable, strip_port

logger = logging.getLogger(__name__)


class GatewayRouter:
    """ASGI app that picks an upstream by Host header and relays the exchange."""

    def __init__(
        self,
        route_table: RouteTable,
        forwarder: Optional[Forwarder] = None,
        connect_timeout: float = 10.0,
    ):
        self.route_table = route_table
        self.forwarder = forwarder or HttpxForwarder(connect_timeout=connect_timeout)

        self.cleanup_callbacks: list[Callable] = []
        self.add_cleanup_callback(self.forwarder.aclose)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        if scope["type"] != "http":
            await WebSocketClose()(scope, receive, send)
            return

        await self._handle_http(scope, receive, send)

    async def _handle_http(self, scope: Scope, receive: Receive, send: Send):
        method = scope["method"]
        hostname = Headers(scope=scope).get("host", "")

        # keys may carry a port; only fall back to the bare host when the full value misses
        matched = self.route_table.match(hostname)
        if matched is None and strip_port(hostname) != hostname:
            hostname = strip_port(hostname)
            matched = self.route_table.match(hostname)
        if matched is None:
            REQUEST_COUNT.labels(method=method, route=UNMATCHED_ROUTE, status="502").inc()
            logger.warning(f"failed to proxy request: {hostname}")
            await PlainTextResponse("Bad Gateway", status_code=502)(scope, receive, send)
            return

        route, upstream = matched
        logger.info(f"proxying {hostname} to {upstream}")

        request = Request(scope, receive)
        ACTIVE_REQUESTS.inc()
        start = time.time()
        try:
            response = await self.forwarder.forward(request, upstream)
        except UpstreamError as e:
            UPSTREAM_ERRORS.labels(route=route).inc()
            REQUEST_COUNT.labels(method=method, route=route, status="502").inc()
            logger.error(f"Upstream failure for {hostname} via {upstream}: {e}")
            await PlainTextResponse("Bad Gateway", status_code=502)(scope, receive, send)
            return
        finally:
            ACTIVE_REQUESTS.dec()
            REQUEST_DURATION.labels(route=route).observe(time.time() - start)

        REQUEST_COUNT.labels(method=method, route=route, status=str(response.status_code)).inc()
        await response(scope, receive, send)

    def add_cleanup_callback(self, cb: Callable) -> None:
        self.cleanup_callbacks.append(cb)

    async def _handle_lifespan(self, scope: Scope, receive: Receive, send: Send):
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                for cb in self.cleanup_callbacks:
                    result = cb()
                    if asyncio.iscoroutine(result): await result
                logger.info("[htm] Shutdown complete. All upstream connections closed.")
                await send({"type": "lifespan.shutdown.complete"})
                return
