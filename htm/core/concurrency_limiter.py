import asyncio
import logging
from starlette.types import ASGIApp, Scope, Receive, Send
from starlette.responses import PlainTextResponse

logger = logging.getLogger("htm.concurrency.limiter")


class ConcurrencyLimiterMiddleware:
    def __init__(self, app: ASGIApp, max_concurrent: int = 100):
        self.app = app
        self.max_concurrent = max_concurrent
        self._in_flight = 0
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # fail fast admission control
        async with self._lock:
            if self._in_flight >= self.max_concurrent:
                logger.warning(f"Shedding request, {self._in_flight} already in flight")
                await PlainTextResponse(
                    "Too many concurrent requests",
                    status_code=503,
                    headers={
                        "X-Concurrency-Limit": str(self.max_concurrent),
                        "X-Concurrency-Remaining": "0",
                    },
                )(scope, receive, send)
                return
            self._in_flight += 1

        try:
            # relayed responses pass through untouched
            await self.app(scope, receive, send)
        finally:
            async with self._lock:
                self._in_flight -= 1
