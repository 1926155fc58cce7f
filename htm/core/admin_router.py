from starlette.types import Scope, Receive, Send
from starlette.responses import PlainTextResponse, JSONResponse, Response
from starlette.websockets import WebSocketClose
from htm.core.metrics import render_prometheus_metrics
from htm.core.gateway_router import GatewayRouter


class AdminRouter:
    """Introspection endpoints, served on their own port so no proxied path is shadowed."""

    def __init__(self, router: GatewayRouter) -> None:
        self.router = router

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if scope["type"] != "http":
            await WebSocketClose()(scope, receive, send)
            return

        path = scope.get("path", "")
        if path == "/__health":
            await self.health(scope, receive, send)
        elif path == "/__routes":
            await self.routes(scope, receive, send)
        elif path == "/__metrics":
            await self.metrics(scope, receive, send)
        else:
            await PlainTextResponse("Not Found", status_code=404)(scope, receive, send)

    async def health(self, scope: Scope, receive: Receive, send: Send) -> None:
        await PlainTextResponse("OK")(scope, receive, send)

    async def routes(self, scope: Scope, receive: Receive, send: Send) -> None:
        await JSONResponse(self.router.route_table.as_dict())(scope, receive, send)

    async def metrics(self, scope: Scope, receive: Receive, send: Send) -> None:
        data, content_type = render_prometheus_metrics()
        await Response(content=data, media_type=content_type)(scope, receive, send)

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        # the gateway app owns upstream resources; nothing to open or close here
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
