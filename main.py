import asyncio
import logging
import sys
from typing import Optional

import uvicorn
from starlette.types import ASGIApp

from htm.config.routes import ConfigReadError, load_route_table
from htm.config.settings import Settings, parse_args
from htm.core.gateway_router import GatewayRouter
from htm.core.trace import TraceMiddleware
from htm.core.logging_setup import configure_logging
from htm.core.concurrency_limiter import ConcurrencyLimiterMiddleware
from htm.core.admin_router import AdminRouter
from htm.core.routing_table import RouteTable

logger = logging.getLogger("htm")


def build_apps(settings: Settings, route_table: RouteTable) -> tuple[ASGIApp, Optional[ASGIApp]]:
    core_gateway = GatewayRouter(route_table, connect_timeout=settings.connect_timeout)

    gateway_app: ASGIApp = core_gateway
    if settings.max_concurrent > 0:
        gateway_app = ConcurrencyLimiterMiddleware(gateway_app, max_concurrent=settings.max_concurrent)
    gateway_app = TraceMiddleware(gateway_app)

    # Admin gets direct access to the unwrapped GatewayRouter instance
    admin_app = AdminRouter(core_gateway) if settings.admin_port is not None else None
    return gateway_app, admin_app


def _server(app: ASGIApp, host: str, port: int) -> uvicorn.Server:
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        # upstream supplies its own; the peer address must stay the real one
        proxy_headers=False,
        server_header=False,
        date_header=False,
    )
    return uvicorn.Server(config)


async def serve(settings: Settings, gateway_app: ASGIApp, admin_app: Optional[ASGIApp]) -> None:
    servers = [_server(gateway_app, settings.host, settings.port)]
    if admin_app is not None:
        servers.append(_server(admin_app, settings.host, settings.admin_port))

    tasks = [asyncio.ensure_future(s.serve()) for s in servers]
    _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for s in servers:
        s.should_exit = True
    if pending:
        await asyncio.wait(pending)
    for task in tasks:
        task.result()


def main(argv: Optional[list[str]] = None) -> int:
    settings = parse_args(argv)
    configure_logging(settings.log_level)

    try:
        route_table = load_route_table(settings.config_path)
    except ConfigReadError as e:
        logger.error(f"Could not read config: {e}")
        return 1

    gateway_app, admin_app = build_apps(settings, route_table)

    logger.info(f"htm server started on :{settings.port}")
    if admin_app is not None:
        logger.info(f"admin endpoints on :{settings.admin_port}")
    asyncio.run(serve(settings, gateway_app, admin_app))
    return 0


if __name__ == "__main__":
    sys.exit(main())
