import logging
import os
from typing import Iterable, Union

import httpx

from htm.core.routing_table import RouteTable

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/htm/htm.conf"


class ConfigReadError(OSError):
    """The route configuration could not be opened or read."""

    def __init__(self, source: str, cause: Exception):
        super().__init__(f"could not read {source}: {cause}")
        self.source = source
        self.cause = cause


def _parse_upstream(token: str) -> Union[httpx.URL, None]:
    try:
        url = httpx.URL(token)
    except (httpx.InvalidURL, ValueError):
        return None
    if not url.scheme or not url.host:
        return None
    return url


def parse_route_lines(lines: Iterable[str], source: str = "<config>") -> RouteTable:
    """Build a route table from ``<upstream-url> <hostname>... [# comment]`` lines.

    Malformed lines are skipped with a warning. Only a failure of ``lines``
    itself (an I/O or decoding error while iterating) aborts the load.
    """
    routes: dict[str, httpx.URL] = {}
    line_num = 0
    try:
        for raw_line in lines:
            line_num += 1
            line = raw_line.strip()

            if not line or line.startswith("#"):
                continue

            fields = line.split()
            if len(fields) < 2:
                logger.warning(f"Ignoring invalid line {source}:{line_num} (insufficient fields)")
                continue

            upstream = _parse_upstream(fields[0])
            if upstream is None:
                logger.warning(f"Ignoring invalid line {source}:{line_num} (invalid url)")
                continue

            for hostname in fields[1:]:
                if hostname.startswith("#"):
                    break
                if hostname in routes:
                    logger.warning(
                        f"Hostname '{hostname}' was assigned multiple ports, using {upstream}"
                    )
                routes[hostname] = upstream
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigReadError(source, e) from e

    return RouteTable(routes)


def load_route_table(path: Union[str, os.PathLike] = DEFAULT_CONFIG_PATH) -> RouteTable:
    source = os.fspath(path)
    try:
        f = open(source, encoding="utf-8")
    except OSError as e:
        raise ConfigReadError(source, e) from e

    with f:
        table = parse_route_lines(f, source=source)

    logger.info(f"Loaded {len(table)} route(s) from {source}")
    return table
