from collections.abc import Mapping
from types import MappingProxyType
from typing import Iterator, Optional

import httpx


def strip_port(host: str) -> str:
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    return host.split(":", 1)[0]


class RouteTable(Mapping):
    """Read-only mapping of hostname suffix -> upstream URL.

    Built once at startup and shared by every request handler, so nothing
    here takes a lock. When several suffixes match a hostname the longest
    one wins; suffixes are unique, so at most one candidate has that length.
    """

    def __init__(self, routes: Optional[Mapping[str, httpx.URL]] = None):
        self._routes = MappingProxyType(dict(routes or {}))
        self._by_length = sorted(self._routes.items(), key=lambda item: len(item[0]), reverse=True)

    def __getitem__(self, hostname: str) -> httpx.URL:
        return self._routes[hostname]

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def __repr__(self) -> str:
        return f"RouteTable({self.as_dict()!r})"

    def match(self, hostname: str) -> Optional[tuple[str, httpx.URL]]:
        for suffix, upstream in self._by_length:
            if hostname.endswith(suffix):
                return suffix, upstream
        return None

    def as_dict(self) -> dict[str, str]:
        return {suffix: str(upstream) for suffix, upstream in self._routes.items()}
