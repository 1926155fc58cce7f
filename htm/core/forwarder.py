import logging
from typing import AsyncIterator, Optional, Protocol

import httpx
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect, Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from .header_rewrite import HeaderRewriter, strip_hop_by_hop
from .trace import trace_id_var

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The upstream could not be reached or broke off before responding."""


class Forwarder(Protocol):
    async def forward(self, request: Request, upstream: httpx.URL) -> Response:
        ...

    async def aclose(self) -> None:
        ...


def _join_path(base: str, path: str) -> str:
    if base.endswith("/") and path.startswith("/"):
        return base + path[1:]
    if not base.endswith("/") and not path.startswith("/"):
        return base + "/" + path
    return base + path


def build_target_url(upstream: httpx.URL, raw_path: bytes, query: bytes) -> httpx.URL:
    """Map an inbound path and query onto ``upstream``.

    The upstream's own path is a prefix of the request path; its query, if
    any, is placed before the request's query.
    """
    base_path, _, base_query = upstream.raw_path.decode("ascii").partition("?")
    path = _join_path(base_path, raw_path.decode("latin-1"))
    req_query = query.decode("latin-1")
    if base_query and req_query:
        merged_query = f"{base_query}&{req_query}"
    else:
        merged_query = base_query or req_query

    url = f"{upstream.scheme}://{upstream.netloc.decode('ascii')}{path}"
    return httpx.URL(f"{url}?{merged_query}" if merged_query else url)


class HttpxForwarder:
    """Streams a request to a single upstream and the response back, using httpx."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = 10.0,
        header_rewriter: Optional[HeaderRewriter] = None,
    ):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout),
            follow_redirects=False,
        )
        self.header_rewriter = header_rewriter or HeaderRewriter()

    async def forward(self, request: Request, upstream: httpx.URL) -> Response:
        scope = request.scope
        raw_path = (scope.get("raw_path") or scope["path"].encode("utf-8")).partition(b"?")[0]
        target_url = build_target_url(upstream, raw_path, scope.get("query_string", b""))

        headers = self.header_rewriter.rewrite(scope.get("headers", []), scope, trace_id_var.get())
        content = self._request_body(request)

        upstream_request = self.client.build_request(
            request.method, target_url, headers=headers, content=content
        )
        try:
            upstream_response = await self.client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{type(e).__name__}: {e}") from e
        except ClientDisconnect:
            logger.info(f"Client went away while uploading to {target_url}")
            return PlainTextResponse("Client Closed Request", status_code=499)

        logger.debug(f"Upstream {target_url} answered {upstream_response.status_code}")

        response = StreamingResponse(
            self._relay(upstream_response, target_url),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose),
        )
        response.raw_headers = strip_hop_by_hop(upstream_response.headers.raw)
        return response

    def _request_body(self, request: Request) -> Optional[AsyncIterator[bytes]]:
        if "content-length" not in request.headers and "transfer-encoding" not in request.headers:
            return None
        return request.stream()

    async def _relay(self, upstream_response: httpx.Response, target_url: httpx.URL) -> AsyncIterator[bytes]:
        # raw bytes: content-encoding is the caller's business
        try:
            async for chunk in upstream_response.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            logger.error(f"Upstream {target_url} broke off mid-response: {e}")
        finally:
            await upstream_response.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()
