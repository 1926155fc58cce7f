from typing import Iterable, Optional
from starlette.types import Scope

RawHeaders = list[tuple[bytes, bytes]]

# RFC 9110 hop-by-hop headers, plus the non-standard proxy-connection
HOP_BY_HOP_HEADERS = {
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"proxy-connection",
    b"te",
    b"trailer",
    b"trailers",
    b"transfer-encoding",
    b"upgrade",
}


def strip_hop_by_hop(headers: Iterable[tuple[bytes, bytes]]) -> RawHeaders:
    """Drop hop-by-hop headers and any header listed in ``Connection``.

    Names are lowercased; order and duplicates are kept.
    """
    headers = [(k.lower(), v) for k, v in headers]
    drop = set(HOP_BY_HOP_HEADERS)
    for k, v in headers:
        if k == b"connection":
            drop.update(token.strip().lower() for token in v.split(b",") if token.strip())
    return [(k, v) for k, v in headers if k not in drop]


class HeaderRewriter:
    def rewrite(self, headers: RawHeaders, scope: Scope, trace_id: Optional[str] = None) -> RawHeaders:
        """Prepare inbound request headers for the upstream hop.

        ``host`` is dropped so the client derives it from the upstream URL;
        the original value travels in ``x-forwarded-host``.
        """
        out = [(k, v) for k, v in strip_hop_by_hop(headers) if k != b"host"]
        names = {k for k, _ in out}
        original = {k.lower(): v for k, v in headers}

        client = scope.get("client")
        if client:
            prior = [v for k, v in out if k == b"x-forwarded-for"]
            out = [(k, v) for k, v in out if k != b"x-forwarded-for"]
            chain = b", ".join(prior + [client[0].encode("latin-1")])
            out.append((b"x-forwarded-for", chain))

        if b"x-forwarded-host" not in names and b"host" in original:
            out.append((b"x-forwarded-host", original[b"host"]))
        if b"x-forwarded-proto" not in names:
            out.append((b"x-forwarded-proto", scope.get("scheme", "http").encode("latin-1")))

        if trace_id:
            out = [(k, v) for k, v in out if k != b"x-trace-id"]
            out.append((b"x-trace-id", trace_id.encode("latin-1")))

        return out
