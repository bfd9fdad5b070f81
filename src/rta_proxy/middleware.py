"""
Request audit middleware.

Writes a ``request received`` audit record for every HTTP request before it is
routed, including requests later rejected by authorization. The body is
buffered once and replayed to the app so downstream readers see the same bytes.
Exempt paths (the liveness check) bypass this middleware entirely.
"""

from typing import Iterable, List, Optional

import structlog
from starlette.datastructures import Headers, QueryParams
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .core.audit import AuditLog
from .core.auth import normalize_pub_id

logger = structlog.get_logger(__name__)


def resolve_client_ip(scope: Scope, headers: Headers, trust_forwarded: bool = True) -> str:
    """Client address, preferring proxy headers when trusted."""
    if trust_forwarded:
        forwarded_for = headers.get("x-forwarded-for", "")
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
        real_ip = headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip

    client = scope.get("client")
    if client:
        return client[0]
    return ""


def request_uri(scope: Scope) -> str:
    """Path plus query string, as sent by the caller."""
    raw_path = scope.get("raw_path") or scope["path"].encode("utf-8")
    # Some servers include the query in raw_path
    uri = raw_path.split(b"?", 1)[0].decode("latin-1")
    query_string = scope.get("query_string", b"")
    if query_string:
        uri += "?" + query_string.decode("latin-1")
    return uri


class AuditMiddleware:
    """Pure ASGI middleware recording every inbound request."""

    def __init__(
        self,
        app: ASGIApp,
        audit: Optional[AuditLog] = None,
        exempt_paths: Iterable[str] = ("/hc",),
        trust_forwarded_headers: bool = True,
    ) -> None:
        self.app = app
        self.audit = audit
        self.exempt_paths = frozenset(exempt_paths)
        self.trust_forwarded_headers = trust_forwarded_headers

    def _get_audit(self, scope: Scope) -> Optional[AuditLog]:
        if self.audit is not None:
            return self.audit
        app = scope.get("app")
        state = getattr(app, "state", None)
        return getattr(state, "audit_log", None)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        audit = self._get_audit(scope)
        if audit is None:
            await self.app(scope, receive, send)
            return

        chunks: List[bytes] = []
        pending: List[Message] = []
        while True:
            message = await receive()
            if message["type"] != "http.request":
                # Disconnect before the body completed; hand it on unchanged
                pending.append(message)
                break
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        body = b"".join(chunks)

        headers = Headers(scope=scope)
        audit.record_request(
            client_ip=resolve_client_ip(scope, headers, self.trust_forwarded_headers),
            method=scope["method"],
            url=request_uri(scope),
            pub_id=normalize_pub_id(QueryParams(scope.get("query_string", b"")).get("pub_id")),
            body=body,
        )

        if pending:
            replay: List[Message] = pending
        else:
            replay = [{"type": "http.request", "body": body, "more_body": False}]

        async def replay_receive() -> Message:
            if replay:
                return replay.pop(0)
            return await receive()

        await self.app(scope, replay_receive, send)
