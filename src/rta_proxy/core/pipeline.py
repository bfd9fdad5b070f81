"""
Forwarding pipeline.

Orchestrates one exchange:
1. Route resolution (endpoint name to upstream URL)
2. Authorization (pub_id against the current allow list)
3. Body capture
4. Upstream dispatch, cancelled if the caller disconnects
5. Response relay (status, headers, body unchanged)
6. Exchange audit record
"""

import asyncio
from typing import Dict, Optional

import structlog
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response

from .audit import AuditLog
from .auth import authorize_pub_id
from .auth_store import AuthStore
from .exceptions import ClientAuthorizationError, ClientDisconnectedError, ClientRequestError, RtaProxyException
from .forwarder import ProxyRequest, UpstreamForwarder, UpstreamResponse
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)

# Connection framing owned by the server transport, never relayed
TRANSPORT_MANAGED_HEADERS = frozenset({"connection", "keep-alive", "transfer-encoding", "content-length"})


def build_relay_response(upstream: UpstreamResponse) -> Response:
    """Mirror the upstream status, headers and body."""
    response = Response(content=upstream.body, status_code=upstream.status)
    for name, value in upstream.headers:
        if name.lower() in TRANSPORT_MANAGED_HEADERS:
            continue
        response.headers.append(name, value)
    return response


async def wait_for_disconnect(request: Request) -> None:
    """Return once the ASGI server reports the caller has gone away."""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class ForwardingPipeline:
    """
    Per-request forwarding flow.

    Rejected requests (unsupported endpoint, missing or invalid pub_id) never
    reach the upstream and produce no exchange record.
    """

    def __init__(
        self,
        store: AuthStore,
        forwarder: UpstreamForwarder,
        audit: AuditLog,
        routes: Dict[str, str],
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.store = store
        self.forwarder = forwarder
        self.audit = audit
        self.routes = dict(routes)
        self.metrics = metrics

    def resolve_target(self, endpoint: str) -> str:
        target_url = self.routes.get(endpoint)
        if target_url is None:
            logger.warning("Unsupported endpoint", endpoint=endpoint)
            raise ClientRequestError("unsupported endpoint", details={"endpoint": endpoint})
        return target_url

    async def process(self, request: Request, endpoint: str) -> Response:
        """Run one exchange; raises RtaProxyException subclasses on failure."""
        metrics_endpoint = endpoint if endpoint in self.routes else "unsupported"
        try:
            response = await self._process(request, endpoint)
        except ClientAuthorizationError as e:
            if self.metrics:
                self.metrics.record_auth_rejection(e.reason)
                self.metrics.record_request(metrics_endpoint, e.status_code)
            raise
        except RtaProxyException as e:
            if self.metrics:
                self.metrics.record_request(metrics_endpoint, e.status_code)
            raise

        if self.metrics:
            self.metrics.record_request(metrics_endpoint, response.status_code)
        return response

    async def _process(self, request: Request, endpoint: str) -> Response:
        target_url = self.resolve_target(endpoint)
        pub_id = authorize_pub_id(self.store, request.query_params.get("pub_id"))

        try:
            body = await request.body()
        except ClientDisconnect as e:
            logger.warning("Failed to read request body", pub_id=pub_id, endpoint=endpoint)
            raise ClientRequestError("failed to read body") from e

        proxy_request = ProxyRequest(
            pub_id=pub_id,
            endpoint=endpoint,
            target_url=target_url,
            headers=[
                (name.decode("latin-1"), value.decode("latin-1"))
                for name, value in request.headers.raw
            ],
            body=body,
        )

        upstream = await self._dispatch(request, proxy_request)

        if self.metrics:
            self.metrics.record_upstream_duration(endpoint, upstream.duration_seconds)

        self.audit.record_exchange(
            pub_id=pub_id,
            target_url=target_url,
            status_code=upstream.status,
            response_body=upstream.body,
        )
        return build_relay_response(upstream)

    async def _dispatch(self, request: Request, proxy_request: ProxyRequest) -> UpstreamResponse:
        """Forward upstream, abandoning the call if the caller disconnects first."""
        forward_task = asyncio.ensure_future(self.forwarder.forward(proxy_request))
        disconnect_task = asyncio.ensure_future(wait_for_disconnect(request))

        try:
            done, _ = await asyncio.wait(
                {forward_task, disconnect_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            forward_task.cancel()
            disconnect_task.cancel()
            raise

        disconnect_task.cancel()
        if forward_task in done:
            return forward_task.result()

        forward_task.cancel()
        logger.warning(
            "Client disconnected, upstream request cancelled",
            pub_id=proxy_request.pub_id,
            target_url=proxy_request.target_url,
        )
        raise ClientDisconnectedError()
