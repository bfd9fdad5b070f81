"""
Prometheus metrics endpoint.

Exposes metrics in Prometheus text format for scraping.
"""

import structlog
from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Prometheus metrics endpoint in standard text format.

    **Key Metrics:**
    - rta_requests_total{endpoint,status_code} - Forwarding requests by outcome
    - rta_upstream_duration_seconds{endpoint} - Upstream latency histogram
    - rta_auth_rejections_total{reason} - Missing / invalid pub_id rejections
    - rta_config_reloads_total{result} - Allow-list reload attempts
    - rta_pub_ids_loaded - Size of the current allow list
    """,
)
async def get_metrics(request: Request) -> Response:
    """Return the app's metrics in Prometheus text format."""
    metrics_collector = getattr(request.app.state, 'metrics', None)

    if not metrics_collector:
        logger.warning("Metrics collector not initialized")
        return Response(
            content="# Metrics collector not initialized\n",
            media_type=CONTENT_TYPE_LATEST,
        )

    metrics_data = generate_latest(metrics_collector.registry)
    logger.debug("Metrics scraped successfully", size_bytes=len(metrics_data))

    return Response(
        content=metrics_data,
        media_type=CONTENT_TYPE_LATEST,
    )
