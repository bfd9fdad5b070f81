"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /api/v1/rta/{endpoint} - Forwarding endpoints (network, report)
- /hc - Liveness check
- /metrics - Prometheus metrics
"""
from .hc import router as hc_router
from .metrics import router as metrics_router
from .rta import router as rta_router

__all__ = ["hc_router", "metrics_router", "rta_router"]
