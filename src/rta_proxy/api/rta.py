"""
RTA forwarding endpoints.

POST /api/v1/rta/network and POST /api/v1/rta/report relay the request body to
the matching upstream and return the upstream response unchanged. Any other
endpoint name under /api/v1/rta/ is rejected as unsupported.
"""

from fastapi import APIRouter, Depends, Request, Response

from ..core.pipeline import ForwardingPipeline
from ..models.errors import ErrorResponse

router = APIRouter()


def get_pipeline(request: Request) -> ForwardingPipeline:
    """Dependency to get the forwarding pipeline from app state."""
    return request.app.state.pipeline


@router.post(
    "/api/v1/rta/{endpoint}",
    responses={
        400: {"model": ErrorResponse, "description": "Missing/invalid pub_id, unsupported endpoint or unreadable body"},
        500: {"model": ErrorResponse, "description": "Upstream request could not be built"},
        502: {"model": ErrorResponse, "description": "Upstream unreachable or response unreadable"},
    },
    summary="Forward an RTA request",
    description="""
    Forward the request to the upstream RTA service.

    **Flow:**
    1. Endpoint must be `network` or `report`
    2. `pub_id` query parameter must be on the allow list
    3. Body and headers (except Host) are sent upstream unchanged
    4. Upstream status, headers and body are returned unchanged
    """,
)
async def forward_rta(
    endpoint: str,
    request: Request,
    pipeline: ForwardingPipeline = Depends(get_pipeline),
) -> Response:
    return await pipeline.process(request, endpoint)
