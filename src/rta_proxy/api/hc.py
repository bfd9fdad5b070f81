"""
Liveness check.

Returns a constant body with no authorization, no body read and no logging.
"""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get(
    "/hc",
    response_class=PlainTextResponse,
    summary="Liveness probe",
    description="Always returns 200 OK while the process is serving requests.",
)
async def health_check() -> PlainTextResponse:
    return PlainTextResponse("OK")
