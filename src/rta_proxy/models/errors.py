"""
Error response model used in the OpenAPI schema.
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every error returned by the proxy."""

    error: str = Field(description="Short, human-readable error message")
