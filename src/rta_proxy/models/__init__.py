"""
Pydantic data models package.

Contains data validation models for:
- The publisher allow-list document
- API error responses
"""

from .errors import ErrorResponse
from .pub_ids import PubIdDocument

__all__ = [
    "ErrorResponse",
    "PubIdDocument",
]
