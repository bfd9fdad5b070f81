"""
Publisher allow-list document.

Expected shape::

    {"valid_pub_ids": ["NovaBeyond", "ByteMedia"]}
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class PubIdDocument(BaseModel):
    """The JSON document polled for valid publisher IDs."""

    model_config = ConfigDict(extra="ignore")

    valid_pub_ids: List[StrictStr] = Field(
        description="Publisher IDs allowed to use the forwarding endpoints"
    )
