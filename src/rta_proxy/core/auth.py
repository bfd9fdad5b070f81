"""
Publisher authorization.
"""

from typing import Optional

import structlog

from .auth_store import AuthStore
from .exceptions import ClientAuthorizationError

logger = structlog.get_logger(__name__)

UNKNOWN_PUB_ID = "unknown"


def normalize_pub_id(raw: Optional[str]) -> str:
    """Missing or empty pub_id becomes the ``unknown`` sentinel."""
    return raw or UNKNOWN_PUB_ID


def authorize_pub_id(store: AuthStore, raw_pub_id: Optional[str]) -> str:
    """
    Check a claimed pub_id against the current allow list.

    Raises ClientAuthorizationError with ``missing pub_id`` or
    ``invalid pub_id``; returns the pub_id otherwise.
    """
    pub_id = normalize_pub_id(raw_pub_id)
    if pub_id == UNKNOWN_PUB_ID:
        logger.warning("Authorization failed: missing pub_id")
        raise ClientAuthorizationError("missing pub_id", reason="missing")

    if not store.current().is_authorized(pub_id):
        logger.warning("Authorization failed: unknown pub_id", pub_id=pub_id)
        raise ClientAuthorizationError("invalid pub_id", reason="invalid")

    logger.debug("pub_id authorized", pub_id=pub_id)
    return pub_id
