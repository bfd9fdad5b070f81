"""
Upstream forwarder.

Sends one request to an upstream RTA endpoint and returns its status, headers
and body exactly as received:
- Single attempt, no retry
- Request body and headers passed through unchanged (``Host`` and
  ``Transfer-Encoding`` excepted; the buffered body is sent with a length)
- Response bodies are not decompressed
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
import structlog
from multidict import CIMultiDict

from ..config import UpstreamSettings
from .exceptions import UpstreamRequestError, UpstreamResponseError, UpstreamTransportError

logger = structlog.get_logger(__name__)

HeaderList = List[Tuple[str, str]]

# Hop-by-hop framing of the inbound request; the buffered body is re-framed by aiohttp
INBOUND_FRAMING_HEADERS = frozenset({"host", "transfer-encoding"})

# aiohttp adds these when absent; the upstream must only see what the caller sent
SKIP_AUTO_HEADERS = ("Accept", "Accept-Encoding", "Content-Type", "User-Agent")


@dataclass
class ProxyRequest:
    """One inbound request on its way upstream."""
    pub_id: str
    endpoint: str
    target_url: str
    headers: HeaderList
    body: bytes


@dataclass
class UpstreamResponse:
    """Upstream response as received."""
    status: int
    headers: HeaderList
    body: bytes
    duration_seconds: float = field(default=0.0)


def build_upstream_headers(headers: Sequence[Tuple[str, str]]) -> CIMultiDict:
    """Copy inbound headers, repeated names included, dropping ``Host`` and ``Transfer-Encoding``."""
    upstream_headers: CIMultiDict = CIMultiDict()
    for name, value in headers:
        if name.lower() in INBOUND_FRAMING_HEADERS:
            continue
        upstream_headers.add(name, value)
    return upstream_headers


class UpstreamForwarder:
    """
    Async HTTP client for the upstream RTA endpoints.

    Handles:
    - Client session lifecycle
    - Request construction
    - Mapping client failures to gateway errors
    """

    def __init__(self, settings: UpstreamSettings) -> None:
        self.settings = settings
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info("Upstream Forwarder initialized", routes=settings.routes)

    async def start(self) -> None:
        """Open the client session."""
        if self.session is not None:
            return

        session_kwargs: Dict[str, Any] = {
            "auto_decompress": False,
            "skip_auto_headers": SKIP_AUTO_HEADERS,
        }
        if self.settings.timeout_seconds is not None:
            session_kwargs["timeout"] = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        self.session = aiohttp.ClientSession(**session_kwargs)

        logger.info("Upstream Forwarder started")

    async def stop(self) -> None:
        """Close the client session."""
        if self.session:
            await self.session.close()
            self.session = None

        logger.info("Upstream Forwarder stopped")

    async def forward(self, request: ProxyRequest) -> UpstreamResponse:
        """
        POST the request body to its target URL.

        Raises:
            UpstreamRequestError: the request could not be built
            UpstreamTransportError: connecting or sending failed
            UpstreamResponseError: the response body could not be read
        """
        if not self.session:
            raise UpstreamRequestError(details={"reason": "forwarder not started"})

        headers = build_upstream_headers(request.headers)
        start = time.monotonic()

        try:
            response = await self.session.post(
                request.target_url,
                data=request.body,
                headers=headers,
                allow_redirects=False,
            )
        except aiohttp.InvalidURL as e:
            logger.error("Invalid upstream URL", target_url=request.target_url, error=str(e))
            raise UpstreamRequestError(details={"target_url": request.target_url}) from e
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Upstream request failed",
                pub_id=request.pub_id,
                target_url=request.target_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise UpstreamTransportError(details={"target_url": request.target_url}) from e
        except ValueError as e:
            logger.error("Upstream request construction failed", target_url=request.target_url, error=str(e))
            raise UpstreamRequestError(details={"target_url": request.target_url}) from e

        async with response:
            try:
                body = await response.read()
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                logger.error(
                    "Failed to read upstream response body",
                    pub_id=request.pub_id,
                    target_url=request.target_url,
                    status_code=response.status,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise UpstreamResponseError(details={"target_url": request.target_url}) from e

            upstream_headers = [
                (name.decode("latin-1"), value.decode("latin-1"))
                for name, value in response.raw_headers
            ]
            duration = time.monotonic() - start

            logger.debug(
                "Upstream response received",
                pub_id=request.pub_id,
                target_url=request.target_url,
                status_code=response.status,
                body_bytes=len(body),
                duration_ms=round(duration * 1000, 2),
            )

            return UpstreamResponse(
                status=response.status,
                headers=upstream_headers,
                body=body,
                duration_seconds=duration,
            )
