"""
Pytest configuration and shared fixtures.

Integration tests run the FastAPI app in-process (httpx ASGITransport inside
the app lifespan) against a real aiohttp upstream server.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from fastapi import FastAPI
from multidict import CIMultiDict

from rta_proxy.config import AuditSettings, AuthSettings, Settings, UpstreamSettings
from rta_proxy.core.audit import AuditLog
from rta_proxy.main import create_app

CLIENT_ADDR = ("203.0.113.7", 51234)


@dataclass
class RecordedRequest:
    """A request as seen by the fake upstream."""
    path: str
    query: str
    headers: List[Tuple[str, str]]
    body: bytes

    def header_values(self, name: str) -> List[str]:
        return [value for key, value in self.headers if key.lower() == name.lower()]


@dataclass
class FakeUpstream:
    """aiohttp upstream that records requests and returns a canned response."""
    status: int = 200
    body: bytes = b'{"y":2}'
    headers: List[Tuple[str, str]] = field(default_factory=lambda: [("Content-Type", "application/json")])
    requests: List[RecordedRequest] = field(default_factory=list)
    server: Optional[TestServer] = None

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append(
            RecordedRequest(
                path=request.path,
                query=request.query_string,
                headers=[(k.decode("latin-1"), v.decode("latin-1")) for k, v in request.raw_headers],
                body=body,
            )
        )
        return web.Response(status=self.status, body=self.body, headers=CIMultiDict(self.headers))

    def url(self, path: str) -> str:
        assert self.server is not None
        return str(self.server.make_url(path))


def read_audit_records(log_file: Path, audit: Optional[AuditLog] = None) -> List[Dict[str, Any]]:
    """Parse the JSON-lines audit log, or [] if nothing was written.

    Pass the running app's ``AuditLog`` to wait for queued records first.
    """
    if audit is not None:
        audit.flush()
    if not log_file.exists():
        return []
    return [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.fixture
def pub_ids_file(tmp_path: Path) -> Path:
    """Allow-list document with the default publisher IDs."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"valid_pub_ids": ["NovaBeyond", "ByteMedia", "FlyFunAds", "PinkTomato"]}),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def audit_log_file(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "api.log"


@pytest_asyncio.fixture
async def upstream() -> AsyncGenerator[FakeUpstream, None]:
    """Running fake upstream RTA service."""
    fake = FakeUpstream()
    web_app = web.Application()
    web_app.router.add_post("/api/v1/rta/{endpoint}", fake.handle)

    server = TestServer(web_app)
    await server.start_server()
    fake.server = server
    try:
        yield fake
    finally:
        await server.close()


@pytest.fixture
def test_settings(pub_ids_file: Path, audit_log_file: Path, upstream: FakeUpstream) -> Settings:
    """Settings pointing at the fake upstream and temp files."""
    return Settings(
        log_level="DEBUG",
        auth=AuthSettings(pub_ids_path=pub_ids_file, refresh_interval_seconds=3600),
        upstream=UpstreamSettings(
            network_url=upstream.url("/api/v1/rta/network"),
            report_url=upstream.url("/api/v1/rta/report"),
        ),
        audit=AuditSettings(log_file=audit_log_file),
    )


@pytest.fixture
def test_app(test_settings: Settings) -> FastAPI:
    return create_app(test_settings)


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the app, with startup and shutdown run around it."""
    async with test_app.router.lifespan_context(test_app):
        transport = httpx.ASGITransport(app=test_app, client=CLIENT_ADDR)
        async with httpx.AsyncClient(transport=transport, base_url="http://rta.test") as http_client:
            yield http_client
