"""
Integration tests for the liveness and metrics endpoints.

Uses FastAPI TestClient; no upstream is contacted.
"""

from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from conftest import read_audit_records
from rta_proxy.config import AuditSettings, AuthSettings, Settings, UpstreamSettings
from rta_proxy.main import create_app


@pytest.fixture
def offline_client(pub_ids_file: Path, audit_log_file: Path) -> Generator[TestClient, None, None]:
    settings = Settings(
        auth=AuthSettings(pub_ids_path=pub_ids_file, refresh_interval_seconds=3600),
        upstream=UpstreamSettings(
            network_url="http://127.0.0.1:1/api/v1/rta/network",
            report_url="http://127.0.0.1:1/api/v1/rta/report",
        ),
        audit=AuditSettings(log_file=audit_log_file),
    )
    with TestClient(create_app(settings)) as client:
        yield client


class TestLiveness:
    """Test the /hc endpoint."""

    def test_hc_returns_ok(self, offline_client: TestClient) -> None:
        response = offline_client.get("/hc")

        assert response.status_code == 200
        assert response.text == "OK"

    @pytest.mark.parametrize("query", ["", "?pub_id=Unknown123", "?pub_id=", "?pub_id=NovaBeyond"])
    def test_hc_ignores_pub_id_and_never_logs(
        self, offline_client: TestClient, audit_log_file: Path, query: str
    ) -> None:
        response = offline_client.get(f"/hc{query}")

        assert response.status_code == 200
        assert response.text == "OK"
        assert read_audit_records(audit_log_file, offline_client.app.state.audit_log) == []

    def test_other_requests_are_logged(self, offline_client: TestClient, audit_log_file: Path) -> None:
        offline_client.get("/hc")
        offline_client.post("/api/v1/rta/network?pub_id=Unknown123", content=b"x")

        records = read_audit_records(audit_log_file, offline_client.app.state.audit_log)
        assert [r["url"] for r in records] == ["/api/v1/rta/network?pub_id=Unknown123"]


class TestMetricsEndpoint:
    """Test the Prometheus endpoint."""

    def test_metrics_exposed(self, offline_client: TestClient, audit_log_file: Path) -> None:
        offline_client.post("/api/v1/rta/network", content=b"{}")

        response = offline_client.get("/metrics")

        assert response.status_code == 200
        assert 'rta_auth_rejections_total{reason="missing"} 1.0' in response.text
        assert 'rta_config_reloads_total{result="success"} 1.0' in response.text
        assert "rta_pub_ids_loaded 4.0" in response.text
        records = read_audit_records(audit_log_file, offline_client.app.state.audit_log)
        assert [r["url"] for r in records] == ["/api/v1/rta/network"]


class TestStartup:
    """Test allow-list handling at startup."""

    def test_missing_document_uses_default_list(self, tmp_path: Path) -> None:
        settings = Settings(
            auth=AuthSettings(pub_ids_path=tmp_path / "absent.json", refresh_interval_seconds=3600),
            audit=AuditSettings(log_file=tmp_path / "api.log"),
        )
        with TestClient(create_app(settings)) as client:
            snapshot = client.app.state.auth_store.current()
            response = client.post("/api/v1/rta/network?pub_id=Someone", content=b"{}")

        assert snapshot.pub_ids == ("NovaBeyond", "ByteMedia", "FlyFunAds", "PinkTomato")
        assert response.json() == {"error": "invalid pub_id"}
