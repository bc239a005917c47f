"""Tests for the scanner result callback endpoint."""

import pytest
from httpx import ASGITransport, AsyncClient

from kubeforge.api.results import create_result_app


@pytest.fixture
async def result_client(orchestrator):
    app = create_result_app(orchestrator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def scanning(orchestrator, mock_k8s, make_pod, fake_launcher):
    """Orchestrator with a running session for nginx:1.25."""
    mock_k8s.list_pods.return_value = [make_pod("web", {"web": "nginx:1.25"})]
    await orchestrator.scan()
    return orchestrator


def _payload(image: str, scan_uuid: str, success: bool = True) -> dict:
    return {
        "image": image,
        "scanUUID": scan_uuid,
        "success": success,
        "vulnerabilities": [{"Name": "CVE-2024-0001", "Severity": "High"}],
    }


class TestResultEndpoint:
    """Test POST /result/."""

    async def test_accepted(self, result_client, scanning):
        record = scanning._session.records["nginx:1.25"]

        response = await result_client.post(
            "/result/", json=_payload("nginx:1.25", record.scan_uuid)
        )

        assert response.status_code == 202
        assert response.json() == {"image": "nginx:1.25", "outcome": "accepted"}
        results = await scanning.results()
        assert len(results.image_scan_results) == 1
        assert results.image_scan_results[0].vulnerabilities[0]["Name"] == "CVE-2024-0001"

    async def test_subpath_is_accepted(self, result_client, scanning):
        record = scanning._session.records["nginx:1.25"]

        response = await result_client.post(
            "/result/nginx", json=_payload("nginx:1.25", record.scan_uuid)
        )

        assert response.status_code == 202

    async def test_malformed_body(self, result_client, scanning):
        before = await scanning.progress()

        response = await result_client.post(
            "/result/", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        after = await scanning.progress()
        assert after.images_completed == before.images_completed
        assert (await scanning.results()).image_scan_results == []

    async def test_unknown_image(self, result_client, scanning):
        before = await scanning.progress()

        response = await result_client.post("/result/", json=_payload("redis:7", "x"))

        assert response.status_code == 400
        after = await scanning.progress()
        assert after.images_to_scan == before.images_to_scan
        assert after.images_completed == before.images_completed

    async def test_stale_result_is_dropped(self, result_client, scanning):
        response = await result_client.post(
            "/result/", json=_payload("nginx:1.25", "previous-session")
        )

        assert response.status_code == 202
        assert response.json()["outcome"] == "stale"
        assert (await scanning.results()).image_scan_results == []

    async def test_duplicate_result_is_dropped(self, result_client, scanning):
        record = scanning._session.records["nginx:1.25"]
        await result_client.post("/result/", json=_payload("nginx:1.25", record.scan_uuid))

        response = await result_client.post(
            "/result/", json=_payload("nginx:1.25", record.scan_uuid, success=False)
        )

        assert response.status_code == 202
        assert response.json()["outcome"] == "duplicate"
        rows = (await scanning.results()).image_scan_results
        assert rows[0].success is True

    async def test_no_session(self, result_client):
        response = await result_client.post("/result/", json=_payload("nginx:1.25", "x"))
        assert response.status_code == 400
