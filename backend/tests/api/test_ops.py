import pytest


@pytest.mark.asyncio
async def test_health_live(api_client):
    response = await api_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_ready_reports_memory_datastore(api_client):
    from textly.main import app
    from textly.infra.datastore import Datastore

    app.state.datastore = Datastore()
    response = await api_client.get("/health/ready")
    assert response.status_code == 200
    body = response.json()
    assert body["checks"]["redis"]["ok"] is True
    assert body["checks"]["postgres"]["mode"] == "memory"


@pytest.mark.asyncio
async def test_metrics_exposes_request_counter(api_client):
    await api_client.get("/health/live")
    response = await api_client.get("/metrics")
    assert response.status_code == 200
    assert "textly_http_requests_total" in response.text
