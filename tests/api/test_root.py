import httpx
import pytest
from api.main import app


@pytest.mark.asyncio
async def test_root_lists_endpoints():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/", headers={"X-Request-ID": "abc123"})

    assert response.status_code == 200
    assert response.json()["endpoints"]["runs"] == "/runs"
    assert response.headers["X-Request-ID"] == "abc123"
    assert "X-API-Latency-ms" in response.headers
