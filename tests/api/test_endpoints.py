"""
API endpoint tests
"""

import httpx
import pytest
import pytest_asyncio
import uuid
from datetime import datetime, timedelta
from api.main import app
from api.dependencies import get_db
from crawler.checkpoint import CheckpointStore
from crawler.identity import IdentityMap
from crawler.merge import merge_product, new_record
from crawler.records import ProductRecordStore
from models.base import CrawlStatus
from models.crawl_run import CrawlRun


@pytest_asyncio.fixture
async def client(db_session):
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def save_milk(db_session):
    document = new_record(1000)
    merge_product(document["product"], {"id": "77", "display_name": "Milk"}, now=1000)
    merge_product(document["product"], {"id": "77", "display_name": "Whole Milk"}, now=2000)
    document["stats"]["updated_at"] = 2000
    document["stats"]["updates"] = 1
    await ProductRecordStore(db_session).save("svq1", "77", document)


@pytest.mark.asyncio
async def test_health_endpoint_reports_warehouses(client, db_session):
    store = CheckpointStore(db_session)
    await store.seed_categories("svq1", [1, 2])
    await store.set_category_products("svq1", 1, [{"id": "a"}, {"id": "b"}])
    await store.mark("svq1", CrawlStatus.SUCCESS)

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["warehouses"][0]["warehouse"] == "svq1"
    assert data["warehouses"][0]["pending_categories"] == 2
    assert data["warehouses"][0]["pending_products"] == 2
    assert data["warehouses"][0]["total_passes"] == 1
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_health_is_degraded_when_a_warehouse_failed(client, db_session):
    store = CheckpointStore(db_session)
    await store.mark("svq1", CrawlStatus.SUCCESS)
    await store.mark("mad1", CrawlStatus.FAILED, "Categories unavailable")

    data = (await client.get("/health")).json()

    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_get_product_record(client, db_session):
    await save_milk(db_session)

    response = await client.get("/products/svq1/77")

    assert response.status_code == 200
    data = response.json()
    assert data["stats"] == {"created_at": 1000, "updated_at": 2000, "updates": 1}
    assert data["product"]["display_name"]["value"] == "Whole Milk"


@pytest.mark.asyncio
async def test_get_unknown_product_is_404(client):
    response = await client.get("/products/svq1/404")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_field_history_is_oldest_first(client, db_session):
    await save_milk(db_session)

    response = await client.get("/products/svq1/77/history/display_name")

    assert response.status_code == 200
    assert response.json()["versions"] == [
        {"value": "Milk", "timestamp": 1000},
        {"value": "Whole Milk", "timestamp": 2000},
    ]


@pytest.mark.asyncio
async def test_field_history_unknown_field_is_404(client, db_session):
    await save_milk(db_session)

    response = await client.get("/products/svq1/77/history/price_instructions.unit_price")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_identities_pagination_and_filter(client, db_session):
    identities = IdentityMap(db_session)
    await identities.upsert("77", "8410000000001", "milk", "Milk", "svq1")
    await identities.upsert("78", None, "bread", "Bread", "svq1")
    await identities.upsert("77", None, None, None, "mad1")

    response = await client.get("/identities?page=1&page_size=1")

    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 1
    assert data["items"][0]["product_id"] == "77"
    assert data["items"][0]["warehouses"] == ["mad1", "svq1"]
    assert data["pagination"]["total_items"] == 2
    assert data["pagination"]["has_next"] is True

    filtered = (await client.get("/identities?ean=8410000000001")).json()
    assert [item["product_id"] for item in filtered["items"]] == ["77"]


@pytest.mark.asyncio
async def test_runs_most_recent_first(client, db_session):
    started = datetime(2024, 1, 1, 12, 0, 0)
    db_session.add_all([
        CrawlRun(run_id=uuid.uuid4(), warehouse="svq1", status=CrawlStatus.SUCCESS,
                 started_at=started, products_created=3),
        CrawlRun(run_id=uuid.uuid4(), warehouse="svq1", status=CrawlStatus.FAILED,
                 started_at=started + timedelta(hours=6), error_message="Rate limit pauses exhausted"),
        CrawlRun(run_id=uuid.uuid4(), warehouse="mad1", status=CrawlStatus.SUCCESS,
                 started_at=started + timedelta(hours=1)),
    ])
    await db_session.commit()

    response = await client.get("/runs?warehouse=svq1")

    assert response.status_code == 200
    runs = response.json()
    assert [run["status"] for run in runs] == ["failed", "success"]
    assert runs[0]["error_message"] == "Rate limit pauses exhausted"
    assert runs[1]["products_created"] == 3


@pytest.mark.asyncio
async def test_identity_lookup_by_ean(client, db_session):
    identities = IdentityMap(db_session)
    await identities.upsert("78", None, "bread", "Bread", "svq1")
    key = await identities.upsert("77", "8410000000001", "milk", "Milk", "svq1")
    await identities.upsert("77", None, None, None, "mad1")

    response = await client.get("/identities/by-ean/8410000000001")

    assert response.status_code == 200
    assert response.json() == {
        "key": key,
        "product_id": "77",
        "ean": "8410000000001",
        "slug": "milk",
        "name": "Milk",
        "warehouses": ["mad1", "svq1"],
    }

    missing = await client.get("/identities/by-ean/0000000000000")
    assert missing.status_code == 404
