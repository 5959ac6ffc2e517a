import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from app.adapters.clients.aggregator import AggregatorPage
from app.config import settings
from app.db import get_session
from app.domain.errors import ProviderAuthError, ProviderError
from app.entrypoints.api.deps import get_search_client
from app.entrypoints.api.routers import jobs
from app.entrypoints.fastapi_app import create_app
from app.models import Tag

USER = {"X-User-Id": "agent-1"}


class FakeSearchClient:
    def __init__(self, make_ad, count=3, error=None):
        self.make_ad = make_ad
        self.count = count
        self.error = error
        self.calls = 0

    async def search(self, params):
        self.calls += 1
        if self.error is not None:
            raise self.error
        ads = [self.make_ad(i) for i in range(self.count)] if params.page == 1 else []
        return AggregatorPage(ads=ads, page=params.page, max_length=params.max_length)


@pytest.fixture
def search_client(make_ad):
    return FakeSearchClient(make_ad)


@pytest.fixture
async def client(async_session_maker, search_client):
    app = create_app()

    async def _session():
        async with async_session_maker() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_search_client] = lambda: search_client

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _fetch(client, filters, persist=False, headers=USER):
    return await client.post("/piges/fetch", json={"filters": filters, "persist": persist}, headers=headers)


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_fetch_returns_listings_and_meta(client, search_client):
    r = await _fetch(client, {"postal_codes": ["75011"], "type": "vente"})
    assert r.status_code == 200

    body = r.json()
    assert body["status"] == "ok"
    assert len(body["data"]) == 3
    assert body["data"][0]["provider"] == "aggregator"
    assert body["meta"]["total"] == 3
    assert body["meta"]["pages"] == 1
    assert body["meta"]["has_more"] is False

    r = await client.get("/piges/history", headers=USER)
    assert r.status_code == 200
    assert r.json()[0]["count"] == 1


@pytest.mark.asyncio
async def test_fetch_requires_user(client):
    r = await _fetch(client, {"postal_codes": ["75011"]}, headers={})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_fetch_requires_api_key_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "secret")
    r = await _fetch(client, {"postal_codes": ["75011"]})
    assert r.status_code == 401

    r = await _fetch(client, {"postal_codes": ["75011"]}, headers={**USER, "X-API-Key": "secret"})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_fetch_bad_filters_is_400_and_not_counted(client, search_client):
    r = await _fetch(client, {"postal_codes": ["75011"], "min_price": 9, "max_price": 1})
    assert r.status_code == 400
    assert search_client.calls == 0

    r = await client.get("/piges/history", headers=USER)
    assert r.json() == []


@pytest.mark.asyncio
async def test_fetch_scan_limit_is_429(client, monkeypatch):
    monkeypatch.setattr(settings, "PIGE_MAX_SCANS_PER_HOUR", 1)
    assert (await _fetch(client, {"postal_codes": ["75011"]})).status_code == 200

    r = await _fetch(client, {"postal_codes": ["75011"]})
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0

    # another user has their own quota
    r = await _fetch(client, {"postal_codes": ["75011"]}, headers={"X-User-Id": "agent-2"})
    assert r.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ProviderError("upstream down", 503), ProviderAuthError("bad key", 401)])
async def test_fetch_provider_failure_is_502(client, search_client, error):
    search_client.error = error
    r = await _fetch(client, {"postal_codes": ["75011"]})
    assert r.status_code == 502


@pytest.mark.asyncio
async def test_persisted_listings_are_browsable(client):
    r = await _fetch(client, {"postal_codes": ["75011"]}, persist=True)
    assert r.json()["meta"]["created"] == 3

    r = await client.get("/listings", params={"city": "paris", "limit": 2})
    page = r.json()
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["items"]) == 2

    listing_id = page["items"][0]["id"]
    assert (await client.get(f"/listings/{listing_id}")).json()["city"] == "Paris"
    assert (await client.get("/listings/999999")).status_code == 404
    assert (await client.get("/listings", params={"vendor_type": "nope"})).status_code == 400

    r = await client.post(f"/listings/{listing_id}/tags/Favori")
    assert r.json()["name"] == "favori"
    assert [t["name"] for t in (await client.get("/tags")).json()] == ["favori"]
    r = await client.get("/listings", params={"tag": "favori"})
    assert [i["id"] for i in r.json()["items"]] == [listing_id]
    assert r.json()["items"][0]["tags"] == ["favori"]

    r = await client.post(
        f"/listings/{listing_id}/location",
        json={"address": "12 rue Oberkampf", "lat": 48.86, "lon": 2.37, "confidence": 0.8},
    )
    assert r.status_code == 201
    assert len((await client.get(f"/listings/{listing_id}/locations")).json()) == 1

    bad = await client.post(f"/listings/{listing_id}/location", json={"address": "x", "lat": 200, "lon": 0})
    assert bad.status_code == 422

    assert (await client.delete(f"/listings/{listing_id}/tags/favori")).json() == {"removed": True}
    assert (await client.delete(f"/listings/{listing_id}")).json() == {"deleted": True}
    assert (await client.get(f"/listings/{listing_id}")).status_code == 404


@pytest.mark.asyncio
async def test_saved_search_lifecycle(client):
    body = {"name": "Paris 11", "filters": {"postal_codes": ["75011"], "max_price": 400000}}
    r = await client.post("/searches", json=body, headers=USER)
    assert r.status_code == 201
    search_id = r.json()["id"]

    # same name overwrites
    body["filters"]["max_price"] = 500000
    r = await client.post("/searches", json=body, headers=USER)
    assert r.json()["id"] == search_id
    assert r.json()["filters"]["max_price"] == 500000

    assert (await client.get("/searches", headers={"X-User-Id": "someone-else"})).json() == []

    r = await client.post(f"/searches/{search_id}/run", headers=USER)
    assert r.status_code == 200
    assert r.json()["meta"]["created"] == 3
    assert (await client.get("/searches", headers=USER)).json()[0]["last_run_at"] is not None

    bad = {"name": "broken", "filters": {"postal_codes": ["98000"]}}
    assert (await client.post("/searches", json=bad, headers=USER)).status_code == 400

    assert (await client.delete(f"/searches/{search_id}", headers=USER)).status_code == 200
    assert (await client.post(f"/searches/{search_id}/run", headers=USER)).status_code == 404


@pytest.mark.asyncio
async def test_jobs_and_reports(client):
    r = await client.post("/jobs/sync", json={"provider": "aggregator"})
    assert r.status_code == 400

    await _fetch(client, {"postal_codes": ["75011"]}, persist=True)

    r = await client.get("/reports/summary")
    assert r.status_code == 200
    summary = r.json()
    assert summary["stats"]["total"] == 3
    assert summary["stats"]["top_cities"] == [{"city": "Paris", "count": 3}]
    assert summary["vendors"]["particulier"] == 3

    r = await client.post("/jobs/clean", params={"days_to_keep": 30})
    assert r.status_code == 200
    assert r.json()["deleted_listings"] == 0

    r = await client.get("/debug/job_runs/latest")
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_sync_rejects_unusable_postal_codes(client):
    r = await client.post("/jobs/sync", json={"provider": "aggregator", "postal_codes": ["98000"]})
    assert r.status_code == 400
    assert "department" in r.json()["detail"]


@pytest.mark.asyncio
async def test_failed_cleanup_is_recorded(client, monkeypatch):
    async def broken_clean(session, days_to_keep=None):
        session.add(Tag(name="dup"))
        session.add(Tag(name="dup"))
        await session.flush()

    monkeypatch.setattr(jobs, "clean_old_listings", broken_clean)

    with pytest.raises(IntegrityError):
        await client.post("/jobs/clean")

    runs = (await client.get("/debug/job_runs/latest")).json()["items"]
    assert runs[0]["job_name"] == "clean"
    assert runs[0]["status"] == "failed"
