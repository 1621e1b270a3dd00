import httpx
import pytest

from offer_dispatch.main import app
from offer_dispatch.routers import offer
from offer_dispatch.services.allocator import Allocator
from offer_dispatch.services.eligibility import EligibilityChecker
from offer_dispatch.services.errors import IssuerPayloadError

ADMIN = {"X-Admin-Token": "test-admin-token"}


class FakeIssuer:
    def __init__(self, inserted=0, error=None):
        self.inserted = inserted
        self.error = error
        self.calls = []

    async def replenish(self, batch_size, validity_days, now=None):
        self.calls.append((batch_size, validity_days))
        if self.error is not None:
            raise self.error
        return self.inserted


@pytest.fixture
def use_issuer(store):
    def _use(issuer):
        allocator = Allocator(store, EligibilityChecker(store), issuer, replenish_batch_size=500)
        app.dependency_overrides[offer.get_allocator] = lambda: allocator
        return issuer

    yield _use
    app.dependency_overrides.clear()


async def call(method, path, headers=ADMIN, **kwargs):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.request(method, f"/api/v1/admin{path}", headers=headers, **kwargs)


@pytest.mark.anyio
async def test_admin_token_required(use_issuer):
    use_issuer(FakeIssuer())

    response = await call("GET", "/pool", headers={"X-Admin-Token": "wrong"})

    assert response.status_code == 403


@pytest.mark.anyio
async def test_pool_stats(use_issuer, seed_codes):
    use_issuer(FakeIssuer())
    await seed_codes(["AAAA1111", "BBBB2222"], expires_in_days=3650)

    response = await call("GET", "/pool")

    assert response.status_code == 200
    assert response.json() == {"available": 2, "claimed": 0, "expiring": 0, "total": 2}


@pytest.mark.anyio
async def test_manual_replenish_uses_default_batch(use_issuer):
    issuer = use_issuer(FakeIssuer(inserted=500))

    response = await call("POST", "/pool/replenish")

    assert response.status_code == 200
    assert response.json() == {"inserted": 500}
    assert issuer.calls == [(500, 177)]


@pytest.mark.anyio
async def test_manual_replenish_with_batch_size(use_issuer):
    issuer = use_issuer(FakeIssuer(inserted=20))

    response = await call("POST", "/pool/replenish", json={"batch_size": 20})

    assert response.json() == {"inserted": 20}
    assert issuer.calls == [(20, 177)]


@pytest.mark.anyio
async def test_manual_replenish_failure_is_bad_gateway(use_issuer):
    use_issuer(FakeIssuer(error=IssuerPayloadError("Offer code export contained no valid codes")))

    response = await call("POST", "/pool/replenish")

    assert response.status_code == 502
    assert response.json()["message"] == "Offer code export contained no valid codes"
