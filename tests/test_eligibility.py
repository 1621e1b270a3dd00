from datetime import datetime, timedelta

import pytest

from offer_dispatch.services.eligibility import EligibilityChecker

CLAIMED_AT = datetime(2025, 3, 1, 12, 0, 0)
REQUESTER = "student@pku.edu.cn"


@pytest.fixture
async def claimed_store(store, seed_codes):
    await seed_codes(["WIN1"], now=CLAIMED_AT)
    claimed = await store.claim(REQUESTER, CLAIMED_AT, CLAIMED_AT + timedelta(days=7))
    assert claimed is not None
    return store


@pytest.mark.anyio
@pytest.mark.parametrize(
    "offset, eligible",
    [
        (timedelta(0), False),
        (timedelta(days=200), False),
        (timedelta(days=365) - timedelta(seconds=1), False),
        (timedelta(days=365), True),
        (timedelta(days=400), True),
    ],
)
async def test_eligibility_window(claimed_store, offset, eligible):
    checker = EligibilityChecker(claimed_store, window_days=365)

    assert await checker.is_eligible(REQUESTER, CLAIMED_AT + offset) is eligible


@pytest.mark.anyio
async def test_last_claim_is_reported(claimed_store):
    checker = EligibilityChecker(claimed_store)

    last = await checker.last_claim_in_window(REQUESTER, CLAIMED_AT + timedelta(days=30))

    assert last == CLAIMED_AT


@pytest.mark.anyio
async def test_other_requesters_are_unaffected(claimed_store):
    checker = EligibilityChecker(claimed_store)

    assert await checker.is_eligible("other@pku.edu.cn", CLAIMED_AT) is True


@pytest.mark.anyio
async def test_store_failure_propagates():
    from offer_dispatch.services.errors import StoreError

    class FailingStore:
        async def history(self, requester_id, since, until):
            raise StoreError("boom")

    checker = EligibilityChecker(FailingStore())

    with pytest.raises(StoreError):
        await checker.is_eligible(REQUESTER, CLAIMED_AT)
