import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from offer_dispatch.models.offer_code import OfferCode
from offer_dispatch.services.errors import StoreError

NOW = datetime(2025, 3, 1, 12, 0, 0)
BUFFER = timedelta(days=7)


async def _count(sessions) -> int:
    async with sessions() as session:
        return (await session.execute(select(func.count()).select_from(OfferCode))).scalar_one()


@pytest.mark.anyio
async def test_claim_marks_all_claim_fields_together(store, sessions, seed_codes):
    await seed_codes(["CODE1"])

    claimed = await store.claim("a@pku.edu.cn", NOW, NOW + BUFFER)

    assert claimed is not None
    assert claimed.code == "CODE1"
    assert claimed.claimed_at == NOW
    assert claimed.expires_at == NOW + timedelta(days=30)

    async with sessions() as session:
        row = (await session.execute(select(OfferCode).where(OfferCode.code == "CODE1"))).scalar_one()
    assert row.is_redeemed is True
    assert row.claimed_by == "a@pku.edu.cn"
    assert row.claimed_at == NOW


@pytest.mark.anyio
async def test_claimed_code_is_never_handed_out_again(store, seed_codes):
    await seed_codes(["ONLY1"])

    first = await store.claim("a@pku.edu.cn", NOW, NOW + BUFFER)
    second = await store.claim("b@pku.edu.cn", NOW, NOW + BUFFER)

    assert first is not None and first.code == "ONLY1"
    assert second is None


@pytest.mark.anyio
async def test_claim_skips_codes_expiring_within_safety_buffer(store, seed_codes):
    await seed_codes(["SOON1"], expires_in_days=6)
    await seed_codes(["EDGE1"], expires_in_days=7)

    assert await store.claim("a@pku.edu.cn", NOW, NOW + BUFFER) is None

    await seed_codes(["LATER1"], expires_in_days=8)
    claimed = await store.claim("a@pku.edu.cn", NOW, NOW + BUFFER)
    assert claimed is not None
    assert claimed.code == "LATER1"


@pytest.mark.anyio
async def test_claim_prefers_earliest_expiring_code(store, seed_codes):
    await seed_codes(["LATE1"], expires_in_days=90)
    await seed_codes(["EARLY1"], expires_in_days=20)

    claimed = await store.claim("a@pku.edu.cn", NOW, NOW + BUFFER)

    assert claimed.code == "EARLY1"


@pytest.mark.anyio
async def test_concurrent_claims_never_share_a_code(store, seed_codes):
    await seed_codes([f"POOL{i}" for i in range(3)])

    results = await asyncio.gather(
        *(store.claim(f"user{i}@pku.edu.cn", NOW, NOW + BUFFER) for i in range(8))
    )

    codes = [r.code for r in results if r is not None]
    assert len(codes) == 3
    assert len(set(codes)) == 3
    assert results.count(None) == 5


@pytest.mark.anyio
async def test_bulk_insert_is_all_or_nothing(store, sessions, seed_codes):
    await seed_codes(["TAKEN1"])
    batch = [f"NEW{i:03d}" for i in range(499)] + ["TAKEN1"]

    with pytest.raises(StoreError):
        await seed_codes(batch)

    assert await _count(sessions) == 1


@pytest.mark.anyio
async def test_bulk_insert_empty_batch_is_noop(store, sessions):
    inserted = await store.bulk_insert([], expires_at=NOW, created_at=NOW)

    assert inserted == 0
    assert await _count(sessions) == 0


@pytest.mark.anyio
async def test_history_is_newest_first_and_bounded(store, seed_codes):
    await seed_codes(["H1", "H2", "H3"], expires_in_days=400)
    await store.claim("a@pku.edu.cn", NOW - timedelta(days=400), NOW - timedelta(days=393))
    await store.claim("a@pku.edu.cn", NOW - timedelta(days=10), NOW)
    await store.claim("b@pku.edu.cn", NOW - timedelta(days=5), NOW)

    history = await store.history("a@pku.edu.cn", since=NOW - timedelta(days=365), until=NOW)

    assert history == [NOW - timedelta(days=10)]


@pytest.mark.anyio
async def test_pool_stats(store, seed_codes):
    await seed_codes(["S1", "S2", "S3"])
    await seed_codes(["S4"], expires_in_days=3)
    await store.claim("a@pku.edu.cn", NOW, NOW + BUFFER)

    stats = await store.pool_stats(not_expiring_before=NOW + BUFFER)

    assert stats.total == 4
    assert stats.claimed == 1
    assert stats.available == 2
    assert stats.expiring == 1


@pytest.mark.anyio
async def test_store_errors_are_wrapped():
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
    from offer_dispatch.services.code_store import CodeStore

    # 未建表的库
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    broken = CodeStore(async_sessionmaker(engine, expire_on_commit=False))
    try:
        with pytest.raises(StoreError):
            await broken.claim("a@pku.edu.cn", NOW, NOW + BUFFER)
        with pytest.raises(StoreError):
            await broken.history("a@pku.edu.cn", NOW - timedelta(days=365), NOW)
    finally:
        await engine.dispose()
