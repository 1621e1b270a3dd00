import os

os.environ["REQUEST_AUTH_KEY"] = "test-request-key"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["REDIS_URL"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["SMTP_USER"] = ""
os.environ["FEISHU_ROBOT_URL"] = ""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from offer_dispatch.database import Base
from offer_dispatch.models.offer_code import OfferCode  # noqa: F401
from offer_dispatch.services.code_store import CodeStore


NOW = datetime(2025, 3, 1, 12, 0, 0)


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def sessions(tmp_path):
    # 文件库：每个会话独立连接，才能模拟并发请求
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'offers.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(sessions) -> CodeStore:
    return CodeStore(sessions)


@pytest.fixture
def seed_codes(store):
    async def _seed(codes, expires_in_days: int = 30, now: datetime = NOW) -> int:
        return await store.bulk_insert(
            codes,
            expires_at=now + timedelta(days=expires_in_days),
            created_at=now,
            batch_id="seed",
        )

    return _seed
