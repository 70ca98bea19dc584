from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

from app.domain.ranking import models
from app.domain.ranking.memory import MemoryCandidateRepository
from app.infra import postgres
from app.main import app
from app.settings import settings

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
    from app.infra.redis import redis_client, set_redis_client
    original = redis_client.client
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
    async def _noop():
        return None

    monkeypatch.setattr(postgres, "init_pool", _noop)
    monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
    """Keep tests on the in-process repository with the scheduler off."""
    original_env = settings.environment
    original_backend = settings.ranking_backend
    original_scheduler = settings.ranking_scheduler_enabled
    settings.environment = "dev"
    settings.ranking_backend = "memory"
    settings.ranking_scheduler_enabled = False
    try:
        yield
    finally:
        settings.environment = original_env
        settings.ranking_backend = original_backend
        settings.ranking_scheduler_enabled = original_scheduler


def _make_user(
    user_id: str,
    *,
    user_type: models.UserType = models.UserType.ESCORT,
    username: str | None = None,
    created_days_ago: int = 100,
    active_minutes_ago: int | None = 5,
    verified: bool = False,
    reputation: models.Reputation | None = None,
    settings_row: models.UserSettings | None = None,
    **fields,
) -> models.UserRecord:
    detail = fields.pop("detail", None) or models.TypeDetail(verified=verified)
    last_active = NOW - timedelta(minutes=active_minutes_ago) if active_minutes_ago is not None else None
    return models.UserRecord(
        id=user_id,
        username=username or f"user-{user_id}",
        user_type=user_type,
        created_at=NOW - timedelta(days=created_days_ago),
        last_active_at=last_active,
        detail=detail,
        reputation=reputation if reputation is not None else models.Reputation(),
        settings=settings_row,
        **fields,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def user_factory():
    return _make_user


@pytest_asyncio.fixture
async def memory_repo():
    repo = MemoryCandidateRepository()
    yield repo
    await repo.reset()


@pytest_asyncio.fixture
async def api_client(memory_repo):
    app.state.ranking_repository = memory_repo
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
