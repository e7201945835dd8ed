import os

# Must be set before backend.config is imported anywhere
os.environ["FLASHDRILL_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from backend.database import async_session, engine  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models import Base  # noqa: E402
from backend.srs.deck import seed_deck  # noqa: E402


@pytest_asyncio.fixture
async def db() -> AsyncSession:
    """A session on a fresh in-memory schema holding the 12 x 12 deck."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as session:
        await seed_deck(session)
        yield session
    # Dropping the pooled connection throws the in-memory database away
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
