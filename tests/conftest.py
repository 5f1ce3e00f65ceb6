import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from renocheck.db.engine import build_engine
from renocheck.models import Base
from renocheck.services.blob_store import BlobStore


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see the same database."""
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def blob_store(tmp_path):
    store = BlobStore(tmp_path / "storage", "inspection-images", "http://test/storage")
    store.create_bucket()
    return store


@pytest.fixture
def missing_bucket_store(tmp_path):
    return BlobStore(tmp_path / "nowhere", "inspection-images", "http://test/storage")
