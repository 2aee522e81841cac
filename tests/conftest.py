import sys
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env
backend_dir = Path(__file__).parent.parent / "backend"
env_file = backend_dir / ".env"
if env_file.exists():
    load_dotenv(env_file)

# Tests never touch the on-disk database
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SEED_CATALOG"] = "false"

# Add backend directory to Python path for imports
sys.path.insert(0, str(backend_dir))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rights.core.database import init_db
from rights.core.seed import seed_catalog
from rights.models import User
from rights.services.catalog import CatalogStore


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db):
    """Default page catalog with View/Create/Update/Delete on every page"""
    await seed_catalog(db)
    return CatalogStore(db)


@pytest_asyncio.fixture
async def perm_ids(catalog):
    """perm_key -> permission id for the seeded catalog"""
    return {key: pid for pid, key in (await catalog.get_active_permission_keys()).items()}


@pytest_asyncio.fixture
async def users(db):
    """Three plain users: mentor, editor, admin"""
    created = [
        User(email_address="mentor@example.org", full_name="Mentor User", user_type="Staff"),
        User(email_address="editor@example.org", full_name="Editor User", user_type="Staff"),
        User(email_address="admin@example.org", full_name="Admin User", user_type="Admin"),
    ]
    db.add_all(created)
    await db.commit()
    return created
