import pytest
import pytest_asyncio

from app.database import build_engine, build_session_factory
from app.models import Base
from app.services.file_service import FileService
from app.services.file_storage import LocalBlobStore
from app.services.folder_service import FolderService
from app.services.identity import DatabaseIdentityProvider
from app.services.sharing_service import SharingService


@pytest_asyncio.fixture
async def session_factory():
    # In-memory SQLite; build_engine pins it to one connection
    engine = build_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", "http://testserver", "test-secret")


@pytest.fixture
def identity(session_factory):
    return DatabaseIdentityProvider(session_factory)


@pytest.fixture
def folders(session_factory, blob_store, identity):
    return FolderService(session_factory, blob_store, identity)


@pytest.fixture
def sharing(session_factory, blob_store):
    return SharingService(session_factory, blob_store)


@pytest.fixture
def files(session_factory, blob_store):
    return FileService(session_factory, blob_store)


@pytest_asyncio.fixture
async def principal(identity):
    return await identity.ensure_principal("user_jane", "Jane", "Doe")
