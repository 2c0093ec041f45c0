from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lockd.api.deps import get_manager
from lockd.client import AsyncHttpRPC, AsyncLockClient
from lockd.main import app
from lockd.services.lock_manager import LockManager


@pytest_asyncio.fixture
async def manager() -> AsyncGenerator[LockManager]:
    mgr = LockManager()
    await mgr.start()
    yield mgr
    await mgr.stop()


@pytest_asyncio.fixture
async def client(manager: LockManager) -> AsyncGenerator[AsyncClient]:
    app.dependency_overrides[get_manager] = lambda: manager
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def lock_client(client: AsyncClient) -> AsyncLockClient:
    # The shared AsyncClient is closed by the ``client`` fixture
    return AsyncLockClient(AsyncHttpRPC("http://test", client=client))
