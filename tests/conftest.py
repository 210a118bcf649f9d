import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-process backend for every test
os.environ.setdefault("BACKEND", "memory")
os.environ.setdefault("LOYALTY_ENABLED", "true")

from storeops.backend.memory import MemoryBackend  # noqa: E402
from storeops.container import ServiceContainer  # noqa: E402


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def container(backend: MemoryBackend) -> ServiceContainer:
    return ServiceContainer(backend=backend)


@pytest_asyncio.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    from storeops.main import app
    app.state.container = container
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.state.container = None


@pytest.fixture
def make_employee(backend: MemoryBackend):
    """Insert a raw employee row; returns the stored row."""

    async def _make(code: str, name: str, salary_type: str = "Monthly", base: float = 26000, status: str = "Active") -> dict:
        rows = await backend.insert(
            "employees",
            {
                "employee_id": code,
                "full_name": name,
                "salary_type": salary_type,
                "base_salary": base,
                "status": status,
            },
        )
        return rows[0]

    return _make
