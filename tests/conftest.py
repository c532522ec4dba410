"""Root conftest.

Provides:
- Log output redirected to a temp directory
- Linear chain snapshot A -> B -> C -> D
- Async HTTP client for the FastAPI app
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

# Must be set before flowgraph.config is imported
os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "flowgraph-test-logs"))

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from tests.builders import linear_chain  # noqa: E402


@pytest.fixture
def chain_abcd():
    """Linear chain A -> B -> C -> D."""
    return linear_chain("A", "B", "C", "D")


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI routes."""
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
