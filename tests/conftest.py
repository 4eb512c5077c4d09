import sys
from pathlib import Path

import pytest_asyncio

# Tests live at <repo>/tests/ so the repo root is one parent above.
REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest_asyncio.fixture
async def services(tmp_path):
    from gp_backend.adapters.remote import StaticTokenProvider
    from gp_backend.deps import build_services

    db_path = str(tmp_path / "test_index.db")
    svc_res = await build_services(db_path, tokens=StaticTokenProvider("test-token"))
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    try:
        yield svc
    finally:
        await svc["db"].aclose()
        if svc.get("session") is not None:
            await svc["session"].close()
