"""Pytest configuration and fixtures for the OG image API."""

import asyncio
import sys
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

# Add the api directory to Python path
api_dir = Path(__file__).parent
sys.path.insert(0, str(api_dir))

from ogimage.core.config import settings
from ogimage.core.security import issue_session_token
from ogimage.dependencies import provide_font_resolver, provide_raster_engine, provide_store
from ogimage.main import app
from ogimage.models.exceptions import RasterUnavailableError
from ogimage.models.schemas import AccountRecord, TemplateRecord
from ogimage.services.accounts import AccountStore, ApiKeyStore
from ogimage.services.fonts import FontResolver
from ogimage.services.kv import MemoryKeyValueStore, set_store
from ogimage.services.raster import RasterEngine
from ogimage.services.template_store import TemplateStore

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class FakeRasterEngine(RasterEngine):
    """Raster engine double: returns a PNG header or behaves as unavailable."""

    name = "fake"

    def __init__(self, available: bool = True):
        self.available = available
        self.calls = 0

    async def render(self, svg: str) -> bytes:
        self.calls += 1
        if not self.available:
            raise RasterUnavailableError("forced unavailable")
        return PNG_SIGNATURE + b"fake-png:" + str(len(svg)).encode()


@pytest.fixture(autouse=True)
def setup_test_settings(monkeypatch):
    """Deterministic settings: no network fonts, known secrets, auth off."""
    monkeypatch.setattr(settings, "service_env", "test")
    monkeypatch.setattr(settings, "require_auth_flag", False)
    monkeypatch.setattr(settings, "jwt_secret", "test-jwt-secret")
    monkeypatch.setattr(settings, "admin_secret", "test-admin-secret")
    monkeypatch.setattr(settings, "cache_version", None)
    monkeypatch.setattr(settings, "font_fetch_enabled", False)
    monkeypatch.setattr(settings, "plan_limits", {"free": 1, "starter": 1000, "pro": 10000})
    yield


@pytest.fixture
def require_auth(monkeypatch):
    monkeypatch.setattr(settings, "require_auth_flag", True)


@pytest.fixture
def kv() -> Generator[MemoryKeyValueStore, None, None]:
    store = MemoryKeyValueStore()
    set_store(store)
    yield store
    set_store(None)


@pytest.fixture
def fake_raster() -> FakeRasterEngine:
    return FakeRasterEngine()


@pytest.fixture
def client(kv, fake_raster) -> Generator[TestClient, None, None]:
    """Test client wired to the in-memory store and the fake raster engine."""
    app.dependency_overrides[provide_store] = lambda: kv
    app.dependency_overrides[provide_raster_engine] = lambda: fake_raster
    app.dependency_overrides[provide_font_resolver] = lambda: FontResolver()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def api_key_factory(kv) -> Callable[..., str]:
    """Create an account on ``plan`` and return a raw API key for it."""

    def create(plan: str = "free", account_id: str = "acct-1") -> str:
        asyncio.run(AccountStore(kv).put(AccountRecord(id=account_id, plan=plan)))
        return asyncio.run(ApiKeyStore(kv).create(account_id))

    return create


@pytest.fixture
def template_factory(kv) -> Callable[..., TemplateRecord]:
    def create(template_id: str = "tpl-owned-0001", account_id: str = "acct-owner", slug: str = "blog",
               **defaults: str) -> TemplateRecord:
        record = TemplateRecord(id=template_id, account=account_id, name="Launch card", slug=slug,
                                defaults=defaults)
        asyncio.run(TemplateStore(kv).put(record))
        return record

    return create


@pytest.fixture
def session_cookie() -> Callable[[str], dict]:
    def create(account_id: str) -> dict:
        return {settings.session_cookie_name: issue_session_token(account_id)}

    return create
