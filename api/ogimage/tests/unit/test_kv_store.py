"""Unit tests for the key-value backends and the stores built on them."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ogimage.core.config import settings
from ogimage.models.exceptions import StorageError
from ogimage.models.schemas import AccountRecord, TemplateRecord
from ogimage.services.accounts import AccountStore, ApiKeyStore
from ogimage.services.kv import MemoryKeyValueStore, RedisKeyValueStore, create_store
from ogimage.services.template_store import TemplateStore
from ogimage.services.usage import OverageStore, UsageStore


@pytest.fixture
def store():
    return MemoryKeyValueStore()


class TestMemoryKeyValueStore:
    """Test cases for the in-process backend."""

    async def test_json_round_trip_and_delete(self, store):
        await store.put_json("a", {"x": 1})

        assert await store.get_json("a") == {"x": 1}

        await store.delete("a")
        assert await store.get_json("a") is None

    async def test_increment(self, store):
        assert await store.increment("c") == 1
        assert await store.increment("c", 4) == 5
        assert await store.get_int("c") == 5
        assert await store.get_int("missing") == 0

    async def test_expiry(self, store):
        with patch("ogimage.services.kv.time.time", return_value=1000.0):
            await store.increment("c", ttl=10)
        with patch("ogimage.services.kv.time.time", return_value=1005.0):
            assert await store.increment("c", ttl=10) == 2
        with patch("ogimage.services.kv.time.time", return_value=1011.0):
            assert await store.get_int("c") == 0

    async def test_scan_prefix(self, store):
        await store.put_json("overage:a:20240101", {})
        await store.put_json("overage:b:20240101", {})
        await store.put_json("usage:k:202401", {})

        assert await store.scan_prefix("overage:") == ["overage:a:20240101", "overage:b:20240101"]


class TestRedisKeyValueStore:
    """Test cases for the Redis backend with a mocked client."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value='{"x": 1}')
        client.set = AsyncMock()
        client.delete = AsyncMock()
        client.aclose = AsyncMock()
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[3, True])
        client.pipeline.return_value = pipe
        return client

    @pytest.fixture
    def redis_store(self, client):
        with patch("ogimage.services.kv.redis.from_url", return_value=client) as from_url:
            store = RedisKeyValueStore("redis://example:6379/0")
            store.from_url = from_url
            yield store

    async def test_connects_once(self, redis_store, client):
        await redis_store.get_json("a")
        await redis_store.get_json("b")

        assert redis_store.from_url.call_count == 1

    async def test_get_json(self, redis_store):
        assert await redis_store.get_json("a") == {"x": 1}

    async def test_increment_sets_expiry_once(self, redis_store, client):
        assert await redis_store.increment("usage:k:202401", ttl=60) == 3

        pipe = client.pipeline.return_value
        pipe.incrby.assert_called_once_with("usage:k:202401", 1)
        pipe.expire.assert_called_once_with("usage:k:202401", 60, nx=True)

    async def test_errors_become_storage_errors(self, redis_store, client):
        client.get = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(StorageError) as exc_info:
            await redis_store.get_json("a")

        assert exc_info.value.public_message == "Internal server error"

    async def test_close(self, redis_store, client):
        await redis_store.get_json("a")
        await redis_store.close()

        client.aclose.assert_awaited_once()
        assert redis_store.redis_client is None


class TestCreateStore:
    @pytest.mark.parametrize("backend,env,expected", [
        ("memory", "production", MemoryKeyValueStore),
        ("redis", "dev", RedisKeyValueStore),
        ("auto", "production", RedisKeyValueStore),
        ("auto", "dev", MemoryKeyValueStore),
    ])
    def test_backend_selection(self, monkeypatch, backend, env, expected):
        monkeypatch.setattr(settings, "kv_backend", backend)
        monkeypatch.setattr(settings, "service_env", env)

        assert isinstance(create_store(), expected)


class TestRecordStores:
    """Test cases for the typed stores."""

    async def test_api_key_create_stores_only_hash(self, store):
        keys = ApiKeyStore(store)

        raw = await keys.create("acct-1")
        kid = raw.split("_")[1]
        record = await keys.get(kid)

        assert record.account == "acct-1"
        assert raw not in str(await store.get_json(f"key:{kid}"))

    async def test_touch_last_used(self, store):
        keys = ApiKeyStore(store)
        kid = (await keys.create("acct-1")).split("_")[1]

        await keys.touch_last_used(kid)
        await keys.touch_last_used("missing")

        assert (await keys.get(kid)).last_used is not None

    async def test_account_plan(self, store):
        accounts = AccountStore(store)
        await accounts.put(AccountRecord(id="acct-1", plan="Pro"))

        assert await accounts.get_plan("acct-1") == "pro"
        assert await accounts.get_plan("missing") == "free"

    async def test_usage_reset_returns_previous(self, store):
        usage = UsageStore(store)
        await usage.increment("kid00001", "202401")
        await usage.increment("kid00001", "202401")

        assert await usage.reset("kid00001", "202401") == 2
        assert await usage.get("kid00001", "202401") == 0

    async def test_overage_listing(self, store):
        overage = OverageStore(store)
        await overage.increment("acct-a", "20240101")
        await overage.increment("acct-a", "20240101")
        await overage.increment("acct-b", "20240102")

        records = await overage.list_for_day("20240101")

        assert [(r.account, r.count) for r in records] == [("acct-a", 2)]

    async def test_templates_by_account(self, store):
        templates = TemplateStore(store)
        await templates.put(TemplateRecord(id="tpl-aaaa-0001", account="acct-a", name="A"))
        await templates.put(TemplateRecord(id="tpl-bbbb-0001", account="acct-b", name="B"))

        assert [t.id for t in await templates.list_for_account("acct-a")] == ["tpl-aaaa-0001"]
        assert (await templates.get("tpl-bbbb-0001")).name == "B"
