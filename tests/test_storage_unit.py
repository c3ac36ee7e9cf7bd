"""Unit tests for the in-memory credential store and the Redis refresh registry."""

import threading
from datetime import date

import pytest

from identityservice.storage.errors import ConstraintViolation
from identityservice.storage.memory import MemoryStore
from identityservice.storage.redis_cache import RedisCache, SyncRedisCache, refresh_key


@pytest.fixture
def store():
    return MemoryStore()


class TestUsers:
    def test_create_and_lookup(self, store):
        user = store.create_user(
            "tomdoe", "hash", first_name="Tom", dob=date(1990, 1, 1), roles=["USER"]
        )
        assert store.get_user(user.id) is user
        assert store.get_user_by_username("tomdoe") is user
        assert store.exists_by_username("tomdoe")
        assert user.roles == {"USER"}

    def test_duplicate_username_violates_constraint(self, store):
        store.create_user("tomdoe", "hash")
        with pytest.raises(ConstraintViolation):
            store.create_user("tomdoe", "other")

    def test_concurrent_creates_admit_one(self, store):
        errors = []

        def _create():
            try:
                store.create_user("racer", "hash")
            except ConstraintViolation as exc:
                errors.append(exc)

        threads = [threading.Thread(target=_create) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.list_users()) == 1
        assert len(errors) == 7

    def test_update_applies_changes(self, store):
        user = store.create_user("tomdoe", "hash", roles=["USER"])
        updated = store.update_user(user.id, {"last_name": "Doe", "roles": ["ADMIN"]})
        assert updated.last_name == "Doe"
        assert updated.roles == {"ADMIN"}

    def test_update_rejects_unknown_fields(self, store):
        user = store.create_user("tomdoe", "hash")
        with pytest.raises(ValueError):
            store.update_user(user.id, {"username": "renamed"})

    def test_update_missing_user_returns_none(self, store):
        assert store.update_user("missing", {"first_name": "x"}) is None

    def test_delete(self, store):
        user = store.create_user("tomdoe", "hash")
        assert store.delete_user(user.id) is True
        assert store.get_user(user.id) is None
        assert store.delete_user(user.id) is False

    def test_list_is_creation_ordered(self, store):
        first = store.create_user("first", "hash")
        second = store.create_user("second", "hash")
        assert [u.id for u in store.list_users()] == [first.id, second.id]


class TestRoles:
    def test_save_is_upsert(self, store):
        store.save_role("AUDITOR", "reads logs")
        store.save_role("AUDITOR", "reads everything")
        assert store.get_role("AUDITOR").description == "reads everything"
        assert [r.name for r in store.list_roles()] == ["AUDITOR"]

    def test_delete_strips_role_from_users(self, store):
        store.save_role("AUDITOR")
        user = store.create_user("tomdoe", "hash", roles=["USER", "AUDITOR"])
        assert store.delete_role("AUDITOR") is True
        assert user.roles == {"USER"}

    def test_delete_unknown_role(self, store):
        assert store.delete_role("NOPE") is False


class FakeAsyncClient:
    def __init__(self):
        self.calls = []
        self.values = {}

    async def set(self, key, value, ex=None):
        self.calls.append(("set", key, value, ex))
        self.values[key] = value

    async def get(self, key):
        self.calls.append(("get", key))
        return self.values.get(key)

    async def delete(self, key):
        self.calls.append(("delete", key))
        return 1 if self.values.pop(key, None) is not None else 0

    async def aclose(self):
        self.calls.append(("aclose",))


class FakeSyncClient:
    def __init__(self):
        self.values = {}
        self.closed = False

    def set(self, key, value, ex=None):
        self.values[key] = (value, ex)

    def get(self, key):
        entry = self.values.get(key)
        return entry[0] if entry else None

    def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0

    def close(self):
        self.closed = True


def _async_cache(client):
    cache = RedisCache.__new__(RedisCache)
    cache.redis_url = "redis://fake"
    cache.client = client
    return cache


def _sync_cache(client):
    cache = SyncRedisCache.__new__(SyncRedisCache)
    cache.redis_url = "redis://fake"
    cache.client = client
    return cache


class TestRedisCache:
    def test_key_format(self):
        assert refresh_key("tomdoe") == "refresh:tomdoe"

    async def test_store_uses_single_set_with_ttl(self):
        client = FakeAsyncClient()
        cache = _async_cache(client)
        await cache.store_refresh_token("tomdoe", "tok", 600)
        assert client.calls == [("set", "refresh:tomdoe", "tok", 600)]

    async def test_ttl_is_at_least_one_second(self):
        client = FakeAsyncClient()
        await _async_cache(client).store_refresh_token("tomdoe", "tok", 0)
        assert client.calls[0][3] == 1

    async def test_get_and_delete(self):
        cache = _async_cache(FakeAsyncClient())
        await cache.store_refresh_token("tomdoe", "tok", 600)
        assert await cache.get_refresh_token("tomdoe") == "tok"
        assert await cache.delete_refresh_token("tomdoe") is True
        assert await cache.get_refresh_token("tomdoe") is None
        assert await cache.delete_refresh_token("tomdoe") is False

    async def test_close(self):
        client = FakeAsyncClient()
        await _async_cache(client).close()
        assert client.calls == [("aclose",)]


class TestSyncRedisCache:
    async def test_round_trip_through_sync_client(self):
        client = FakeSyncClient()
        cache = _sync_cache(client)
        await cache.store_refresh_token("tomdoe", "tok", 600)
        assert client.values["refresh:tomdoe"] == ("tok", 600)
        assert await cache.get_refresh_token("tomdoe") == "tok"
        assert await cache.delete_refresh_token("tomdoe") is True

    async def test_close(self):
        client = FakeSyncClient()
        await _sync_cache(client).close()
        assert client.closed
