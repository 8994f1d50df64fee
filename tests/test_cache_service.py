"""Tests for the transcription cache and its store backends."""

import sqlite3

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from duck_transcriber.exceptions import CacheError, DuplicateKeyError
from duck_transcriber.models import LookupStatus, TaskType
from duck_transcriber.services.cache_service import TranscriptionCache
from duck_transcriber.services.cache_store import (
    INSERT_ROW_SCRIPT,
    RedisCacheStore,
    SqliteCacheStore,
)

NOW = 1_700_000_000
WEEK = 7 * 24 * 60 * 60


class _Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class _FakePipeline:
    """Queues hash writes and applies them together on execute."""

    def __init__(self, redis):
        self.redis = redis
        self.queued = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.queued = []

    def hset(self, key, mapping):
        self.queued.append(("hset", key, mapping))
        return self

    def expireat(self, key, when):
        self.queued.append(("expireat", key, when))
        return self

    async def execute(self):
        self.redis._check()
        self.redis.commands.append(("multi", [op for op, *_ in self.queued]))
        for op, key, value in self.queued:
            if op == "hset":
                row = self.redis.hashes.setdefault(key, {})
                row.update({field: str(v) for field, v in value.items()})
            else:
                self.redis.expiry[key] = value
        return [True] * len(self.queued)


class _FakeRedis:
    """Just enough of redis.asyncio.Redis for the hash-based store."""

    def __init__(self, fail=False):
        self.hashes = {}
        self.expiry = {}
        self.commands = []
        self.fail = fail
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def hgetall(self, key):
        self._check()
        return dict(self.hashes.get(key, {}))

    async def eval(self, script, numkeys, key, content_id, column, text, expires_at):
        self._check()
        assert script == INSERT_ROW_SCRIPT
        assert numkeys == 1
        self.commands.append(("eval", key))
        row = self.hashes.setdefault(key, {})
        if "id" in row:
            return 0
        row.update({"id": str(content_id), column: str(text), "expires_at": str(expires_at)})
        self.expiry[key] = expires_at
        return 1

    def pipeline(self, transaction=True):
        assert transaction is True
        return _FakePipeline(self)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def sqlite_store(tmp_path, clock):
    store = SqliteCacheStore(str(tmp_path / "cache.sqlite3"), "duck_transcriber_cache", clock=clock)
    store.ensure_db()
    return store


@pytest.fixture
def fake_redis():
    return _FakeRedis()


@pytest.fixture(params=["sqlite", "redis"])
def cache(request, sqlite_store, fake_redis, clock):
    if request.param == "sqlite":
        store = sqlite_store
    else:
        store = RedisCacheStore("redis://unused", "duck_transcriber_cache", client=fake_redis)
    return TranscriptionCache(store, ttl_days=7, clock=clock)


@pytest.mark.asyncio
async def test_absent_then_found(cache):
    assert (await cache.get("abc123", TaskType.TRANSCRIBE)).status is LookupStatus.ABSENT

    await cache.put_new("abc123", TaskType.TRANSCRIBE, "hello")

    result = await cache.get("abc123", TaskType.TRANSCRIBE)
    assert result.is_found
    assert result.text == "hello"


@pytest.mark.asyncio
async def test_exists_for_other_task(cache):
    await cache.put_new("abc123", TaskType.TRANSCRIBE, "hello")

    result = await cache.get("abc123", TaskType.TRANSLATE)

    assert result.status is LookupStatus.EXISTS_FOR_OTHER_TASK
    assert result.row_exists
    assert result.text is None


@pytest.mark.asyncio
async def test_put_new_is_not_an_upsert(cache):
    await cache.put_new("abc123", TaskType.TRANSCRIBE, "hello")

    with pytest.raises(DuplicateKeyError):
        await cache.put_new("abc123", TaskType.TRANSLATE, "hi")


@pytest.mark.asyncio
async def test_smart_put_inserts_then_updates(cache, clock):
    await cache.smart_put("abc123", TaskType.TRANSCRIBE, "hola")
    row = await cache.store.fetch_row("abc123")
    assert row["transcribe"] == "hola"
    assert "translate" not in row
    assert row["expires_at"] == NOW + WEEK

    clock.now = NOW + 3600
    await cache.smart_put("abc123", TaskType.TRANSLATE, "hello")

    row = await cache.store.fetch_row("abc123")
    assert row["transcribe"] == "hola"
    assert row["translate"] == "hello"
    assert row["expires_at"] == NOW + 3600 + WEEK


@pytest.mark.asyncio
async def test_custom_ttl(cache):
    await cache.put_new("abc123", TaskType.TRANSCRIBE, "hello", ttl=60)

    row = await cache.store.fetch_row("abc123")
    assert row["expires_at"] == NOW + 60


@pytest.mark.asyncio
async def test_redis_sets_key_expiry(fake_redis, clock):
    cache = TranscriptionCache(
        RedisCacheStore("redis://unused", "prefix", client=fake_redis), clock=clock
    )

    await cache.smart_put("abc123", TaskType.TRANSCRIBE, "hello")

    assert fake_redis.expiry["prefix:abc123"] == NOW + WEEK
    assert fake_redis.hashes["prefix:abc123"]["id"] == "abc123"


@pytest.mark.asyncio
async def test_redis_insert_claims_fills_and_expires_in_one_command(fake_redis, clock):
    store = RedisCacheStore("redis://unused", "prefix", client=fake_redis)

    await store.insert_row("abc123", "transcribe", "hello", NOW + WEEK)

    assert fake_redis.commands == [("eval", "prefix:abc123")]
    assert fake_redis.hashes["prefix:abc123"] == {
        "id": "abc123",
        "transcribe": "hello",
        "expires_at": str(NOW + WEEK),
    }
    assert fake_redis.expiry["prefix:abc123"] == NOW + WEEK


@pytest.mark.asyncio
async def test_redis_duplicate_insert_leaves_row_untouched(fake_redis, clock):
    store = RedisCacheStore("redis://unused", "prefix", client=fake_redis)
    await store.insert_row("abc123", "transcribe", "hello", NOW + WEEK)

    with pytest.raises(DuplicateKeyError):
        await store.insert_row("abc123", "transcribe", "other", NOW + 2 * WEEK)

    assert fake_redis.hashes["prefix:abc123"]["transcribe"] == "hello"
    assert fake_redis.expiry["prefix:abc123"] == NOW + WEEK


@pytest.mark.asyncio
async def test_redis_set_column_writes_and_expires_in_one_transaction(fake_redis, clock):
    store = RedisCacheStore("redis://unused", "prefix", client=fake_redis)

    await store.set_column("abc123", "translate", "hi", NOW + WEEK)

    assert fake_redis.commands == [("multi", ["hset", "expireat"])]
    assert fake_redis.hashes["prefix:abc123"]["translate"] == "hi"
    assert fake_redis.expiry["prefix:abc123"] == NOW + WEEK


@pytest.mark.asyncio
async def test_redis_write_outage_raises_cache_error():
    broken = _FakeRedis(fail=True)
    store = RedisCacheStore("redis://unused", "prefix", client=broken)

    with pytest.raises(CacheError):
        await store.insert_row("abc123", "transcribe", "hello", NOW + WEEK)
    with pytest.raises(CacheError):
        await store.set_column("abc123", "transcribe", "hello", NOW + WEEK)

    assert broken.hashes == {}


@pytest.mark.asyncio
async def test_redis_outage_raises_cache_error(clock):
    cache = TranscriptionCache(
        RedisCacheStore("redis://unused", "prefix", client=_FakeRedis(fail=True)), clock=clock
    )

    with pytest.raises(CacheError):
        await cache.get("abc123", TaskType.TRANSCRIBE)


@pytest.mark.asyncio
async def test_redis_close(fake_redis):
    store = RedisCacheStore("redis://unused", "prefix", client=fake_redis)

    await store.close()

    assert fake_redis.closed


@pytest.mark.asyncio
async def test_sqlite_expired_row_is_invisible_and_replaceable(sqlite_store, clock):
    cache = TranscriptionCache(sqlite_store, clock=clock)
    await cache.put_new("abc123", TaskType.TRANSCRIBE, "old", ttl=10)

    clock.now = NOW + 11
    assert (await cache.get("abc123", TaskType.TRANSCRIBE)).status is LookupStatus.ABSENT

    await cache.put_new("abc123", TaskType.TRANSCRIBE, "new")
    assert (await cache.get("abc123", TaskType.TRANSCRIBE)).text == "new"


@pytest.mark.asyncio
async def test_sqlite_purge_expired(sqlite_store, clock):
    cache = TranscriptionCache(sqlite_store, clock=clock)
    await cache.put_new("old", TaskType.TRANSCRIBE, "a", ttl=10)
    await cache.put_new("fresh", TaskType.TRANSCRIBE, "b")

    clock.now = NOW + 11
    removed = await sqlite_store.purge_expired()

    assert removed == 1
    with sqlite3.connect(sqlite_store.path) as conn:
        ids = [row[0] for row in conn.execute("SELECT id FROM duck_transcriber_cache")]
    assert ids == ["fresh"]


def test_sqlite_rejects_bad_table_name(tmp_path):
    with pytest.raises(ValueError):
        SqliteCacheStore(str(tmp_path / "c.sqlite3"), "cache; DROP TABLE x")


@pytest.mark.asyncio
async def test_sqlite_unreadable_database_raises_cache_error(tmp_path):
    store = SqliteCacheStore(str(tmp_path / "missing" / "c.sqlite3"), "cache")

    with pytest.raises(CacheError):
        await store.fetch_row("abc123")
