import sys
from pathlib import Path

import pytest
import redis

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.settings import Settings  # noqa: E402
from jobs.queue import RedisQueue  # noqa: E402
from jobs.schemas import PatternCreate  # noqa: E402
from jobs.service import JobStore  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for the async Redis commands the queue issues."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.strings: dict[str, tuple[str, float | None]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def _live(self, key: str) -> bool:
        entry = self.strings.get(key)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self.strings[key]
            return False
        return True

    async def incr(self, key: str) -> int:
        self._check()
        value = int(self.strings.get(key, ("0", None))[0]) + 1
        self.strings[key] = (str(value), None)
        return value

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        self._check()
        if nx and self._live(key):
            return None
        expires_at = self._clock() + ex if ex else None
        self.strings[key] = (str(value), expires_at)
        return True

    async def hset(self, key: str, field: str, value: str) -> int:
        self._check()
        bucket = self.hashes.setdefault(key, {})
        created = field not in bucket
        bucket[field] = str(value)
        return int(created)

    async def hget(self, key: str, field: str) -> str | None:
        self._check()
        return self.hashes.get(key, {}).get(field)

    async def hdel(self, key: str, *fields: str) -> int:
        self._check()
        bucket = self.hashes.get(key, {})
        return sum(1 for field in fields if bucket.pop(field, None) is not None)

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        self._check()
        bucket = self.hashes.setdefault(key, {})
        value = int(bucket.get(field, "0")) + amount
        bucket[field] = str(value)
        return value

    async def hkeys(self, key: str) -> list[str]:
        self._check()
        return list(self.hashes.get(key, {}))

    async def hlen(self, key: str) -> int:
        self._check()
        return len(self.hashes.get(key, {}))

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        self._check()
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    async def zrem(self, key: str, *members: str) -> int:
        self._check()
        zset = self.zsets.get(key, {})
        return sum(1 for member in members if zset.pop(member, None) is not None)

    async def zcard(self, key: str) -> int:
        self._check()
        return len(self.zsets.get(key, {}))

    @staticmethod
    def _bound(value: float | str) -> float:
        if value == "-inf":
            return float("-inf")
        if value == "+inf":
            return float("inf")
        return float(value)

    async def zcount(self, key: str, min: float | str, max: float | str) -> int:
        self._check()
        low, high = self._bound(min), self._bound(max)
        return sum(1 for score in self.zsets.get(key, {}).values() if low <= score <= high)

    async def zrangebyscore(
        self,
        key: str,
        min: float | str,
        max: float | str,
        start: int | None = None,
        num: int | None = None,
        withscores: bool = False,
    ) -> list:
        self._check()
        low, high = self._bound(min), self._bound(max)
        members = sorted(
            ((member, score) for member, score in self.zsets.get(key, {}).items() if low <= score <= high),
            key=lambda item: (item[1], item[0]),
        )
        if start is not None and num is not None:
            members = members[start : start + num]
        if withscores:
            return members
        return [member for member, _ in members]

    async def aclose(self) -> None:  # pragma: no cover - noop
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
def queue(fake_redis: FakeRedis, clock: FakeClock) -> RedisQueue:
    return RedisQueue(fake_redis, "test_jobs", clock=clock)


@pytest.fixture
def store(tmp_path: Path) -> JobStore:
    return JobStore(f"sqlite:///{tmp_path / 'imggo.db'}")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path,
        queue_name="test_jobs",
        batch_size=5,
        visibility_timeout_seconds=300,
        poll_interval_seconds=0.01,
        llm_api_key="test-key",
    )


@pytest.fixture
def json_pattern(store: JobStore):
    return store.create_pattern(
        PatternCreate(
            user_id="user-1",
            name="Receipt",
            format="json",
            instructions="Extract the receipt fields.",
            json_schema={
                "type": "object",
                "required": ["a", "b"],
                "properties": {"b": {"type": "string"}, "a": {"type": "string"}},
            },
        )
    )
