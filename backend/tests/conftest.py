# backend/tests/conftest.py
"""
Pytest configuration and shared fixtures for imagestore tests.

FakeRedis implements just enough of ``redis.asyncio.Redis`` for the catalog:
hashes, streams with ``<ms>-<seq>`` ids, cursor SCAN and MULTI pipelines.
"""

import fnmatch
import time
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from redis.exceptions import RedisError

from imagestore.config import Settings
from imagestore.models.reference_model import (
    Camera,
    MediaType,
    ReferenceSnapshot,
    ThumbnailSpec,
)


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.commands: List[Tuple[str, tuple, dict]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.commands.clear()

    def delete(self, *keys):
        self.commands.append(("delete", keys, {}))
        return self

    def hset(self, key, field=None, value=None, mapping=None):
        self.commands.append(("hset", (key, field, value), {"mapping": mapping}))
        return self

    async def execute(self):
        self.redis._check("execute")
        results = []
        for name, args, kwargs in self.commands:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.commands.clear()
        return results


class FakeRedis:
    """In-memory stand-in for the subset of redis.asyncio the catalog uses."""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.streams: Dict[str, List[Tuple[str, Dict[str, str]]]] = {}
        self.fail_on: Set[str] = set()
        self.closed = False
        self.scan_calls = 0

    def _check(self, command: str) -> None:
        if command in self.fail_on:
            raise RedisError(f"{command} failed")

    async def hsetnx(self, key: str, field: str, value: str) -> int:
        self._check("hsetnx")
        fields = self.hashes.setdefault(key, {})
        if field in fields:
            return 0
        fields[field] = str(value)
        return 1

    async def hset(self, key, field=None, value=None, mapping=None) -> int:
        self._check("hset")
        fields = self.hashes.setdefault(key, {})
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        added = sum(1 for f in items if f not in fields)
        fields.update({f: str(v) for f, v in items.items()})
        return added

    async def hgetall(self, key: str) -> Dict[str, str]:
        self._check("hgetall")
        return dict(self.hashes.get(key, {}))

    async def exists(self, *keys: str) -> int:
        return sum(1 for k in keys if k in self.hashes or k in self.streams)

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        removed = 0
        for key in keys:
            if self.hashes.pop(key, None) is not None:
                removed += 1
            elif self.streams.pop(key, None) is not None:
                removed += 1
        return removed

    async def xadd(self, name: str, fields: Dict[str, Any]) -> str:
        self._check("xadd")
        entries = self.streams.setdefault(name, [])
        millis = int(time.time() * 1000)
        sequence = 0
        if entries:
            last_ms, last_seq = (int(p) for p in entries[-1][0].split("-"))
            if millis <= last_ms:
                millis, sequence = last_ms, last_seq + 1
        event_id = f"{millis}-{sequence}"
        entries.append((event_id, {k: str(v) for k, v in fields.items()}))
        return event_id

    async def xlen(self, name: str) -> int:
        return len(self.streams.get(name, []))

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None):
        self._check("scan")
        self.scan_calls += 1
        keys = sorted(set(self.hashes) | set(self.streams))
        page = count or 10
        batch = keys[cursor:cursor + page]
        next_cursor = cursor + page if cursor + page < len(keys) else 0
        if match:
            batch = [k for k in batch if fnmatch.fnmatchcase(k, match)]
        return next_cursor, batch

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment, storing images under tmp_path."""
    return Settings(
        _env_file=None,
        environment="test",
        images_path=str(tmp_path / "images"),
        max_image_threads=2,
        max_image_queue=4,
        import_interval=0.01,
        import_timeout=1.0,
        reconcile_progress_interval=0.05,
        pg_password_file=str(tmp_path / "pgpassword"),
    )


def make_snapshot(
    cameras: Iterable[str] = ("front-door",),
    specs: Optional[Dict[str, Dict[str, Any]]] = None,
) -> ReferenceSnapshot:
    """Reference snapshot with the given cameras and thumbnail specs."""
    if specs is None:
        specs = {
            "small": {"width": 160, "height": 120},
            "large": {"width": 1024, "height": 768},
        }
    return ReferenceSnapshot(
        schema_version="3",
        media_types={
            "image/jpeg": MediaType(id=1, type_name="image/jpeg", extension="jpg"),
            "image/png": MediaType(id=2, type_name="image/png", extension="png"),
        },
        cameras={
            name: Camera(id=index, name=name) for index, name in enumerate(cameras, start=1)
        },
        thumbnail_specs={
            name: ThumbnailSpec(id=index, name=name, params=params)
            for index, (name, params) in enumerate(specs.items(), start=1)
        },
    )


@pytest.fixture
def snapshot():
    return make_snapshot()


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def mock_dal(snapshot):
    """Data access layer double backed by the default snapshot."""
    dal = Mock()
    dal.snapshot = snapshot
    dal.camera_exists = AsyncMock(side_effect=lambda name: name in snapshot.cameras)
    dal.create_photo = AsyncMock(return_value=1)
    dal.get_thumbnail_specs = Mock(side_effect=lambda: dict(snapshot.thumbnail_specs))
    dal.media_type_for_extension = Mock(
        side_effect=lambda ext: (
            snapshot.media_type_for_extension(ext).type_name
            if snapshot.media_type_for_extension(ext)
            else None
        )
    )
    return dal


@pytest.fixture
def mock_async_db():
    """
    Mock async database for testing database operations.

    Returns:
        tuple: (db_mock, connection_mock, cursor_mock) for easy access in tests
    """
    db = MagicMock()
    conn = MagicMock()
    cursor = AsyncMock()

    db.get_connection.return_value.__aenter__ = AsyncMock(return_value=conn)
    db.get_connection.return_value.__aexit__ = AsyncMock(return_value=None)
    db.transaction.return_value.__aenter__ = AsyncMock(return_value=conn)
    db.transaction.return_value.__aexit__ = AsyncMock(return_value=None)
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=None)

    return db, conn, cursor
