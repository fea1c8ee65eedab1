"""
Tests for the secondary catalog cache tiers
"""
import gzip
import json

import redis
from unittest.mock import MagicMock

from catalog_cache_file import FileSnapshotCache
from redis_cache import RedisSnapshotCache, create_redis_client

ROWS = [{'movie_name': 'Animal', 'message_id': 101, 'channel_id': -100}]
SIGNATURE = [12, 40, 1700000000000000000]


class TestFileSnapshotCache:

    def test_round_trip(self, tmp_path):
        cache = FileSnapshotCache(str(tmp_path / 'cache' / 'snap.json.gz'))
        assert cache.save(ROWS, 1000.0, SIGNATURE)
        assert cache.load(300, 1100.0) == (ROWS, 1000.0, SIGNATURE)

    def test_missing_or_stale(self, tmp_path):
        cache = FileSnapshotCache(str(tmp_path / 'snap.json.gz'))
        assert cache.load(300, 1000.0) is None
        cache.save(ROWS, 1000.0, SIGNATURE)
        assert cache.load(300, 1299.0) is not None
        assert cache.load(300, 1300.0) is None

    def test_corrupt_file_is_cleared(self, tmp_path):
        path = tmp_path / 'snap.json.gz'
        path.write_bytes(b'not gzip at all')
        cache = FileSnapshotCache(str(path))
        assert cache.load(300, 1000.0) is None
        assert not path.exists()

    def test_missing_keys_are_cleared(self, tmp_path):
        path = tmp_path / 'snap.json.gz'
        with gzip.open(path, 'wt', encoding='utf-8') as f:
            json.dump({'rows': ROWS, 'count': 1}, f)
        cache = FileSnapshotCache(str(path))
        assert cache.load(300, 1000.0) is None
        assert not path.exists()

    def test_clear_missing_file(self, tmp_path):
        FileSnapshotCache(str(tmp_path / 'nope.json.gz')).clear()


class TestRedisSnapshotCache:

    def test_save_uses_ttl(self):
        client = MagicMock()
        cache = RedisSnapshotCache(client, ttl=300)
        assert cache.save(ROWS, 1000.0, SIGNATURE)
        key, ttl, payload = client.setex.call_args[0]
        assert key == 'catalog:snapshot'
        assert ttl == 300
        assert json.loads(payload) == {'rows': ROWS, 'cached_at': 1000.0, 'signature': SIGNATURE}

    def test_load_fresh_snapshot(self):
        client = MagicMock()
        client.get.return_value = json.dumps({'rows': ROWS, 'cached_at': 1000.0, 'signature': SIGNATURE})
        assert RedisSnapshotCache(client).load(300, 1200.0) == (ROWS, 1000.0, SIGNATURE)

    def test_load_stale_snapshot(self):
        client = MagicMock()
        client.get.return_value = json.dumps({'rows': ROWS, 'cached_at': 1000.0, 'signature': SIGNATURE})
        cache = RedisSnapshotCache(client)
        assert cache.load(300, 1900.0) is None
        assert cache.stats['misses'] == 1

    def test_connection_errors_degrade(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError('down')
        client.setex.side_effect = redis.ConnectionError('down')
        cache = RedisSnapshotCache(client)
        assert cache.load(300, 1000.0) is None
        assert cache.save(ROWS, 1000.0) is False

    def test_disabled_without_client(self):
        cache = RedisSnapshotCache(None)
        assert cache.load(300, 1000.0) is None
        assert cache.save(ROWS, 1000.0) is False

    def test_unreachable_server_gives_no_client(self, monkeypatch):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError('refused')
        monkeypatch.setattr(redis, 'from_url', lambda *args, **kwargs: client)
        assert create_redis_client('redis://localhost:1/0') is None
