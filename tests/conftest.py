"""
Pytest fixtures and configuration for movie bot tests
"""
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

# Add app directory to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'app'))

PUBLIC_CHANNEL = -100
PRIVATE_CHANNEL = -200
ADMIN_ID = 999
USER_ID = 4242


class FakeClock:
    """Settable UTC clock"""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / 'data'
    path.mkdir()
    return str(path)


@pytest.fixture
def settings():
    from settings import merge_settings
    return merge_settings({
        'bot': {'token': 'test-token', 'admin_ids': [ADMIN_ID], 'join_channel': '@movies'},
        'channels': {
            'public': [{'id': PUBLIC_CHANNEL, 'username': '@moviespublic'}],
            'private': [{'id': PRIVATE_CHANNEL, 'username': ''}],
        },
    })


@pytest.fixture
def channels(settings):
    from channels import ChannelDirectory
    return ChannelDirectory.from_settings(settings)


@pytest.fixture
def backup_manager(data_dir):
    from backup import BackupManager
    return BackupManager(os.path.join(data_dir, 'backups'))


@pytest.fixture
def catalog_file(data_dir):
    return os.path.join(data_dir, 'movies.csv')


@pytest.fixture
def catalog(catalog_file, backup_manager, channels, data_dir):
    from catalog import CatalogStore
    from catalog_cache_file import FileSnapshotCache
    return CatalogStore(
        catalog_file,
        backup_manager,
        snapshot_cache=FileSnapshotCache(os.path.join(data_dir, 'cache', 'movies_cache.json.gz')),
        channels=channels,
        lock_timeout=0.5,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(data_dir, clock):
    from requests_ledger import RequestLedger
    return RequestLedger(os.path.join(data_dir, 'requests.json'), lock_timeout=0.5, clock=clock)


@pytest.fixture
def telegram():
    """Telegram transport double; every call succeeds"""
    return MagicMock()


@pytest.fixture
def services(settings, data_dir, telegram):
    from server import build_services
    return build_services(settings, data_dir=data_dir, telegram=telegram)
