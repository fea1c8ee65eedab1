"""
Tests for the background jobs
"""
from unittest.mock import MagicMock

from jobs import JobScheduler
from exceptions import StorageException
from conftest import PUBLIC_CHANNEL, ADMIN_ID, USER_ID


def test_jobs_registered(services):
    scheduler = JobScheduler(services)
    scheduler._register_jobs()
    scheduler._register_jobs()
    assert {job.id for job in scheduler.scheduler.get_jobs()} == {
        'flush_catalog', 'auto_delete_sweep', 'notify_requesters',
    }


def test_no_sweep_without_auto_delete(services):
    services.auto_delete = None
    scheduler = JobScheduler(services)
    scheduler._register_jobs()
    assert 'auto_delete_sweep' not in {job.id for job in scheduler.scheduler.get_jobs()}


def test_flush_job(services):
    services.catalog.append('Animal', 101, PUBLIC_CHANNEL)
    JobScheduler(services).flush_catalog_job()
    assert services.catalog.pending() == []
    assert [r.movie_name for r in services.catalog.read()] == ['Animal']


def test_notify_job(services, telegram):
    services.ledger.submit(USER_ID, 'Animal')
    services.ledger.approve(1, ADMIN_ID)
    JobScheduler(services).notify_requesters_job()
    assert services.ledger.get(1).is_notified


def test_sweep_job_survives_storage_errors(services):
    services.auto_delete = MagicMock()
    services.auto_delete.sweep.side_effect = StorageException('locked')
    JobScheduler(services).auto_delete_job()
    services.auto_delete.sweep.assert_called_once_with(services.telegram)
