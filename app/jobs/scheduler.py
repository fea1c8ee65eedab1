"""
Background Jobs - periodic catalog flush, auto-delete sweep and request notifications
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
import logging

from exceptions import StorageException, TelegramAPIException

logger = logging.getLogger('main')


class JobScheduler:
    """Background job manager"""

    def __init__(self, services):
        self.services = services
        self.scheduler = BackgroundScheduler()
        self._jobs_registered = False

    def start(self):
        self._register_jobs()
        self.scheduler.start()
        logger.info("Job scheduler initialized")

    def _register_jobs(self):
        """Register all scheduled jobs"""
        if self._jobs_registered:
            return

        self.scheduler.add_job(
            func=self.flush_catalog_job,
            trigger=IntervalTrigger(minutes=1),
            id='flush_catalog',
            name='Flush catalog buffer',
        )

        if self.services.auto_delete is not None:
            self.scheduler.add_job(
                func=self.auto_delete_job,
                trigger=IntervalTrigger(minutes=1),
                id='auto_delete_sweep',
                name='Auto-delete sweep',
            )

        self.scheduler.add_job(
            func=self.notify_requesters_job,
            trigger=IntervalTrigger(minutes=5),
            id='notify_requesters',
            name='Notify requesters',
        )

        self._jobs_registered = True
        logger.info("Background jobs registered")

    def flush_catalog_job(self):
        if not self.services.catalog.flush():
            logger.warning("Scheduled catalog flush failed, records stay buffered")

    def auto_delete_job(self):
        try:
            self.services.auto_delete.sweep(self.services.telegram)
        except StorageException as e:
            logger.error(f"Auto-delete sweep failed: {e.message}")

    def notify_requesters_job(self):
        try:
            delivered = self.services.bot.notify_unnotified()
        except (StorageException, TelegramAPIException) as e:
            logger.error(f"Requester notification job failed: {e.message}")
            return
        if delivered:
            logger.info(f"Notified {delivered} requesters")

    def shutdown(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Job scheduler shutdown")
