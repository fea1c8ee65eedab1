"""
Channel post ingestion: catalog append followed by request auto-approval
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog

from exceptions import StorageException, TelegramAPIException
from utils import now_utc

logger = structlog.get_logger("ingest")


def extract_post_text(post, now=None):
    """Catalog text for a channel post: caption, text, document file name, or a timestamped placeholder"""
    for value in (post.get("caption"), post.get("text"), (post.get("document") or {}).get("file_name")):
        if value and value.strip():
            return value.strip()
    return "Media Upload - " + (now or now_utc()).strftime("%d-%m-%Y %H:%M")


@dataclass
class IngestResult:
    accepted: bool
    approved_ids: List[int] = field(default_factory=list)


class IngestService:
    """Links catalog appends to request resolution"""

    def __init__(self, catalog, ledger, notifier: Optional[Callable] = None):
        self.catalog = catalog
        self.ledger = ledger
        self.notifier = notifier

    def ingest(self, channel_id, message_id, text) -> IngestResult:
        # append invalidates the cache before auto_approve runs
        if not self.catalog.append(text, message_id, channel_id):
            logger.info("channel_post_ignored", channel_id=channel_id, message_id=message_id)
            return IngestResult(accepted=False)

        approved = self.ledger.auto_approve(text)
        logger.info("channel_post_ingested", channel_id=channel_id, message_id=message_id,
                    movie_name=text, auto_approved=approved)
        if approved and self.notifier is not None:
            self._notify(approved)
        return IngestResult(accepted=True, approved_ids=approved)

    def _notify(self, request_ids):
        for request_id in request_ids:
            try:
                request = self.ledger.get(request_id)
                if request and self.notifier(request):
                    self.ledger.mark_notified(request_id)
            except (StorageException, TelegramAPIException) as e:
                # Left unnotified; the notification job retries it
                logger.warning("requester_notification_failed", request_id=request_id, error=e.message)
