"""
Re-sends cataloged channel posts to users
"""
import html
import time
import logging

from constants import CHANNEL_PUBLIC, CHANNEL_PRIVATE
from exceptions import TelegramAPIException

logger = logging.getLogger("main")

SEND_PAUSE_SECONDS = 0.5


class DeliveryDispatcher:
    """Forwards from public channels, copies from private ones"""

    def __init__(self, telegram, channels, pause=SEND_PAUSE_SECONDS, sleep=time.sleep):
        self.telegram = telegram
        self.channels = channels
        self.pause = pause
        self._sleep = sleep

    def deliver(self, chat_id, record) -> bool:
        kind = self.channels.kind(record.channel_id)
        try:
            if kind == CHANNEL_PUBLIC:
                self.telegram.forward_message(chat_id, record.channel_id, record.message_id)
                return True
            if kind == CHANNEL_PRIVATE:
                self.telegram.copy_message(chat_id, record.channel_id, record.message_id)
                return True

            logger.warning(f"Record from unconfigured channel {record.channel_id}, sending text fallback")
            self.telegram.send_message(
                chat_id,
                f"🎬 <b>{html.escape(record.movie_name)}</b>\n📝 Message ID: {record.message_id}\n"
                f"📡 Channel: {self.channels.username(record.channel_id)}",
            )
        except TelegramAPIException as e:
            logger.error(f"Delivery of message {record.message_id} from {record.channel_id} failed: {e.message}")
        return False

    def deliver_group(self, chat_id, records) -> int:
        """Send every record of a search group; returns how many went out"""
        sent = 0
        for index, record in enumerate(records):
            if index:
                self._sleep(self.pause)
            if self.deliver(chat_id, record):
                sent += 1
        logger.info(f"Delivered {sent}/{len(records)} records to {chat_id}")
        return sent
