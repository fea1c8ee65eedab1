"""
Source channel lookup built from the ``channels`` settings section
"""
import logging

from constants import CHANNEL_PUBLIC, CHANNEL_PRIVATE, CHANNEL_UNKNOWN
from validators import validate_telegram_id

logger = logging.getLogger("main")


class ChannelDirectory:
    """Resolves a channel id to its visibility and display name"""

    def __init__(self, public=None, private=None):
        self._channels = {}
        for kind, entries in ((CHANNEL_PUBLIC, public or []), (CHANNEL_PRIVATE, private or [])):
            for entry in entries:
                channel_id = validate_telegram_id(entry.get("id"))
                if channel_id is None:
                    logger.warning(f"Ignoring channel with invalid id: {entry}")
                    continue
                self._channels[channel_id] = (kind, entry.get("username") or "")

    @classmethod
    def from_settings(cls, settings):
        return cls(settings["channels"].get("public"), settings["channels"].get("private"))

    def kind(self, channel_id):
        channel_id = validate_telegram_id(channel_id)
        if channel_id is None or channel_id not in self._channels:
            return CHANNEL_UNKNOWN
        return self._channels[channel_id][0]

    def is_configured(self, channel_id):
        return self.kind(channel_id) != CHANNEL_UNKNOWN

    def username(self, channel_id):
        kind = self.kind(channel_id)
        if kind == CHANNEL_UNKNOWN:
            return "Unknown Channel"
        username = self._channels[validate_telegram_id(channel_id)][1]
        if kind == CHANNEL_PRIVATE:
            return username or "Private Channel"
        return username
