"""
Auto-delete ledger

Ordinary user messages and forwards are removed after a timeout, with a
warning reply shortly before. Channel posts, admin messages and commands
are never scheduled.
"""
import json
import os
import time
from typing import Callable

import structlog

from exceptions import StorageException, TelegramAPIException
from file_lock import locked
from messages import auto_delete_warning
from metrics import auto_delete_tracked, auto_delete_deleted_total
from utils import safe_write_json, now_utc

logger = structlog.get_logger("auto_delete")


def _empty_ledger():
    return {"messages": [], "stats": {"total_deleted": 0, "last_cleanup": None}}


class AutoDeleteLedger:

    def __init__(self, path, admin_ids=(), timeout_minutes=30, warning_minutes=5, lock_timeout=5.0,
                 clock: Callable[[], float] = time.time):
        self.path = path
        self.admin_ids = set(admin_ids)
        self.timeout_minutes = timeout_minutes
        self.warning_minutes = warning_minutes
        self.lock_timeout = lock_timeout
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, path):
        config = settings["auto_delete"]
        return cls(
            path,
            admin_ids=settings["bot"]["admin_ids"],
            timeout_minutes=config["timeout_minutes"],
            warning_minutes=config["warning_minutes"],
            lock_timeout=settings["catalog"]["lock_timeout"],
        )

    def _load(self):
        if not os.path.exists(self.path):
            return _empty_ledger()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageException(f"Could not read auto-delete ledger {self.path}: {e}")
        for key, value in _empty_ledger().items():
            data.setdefault(key, value)
        return data

    def _save(self, data):
        try:
            safe_write_json(self.path, data)
        except (OSError, TypeError, ValueError) as e:
            raise StorageException(f"Could not write auto-delete ledger {self.path}: {e}")
        auto_delete_tracked.set(len(data["messages"]))

    def should_delete(self, user_id, is_forward=False, is_command=False, chat_type="private"):
        if chat_type == "channel":
            return False
        if user_id in self.admin_ids:
            return False
        if is_command:
            return False
        # Forwards and ordinary user messages
        return True

    def register(self, chat_id, message_id, user_id=None, is_forward=False, is_command=False, chat_type="private"):
        """Schedule a message for deletion; returns False when the rules keep it"""
        if not self.should_delete(user_id, is_forward, is_command, chat_type):
            return False

        now = self._clock()
        delete_at = now + self.timeout_minutes * 60
        entry = {
            "chat_id": chat_id,
            "message_id": message_id,
            "user_id": user_id,
            "is_forward": is_forward,
            "registered_at": now,
            "delete_at": delete_at,
            "warning_at": delete_at - self.warning_minutes * 60,
            "warning_sent": False,
        }
        with locked(self.path, timeout=self.lock_timeout):
            data = self._load()
            data["messages"].append(entry)
            self._save(data)

        logger.info("auto_delete_registered", chat_id=chat_id, message_id=message_id,
                    delete_in_minutes=self.timeout_minutes)
        return True

    def sweep(self, telegram, now=None):
        """Delete due messages and warn about soon-due ones; returns the counts"""
        now = self._clock() if now is None else now

        with locked(self.path, shared=True, timeout=self.lock_timeout):
            messages = self._load()["messages"]
        due = [m for m in messages if now >= m["delete_at"]]
        warn = [m for m in messages if now < m["delete_at"] and now >= m["warning_at"] and not m["warning_sent"]]
        if not due and not warn:
            return {"deleted": 0, "warned": 0}

        # Telegram calls happen outside the lock
        deleted = 0
        for message in due:
            try:
                telegram.delete_message(message["chat_id"], message["message_id"])
                deleted += 1
                auto_delete_deleted_total.labels(status="ok").inc()
            except TelegramAPIException as e:
                # Already gone or too old to delete; the entry is dropped either way
                auto_delete_deleted_total.labels(status="failed").inc()
                logger.warning("auto_delete_failed", chat_id=message["chat_id"],
                               message_id=message["message_id"], error=e.message)

        warned = []
        for message in warn:
            try:
                telegram.send_message(message["chat_id"], auto_delete_warning(self.warning_minutes),
                                      reply_to_message_id=message["message_id"])
            except TelegramAPIException as e:
                logger.warning("auto_delete_warning_failed", chat_id=message["chat_id"], error=e.message)
            warned.append(message)

        def key(m):
            return m["chat_id"], m["message_id"]

        due_keys = {key(m) for m in due}
        warned_keys = {key(m) for m in warned}
        with locked(self.path, timeout=self.lock_timeout):
            data = self._load()
            remaining = []
            for message in data["messages"]:
                if key(message) in due_keys:
                    continue
                if key(message) in warned_keys:
                    message["warning_sent"] = True
                remaining.append(message)
            data["messages"] = remaining
            data["stats"]["total_deleted"] += deleted
            data["stats"]["last_cleanup"] = now_utc().isoformat()
            self._save(data)

        logger.info("auto_delete_sweep", deleted=deleted, warned=len(warned), remaining=len(remaining))
        return {"deleted": deleted, "warned": len(warned)}

    def stats(self, now=None):
        now = self._clock() if now is None else now
        with locked(self.path, shared=True, timeout=self.lock_timeout):
            data = self._load()
        return {
            "timeout": self.timeout_minutes,
            "total_deleted": data["stats"]["total_deleted"],
            "pending_count": sum(1 for m in data["messages"] if m["delete_at"] > now),
            "last_cleanup": data["stats"]["last_cleanup"],
        }
