"""
Per-user points and global usage counters
"""
import logging

from constants import POINTS
from file_lock import locked
from utils import safe_write_json, load_json, now_utc

logger = logging.getLogger("main")


def _empty_users():
    return {"users": {}}


def _empty_stats():
    return {"total_users": 0, "total_searches": 0, "total_movies_found": 0, "last_updated": None}


class BotStats:
    """users.json registry and bot_stats.json counters"""

    def __init__(self, users_file, stats_file, lock_timeout=5.0):
        self.users_file = users_file
        self.stats_file = stats_file
        self.lock_timeout = lock_timeout

    def touch_user(self, user):
        """Register or refresh a Telegram user; awards the daily login bonus once per UTC day"""
        user_id = str(user["id"])
        now = now_utc()
        today = now.date().isoformat()
        new_user = False
        with locked(self.users_file, timeout=self.lock_timeout):
            data = load_json(self.users_file, _empty_users)
            entry = data.setdefault("users", {}).get(user_id)
            if entry is None:
                new_user = True
                entry = data["users"][user_id] = {
                    "first_name": user.get("first_name", ""),
                    "username": user.get("username", ""),
                    "joined": now.isoformat(),
                    "points": 0,
                    "last_login": None,
                }
            entry["last_active"] = now.isoformat()
            if entry.get("last_login") != today:
                entry["last_login"] = today
                entry["points"] = entry.get("points", 0) + POINTS["daily_login"]
            safe_write_json(self.users_file, data)

        if new_user:
            self.increment("total_users")
            logger.info(f"New user registered: {user_id}")
        return new_user

    def add_points(self, user_id, action):
        with locked(self.users_file, timeout=self.lock_timeout):
            data = load_json(self.users_file, _empty_users)
            entry = data.setdefault("users", {}).get(str(user_id))
            if entry is None:
                return False
            entry["points"] = entry.get("points", 0) + POINTS.get(action, 0)
            safe_write_json(self.users_file, data)
        return True

    def points(self, user_id):
        return load_json(self.users_file, _empty_users).get("users", {}).get(str(user_id), {}).get("points", 0)

    def increment(self, field, amount=1):
        with locked(self.stats_file, timeout=self.lock_timeout):
            stats = load_json(self.stats_file, _empty_stats)
            stats[field] = stats.get(field, 0) + amount
            stats["last_updated"] = now_utc().isoformat()
            safe_write_json(self.stats_file, stats)

    def stats(self):
        stats = _empty_stats()
        stats.update(load_json(self.stats_file, _empty_stats))
        return stats
