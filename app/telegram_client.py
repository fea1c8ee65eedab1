"""
Thin client for the Telegram Bot API
"""
import logging
import time
from collections import deque
from typing import Optional, Dict, Any

import requests

from exceptions import TelegramAPIException
from metrics import telegram_calls_total, telegram_call_duration_seconds

logger = logging.getLogger("main")


class TelegramClient:
    """Bot API calls over a shared session with a sliding-window rate limit"""

    def __init__(self, token: str, api_url: str = "https://api.telegram.org", rate_limit_calls: int = 30,
                 rate_limit_window: float = 60, timeout: float = 10, sleep=time.sleep, clock=time.monotonic):
        self.token = token
        self.base_url = f"{api_url.rstrip('/')}/bot{token}"
        self.rate_limit_calls = rate_limit_calls
        self.rate_limit_window = rate_limit_window
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": "MovieCatalogBot"
        })
        self._sleep = sleep
        self._clock = clock
        self._calls = deque()

    @classmethod
    def from_settings(cls, settings):
        telegram = settings["telegram"]
        return cls(
            settings["bot"]["token"],
            api_url=telegram["api_url"],
            rate_limit_calls=telegram["rate_limit_calls"],
            rate_limit_window=telegram["rate_limit_window"],
            timeout=telegram["timeout"],
        )

    def _rate_limit(self):
        """Delay the call while the window already holds the maximum number of calls"""
        now = self._clock()
        while self._calls and now - self._calls[0] >= self.rate_limit_window:
            self._calls.popleft()
        if len(self._calls) >= self.rate_limit_calls:
            wait = self.rate_limit_window - (now - self._calls[0])
            if wait > 0:
                logger.debug(f"Telegram rate limit reached, waiting {wait:.2f}s")
                self._sleep(wait)
            self._calls.popleft()
        self._calls.append(self._clock())

    def call(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """POST a Bot API method and return its ``result``"""
        self._rate_limit()
        started = time.time()
        try:
            response = self.session.post(f"{self.base_url}/{method}", json=payload or {}, timeout=self.timeout)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            telegram_calls_total.labels(method=method, status="error").inc()
            raise TelegramAPIException(f"Request failed: {e}", method=method)
        finally:
            telegram_call_duration_seconds.labels(method=method).observe(time.time() - started)

        if not data.get("ok"):
            telegram_calls_total.labels(method=method, status="error").inc()
            raise TelegramAPIException(data.get("description", f"HTTP {response.status_code}"), method=method)

        telegram_calls_total.labels(method=method, status="ok").inc()
        return data.get("result")

    def send_message(self, chat_id, text, reply_markup=None, parse_mode="HTML", reply_to_message_id=None):
        payload = {"chat_id": chat_id, "text": text, "parse_mode": parse_mode, "disable_web_page_preview": True}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply_to_message_id
        return self.call("sendMessage", payload)

    def edit_message_text(self, chat_id, message_id, text, reply_markup=None, parse_mode="HTML"):
        payload = {"chat_id": chat_id, "message_id": message_id, "text": text, "parse_mode": parse_mode}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return self.call("editMessageText", payload)

    def forward_message(self, chat_id, from_chat_id, message_id):
        return self.call("forwardMessage", {"chat_id": chat_id, "from_chat_id": from_chat_id, "message_id": message_id})

    def copy_message(self, chat_id, from_chat_id, message_id):
        return self.call("copyMessage", {"chat_id": chat_id, "from_chat_id": from_chat_id, "message_id": message_id})

    def answer_callback_query(self, callback_query_id, text=None, show_alert=False):
        payload = {"callback_query_id": callback_query_id, "show_alert": show_alert}
        if text:
            payload["text"] = text
        return self.call("answerCallbackQuery", payload)

    def send_chat_action(self, chat_id, action="typing"):
        return self.call("sendChatAction", {"chat_id": chat_id, "action": action})

    def delete_message(self, chat_id, message_id):
        return self.call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})
