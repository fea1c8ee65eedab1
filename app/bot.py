"""
Telegram update handling
"""
import logging
import re

from callbacks import (
    decode_callback, SelectMovie, UploadsPage, UploadsView, UploadsStop, RequestGuide, ShowHelp, ShowStats,
    BackToStart, Approve, Reject, RejectWithReason, RejectCustom, BulkApprove, BulkReject, PendingMore,
)
from constants import NOISE_KEYWORDS, REJECT_REASONS, BULK_REJECT_REASON
from exceptions import StorageException, TelegramAPIException
from file_lock import locked
from ingest import extract_post_text
from metrics import updates_total, catalog_searches_total
from utils import load_json, safe_write_json
from validators import clean_text, validate_command
import messages

logger = logging.getLogger("main")

PENDING_PAGE_SIZE = 5

ADMIN_CALLBACKS = (Approve, Reject, RejectWithReason, RejectCustom, BulkApprove, BulkReject, PendingMore)


REQUEST_PHRASES = ("add movie", "please add", "pls add", "can you add", "request movie")

# Tried in order; the first match supplies the title
REQUEST_PATTERNS = [re.compile(pattern, re.IGNORECASE) for pattern in (
    r"add movie (.+)",
    r"please add (.+)",
    r"pls add (.+)",
    r"add (.+) movie",
    r"can you add (.+)",
    r"request movie (.+)",
    r"request (.+) movie",
)]

_request_words_re = re.compile(r"add movie|please add|pls add|movie|add|request|can you", re.IGNORECASE)


def extract_request_title(text):
    """
    Title asked for in a chat phrase such as "pls add KGF 3".

    Returns None when the text is not a request phrase, otherwise the
    extracted title (possibly empty or too short to submit).
    """
    lowered = text.lower()
    if not any(phrase in lowered for phrase in REQUEST_PHRASES):
        return None
    for pattern in REQUEST_PATTERNS:
        match = pattern.search(text)
        if match:
            title = match.group(1).strip()
            if title:
                return title
            break
    return _request_words_re.sub("", text).strip()


def is_noise_query(query):
    """True when most words of the query are chatter rather than a title"""
    words = query.lower().split()
    if not words:
        return True
    noise = sum(1 for word in words if word in NOISE_KEYWORDS)
    return noise > len(words) / 2


class MovieBot:

    def __init__(self, settings, telegram, catalog, ledger, ingest, delivery, channels, bot_stats,
                 auto_delete=None, pending_rejections_file=None):
        self.settings = settings
        self.telegram = telegram
        self.catalog = catalog
        self.ledger = ledger
        self.ingest = ingest
        self.delivery = delivery
        self.channels = channels
        self.bot_stats = bot_stats
        self.auto_delete = auto_delete
        self.pending_rejections_file = pending_rejections_file

        self.commands = {
            "/start": self.cmd_start,
            "/help": self.cmd_help,
            "/request": self.cmd_request,
            "/myrequests": self.cmd_my_requests,
            "/pendingrequests": self.cmd_pending_requests,
            "/stats": self.cmd_stats,
            "/csvstats": self.cmd_csv_stats,
            "/totalupload": self.cmd_total_upload,
            "/autodelete": self.cmd_auto_delete,
        }
        self.admin_commands = {"/pendingrequests", "/stats", "/autodelete"}

        self.callback_handlers = {
            SelectMovie: self.on_select_movie,
            UploadsPage: self.on_uploads_page,
            UploadsView: self.on_uploads_view,
            UploadsStop: self.on_uploads_stop,
            RequestGuide: self.on_request_guide,
            ShowHelp: self.on_show_help,
            ShowStats: self.on_show_stats,
            BackToStart: self.on_back_to_start,
            Approve: self.on_approve,
            Reject: self.on_reject,
            RejectWithReason: self.on_reject_with_reason,
            RejectCustom: self.on_reject_custom,
            BulkApprove: self.on_bulk_approve,
            BulkReject: self.on_bulk_reject,
            PendingMore: self.on_pending_more,
        }

    @property
    def admin_ids(self):
        return set(self.settings["bot"]["admin_ids"])

    def is_admin(self, user_id):
        return user_id in self.admin_ids

    # ---------------------------------------------------------------- entry

    def handle_update(self, update):
        """Route one webhook update"""
        chat_id = None
        try:
            if "channel_post" in update:
                updates_total.labels(kind="channel_post").inc()
                self.handle_channel_post(update["channel_post"])
            elif "message" in update:
                updates_total.labels(kind="message").inc()
                chat_id = update["message"]["chat"]["id"]
                self.handle_message(update["message"])
            elif "callback_query" in update:
                updates_total.labels(kind="callback_query").inc()
                message = update["callback_query"].get("message") or {}
                chat_id = (message.get("chat") or {}).get("id")
                self.handle_callback(update["callback_query"])
            else:
                updates_total.labels(kind="ignored").inc()
        except StorageException as e:
            logger.error(f"Storage failure while handling update {update.get('update_id')}: {e.message}")
            if chat_id is not None:
                self._send(chat_id, messages.GENERIC_FAILURE)
        except TelegramAPIException as e:
            logger.error(f"Telegram failure while handling update {update.get('update_id')}: {e.message}")

    def _send(self, chat_id, text, reply_markup=None):
        try:
            return self.telegram.send_message(chat_id, text, reply_markup=reply_markup)
        except TelegramAPIException as e:
            logger.warning(f"Could not send message to {chat_id}: {e.message}")
            return None

    def handle_channel_post(self, post):
        channel_id = post["chat"]["id"]
        if not self.channels.is_configured(channel_id):
            logger.debug(f"Ignoring post from unconfigured channel {channel_id}")
            return None
        return self.ingest.ingest(channel_id, post["message_id"], extract_post_text(post))

    def handle_message(self, message):
        chat_id = message["chat"]["id"]
        chat_type = message["chat"].get("type", "private")
        user = message.get("from") or {}
        user_id = user.get("id")
        text = (message.get("text") or "").strip()
        is_command = text.startswith("/")

        if user_id:
            self.bot_stats.touch_user(user)

        if self.auto_delete is not None:
            is_forward = any(key in message for key in ("forward_origin", "forward_from", "forward_from_chat"))
            self.auto_delete.register(chat_id, message["message_id"], user_id, is_forward, is_command, chat_type)

        if self.settings["bot"]["maintenance"] and not self.is_admin(user_id):
            self._send(chat_id, messages.MAINTENANCE)
            return

        if self.is_admin(user_id) and not is_command and text:
            request_id = self._pop_pending_rejection(user_id)
            if request_id is not None:
                self._reject_and_notify(chat_id, request_id, user_id, clean_text(text))
                return

        if is_command:
            command, _, args = text.partition(" ")
            command = validate_command(command.split("@")[0].lower())
            handler = self.commands.get(command)
            if handler is None:
                self._send(chat_id, "❓ Unknown command. Send /help to see what I can do.")
                return
            if command in self.admin_commands and not self.is_admin(user_id):
                self._send(chat_id, messages.ADMIN_ONLY)
                return
            handler(chat_id, user, args.strip())
        elif text:
            title = extract_request_title(text)
            if title is not None:
                self.submit_request(chat_id, user, title)
            else:
                self.search(chat_id, user_id, text)

    # --------------------------------------------------------------- search

    def search(self, chat_id, user_id, query):
        if len(query) < 2:
            self._send(chat_id, messages.QUERY_TOO_SHORT)
            return
        if is_noise_query(query):
            catalog_searches_total.labels(outcome="noise").inc()
            self._send(chat_id, messages.NOISE_QUERY)
            return

        try:
            self.telegram.send_chat_action(chat_id, "typing")
        except TelegramAPIException as e:
            logger.debug(f"Chat action failed for {chat_id}: {e.message}")

        self.bot_stats.increment("total_searches")
        if user_id:
            self.bot_stats.add_points(user_id, "search")

        groups = self.catalog.search(query)
        if not groups:
            catalog_searches_total.labels(outcome="not_found").inc()
            self._send(chat_id, *messages.not_found(query))
            return

        catalog_searches_total.labels(outcome="found").inc()
        self.bot_stats.increment("total_movies_found")
        if user_id:
            self.bot_stats.add_points(user_id, "found_movie")
        self._send(chat_id, *messages.search_results(query, groups))

    # ------------------------------------------------------------- commands

    def cmd_start(self, chat_id, user, args):
        self._send(chat_id, *messages.welcome(user.get("first_name"), self.settings["bot"]["join_channel"]))

    def cmd_help(self, chat_id, user, args):
        self._send(chat_id, *messages.help_text(self.is_admin(user.get("id"))))

    def cmd_request(self, chat_id, user, args):
        self.submit_request(chat_id, user, args)

    def submit_request(self, chat_id, user, movie_name):
        """Shared path of /request and chat phrases such as pls add <title>"""
        if not self.settings["requests"]["enabled"]:
            self._send(chat_id, messages.REQUESTS_DISABLED)
            return
        if len(movie_name) < 2:
            self._send(chat_id, messages.request_guide(self.settings["requests"]["max_per_day"]))
            return

        display_name = user.get("username") or user.get("first_name") or ""
        result = self.ledger.submit(user.get("id"), movie_name, display_name)
        self._send(chat_id, messages.request_result(result))
        if result.success:
            text, markup = messages.new_request_for_admins(result.request)
            for admin_id in self.admin_ids:
                self._send(admin_id, text, markup)

    def cmd_my_requests(self, chat_id, user, args):
        user_id = user.get("id")
        requests = self.ledger.list_for_user(user_id, 10)
        self._send(chat_id, messages.user_requests(requests, self.ledger.user_stats(user_id)))

    def cmd_pending_requests(self, chat_id, user, args):
        self.show_pending(chat_id, 0, args or None)

    def show_pending(self, chat_id, offset, movie_filter=None):
        pending = self.ledger.list_pending(limit=None, movie_filter=movie_filter)
        page = pending[offset:offset + PENDING_PAGE_SIZE]
        self._send(chat_id, *messages.pending_requests(page, offset, len(pending), PENDING_PAGE_SIZE))

    def cmd_stats(self, chat_id, user, args):
        auto_delete = self.auto_delete.stats() if self.auto_delete is not None else None
        self._send(chat_id, messages.admin_stats(
            self.catalog.stats(), self.ledger.stats(), self.bot_stats.stats(), auto_delete
        ))

    def cmd_csv_stats(self, chat_id, user, args):
        self._send(chat_id, messages.catalog_stats(self.catalog.stats(), self.channels))

    def cmd_total_upload(self, chat_id, user, args):
        page = int(args) if args.isdigit() else 1
        self._send(chat_id, *messages.uploads_page(self._uploads(page)))

    def _uploads(self, page):
        return self.catalog.page(page, self.settings["catalog"]["items_per_page"])

    def cmd_auto_delete(self, chat_id, user, args):
        self._send(chat_id, messages.auto_delete_status(self.auto_delete.stats() if self.auto_delete else None))

    # ------------------------------------------------------------ callbacks

    def handle_callback(self, query):
        user_id = query["from"]["id"]
        message = query.get("message") or {}
        command = decode_callback(query.get("data"))
        if command is None:
            logger.warning(f"Unknown callback payload from {user_id}: {query.get('data')!r}")
            self.telegram.answer_callback_query(query["id"], "This button has expired.")
            return
        if isinstance(command, ADMIN_CALLBACKS) and not self.is_admin(user_id):
            self.telegram.answer_callback_query(query["id"], messages.ADMIN_ONLY, show_alert=True)
            return

        answer = self.callback_handlers[type(command)](command, message["chat"]["id"], message.get("message_id"), query)
        self.telegram.answer_callback_query(query["id"], answer)

    def on_select_movie(self, command, chat_id, message_id, query):
        records = self.catalog.records_for(command.movie_name)
        if not records:
            groups = self.catalog.search(command.movie_name)
            records = next(iter(groups.values())).records if groups else []
        if not records:
            return "❌ Movie not found"
        sent = self.delivery.deliver_group(chat_id, records)
        return f"✅ Sent {sent} file(s)"

    def on_uploads_page(self, command, chat_id, message_id, query):
        text, markup = messages.uploads_page(self._uploads(command.page))
        self.telegram.edit_message_text(chat_id, message_id, text, markup)
        return None

    def on_uploads_view(self, command, chat_id, message_id, query):
        sent = self.delivery.deliver_group(chat_id, self._uploads(command.page)["items"])
        return f"✅ Sent {sent} file(s)"

    def on_uploads_stop(self, command, chat_id, message_id, query):
        self.telegram.edit_message_text(chat_id, message_id, messages.UPLOADS_STOPPED)
        return None

    def on_request_guide(self, command, chat_id, message_id, query):
        self._send(chat_id, messages.request_guide(self.settings["requests"]["max_per_day"]))
        return None

    def on_show_help(self, command, chat_id, message_id, query):
        text, markup = messages.help_text(self.is_admin(query["from"]["id"]))
        self.telegram.edit_message_text(chat_id, message_id, text, markup)
        return None

    def on_show_stats(self, command, chat_id, message_id, query):
        self._send(chat_id, messages.catalog_stats(self.catalog.stats(), self.channels))
        return None

    def on_back_to_start(self, command, chat_id, message_id, query):
        text, markup = messages.welcome(query["from"].get("first_name"), self.settings["bot"]["join_channel"])
        self.telegram.edit_message_text(chat_id, message_id, text, markup)
        return None

    def on_approve(self, command, chat_id, message_id, query):
        result = self.ledger.approve(command.request_id, query["from"]["id"])
        if result.success:
            self.notify_requester(result.request)
        return result.message

    def on_reject(self, command, chat_id, message_id, query):
        self._send(chat_id, *messages.reject_reasons(command.request_id))
        return None

    def on_reject_with_reason(self, command, chat_id, message_id, query):
        reason = REJECT_REASONS.get(command.reason_key)
        if reason is None:
            return "Unknown reason"
        result = self.ledger.reject(command.request_id, query["from"]["id"], reason)
        if result.success:
            self.notify_requester(result.request)
        return result.message

    def on_reject_custom(self, command, chat_id, message_id, query):
        self._set_pending_rejection(query["from"]["id"], command.request_id)
        self._send(chat_id, messages.custom_reason_prompt(command.request_id))
        return None

    def on_bulk_approve(self, command, chat_id, message_id, query):
        bulk = self.ledger.bulk_approve(command.request_ids, query["from"]["id"])
        self._notify_bulk(bulk)
        return messages.bulk_summary("Approved", bulk)

    def on_bulk_reject(self, command, chat_id, message_id, query):
        bulk = self.ledger.bulk_reject(command.request_ids, query["from"]["id"], BULK_REJECT_REASON)
        self._notify_bulk(bulk)
        return messages.bulk_summary("Rejected", bulk)

    def on_pending_more(self, command, chat_id, message_id, query):
        self.show_pending(chat_id, command.offset)
        return None

    # --------------------------------------------------------- moderation

    def _reject_and_notify(self, chat_id, request_id, moderator_id, reason):
        if len(reason) < 2:
            self._send(chat_id, "✍️ The reason is too short, the request stays pending.")
            return
        result = self.ledger.reject(request_id, moderator_id, reason)
        self._send(chat_id, messages.request_result(result))
        if result.success:
            self.notify_requester(result.request)

    def _notify_bulk(self, bulk):
        for result in bulk.results.values():
            if result.success:
                self.notify_requester(result.request)

    def send_requester_notification(self, request):
        """Tell a requester their request was resolved; returns True when the message went out"""
        try:
            self.telegram.send_message(request.user_id, messages.requester_notification(request))
        except TelegramAPIException as e:
            logger.warning(f"Could not notify user {request.user_id} about request #{request.id}: {e.message}")
            return False
        return True

    def notify_requester(self, request):
        if not self.send_requester_notification(request):
            return False
        self.ledger.mark_notified(request.id)
        return True

    def notify_unnotified(self):
        """Retry notifications for resolved requests; returns how many were delivered"""
        delivered = 0
        for request in self.ledger.unnotified():
            if self.notify_requester(request):
                delivered += 1
        return delivered

    def _set_pending_rejection(self, admin_id, request_id):
        with locked(self.pending_rejections_file):
            data = load_json(self.pending_rejections_file, dict)
            data[str(admin_id)] = request_id
            safe_write_json(self.pending_rejections_file, data)

    def _pop_pending_rejection(self, admin_id):
        if not self.pending_rejections_file:
            return None
        with locked(self.pending_rejections_file):
            data = load_json(self.pending_rejections_file, dict)
            request_id = data.pop(str(admin_id), None)
            if request_id is not None:
                safe_write_json(self.pending_rejections_file, data)
        return request_id
