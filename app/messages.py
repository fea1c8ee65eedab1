"""
Chat texts and inline keyboards
"""
from html import escape

from callbacks import (
    encode_callback, SelectMovie, UploadsPage, UploadsView, UploadsStop, RequestGuide, ShowHelp, ShowStats,
    BackToStart, Approve, Reject, RejectWithReason, RejectCustom, BulkApprove, BulkReject, PendingMore,
)
from constants import REJECT_REASONS
from utils import format_datetime

STATUS_ICONS = {"pending": "⏳", "approved": "✅", "rejected": "❌"}

GENERIC_FAILURE = "⚠️ Something went wrong on our side. Please try again in a few minutes."
MAINTENANCE = "🛠️ The bot is under maintenance. Please come back a little later."
ADMIN_ONLY = "⛔ This command is only available to admins."
QUERY_TOO_SHORT = "🔎 Please send at least 2 characters to search."
NOISE_QUERY = "🤔 That does not look like a movie name. Send just the title, for example: <b>KGF Chapter 2</b>"
REQUESTS_DISABLED = "📪 Movie requests are closed right now."
UPLOADS_STOPPED = "✅ Browsing stopped."


def button(text, command):
    return {"text": text, "callback_data": encode_callback(command)}


def keyboard(rows):
    return {"inline_keyboard": [row for row in rows if row]}


def welcome(first_name, join_channel=""):
    text = (
        f"👋 Hello <b>{escape(first_name or 'there')}</b>!\n\n"
        "🎬 Send me a movie name and I will find it in our channels.\n"
        "📝 Not found? Use /request &lt;movie name&gt; and an admin will add it."
    )
    if join_channel:
        text += f"\n\n📢 Join {escape(join_channel)} for new uploads."
    return text, keyboard([
        [button("❓ Help", ShowHelp()), button("📊 Stats", ShowStats())],
        [button("📝 How to request", RequestGuide())],
    ])


def help_text(is_admin=False):
    text = (
        "<b>How to use</b>\n\n"
        "🔍 Type a movie name to search, e.g. <code>Pushpa</code>\n"
        "/request &lt;name&gt; - ask for a movie\n"
        "/myrequests - your requests\n"
        "/csvstats - catalog size\n"
        "/totalupload - browse all uploads"
    )
    if is_admin:
        text += (
            "\n\n<b>Admin</b>\n"
            "/pendingrequests [filter] - moderate requests\n"
            "/stats - bot statistics\n"
            "/autodelete - auto-delete status"
        )
    return text, keyboard([[button("⬅️ Back", BackToStart())]])


def request_guide(max_per_day):
    return (
        "<b>📝 Requesting a movie</b>\n\n"
        "Send <code>/request Movie Name</code>\n"
        f"• Up to {max_per_day} requests per day\n"
        "• You get a message as soon as it is approved or rejected\n"
        "• Requests are approved automatically when the movie is uploaded"
    )


def search_results(query, groups):
    text = f"🔍 Found <b>{len(groups)}</b> matches for <b>{escape(query)}</b>. Pick one:"
    rows = [
        [button(f"🎬 {group.records[0].movie_name} ({group.count})", SelectMovie(name))]
        for name, group in groups.items()
    ]
    return text, keyboard(rows)


def not_found(query):
    text = (
        f"😔 <b>{escape(query)}</b> is not in our catalog yet.\n"
        f"Use <code>/request {escape(query)}</code> to ask for it."
    )
    return text, keyboard([[button("📝 How to request", RequestGuide())]])


def request_result(result):
    icon = "✅" if result.success else "⚠️"
    return f"{icon} {escape(result.message)}"


def new_request_for_admins(request):
    text = (
        f"📥 <b>New request #{request.id}</b>\n"
        f"🎬 {escape(request.movie_name)}\n"
        f"👤 {escape(request.display_name or str(request.user_id))} (<code>{request.user_id}</code>)"
    )
    return text, keyboard([[button("✅ Approve", Approve(request.id)), button("❌ Reject", Reject(request.id))]])


def user_requests(requests, stats):
    if not requests:
        return "📭 You have not made any requests yet."
    lines = [
        f"<b>Your requests</b> (total {stats.total_requests}, approved {stats.approved}, "
        f"pending {stats.pending}, rejected {stats.rejected})\n"
    ]
    for request in requests:
        lines.append(
            f"{STATUS_ICONS.get(request.status, '•')} #{request.id} {escape(request.movie_name)} "
            f"- {format_datetime(request.created_at, '%d %b')}"
        )
    return "\n".join(lines)


def pending_requests(requests, offset, total, page_size):
    if not requests:
        return "🎉 No pending requests.", None
    lines = [f"<b>⏳ Pending requests</b> ({offset + 1}-{offset + len(requests)} of {total})\n"]
    rows = []
    for request in requests:
        lines.append(
            f"#{request.id} <b>{escape(request.movie_name)}</b> by "
            f"{escape(request.display_name or str(request.user_id))} - {format_datetime(request.created_at)}"
        )
        rows.append([button(f"✅ #{request.id}", Approve(request.id)), button(f"❌ #{request.id}", Reject(request.id))])
    ids = tuple(r.id for r in requests)
    rows.append([button("✅ Approve all", BulkApprove(ids)), button("❌ Reject all", BulkReject(ids))])
    if offset + page_size < total:
        rows.append([button("➡️ More", PendingMore(offset + page_size))])
    return "\n".join(lines), keyboard(rows)


def reject_reasons(request_id):
    rows = [[button(text, RejectWithReason(request_id, key))] for key, text in REJECT_REASONS.items()]
    rows.append([button("✍️ Custom reason", RejectCustom(request_id))])
    return f"Why is request #{request_id} rejected?", keyboard(rows)


def custom_reason_prompt(request_id):
    return f"✍️ Send the rejection reason for request #{request_id} as your next message."


def requester_notification(request):
    if request.status == "approved":
        return (
            f"🎉 Your request #{request.id} for <b>{escape(request.movie_name)}</b> was approved!\n"
            "Search for it now to get the file."
        )
    reason = f"\nReason: {escape(request.reason)}" if request.reason else ""
    return f"😔 Your request #{request.id} for <b>{escape(request.movie_name)}</b> was rejected.{reason}"


def bulk_summary(action, bulk):
    return f"{action}: {bulk.success_count}/{bulk.total_count} requests"


def catalog_stats(stats, channels):
    lines = [f"📊 <b>Catalog</b>\n🎬 Total uploads: <b>{stats['total_count']}</b>"]
    for channel_id, count in sorted(stats["channels"].items(), key=lambda item: item[1], reverse=True):
        lines.append(f"📡 {escape(channels.username(channel_id) or str(channel_id))}: {count}")
    if stats.get("pending_writes"):
        lines.append(f"📝 Waiting to be saved: {stats['pending_writes']}")
    return "\n".join(lines)


def admin_stats(catalog, requests, usage, auto_delete=None):
    text = (
        "📊 <b>Bot statistics</b>\n\n"
        f"🎬 Movies: {catalog['total_count']}\n"
        f"👥 Users: {usage['total_users']}\n"
        f"🔍 Searches: {usage['total_searches']}\n"
        f"🎯 Movies found: {usage['total_movies_found']}\n\n"
        f"📝 Requests: {requests['total_requests']} "
        f"(⏳ {requests['pending']} ✅ {requests['approved']} ❌ {requests['rejected']})"
    )
    if auto_delete:
        text += f"\n🗑️ Auto-deleted: {auto_delete['total_deleted']}"
    return text


def auto_delete_status(stats):
    if stats is None:
        return "🗑️ Auto-delete is disabled."
    return (
        "🗑️ <b>Auto-delete</b>\n"
        f"⏱️ Timeout: {stats['timeout']} minutes\n"
        f"🧹 Deleted: {stats['total_deleted']}\n"
        f"⏳ Scheduled: {stats['pending_count']}\n"
        f"🕒 Last cleanup: {format_datetime(stats['last_cleanup'])}"
    )


def auto_delete_warning(minutes):
    return f"⚠️ This message will be deleted in {minutes} minutes. Save the file if you need it."


def uploads_page(page):
    if not page["total"]:
        return "📭 No uploads yet.", None
    start = (page["page"] - 1) * page["per_page"]
    lines = [f"📚 <b>All uploads</b> - page {page['page']}/{page['total_pages']} ({page['total']} total)\n"]
    for index, record in enumerate(page["items"], start=start + 1):
        lines.append(f"{index}. {escape(record.movie_name)}")
    nav = []
    if page["page"] > 1:
        nav.append(button("⬅️ Prev", UploadsPage(page["page"] - 1)))
    if page["page"] < page["total_pages"]:
        nav.append(button("Next ➡️", UploadsPage(page["page"] + 1)))
    rows = [
        nav,
        [button("📤 Send this page", UploadsView(page["page"])), button("⏹️ Stop", UploadsStop())],
    ]
    return "\n".join(lines), keyboard(rows)
