"""
Request Ledger

Movie requests keyed by sequential id, stored as one JSON document:

    {
      "requests": {"<id>": {...}},
      "last_request_id": 0,
      "user_stats": {"<user_id>": {...}},
      "system_stats": {"total_requests": 0, "approved": 0, "rejected": 0, "pending": 0}
    }

Every mutation is a load -> mutate -> save under an exclusive file lock,
so two handler processes never interleave writes. A request moves from
pending to approved or rejected exactly once.
"""
import json
import os
from dataclasses import dataclass, field, asdict, fields
from datetime import timedelta
from typing import Callable, Dict, List, Optional

import structlog

from constants import SYSTEM_MODERATOR, AUTO_APPROVE_REASON
from exceptions import StorageException
from file_lock import locked
from metrics import requests_total, requests_auto_approved_total
from utils import safe_write_json, normalize_movie_name, similarity, now_utc, ensure_utc
from validators import validate_movie_name, validate_user_id, clean_text

logger = structlog.get_logger("requests")


class RequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)
    TERMINAL = (APPROVED, REJECTED)


class ResultCode:
    OK = "ok"
    INVALID = "invalid"
    DUPLICATE = "duplicate"
    FLOOD = "flood"
    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"
    STORAGE_ERROR = "storage_error"


STORAGE_ERROR_MESSAGE = "Requests are temporarily unavailable, please try again later."


@dataclass
class MovieRequest:
    id: int
    user_id: int
    movie_name: str
    status: str = RequestStatus.PENDING
    display_name: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    approved_at: Optional[str] = None
    approved_by: Optional[object] = None
    rejected_at: Optional[str] = None
    rejected_by: Optional[object] = None
    reason: str = ""
    is_notified: bool = False

    def __post_init__(self):
        if not isinstance(self.id, int) or self.id <= 0:
            raise ValueError(f"Request id must be a positive integer, got {self.id!r}")
        if validate_user_id(self.user_id) is None:
            raise ValueError(f"Invalid user id {self.user_id!r}")
        if not isinstance(self.movie_name, str) or len(self.movie_name.strip()) < 2:
            raise ValueError("Movie name must have at least 2 characters")
        if self.status not in RequestStatus.ALL:
            raise ValueError(f"Unknown request status {self.status!r}")

    @property
    def normalized_name(self):
        return normalize_movie_name(self.movie_name)

    @property
    def created_datetime(self):
        return ensure_utc(self.created_at)

    @property
    def is_pending(self):
        return self.status == RequestStatus.PENDING

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class UserStats:
    user_id: int
    total_requests: int = 0
    approved: int = 0
    pending: int = 0
    rejected: int = 0
    requests_today: int = 0
    last_request_date: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        data.pop("user_id")
        return data

    @classmethod
    def from_dict(cls, user_id, data):
        known = {f.name for f in fields(cls)} - {"user_id"}
        return cls(user_id=user_id, **{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class LedgerResult:
    success: bool
    message: str
    code: str = ResultCode.OK
    request: Optional[MovieRequest] = None


@dataclass
class BulkResult:
    results: Dict[int, LedgerResult] = field(default_factory=dict)
    success_count: int = 0
    total_count: int = 0


def _empty_ledger():
    return {
        "requests": {},
        "last_request_id": 0,
        "user_stats": {},
        "system_stats": {"total_requests": 0, "approved": 0, "rejected": 0, "pending": 0},
    }


class RequestLedger:
    """Owner of the request ledger file"""

    def __init__(
        self,
        path: str,
        max_per_day: int = 3,
        duplicate_window_hours: int = 24,
        auto_approve_threshold: float = 80,
        lock_timeout: float = 5.0,
        clock: Callable = now_utc,
    ):
        self.path = path
        self.max_per_day = max_per_day
        self.duplicate_window = timedelta(hours=duplicate_window_hours)
        self.auto_approve_threshold = auto_approve_threshold
        self.lock_timeout = lock_timeout
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, path):
        config = settings["requests"]
        return cls(
            path,
            max_per_day=config["max_per_day"],
            duplicate_window_hours=config["duplicate_window_hours"],
            auto_approve_threshold=config["auto_approve_threshold"],
            lock_timeout=settings["catalog"]["lock_timeout"],
        )

    # ---------------------------------------------------------------- storage

    def _load(self):
        if not os.path.exists(self.path):
            return _empty_ledger()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            # Never replace an unreadable ledger with an empty one
            raise StorageException(f"Could not read request ledger {self.path}: {e}")
        if not isinstance(data, dict):
            raise StorageException(f"Request ledger {self.path} is not a JSON object")
        for key, value in _empty_ledger().items():
            data.setdefault(key, value)
        return data

    def _save(self, data):
        try:
            safe_write_json(self.path, data)
        except (OSError, TypeError, ValueError) as e:
            raise StorageException(f"Could not write request ledger {self.path}: {e}")

    def _read(self):
        with locked(self.path, shared=True, timeout=self.lock_timeout):
            return self._load()

    def _mutate(self, operation, apply):
        """Run ``apply(data)`` inside one locked load/save; saves only on success"""
        try:
            with locked(self.path, timeout=self.lock_timeout):
                data = self._load()
                result = apply(data)
                if result.success:
                    self._save(data)
        except StorageException as e:
            logger.error("request_ledger_unavailable", operation=operation, error=e.message)
            result = LedgerResult(False, STORAGE_ERROR_MESSAGE, ResultCode.STORAGE_ERROR)

        requests_total.labels(operation=operation, code=result.code).inc()
        return result

    @staticmethod
    def _stats_for(data, user_id) -> UserStats:
        return UserStats.from_dict(user_id, data["user_stats"].get(str(user_id)))

    @staticmethod
    def _store_stats(data, stats: UserStats):
        data["user_stats"][str(stats.user_id)] = stats.to_dict()

    def _finalize(self, data, request: MovieRequest, status, moderator, reason):
        """Move a pending request to a terminal state and update every counter"""
        now = self._clock().isoformat()
        request.status = status
        request.updated_at = now
        request.reason = reason
        if status == RequestStatus.APPROVED:
            request.approved_at = now
            request.approved_by = moderator
        else:
            request.rejected_at = now
            request.rejected_by = moderator
        data["requests"][str(request.id)] = request.to_dict()

        system = data["system_stats"]
        system["pending"] = max(0, system.get("pending", 0) - 1)
        system[status] = system.get(status, 0) + 1

        stats = self._stats_for(data, request.user_id)
        stats.pending = max(0, stats.pending - 1)
        setattr(stats, status, getattr(stats, status) + 1)
        self._store_stats(data, stats)

    # -------------------------------------------------------------- mutations

    def submit(self, user_id, movie_name, display_name="") -> LedgerResult:
        """Create a pending request after the duplicate and flood gates"""
        user_id = validate_user_id(user_id)
        name = validate_movie_name(movie_name)
        if user_id is None or name is None:
            requests_total.labels(operation="submit", code=ResultCode.INVALID).inc()
            return LedgerResult(False, "Please provide a valid movie name (2-200 characters).", ResultCode.INVALID)

        key = normalize_movie_name(name)

        def apply(data):
            now = self._clock()
            window_start = now - self.duplicate_window
            for raw in data["requests"].values():
                existing = MovieRequest.from_dict(raw)
                if (existing.user_id == user_id and existing.is_pending
                        and existing.normalized_name == key
                        and existing.created_datetime is not None
                        and existing.created_datetime >= window_start):
                    logger.info("request_declined", reason="duplicate", user_id=user_id, movie_name=name)
                    return LedgerResult(
                        False,
                        f"You already requested '{existing.movie_name}'. Request #{existing.id} is still pending.",
                        ResultCode.DUPLICATE,
                        existing,
                    )

            stats = self._stats_for(data, user_id)
            today = now.date().isoformat()
            if stats.last_request_date != today:
                stats.requests_today = 0
                stats.last_request_date = today
            if stats.requests_today >= self.max_per_day:
                logger.info("request_declined", reason="flood", user_id=user_id, today=stats.requests_today)
                return LedgerResult(
                    False,
                    f"You can only make {self.max_per_day} requests per day. Please try again tomorrow.",
                    ResultCode.FLOOD,
                )

            request_id = int(data["last_request_id"]) + 1
            request = MovieRequest(
                id=request_id,
                user_id=user_id,
                movie_name=name,
                display_name=clean_text(display_name, 100),
                created_at=now.isoformat(),
                updated_at=now.isoformat(),
            )
            data["requests"][str(request_id)] = request.to_dict()
            data["last_request_id"] = request_id

            system = data["system_stats"]
            system["total_requests"] = system.get("total_requests", 0) + 1
            system["pending"] = system.get("pending", 0) + 1

            stats.total_requests += 1
            stats.pending += 1
            stats.requests_today += 1
            self._store_stats(data, stats)

            logger.info("request_submitted", request_id=request_id, user_id=user_id, movie_name=name)
            return LedgerResult(True, f"Request #{request_id} for '{name}' submitted.", ResultCode.OK, request)

        return self._mutate("submit", apply)

    def _resolve(self, operation, request_id, moderator, status, reason):
        if isinstance(request_id, str) and request_id.strip().isdigit():
            request_id = int(request_id.strip())
        if isinstance(request_id, bool) or not isinstance(request_id, int) or request_id <= 0:
            requests_total.labels(operation=operation, code=ResultCode.INVALID).inc()
            return LedgerResult(False, "Invalid request id.", ResultCode.INVALID)

        def apply(data):
            raw = data["requests"].get(str(request_id))
            if raw is None:
                return LedgerResult(False, f"Request #{request_id} not found.", ResultCode.NOT_FOUND)
            request = MovieRequest.from_dict(raw)
            if not request.is_pending:
                return LedgerResult(
                    False, f"Request #{request_id} is already {request.status}.", ResultCode.NOT_PENDING, request
                )
            self._finalize(data, request, status, moderator, reason)
            logger.info("request_resolved", request_id=request_id, status=status, moderator=moderator)
            return LedgerResult(True, f"Request #{request_id} {status}.", ResultCode.OK, request)

        return self._mutate(operation, apply)

    def approve(self, request_id, moderator_id, reason="") -> LedgerResult:
        return self._resolve("approve", request_id, moderator_id, RequestStatus.APPROVED, clean_text(reason))

    def reject(self, request_id, moderator_id, reason="") -> LedgerResult:
        return self._resolve("reject", request_id, moderator_id, RequestStatus.REJECTED, clean_text(reason))

    def bulk_approve(self, request_ids, moderator_id) -> BulkResult:
        return self._bulk(request_ids, lambda rid: self.approve(rid, moderator_id))

    def bulk_reject(self, request_ids, moderator_id, reason="") -> BulkResult:
        return self._bulk(request_ids, lambda rid: self.reject(rid, moderator_id, reason))

    @staticmethod
    def _bulk(request_ids, operation) -> BulkResult:
        bulk = BulkResult()
        for request_id in request_ids:
            result = operation(request_id)
            bulk.results[request_id] = result
            bulk.total_count += 1
            if result.success:
                bulk.success_count += 1
        return bulk

    def matches(self, requested_name, catalog_name) -> bool:
        """
        Auto-approval match: substring in either direction, or similarity
        above the configured threshold.

        This is a heuristic. Short requested titles can match unrelated
        catalog entries.
        """
        requested = normalize_movie_name(requested_name)
        catalog = normalize_movie_name(catalog_name)
        if not requested or not catalog:
            return False
        if requested in catalog or catalog in requested:
            return True
        return similarity(requested, catalog) > self.auto_approve_threshold

    def auto_approve(self, movie_name) -> List[int]:
        """Approve every pending request matching a newly cataloged title; returns their ids"""
        if len(normalize_movie_name(movie_name)) < 2:
            return []

        approved = []
        try:
            with locked(self.path, timeout=self.lock_timeout):
                data = self._load()
                for raw in list(data["requests"].values()):
                    request = MovieRequest.from_dict(raw)
                    if request.is_pending and self.matches(request.movie_name, movie_name):
                        self._finalize(data, request, RequestStatus.APPROVED, SYSTEM_MODERATOR, AUTO_APPROVE_REASON)
                        approved.append(request.id)
                if approved:
                    self._save(data)
        except StorageException as e:
            logger.error("auto_approve_failed", movie_name=movie_name, error=e.message)
            return []

        if approved:
            requests_auto_approved_total.inc(len(approved))
            logger.info("requests_auto_approved", movie_name=movie_name, request_ids=approved)
        return approved

    def mark_notified(self, request_id) -> bool:
        def apply(data):
            raw = data["requests"].get(str(request_id))
            if raw is None:
                return LedgerResult(False, f"Request #{request_id} not found.", ResultCode.NOT_FOUND)
            raw["is_notified"] = True
            return LedgerResult(True, "Marked as notified.")

        return self._mutate("mark_notified", apply).success

    # ------------------------------------------------------------------ reads

    def get(self, request_id) -> Optional[MovieRequest]:
        raw = self._read()["requests"].get(str(request_id))
        return MovieRequest.from_dict(raw) if raw else None

    def _all(self) -> List[MovieRequest]:
        return [MovieRequest.from_dict(raw) for raw in self._read()["requests"].values()]

    def list_pending(self, limit=10, movie_filter=None) -> List[MovieRequest]:
        """Pending requests, oldest first, optionally filtered by a case-insensitive substring"""
        pending = [r for r in self._all() if r.is_pending]
        if movie_filter:
            needle = movie_filter.strip().lower()
            pending = [r for r in pending if needle in r.movie_name.lower()]
        pending.sort(key=lambda r: (r.created_at or "", r.id))
        return pending[:limit] if limit else pending

    def list_for_user(self, user_id, limit=10) -> List[MovieRequest]:
        """A user's requests, newest first"""
        mine = [r for r in self._all() if r.user_id == user_id]
        mine.sort(key=lambda r: r.id, reverse=True)
        return mine[:limit] if limit else mine

    def unnotified(self) -> List[MovieRequest]:
        """Resolved requests whose requester has not been told yet"""
        resolved = [r for r in self._all() if r.status in RequestStatus.TERMINAL and not r.is_notified]
        resolved.sort(key=lambda r: r.id)
        return resolved

    def stats(self) -> dict:
        data = self._read()
        stats = dict(_empty_ledger()["system_stats"])
        stats.update(data["system_stats"])
        return stats

    def user_stats(self, user_id) -> UserStats:
        return self._stats_for(self._read(), user_id)
