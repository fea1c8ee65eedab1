"""
Catalog Store

Append-only CSV ledger of ``(movie_name, message_id, channel_id)`` rows
with a write buffer, a two-tier read cache and fuzzy title search.

Writers take an exclusive lock on the ledger, readers a shared one. The
cache tiers hold only flushed rows; records still sitting in the write
buffer are overlaid on every cached read so a search never misses a
record that was already accepted.

Every snapshot is tagged with the ledger's (inode, size, mtime_ns) as seen
under the read lock. A snapshot whose tag no longer matches the ledger on
disk was taken before another process wrote to it and is discarded.
"""
import csv
import math
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from constants import CATALOG_HEADER
from exceptions import StorageException
from file_lock import locked
from metrics import catalog_appends_total, catalog_flushes_total, catalog_records
from utils import normalize_movie_name, similarity
from validators import validate_movie_name, validate_message_id, validate_telegram_id

logger = structlog.get_logger("catalog")

EXACT_MATCH_SCORE = 100
SUBSTRING_MATCH_SCORE = 80


@dataclass(frozen=True)
class CatalogRecord:
    movie_name: str
    message_id: int
    channel_id: int

    def __post_init__(self):
        if not isinstance(self.movie_name, str) or not self.movie_name.strip():
            raise ValueError("movie_name must be a non-empty string")
        if isinstance(self.message_id, bool) or not isinstance(self.message_id, int) or self.message_id <= 0:
            raise ValueError(f"message_id must be a positive integer, got {self.message_id!r}")
        if isinstance(self.channel_id, bool) or not isinstance(self.channel_id, int):
            raise ValueError(f"channel_id must be an integer, got {self.channel_id!r}")

    @property
    def normalized_name(self):
        return normalize_movie_name(self.movie_name)

    def to_row(self):
        return [self.movie_name, self.message_id, self.channel_id]

    def to_dict(self):
        return {"movie_name": self.movie_name, "message_id": self.message_id, "channel_id": self.channel_id}

    @classmethod
    def from_dict(cls, data):
        return cls(data["movie_name"], int(data["message_id"]), int(data["channel_id"]))


@dataclass
class SearchGroup:
    score: float
    count: int = 0
    records: List[CatalogRecord] = field(default_factory=list)


def _signature(stat):
    # A list so it compares equal after a JSON round trip
    return [stat.st_ino, stat.st_size, stat.st_mtime_ns]


def _parse_row(row) -> Optional[CatalogRecord]:
    """Record from a csv row, or None when the row is malformed"""
    if len(row) < 3 or not row[0].strip():
        return None
    try:
        return CatalogRecord(row[0].strip(), int(row[1].strip()), int(row[2].strip()))
    except ValueError:
        return None


def _unquote(value):
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1].replace('""', '"')
    return value.strip()


def _parse_loose_line(line) -> Optional[CatalogRecord]:
    """Best-effort parse of a raw ledger line; the two trailing fields are the ids"""
    parts = line.rsplit(",", 2)
    if len(parts) < 3:
        return None
    name = _unquote(parts[0])
    if not name:
        return None
    try:
        return CatalogRecord(name, int(_unquote(parts[1])), int(_unquote(parts[2])))
    except ValueError:
        return None


class CatalogStore:
    """Single owner of the catalog ledger, its write buffer and its cache"""

    def __init__(
        self,
        catalog_file: str,
        backup_manager,
        snapshot_cache=None,
        channels=None,
        buffer_size: int = 50,
        cache_expiry: float = 300,
        search_limit: int = 10,
        search_threshold: float = 60,
        lock_timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self.catalog_file = catalog_file
        self.backup_manager = backup_manager
        self.snapshot_cache = snapshot_cache
        self.channels = channels
        self.buffer_size = buffer_size
        self.cache_expiry = cache_expiry
        self.search_limit = search_limit
        self.search_threshold = search_threshold
        self.lock_timeout = lock_timeout
        self._clock = clock

        self._buffer: List[CatalogRecord] = []
        self._snapshot: Optional[List[CatalogRecord]] = None
        self._snapshot_time = 0.0
        self._snapshot_signature = None
        self._read_signature = None
        self._lock = threading.RLock()

        self._initialize_file()

    @classmethod
    def from_settings(cls, settings, catalog_file, backup_manager, snapshot_cache=None, channels=None):
        catalog = settings["catalog"]
        return cls(
            catalog_file,
            backup_manager,
            snapshot_cache=snapshot_cache,
            channels=channels,
            buffer_size=catalog["buffer_size"],
            cache_expiry=catalog["cache_expiry"],
            search_limit=catalog["search_limit"],
            search_threshold=catalog["search_threshold"],
            lock_timeout=catalog["lock_timeout"],
        )

    def _initialize_file(self):
        if os.path.exists(self.catalog_file):
            return
        os.makedirs(os.path.dirname(self.catalog_file) or ".", exist_ok=True)
        with locked(self.catalog_file, timeout=self.lock_timeout):
            if not os.path.exists(self.catalog_file):
                with open(self.catalog_file, "w", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerow(CATALOG_HEADER)
                logger.info("catalog_created", path=self.catalog_file)

    # ------------------------------------------------------------------ writes

    def append(self, movie_name, message_id, channel_id) -> bool:
        """Validate and buffer one record; flushes when the buffer is full"""
        name = validate_movie_name(movie_name)
        msg_id = validate_message_id(message_id)
        chan_id = validate_telegram_id(channel_id)
        if name is None or msg_id is None or chan_id is None:
            logger.warning("catalog_append_rejected", reason="invalid_input",
                           message_id=message_id, channel_id=channel_id)
            catalog_appends_total.labels(status="invalid").inc()
            return False
        if self.channels is not None and not self.channels.is_configured(chan_id):
            logger.warning("catalog_append_rejected", reason="unknown_channel", channel_id=chan_id)
            catalog_appends_total.labels(status="unknown_channel").inc()
            return False

        record = CatalogRecord(name, msg_id, chan_id)
        with self._lock:
            self._buffer.append(record)
            logger.info("catalog_buffered", movie_name=name, message_id=msg_id, channel_id=chan_id,
                        buffered=len(self._buffer))
            self.invalidate()
            if len(self._buffer) >= self.buffer_size:
                self.flush()

        catalog_appends_total.labels(status="accepted").inc()
        return True

    def pending(self) -> List[CatalogRecord]:
        """Records accepted but not yet written to the ledger"""
        with self._lock:
            return list(self._buffer)

    def flush(self) -> bool:
        """Write every buffered record to the ledger under an exclusive lock"""
        with self._lock:
            if not self._buffer:
                return True

            entries = list(self._buffer)
            logger.info("catalog_flush_started", items=len(entries))
            failed = 0
            try:
                with locked(self.catalog_file, timeout=self.lock_timeout):
                    needs_header = not os.path.exists(self.catalog_file) or os.path.getsize(self.catalog_file) == 0
                    needs_newline = not needs_header and not self._ends_with_newline()
                    with open(self.catalog_file, "a", newline="", encoding="utf-8") as f:
                        writer = csv.writer(f)
                        if needs_header:
                            writer.writerow(CATALOG_HEADER)
                        elif needs_newline:
                            f.write("\r\n")
                        for entry in entries:
                            try:
                                writer.writerow(entry.to_row())
                            except (OSError, csv.Error) as e:
                                failed += 1
                                logger.error("catalog_row_write_failed", error=str(e), **entry.to_dict())
                        f.flush()
                        os.fsync(f.fileno())
            except StorageException:
                catalog_flushes_total.labels(status="lock_timeout").inc()
                return False
            except OSError as e:
                logger.error("catalog_flush_failed", error=str(e), items=len(entries))
                catalog_flushes_total.labels(status="error").inc()
                return False

            # Every row has been attempted; poisoned rows are not retried
            del self._buffer[:len(entries)]
            self.invalidate()
            catalog_flushes_total.labels(status="ok").inc()
            logger.info("catalog_flushed", written=len(entries) - failed, failed=failed)
            return True

    def _ends_with_newline(self):
        with open(self.catalog_file, "rb") as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) in (b"\n", b"\r")

    # ------------------------------------------------------------------- reads

    def read(self) -> List[CatalogRecord]:
        """
        Parse the ledger under a shared lock.

        A corrupt header triggers one rebuild followed by one more read.
        Raises StorageException when the ledger cannot be locked or opened.
        """
        records = self._read_ledger()
        if records is not None:
            return records

        logger.warning("catalog_header_invalid", path=self.catalog_file)
        self.rebuild()
        records = self._read_ledger()
        if records is None:
            raise StorageException(f"Catalog header still invalid after rebuild: {self.catalog_file}")
        return records

    def _read_ledger(self) -> Optional[List[CatalogRecord]]:
        """Rows of the ledger, or None if the header is not the expected schema"""
        if not os.path.exists(self.catalog_file):
            logger.error("catalog_missing", path=self.catalog_file)
            self._read_signature = None
            return []

        records = []
        skipped = 0
        try:
            with locked(self.catalog_file, shared=True, timeout=self.lock_timeout):
                with open(self.catalog_file, "r", newline="", encoding="utf-8", errors="replace") as f:
                    self._read_signature = _signature(os.fstat(f.fileno()))
                    reader = csv.reader(f)
                    header = next(reader, None)
                    if not self._valid_header(header):
                        return None
                    for row in reader:
                        record = _parse_row(row)
                        if record is None:
                            if any(cell.strip() for cell in row):
                                skipped += 1
                            continue
                        records.append(record)
        except (OSError, csv.Error) as e:
            logger.error("catalog_read_failed", error=str(e))
            raise StorageException(f"Could not read catalog: {e}")

        if skipped:
            logger.warning("catalog_rows_skipped", skipped=skipped)
        logger.debug("catalog_read", rows=len(records))
        return records

    @staticmethod
    def _valid_header(header):
        if not header or len(header) < len(CATALOG_HEADER):
            return False
        cells = [cell.strip().lstrip("﻿") for cell in header[:len(CATALOG_HEADER)]]
        return cells == CATALOG_HEADER

    def rebuild(self) -> int:
        """
        Back up the ledger and rewrite it from a best-effort parse; returns the row count.

        Raises StorageException, leaving the ledger untouched, when the backup fails.
        """
        with locked(self.catalog_file, timeout=self.lock_timeout):
            backup_path = self.backup_manager.create_backup(self.catalog_file, "catalog_backup")
            if backup_path is None and os.path.exists(self.catalog_file):
                logger.error("catalog_rebuild_aborted", reason="backup_failed", path=self.catalog_file)
                raise StorageException(f"Refusing to rebuild catalog without a backup: {self.catalog_file}")

            records = []
            if os.path.exists(self.catalog_file):
                with open(self.catalog_file, "r", encoding="utf-8", errors="replace") as f:
                    for line in f:
                        line = line.strip()
                        if not line:
                            continue
                        record = _parse_loose_line(line)
                        if record is not None:
                            records.append(record)

            tmp_path = f"{self.catalog_file}.tmp"
            try:
                with open(tmp_path, "w", newline="", encoding="utf-8") as f:
                    writer = csv.writer(f)
                    writer.writerow(CATALOG_HEADER)
                    for record in records:
                        writer.writerow(record.to_row())
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.catalog_file)
            except OSError as e:
                logger.error("catalog_rebuild_failed", error=str(e))
                raise StorageException(f"Could not rebuild catalog: {e}")

        self.invalidate()
        logger.info("catalog_rebuilt", rows=len(records), backup=backup_path)
        return len(records)

    # ------------------------------------------------------------------- cache

    def _ledger_signature(self):
        try:
            return _signature(os.stat(self.catalog_file))
        except FileNotFoundError:
            return None

    def get_cached(self) -> List[CatalogRecord]:
        """Catalog snapshot from the freshest cache tier, plus buffered records"""
        with self._lock:
            now = self._clock()
            if self._snapshot is not None and (
                now - self._snapshot_time >= self.cache_expiry
                or self._snapshot_signature != self._ledger_signature()
            ):
                self._snapshot = None
            if self._snapshot is None:
                if self.snapshot_cache is not None:
                    self._load_secondary(now)
                if self._snapshot is None:
                    snapshot = self.read()
                    self._snapshot = snapshot
                    self._snapshot_time = now
                    self._snapshot_signature = self._read_signature
                    if self.snapshot_cache is not None:
                        self.snapshot_cache.save([r.to_dict() for r in snapshot], now, self._read_signature)
                    catalog_records.set(len(snapshot))
                    logger.info("catalog_cache_updated", items=len(snapshot))
            return self._snapshot + self._buffer

    def _load_secondary(self, now):
        loaded = self.snapshot_cache.load(self.cache_expiry, now)
        if not loaded:
            return
        rows, cached_at, signature = loaded
        if signature != self._ledger_signature():
            logger.info("catalog_secondary_cache_outdated", tier=self.snapshot_cache.name)
            self.snapshot_cache.clear()
            return
        try:
            snapshot = [CatalogRecord.from_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("catalog_secondary_cache_invalid", error=str(e))
            self.snapshot_cache.clear()
            return
        self._snapshot = snapshot
        self._snapshot_time = cached_at
        self._snapshot_signature = signature
        logger.debug("catalog_cache_loaded", tier=self.snapshot_cache.name, items=len(snapshot))

    def invalidate(self):
        """Drop both cache tiers"""
        with self._lock:
            self._snapshot = None
            self._snapshot_time = 0.0
            self._snapshot_signature = None
            if self.snapshot_cache is not None:
                self.snapshot_cache.clear()

    def cache_age(self) -> Optional[float]:
        if self._snapshot is None:
            return None
        return max(0.0, self._clock() - self._snapshot_time)

    # ------------------------------------------------------------------ search

    def _score(self, name, query):
        if name == query:
            return EXACT_MATCH_SCORE
        if query in name:
            return SUBSTRING_MATCH_SCORE
        score = similarity(name, query)
        return score if score > self.search_threshold else 0

    def search(self, query) -> Dict[str, SearchGroup]:
        """Matching records grouped by normalized title, best score first, capped at search_limit"""
        query = validate_movie_name(query)
        if query is None:
            return {}
        query = normalize_movie_name(query)

        scores = {}
        groups: Dict[str, SearchGroup] = {}
        records = self.get_cached()
        for record in records:
            name = record.normalized_name
            if name not in scores:
                scores[name] = self._score(name, query)
            if not scores[name]:
                continue
            group = groups.get(name)
            if group is None:
                group = groups[name] = SearchGroup(score=scores[name])
            group.count += 1
            group.records.append(record)

        ranked = sorted(groups.items(), key=lambda item: item[1].score, reverse=True)
        logger.info("catalog_search", query=query, scanned=len(records), matches=len(ranked))
        return dict(ranked[:self.search_limit])

    def records_for(self, movie_name) -> List[CatalogRecord]:
        """Every record whose normalized title equals ``movie_name``'s"""
        key = normalize_movie_name(movie_name)
        if not key:
            return []
        return [r for r in self.get_cached() if r.normalized_name == key]

    def page(self, page: int, per_page: int) -> dict:
        records = self.get_cached()
        total = len(records)
        total_pages = max(1, math.ceil(total / per_page))
        page = min(max(1, page), total_pages)
        start = (page - 1) * per_page
        return {
            "items": records[start:start + per_page],
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
        }

    def stats(self) -> dict:
        records = self.get_cached()
        channels: Dict[int, int] = {}
        for record in records:
            channels[record.channel_id] = channels.get(record.channel_id, 0) + 1
        return {
            "total_count": len(records),
            "channels": channels,
            "cache_age": self.cache_age(),
            "pending_writes": len(self._buffer),
        }
