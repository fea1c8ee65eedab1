import logging
import re
import threading
import json
import os
import tempfile
from datetime import datetime, timezone

from rapidfuzz import fuzz

# Global lock for all JSON writes in this process
_json_write_lock = threading.Lock()

_whitespace_re = re.compile(r'\s+')

# Custom logging formatter to support colors
class ColoredFormatter(logging.Formatter):
    # Define color codes
    COLORS = {
        'DEBUG': '\033[94m',   # Blue
        'INFO': '\033[92m',    # Green
        'WARNING': '\033[93m', # Yellow
        'ERROR': '\033[91m',   # Red
        'CRITICAL': '\033[95m' # Magenta
    }
    RESET = '\033[0m'  # Reset color

    def format(self, record):
        # Add color to the log level name
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        return super().format(record)


def safe_write_json(path, data, **dump_kwargs):
    with _json_write_lock:
        dirpath = os.path.dirname(path) or "."
        os.makedirs(dirpath, exist_ok=True)
        # Default options
        options = {'ensure_ascii': False, 'indent': 2}
        options.update(dump_kwargs)

        # Create temporary file in same directory
        with tempfile.NamedTemporaryFile("w", dir=dirpath, delete=False, encoding="utf-8") as tmp:
            tmp_path = tmp.name
            json.dump(data, tmp, **options)
            tmp.flush()
            os.fsync(tmp.fileno())  # flush to disk
        # Atomically replace target file
        os.replace(tmp_path, path)


def load_json(path, default_factory):
    """Read a JSON document, falling back to a fresh default when missing or unreadable"""
    if not os.path.exists(path):
        return default_factory()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, ValueError) as e:
        logging.getLogger('main').error(f"Failed to load {path}: {e}")
        return default_factory()
    return data if isinstance(data, dict) else default_factory()


def normalize_movie_name(name):
    """Key used to group and compare titles: trimmed, lowercased, single-spaced"""
    if not name:
        return ''
    return _whitespace_re.sub(' ', name.strip()).lower()


def similarity(a, b):
    """Character similarity of two strings on a 0-100 scale"""
    if not a or not b:
        return 0.0
    return float(fuzz.ratio(a, b))


def now_utc():
    """Returns current datetime in UTC (aware)"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """
    Ensure a datetime object is aware and in UTC.
    Handles ISO strings, None, and naive datetimes.
    """
    if dt is None:
        return None

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace('Z', '+00:00'))
        except (ValueError, TypeError, AttributeError):
            return None

    if not hasattr(dt, 'tzinfo'):
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_datetime(dt, format="%d %b %Y, %H:%M"):
    """Formats a datetime (or ISO string) for chat messages, assuming UTC when naive"""
    dt = ensure_utc(dt)
    if dt is None:
        return "Never"
    return dt.strftime(format)
