import os

APP_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.environ.get('MOVIEBOT_DATA_DIR', os.path.join(APP_DIR, 'data'))
CONFIG_DIR = os.environ.get('MOVIEBOT_CONFIG_DIR', os.path.join(APP_DIR, 'config'))
CONFIG_FILE = os.path.join(CONFIG_DIR, 'settings.yaml')
BACKUP_DIR = os.path.join(DATA_DIR, 'backups')
CACHE_DIR = os.path.join(DATA_DIR, 'cache')

BUILD_VERSION = '20261019_1200'

CATALOG_HEADER = ['movie_name', 'message_id', 'channel_id']

CHANNEL_PUBLIC = 'public'
CHANNEL_PRIVATE = 'private'
CHANNEL_UNKNOWN = 'unknown'

SYSTEM_MODERATOR = 'system'
AUTO_APPROVE_REASON = 'Auto-approved: Movie added to database'
BULK_REJECT_REASON = 'Rejected in bulk by admin'

REJECT_REASONS = {
    'already_available': 'Movie is already available in our channels',
    'invalid_request': 'Invalid movie name or request',
    'low_quality': 'Cannot find good quality version',
    'not_available': 'Movie is not available anywhere',
}

POINTS = {
    'search': 1,
    'found_movie': 5,
    'daily_login': 10,
}

# Words that on their own do not make a movie title
NOISE_KEYWORDS = [
    'vlc', 'audio', 'track', 'change', 'open', 'kar', 'me', 'hai',
    'how', 'what', 'problem', 'issue', 'help', 'solution', 'fix',
    'error', 'not working', 'download', 'play', 'video', 'sound',
    'subtitle', 'quality', 'hd', 'full', 'part', 'scene',
]

DEFAULT_SETTINGS = {
    "bot": {
        "token": "",
        "username": "MovieCatalogBot",
        "admin_ids": [],
        "webhook_secret": "",
        "maintenance": False,
        "join_channel": "",
    },
    "channels": {
        "public": [],
        "private": [],
    },
    "catalog": {
        "buffer_size": 50,
        "cache_expiry": 300,
        "cache_backend": "file",
        "redis_url": "redis://localhost:6379/0",
        "search_limit": 10,
        "search_threshold": 60,
        "items_per_page": 5,
        "lock_timeout": 5.0,
    },
    "requests": {
        "enabled": True,
        "max_per_day": 3,
        "duplicate_window_hours": 24,
        "auto_approve_threshold": 80,
    },
    "auto_delete": {
        "enabled": True,
        "timeout_minutes": 30,
        "warning_minutes": 5,
    },
    "telegram": {
        "api_url": "https://api.telegram.org",
        "rate_limit_calls": 30,
        "rate_limit_window": 60,
        "timeout": 10,
    },
    "storage": {
        "catalog_file": "movies.csv",
        "requests_file": "requests.json",
        "auto_delete_file": "auto_delete.json",
        "users_file": "users.json",
        "stats_file": "bot_stats.json",
        "pending_rejections_file": "pending_rejections.json",
        "cache_file": "movies_cache.json.gz",
    },
}
