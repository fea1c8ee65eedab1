"""
Input validation for text and identifiers arriving from Telegram.

Every validator returns the cleaned value, or None when the input must be
declined. Nothing here raises for bad input.
"""
import re
import unicodedata

MOVIE_NAME_MIN = 2
MOVIE_NAME_MAX = 200

# Punctuation accepted in titles besides letters, marks, digits and spaces
MOVIE_NAME_PUNCTUATION = set("-.,&+'\"()!:;?")

_user_id_re = re.compile(r'^\d+$')
_telegram_id_re = re.compile(r'^-?\d+$')
_command_re = re.compile(r'^/[a-zA-Z0-9_]+$')


def _allowed_title_char(ch):
    if ch.isspace() or ch in MOVIE_NAME_PUNCTUATION:
        return True
    # Letters, combining marks (Devanagari matras etc.) and numbers of any script
    return unicodedata.category(ch)[0] in ('L', 'M', 'N')


def validate_movie_name(value):
    """Trimmed movie name, or None if it is too short, too long or has disallowed characters"""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not MOVIE_NAME_MIN <= len(value) <= MOVIE_NAME_MAX:
        return None
    if not all(_allowed_title_char(ch) for ch in value):
        return None
    return value


def validate_user_id(value):
    """Positive Telegram user id as int"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and _user_id_re.match(value.strip()):
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def validate_message_id(value):
    """Positive message id as int"""
    return validate_user_id(value)


def validate_telegram_id(value):
    """Signed chat/channel id as int"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _telegram_id_re.match(value.strip()):
        return int(value.strip())
    return None


def validate_command(value):
    if isinstance(value, str) and _command_re.match(value):
        return value
    return None


def clean_text(value, max_length=500):
    """Free text such as display names and rejection reasons"""
    if value is None:
        return ''
    return str(value).strip()[:max_length]
