"""
Inline keyboard callback commands.

Each button payload is one of the dataclasses below. The wire format is
``<prefix>:<arg>:<arg>`` and is only produced and parsed here; handlers
receive typed commands.
"""
from dataclasses import dataclass, fields
from typing import Optional, Tuple

# Telegram limit for callback_data
MAX_CALLBACK_BYTES = 64


@dataclass(frozen=True)
class SelectMovie:
    movie_name: str

    def __post_init__(self):
        if not self.movie_name.strip():
            raise ValueError("movie_name must not be empty")


@dataclass(frozen=True)
class UploadsPage:
    page: int


@dataclass(frozen=True)
class UploadsView:
    page: int


@dataclass(frozen=True)
class UploadsStop:
    pass


@dataclass(frozen=True)
class RequestGuide:
    pass


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class ShowStats:
    pass


@dataclass(frozen=True)
class BackToStart:
    pass


@dataclass(frozen=True)
class Approve:
    request_id: int


@dataclass(frozen=True)
class Reject:
    request_id: int


@dataclass(frozen=True)
class RejectWithReason:
    request_id: int
    reason_key: str


@dataclass(frozen=True)
class RejectCustom:
    request_id: int


@dataclass(frozen=True)
class BulkApprove:
    request_ids: Tuple[int, ...]


@dataclass(frozen=True)
class BulkReject:
    request_ids: Tuple[int, ...]


@dataclass(frozen=True)
class PendingMore:
    offset: int


CALLBACK_PREFIXES = {
    SelectMovie: "m",
    UploadsPage: "up",
    UploadsView: "uv",
    UploadsStop: "us",
    RequestGuide: "rg",
    ShowHelp: "hp",
    ShowStats: "st",
    BackToStart: "bs",
    Approve: "ap",
    Reject: "rj",
    RejectWithReason: "rr",
    RejectCustom: "rc",
    BulkApprove: "ba",
    BulkReject: "br",
    PendingMore: "pm",
}

CALLBACK_TYPES = {prefix: cls for cls, prefix in CALLBACK_PREFIXES.items()}

ID_LIST = Tuple[int, ...]


def encode_callback(command) -> str:
    parts = [CALLBACK_PREFIXES[type(command)]]
    for f in fields(command):
        value = getattr(command, f.name)
        parts.append(",".join(str(v) for v in value) if isinstance(value, tuple) else str(value))
    data = ":".join(parts)

    encoded = data.encode("utf-8")
    if len(encoded) <= MAX_CALLBACK_BYTES:
        return data
    if isinstance(command, SelectMovie):
        # Truncated titles are resolved by search when the exact group is gone
        return encoded[:MAX_CALLBACK_BYTES].decode("utf-8", "ignore")
    raise ValueError(f"Callback payload too long for {type(command).__name__}: {len(encoded)} bytes")


def decode_callback(data) -> Optional[object]:
    """Typed command for a callback payload, or None if it is not one of ours"""
    if not isinstance(data, str) or not data:
        return None

    prefix, _, rest = data.partition(":")
    cls = CALLBACK_TYPES.get(prefix)
    if cls is None:
        return None

    cls_fields = fields(cls)
    if not cls_fields:
        return cls() if not rest else None

    # The last argument keeps any further separators (titles may contain ':')
    args = rest.split(":", len(cls_fields) - 1)
    if len(args) != len(cls_fields):
        return None

    values = []
    try:
        for f, raw in zip(cls_fields, args):
            if f.type is int:
                values.append(int(raw))
            elif f.type == ID_LIST:
                values.append(tuple(int(x) for x in raw.split(",") if x))
            else:
                values.append(raw)
        return cls(*values)
    except ValueError:
        return None
