"""Pure helpers for Dropbox paths, dated folder names and API header arguments."""

import json
import re
from datetime import datetime
from typing import Any

# First "-"-delimited segment of a dated folder name: years 2000-2099
YEAR_PATTERN = re.compile(r"20\d{2}")

_NON_ASCII = re.compile("[\u0080-\U0010ffff]")


def join_path(base: str, *parts: str) -> str:
    """Join Dropbox path segments with single slashes.

    Args:
        base: Leading path (e.g., "/Tulokset" or "" for the root)
        parts: Further segments; empty segments are ignored

    Returns:
        Absolute path without a trailing slash
    """
    path = base.rstrip("/")
    for part in parts:
        part = part.strip("/")
        if part:
            path = f"{path}/{part}"
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def year_prefix(name: str) -> str | None:
    """Extract the year from a dated folder name such as "2021-champs".

    Returns None when the first "-"-delimited segment is not "20" followed
    by two digits.
    """
    head = name.split("-", 1)[0]
    if YEAR_PATTERN.fullmatch(head):
        return head
    return None


def archive_paths(archive_root: str, folder_name: str) -> tuple[str, str] | None:
    """Get the archive year folder and archive subfolder for a dated folder.

    Args:
        archive_root: Root of the archive tree
        folder_name: Name of the dated source folder

    Returns:
        (year_folder, subfolder) or None if the name carries no year prefix
    """
    year = year_prefix(folder_name)
    if year is None:
        return None
    year_folder = join_path(archive_root, year)
    return year_folder, join_path(year_folder, folder_name)


def has_suffix(name: str, suffix: str) -> bool:
    """Case-insensitive suffix match."""
    return name.lower().endswith(suffix.lower())


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Dropbox ISO 8601 timestamp ("2024-05-01T18:30:00Z")."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _escape_char(match: re.Match[str]) -> str:
    code = ord(match.group(0))
    if code > 0xFFFF:
        # Outside the BMP: write the UTF-16 surrogate pair, as JSON does
        code -= 0x10000
        high = 0xD800 + (code >> 10)
        low = 0xDC00 + (code & 0x3FF)
        return f"\\u{high:04x}\\u{low:04x}"
    return f"\\u{code:04x}"


def ascii_safe(text: str) -> str:
    """Escape every code point >= 0x80 as a 4-hex-digit \\u sequence.

    HTTP header values sent to Dropbox must be plain ASCII. Applied to a JSON
    document, the result still decodes to the original values.
    """
    return _NON_ASCII.sub(_escape_char, text)


def encode_api_arg(arg: dict[str, Any]) -> str:
    """Serialize a Dropbox-API-Arg header value."""
    return ascii_safe(json.dumps(arg, ensure_ascii=False))
