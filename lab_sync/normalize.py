"""Text and date normalization shared by the dedup keys and the status merge."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

LOGGER = logging.getLogger(__name__)

DISPLAY_FORMAT = "%d/%m/%Y %H:%M:%S"

_WHITESPACE_RE = re.compile(r"\s+")
_SHEET_DATETIME_RE = re.compile(
    r"^(\d{1,2})[/\\](\d{1,2})[/\\](\d{4}),?\s+(\d{1,2})[:.](\d{1,2})(?:[:.](\d{1,2}))?$"
)
_SHEET_DATE_RE = re.compile(r"^(\d{1,2})[/\\](\d{1,2})[/\\](\d{4})$")
_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def clean_for_compare(value: Any) -> str:
    """Lower-case, trim and collapse runs of whitespace."""

    if not isinstance(value, str):
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip().lower())


def normalize_title(value: Any) -> str:
    """Like :func:`clean_for_compare`, also folding typographic quotes."""

    return clean_for_compare(value).translate(_QUOTES)


def normalize_date_string(value: Any) -> str | None:
    """Render a sheet date/time as ``dd/MM/yyyy HH:mm:ss``.

    Accepts ``datetime`` objects and ``d/m/yyyy H:M[:S]`` strings (``.`` is
    accepted as time separator, as rendered by Italian locales). Returns
    ``None`` when the value is not recognized.
    """

    if isinstance(value, datetime):
        return value.strftime(DISPLAY_FORMAT)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.startswith("'"):
        text = text[1:]
    match = _SHEET_DATETIME_RE.match(text)
    if not match:
        return None
    day, month, year, hours, minutes, seconds = match.groups()
    return (
        f"{int(day):02d}/{int(month):02d}/{year} "
        f"{int(hours):02d}:{int(minutes):02d}:{int(seconds or 0):02d}"
    )


def parse_timestamp(value: Any, tz: ZoneInfo) -> datetime | None:
    """Parse a timestamp cell or stored value into an aware datetime."""

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=tz)
    text = cell_text(value)
    if not text:
        return None
    if text.startswith("'"):
        text = text[1:]

    match = _SHEET_DATETIME_RE.match(text)
    if match:
        day, month, year, hours, minutes, seconds = (int(part or 0) for part in match.groups())
        try:
            return datetime(year, month, day, hours, minutes, seconds, tzinfo=tz)
        except ValueError:
            return None
    match = _SHEET_DATE_RE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day, tzinfo=tz)
        except ValueError:
            return None

    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def normalize_timestamp(value: Any, tz: ZoneInfo) -> str:
    """Local-time rendering of a timestamp in ``tz``, used in request dedup keys.

    Values that cannot be parsed fall back to their trimmed text so that two
    identical raw values still produce identical keys.
    """

    parsed = parse_timestamp(value, tz)
    if parsed is None:
        text = cell_text(value)
        if text:
            LOGGER.debug("Unrecognized timestamp '%s'; using raw text", text)
        return text
    return parsed.astimezone(tz).strftime(DISPLAY_FORMAT)
