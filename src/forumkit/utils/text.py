"""Slug and relative-time helpers."""

from __future__ import annotations

import re
from datetime import datetime

_NON_WORD = re.compile(r"[^ \w-]+")
_DASHES = re.compile(r"-+")

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR


def sanitize_for_slug(text: str) -> str:
    """Lowercase, dash-separated slug: ``"Tips & Tricks!"`` -> ``"tips-and-tricks"``."""
    text = text.strip().replace("&", "and")
    text = _NON_WORD.sub("", text).replace(" ", "-")
    return _DASHES.sub("-", text).lower()


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def diff_for_humans(moment: datetime, now: datetime) -> str:
    """Relative description of *moment* as seen from *now*, e.g. ``"3 hours ago"``."""
    seconds = int((now - moment).total_seconds())
    suffix = "ago" if seconds >= 0 else "from now"
    seconds = abs(seconds)

    if seconds < _MINUTE:
        phrase = _plural(max(seconds, 1), "second")
    elif seconds < _HOUR:
        phrase = _plural(seconds // _MINUTE, "minute")
    elif seconds < _DAY:
        phrase = _plural(seconds // _HOUR, "hour")
    else:
        days = seconds // _DAY
        if days < 7:
            phrase = _plural(days, "day")
        elif days < 30:
            phrase = _plural(days // 7, "week")
        elif days < 365:
            phrase = _plural(days // 30, "month")
        else:
            phrase = _plural(days // 365, "year")

    return f"{phrase} {suffix}"
