"""
timegrid.py — Clock / Grid Primitives

All scheduling math works on integer minutes since midnight. Clock times and
session durations share the same "HH:MM" text form: a duration "04:00" means
four hours, not four o'clock.

Nothing here raises on bad text; parsing is best effort and falls back to 0.
"""

import math
import re
import unicodedata
from typing import Any, Dict, List, Tuple

from hemo_scheduler.schedule_config import (
    BED_CHAIR,
    CLOSE_MINUTES,
    OPEN_MINUTES,
    SLOT_INTERVAL,
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_SEPARATORS = re.compile(r"[h.,]")


def _leading_int(part: str) -> int:
    """Integer prefix of ``part`` ("30abc" → 30); 0 when there is none."""
    match = _LEADING_INT.match(part)
    return int(match.group(1)) if match else 0


def time_to_minutes(text: Any) -> int:
    """
    Convert "HH:MM" (or "HH.MM", "HH,MM", "14h30") to minutes since midnight.

    Missing or unparseable hour/minute parts count as 0.
    """
    if not text or not isinstance(text, str):
        return 0
    clean = _SEPARATORS.sub(":", text.lower().strip())
    parts = clean.split(":")
    hours = _leading_int(parts[0])
    minutes = _leading_int(parts[1]) if len(parts) > 1 else 0
    return hours * 60 + minutes


def minutes_to_time(minutes: float) -> str:
    """Render minutes as zero-padded "HH:MM". Hours are not wrapped at 24."""
    total = int(math.floor(minutes + 0.5))
    hours, mins = divmod(total, 60)
    return f"{hours:02d}:{mins:02d}"


parse_duration_minutes = time_to_minutes


def snap_to_grid(minutes: int) -> int:
    """Round down to the 30-minute grid."""
    return (minutes // SLOT_INTERVAL) * SLOT_INTERVAL


def operating_window() -> Tuple[int, int]:
    """(open, close) in minutes since midnight."""
    return OPEN_MINUTES, CLOSE_MINUTES


def time_slots() -> List[Dict[str, Any]]:
    """Grid rows from opening to closing (inclusive), one per slot interval."""
    open_minutes, close_minutes = operating_window()
    return [
        {"time": minutes_to_time(t), "minutes": t, "full_hour": t % 60 == 0}
        for t in range(open_minutes, close_minutes + 1, SLOT_INTERVAL)
    ]


def get_chair_number(label: Any) -> int:
    """
    Numeric value of a chair label, for ordering.

    "07" → 7, "Leito 09" → 9, anything without digits → 999.
    """
    if not label:
        return 999
    text = str(label)
    match = re.search(r"\d+", text)
    if text.lower().startswith(BED_CHAIR.split()[0].lower()):
        return int(match.group(0)) if match else 9
    return int(match.group(0)) if match else 999


def normalize_string(text: Any) -> str:
    """Strip diacritics, upper-case and trim ("  João " → "JOAO")."""
    decomposed = unicodedata.normalize("NFD", str(text or ""))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.upper().strip()
