"""
simulator.py — Allocation Simulator

"Where could a new patient needing HH:MM fit on this day-group?"

For each chair, free intervals are derived around the sorted sessions, with a
30-minute cleaning buffer after every existing session and before any
session that follows another:

  before first   [open,               first_start)
  between        [prev_end + 30,      next_start - 30)
  after last     [last_end + 30,      close)
  empty chair    [open,               close)

An interval qualifies when it is at least the requested duration long; its
start is the suggested placement. Suggestions are scored against the
canonical shift windows and returned best-first (ties: lower chair number
first). No single answer is picked; the caller shows the ranked list.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from hemo_scheduler.config import resolve_settings
from hemo_scheduler.models import ChairSchedule, DayGroup, ScheduleData
from hemo_scheduler.schedule_config import (
    FALLBACK_QUALITY,
    FALLBACK_SCORE,
    MIN_CLEANING_MINUTES,
)
from hemo_scheduler.timegrid import get_chair_number, minutes_to_time, operating_window, parse_duration_minutes
from hemo_scheduler.store import turn_for_click

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotSuggestion:
    chair_number: str
    turn: int
    start_minutes: int
    end_minutes: int
    score: int
    quality: str

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minutes)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minutes)

    def __str__(self) -> str:
        return (
            f"Polt. {self.chair_number} T{self.turn} {self.start_time}-{self.end_time} "
            f"[{self.score}] {self.quality}"
        )


def free_intervals(chair: ChairSchedule, required: int) -> List[Tuple[int, int]]:
    """Free (start, end) minute intervals of at least ``required`` minutes."""
    open_minutes, close_minutes = operating_window()
    patients = chair.sorted_patients()
    if not patients:
        return [(open_minutes, close_minutes)] if close_minutes - open_minutes >= required else []

    candidates: List[Tuple[int, int]] = [(open_minutes, patients[0].start_minutes)]
    for current, nxt in zip(patients, patients[1:]):
        candidates.append((
            current.end_minutes + MIN_CLEANING_MINUTES,
            nxt.start_minutes - MIN_CLEANING_MINUTES,
        ))
    candidates.append((patients[-1].end_minutes + MIN_CLEANING_MINUTES, close_minutes))

    return [(start, end) for start, end in candidates if end - start >= required]


def score_start(start: int, windows: List[Dict[str, Any]]) -> Tuple[int, int, str]:
    """(turn, score, quality) for a suggested start minute."""
    for window in windows:
        if abs(start - window["center"]) <= window["tolerance"]:
            return window["turn"], window["score"], window["quality"]
    return turn_for_click(start), FALLBACK_SCORE, FALLBACK_QUALITY


def simulate_allocation(
    data: ScheduleData,
    day_group: DayGroup,
    duration: str,
    settings: Optional[Dict[str, Any]] = None,
) -> List[SlotSuggestion]:
    settings = resolve_settings(settings)
    windows = settings["shift_windows"]
    required = parse_duration_minutes(duration)

    suggestions: List[SlotSuggestion] = []
    for chair in data.chairs(day_group):
        for start, _end in free_intervals(chair, required):
            turn, score, quality = score_start(start, windows)
            suggestions.append(SlotSuggestion(
                chair_number=chair.chair_number,
                turn=turn,
                start_minutes=start,
                end_minutes=start + required,
                score=score,
                quality=quality,
            ))

    suggestions.sort(key=lambda s: (-s.score, get_chair_number(s.chair_number)))
    logger.debug(f"Simulated {duration} on {DayGroup.parse(day_group).value}: {len(suggestions)} options")
    return suggestions
