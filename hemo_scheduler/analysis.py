"""
analysis.py — Capacity & Gap Analysis Engine

Deterministic, side-effect free; safe to re-run on every change.

Capacity:
  installed  = chairs × 3 turns × 2 day-groups
  effective  = round(installed × effective_capacity_ratio)
  real       = occupied slots across both groups (a Diário patient counts twice)
  unique     = distinct normalised names (approximate headcount)
  efficiency = real / effective,  occupancy = real / installed

Gaps (per chair, per group):
  cursor starts at opening; a gap [cursor, start) is reported when it can take
  a standard 4h session plus 30 min cleaning (≥ 270 min); cursor then moves to
  end + 30. The stretch after the last patient uses the same 270 threshold.

Optimisation candidates (strategy from settings):
  late_start    chair whose first patient starts at/after the threshold (06:00)
  anticipation  late-shift patient (≥ 13:00) that fits an earlier gap on the
                same chair

Usage:
  report = run_analysis(data)
  report["gaps"], report["candidates"]
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from hemo_scheduler.config import resolve_settings, threshold_minutes
from hemo_scheduler.models import DAY_GROUPS, ChairSchedule, DayGroup, ScheduleData
from hemo_scheduler.schedule_config import (
    ALL_CHAIRS,
    CLOSE_MINUTES,
    MIN_CLEANING_MINUTES,
    OPEN_MINUTES,
    STANDARD_SESSION_MINUTES,
    TURNS,
)
from hemo_scheduler.timegrid import minutes_to_time, normalize_string

logger = logging.getLogger(__name__)

GAP_MIN_MINUTES = STANDARD_SESSION_MINUTES + MIN_CLEANING_MINUTES   # 270


@dataclass(frozen=True)
class GapOpportunity:
    day_group: DayGroup
    chair_number: str
    start_minutes: int
    end_minutes: int

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minutes)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minutes)

    @property
    def can_fit_standard_session(self) -> bool:
        return self.duration_minutes >= GAP_MIN_MINUTES

    def __str__(self) -> str:
        return (
            f"{self.day_group.value} | Polt. {self.chair_number} | "
            f"{self.start_time}-{self.end_time} ({self.duration_minutes} min)"
        )


@dataclass(frozen=True)
class OptimizationCandidate:
    kind: str                 # "LATE_START" | "ANTICIPATION"
    patient_name: str
    chair_number: str
    turn: int
    day_group: DayGroup
    current_start: str
    ideal_start: str
    impact: str

    def __str__(self) -> str:
        return (
            f"[{self.kind}] {self.patient_name} | Polt. {self.chair_number} T{self.turn} "
            f"({self.day_group.value}) {self.current_start} → {self.ideal_start} | {self.impact}"
        )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _pct(numerator: float, denominator: float) -> float:
    return (numerator / denominator) * 100 if denominator else 0.0


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

def get_stats(data: ScheduleData) -> Dict[str, Any]:
    """Slot counts, unique names, HD/HDF split and per-turn counts."""
    total_slots = 0
    unique_names = set()
    hdf_count = 0
    hd_count = 0
    turn_counts = {t: 0 for t in TURNS}

    for _group, _chair, turn, patient in data.slots():
        total_slots += 1
        unique_names.add(normalize_string(patient.name))
        turn_counts[turn] += 1
        if patient.treatment == "HDF":
            hdf_count += 1
        else:
            hd_count += 1

    return {
        "total_slots":    total_slots,
        "unique_patients": len(unique_names),
        "hd_count":       hd_count,
        "hdf_count":      hdf_count,
        "hdf_percent":    _round_half_up(_pct(hdf_count, total_slots)),
        "hd_percent":     _round_half_up(_pct(hd_count, total_slots)),
        "turn_counts":    turn_counts,
    }


# ---------------------------------------------------------------------------
# Gaps
# ---------------------------------------------------------------------------

def chair_gaps(chair: ChairSchedule, day_group: DayGroup) -> List[GapOpportunity]:
    gaps: List[GapOpportunity] = []
    cursor = OPEN_MINUTES
    for patient in chair.sorted_patients():
        start = patient.start_minutes
        if start - cursor >= GAP_MIN_MINUTES:
            gaps.append(GapOpportunity(day_group, chair.chair_number, cursor, start))
        cursor = max(cursor, patient.end_minutes + MIN_CLEANING_MINUTES)

    if CLOSE_MINUTES - cursor >= GAP_MIN_MINUTES:
        gaps.append(GapOpportunity(day_group, chair.chair_number, cursor, CLOSE_MINUTES))
    return gaps


def find_gaps(data: ScheduleData) -> List[GapOpportunity]:
    return [
        gap
        for group in DAY_GROUPS
        for chair in data.chairs(group)
        for gap in chair_gaps(chair, group)
    ]


# ---------------------------------------------------------------------------
# Optimisation candidates
# ---------------------------------------------------------------------------

def _late_start_candidates(data: ScheduleData, threshold: int) -> List[OptimizationCandidate]:
    out = []
    for group in DAY_GROUPS:
        for chair in data.chairs(group):
            patients = chair.sorted_patients()
            if not patients:
                continue
            first = patients[0]
            if first.start_minutes < threshold:
                continue
            out.append(OptimizationCandidate(
                kind="LATE_START",
                patient_name=first.name,
                chair_number=chair.chair_number,
                turn=chair.turn_of(first.id) or 1,
                day_group=group,
                current_start=first.start_time,
                ideal_start=minutes_to_time(OPEN_MINUTES),
                impact=f"Perda de {first.start_minutes - OPEN_MINUTES} min no início",
            ))
    return out


def _anticipation_candidates(data: ScheduleData, threshold: int) -> List[OptimizationCandidate]:
    out = []
    for group in DAY_GROUPS:
        for chair in data.chairs(group):
            gaps = chair_gaps(chair, group)
            for patient in chair.sorted_patients():
                if patient.start_minutes < threshold:
                    continue
                fit = next(
                    (g for g in gaps
                     if g.end_minutes <= patient.start_minutes
                     and g.duration_minutes >= patient.duration_minutes),
                    None,
                )
                if fit is None:
                    continue
                saved = (patient.start_minutes - fit.start_minutes) / 60
                out.append(OptimizationCandidate(
                    kind="ANTICIPATION",
                    patient_name=patient.name,
                    chair_number=chair.chair_number,
                    turn=chair.turn_of(patient.id) or 1,
                    day_group=group,
                    current_start=patient.start_time,
                    ideal_start=fit.start_time,
                    impact=f"Antecipa {saved:.1f}h na mesma poltrona",
                ))
    return out


def find_candidates(
    data: ScheduleData,
    settings: Optional[Dict[str, Any]] = None,
) -> List[OptimizationCandidate]:
    settings = resolve_settings(settings)
    strategy = settings["candidate_strategy"]
    if strategy == "anticipation":
        return _anticipation_candidates(data, threshold_minutes(settings, "anticipation_threshold"))
    return _late_start_candidates(data, threshold_minutes(settings, "late_start_threshold"))


# ---------------------------------------------------------------------------
# Full report
# ---------------------------------------------------------------------------

def run_analysis(
    data: ScheduleData,
    settings: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    settings = resolve_settings(settings)
    chairs = len(ALL_CHAIRS)
    turns = len(TURNS)
    scales = len(DAY_GROUPS)

    installed = chairs * turns * scales
    effective = _round_half_up(installed * settings["effective_capacity_ratio"])
    real = data.record_count()
    stats = get_stats(data)
    gaps = find_gaps(data)
    candidates = find_candidates(data, settings)

    logger.debug(f"Analysis: real={real}/{installed}, gaps={len(gaps)}, candidates={len(candidates)}")
    return {
        "installed_capacity":    installed,
        "effective_capacity":    effective,
        "real_capacity":         real,
        "unique_patients":       stats["unique_patients"],
        "absorbable_capacity":   max(0, effective - real),
        "efficiency_rate":       _pct(real, effective),
        "global_occupancy_rate": _pct(real, installed),
        "gaps":                  gaps,
        "candidates":            candidates,
        "candidate_strategy":    settings["candidate_strategy"],
        "stats":                 stats,
        "math": {
            "chairs": chairs,
            "turns":  turns,
            "scales": scales,
            "ratio":  settings["effective_capacity_ratio"],
        },
    }
