"""
models.py — Schedule Data Model

  DayGroup            SEG/QUA/SEX | TER/QUI/SÁB
  Patient             one session assignment (same person may own several)
  ChairSchedule       one chair, turns 1..3
  ScheduleData        both day-groups, always the full 20-chair roster
  FlatPatientRecord   one row per occupied slot (list views / CSV)

All types are frozen. Mutations elsewhere return new values built with
dataclasses.replace / ScheduleData.with_chair.

JSON shape (backup files, persistence) keeps the field names used by the
browser version of the tool:
  {"SEG/QUA/SEX": [{"chairNumber": "01", "turn1": {...} | null, ...}, ...],
   "TER/QUI/SÁB": [...]}
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from hemo_scheduler.schedule_config import (
    ALL_CHAIRS,
    DAY_GROUP_DAYS,
    DEFAULT_DURATION,
    DEFAULT_FREQUENCY,
    DEFAULT_START_TIME,
    DEFAULT_TREATMENT,
    GROUP_MWF,
    GROUP_TTS,
    TURNS,
)
from hemo_scheduler.timegrid import normalize_string, time_to_minutes

logger = logging.getLogger(__name__)


class DayGroup(str, Enum):
    MWF = GROUP_MWF
    TTS = GROUP_TTS

    @property
    def days(self) -> Tuple[str, ...]:
        return DAY_GROUP_DAYS[self.value]

    @classmethod
    def parse(cls, value: Any) -> "DayGroup":
        if isinstance(value, DayGroup):
            return value
        text = normalize_string(value)
        for group in cls:
            if normalize_string(group.value) == text or group.name == text:
                return group
        raise ValueError(f"Unknown day-group: {value!r}")


DAY_GROUPS: Tuple[DayGroup, ...] = (DayGroup.MWF, DayGroup.TTS)


def groups_for_days(days: Iterable[str]) -> List[DayGroup]:
    """Day-groups touched by a set of weekday abbreviations, in canonical order."""
    wanted = {normalize_string(d) for d in days}
    return [
        g for g in DAY_GROUPS
        if any(normalize_string(d) in wanted for d in g.days)
    ]


def days_for_group(days: Iterable[str], group: DayGroup) -> Tuple[str, ...]:
    """Restrict ``days`` to the weekdays of ``group``, canonical spelling and order."""
    wanted = {normalize_string(d) for d in days}
    return tuple(d for d in group.days if normalize_string(d) in wanted)


def matches_same_person(name_a: Any, name_b: Any) -> bool:
    """
    Identity heuristic: same first name token, ignoring case and accents.

    Two different people sharing a first name collide; import merging relies
    on exactly this behaviour.
    """
    tokens_a = normalize_string(name_a).split()
    tokens_b = normalize_string(name_b).split()
    if not tokens_a or not tokens_b:
        return False
    return tokens_a[0] == tokens_b[0]


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Patient:
    id: str
    name: str
    treatment: str = DEFAULT_TREATMENT
    start_time: str = DEFAULT_START_TIME
    duration: str = DEFAULT_DURATION
    frequency: str = DEFAULT_FREQUENCY
    specific_days: Tuple[str, ...] = ()
    checked: bool = False

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start_time)

    @property
    def duration_minutes(self) -> int:
        return time_to_minutes(self.duration)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @property
    def day_groups(self) -> List[DayGroup]:
        """Day-groups this assignment is active in, derived from its weekdays."""
        return groups_for_days(self.specific_days)

    def for_group(self, group: DayGroup) -> "Patient":
        """Copy stored under ``group``: weekdays restricted to that group."""
        days = days_for_group(self.specific_days, group)
        return replace(self, specific_days=days or group.days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "treatment": self.treatment,
            "startTime": self.start_time,
            "duration": self.duration,
            "frequency": self.frequency,
            "specificDays": list(self.specific_days),
            "checked": self.checked,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], default_group: Optional[DayGroup] = None) -> "Patient":
        """
        Hydrate a stored patient. Missing specificDays default to the
        canonical days of the group the record was stored under.
        """
        days = raw.get("specificDays") or raw.get("specific_days") or []
        if not isinstance(days, (list, tuple)):
            days = []
        days = tuple(str(d) for d in days)
        if not days and default_group is not None:
            days = default_group.days
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")).strip(),
            treatment=str(raw.get("treatment") or DEFAULT_TREATMENT),
            start_time=str(raw.get("startTime") or raw.get("start_time") or DEFAULT_START_TIME),
            duration=str(raw.get("duration") or DEFAULT_DURATION),
            frequency=str(raw.get("frequency") or DEFAULT_FREQUENCY),
            specific_days=days,
            checked=bool(raw.get("checked", False)),
        )


# ---------------------------------------------------------------------------
# ChairSchedule
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChairSchedule:
    chair_number: str
    turn1: Optional[Patient] = None
    turn2: Optional[Patient] = None
    turn3: Optional[Patient] = None

    def get_turn(self, turn: int) -> Optional[Patient]:
        if turn not in TURNS:
            raise ValueError(f"Turn must be 1, 2 or 3 (got {turn})")
        return getattr(self, f"turn{turn}")

    def with_turn(self, turn: int, patient: Optional[Patient]) -> "ChairSchedule":
        if turn not in TURNS:
            raise ValueError(f"Turn must be 1, 2 or 3 (got {turn})")
        return replace(self, **{f"turn{turn}": patient})

    def occupied(self) -> Iterator[Tuple[int, Patient]]:
        """(turn, patient) for every non-empty turn, in turn order."""
        for turn in TURNS:
            patient = getattr(self, f"turn{turn}")
            if patient is not None:
                yield turn, patient

    def patients(self) -> List[Patient]:
        return [p for _, p in self.occupied()]

    def sorted_patients(self) -> List[Patient]:
        """Occupied turns ordered by start time (stable for ties)."""
        return sorted(self.patients(), key=lambda p: p.start_minutes)

    def turn_of(self, patient_id: str) -> Optional[int]:
        for turn, patient in self.occupied():
            if patient.id == patient_id:
                return turn
        return None

    def first_free_turn(self) -> Optional[int]:
        for turn in TURNS:
            if getattr(self, f"turn{turn}") is None:
                return turn
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"chairNumber": self.chair_number}
        for turn in TURNS:
            patient = getattr(self, f"turn{turn}")
            out[f"turn{turn}"] = patient.to_dict() if patient else None
        return out


# ---------------------------------------------------------------------------
# ScheduleData
# ---------------------------------------------------------------------------

def _empty_group() -> Tuple[ChairSchedule, ...]:
    return tuple(ChairSchedule(chair_number=c) for c in ALL_CHAIRS)


@dataclass(frozen=True)
class ScheduleData:
    groups: Mapping[DayGroup, Tuple[ChairSchedule, ...]] = field(
        default_factory=lambda: {g: _empty_group() for g in DAY_GROUPS}
    )

    def __post_init__(self):
        # read-only view; changes go through with_chair / with_slot
        frozen = {DayGroup.parse(g): tuple(chairs) for g, chairs in self.groups.items()}
        object.__setattr__(self, "groups", MappingProxyType(frozen))

    def __hash__(self) -> int:
        return hash(tuple((g, self.groups.get(g)) for g in DAY_GROUPS))

    def chairs(self, group: DayGroup) -> Tuple[ChairSchedule, ...]:
        return self.groups[DayGroup.parse(group)]

    def chair(self, group: DayGroup, chair_number: str) -> Optional[ChairSchedule]:
        for chair in self.chairs(group):
            if chair.chair_number == chair_number:
                return chair
        return None

    def with_chair(self, group: DayGroup, chair: ChairSchedule) -> "ScheduleData":
        """New ScheduleData with ``chair`` replacing the same-label chair of ``group``."""
        group = DayGroup.parse(group)
        if chair.chair_number not in ALL_CHAIRS:
            raise ValueError(f"Chair {chair.chair_number!r} is not part of the room")
        updated = tuple(
            chair if c.chair_number == chair.chair_number else c
            for c in self.groups[group]
        )
        groups = dict(self.groups)
        groups[group] = updated
        return ScheduleData(groups=groups)

    def with_slot(self, group: DayGroup, chair_number: str, turn: int,
                  patient: Optional[Patient]) -> "ScheduleData":
        chair = self.chair(group, chair_number)
        if chair is None:
            raise ValueError(f"Chair {chair_number!r} is not part of the room")
        return self.with_chair(group, chair.with_turn(turn, patient))

    def slots(self) -> Iterator[Tuple[DayGroup, ChairSchedule, int, Patient]]:
        """Every occupied slot: (group, chair, turn, patient)."""
        for group in DAY_GROUPS:
            for chair in self.groups[group]:
                for turn, patient in chair.occupied():
                    yield group, chair, turn, patient

    def record_count(self) -> int:
        return sum(1 for _ in self.slots())

    def is_empty(self) -> bool:
        return self.record_count() == 0

    def to_dict(self) -> Dict[str, Any]:
        return {g.value: [c.to_dict() for c in self.groups[g]] for g in DAY_GROUPS}


def create_empty_schedule() -> ScheduleData:
    return ScheduleData()


def normalize_data(raw: Any) -> ScheduleData:
    """
    Rebuild a ScheduleData from stored JSON (dict) onto the official roster.

    Extra chairs are dropped, missing chairs are added empty, patients get
    their default weekdays. Unusable input yields an empty schedule.
    """
    if isinstance(raw, ScheduleData):
        return raw
    if not isinstance(raw, dict):
        return create_empty_schedule()

    clean = copy.deepcopy(raw)
    groups: Dict[DayGroup, Tuple[ChairSchedule, ...]] = {}
    for group in DAY_GROUPS:
        stored = clean.get(group.value)
        if not isinstance(stored, list):
            groups[group] = _empty_group()
            continue
        by_label: Dict[str, Dict[str, Any]] = {}
        for entry in stored:
            if isinstance(entry, dict) and entry.get("chairNumber") not in by_label:
                by_label[entry.get("chairNumber")] = entry

        chairs = []
        for label in ALL_CHAIRS:
            found = by_label.get(label)
            if not found:
                chairs.append(ChairSchedule(chair_number=label))
                continue
            turns = {}
            for turn in TURNS:
                p = found.get(f"turn{turn}")
                turns[f"turn{turn}"] = Patient.from_dict(p, group) if isinstance(p, dict) else None
            chairs.append(ChairSchedule(chair_number=label, **turns))
        groups[group] = tuple(chairs)

    dropped = [
        e.get("chairNumber") for g in DAY_GROUPS
        for e in (clean.get(g.value) or []) if isinstance(e, dict)
        and e.get("chairNumber") not in ALL_CHAIRS
    ]
    if dropped:
        logger.warning(f"Ignoring chairs outside the room roster: {sorted(set(map(str, dropped)))}")
    return ScheduleData(groups=groups)


# ---------------------------------------------------------------------------
# Flatten / rebuild
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FlatPatientRecord:
    patient: Patient
    day_group: DayGroup
    chair_number: str
    turn: int

    @property
    def unique_id(self) -> str:
        return f"{self.patient.id}_{self.day_group.value}_{self.chair_number}_{self.turn}"

    def to_row(self) -> Dict[str, Any]:
        row = self.patient.to_dict()
        row["specificDays"] = ",".join(self.patient.specific_days)
        row.update({
            "uniqueId": self.unique_id,
            "dayGroup": self.day_group.value,
            "chairNumber": self.chair_number,
            "turn": self.turn,
        })
        return row


def flatten_schedule(data: ScheduleData) -> List[FlatPatientRecord]:
    return [
        FlatPatientRecord(patient=p, day_group=g, chair_number=c.chair_number, turn=t)
        for g, c, t, p in data.slots()
    ]


def rebuild_schedule(records: Iterable[FlatPatientRecord]) -> ScheduleData:
    """Inverse of flatten_schedule; records pointing at unknown chairs are dropped."""
    data = create_empty_schedule()
    for rec in records:
        if rec.chair_number not in ALL_CHAIRS:
            logger.warning(f"Dropping record for unknown chair {rec.chair_number!r}: {rec.patient.name}")
            continue
        data = data.with_slot(rec.day_group, rec.chair_number, rec.turn, rec.patient)
    return data
