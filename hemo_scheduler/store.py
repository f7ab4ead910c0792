"""
store.py — Schedule Store (mutation contract)

Every operation takes a ScheduleData and returns a NEW ScheduleData; nothing
is mutated in place. Invalid writes raise before anything is built:

  SlotConflictError   target chair/turn held by a different patient
  ChairFullError      drag-drop onto a chair with 3 occupied turns
  OverlapError        session time range overlaps another session on the chair
  UnknownChairError   chair label outside the room roster

Patients spanning both day-groups are written from one Patient value: the
groups come from Patient.day_groups (its weekdays) and each stored copy is
Patient.for_group(group), sharing the same id. Field edits are propagated to
every copy with that id so the two groups cannot drift apart.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from hemo_scheduler.errors import (
    ChairFullError,
    ConfirmationRequiredError,
    OverlapError,
    SlotConflictError,
    UnknownChairError,
)
from hemo_scheduler.models import (
    ChairSchedule,
    DayGroup,
    FlatPatientRecord,
    Patient,
    ScheduleData,
    create_empty_schedule,
)
from hemo_scheduler.schedule_config import (
    GRID_TURN2_START,
    GRID_TURN3_START,
    WEEKDAY_TO_GROUP,
)
from hemo_scheduler.timegrid import minutes_to_time, normalize_string, parse_duration_minutes, time_to_minutes

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "treatment", "start_time", "duration", "frequency", "specific_days", "checked")


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def new_patient_id() -> str:
    return str(uuid.uuid4())


def turn_for_click(time_or_minutes: Union[str, int]) -> int:
    """Turn implied by a grid time (clicked cell or suggested start)."""
    minutes = (
        time_to_minutes(time_or_minutes) if isinstance(time_or_minutes, str) else int(time_or_minutes)
    )
    if minutes < GRID_TURN2_START:
        return 1
    if minutes < GRID_TURN3_START:
        return 2
    return 3


def day_group_for_date(day: date) -> Optional[DayGroup]:
    """Day-group running on ``day``; None on Sundays."""
    value = WEEKDAY_TO_GROUP.get(day.weekday())
    return DayGroup(value) if value else None


def _require_chair(data: ScheduleData, group: DayGroup, chair_number: str) -> ChairSchedule:
    chair = data.chair(group, chair_number)
    if chair is None:
        raise UnknownChairError(chair_number)
    return chair


def check_overlap(chair: ChairSchedule, group: DayGroup, patient: Patient,
                  ignore_ids: Iterable[str] = ()) -> None:
    """Raise OverlapError when ``patient`` overlaps another session on ``chair``."""
    ignored = set(ignore_ids) | {patient.id}
    for other in chair.patients():
        if other.id in ignored:
            continue
        if patient.start_minutes < other.end_minutes and other.start_minutes < patient.end_minutes:
            raise OverlapError(
                group.value, chair.chair_number, other,
                detail=f"{other.start_time}-{minutes_to_time(other.end_minutes)}",
            )


def _clean(patient: Patient) -> Patient:
    return replace(patient, name=patient.name.strip().upper())


# ---------------------------------------------------------------------------
# Modal save
# ---------------------------------------------------------------------------

def save_patient(
    data: ScheduleData,
    patient: Patient,
    chair_numbers: Union[str, Sequence[str]],
    turn: int,
    day_group: DayGroup,
    editing: Optional[Tuple[DayGroup, str, int]] = None,
) -> ScheduleData:
    """
    Insert or update ``patient`` at ``turn`` of one or more chairs.

    Target groups come from the patient's weekdays (both groups for a
    Diário patient); with no weekdays the current ``day_group`` is used.
    ``editing`` is the slot the edit started from; it and every other copy of
    the patient id are cleared first, so the saved weekdays alone decide
    where the patient lives.
    """
    day_group = DayGroup.parse(day_group)
    chairs = [chair_numbers] if isinstance(chair_numbers, str) else list(chair_numbers)
    patient = _clean(patient)
    targets = patient.day_groups or [day_group]

    result = data
    if editing is not None:
        edit_group, edit_chair, edit_turn = editing
        _require_chair(result, DayGroup.parse(edit_group), edit_chair)
        result = result.with_slot(edit_group, edit_chair, edit_turn, None)
        result = delete_patient(result, patient.id)

    for group in targets:
        copy_for_group = patient.for_group(group) if patient.specific_days else replace(
            patient, specific_days=group.days)
        for chair_number in chairs:
            chair = _require_chair(result, group, chair_number)
            occupant = chair.get_turn(turn)
            if occupant is not None and occupant.id != patient.id:
                raise SlotConflictError(group.value, chair_number, turn, occupant)
            check_overlap(chair, group, copy_for_group)
            result = result.with_chair(group, chair.with_turn(turn, copy_for_group))

    logger.info(
        f"Saved {patient.name} → chairs {chairs} turn {turn} "
        f"({', '.join(g.value for g in targets)})"
    )
    return result


# ---------------------------------------------------------------------------
# List-view edit / move
# ---------------------------------------------------------------------------

def update_patient(data: ScheduleData, patient_id: str, **changes: Any) -> ScheduleData:
    """
    Apply field ``changes`` to every stored copy of ``patient_id``.

    specific_days, when given, is restricted per group so each copy keeps
    only the weekdays of the group it lives in.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot edit fields: {sorted(unknown)}")
    if "name" in changes:
        changes["name"] = str(changes["name"]).strip().upper()
    if "specific_days" in changes:
        changes["specific_days"] = tuple(changes["specific_days"])

    result = data
    found = False
    for group, chair, turn, patient in data.slots():
        if patient.id != patient_id:
            continue
        found = True
        updated = replace(patient, **changes)
        if "specific_days" in changes:
            updated = updated.for_group(group)
        current_chair = result.chair(group, chair.chair_number)
        check_overlap(current_chair, group, updated)
        result = result.with_chair(group, current_chair.with_turn(turn, updated))

    if not found:
        logger.warning(f"update_patient: no slot holds patient id {patient_id}")
    return result


def move_patient(
    data: ScheduleData,
    record: FlatPatientRecord,
    day_group: DayGroup,
    chair_number: str,
    turn: int,
    **changes: Any,
) -> ScheduleData:
    """
    Move one stored copy to another group/chair/turn, applying ``changes``.

    Moving resets the weekdays to the canonical days of the target group.
    Without a move, this is an in-place edit of that copy.
    """
    day_group = DayGroup.parse(day_group)
    moved = (
        day_group != record.day_group
        or chair_number != record.chair_number
        or turn != record.turn
    )
    if not moved:
        chair = _require_chair(data, day_group, chair_number)
        current = chair.get_turn(turn) or record.patient
        updated = _clean(replace(current, **changes))
        check_overlap(chair, day_group, updated)
        return data.with_chair(day_group, chair.with_turn(turn, updated))

    target = _require_chair(data, day_group, chair_number)
    occupant = target.get_turn(turn)
    if occupant is not None and occupant.id != record.patient.id:
        raise SlotConflictError(day_group.value, chair_number, turn, occupant)

    result = data.with_slot(record.day_group, record.chair_number, record.turn, None)
    target = result.chair(day_group, chair_number)
    updated = _clean(replace(record.patient, **changes))
    updated = replace(updated, specific_days=day_group.days)
    check_overlap(target, day_group, updated)

    logger.info(
        f"Moved {updated.name}: {record.day_group.value} {record.chair_number} T{record.turn} "
        f"→ {day_group.value} {chair_number} T{turn}"
    )
    return result.with_chair(day_group, target.with_turn(turn, updated))


# ---------------------------------------------------------------------------
# Drag & drop
# ---------------------------------------------------------------------------

def drop_patient(
    data: ScheduleData,
    day_group: DayGroup,
    origin_chair: str,
    origin_turn: int,
    target_chair: str,
    target_time: str,
) -> ScheduleData:
    """
    Drop the patient at (origin_chair, origin_turn) onto ``target_chair`` at
    ``target_time``, taking the first free turn of the target chair.
    """
    day_group = DayGroup.parse(day_group)
    origin = _require_chair(data, day_group, origin_chair)
    patient = origin.get_turn(origin_turn)
    if patient is None:
        logger.warning(f"Nothing to drop from {origin_chair} T{origin_turn} ({day_group.value})")
        return data

    result = data.with_slot(day_group, origin_chair, origin_turn, None)
    target = _require_chair(result, day_group, target_chair)
    free_turn = target.first_free_turn()
    if free_turn is None:
        raise ChairFullError(day_group.value, target_chair)

    moved = replace(patient, start_time=minutes_to_time(time_to_minutes(target_time)))
    check_overlap(target, day_group, moved)
    return result.with_chair(day_group, target.with_turn(free_turn, moved))


# ---------------------------------------------------------------------------
# Delete / wipe
# ---------------------------------------------------------------------------

def delete_patient(data: ScheduleData, patient_id: str) -> ScheduleData:
    """Remove every slot holding ``patient_id`` in both groups."""
    result = data
    for group, chair, turn, patient in data.slots():
        if patient.id == patient_id:
            result = result.with_slot(group, chair.chair_number, turn, None)
    return result


def wipe(confirmed: bool = False) -> ScheduleData:
    if not confirmed:
        raise ConfirmationRequiredError("Apagar todos os pacientes exige confirmação explícita.")
    logger.warning("Schedule wiped (confirmed)")
    return create_empty_schedule()


# ---------------------------------------------------------------------------
# Patient agenda
# ---------------------------------------------------------------------------

def patient_sessions(data: ScheduleData, name: str) -> Dict[str, Any]:
    """
    Every slot held by ``name`` (exact normalised match) across both groups,
    with session-hour totals.
    """
    wanted = normalize_string(name)
    sessions: List[Dict[str, Any]] = []
    for group, chair, turn, patient in data.slots():
        if normalize_string(patient.name) == wanted:
            sessions.append({
                "day_group":    group,
                "chair_number": chair.chair_number,
                "turn":         turn,
                "patient":      patient,
            })

    total_hours = sum(parse_duration_minutes(s["patient"].duration) for s in sessions) / 60
    weekly_hours = sum(
        parse_duration_minutes(s["patient"].duration) / 60
        * len(s["patient"].specific_days or s["day_group"].days)
        for s in sessions
    )
    return {
        "name":              wanted,
        "sessions":          sessions,
        "session_count":     len(sessions),
        "total_hours":       total_hours,
        "weekly_hours":      weekly_hours,
        "primary_treatment": sessions[0]["patient"].treatment if sessions else None,
    }

