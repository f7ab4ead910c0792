"""
matrix.py — Occupancy Matrix Builder

Lays one day-group onto the 30-minute grid, chair by chair:

  {chair_number: {minute_offset: Cell}}

Two passes, each a pure function returning new dicts:
  1. place_patients — PATIENT cell at the snapped start (row_span = slots),
                      BLOCKED_PATIENT on every following slot it covers.
  2. place_setup    — after ALL patients are down, a SETUP cell right after
                      each session, probing at most 90 min forward and
                      stopping at a patient cell or closing time.

Overlapping sessions on one chair are not corrected here: the later
(start-sorted) patient overwrites earlier cells. Writes through store.py
reject such data, so this only shows up in imported/restored files.

Render contract: empty → open slot, PATIENT → spanning block,
SETUP → hazard block, BLOCKED_* → absorbed by the spanning cell above.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from hemo_scheduler.models import ChairSchedule, DayGroup, Patient, ScheduleData
from hemo_scheduler.schedule_config import (
    CLOSE_MINUTES,
    SETUP_DURATION_MINUTES,
    SLOT_INTERVAL,
)
from hemo_scheduler.timegrid import snap_to_grid, time_slots

Layout = Dict[int, "Cell"]            # minute offset → cell
Matrix = Dict[str, Layout]            # chair_number → layout

SETUP_LABEL = "HIGIENIZAÇÃO"
BLOCKED_LABEL = "ocupado"


class CellKind(Enum):
    PATIENT = "patient"
    BLOCKED_PATIENT = "blocked_patient"
    SETUP = "setup"
    BLOCKED_SETUP = "blocked_setup"


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    patient: Optional[Patient] = None
    row_span: int = 1

    @property
    def is_blocked(self) -> bool:
        return self.kind in (CellKind.BLOCKED_PATIENT, CellKind.BLOCKED_SETUP)

    @property
    def holds_patient(self) -> bool:
        return self.kind in (CellKind.PATIENT, CellKind.BLOCKED_PATIENT)


def _patient_span(patient: Patient) -> Tuple[int, int]:
    start = snap_to_grid(patient.start_minutes)
    span = math.ceil(patient.duration_minutes / SLOT_INTERVAL)
    return start, span


# ---------------------------------------------------------------------------
# Pass 1 — patients
# ---------------------------------------------------------------------------

def place_chair_patients(patients: List[Patient]) -> Layout:
    layout: Layout = {}
    for patient in sorted(patients, key=lambda p: p.start_minutes):
        start, span = _patient_span(patient)
        layout[start] = Cell(CellKind.PATIENT, patient=patient, row_span=span)
        for i in range(1, span):
            layout[start + i * SLOT_INTERVAL] = Cell(CellKind.BLOCKED_PATIENT)
    return layout


def place_patients(chairs: Tuple[ChairSchedule, ...]) -> Matrix:
    return {c.chair_number: place_chair_patients(c.patients()) for c in chairs}


# ---------------------------------------------------------------------------
# Pass 2 — setup blocks
# ---------------------------------------------------------------------------

def place_chair_setup(patients: List[Patient], patient_layout: Layout) -> Layout:
    """
    Add setup blocks to a chair whose patients are already placed.

    Probing only stops at patient cells, so a setup block never overwrites a
    patient and is never pre-empted by one.
    """
    layout: Layout = dict(patient_layout)
    max_slots = math.ceil(SETUP_DURATION_MINUTES / SLOT_INTERVAL)

    for patient in sorted(patients, key=lambda p: p.start_minutes):
        start, span = _patient_span(patient)
        setup_start = start + span * SLOT_INTERVAL
        if setup_start >= CLOSE_MINUTES:
            continue

        available = 0
        for k in range(max_slots):
            slot = setup_start + k * SLOT_INTERVAL
            if slot >= CLOSE_MINUTES:
                break
            cell = layout.get(slot)
            if cell is not None and cell.holds_patient:
                break
            available += 1

        if available == 0:
            continue
        layout[setup_start] = Cell(CellKind.SETUP, row_span=available)
        for i in range(1, available):
            layout[setup_start + i * SLOT_INTERVAL] = Cell(CellKind.BLOCKED_SETUP)
    return layout


def place_setup(chairs: Tuple[ChairSchedule, ...], patient_matrix: Matrix) -> Matrix:
    return {
        c.chair_number: place_chair_setup(c.patients(), patient_matrix.get(c.chair_number, {}))
        for c in chairs
    }


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def build_occupancy_matrix(data: ScheduleData, day_group: DayGroup) -> Matrix:
    chairs = data.chairs(day_group)
    return place_setup(chairs, place_patients(chairs))


def cell_text(cell: Optional[Cell]) -> str:
    if cell is None:
        return ""
    if cell.kind is CellKind.PATIENT:
        return f"{cell.patient.name} ({cell.patient.treatment})"
    if cell.kind is CellKind.BLOCKED_PATIENT:
        return BLOCKED_LABEL
    return SETUP_LABEL


def matrix_rows(data: ScheduleData, day_group: DayGroup) -> List[Dict[str, Any]]:
    """
    Grid rows for tabular output: {"Horário": "05:30", "<chair>": text, ...}.
    """
    matrix = build_occupancy_matrix(data, day_group)
    chairs = [c.chair_number for c in data.chairs(day_group)]
    rows = []
    for slot in time_slots():
        row: Dict[str, Any] = {"Horário": slot["time"]}
        for chair in chairs:
            row[chair] = cell_text(matrix[chair].get(slot["minutes"]))
        rows.append(row)
    return rows
