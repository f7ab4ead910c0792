"""
Dialysis Chair Scheduling Engine

Modules:
- timegrid: time parsing / formatting, 30-min grid, chair labels
- models: Patient, ChairSchedule, ScheduleData, flatten / rebuild
- matrix: occupancy matrix (sessions + post-session setup blocks)
- analysis: capacity metrics, gaps, optimisation candidates
- simulator: ranked free slots for a new patient
- importer: spreadsheet rows → schedule merge
- store: validated schedule mutations
- persistence: JSON master / mirror repository with anti-wipe protection
- session: autosave, reset, restore, ticketed file reads
- exporter: CSV, Excel room map, capacity report
"""

from .config import get_config, load_settings, resolve_settings, save_settings
from .models import (
    DayGroup,
    Patient,
    ChairSchedule,
    ScheduleData,
    FlatPatientRecord,
    create_empty_schedule,
    normalize_data,
    flatten_schedule,
    rebuild_schedule,
    matches_same_person,
)
from .matrix import build_occupancy_matrix
from .analysis import run_analysis, find_gaps, find_candidates, get_stats
from .simulator import simulate_allocation
from .importer import resolve_import, load_import_rows
from .persistence import JsonScheduleRepository, ProtectionPolicy
from .session import ScheduleSession, SaveStatus

__all__ = [
    "get_config",
    "load_settings",
    "resolve_settings",
    "save_settings",
    "DayGroup",
    "Patient",
    "ChairSchedule",
    "ScheduleData",
    "FlatPatientRecord",
    "create_empty_schedule",
    "normalize_data",
    "flatten_schedule",
    "rebuild_schedule",
    "matches_same_person",
    "build_occupancy_matrix",
    "run_analysis",
    "find_gaps",
    "find_candidates",
    "get_stats",
    "simulate_allocation",
    "resolve_import",
    "load_import_rows",
    "JsonScheduleRepository",
    "ProtectionPolicy",
    "ScheduleSession",
    "SaveStatus",
]
