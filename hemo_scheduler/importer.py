"""
importer.py — Bulk Import Resolver

Maps freeform spreadsheet rows onto chairs / turns / day-groups and merges
them into the current schedule.

Column discovery: header text is normalised (accents stripped, upper-case,
non-alphanumerics removed) and substring-matched against
IMPORT_HEADER_SYNONYMS. No name column → MissingColumnError (whole import
aborts).

Per row:
  name       required, upper-cased (blank rows skipped)
  chair      first number in the cell; 9 → "Leito 09"; else roster match by
             numeric value, else zero-padded; missing → "99"
  start      Excel day fraction | datetime.time | HH:MM[:SS] | 530 / 1400 |
             "14h30"; unrecognised → "00:00"; column absent → "05:30"
  duration   same parser, default "04:00"
  treatment  HD unless the cell mentions HDF or DP
  days       weekday detection → frequency + target groups; no days column →
             active group and its canonical days
  turn       < 09:00 → 1, < 14:00 → 2, else 3

Per target group the existing occupant of that chair/turn is UPDATED (keeps
id and checked) when matches_same_person says it is the same first name,
otherwise the row is INSERTED with a fresh id. Rows whose chair is not in
the room are skipped for that group with a warning.

Zero placed rows → ImportFailedError.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from hemo_scheduler.errors import ImportFailedError, MissingColumnError, OverlapError
from hemo_scheduler.models import (
    DAY_GROUPS,
    DayGroup,
    Patient,
    ScheduleData,
    days_for_group,
    matches_same_person,
)
from hemo_scheduler.schedule_config import (
    ALL_CHAIRS,
    ALL_DAYS,
    BED_CHAIR,
    DAILY_FREQUENCY,
    DEFAULT_DURATION,
    DEFAULT_FREQUENCY,
    DEFAULT_START_TIME,
    DEFAULT_TREATMENT,
    IMPORT_HEADER_SYNONYMS,
    IMPORT_TURN2_START,
    IMPORT_TURN3_START,
    UNASSIGNED_CHAIR,
)
from hemo_scheduler.store import check_overlap, new_patient_id
from hemo_scheduler.timegrid import get_chair_number, minutes_to_time, normalize_string, time_to_minutes

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass
class ImportResult:
    data: ScheduleData
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Importação Concluída! {self.processed} registros processados com sucesso."


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def normalize_header(header: Any) -> str:
    return re.sub(r"[^A-Z0-9]", "", normalize_string(header))


def find_columns(headers: List[Any]) -> Dict[str, Optional[Any]]:
    """First header (in table order) matching each field's synonyms."""
    found: Dict[str, Optional[Any]] = {}
    for key, synonyms in IMPORT_HEADER_SYNONYMS.items():
        wanted = [normalize_header(s) for s in synonyms]
        found[key] = next(
            (h for h in headers if any(w and w in normalize_header(h) for w in wanted)),
            None,
        )
    return found


def parse_sheet_time(value: Any) -> str:
    """Best-effort "HH:MM" from a spreadsheet cell; "00:00" when unrecognised."""
    if _is_blank(value):
        return "00:00"

    if isinstance(value, datetime):
        return f"{value.hour:02d}:{value.minute:02d}"
    if isinstance(value, time):
        return f"{value.hour:02d}:{value.minute:02d}"

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Excel stores times as a fraction of a day; whole days are dates
        fraction = value % 1
        if fraction < 0.0001:
            return "00:00"
        # nearest second first: 14:30 is stored as 0.60416666... and must not floor to 14:29
        total_seconds = int(round(fraction * 86400))
        return minutes_to_time(total_seconds // 60)

    text = str(value).strip()

    match = re.match(r"^(\d{1,2}):(\d{2})", text)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    if re.fullmatch(r"\d+", text):
        if len(text) <= 2:
            return f"{int(text):02d}:00"
        if len(text) == 3:
            return f"0{text[0]}:{text[1:]}"
        if len(text) == 4:
            return f"{text[:2]}:{text[2:]}"

    lowered = text.lower()
    if "h" in lowered:
        hours, _, mins = lowered.partition("h")
        hours = hours.strip()
        mins = mins.strip()
        if hours.isdigit() and (not mins or mins.isdigit()):
            return f"{int(hours):02d}:{(mins or '00').ljust(2, '0')[:2]}"

    return "00:00"


def resolve_chair(value: Any) -> str:
    if _is_blank(value):
        return UNASSIGNED_CHAIR
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    match = re.search(r"\d+", str(value).upper())
    if not match:
        return UNASSIGNED_CHAIR
    number = int(match.group(0))
    if number == 9:
        return BED_CHAIR
    for label in ALL_CHAIRS:
        if get_chair_number(label) == number:
            return label
    return f"{number:02d}"


def parse_treatment(value: Any) -> str:
    if _is_blank(value):
        return DEFAULT_TREATMENT
    text = str(value).upper()
    if "HDF" in text:
        return "HDF"
    if "DP" in text:
        return "DP"
    return DEFAULT_TREATMENT


def parse_days(value: Any) -> Tuple[str, List[DayGroup], Tuple[str, ...]]:
    """
    (frequency, target groups, weekdays) from a days cell.

    Accepts abbreviations (SEG, TER, ...), Brazilian weekday numbers
    (2 = Monday ... 6 = Friday) and Diário/Todos/6x. All five Monday-Friday
    days together also count as daily.
    """
    d = normalize_string(value)
    flags = {
        "SEG": "SEG" in d or "2" in d,
        "TER": "TER" in d or "3" in d,
        "QUA": "QUA" in d or "4" in d,
        "QUI": "QUI" in d or "5" in d,
        "SEX": "SEX" in d or "6" in d,
        "SÁB": "SAB" in d or "SA" in d,
    }
    weekdays_all = all(flags[k] for k in ("SEG", "TER", "QUA", "QUI", "SEX"))
    if "DIARIO" in d or "TODOS" in d or "6X" in d or weekdays_all:
        return DAILY_FREQUENCY, list(DAY_GROUPS), ALL_DAYS

    days = tuple(day for day in ALL_DAYS if flags[day])
    groups = [g for g in DAY_GROUPS if any(flags[day] for day in g.days)]

    frequency = DEFAULT_FREQUENCY
    if len(days) == 2:
        frequency = "2x"
    elif len(days) > 3:
        frequency = DAILY_FREQUENCY
    return frequency, groups, days


def turn_for_start(minutes: int) -> int:
    if minutes >= IMPORT_TURN3_START:
        return 3
    if minutes >= IMPORT_TURN2_START:
        return 2
    return 1


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def resolve_import(
    rows: List[Row],
    current: ScheduleData,
    active_group: DayGroup,
) -> ImportResult:
    if not rows:
        raise ImportFailedError("A planilha está vazia.")

    active_group = DayGroup.parse(active_group)
    headers = list(rows[0].keys())
    cols = find_columns(headers)
    if cols["name"] is None:
        raise MissingColumnError(
            "Não foi possível encontrar a coluna 'NOME' ou 'PACIENTE'. Verifique o cabeçalho."
        )

    result = ImportResult(data=current)
    data = current

    for index, row in enumerate(rows):
        raw_name = row.get(cols["name"])
        if _is_blank(raw_name):
            continue
        name = str(raw_name).strip().upper()

        chair_id = resolve_chair(row.get(cols["chair"])) if cols["chair"] else UNASSIGNED_CHAIR
        start_time = parse_sheet_time(row.get(cols["time"])) if cols["time"] else DEFAULT_START_TIME
        duration = parse_sheet_time(row.get(cols["duration"])) if cols["duration"] else DEFAULT_DURATION
        treatment = parse_treatment(row.get(cols["treatment"])) if cols["treatment"] else DEFAULT_TREATMENT

        days_cell = row.get(cols["days"]) if cols["days"] else None
        if cols["days"] and not _is_blank(days_cell):
            frequency, groups, days = parse_days(days_cell)
            if not groups:
                groups = [active_group]
        else:
            frequency, groups, days = DEFAULT_FREQUENCY, [active_group], active_group.days

        turn = turn_for_start(time_to_minutes(start_time))
        patient_id = new_patient_id()
        placed = False

        for group in groups:
            chair = data.chair(group, chair_id)
            if chair is None:
                logger.warning(f"Row {index + 1}: chair {chair_id} not in room for {name} ({group.value})")
                result.skipped.append(f"{name} ({group.value}): poltrona {chair_id}")
                continue

            group_days = days_for_group(days, group)
            if not group_days and frequency != DAILY_FREQUENCY and cols["days"] and not _is_blank(days_cell):
                logger.warning(f"Row {index + 1}: no weekday of {group.value} detected for {name}")
                continue

            existing = chair.get_turn(turn)
            is_update = existing is not None and matches_same_person(existing.name, name)
            patient = Patient(
                id=existing.id if is_update else patient_id,
                name=name,
                treatment=treatment,
                start_time=start_time,
                duration=duration,
                frequency=frequency,
                specific_days=group_days or group.days,
                checked=existing.checked if is_update else False,
            )
            try:
                check_overlap(chair.with_turn(turn, None), group, patient)
            except OverlapError as e:
                logger.warning(f"Row {index + 1}: imported despite overlap: {e}")

            data = data.with_chair(group, chair.with_turn(turn, patient))
            placed = True
            if is_update:
                result.updated += 1
            else:
                result.inserted += 1

        if placed:
            result.processed += 1

    if result.processed == 0:
        raise ImportFailedError(
            "Não foi possível ler os dados. Verifique se a planilha segue o modelo."
        )

    result.data = data
    logger.info(
        f"Import: {result.processed} rows placed "
        f"({result.inserted} inserted, {result.updated} updated, {len(result.skipped)} skipped)"
    )
    return result


# ---------------------------------------------------------------------------
# Spreadsheet reader
# ---------------------------------------------------------------------------

def load_import_rows(path: Path) -> List[Row]:
    """
    Read the first sheet of an .xlsx/.xls file (or a .csv) into row dicts.
    Empty cells come back as None.
    """
    import pandas as pd

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")

    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, dtype=object)
    else:
        df = pd.read_excel(path, sheet_name=0, engine="openpyxl")

    df = df.dropna(how="all")
    rows = [
        {str(k): (None if _is_blank(v) else v) for k, v in record.items()}
        for record in df.to_dict(orient="records")
    ]
    logger.info(f"Read {len(rows)} rows from {path}")
    return rows
