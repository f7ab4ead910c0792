"""
Tests for the bulk import resolver (header discovery, cell parsing, merge rules)
"""

import sys
from datetime import datetime, time
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hemo_scheduler.errors import ImportFailedError, MissingColumnError
from hemo_scheduler.importer import (
    find_columns,
    load_import_rows,
    parse_days,
    parse_sheet_time,
    parse_treatment,
    resolve_chair,
    resolve_import,
    turn_for_start,
)
from hemo_scheduler.models import DayGroup, Patient, create_empty_schedule


def _row(name, chair="01", start="05:30", days="SEG,QUA,SEX", **extra):
    row = {"Nome": name, "Poltrona": chair, "Horário": start, "Dias": days}
    row.update(extra)
    return row


class TestHeaders:

    def test_portuguese_headers(self):
        cols = find_columns(["Paciente", "Nº Poltrona", "Hora Início", "Escala", "Tipo", "Duração"])
        assert cols == {
            "name": "Paciente",
            "chair": "Nº Poltrona",
            "time": "Hora Início",
            "days": "Escala",
            "treatment": "Tipo",
            "duration": "Duração",
        }

    def test_missing_columns_are_none(self):
        cols = find_columns(["Nome"])
        assert cols["name"] == "Nome"
        assert cols["chair"] is None
        assert cols["days"] is None


class TestCellParsing:

    @pytest.mark.parametrize("value,expected", [
        (0.25, "06:00"),
        (0.6041666666666666, "14:30"),
        (45000.25, "06:00"),
        (1.0, "00:00"),
        (time(14, 30), "14:30"),
        (datetime(2026, 3, 2, 5, 30), "05:30"),
        ("5:30", "05:30"),
        ("09:30:00", "09:30"),
        ("530", "05:30"),
        ("1400", "14:00"),
        ("7", "07:00"),
        ("14h30", "14:30"),
        ("15h", "15:00"),
        ("manhã", "00:00"),
        (None, "00:00"),
        (float("nan"), "00:00"),
    ])
    def test_parse_sheet_time(self, value, expected):
        assert parse_sheet_time(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("9", "Leito 09"),
        (9, "Leito 09"),
        (9.0, "Leito 09"),
        ("Leito 9", "Leito 09"),
        ("7", "07"),
        ("Poltrona 12", "12"),
        ("25", "25"),
        ("", "99"),
        (None, "99"),
        ("sala", "99"),
    ])
    def test_resolve_chair(self, value, expected):
        assert resolve_chair(value) == expected

    def test_treatment(self):
        assert parse_treatment("hdf") == "HDF"
        assert parse_treatment("DP noturna") == "DP"
        assert parse_treatment("hemodiálise") == "HD"
        assert parse_treatment(None) == "HD"

    @pytest.mark.parametrize("minutes,turn", [(330, 1), (539, 1), (540, 2), (570, 2), (839, 2), (840, 3)])
    def test_turn_for_start(self, minutes, turn):
        assert turn_for_start(minutes) == turn


class TestParseDays:

    def test_mwf(self):
        frequency, groups, days = parse_days("SEG,QUA,SEX")
        assert frequency == "3x"
        assert groups == [DayGroup.MWF]
        assert days == ("SEG", "QUA", "SEX")

    def test_saturday_accent(self):
        frequency, groups, days = parse_days("ter/qui/sáb")
        assert groups == [DayGroup.TTS]
        assert days == ("TER", "QUI", "SÁB")

    def test_weekday_numbers(self):
        _, groups, days = parse_days("2-4-6")
        assert groups == [DayGroup.MWF]
        assert days == ("SEG", "QUA", "SEX")

    def test_two_days_spanning_groups(self):
        frequency, groups, days = parse_days("SEG e QUI")
        assert frequency == "2x"
        assert groups == [DayGroup.MWF, DayGroup.TTS]

    @pytest.mark.parametrize("text", ["Diário", "todos", "6x", "SEG TER QUA QUI SEX"])
    def test_daily(self, text):
        frequency, groups, _ = parse_days(text)
        assert frequency == "Diário"
        assert groups == [DayGroup.MWF, DayGroup.TTS]

    def test_nothing_detected(self):
        frequency, groups, days = parse_days("???")
        assert groups == []
        assert days == ()


class TestResolveImport:

    def test_bed_chair_mwf_only(self):
        """Chair "9" → bed; SEG,QUA,SEX → Mon/Wed/Fri group only, 3x"""
        result = resolve_import([_row("Maria Silva", chair="9")], create_empty_schedule(), DayGroup.TTS)
        patient = result.data.chair(DayGroup.MWF, "Leito 09").turn1

        assert patient.name == "MARIA SILVA"
        assert patient.specific_days == ("SEG", "QUA", "SEX")
        assert patient.frequency == "3x"
        assert result.data.chair(DayGroup.TTS, "Leito 09").turn1 is None
        assert result.processed == 1
        assert result.inserted == 1
        assert "1 registros" in result.message

    def test_daily_written_to_both_groups_with_one_id(self):
        result = resolve_import([_row("Ana", chair="3", days="Diário")], create_empty_schedule(), DayGroup.MWF)
        mwf = result.data.chair(DayGroup.MWF, "03").turn1
        tts = result.data.chair(DayGroup.TTS, "03").turn1
        assert mwf.id == tts.id
        assert mwf.specific_days == ("SEG", "QUA", "SEX")
        assert tts.specific_days == ("TER", "QUI", "SÁB")
        assert mwf.frequency == "Diário"
        assert result.processed == 1
        assert result.inserted == 2

    def test_update_keeps_id_and_checked(self):
        current = create_empty_schedule().with_slot(DayGroup.MWF, "01", 1, Patient(
            id="old", name="MARIA SOUZA", treatment="HD", checked=True,
            specific_days=("SEG", "QUA", "SEX")))
        result = resolve_import(
            [_row("Maria Silva", Tipo="HDF")], current, DayGroup.MWF)
        patient = result.data.chair(DayGroup.MWF, "01").turn1
        assert patient.id == "old"
        assert patient.checked is True
        assert patient.name == "MARIA SILVA"
        assert patient.treatment == "HDF"
        assert result.updated == 1
        assert result.inserted == 0

    def test_different_person_replaces_slot(self):
        current = create_empty_schedule().with_slot(DayGroup.MWF, "01", 1, Patient(id="old", name="JOAO"))
        result = resolve_import([_row("Pedro")], current, DayGroup.MWF)
        patient = result.data.chair(DayGroup.MWF, "01").turn1
        assert patient.id != "old"
        assert patient.name == "PEDRO"

    def test_without_days_column_uses_active_group(self):
        rows = [{"Nome": "Carlos", "Poltrona": "4", "Horário": "10:00"}]
        result = resolve_import(rows, create_empty_schedule(), "TER/QUI/SÁB")
        patient = result.data.chair(DayGroup.TTS, "04").turn2
        assert patient.specific_days == ("TER", "QUI", "SÁB")
        assert result.data.chair(DayGroup.MWF, "04").turn2 is None

    def test_without_time_column_defaults(self):
        rows = [{"Nome": "Carlos", "Poltrona": "4"}]
        result = resolve_import(rows, create_empty_schedule(), DayGroup.MWF)
        patient = result.data.chair(DayGroup.MWF, "04").turn1
        assert patient.start_time == "05:30"
        assert patient.duration == "04:00"

    def test_turn_from_start_time(self):
        rows = [_row("A", start="09:30"), _row("B", chair="2", start="14:00")]
        result = resolve_import(rows, create_empty_schedule(), DayGroup.MWF)
        assert result.data.chair(DayGroup.MWF, "01").turn2.name == "A"
        assert result.data.chair(DayGroup.MWF, "02").turn3.name == "B"

    def test_unknown_chair_skipped(self):
        rows = [_row("A"), _row("B", chair="25")]
        result = resolve_import(rows, create_empty_schedule(), DayGroup.MWF)
        assert result.processed == 1
        assert len(result.skipped) == 1
        assert "25" in result.skipped[0]

    def test_blank_names_ignored(self):
        rows = [_row("A"), _row(None), _row("   ")]
        result = resolve_import(rows, create_empty_schedule(), DayGroup.MWF)
        assert result.processed == 1

    def test_undetected_days_not_placed(self):
        with pytest.raises(ImportFailedError):
            resolve_import([_row("A", days="???")], create_empty_schedule(), DayGroup.MWF)

    def test_missing_name_column(self):
        with pytest.raises(MissingColumnError):
            resolve_import([{"Poltrona": "1", "Horário": "05:30"}], create_empty_schedule(), DayGroup.MWF)

    def test_nothing_placed(self):
        with pytest.raises(ImportFailedError):
            resolve_import([_row("A", chair="40")], create_empty_schedule(), DayGroup.MWF)

    def test_empty_table(self):
        with pytest.raises(ImportFailedError):
            resolve_import([], create_empty_schedule(), DayGroup.MWF)

    def test_current_data_not_mutated(self):
        current = create_empty_schedule()
        resolve_import([_row("A")], current, DayGroup.MWF)
        assert current.is_empty()


class TestLoadImportRows:

    def test_csv(self, tmp_path):
        path = tmp_path / "pacientes.csv"
        path.write_text(
            "Nome,Poltrona,Horário,Dias\n"
            "Maria Silva,9,05:30,\"SEG,QUA,SEX\"\n"
            "João,3,,TER/QUI/SÁB\n",
            encoding="utf-8",
        )
        rows = load_import_rows(path)
        assert len(rows) == 2
        assert rows[0]["Nome"] == "Maria Silva"
        assert rows[1]["Horário"] is None

        result = resolve_import(rows, create_empty_schedule(), DayGroup.MWF)
        assert result.data.chair(DayGroup.MWF, "Leito 09").turn1.name == "MARIA SILVA"
        assert result.data.chair(DayGroup.TTS, "03").turn1.name == "JOÃO"

    def test_xlsx(self, tmp_path):
        import pandas as pd

        path = tmp_path / "pacientes.xlsx"
        pd.DataFrame([
            {"Paciente": "Ana", "Leito": 9, "Início": time(10, 0), "Escala": "Diário"},
        ]).to_excel(path, index=False)
        rows = load_import_rows(path)
        result = resolve_import(rows, create_empty_schedule(), DayGroup.MWF)
        assert result.data.chair(DayGroup.MWF, "Leito 09").turn2.start_time == "10:00"
        assert result.data.chair(DayGroup.TTS, "Leito 09").turn2.name == "ANA"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_import_rows(tmp_path / "nope.xlsx")
