"""
End-to-end tests for the command line (import → analyze / simulate / export / agenda / reset / restore)
"""

import sys
from pathlib import Path

import pytest

# Add project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hemo_scheduler.cli import main
from hemo_scheduler.models import DayGroup
from hemo_scheduler.persistence import JsonScheduleRepository


@pytest.fixture
def dirs(tmp_path):
    return {
        "store": tmp_path / "data",
        "out": tmp_path / "outputs",
        "settings": tmp_path / "settings.json",
    }


def run(dirs, *argv):
    main([
        "--store-dir", str(dirs["store"]),
        "--output-dir", str(dirs["out"]),
        "--settings", str(dirs["settings"]),
        *argv,
    ])


@pytest.fixture
def imported(dirs, tmp_path):
    sheet = tmp_path / "pacientes.csv"
    sheet.write_text(
        "Nome,Poltrona,Horário,Dias,Tipo\n"
        "Maria Silva,9,05:30,\"SEG,QUA,SEX\",HD\n"
        "Ana Lima,3,10:00,Diário,HDF\n",
        encoding="utf-8",
    )
    run(dirs, "import", str(sheet))
    return dirs


class TestImport:

    def test_import_persists(self, imported, capsys):
        data, _ = JsonScheduleRepository(imported["store"]).load()
        assert data.chair(DayGroup.MWF, "Leito 09").turn1.name == "MARIA SILVA"
        assert data.chair(DayGroup.TTS, "03").turn2.name == "ANA LIMA"
        assert data.record_count() == 3

    def test_import_summary(self, dirs, tmp_path, capsys):
        sheet = tmp_path / "p.csv"
        sheet.write_text("Nome,Poltrona\nCarlos,4\n", encoding="utf-8")
        run(dirs, "import", str(sheet), "--group", "TTS")
        out = capsys.readouterr().out
        assert "Importação Concluída! 1 registros" in out

    def test_skipped_rows_only_counted(self, dirs, tmp_path, capsys):
        sheet = tmp_path / "p.csv"
        sheet.write_text("Nome,Poltrona\nCarlos,4\nBeatriz,25\n", encoding="utf-8")
        run(dirs, "import", str(sheet), "--group", "MWF")
        out = capsys.readouterr().out
        assert "Ignorados:   1" in out
        assert "BEATRIZ" not in out

    def test_missing_name_column_exits(self, dirs, tmp_path, capsys):
        sheet = tmp_path / "p.csv"
        sheet.write_text("Poltrona\n4\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc:
            run(dirs, "import", str(sheet))
        assert exc.value.code == 1
        assert "NOME" in capsys.readouterr().out


class TestReports:

    def test_analyze(self, imported, capsys):
        run(imported, "analyze", "--report")
        out = capsys.readouterr().out
        assert "Instalada:    120" in out
        assert "Real:         3" in out
        assert list(imported["out"].glob("capacity_report_*.txt"))

    def test_simulate(self, imported, capsys):
        run(imported, "simulate", "--group", "MWF", "--duration", "04:00", "--top", "3")
        out = capsys.readouterr().out
        assert "SIMULAÇÃO: 04:00 em SEG/QUA/SEX" in out
        assert "Polt. 01 T1 05:30-09:30 [100] Perfeita" in out

    def test_export(self, imported):
        run(imported, "export")
        out_dir = imported["out"]
        assert list(out_dir.glob("*_pacientes.csv"))
        assert list(out_dir.glob("*_mapa.xlsx"))
        assert list(out_dir.glob("*_capacidade.txt"))
        assert list(out_dir.glob("HEMO_BACKUP_*.json"))

    def test_map(self, imported, tmp_path):
        target = tmp_path / "map.xlsx"
        run(imported, "map", "--group", "TTS", "--output", str(target))
        assert target.exists()

    def test_agenda(self, imported, capsys):
        run(imported, "agenda", "Ana Lima")
        out = capsys.readouterr().out
        assert "Sessões: 2" in out


class TestDestructive:

    def test_reset_needs_yes(self, imported, capsys):
        with pytest.raises(SystemExit):
            run(imported, "reset")
        assert JsonScheduleRepository(imported["store"]).load()[0].record_count() == 3

    def test_reset(self, imported):
        run(imported, "reset", "--yes")
        assert JsonScheduleRepository(imported["store"]).load()[0].is_empty()

    def test_restore(self, imported):
        run(imported, "export")
        backup = next(imported["out"].glob("HEMO_BACKUP_*.json"))
        run(imported, "reset", "--yes")
        run(imported, "restore", str(backup), "--yes")
        assert JsonScheduleRepository(imported["store"]).load()[0].record_count() == 3

    def test_restore_needs_yes(self, imported, tmp_path):
        run(imported, "export")
        backup = next(imported["out"].glob("HEMO_BACKUP_*.json"))
        with pytest.raises(SystemExit):
            run(imported, "restore", str(backup))
