"""
cli.py — Command line for the Dialysis Scheduler

Subcommands (all act on the JSON store under data/ unless --store-dir):
  import   FILE        merge a spreadsheet (.xlsx / .csv) into the schedule
  analyze              capacity, gaps and optimisation candidates
  simulate             ranked free slots for a new patient of a given duration
  map                  room map Excel (time × chair, per day-group)
  export               CSV + Excel map + capacity report + JSON backup
  agenda   NAME        every session of one patient
  reset                wipe the store (requires --yes)
  restore  FILE        replace the store with a backup (requires --yes)

Usage:
  hemo-scheduler import planilha.xlsx --group "TER/QUI/SÁB"
  hemo-scheduler analyze --report
  hemo-scheduler simulate --group MWF --duration 04:00
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from hemo_scheduler.analysis import run_analysis
from hemo_scheduler.config import DEFAULT_OUTPUT_DIR, DEFAULT_STORE_DIR, load_settings
from hemo_scheduler.errors import SchedulerError
from hemo_scheduler.exporter import (
    export_capacity_report,
    export_map_to_excel,
    export_records_to_csv,
)
from hemo_scheduler.importer import load_import_rows
from hemo_scheduler.models import DayGroup
from hemo_scheduler.persistence import JsonScheduleRepository, write_backup
from hemo_scheduler.session import ScheduleSession
from hemo_scheduler.simulator import simulate_allocation
from hemo_scheduler.store import patient_sessions

logger = logging.getLogger(__name__)

SEP = "=" * 70


def _open_session(args: argparse.Namespace) -> ScheduleSession:
    settings_path = Path(args.settings) if args.settings else None
    settings = load_settings(settings_path)
    repository = JsonScheduleRepository(Path(args.store_dir))
    session = ScheduleSession(repository, settings=settings)
    session.boot()
    if session.last_message:
        print(f"  ℹ {session.last_message}")
    return session


def _flush(session: ScheduleSession) -> None:
    result = session.flush(force=True)
    if result is None or result.success:
        return
    icon = "⚠" if result.protected else "✗"
    print(f"  {icon} Não salvo: {result.error}")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def cmd_import(args: argparse.Namespace) -> None:
    session = _open_session(args)
    session.set_active_group(args.group)
    ticket = session.begin_file_read()
    rows = load_import_rows(Path(args.file))
    result = session.complete_import(ticket, rows)
    _flush(session)

    print(f"\n{SEP}")
    print(f"  {result.message}")
    print(SEP)
    print(f"  Inseridos:   {result.inserted}")
    print(f"  Atualizados: {result.updated}")
    print(f"  Ignorados:   {len(result.skipped)}")
    print(f"{SEP}\n")


def cmd_analyze(args: argparse.Namespace) -> None:
    session = _open_session(args)
    report = run_analysis(session.data, session.settings)

    print(f"\n{SEP}")
    print("  CAPACIDADE")
    print(SEP)
    print(f"  Instalada:    {report['installed_capacity']}")
    print(f"  Efetiva:      {report['effective_capacity']}  (fator {report['math']['ratio']:.2f})")
    print(f"  Real:         {report['real_capacity']}")
    print(f"  Únicos:       {report['unique_patients']}")
    print(f"  Absorvível:   {report['absorbable_capacity']}")
    print(f"  Eficiência:   {report['efficiency_rate']:.1f}%")
    print(f"  Ocupação:     {report['global_occupancy_rate']:.1f}%")
    print(f"\n  Janelas livres: {len(report['gaps'])}")
    for gap in report["gaps"][: args.top]:
        print(f"    {gap}")
    print(f"\n  Oportunidades ({report['candidate_strategy']}): {len(report['candidates'])}")
    for candidate in report["candidates"][: args.top]:
        print(f"    {candidate}")

    if args.report:
        out_dir = Path(args.output_dir)
        path = out_dir / f"capacity_report_{datetime.now():%Y%m%d_%H%M%S}.txt"
        export_capacity_report(report, path)
        print(f"\n  ✓ Report: {path}")
    print(f"{SEP}\n")


def cmd_simulate(args: argparse.Namespace) -> None:
    session = _open_session(args)
    group = DayGroup.parse(args.group)
    suggestions = simulate_allocation(session.data, group, args.duration, session.settings)

    print(f"\n{SEP}")
    print(f"  SIMULAÇÃO: {args.duration} em {group.value}")
    print(SEP)
    if not suggestions:
        print("  ✗ Nenhuma vaga disponível para esta duração.")
    for suggestion in suggestions[: args.top]:
        print(f"  {suggestion}")
    print(f"{SEP}\n")


def cmd_map(args: argparse.Namespace) -> None:
    session = _open_session(args)
    groups = [DayGroup.parse(args.group)] if args.group else None
    output = Path(args.output) if args.output else (
        Path(args.output_dir) / f"mapa_sala_{datetime.now():%Y%m%d}.xlsx"
    )
    export_map_to_excel(session.data, output, day_groups=groups)
    print(f"  ✓ Mapa: {output}")


def cmd_export(args: argparse.Namespace) -> None:
    session = _open_session(args)
    out_dir = Path(args.output_dir)
    prefix = f"hemo_{datetime.now():%Y%m%d_%H%M%S}"

    csv_path = out_dir / f"{prefix}_pacientes.csv"
    xlsx_path = out_dir / f"{prefix}_mapa.xlsx"
    report_path = out_dir / f"{prefix}_capacidade.txt"

    rows = export_records_to_csv(session.data, csv_path)
    export_map_to_excel(session.data, xlsx_path)
    export_capacity_report(run_analysis(session.data, session.settings), report_path)
    backup_path = write_backup(session.data, out_dir)
    logger.info(f"Exported {rows} records to {out_dir}")

    print(f"  ✓ CSV:     {csv_path.name} ({rows} registros)")
    print(f"  ✓ Excel:   {xlsx_path.name}")
    print(f"  ✓ Report:  {report_path.name}")
    print(f"  ✓ Backup:  {backup_path.name}")


def cmd_agenda(args: argparse.Namespace) -> None:
    session = _open_session(args)
    agenda = patient_sessions(session.data, args.name)

    print(f"\n{SEP}")
    print(f"  AGENDA: {agenda['name']}")
    print(SEP)
    if not agenda["sessions"]:
        print("  ✗ Paciente não encontrado.")
    for item in agenda["sessions"]:
        patient = item["patient"]
        days = ",".join(patient.specific_days)
        print(
            f"  {item['day_group'].value:<12} Polt. {item['chair_number']:<9} T{item['turn']}  "
            f"{patient.start_time} ({patient.duration})  {patient.treatment:<4} {days}"
        )
    print(f"\n  Sessões: {agenda['session_count']}  |  "
          f"Horas: {agenda['total_hours']:.1f}  |  Horas/semana: {agenda['weekly_hours']:.1f}")
    print(f"{SEP}\n")


def cmd_reset(args: argparse.Namespace) -> None:
    session = _open_session(args)
    result = session.reset_database(confirmed=args.yes)
    if result.success:
        print("  ✓ Lista limpa com sucesso!")
    else:
        print(f"  ✗ Erro ao limpar banco: {result.error}")
        sys.exit(1)


def cmd_restore(args: argparse.Namespace) -> None:
    session = _open_session(args)
    ticket = session.begin_file_read()
    path = Path(args.file)
    if not path.exists():
        raise FileNotFoundError(f"Backup file not found: {path}")
    payload = path.read_text(encoding="utf-8")
    restored = session.complete_restore(ticket, payload, confirmed=args.yes)
    _flush(session)
    print(f"  ✓ {session.last_message} ({restored.record_count()} registros)")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hemo-scheduler",
        description="Dialysis chair scheduling: import, capacity analysis, simulation and exports",
    )
    parser.add_argument("--store-dir",  default=str(DEFAULT_STORE_DIR),  help="JSON store directory (default: data/)")
    parser.add_argument("--output-dir", default=str(DEFAULT_OUTPUT_DIR), help="Output directory (default: outputs/)")
    parser.add_argument("--settings",   default=None, help="Settings JSON (default: config/scheduler_settings.json)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Merge a spreadsheet into the schedule")
    p.add_argument("file")
    p.add_argument("--group", default=DayGroup.MWF.value, help="Day-group for rows without a days column")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("analyze", help="Capacity, gaps and optimisation candidates")
    p.add_argument("--report", action="store_true", help="Also write the capacity report .txt")
    p.add_argument("--top", type=int, default=10, help="Rows to print per section")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("simulate", help="Ranked free slots for a new patient")
    p.add_argument("--group", required=True)
    p.add_argument("--duration", default="04:00", help="Session length HH:MM")
    p.add_argument("--top", type=int, default=10)
    p.set_defaults(func=cmd_simulate)

    p = sub.add_parser("map", help="Room map Excel")
    p.add_argument("--group", default=None, help="Single day-group (default: both)")
    p.add_argument("--output", default=None, help=".xlsx path")
    p.set_defaults(func=cmd_map)

    p = sub.add_parser("export", help="CSV, Excel map, report and JSON backup")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("agenda", help="Every session of one patient")
    p.add_argument("name")
    p.set_defaults(func=cmd_agenda)

    p = sub.add_parser("reset", help="Erase every patient")
    p.add_argument("--yes", action="store_true", help="Confirm the wipe")
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("restore", help="Replace the schedule with a JSON backup")
    p.add_argument("file")
    p.add_argument("--yes", action="store_true", help="Confirm replacing current data")
    p.set_defaults(func=cmd_restore)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except (SchedulerError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
