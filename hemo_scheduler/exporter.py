"""
exporter.py — Export Layer for the Dialysis Scheduler

Outputs:
  - Excel (.xlsx): room map, one sheet per day-group, time × chair grid
    (patient name + treatment, "ocupado", "HIGIENIZAÇÃO")
  - CSV: flat patient records (one row per occupied slot)
  - Capacity report (.txt): installed / effective / real capacity, shift
    distribution, gaps and optimisation candidates

Usage:
  from hemo_scheduler.exporter import export_records_to_csv, export_map_to_excel, export_capacity_report
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from hemo_scheduler.matrix import BLOCKED_LABEL, SETUP_LABEL, matrix_rows
from hemo_scheduler.models import DAY_GROUPS, DayGroup, ScheduleData, flatten_schedule
from hemo_scheduler.timegrid import get_chair_number

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "dayGroup", "chairNumber", "turn", "name", "treatment", "startTime",
    "duration", "frequency", "specificDays", "checked", "id", "uniqueId",
]


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_records_to_csv(data: ScheduleData, output_path: Path) -> int:
    """
    Export every occupied slot as a flat CSV row.

    Rows are ordered by day-group, chair number, then turn.
    Returns the number of rows written.
    """
    import csv
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = sorted(
        flatten_schedule(data),
        key=lambda r: (DAY_GROUPS.index(r.day_group), get_chair_number(r.chair_number), r.turn),
    )
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for record in records:
            row = record.to_row()
            writer.writerow({k: row.get(k) for k in CSV_FIELDS})

    logger.info(f"CSV exported → {output_path} ({len(records)} rows)")
    return len(records)


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def _sheet_name(group: DayGroup) -> str:
    # Excel forbids "/" in sheet names
    return group.value.replace("/", "-")


def export_map_to_excel(
    data: ScheduleData,
    output_path: Path,
    day_groups: Optional[List[DayGroup]] = None,
) -> None:
    """
    Export the room map: one sheet per day-group, rows = 30-min slots,
    columns = chairs.
    """
    import pandas as pd

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    groups = [DayGroup.parse(g) for g in (day_groups or DAY_GROUPS)]

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        for group in groups:
            grid = pd.DataFrame(matrix_rows(data, group)).set_index("Horário")
            sheet = _sheet_name(group)
            grid.to_excel(writer, sheet_name=sheet)
            _format_excel_grid(writer, sheet)

    logger.info(f"Excel map exported → {output_path}")


def _format_excel_grid(writer: Any, sheet_name: str) -> None:
    """Header colours, column widths, and shading for setup / blocked cells."""
    try:
        from openpyxl.styles import Alignment, Font, PatternFill
        ws = writer.sheets[sheet_name]
        header_fill = PatternFill("solid", fgColor="1F4E79")
        header_font = Font(bold=True, color="FFFFFF")
        setup_fill = PatternFill("solid", fgColor="FFF2CC")
        blocked_fill = PatternFill("solid", fgColor="EBF3FB")

        for cell in ws[1]:
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal="center")

        for col in ws.columns:
            max_len = max((len(str(c.value)) for c in col if c.value), default=8)
            ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 30)

        for row in ws.iter_rows(min_row=2, min_col=2):
            for cell in row:
                if cell.value == SETUP_LABEL:
                    cell.fill = setup_fill
                elif cell.value == BLOCKED_LABEL:
                    cell.fill = blocked_fill

        ws.freeze_panes = "B2"
    except (KeyError, ImportError) as e:
        logger.warning(f"Excel formatting failed (non-critical): {e}")


# ---------------------------------------------------------------------------
# Capacity Report
# ---------------------------------------------------------------------------

def format_capacity_report(report: Dict[str, Any], max_items: int = 20) -> str:
    """Plain-text capacity report from analysis.run_analysis() output."""
    stats = report.get("stats", {})
    math_ = report.get("math", {})
    gaps = report.get("gaps", [])
    candidates = report.get("candidates", [])
    turn_counts = stats.get("turn_counts", {})
    total_slots = stats.get("total_slots", 0)

    sep = "=" * 70
    rule = "─" * 70

    lines = [
        sep,
        "  RELATÓRIO DE CAPACIDADE — SALA DE HEMODIÁLISE",
        sep,
        "",
        f"  Capacidade instalada:  {report.get('installed_capacity', 0):>5}"
        f"  ({math_.get('chairs', 0)} poltronas × {math_.get('turns', 0)} turnos × "
        f"{math_.get('scales', 0)} escalas)",
        f"  Capacidade efetiva:    {report.get('effective_capacity', 0):>5}"
        f"  (fator {math_.get('ratio', 0):.2f})",
        f"  Ocupação real:         {report.get('real_capacity', 0):>5}",
        f"  Pacientes únicos:      {report.get('unique_patients', 0):>5}",
        f"  Vagas absorvíveis:     {report.get('absorbable_capacity', 0):>5}",
        "",
        f"  Eficiência:            {report.get('efficiency_rate', 0):6.1f}%",
        f"  Ocupação global:       {report.get('global_occupancy_rate', 0):6.1f}%",
        "",
        rule,
        "  Distribuição por turno",
        rule,
    ]
    for turn in sorted(turn_counts):
        count = turn_counts[turn]
        pct = (count / total_slots * 100) if total_slots else 0
        lines.append(f"  Turno {turn}   {count:>4}  ({pct:5.1f}%)")
    lines.append(
        f"  HD {stats.get('hd_count', 0)} ({stats.get('hd_percent', 0)}%)  |  "
        f"HDF {stats.get('hdf_count', 0)} ({stats.get('hdf_percent', 0)}%)"
    )

    lines += [
        "",
        rule,
        f"  Janelas livres (≥ 4h30): {len(gaps)} encontradas",
        rule,
    ]
    if gaps:
        lines += [f"  {gap}" for gap in gaps[:max_items]]
        if len(gaps) > max_items:
            lines.append(f"  ... e mais {len(gaps) - max_items}")
    else:
        lines.append("  (nenhuma janela livre)")

    lines += [
        "",
        rule,
        f"  Oportunidades de otimização ({report.get('candidate_strategy', '')})",
        rule,
    ]
    if candidates:
        lines += [f"  {c}" for c in candidates[:max_items]]
        if len(candidates) > max_items:
            lines.append(f"  ... e mais {len(candidates) - max_items}")
    else:
        lines.append("  ✓ Nenhuma oportunidade identificada")

    lines += ["", sep]
    return "\n".join(lines)


def export_capacity_report(report: Dict[str, Any], output_path: Path) -> str:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    report_text = format_capacity_report(report)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_text)
    logger.info(f"Capacity report exported → {output_path}")
    return report_text
