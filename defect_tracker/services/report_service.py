"""
Report Service — defect and project aggregates, statistics and exports.

Exports:
    csv    — semicolon-separated, UTF-8, ``.csv``
    excel  — tab-separated, UTF-8, ``.xls`` (opens in spreadsheet tools)
    xlsx   — real workbook built with openpyxl, styled header row

Delimited exports do not quote fields; a value containing the delimiter
is written as-is.
"""

import io
import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import joinedload, selectinload

from defect_tracker.models import db
from defect_tracker.models.defect import DEFECT_PRIORITIES, DEFECT_STATUSES, Defect
from defect_tracker.models.project import Project

logger = logging.getLogger(__name__)

EXPORT_HEADER = ("ID", "Title", "Project", "Status", "Priority",
                 "Assignee", "Creator", "Created", "Due")
EXPORT_DATE_FORMAT = "%d.%m.%Y"
RECENT_DEFECTS_LIMIT = 10

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# Defect report
# ═══════════════════════════════════════════════════════════════
def defects_for_report() -> list[Defect]:
    """All defects, newest first, with project and people loaded."""
    return (
        Defect.query
        .options(
            joinedload(Defect.project),
            joinedload(Defect.assignee),
            joinedload(Defect.creator),
        )
        .order_by(Defect.created_at.desc())
        .all()
    )


def status_summary(defects) -> dict:
    counts = Counter(d.status for d in defects)
    return {
        "total": len(defects),
        "new": counts.get("New", 0),
        "in_progress": counts.get("InProgress", 0),
        "closed": counts.get("Closed", 0),
    }


# ═══════════════════════════════════════════════════════════════
# Statistics
# ═══════════════════════════════════════════════════════════════
def average_resolution_time(defects, now: datetime | None = None) -> timedelta | None:
    """
    Mean of ``now - created_at`` over Closed defects, or None when there are none.

    There is no closed-at timestamp, so this is the average *age* of closed
    defects rather than the time it took to close them.
    """
    now = _as_utc(now or _utcnow())
    closed = [d for d in defects if d.status == "Closed" and d.created_at is not None]
    if not closed:
        return None
    total = sum((now - _as_utc(d.created_at) for d in closed), timedelta(0))
    return total / len(closed)


def compute_statistics(now: datetime | None = None) -> dict:
    """Totals, counts by status / priority / creation month, average resolution time."""
    now = _as_utc(now or _utcnow())
    defects = Defect.query.all()

    by_status = {s: 0 for s in DEFECT_STATUSES}
    by_priority = {p: 0 for p in DEFECT_PRIORITIES}
    by_month = {m: 0 for m in range(1, 13)}
    for d in defects:
        by_status[d.status] = by_status.get(d.status, 0) + 1
        by_priority[d.priority] = by_priority.get(d.priority, 0) + 1
        if d.created_at is not None and _as_utc(d.created_at).year == now.year:
            by_month[_as_utc(d.created_at).month] += 1

    return {
        "total_projects": Project.query.count(),
        "total_defects": len(defects),
        "by_status": by_status,
        "by_priority": by_priority,
        "by_month": by_month,
        "year": now.year,
        "average_resolution_time": average_resolution_time(defects, now),
    }


# ═══════════════════════════════════════════════════════════════
# Project report / dashboard
# ═══════════════════════════════════════════════════════════════
def project_report(today: date | None = None) -> list[dict]:
    """
    Per-project defect counts.

    Overdue: due date strictly before ``today`` and status not Closed.
    """
    today = today or date.today()
    projects = (
        Project.query
        .options(selectinload(Project.defects))
        .order_by(Project.name)
        .all()
    )
    rows = []
    for project in projects:
        counts = Counter(d.status for d in project.defects)
        rows.append({
            "project_id": project.id,
            "project_name": project.name,
            "total": len(project.defects),
            "new": counts.get("New", 0),
            "in_progress": counts.get("InProgress", 0),
            "closed": counts.get("Closed", 0),
            "overdue": sum(
                1 for d in project.defects
                if d.due_date is not None and d.due_date < today and d.status != "Closed"
            ),
        })
    return rows


def compute_dashboard() -> dict:
    open_count = (
        Defect.query
        .filter(Defect.status.notin_(("Closed", "Cancelled")))
        .count()
    )
    recent = (
        Defect.query
        .options(
            joinedload(Defect.project),
            joinedload(Defect.assignee),
            joinedload(Defect.creator),
        )
        .order_by(Defect.created_at.desc())
        .limit(RECENT_DEFECTS_LIMIT)
        .all()
    )
    return {
        "total_projects": db.session.query(Project.id).count(),
        "total_defects": Defect.query.count(),
        "open_defects": open_count,
        "recent_defects": recent,
    }


# ═══════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════
def _fmt_date(value) -> str:
    return value.strftime(EXPORT_DATE_FORMAT) if value else ""


def export_row(defect: Defect) -> list[str]:
    """One export row in header order; missing values are blank."""
    return [
        str(defect.id),
        defect.title or "",
        defect.project.name if defect.project else "",
        defect.status or "",
        defect.priority or "",
        defect.assignee.username if defect.assignee else "",
        defect.creator.username if defect.creator else "",
        _fmt_date(defect.created_at),
        _fmt_date(defect.due_date),
    ]


def _export_delimited(defects, delimiter: str) -> bytes:
    buf = io.StringIO()
    buf.write(delimiter.join(EXPORT_HEADER) + "\n")
    for defect in defects:
        buf.write(delimiter.join(export_row(defect)) + "\n")
    return buf.getvalue().encode("utf-8")


def export_defects_csv(defects) -> bytes:
    return _export_delimited(defects, ";")


def export_defects_tsv(defects) -> bytes:
    return _export_delimited(defects, "\t")


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def export_defects_xlsx(defects) -> bytes:
    """Same columns as the delimited exports, as an .xlsx workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Defects"

    ws.append(list(EXPORT_HEADER))
    _apply_header_style(ws, 1, len(EXPORT_HEADER))

    for defect in defects:
        row = export_row(defect)
        row[0] = defect.id
        ws.append(row)
        for col in range(1, len(EXPORT_HEADER) + 1):
            ws.cell(row=ws.max_row, column=col).border = THIN_BORDER

    ws.freeze_panes = "A2"
    _auto_width(ws)

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


EXPORT_FORMATS = {
    "csv": (export_defects_csv, "text/csv; charset=utf-8", "csv"),
    "excel": (export_defects_tsv, "application/vnd.ms-excel", "xls"),
    "xlsx": (
        export_defects_xlsx,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "xlsx",
    ),
}


def report_filename(extension: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"defects_report_{stamp}.{extension}"


def export_defects(fmt: str, now: datetime | None = None) -> tuple[bytes, str, str] | None:
    """
    Render the defect report in ``fmt``.

    Returns ``(content, mimetype, filename)``, or None for an unknown format.
    """
    entry = EXPORT_FORMATS.get(fmt)
    if entry is None:
        return None
    render, mimetype, extension = entry
    defects = defects_for_report()
    content = render(defects)
    logger.info("Exported %d defect(s) as %s", len(defects), fmt)
    return content, mimetype, report_filename(extension, now)
