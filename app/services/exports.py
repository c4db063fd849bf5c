from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from app.models import Timesheet, TimesheetStatus
from app.services.timesheet_calc import minutes_to_hours

TIMESHEET_HEADERS = [
    "Timesheet ID",
    "User ID",
    "Location ID",
    "Period Start",
    "Period End",
    "Status",
    "Regular (h)",
    "Overtime (h)",
    "Break (h)",
    "Planned (h)",
    "Variance (h)",
    "Days Worked",
    "Approved By",
    "Approved At (UTC)",
]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
SUCCESS_FILL = PatternFill(fill_type="solid", fgColor="E6F4EA")
SUMMARY_FILL = PatternFill(fill_type="solid", fgColor="E9F1F7")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)

_SUMMED_TOTALS = (
    "regular_minutes",
    "overtime_minutes",
    "break_minutes",
    "planned_minutes",
    "variance_minutes",
)


def _to_excel_datetime(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _total(totals: dict[str, Any] | None, key: str) -> int:
    if not isinstance(totals, dict):
        return 0
    try:
        return int(totals.get(key) or 0)
    except (TypeError, ValueError):
        return 0


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _status_fill(status: TimesheetStatus) -> PatternFill | None:
    if status == TimesheetStatus.DRAFT:
        return WARNING_FILL
    if status in {TimesheetStatus.APPROVED, TimesheetStatus.LOCKED}:
        return SUCCESS_FILL
    return None


def _timesheet_row(timesheet: Timesheet) -> list[Any]:
    totals = timesheet.totals
    return [
        timesheet.id,
        timesheet.user_id,
        timesheet.location_id,
        timesheet.period_start,
        timesheet.period_end,
        TimesheetStatus(timesheet.status).value,
        minutes_to_hours(_total(totals, "regular_minutes")),
        minutes_to_hours(_total(totals, "overtime_minutes")),
        minutes_to_hours(_total(totals, "break_minutes")),
        minutes_to_hours(_total(totals, "planned_minutes")),
        minutes_to_hours(_total(totals, "variance_minutes")),
        _total(totals, "days_worked"),
        timesheet.approved_by,
        _to_excel_datetime(timesheet.approved_at),
    ]


def build_timesheets_xlsx_bytes(timesheets: Sequence[Timesheet]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Timesheets"
    ws.append(TIMESHEET_HEADERS)
    _style_header(ws)

    status_col = TIMESHEET_HEADERS.index("Status") + 1
    for index, timesheet in enumerate(timesheets):
        ws.append(_timesheet_row(timesheet))
        row_idx = ws.max_row
        for cell in ws[row_idx]:
            cell.border = THIN_BORDER
            if index % 2 == 1:
                cell.fill = ZEBRA_FILL
        fill = _status_fill(TimesheetStatus(timesheet.status))
        if fill is not None:
            ws.cell(row=row_idx, column=status_col).fill = fill

    summary = ["Total", None, None, None, None, None]
    summary.extend(
        minutes_to_hours(sum(_total(item.totals, key) for item in timesheets)) for key in _SUMMED_TOTALS
    )
    summary.append(sum(_total(item.totals, "days_worked") for item in timesheets))
    summary.extend([None, None])
    ws.append(summary)
    for cell in ws[ws.max_row]:
        cell.font = BOLD_FONT
        cell.fill = SUMMARY_FILL
        cell.border = THIN_BORDER

    ws.freeze_panes = "A2"
    ws.auto_filter.ref = f"A1:{get_column_letter(ws.max_column)}{max(1, ws.max_row - 1)}"
    _auto_width(ws)

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
