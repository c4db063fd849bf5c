from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from io import BytesIO
from types import SimpleNamespace

from openpyxl import load_workbook

from app.models import TimesheetStatus
from app.services.exports import TIMESHEET_HEADERS, build_timesheets_xlsx_bytes


def _timesheet(timesheet_id: int, *, status: TimesheetStatus, regular: int, variance: int):  # type: ignore[no-untyped-def]
    return SimpleNamespace(
        id=timesheet_id,
        user_id=7,
        location_id=3,
        period_start=date(2025, 1, 1),
        period_end=date(2025, 1, 31),
        status=status,
        totals={
            "regular_minutes": regular,
            "overtime_minutes": 0,
            "break_minutes": 30,
            "planned_minutes": regular - variance,
            "variance_minutes": variance,
            "days_worked": 2,
        },
        approved_by=9 if status != TimesheetStatus.DRAFT else None,
        approved_at=datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc) if status != TimesheetStatus.DRAFT else None,
    )


class TimesheetExportTests(unittest.TestCase):
    def test_rows_and_summary(self) -> None:
        payload = build_timesheets_xlsx_bytes(
            [
                _timesheet(1, status=TimesheetStatus.APPROVED, regular=450, variance=0),
                _timesheet(2, status=TimesheetStatus.DRAFT, regular=420, variance=-60),
            ]
        )

        workbook = load_workbook(BytesIO(payload))
        sheet = workbook["Timesheets"]

        self.assertEqual([cell.value for cell in sheet[1]], TIMESHEET_HEADERS)
        self.assertEqual(sheet.max_row, 4)
        self.assertEqual(sheet.cell(row=2, column=1).value, 1)
        self.assertEqual(sheet.cell(row=2, column=6).value, "approved")
        self.assertEqual(sheet.cell(row=2, column=7).value, "7.50")
        self.assertEqual(sheet.cell(row=3, column=11).value, "-1.00")
        self.assertEqual(sheet.cell(row=4, column=1).value, "Total")
        self.assertEqual(sheet.cell(row=4, column=7).value, "14.50")
        self.assertEqual(sheet.cell(row=4, column=12).value, 4)

    def test_empty_export_has_header_and_total(self) -> None:
        workbook = load_workbook(BytesIO(build_timesheets_xlsx_bytes([])))
        sheet = workbook.active

        self.assertEqual(sheet.max_row, 2)
        self.assertEqual(sheet.cell(row=2, column=7).value, "0.00")


if __name__ == "__main__":
    unittest.main()
