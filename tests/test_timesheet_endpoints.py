from __future__ import annotations

import unittest
from collections.abc import Generator
from datetime import date
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.db import get_db
from app.errors import ConflictError
from app.main import app
from app.models import Timesheet, TimesheetStatus
from app.security import Actor, get_current_actor


class _FakeDB:
    def commit(self) -> None:
        return None

    def rollback(self) -> None:
        return None


def _override_get_db(fake_db: _FakeDB):
    def _override() -> Generator[_FakeDB, None, None]:
        yield fake_db

    return _override


def _timesheet(status: TimesheetStatus = TimesheetStatus.DRAFT) -> Timesheet:
    return Timesheet(
        id=42,
        org_id=1,
        location_id=3,
        user_id=7,
        period_start=date(2025, 1, 1),
        period_end=date(2025, 1, 31),
        totals={
            "regular_minutes": 450,
            "overtime_minutes": 0,
            "break_minutes": 30,
            "planned_minutes": 450,
            "variance_minutes": 0,
            "days_worked": 1,
        },
        status=status,
    )


GENERATE_BODY = {
    "user_id": 7,
    "location_id": 3,
    "period_start": "2025-01-01",
    "period_end": "2025-01-31",
}


class TimesheetEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        app.dependency_overrides[get_db] = _override_get_db(_FakeDB())
        app.dependency_overrides[get_current_actor] = lambda: Actor(user_id=9)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    @patch("app.routers.timesheets.log_request_audit")
    @patch("app.routers.timesheets.generate_or_update_timesheet")
    def test_generate_returns_201_when_created(self, mock_generate, _mock_audit) -> None:
        mock_generate.return_value = (_timesheet(), True)

        response = self.client.post("/api/v1/timesheets", json=GENERATE_BODY)

        self.assertEqual(response.status_code, 201)
        body = response.json()["timesheet"]
        self.assertEqual(body["id"], 42)
        self.assertEqual(body["status"], "draft")
        self.assertEqual(body["totals"]["regular_minutes"], 450)
        self.assertFalse(mock_generate.call_args.kwargs["force"])

    @patch("app.routers.timesheets.log_request_audit")
    @patch("app.routers.timesheets.generate_or_update_timesheet")
    def test_generate_returns_200_when_updated(self, mock_generate, _mock_audit) -> None:
        mock_generate.return_value = (_timesheet(), False)

        response = self.client.post("/api/v1/timesheets", json={**GENERATE_BODY, "force": True})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(mock_generate.call_args.kwargs["force"])

    @patch("app.routers.timesheets.generate_or_update_timesheet")
    def test_locked_timesheet_is_409(self, mock_generate) -> None:
        mock_generate.side_effect = ConflictError("TIMESHEET_LOCKED", "timesheet locked")

        response = self.client.post("/api/v1/timesheets", json=GENERATE_BODY)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "TIMESHEET_LOCKED")

    @patch("app.routers.timesheets.generate_or_update_timesheet")
    def test_inverted_period_is_400(self, mock_generate) -> None:
        response = self.client.post(
            "/api/v1/timesheets",
            json={**GENERATE_BODY, "period_start": "2025-02-01"},
        )

        self.assertEqual(response.status_code, 400)
        mock_generate.assert_not_called()

    @patch("app.routers.timesheets.log_request_audit")
    @patch("app.routers.timesheets.list_timesheets")
    def test_export_returns_xlsx(self, mock_list, mock_audit) -> None:
        mock_list.return_value = [_timesheet(TimesheetStatus.APPROVED)]

        response = self.client.get(
            "/api/v1/timesheets/export.xlsx",
            params={"period_start": "2025-01-01", "period_end": "2025-01-31"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("application/vnd.openxmlformats"))
        self.assertIn("timesheets-2025-01-01-2025-01-31.xlsx", response.headers["content-disposition"])
        self.assertTrue(response.content.startswith(b"PK"))
        mock_audit.assert_called_once()

    @patch("app.routers.timesheets.log_request_audit")
    @patch("app.routers.timesheets.approve_timesheet")
    def test_approve(self, mock_approve, _mock_audit) -> None:
        mock_approve.return_value = _timesheet(TimesheetStatus.APPROVED)

        response = self.client.post("/api/v1/timesheets/42/approve")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["timesheet"]["status"], "approved")
        mock_approve.assert_called_once()
        self.assertEqual(mock_approve.call_args.kwargs["approver_id"], 9)


class HealthEndpointTests(unittest.TestCase):
    def test_health_reports_schema_guard(self) -> None:
        response = TestClient(app).get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertIn("schema_guard", response.json())


if __name__ == "__main__":
    unittest.main()
