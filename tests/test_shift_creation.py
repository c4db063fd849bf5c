from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from app.errors import ConflictError, ValidationError
from app.models import Shift, ShiftAssignment, ShiftAssignmentStatus
from app.schemas import ShiftAssignRequest, ShiftCreateRequest
from app.services.rotas import ResolvedRota
from app.services.shifts import assign_shift, create_shifts, intervals_overlap


class _FakeDB:
    def __init__(self, *, commit_error: Exception | None = None) -> None:
        self.commit_error = commit_error
        self.pending: list[object] = []
        self.persisted: list[object] = []
        self.rollbacks = 0
        self._next_id = 100

    def add(self, obj) -> None:  # type: ignore[no-untyped-def]
        self.pending.append(obj)

    def add_all(self, objs) -> None:  # type: ignore[no-untyped-def]
        self.pending.extend(objs)

    def commit(self) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        for obj in self.pending:
            if getattr(obj, "id", None) is None:
                obj.id = self._next_id
                self._next_id += 1
        self.persisted.extend(self.pending)
        self.pending = []

    def rollback(self) -> None:
        self.rollbacks += 1
        self.pending = []

    def refresh(self, _obj) -> None:  # type: ignore[no-untyped-def]
        return None


RESOLVED = ResolvedRota(id=3, org_id=7, location_id=2, week_start_date=date(2025, 1, 13), created=True)


def _payload(**overrides) -> ShiftCreateRequest:  # type: ignore[no-untyped-def]
    values = {
        "location_id": 2,
        "start_at": datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc),
        "end_at": datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc),
        "break_minutes": 30,
    }
    values.update(overrides)
    return ShiftCreateRequest(**values)


class CreateShiftsTests(unittest.TestCase):
    @patch("app.services.shifts.resolve_or_create_rota", return_value=RESOLVED)
    def test_quantity_creates_identical_shifts(self, mock_resolve) -> None:
        db = _FakeDB()

        shifts = create_shifts(db, _payload(quantity=3), created_by=4)  # type: ignore[arg-type]

        self.assertEqual(len(shifts), 3)
        self.assertEqual(len(db.persisted), 3)
        self.assertEqual(len({shift.id for shift in shifts}), 3)
        for shift in shifts:
            self.assertEqual(shift.rota_id, 3)
            self.assertEqual(shift.org_id, 7)
            self.assertEqual(shift.break_minutes, 30)
            self.assertEqual(shift.created_by, 4)
        mock_resolve.assert_called_once()

    @patch("app.services.shifts.resolve_or_create_rota", return_value=RESOLVED)
    def test_failed_commit_persists_nothing(self, _mock_resolve) -> None:
        db = _FakeDB(commit_error=IntegrityError("INSERT INTO shifts", {}, Exception("check violation")))

        with self.assertRaises(IntegrityError):
            create_shifts(db, _payload(quantity=5))  # type: ignore[arg-type]

        self.assertEqual(db.persisted, [])
        self.assertEqual(db.pending, [])
        self.assertEqual(db.rollbacks, 1)

    @patch("app.services.shifts.resolve_or_create_rota")
    @patch("app.services.shifts.get_rota")
    def test_explicit_rota_wins_over_location(self, mock_get_rota, mock_resolve) -> None:
        mock_get_rota.return_value = SimpleNamespace(
            id=9,
            org_id=7,
            location_id=2,
            week_start_date=date(2025, 1, 13),
        )
        db = _FakeDB()

        shifts = create_shifts(db, _payload(rota_id=9, location_id=5))  # type: ignore[arg-type]

        self.assertEqual(shifts[0].rota_id, 9)
        self.assertEqual(shifts[0].location_id, 2)
        mock_resolve.assert_not_called()

    @patch("app.services.shifts.get_rota")
    def test_explicit_rota_from_another_week_is_rejected(self, mock_get_rota) -> None:
        mock_get_rota.return_value = SimpleNamespace(
            id=9,
            org_id=7,
            location_id=2,
            week_start_date=date(2025, 1, 6),
        )
        db = _FakeDB()

        with self.assertRaises(ValidationError) as ctx:
            create_shifts(db, _payload(rota_id=9, location_id=None))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.code, "SHIFT_OUTSIDE_ROTA_WEEK")
        self.assertEqual(db.persisted, [])
        self.assertEqual(db.rollbacks, 1)

    @patch("app.services.shifts.resolve_or_create_rota")
    def test_unvalidated_payload_without_target_is_rejected(self, mock_resolve) -> None:
        payload = ShiftCreateRequest.model_construct(
            rota_id=None,
            location_id=None,
            job_tag_id=None,
            start_at=datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc),
            end_at=datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc),
            break_minutes=0,
            notes=None,
            quantity=1,
        )
        db = _FakeDB()

        with self.assertRaises(ValidationError) as ctx:
            create_shifts(db, payload)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "ROTA_OR_LOCATION_REQUIRED")
        self.assertEqual(db.rollbacks, 1)
        mock_resolve.assert_not_called()


class ShiftRequestValidationTests(unittest.TestCase):
    def test_requires_rota_or_location(self) -> None:
        with self.assertRaises(ValueError):
            _payload(location_id=None)

    def test_end_must_follow_start(self) -> None:
        with self.assertRaises(ValueError):
            _payload(end_at=datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc))

    def test_mixed_offsets_compare_as_utc(self) -> None:
        payload = _payload(end_at=datetime(2025, 1, 15, 17, 0))
        self.assertEqual(payload.end_at, datetime(2025, 1, 15, 17, 0))

        with self.assertRaises(ValueError):
            _payload(end_at=datetime(2025, 1, 15, 8, 0))

    def test_negative_break_rejected(self) -> None:
        with self.assertRaises(ValueError):
            _payload(break_minutes=-5)


class AssignShiftTests(unittest.TestCase):
    def _shift(self) -> Shift:
        return Shift(
            id=5,
            org_id=7,
            location_id=2,
            rota_id=3,
            start_at=datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc),
            end_at=datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc),
            break_minutes=0,
        )

    def test_intervals_overlap(self) -> None:
        base = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
        later = datetime(2025, 1, 15, 17, 0, tzinfo=timezone.utc)
        self.assertTrue(intervals_overlap(base, later, datetime(2025, 1, 15, 16, 0, tzinfo=timezone.utc), later))
        self.assertFalse(intervals_overlap(base, later, later, datetime(2025, 1, 15, 20, 0, tzinfo=timezone.utc)))

    @patch("app.services.shifts._committed_shifts_for_user")
    @patch("app.services.shifts.get_shift")
    def test_overlapping_assignment_is_rejected(self, mock_get_shift, mock_committed) -> None:
        mock_get_shift.return_value = self._shift()
        mock_committed.return_value = [
            SimpleNamespace(
                start_at=datetime(2025, 1, 15, 16, 0, tzinfo=timezone.utc),
                end_at=datetime(2025, 1, 15, 22, 0, tzinfo=timezone.utc),
            )
        ]

        with self.assertRaises(ConflictError) as ctx:
            assign_shift(_FakeDB(), shift_id=5, payload=ShiftAssignRequest(user_id=8))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.code, "SHIFT_COLLISION")

    @patch("app.services.shifts._find_assignment", return_value=None)
    @patch("app.services.shifts._committed_shifts_for_user", return_value=[])
    @patch("app.services.shifts.get_shift")
    def test_assignment_is_created(self, mock_get_shift, _mock_committed, _mock_find) -> None:
        mock_get_shift.return_value = self._shift()
        db = _FakeDB()

        assignment = assign_shift(db, shift_id=5, payload=ShiftAssignRequest(user_id=8), assigned_by=1)  # type: ignore[arg-type]

        self.assertIsInstance(assignment, ShiftAssignment)
        self.assertEqual(assignment.status, ShiftAssignmentStatus.ASSIGNED)
        self.assertIsNotNone(assignment.assigned_at)
        self.assertEqual(db.persisted, [assignment])

    @patch("app.services.shifts._find_assignment")
    @patch("app.services.shifts._committed_shifts_for_user")
    @patch("app.services.shifts.get_shift")
    def test_proposal_skips_collision_check(self, mock_get_shift, mock_committed, mock_find) -> None:
        mock_get_shift.return_value = self._shift()
        existing = ShiftAssignment(id=40, org_id=7, shift_id=5, user_id=8, status=ShiftAssignmentStatus.DECLINED)
        mock_find.return_value = existing

        assignment = assign_shift(
            _FakeDB(),  # type: ignore[arg-type]
            shift_id=5,
            payload=ShiftAssignRequest(user_id=8, status="proposed"),
        )

        self.assertIs(assignment, existing)
        self.assertEqual(assignment.status, ShiftAssignmentStatus.PROPOSED)
        self.assertIsNotNone(assignment.proposed_at)
        mock_committed.assert_not_called()


if __name__ == "__main__":
    unittest.main()
