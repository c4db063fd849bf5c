from __future__ import annotations

import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

from app.errors import ApiError, ValidationError
from app.models import ClockEventKind, ClockEventSource, TimeClockEvent
from app.schemas import ClockPunchRequest
from app.services.timeclock import record_punch, validate_punch_sequence


class _FakeDB:
    def __init__(self) -> None:
        self.added: list[object] = []
        self.commits = 0

    def add(self, obj) -> None:  # type: ignore[no-untyped-def]
        self.added.append(obj)

    def commit(self) -> None:
        self.commits += 1
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = 900

    def refresh(self, _obj) -> None:  # type: ignore[no-untyped-def]
        return None


LOCATION = SimpleNamespace(id=3, org_id=1, timezone="Europe/Paris")
OCCURRED_AT = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


def _punch(kind: ClockEventKind) -> ClockPunchRequest:
    return ClockPunchRequest(location_id=3, kind=kind, occurred_at=OCCURRED_AT)


class PunchSequenceTests(unittest.TestCase):
    def test_valid_day(self) -> None:
        previous = None
        for kind in (
            ClockEventKind.CLOCK_IN,
            ClockEventKind.BREAK_START,
            ClockEventKind.BREAK_END,
            ClockEventKind.CLOCK_OUT,
            ClockEventKind.CLOCK_IN,
        ):
            validate_punch_sequence(previous, kind)
            previous = kind

    def test_invalid_sequences(self) -> None:
        cases = [
            (ClockEventKind.CLOCK_IN, ClockEventKind.CLOCK_IN),
            (None, ClockEventKind.CLOCK_OUT),
            (ClockEventKind.BREAK_START, ClockEventKind.CLOCK_OUT),
            (ClockEventKind.CLOCK_OUT, ClockEventKind.BREAK_START),
            (ClockEventKind.CLOCK_IN, ClockEventKind.BREAK_END),
        ]
        for previous, kind in cases:
            with self.subTest(previous=previous, kind=kind):
                with self.assertRaises(ValidationError) as ctx:
                    validate_punch_sequence(previous, kind)
                self.assertEqual(ctx.exception.code, "INVALID_PUNCH_SEQUENCE")


@patch("app.services.timeclock.get_location", return_value=LOCATION)
class RecordPunchTests(unittest.TestCase):
    @patch("app.services.timeclock._latest_event_in_window", return_value=None)
    @patch("app.services.timeclock._duplicate_punch_id", return_value=None)
    def test_first_clock_in_is_recorded(self, _mock_dup, _mock_latest, _mock_location) -> None:
        db = _FakeDB()

        event = record_punch(db, user_id=7, payload=_punch(ClockEventKind.CLOCK_IN))  # type: ignore[arg-type]

        self.assertIsInstance(event, TimeClockEvent)
        self.assertEqual(event.id, 900)
        self.assertEqual(event.org_id, 1)
        self.assertEqual(event.kind, ClockEventKind.CLOCK_IN)
        self.assertEqual(event.source, ClockEventSource.KIOSK)
        self.assertEqual(db.commits, 1)

    @patch("app.services.timeclock._latest_event_in_window")
    @patch("app.services.timeclock._duplicate_punch_id", return_value=55)
    def test_duplicate_punch_is_throttled(self, _mock_dup, mock_latest, _mock_location) -> None:
        db = _FakeDB()

        with self.assertRaises(ApiError) as ctx:
            record_punch(db, user_id=7, payload=_punch(ClockEventKind.CLOCK_IN))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.code, "DUPLICATE_PUNCH")
        self.assertEqual(db.added, [])
        mock_latest.assert_not_called()

    @patch("app.services.timeclock._latest_event_in_window")
    @patch("app.services.timeclock._duplicate_punch_id", return_value=None)
    def test_second_clock_in_is_rejected(self, _mock_dup, mock_latest, _mock_location) -> None:
        mock_latest.return_value = SimpleNamespace(kind=ClockEventKind.CLOCK_IN)
        db = _FakeDB()

        with self.assertRaises(ValidationError):
            record_punch(db, user_id=7, payload=_punch(ClockEventKind.CLOCK_IN))  # type: ignore[arg-type]

        self.assertEqual(db.commits, 0)


if __name__ == "__main__":
    unittest.main()
