import json
from datetime import datetime, timezone

import pytest

from app.engine.session import (
    InvalidTransition,
    SessionStatus,
    append_checkpoint,
    context_health,
    format_duration,
    is_terminal,
    parse_timestamp,
    session_duration,
    status_label,
    transition,
)

NOW = datetime(2026, 2, 27, 12, 0, tzinfo=timezone.utc)


def _session(status="ACTIVE", **fields):
    return {
        "id": "s1",
        "session_status": status,
        "started_at": "2026-02-27T10:00:00Z",
        "ended_at": None,
        "duration_seconds": 0,
        **fields,
    }


class TestFormatDuration:
    def test_minutes_only(self):
        assert format_duration(125) == "2m"

    def test_hours_and_minutes(self):
        assert format_duration(3725) == "1h 2m"

    def test_zero_and_negative(self):
        assert format_duration(0) == "0m"
        assert format_duration(-30) == "0m"

    def test_long_form(self):
        assert format_duration(3725, long=True) == "1 hour 2 minutes"
        assert format_duration(7260, long=True) == "2 hours 1 minute"
        assert format_duration(59, long=True) == "0 minutes"


class TestContextHealth:
    def test_fresh_session(self):
        assert context_health(0) == 100

    def test_one_hour(self):
        assert context_health(3600) == 90

    def test_partial_hour_floors(self):
        assert context_health(3599) == 91

    def test_never_below_zero(self):
        assert context_health(36000) == 0
        assert context_health(100000) == 0

    def test_custom_initial(self):
        assert context_health(3600, initial_health=50) == 40


class TestSessionDuration:
    def test_ended_session_uses_timestamps(self):
        session = _session(ended_at="2026-02-27T11:30:00Z", duration_seconds=12)
        assert session_duration(session) == 5400

    def test_running_session_uses_counter(self):
        assert session_duration(_session(duration_seconds=321)) == 321

    def test_missing_counter_is_zero(self):
        assert session_duration(_session(duration_seconds=None)) == 0

    def test_parse_naive_timestamp_as_utc(self):
        assert parse_timestamp("2026-02-27T10:00:00") == datetime(2026, 2, 27, 10, tzinfo=timezone.utc)
        assert parse_timestamp(None) is None


class TestTransition:
    def test_pause(self):
        assert transition(_session(), SessionStatus.PAUSED, NOW) == {"session_status": "PAUSED"}

    def test_resume(self):
        assert transition(_session("PAUSED"), "ACTIVE", NOW) == {"session_status": "ACTIVE"}

    def test_complete_stamps_end_and_duration(self):
        updates = transition(_session(), "COMPLETED", NOW)
        assert updates["session_status"] == "COMPLETED"
        assert parse_timestamp(updates["ended_at"]) == NOW
        assert updates["duration_seconds"] == 7200

    def test_existing_end_time_kept(self):
        updates = transition(_session(ended_at="2026-02-27T10:30:00Z"), "ABANDONED", NOW)
        assert updates["duration_seconds"] == 1800

    def test_same_status_is_noop(self):
        assert transition(_session(), "ACTIVE", NOW) == {}

    def test_terminal_states_are_final(self):
        with pytest.raises(InvalidTransition) as exc:
            transition(_session("COMPLETED"), "ACTIVE", NOW)
        assert "COMPLETED" in str(exc.value)
        with pytest.raises(InvalidTransition):
            transition(_session("ABANDONED"), "PAUSED", NOW)

    def test_labels(self):
        assert status_label("ACTIVE") == "In Progress"
        assert is_terminal("ABANDONED")
        assert not is_terminal(SessionStatus.PAUSED)


class TestCheckpoints:
    def test_append_to_empty(self):
        result = json.loads(append_checkpoint(None, "wired up auth", NOW))
        assert result == [{"timestamp": NOW.isoformat(), "text": "wired up auth"}]

    def test_append_keeps_existing(self):
        raw = json.dumps([{"timestamp": "2026-02-27T10:00:00+00:00", "text": "first"}])
        result = json.loads(append_checkpoint(raw, "second", NOW))
        assert [c["text"] for c in result] == ["first", "second"]

    def test_corrupt_notes_are_replaced(self):
        assert len(json.loads(append_checkpoint("{not json", "x", NOW))) == 1
        assert len(json.loads(append_checkpoint('{"a": 1}', "x", NOW))) == 1
