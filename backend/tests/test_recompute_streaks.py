import importlib.util
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "recompute_streaks.py"


@pytest.fixture
def script():
    spec = importlib.util.spec_from_file_location("recompute_streaks", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestRecompute:
    def test_writes_current_streak(self, script):
        rows = [
            {"date": "2026-02-27", "ship_count": 2},
            {"date": "2026-02-26", "ship_count": 1},
            {"date": "2026-02-20", "ship_count": 1},
        ]
        with patch.object(script, "get_profile", return_value={"timezone": "UTC"}), \
             patch.object(script, "get_analytics", return_value=rows), \
             patch.object(script, "update_profile") as update_profile, \
             patch.object(script, "local_today", return_value=date(2026, 2, 27)):
            streaks = script.recompute(MagicMock(), "user-1")

        assert streaks.current_streak == 2
        assert streaks.longest_streak == 2
        assert streaks.last_ship_date == date(2026, 2, 27)
        assert update_profile.call_args.args[1:] == ("user-1", {"ship_streak": 2})

    def test_usage_without_user(self, script, capsys, monkeypatch):
        monkeypatch.setattr("sys.argv", ["recompute_streaks.py"])
        assert script.main() == 1
        assert "usage" in capsys.readouterr().out
