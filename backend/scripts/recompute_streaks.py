"""
Recompute a user's ship streak from the analytics table.

Reads every analytics row for the user, runs the streak calculator and writes
the current streak back to the profile. Safe to run multiple times (idempotent).

Usage:
    cd backend
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... python scripts/recompute_streaks.py <user_id>

Or with a .env file:
    python scripts/recompute_streaks.py <user_id>
"""
import os
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()

# Add project root to path so we can import engine modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db import get_client, get_profile, get_analytics, update_profile
from app.engine.streak import ShipDay, StreakData, compute_streaks, local_today


def recompute(db, user_id: str) -> StreakData:
    profile = get_profile(db, user_id)
    today = local_today(profile.get("timezone") or os.getenv("DEFAULT_TIMEZONE", "UTC"))
    rows = get_analytics(db, user_id)
    print(f"  fetched {len(rows)} analytics rows")
    records = [ShipDay(date.fromisoformat(r["date"][:10]), r.get("ship_count") or 0) for r in rows]
    streaks = compute_streaks(records, today)
    update_profile(db, user_id, {"ship_streak": streaks.current_streak})
    return streaks


def main() -> int:
    if len(sys.argv) != 2:
        print("usage: python scripts/recompute_streaks.py <user_id>")
        return 1
    user_id = sys.argv[1]
    print(f"Recomputing streaks for {user_id}...")
    streaks = recompute(get_client(), user_id)
    print(f"  current streak : {streaks.current_streak}")
    print(f"  longest streak : {streaks.longest_streak}")
    print(f"  last ship date : {streaks.last_ship_date or '-'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
