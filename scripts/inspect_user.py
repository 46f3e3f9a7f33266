"""
Print a user's role, tier, points, lockout state and recent security events.

Usage:
  python scripts/inspect_user.py --email someone@example.com [--events 10]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.champion.models import SecurityLog, User
from app.champion.utils import normalize_email
from scripts._db_utils import database_url, script_session


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", required=True)
    parser.add_argument("--events", type=int, default=10)
    args = parser.parse_args()

    with script_session(database_url()) as s:
        user = s.query(User).filter(User.email == normalize_email(args.email)).one_or_none()
        if not user:
            print(f"No user with email {args.email}")
            sys.exit(1)

        print(f"id:            {user.id}")
        print(f"email:         {user.email}")
        print(f"name:          {user.display_name}")
        print(f"role:          {user.role}")
        print(f"active:        {user.is_active}")
        print(f"skill level:   {user.skill_level}")
        print(f"tier/status:   {user.subscription_tier} / {user.subscription_status or '-'}")
        print(f"trial ends:    {user.trial_end_date or '-'}")
        print(f"reward points: {user.reward_points}")
        print(f"failed logins: {user.failed_login_attempts}")
        print(f"locked:        {user.account_locked} (until {user.account_locked_until or '-'}) {user.account_locked_reason or ''}")
        print(f"logins:        {user.login_count}, last active {user.last_active_date or '-'}")

        events = (
            s.query(SecurityLog)
            .filter(SecurityLog.user_id == user.id)
            .order_by(SecurityLog.created_at.desc(), SecurityLog.id.desc())
            .limit(args.events)
            .all()
        )
        print(f"\nRecent security events ({len(events)}):")
        for ev in events:
            print(f"  {ev.created_at:%Y-%m-%d %H:%M:%S} {ev.severity:<8} {ev.event_type:<24} {ev.description}")


if __name__ == "__main__":
    main()
