"""
Set a user's password and clear any lockout.

Usage:
  python scripts/reset_password.py --email someone@example.com [--password NEWPASS]
"""
from __future__ import annotations

import argparse
import getpass
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.champion.models import User
from app.champion.utils import normalize_email, utcnow
from scripts._db_utils import database_url, script_session

MIN_PASSWORD_LENGTH = 8


def reset_password(db_url: str, email: str, password: str) -> bool:
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == normalize_email(email)).one_or_none()
        if not user:
            return False
        user.password_hash = generate_password_hash(password)
        user.password_changed_at = utcnow()
        user.failed_login_attempts = 0
        user.account_locked = False
        user.account_locked_reason = None
        user.account_locked_until = None
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", help="Prompted for when omitted")
    args = parser.parse_args()

    password = args.password or getpass.getpass("New password: ")
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        sys.exit(1)
    if not reset_password(database_url(), args.email, password):
        print(f"No user with email {args.email}")
        sys.exit(1)
    print(f"Password updated and lockout cleared for {args.email}")


if __name__ == "__main__":
    main()
