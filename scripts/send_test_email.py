"""
SMTP connectivity probe. Sends one message using the SMTP_* / EMAIL_FROM
settings and logs it as an EmailNotification row.

Usage:
  python scripts/send_test_email.py --to someone@example.com
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.champion.config import load_config
from app.champion.modules.notifications.service import TEST, send_email
from app.champion.utils import utcnow
from scripts._db_utils import script_session


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--to", required=True)
    args = parser.parse_args()

    load_dotenv()
    config = load_config()
    print(f"SMTP_SERVER={config['SMTP_SERVER'] or '(unset)'} SMTP_PORT={config['SMTP_PORT']} TLS={config['SMTP_USE_TLS']}")
    print(f"EMAIL_FROM={config['EMAIL_FROM'] or '(unset)'}")

    sent_at = utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")
    with script_session(config["DATABASE_URL"]) as s:
        notification = send_email(
            s,
            to=args.to,
            subject="Mindful Champion test email",
            html=f"<p>This is a test email from Mindful Champion, sent {sent_at}.</p>",
            text=f"This is a test email from Mindful Champion, sent {sent_at}.",
            email_type=TEST,
            config=config,
        )
        status, error = notification.status, notification.error

    if status != "SENT":
        print(f"FAILED: {error}")
        sys.exit(1)
    print(f"Sent test email to {args.to}")


if __name__ == "__main__":
    main()
