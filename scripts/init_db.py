import argparse
import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.champion.constants import ROLE_ADMIN
from app.champion.models import Base, User
from app.champion.modules.achievements.service import sync_achievement_definitions
from app.champion.modules.rewards.service import seed_reward_tiers
from app.champion.modules.training.service import seed_training_programs
from scripts._db_utils import create_script_engine, database_url, script_session


def seed_only(*, database_url_override: str | None = None) -> None:
    """
    Seed the admin user, achievement catalogue, reward tiers and training
    programs in an idempotent way. Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@mindfulchampion.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = database_url(database_url_override)

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name="Administrator",
                is_active=True,
                role=ROLE_ADMIN,
            )
            s.add(user)
        elif user.role != ROLE_ADMIN:
            user.role = ROLE_ADMIN

        achievements = sync_achievement_definitions(s)
        tiers = seed_reward_tiers(s)
        programs = seed_training_programs(s)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"Achievements: {achievements['created']} created, {achievements['updated']} updated")
    print(f"Reward tiers created: {tiers}")
    print(f"Training programs created: {programs}")


def create_tables(db_url: str) -> None:
    """Dev convenience: create tables directly (production uses alembic)."""
    engine = create_script_engine(db_url)
    try:
        Base.metadata.create_all(bind=engine)
    finally:
        engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create tables (dev) and seed reference data.")
    parser.add_argument("--seed-only", action="store_true", help="Skip table creation")
    args = parser.parse_args()

    db_url = database_url()
    if not args.seed_only:
        create_tables(db_url)
    seed_only(database_url_override=db_url)


if __name__ == "__main__":
    main()
