from werkzeug.security import check_password_hash

from app.champion.models import User
from app.champion.modules.achievements.models import Achievement
from app.champion.modules.rewards.models import RewardTier
from app.champion.modules.training.models import TrainingProgram
from scripts._db_utils import script_session
from scripts.init_db import create_tables, seed_only
from scripts.reset_password import reset_password


def test_init_db_seeds_idempotently(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'scripts.db'}"
    monkeypatch.setenv("ADMIN_EMAIL", "Ops@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-password")

    create_tables(db_url)
    seed_only(database_url_override=db_url)
    with script_session(db_url) as s:
        admin = s.query(User).filter(User.email == "ops@example.com").one()
        assert admin.role == "ADMIN"
        counts = (s.query(Achievement).count(), s.query(RewardTier).count(), s.query(TrainingProgram).count())
    assert counts[0] == 45

    monkeypatch.setenv("ADMIN_PASSWORD", "second-password")
    seed_only(database_url_override=db_url)
    with script_session(db_url) as s:
        admin = s.query(User).filter(User.email == "ops@example.com").one()
        assert check_password_hash(admin.password_hash, "first-password")
        assert (s.query(Achievement).count(), s.query(RewardTier).count(), s.query(TrainingProgram).count()) == counts


def test_reset_password_clears_lockout(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'scripts.db'}"
    create_tables(db_url)
    with script_session(db_url) as s:
        s.add(User(email="player@example.com", failed_login_attempts=5, account_locked=True, account_locked_reason="Spam"))

    assert reset_password(db_url, "Player@Example.com", "brand-new-pass") is True
    assert reset_password(db_url, "nobody@example.com", "brand-new-pass") is False
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == "player@example.com").one()
        assert check_password_hash(user.password_hash, "brand-new-pass")
        assert user.failed_login_attempts == 0
        assert user.account_locked is False
