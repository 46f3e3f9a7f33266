"""Goals, programs and onboarding."""
import pytest
from werkzeug.security import generate_password_hash

from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, User
from app.champion.modules.achievements.service import sync_achievement_definitions
from app.champion.modules.rewards.service import seed_reward_tiers
from app.champion.modules.training.models import Goal, TrainingProgram
from app.champion.modules.training.service import seed_training_programs
from app.champion.utils import utcnow


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("SMTP_SERVER", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                User(email="player@example.com", password_hash=generate_password_hash("password1")),
                User(email="other@example.com", password_hash=generate_password_hash("password1")),
                User(email="admin@example.com", password_hash=generate_password_hash("password1"), role="ADMIN"),
            ]
        )
        seed_training_programs(s)
        seed_reward_tiers(s)
        sync_achievement_definitions(s)
        s.add(
            TrainingProgram(
                slug="two-day-tuneup",
                name="Two Day Tune-up",
                description="Short serve and dink refresher",
                duration_days=2,
                skill_level="BEGINNER",
            )
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="player@example.com"):
    r = client.post("/api/auth/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200


def test_create_goal_defaults(client):
    _login(client)
    r = client.post("/api/training/goals", json={"goalText": "Improve third shot drop"})
    assert r.status_code == 200
    goal = r.json["goal"]
    assert goal["goalText"] == "Improve third shot drop"
    assert goal["status"] == "ACTIVE"
    assert goal["progressPercentage"] == 0


def test_create_goal_requires_text(app, client):
    _login(client)
    r = client.post("/api/training/goals", json={"goalText": "   "})
    assert r.status_code == 400
    assert r.json == {"error": "Goal text is required"}
    with session_scope(app) as s:
        assert s.query(Goal).count() == 0


def test_create_goal_rejects_bad_date(client):
    _login(client)
    r = client.post("/api/training/goals", json={"goalText": "Win a ladder match", "targetDate": "next week"})
    assert r.status_code == 400


def test_create_goal_rejects_wrongly_typed_fields(app, client):
    _login(client)
    r = client.post("/api/training/goals", json={"goalText": "Improve third shot drop", "category": 5})
    assert r.status_code == 400
    assert r.json == {"error": "category must be a string"}
    r = client.post("/api/training/goals", json={"goalText": ["Improve", "drops"]})
    assert r.status_code == 400
    assert r.json == {"error": "goalText must be a string"}
    with session_scope(app) as s:
        assert s.query(Goal).count() == 0

    goal_id = client.post("/api/training/goals", json={"goalText": "Dink more"}).json["goal"]["id"]
    r = client.patch(f"/api/training/goals/{goal_id}", json={"status": {"value": "COMPLETED"}})
    assert r.status_code == 400
    assert r.json == {"error": "status must be a string"}


def test_goal_listing_is_stable_across_requests(app, client):
    _login(client)
    created = utcnow()
    with session_scope(app) as s:
        player = s.query(User).filter(User.email == "player@example.com").one()
        for text in ("Serve deep", "Drop softly", "Reset at the kitchen"):
            s.add(Goal(user_id=player.id, goal_text=text, created_at=created, updated_at=created))

    first = client.get("/api/training/goals").json
    second = client.get("/api/training/goals").json
    assert first == second
    assert [g["goalText"] for g in first["goals"]] == ["Reset at the kitchen", "Drop softly", "Serve deep"]


def test_goals_are_owner_scoped(client):
    _login(client, "other@example.com")
    r = client.post("/api/training/goals", json={"goalText": "Someone else's goal"})
    other_goal_id = r.json["goal"]["id"]
    client.post("/api/auth/logout", json={})

    _login(client)
    client.post("/api/training/goals", json={"goalText": "Mine"})
    r = client.get("/api/training/goals")
    assert [g["goalText"] for g in r.json["goals"]] == ["Mine"]

    r = client.patch(f"/api/training/goals/{other_goal_id}", json={"status": "COMPLETED"})
    assert r.status_code == 404
    r = client.delete(f"/api/training/goals/{other_goal_id}", json={})
    assert r.status_code == 404


def test_update_and_delete_goal(client):
    _login(client)
    goal_id = client.post("/api/training/goals", json={"goalText": "Dink 50 in a row"}).json["goal"]["id"]

    r = client.patch(f"/api/training/goals/{goal_id}", json={"progressPercentage": 140})
    assert r.json["goal"]["progressPercentage"] == 100

    r = client.patch(f"/api/training/goals/{goal_id}", json={"status": "completed"})
    assert r.json["goal"]["status"] == "COMPLETED"
    assert r.json["goal"]["completedAt"] is not None

    r = client.patch(f"/api/training/goals/{goal_id}", json={"status": "PAUSED"})
    assert r.status_code == 400

    r = client.get("/api/training/goals?status=COMPLETED")
    assert len(r.json["goals"]) == 1

    r = client.delete(f"/api/training/goals/{goal_id}", json={})
    assert r.json == {"success": True}
    assert client.get("/api/training/goals").json["goals"] == []


def test_program_listing_and_detail(client):
    _login(client)
    r = client.get("/api/training/programs?skillLevel=BEGINNER")
    slugs = [p["id"] for p in r.json["programs"]]
    assert "beginner-fundamentals" in slugs
    assert "pro-performance" not in slugs
    assert all(p["userProgram"] is None for p in r.json["programs"])

    r = client.get("/api/training/program/no-such-program")
    assert r.status_code == 404
    assert r.json == {"error": "Program not found"}


def test_program_lifecycle_awards_points(client):
    _login(client)
    r = client.post("/api/training/program/two-day-tuneup/start", json={})
    assert r.json["created"] is True
    assert r.json["userProgram"]["currentDay"] == 1

    # Starting again returns the existing enrollment.
    r = client.post("/api/training/program/two-day-tuneup/start", json={})
    assert r.json["created"] is False

    r = client.patch("/api/training/program/two-day-tuneup", json={"action": "pause"})
    assert r.json["userProgram"]["status"] == "PAUSED"
    r = client.patch("/api/training/program/two-day-tuneup", json={"action": "resume"})
    assert r.json["userProgram"]["status"] == "IN_PROGRESS"
    r = client.patch("/api/training/program/two-day-tuneup", json={"action": "restart"})
    assert r.status_code == 400

    r = client.post("/api/training/program/two-day-tuneup/complete-day", json={"day": 2})
    assert r.status_code == 400
    assert r.json == {"error": "Invalid day"}

    r = client.post("/api/training/program/two-day-tuneup/complete-day", json={"day": 1})
    assert r.json["completed"] is False
    assert r.json["userProgram"]["currentDay"] == 2
    assert r.json["userProgram"]["completionPercentage"] == 50.0

    r = client.post("/api/training/program/two-day-tuneup/complete-day", json={"day": 2})
    assert r.json["completed"] is True
    assert r.json["pointsAwarded"] == 100
    assert r.json["rewardPoints"] == 100
    assert r.json["userProgram"]["status"] == "COMPLETED"

    # 100 points reaches the bronze tier.
    r = client.get("/api/rewards/pending-celebrations")
    assert [c["tier"]["name"] for c in r.json["celebrations"]] == ["bronze"]

    r = client.post("/api/training/program/two-day-tuneup/complete-day", json={"day": 2})
    assert r.status_code == 400
    assert r.json == {"error": "Program already completed"}


def test_complete_day_requires_enrollment(client):
    _login(client)
    r = client.post("/api/training/program/two-day-tuneup/complete-day", json={"day": 1})
    assert r.status_code == 404
    assert r.json == {"error": "User not enrolled in program"}

    r = client.post("/api/training/program/two-day-tuneup/complete-day", json={})
    assert r.status_code == 400
    assert r.json == {"error": "Day is required"}


def test_onboarding(client):
    _login(client)
    r = client.get("/api/onboarding")
    assert r.json["onboardingCompleted"] is False

    r = client.post("/api/onboarding/goals", json={"goals": ["build-consistency"], "challenges": ["serve"]})
    assert r.status_code == 400
    assert r.json == {"error": "Please select a coaching style"}

    r = client.post(
        "/api/onboarding/goals",
        json={
            "goals": ["build-consistency"],
            "challenges": ["nerves"],
            "preferences": {"coachingStyle": "encouraging"},
            "skillLevel": "beginner",
        },
    )
    assert r.status_code == 200
    assert r.json["nextStep"] == "START_PROGRAM"
    assert "beginner-fundamentals" in [p["id"] for p in r.json["recommendedPrograms"]]

    r = client.get("/api/onboarding")
    assert r.json["onboardingCompleted"] is True
    assert r.json["coachingStylePreference"] == "encouraging"


def test_admin_seed_programs_is_idempotent(client):
    _login(client, "admin@example.com")
    r = client.post("/api/admin/seed-programs", json={})
    assert r.status_code == 200
    assert r.json["created"] == 0
