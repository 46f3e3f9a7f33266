import pytest
from werkzeug.security import generate_password_hash

from app.champion import create_app
from app.champion.db import session_scope
from app.champion.models import Base, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "SMTP_SERVER"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                User(email="admin@example.com", password_hash=generate_password_hash("password1"), role="ADMIN"),
                User(email="player@example.com", password_hash=generate_password_hash("password1"), first_name="Pat"),
            ]
        )

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_public_when_anonymous(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Mindful Champion" in r.data


def test_login_and_admin_access(client):
    # Anonymous is redirected to sign-in
    r = client.get("/admin")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "password1"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/admin")

    r = client.get("/admin")
    assert r.status_code == 200


def test_player_pages_render(client):
    r = client.post("/auth/login", data={"email": "player@example.com", "password": "password1"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    for path in ("/dashboard", "/rewards", "/progress/achievements", "/train/goals"):
        r = client.get(path)
        assert r.status_code == 200, path

    # Wrong role gets the 403 page
    r = client.get("/admin")
    assert r.status_code == 403
    r = client.get("/sponsors/portal")
    assert r.status_code == 403


def test_login_next_redirect_is_local_only(client):
    r = client.post(
        "/auth/login",
        data={"email": "player@example.com", "password": "password1", "next": "//evil.example.com/"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")


def test_bad_login_flashes_and_redirects(client):
    r = client.post("/auth/login", data={"email": "player@example.com", "password": "wrong"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Invalid credentials" in r.data


def test_unknown_page_404(client):
    r = client.get("/no-such-page")
    assert r.status_code == 404
    r = client.get("/api/no-such-endpoint")
    assert r.status_code == 404
    assert r.json["error"]
