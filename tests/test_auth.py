"""Tests for login, signup and account state."""
import pytest
from werkzeug.security import generate_password_hash

from app.academia import auth, create_app
from app.academia.db import session_scope
from app.academia.models import AuditEvent, Base, User
from app.academia.modules.perfil.models import Profile
from app.academia.rbac import primary_role, sync_role_permissions


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("ALLOW_SIGNUP", "1")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    auth._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = sync_role_permissions(s)
        u = User(email="aluno@example.com", nome="Aluno Teste", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(roles["aluno"])
        u.profile = Profile(perfil_completo=True)
        off = User(email="inativo@example.com", nome="Inativo", password_hash=generate_password_hash("pw"), is_active=False)
        off.roles.append(roles["aluno"])
        off.profile = Profile(perfil_completo=True)
        s.add_all([u, off])

    yield app
    auth._login_attempts.clear()


@pytest.fixture()
def client(app):
    return app.test_client()


def test_login_page_renders(client):
    r = client.get("/auth/login")
    assert r.status_code == 200
    assert b"Entrar" in r.data


def test_login_wrong_password(client, app):
    r = client.post("/auth/login", data={"email": "aluno@example.com", "password": "errada"}, follow_redirects=True)
    assert r.status_code == 200
    assert "Verifique suas credenciais".encode() in r.data

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.actor_user_id is None
        assert ev.entity_id == "aluno@example.com"


def test_login_inactive_user_refused(client):
    r = client.post("/auth/login", data={"email": "inativo@example.com", "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    r = client.get("/dashboard", follow_redirects=False)
    assert "/auth/login" in r.headers["Location"]


def test_login_success_stamps_last_login(client, app):
    r = client.post("/auth/login", data={"email": "ALUNO@example.com ", "password": "pw"}, follow_redirects=False)
    assert r.headers["Location"].endswith("/dashboard")
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "aluno@example.com").one()
        assert u.last_login_at is not None


def test_login_rate_limit(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "aluno@example.com", "password": "errada"})
    r = client.post("/auth/login", data={"email": "aluno@example.com", "password": "pw"}, follow_redirects=True)
    assert "Muitas tentativas de login".encode() in r.data
    r = client.get("/dashboard", follow_redirects=False)
    assert "/auth/login" in r.headers["Location"]


def test_signup_creates_aluno_with_incomplete_profile(client, app):
    r = client.post(
        "/auth/signup",
        data={
            "nome": "Novo Aluno",
            "email": "Novo@Example.com",
            "password": "segredo1",
            "confirm_password": "segredo1",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "novo@example.com").one()
        assert primary_role(u) == "aluno"
        assert u.profile is not None
        assert u.profile.perfil_completo is False
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.create").count() == 1

    # First visit after login goes to the onboarding wizard
    client.post("/auth/login", data={"email": "novo@example.com", "password": "segredo1"})
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/perfil/wizard")


def test_signup_duplicate_email(client, app):
    r = client.post(
        "/auth/signup",
        data={
            "nome": "Outro Aluno",
            "email": "aluno@example.com",
            "password": "segredo1",
            "confirm_password": "segredo1",
        },
        follow_redirects=True,
    )
    assert "Este email já está cadastrado.".encode() in r.data
    with session_scope(app) as s:
        assert s.query(User).filter(User.email == "aluno@example.com").count() == 1


def test_signup_validation_errors(client):
    r = client.post(
        "/auth/signup",
        data={"nome": "Al", "email": "sem-arroba", "password": "123", "confirm_password": "123"},
        follow_redirects=True,
    )
    assert "Nome deve ter pelo menos 3 caracteres.".encode() in r.data
    assert "Email inválido.".encode() in r.data
    assert "Senha deve ter pelo menos 6 caracteres.".encode() in r.data


def test_signup_password_mismatch(client):
    r = client.post(
        "/auth/signup",
        data={"nome": "Fulano", "email": "fulano@example.com", "password": "segredo1", "confirm_password": "segredo2"},
        follow_redirects=True,
    )
    assert "As senhas não coincidem.".encode() in r.data


def test_signup_disabled(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'off.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ALLOW_SIGNUP", "0")
    app = create_app()
    r = app.test_client().get("/auth/signup")
    assert r.status_code == 404


def test_validate_signup_payload():
    ok = {"nome": "Fulano", "email": "a@b.com", "password": "segredo", "confirm_password": "segredo"}
    assert auth.validate_signup_payload(ok) == []
    assert auth.validate_signup_payload({**ok, "email": "a@b"}) == ["Email inválido."]
