"""Tests for user administration, the admin role toggle, audit trail and role dashboards."""
import pytest
from werkzeug.security import check_password_hash, generate_password_hash

from app.academia import create_app
from app.academia.db import session_scope
from app.academia.models import AuditEvent, Base, User
from app.academia.modules.perfil.models import Profile
from app.academia.rbac import primary_role, sync_role_permissions

CSRF = "test-csrf-token"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("ADMIN_TOGGLE_EMAILS", "Instrutor@Example.com, ")
    monkeypatch.delenv("BOOTSTRAP_ADMIN_EMAIL", raising=False)
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = sync_role_permissions(s)
        for email, nome, role in (
            ("admin@example.com", "Admin Geral", "admin"),
            ("instrutor@example.com", "Instrutor Um", "instrutor"),
            ("outro@example.com", "Instrutor Dois", "instrutor"),
            ("ana@example.com", "Ana Lima", "aluno"),
            ("bruno@example.com", "Bruno Costa", "aluno"),
        ):
            u = User(email=email, nome=nome, password_hash=generate_password_hash("pw"), is_active=True)
            u.roles.append(roles[role])
            u.profile = Profile(perfil_completo=True)
            if email.startswith("ana"):
                u.profile.matricula = "2024-007"
                u.profile.cpf = "529.982.247-25"
                u.profile.endereco = {"logradouro": "Rua das Flores", "numero": "12", "cidade": "Santos", "uf": "SP"}
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com", password="pw"):
    client.get("/auth/logout")
    r = client.post("/auth/login", data={"email": email, "password": password})
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    return r


def _post(client, url, data=None, **kwargs):
    return client.post(url, data={**(data or {}), "csrf_token": CSRF}, **kwargs)


def _user_id(app, email):
    with session_scope(app) as s:
        return s.query(User).filter(User.email == email).one().id


# ---------- Usuários ----------
def test_usuarios_list_and_search(client):
    _login(client, "instrutor@example.com")
    assert client.get("/admin/usuarios", follow_redirects=False).headers["Location"].endswith("/dashboard")

    _login(client)
    r = client.get("/admin/usuarios")
    assert r.status_code == 200
    assert b"Ana Lima" in r.data
    assert b"Bruno Costa" in r.data

    r = client.get("/admin/usuarios?q=2024-007")
    assert b"Ana Lima" in r.data
    assert b"Bruno Costa" not in r.data

    r = client.get("/admin/usuarios?role=instrutor")
    assert b"Instrutor Dois" in r.data
    assert b"Ana Lima" not in r.data


def test_create_user(client, app):
    _login(client)
    r = _post(
        client,
        "/admin/usuarios/new",
        {
            "nome": "Carla Souza",
            "email": "Carla@Example.com",
            "password": "secret1",
            "confirm_password": "secret1",
            "role": "instrutor",
        },
        follow_redirects=True,
    )
    assert "Conta criada para carla@example.com.".encode() in r.data

    r = _post(
        client,
        "/admin/usuarios/new",
        {"nome": "Carla", "email": "carla@example.com", "password": "secret1", "confirm_password": "secret1", "role": "aluno"},
        follow_redirects=True,
    )
    assert "Este email já está cadastrado.".encode() in r.data

    r = _post(
        client,
        "/admin/usuarios/new",
        {"nome": "Zé", "email": "ze@example.com", "password": "1", "confirm_password": "1", "role": "chefe"},
        follow_redirects=True,
    )
    assert "Nome deve ter pelo menos 3 caracteres.".encode() in r.data
    assert "Papel inválido.".encode() in r.data

    with session_scope(app) as s:
        carla = s.query(User).filter(User.email == "carla@example.com").one()
        assert primary_role(carla) == "instrutor"
        assert carla.profile.perfil_completo is False
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.create").one()
        assert ev.actor_user_email == "admin@example.com"
        assert s.query(User).filter(User.email == "ze@example.com").one_or_none() is None

    # New accounts go through onboarding on first login
    r = _login(client, "carla@example.com", "secret1")
    assert client.get("/dashboard", follow_redirects=False).headers["Location"].endswith("/perfil/wizard")


def test_change_role(client, app):
    ana_id = _user_id(app, "ana@example.com")
    admin_id = _user_id(app, "admin@example.com")

    _login(client, "instrutor@example.com")
    assert _post(client, f"/admin/usuarios/{ana_id}/papel", {"role": "admin"}).status_code == 403

    _login(client)
    r = _post(client, f"/admin/usuarios/{ana_id}/papel", {"role": "instrutor"}, follow_redirects=True)
    assert "Papel de Ana Lima alterado para Instrutor.".encode() in r.data
    r = _post(client, f"/admin/usuarios/{ana_id}/papel", {"role": "chefe"}, follow_redirects=True)
    assert "Papel inválido: chefe".encode() in r.data
    r = _post(client, f"/admin/usuarios/{admin_id}/papel", {"role": "aluno"}, follow_redirects=True)
    assert "Você não pode alterar o seu próprio papel por aqui.".encode() in r.data
    assert _post(client, "/admin/usuarios/9999/papel", {"role": "aluno"}).status_code == 404

    with session_scope(app) as s:
        assert primary_role(s.get(User, ana_id)) == "instrutor"
        assert primary_role(s.get(User, admin_id)) == "admin"
        ev = s.query(AuditEvent).filter(AuditEvent.action == "user.role_change").one()
        assert ev.entity_id == str(ana_id)


def test_deactivate_blocks_login(client, app):
    bruno_id = _user_id(app, "bruno@example.com")
    admin_id = _user_id(app, "admin@example.com")
    _login(client)

    r = _post(client, f"/admin/usuarios/{admin_id}/ativo", follow_redirects=True)
    assert "Você não pode desativar a sua própria conta.".encode() in r.data

    r = _post(client, f"/admin/usuarios/{bruno_id}/ativo", follow_redirects=True)
    assert "Bruno Costa desativado.".encode() in r.data
    with session_scope(app) as s:
        bruno = s.get(User, bruno_id)
        assert bruno.is_active is False
        assert bruno.profile.status == "inativo"

    r = _login(client, "bruno@example.com")
    assert r.headers["Location"].endswith("/auth/login")
    assert client.get("/dashboard", follow_redirects=False).status_code == 302

    _login(client)
    r = _post(client, f"/admin/usuarios/{bruno_id}/ativo", follow_redirects=True)
    assert "Bruno Costa ativado.".encode() in r.data
    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).filter(AuditEvent.entity_id == str(bruno_id)).all()]
        assert "user.deactivate" in actions
        assert "user.activate" in actions


def test_reset_password(client, app):
    ana_id = _user_id(app, "ana@example.com")
    _login(client)
    r = _post(client, f"/admin/usuarios/{ana_id}/senha", {"password": "123"}, follow_redirects=True)
    assert "Senha deve ter pelo menos 6 caracteres.".encode() in r.data
    r = _post(client, f"/admin/usuarios/{ana_id}/senha", {"password": "nova-senha"}, follow_redirects=True)
    assert "Senha de Ana Lima redefinida.".encode() in r.data
    with session_scope(app) as s:
        assert check_password_hash(s.get(User, ana_id).password_hash, "nova-senha")

    r = _login(client, "ana@example.com", "nova-senha")
    assert r.headers["Location"].endswith("/dashboard")


def test_usuario_profile_view(client, app):
    ana_id = _user_id(app, "ana@example.com")
    _login(client)
    r = client.get(f"/admin/usuarios/{ana_id}/perfil")
    assert r.status_code == 200
    assert b"Ana Lima" in r.data
    assert b"529.982.247-25" in r.data
    assert b"Rua das Flores" in r.data
    assert client.get("/admin/usuarios/9999/perfil").status_code == 404


# ---------- Role toggle ----------
def test_toggle_role_for_allowed_email(client, app):
    _login(client, "instrutor@example.com")
    r = client.get("/dashboard")
    assert b"toggle-role" in r.data

    r = _post(client, "/admin/toggle-role", follow_redirects=True)
    assert "Papel alterado de Instrutor para Administrador.".encode() in r.data
    assert b"Alunos ativos" in r.data

    r = _post(client, "/admin/toggle-role", follow_redirects=True)
    assert "Papel alterado de Administrador para Instrutor.".encode() in r.data
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "instrutor@example.com").one()
        assert primary_role(u) == "instrutor"


def test_toggle_role_denied_for_others(client):
    _login(client, "outro@example.com")
    assert b"toggle-role" not in client.get("/dashboard").data
    assert _post(client, "/admin/toggle-role").status_code == 403
    _login(client, "ana@example.com")
    assert _post(client, "/admin/toggle-role").status_code == 403


# ---------- Me / auditoria ----------
def test_me_lists_permissions(client):
    _login(client, "ana@example.com")
    r = client.get("/admin/me")
    assert r.status_code == 200
    assert "Minhas permissões".encode() in r.data
    assert b"minha_situacao.view" in r.data
    assert b"usuarios.manage" not in r.data


def test_auditoria_filters(client):
    _login(client, "instrutor@example.com")
    assert client.get("/admin/auditoria", follow_redirects=False).status_code == 302

    _login(client)
    r = client.get("/admin/auditoria")
    assert r.status_code == 200
    assert b"Trilha de auditoria" in r.data
    assert b"auth.login" in r.data

    r = client.get("/admin/auditoria?action=role_change")
    assert b"auth.login" not in r.data
    r = client.get("/admin/auditoria?actor_email=ADMIN@")
    assert b"admin@example.com" in r.data
    r = client.get("/admin/auditoria?date_from=ontem")
    assert "Data inicial deve estar no formato AAAA-MM-DD.".encode() in r.data
    r = client.get("/admin/auditoria?date_from=2000-01-01&date_to=2000-01-02")
    assert b"auth.login" not in r.data


# ---------- Dashboards ----------
@pytest.mark.parametrize(
    ("email", "expected", "absent"),
    [
        ("admin@example.com", ["Alunos ativos", "Instrutores", "Aulas hoje", "Alertas abertos"], ["Próximas aulas"]),
        ("instrutor@example.com", ["Minhas aulas hoje", "Chamadas em rascunho"], ["Alunos ativos"]),
        ("ana@example.com", ["Presença", "Próximas aulas", "Faltas"], ["Alunos ativos", "Chamadas em rascunho"]),
    ],
)
def test_dashboard_per_role(client, email, expected, absent):
    _login(client, email)
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert "Olá,".encode() in r.data
    for text in expected:
        assert text.encode() in r.data
    for text in absent:
        assert text.encode() not in r.data
