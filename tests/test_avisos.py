"""Tests for Avisos (announcements)."""
import pytest
from werkzeug.security import generate_password_hash

from app.academia import create_app
from app.academia.db import session_scope
from app.academia.models import AuditEvent, Base, User
from app.academia.modules.avisos.models import Aviso
from app.academia.modules.avisos.service import create_aviso, list_avisos, validate_aviso_payload
from app.academia.modules.perfil.models import Profile
from app.academia.modules.turmas.models import Pelotao, Turma
from app.academia.rbac import sync_role_permissions

CSRF = "test-csrf-token"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = sync_role_permissions(s)
        turma = Turma(nome="CFSD 2024", ano=2024)
        p1 = Pelotao(nome="1º Pelotão", turma=turma)
        p2 = Pelotao(nome="2º Pelotão", turma=turma)
        s.add_all([turma, p1, p2])
        s.flush()
        for email, nome, role, pelotao_id in (
            ("admin@example.com", "Admin", "admin", None),
            ("instrutor@example.com", "Instrutor Um", "instrutor", None),
            ("outro@example.com", "Instrutor Dois", "instrutor", None),
            ("ana@example.com", "Ana", "aluno", p1.id),
            ("davi@example.com", "Davi", "aluno", p2.id),
            ("sem@example.com", "Sem Pelotão", "aluno", None),
        ):
            u = User(email=email, nome=nome, password_hash=generate_password_hash("pw"), is_active=True)
            u.roles.append(roles[role])
            u.profile = Profile(perfil_completo=True, pelotao_id=pelotao_id)
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email):
    client.get("/auth/logout")
    client.post("/auth/login", data={"email": email, "password": "pw"})
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _post(client, url, data=None, **kwargs):
    return client.post(url, data={**(data or {}), "csrf_token": CSRF}, **kwargs)


def _pelotao_id(app, nome):
    with session_scope(app) as s:
        return s.query(Pelotao).filter(Pelotao.nome == nome).one().id


def test_validate_aviso_payload():
    assert validate_aviso_payload({"titulo": "Formatura", "conteudo": "Dia 10"}) == []
    assert validate_aviso_payload({"titulo": " ", "conteudo": "", "pelotao_id": "x"}) == [
        "Título é obrigatório.",
        "Conteúdo é obrigatório.",
        "Pelotão inválido.",
    ]
    assert validate_aviso_payload({"titulo": "x" * 256, "conteudo": "c"}) == ["Título muito longo."]


def test_list_avisos_scoping_and_order(app):
    p1 = _pelotao_id(app, "1º Pelotão")
    p2 = _pelotao_id(app, "2º Pelotão")
    with session_scope(app) as s:
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        create_aviso(s, {"titulo": "Geral antigo", "conteudo": "c"}, admin)
        create_aviso(s, {"titulo": "Só 1º", "conteudo": "c", "pelotao_id": str(p1)}, admin)
        create_aviso(s, {"titulo": "Só 2º", "conteudo": "c", "pelotao_id": str(p2)}, admin)
        create_aviso(s, {"titulo": "Fixado", "conteudo": "c", "fixado": True}, admin)

    with session_scope(app) as s:
        def titulos(email):
            return [a.titulo for a in list_avisos(s, s.query(User).filter(User.email == email).one())]

        assert titulos("admin@example.com")[0] == "Fixado"
        assert len(titulos("admin@example.com")) == 4
        assert len(titulos("instrutor@example.com")) == 4
        assert set(titulos("ana@example.com")) == {"Fixado", "Geral antigo", "Só 1º"}
        assert titulos("ana@example.com")[0] == "Fixado"
        assert set(titulos("davi@example.com")) == {"Fixado", "Geral antigo", "Só 2º"}
        assert set(titulos("sem@example.com")) == {"Fixado", "Geral antigo"}
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        assert len(list_avisos(s, admin, limit=2)) == 2


def test_aviso_unknown_pelotao(client):
    _login(client, "instrutor@example.com")
    r = _post(
        client, "/avisos/new", {"titulo": "X", "conteudo": "Y", "pelotao_id": "999"}, follow_redirects=True
    )
    assert "Pelotão não encontrado.".encode() in r.data


def test_aviso_lifecycle(client, app):
    p1 = _pelotao_id(app, "1º Pelotão")
    _login(client, "instrutor@example.com")
    r = _post(
        client,
        "/avisos/new",
        {"titulo": "Instrução de tiro", "conteudo": "Levar EPI", "pelotao_id": str(p1), "fixado": "1"},
        follow_redirects=True,
    )
    assert "Aviso publicado com sucesso!".encode() in r.data
    assert "Instrução de tiro".encode() in r.data

    r = _post(client, "/avisos/new", {"titulo": "", "conteudo": ""}, follow_redirects=True)
    assert "Título é obrigatório.".encode() in r.data

    with session_scope(app) as s:
        aviso = s.query(Aviso).one()
        aviso_id = aviso.id
        assert aviso.fixado is True
        assert aviso.pelotao_id == p1

    # Alunos of the targeted pelotão see it; others do not
    _login(client, "ana@example.com")
    assert "Instrução de tiro".encode() in client.get("/avisos").data
    assert _post(client, "/avisos/new", {"titulo": "A", "conteudo": "B"}).status_code == 403
    _login(client, "davi@example.com")
    assert "Instrução de tiro".encode() not in client.get("/avisos").data

    # Only the author (or an admin) edits
    _login(client, "outro@example.com")
    r = _post(client, f"/avisos/{aviso_id}/edit", {"titulo": "Hack", "conteudo": "x"})
    assert r.status_code == 403

    _login(client, "instrutor@example.com")
    r = _post(
        client,
        f"/avisos/{aviso_id}/edit",
        {"titulo": "Instrução de tiro (adiada)", "conteudo": "Levar EPI"},
        follow_redirects=True,
    )
    assert "Aviso atualizado com sucesso!".encode() in r.data
    with session_scope(app) as s:
        aviso = s.get(Aviso, aviso_id)
        assert aviso.titulo == "Instrução de tiro (adiada)"
        assert aviso.fixado is False
        assert aviso.pelotao_id is None

    # Deleting is admin only
    assert _post(client, f"/avisos/{aviso_id}/delete").status_code == 403
    _login(client, "admin@example.com")
    r = _post(client, f"/avisos/{aviso_id}/delete", follow_redirects=True)
    assert "Aviso excluído com sucesso!".encode() in r.data
    assert _post(client, f"/avisos/{aviso_id}/delete").status_code == 404

    with session_scope(app) as s:
        assert s.query(Aviso).count() == 0
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
        assert [a for a in actions if a.startswith("aviso.")] == ["aviso.create", "aviso.edit", "aviso.delete"]


def test_dashboard_shows_recent_avisos(client, app):
    with session_scope(app) as s:
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        create_aviso(s, {"titulo": "Bem-vindos ao curso", "conteudo": "c"}, admin)
    _login(client, "ana@example.com")
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"Avisos recentes" in r.data
    assert b"Bem-vindos ao curso" in r.data
