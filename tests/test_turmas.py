"""Tests for Turmas and Pelotões."""
import pytest
from werkzeug.security import generate_password_hash

from app.academia import create_app
from app.academia.db import session_scope
from app.academia.models import AuditEvent, Base, User
from app.academia.modules.perfil.models import Profile
from app.academia.modules.turmas.models import Pelotao, Turma
from app.academia.modules.turmas.service import alunos_do_pelotao, validate_pelotao_payload, validate_turma_payload
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
        for email, nome, role in (
            ("admin@example.com", "Admin", "admin"),
            ("instrutor@example.com", "Instrutor", "instrutor"),
            ("ana@example.com", "Ana Aluna", "aluno"),
            ("bruno@example.com", "Bruno Aluno", "aluno"),
        ):
            u = User(email=email, nome=nome, password_hash=generate_password_hash("pw"), is_active=True)
            u.roles.append(roles[role])
            u.profile = Profile(perfil_completo=True)
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"})
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _post(client, url, data=None):
    return client.post(url, data={**(data or {}), "csrf_token": CSRF}, follow_redirects=True)


def _user_id(app, email):
    with session_scope(app) as s:
        return s.query(User).filter(User.email == email).one().id


def test_validators():
    assert validate_turma_payload({"nome": "Turma 2024", "ano": "2024"}) == []
    assert validate_turma_payload({"nome": "", "ano": "24x"}) == ["Nome da turma é obrigatório.", "Ano inválido."]
    assert validate_pelotao_payload({"nome": "1º Pelotão", "turma_id": "1"}) == []
    assert validate_pelotao_payload({"nome": "P", "turma_id": "", "coordenador_id": "abc"}) == [
        "Turma é obrigatória.",
        "Coordenador inválido.",
    ]


def test_turmas_list_requires_admin(client):
    r = client.get("/admin/turmas", follow_redirects=False)
    assert r.status_code == 302
    _login(client, "instrutor@example.com")
    r = client.get("/admin/turmas", follow_redirects=False)
    assert r.headers["Location"].endswith("/dashboard")


def test_turma_crud(client, app):
    _login(client)
    r = client.get("/admin/turmas")
    assert r.status_code == 200
    assert b"Turmas" in r.data

    r = _post(client, "/admin/turmas/new", {"nome": "CFSD 2024", "ano": "2024", "descricao": "Curso de formação"})
    assert "Turma criada com sucesso!".encode() in r.data

    r = _post(client, "/admin/turmas/new", {"nome": "CFSD 2024", "ano": "2024"})
    assert "Já existe uma turma chamada CFSD 2024.".encode() in r.data

    with session_scope(app) as s:
        turma = s.query(Turma).filter(Turma.nome == "CFSD 2024").one()
        turma_id = turma.id
        assert turma.ativa is True

    r = _post(client, f"/admin/turmas/{turma_id}/edit", {"nome": "CFSD 2024/1", "ano": "2024", "ativa": "0"})
    assert "Turma atualizada com sucesso!".encode() in r.data
    with session_scope(app) as s:
        turma = s.get(Turma, turma_id)
        assert turma.nome == "CFSD 2024/1"
        assert turma.ativa is False

    r = _post(client, f"/admin/turmas/{turma_id}/delete")
    assert "Turma excluída com sucesso!".encode() in r.data
    with session_scope(app) as s:
        assert s.get(Turma, turma_id) is None
        actions = {e.action for e in s.query(AuditEvent).all()}
        assert {"turma.create", "turma.edit", "turma.delete"} <= actions


def test_pelotao_lifecycle_and_membros(client, app):
    _login(client)
    _post(client, "/admin/turmas/new", {"nome": "CFSD 2024", "ano": "2024"})
    with session_scope(app) as s:
        turma_id = s.query(Turma).one().id
    instrutor_id = _user_id(app, "instrutor@example.com")

    r = _post(
        client,
        "/admin/pelotoes/new",
        {"nome": "1º Pelotão", "turma_id": str(turma_id), "coordenador_id": str(instrutor_id)},
    )
    assert "Pelotão criado com sucesso!".encode() in r.data
    r = _post(client, "/admin/pelotoes/new", {"nome": "1º Pelotão", "turma_id": str(turma_id)})
    assert "A turma já possui um pelotão chamado 1º Pelotão.".encode() in r.data

    with session_scope(app) as s:
        pelotao = s.query(Pelotao).one()
        pelotao_id = pelotao.id
        assert pelotao.coordenador_id == instrutor_id
        assert pelotao.label == "1º Pelotão (CFSD 2024)"

    # A turma with pelotões cannot be deleted
    r = _post(client, f"/admin/turmas/{turma_id}/delete")
    assert "Não é possível excluir uma turma que possui pelotões.".encode() in r.data

    ana_id = _user_id(app, "ana@example.com")
    bruno_id = _user_id(app, "bruno@example.com")
    r = client.get(f"/admin/pelotoes/{pelotao_id}")
    assert r.status_code == 200
    assert b"Ana Aluna" in r.data

    _post(client, f"/admin/pelotoes/{pelotao_id}/membros", {"user_id": str(ana_id)})
    r = _post(client, f"/admin/pelotoes/{pelotao_id}/membros", {"user_id": str(bruno_id)})
    assert "Bruno Aluno adicionado ao pelotão.".encode() in r.data

    with session_scope(app) as s:
        assert [u.nome for u in alunos_do_pelotao(s, pelotao_id)] == ["Ana Aluna", "Bruno Aluno"]

    r = _post(client, f"/admin/pelotoes/{pelotao_id}/membros/{bruno_id}/remove")
    assert "Bruno Aluno removido do pelotão.".encode() in r.data
    r = client.post(
        f"/admin/pelotoes/{pelotao_id}/membros/{bruno_id}/remove",
        data={"csrf_token": CSRF},
    )
    assert r.status_code == 404

    r = _post(client, f"/admin/pelotoes/{pelotao_id}/edit", {"nome": "Pelotão Alfa", "turma_id": str(turma_id)})
    assert "Pelotão atualizado com sucesso!".encode() in r.data
    with session_scope(app) as s:
        pelotao = s.get(Pelotao, pelotao_id)
        assert pelotao.nome == "Pelotão Alfa"
        assert pelotao.coordenador_id is None

    r = _post(client, f"/admin/pelotoes/{pelotao_id}/delete")
    assert "Pelotão excluído com sucesso!".encode() in r.data
    with session_scope(app) as s:
        assert s.get(Pelotao, pelotao_id) is None
        ana = s.get(User, ana_id)
        assert ana.profile.pelotao_id is None
        assert ana.is_active is True


def test_alunos_do_pelotao_skips_inactive(app):
    with session_scope(app) as s:
        turma = Turma(nome="T", ano=2024)
        pelotao = Pelotao(nome="P", turma=turma)
        s.add_all([turma, pelotao])
        s.flush()
        ana = s.query(User).filter(User.email == "ana@example.com").one()
        bruno = s.query(User).filter(User.email == "bruno@example.com").one()
        instrutor = s.query(User).filter(User.email == "instrutor@example.com").one()
        for u in (ana, bruno, instrutor):
            u.profile.pelotao_id = pelotao.id
        bruno.profile.status = "inativo"
        s.flush()
        assert [u.email for u in alunos_do_pelotao(s, pelotao.id)] == ["ana@example.com"]
        assert len(alunos_do_pelotao(s, pelotao.id, only_active=False)) == 2
