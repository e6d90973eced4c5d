"""Tests for Disciplinas module."""
from datetime import date, time

import pytest
from werkzeug.security import generate_password_hash

from app.academia import create_app
from app.academia.db import session_scope
from app.academia.models import Base, User
from app.academia.modules.disciplinas.models import Disciplina
from app.academia.modules.disciplinas.service import validate_disciplina_payload
from app.academia.modules.frequencia.models import Aula
from app.academia.modules.perfil.models import Profile
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
        for email, role in (("admin@example.com", "admin"), ("aluno@example.com", "aluno")):
            u = User(email=email, nome=email.split("@")[0].title(), password_hash=generate_password_hash("pw"), is_active=True)
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


def test_validate_disciplina_payload():
    assert validate_disciplina_payload({"nome": "Direito Penal", "carga_horaria": "40", "cor": "#ff0000"}) == []
    errors = validate_disciplina_payload({"nome": "", "carga_horaria": "0", "cor": "red"})
    assert errors == [
        "Nome da disciplina é obrigatório.",
        "Carga horária deve ser maior que zero.",
        "Cor deve estar no formato #RRGGBB.",
    ]
    assert validate_disciplina_payload({"nome": "X", "carga_horaria": "dez"}) == [
        "Carga horária deve ser um número inteiro."
    ]


def test_list_visible_to_aluno_but_not_editable(client):
    _login(client, "aluno@example.com")
    r = client.get("/disciplinas")
    assert r.status_code == 200
    assert b"Disciplinas" in r.data
    r = client.post("/disciplinas/new", data={"nome": "X", "carga_horaria": "10", "csrf_token": CSRF})
    assert r.status_code == 403


def test_disciplina_crud(client, app):
    _login(client)
    r = _post(client, "/disciplinas/new", {"nome": "Direito Penal", "codigo": "dp01", "carga_horaria": "40"})
    assert "Disciplina criada com sucesso!".encode() in r.data

    r = _post(client, "/disciplinas/new", {"nome": "Direito Penal", "carga_horaria": "20"})
    assert "Já existe uma disciplina chamada Direito Penal.".encode() in r.data
    r = _post(client, "/disciplinas/new", {"nome": "Outra", "codigo": "DP01", "carga_horaria": "20"})
    assert "Código DP01 já está em uso.".encode() in r.data

    with session_scope(app) as s:
        d = s.query(Disciplina).one()
        disciplina_id = d.id
        assert d.codigo == "DP01"
        assert d.cor == "#3b82f6"

    r = client.get("/disciplinas?q=penal")
    assert b"Direito Penal" in r.data

    r = _post(
        client,
        f"/disciplinas/{disciplina_id}/edit",
        {"nome": "Direito Penal Militar", "codigo": "DP01", "carga_horaria": "60", "cor": "#FF0000"},
    )
    assert "Disciplina atualizada com sucesso!".encode() in r.data
    with session_scope(app) as s:
        d = s.get(Disciplina, disciplina_id)
        assert d.nome == "Direito Penal Militar"
        assert d.carga_horaria == 60
        assert d.cor == "#ff0000"

    r = _post(client, f"/disciplinas/{disciplina_id}/delete")
    assert "Disciplina excluída com sucesso!".encode() in r.data
    with session_scope(app) as s:
        assert s.get(Disciplina, disciplina_id) is None


def test_disciplina_with_aulas_cannot_be_deleted(client, app):
    with session_scope(app) as s:
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        d = Disciplina(nome="Tiro", carga_horaria=20, cor="#000000")
        s.add(d)
        s.flush()
        s.add(
            Aula(
                disciplina_id=d.id,
                instrutor_id=admin.id,
                data_aula=date(2024, 3, 1),
                hora_inicio=time(8, 0),
                titulo="Aula 1",
            )
        )
        disciplina_id = d.id

    _login(client)
    r = _post(client, f"/disciplinas/{disciplina_id}/delete")
    assert "Não é possível excluir uma disciplina com aulas registradas.".encode() in r.data
    with session_scope(app) as s:
        assert s.get(Disciplina, disciplina_id) is not None
