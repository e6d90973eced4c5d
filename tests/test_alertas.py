"""Tests for attendance alerts, thresholds and notifications."""
from datetime import date, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.academia import create_app
from app.academia.db import session_scope
from app.academia.errors import InvalidTransition, PermissionDenied
from app.academia.models import Base, User
from app.academia.modules.disciplinas.models import Disciplina
from app.academia.modules.frequencia.alertas import (
    contar_faltas,
    limites_para,
    list_alertas,
    marcar_lida,
    resolver_alerta,
    resumo_alertas,
    set_config_frequencia,
    severidade_para,
    unread_count,
    validate_config_payload,
)
from app.academia.modules.frequencia.models import Alerta, ConfigFrequencia, Notificacao
from app.academia.modules.frequencia.service import create_aula, publish_chamada, save_chamada
from app.academia.modules.perfil.models import Profile
from app.academia.modules.turmas.models import Pelotao, Turma
from app.academia.rbac import sync_role_permissions

CSRF = "test-csrf-token"
INICIO = date(2024, 3, 4)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    for k in ("FREQ_LIMITE_ALERTA", "FREQ_LIMITE_CRITICO"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = sync_role_permissions(s)
        turma = Turma(nome="CFSD 2024", ano=2024)
        pelotao = Pelotao(nome="1º Pelotão", turma=turma)
        s.add_all([turma, pelotao, Disciplina(nome="Tiro", carga_horaria=20, cor="#000000")])
        s.flush()
        for email, nome, role in (
            ("admin@example.com", "Admin", "admin"),
            ("instrutor@example.com", "Instrutor Um", "instrutor"),
            ("outro@example.com", "Instrutor Dois", "instrutor"),
            ("ana@example.com", "Ana", "aluno"),
            ("bruno@example.com", "Bruno", "aluno"),
        ):
            u = User(email=email, nome=nome, password_hash=generate_password_hash("pw"), is_active=True)
            u.roles.append(roles[role])
            u.profile = Profile(perfil_completo=True, pelotao_id=pelotao.id if role == "aluno" else None)
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


def _get(s, email):
    return s.query(User).filter(User.email == email).one()


def _aula_com_faltas(s, instrutor, ausentes, dia):
    disciplina = s.query(Disciplina).one()
    pelotao = s.query(Pelotao).one()
    aula = create_aula(
        s,
        {
            "disciplina_id": disciplina.id,
            "pelotao_id": pelotao.id,
            "data_aula": dia.isoformat(),
            "hora_inicio": "08:00",
            "titulo": f"Aula {dia.isoformat()}",
        },
        instrutor,
    )
    save_chamada(s, aula, {a.id: "AUSENTE" for a in ausentes}, instrutor)
    return publish_chamada(s, aula, instrutor)


def _registrar_faltas(app, n, email="ana@example.com"):
    with session_scope(app) as s:
        instrutor = _get(s, "instrutor@example.com")
        aluno = _get(s, email)
        for i in range(n):
            _aula_com_faltas(s, instrutor, [aluno], INICIO + timedelta(days=i))


# ---------- Rules ----------
def test_severidade_para():
    assert severidade_para(2, 3, 5) is None
    assert severidade_para(3, 3, 5) == "ALERTA"
    assert severidade_para(4, 3, 5) == "ALERTA"
    assert severidade_para(5, 3, 5) == "CRITICO"


def test_validate_config_payload():
    assert validate_config_payload({"turma_id": "1", "limite_alerta": "2", "limite_critico": "4"}) == []
    assert validate_config_payload({"turma_id": "1", "limite_alerta": "5", "limite_critico": "4"}) == [
        "Limite crítico não pode ser menor que o limite de alerta."
    ]
    errors = validate_config_payload({"limite_alerta": "x", "limite_critico": "0"})
    assert errors == [
        "Limite de alerta deve ser um número inteiro.",
        "Limite crítico deve ser maior que zero.",
        "Turma é obrigatória.",
    ]
    assert validate_config_payload({"turma_id": "abc", "limite_alerta": "2", "limite_critico": "4"}) == [
        "Turma inválida."
    ]
    assert validate_config_payload(
        {"turma_id": "1", "disciplina_id": "x", "limite_alerta": "2", "limite_critico": "4"}
    ) == ["Disciplina inválida."]


def test_immediate_alert_per_absence(app):
    _registrar_faltas(app, 2)
    with session_scope(app) as s:
        ana = _get(s, "ana@example.com")
        alertas = s.query(Alerta).filter(Alerta.aluno_id == ana.id).order_by(Alerta.id).all()
        assert [a.tipo for a in alertas] == ["IMEDIATO", "IMEDIATO"]
        assert all(a.severidade == "INFO" for a in alertas)
        assert alertas[0].motivo == "Falta registrada em Tiro (04/03/2024)."
        assert contar_faltas(s, ana.id, alertas[0].disciplina_id) == 2
        # Bruno was present: nothing raised for him
        assert s.query(Alerta).filter(Alerta.aluno_id == _get(s, "bruno@example.com").id).count() == 0


def test_threshold_alerts_escalate_without_duplicates(app):
    _registrar_faltas(app, 3)
    with session_scope(app) as s:
        limiar = s.query(Alerta).filter(Alerta.tipo == "LIMIAR").all()
        assert [(a.severidade, a.contagem_faltas) for a in limiar] == [("ALERTA", 3)]
        assert limiar[0].motivo == "3 faltas em Tiro (limite 3)."
        assert limiar[0].turma_id == s.query(Turma).one().id

    with session_scope(app) as s:
        instrutor = _get(s, "instrutor@example.com")
        ana = _get(s, "ana@example.com")
        _aula_com_faltas(s, instrutor, [ana], INICIO + timedelta(days=10))
    with session_scope(app) as s:
        assert s.query(Alerta).filter(Alerta.tipo == "LIMIAR").count() == 1

    with session_scope(app) as s:
        instrutor = _get(s, "instrutor@example.com")
        ana = _get(s, "ana@example.com")
        _aula_com_faltas(s, instrutor, [ana], INICIO + timedelta(days=11))
    with session_scope(app) as s:
        limiar = s.query(Alerta).filter(Alerta.tipo == "LIMIAR").order_by(Alerta.id).all()
        assert [(a.severidade, a.contagem_faltas) for a in limiar] == [("ALERTA", 3), ("CRITICO", 5)]
        assert s.query(Alerta).filter(Alerta.tipo == "IMEDIATO").count() == 5


def test_turma_config_overrides_default_limits(app):
    with session_scope(app) as s:
        admin = _get(s, "admin@example.com")
        turma = s.query(Turma).one()
        disciplina = s.query(Disciplina).one()
        assert limites_para(s, turma.id, disciplina.id) == (3, 5)
        set_config_frequencia(s, turma_id=turma.id, disciplina_id=None, limite_alerta=2, limite_critico=4, user=admin)
        s.flush()
        assert limites_para(s, turma.id, disciplina.id) == (2, 4)
        set_config_frequencia(
            s, turma_id=turma.id, disciplina_id=disciplina.id, limite_alerta=1, limite_critico=2, user=admin
        )
        s.flush()
        assert limites_para(s, turma.id, disciplina.id) == (1, 2)
        # Saving again updates the same row
        set_config_frequencia(s, turma_id=turma.id, disciplina_id=None, limite_alerta=2, limite_critico=6, user=admin)
        s.flush()
        assert s.query(ConfigFrequencia).count() == 2
        assert limites_para(s, turma.id, None) == (2, 6)
        assert limites_para(s, None, disciplina.id) == (3, 5)

    _registrar_faltas(app, 1)
    with session_scope(app) as s:
        limiar = s.query(Alerta).filter(Alerta.tipo == "LIMIAR").one()
        assert limiar.severidade == "ALERTA"


def test_notifications_for_aluno_and_admins(app):
    _registrar_faltas(app, 1)
    with session_scope(app) as s:
        ana = _get(s, "ana@example.com")
        admin = _get(s, "admin@example.com")
        instrutor = _get(s, "instrutor@example.com")
        assert unread_count(s, ana) == 1
        assert unread_count(s, admin) == 1
        assert unread_count(s, instrutor) == 0
        n_admin = s.query(Notificacao).filter(Notificacao.user_id == admin.id).one()
        assert n_admin.corpo.startswith("Ana: Falta registrada")
        assert n_admin.url == "/alertas"
        n_ana = s.query(Notificacao).filter(Notificacao.user_id == ana.id).one()
        assert n_ana.titulo == "Falta registrada"
        assert n_ana.url == "/minha-situacao"

        with pytest.raises(PermissionDenied):
            marcar_lida(s, n_admin, ana)
        marcar_lida(s, n_ana, ana)
        s.flush()
        assert unread_count(s, ana) == 0
        assert n_ana.lida_em is not None


def test_list_alertas_scoping_and_resolution(app):
    _registrar_faltas(app, 3)
    with session_scope(app) as s:
        ana = _get(s, "ana@example.com")
        admin = _get(s, "admin@example.com")
        instrutor = _get(s, "instrutor@example.com")
        outro = _get(s, "outro@example.com")

        assert len(list_alertas(s, admin)) == 4
        assert len(list_alertas(s, instrutor)) == 4
        assert list_alertas(s, outro) == []
        assert len(list_alertas(s, ana)) == 4
        assert len(list_alertas(s, admin, {"tipo": "LIMIAR"})) == 1
        assert len(list_alertas(s, admin, {"severidade": "INFO"})) == 3

        resumo = resumo_alertas(list_alertas(s, admin))
        assert resumo == {
            "total": 4,
            "imediatos": 3,
            "limiares": 1,
            "info": 3,
            "alerta": 1,
            "critico": 0,
            "nao_resolvidos": 4,
        }

        limiar = list_alertas(s, admin, {"tipo": "LIMIAR"})[0]
        with pytest.raises(PermissionDenied):
            resolver_alerta(s, limiar, outro)
        resolver_alerta(s, limiar, instrutor, "Conversado com o aluno")
        assert limiar.resolvido is True
        assert limiar.resolvido_por_user_id == instrutor.id
        with pytest.raises(InvalidTransition):
            resolver_alerta(s, limiar, admin)
        s.flush()
        assert len(list_alertas(s, admin, {"resolvido": "nao"})) == 3
        assert len(list_alertas(s, admin, {"resolvido": "sim"})) == 1


# ---------- Pages ----------
def test_alertas_pages(client, app):
    _registrar_faltas(app, 3)
    with session_scope(app) as s:
        limiar_id = s.query(Alerta).filter(Alerta.tipo == "LIMIAR").one().id

    _login(client, "ana@example.com")
    assert client.get("/alertas", follow_redirects=False).status_code == 302

    _login(client, "instrutor@example.com")
    r = client.get("/alertas")
    assert r.status_code == 200
    assert "Alertas de frequência".encode() in r.data
    assert b"3 faltas em Tiro" in r.data

    r = _post(client, f"/alertas/{limiar_id}/resolver", {"observacao": "Ok"}, follow_redirects=True)
    assert "Alerta resolvido.".encode() in r.data
    r = _post(client, f"/alertas/{limiar_id}/resolver", follow_redirects=True)
    assert "Alerta já resolvido.".encode() in r.data

    _login(client, "outro@example.com")
    with session_scope(app) as s:
        imediato_id = s.query(Alerta).filter(Alerta.tipo == "IMEDIATO").first().id
    assert _post(client, f"/alertas/{imediato_id}/resolver").status_code == 403


def test_alertas_config_page(client, app):
    with session_scope(app) as s:
        turma_id = s.query(Turma).one().id

    _login(client, "instrutor@example.com")
    assert client.get("/alertas/config", follow_redirects=False).status_code == 302

    _login(client, "admin@example.com")
    r = client.get("/alertas/config")
    assert r.status_code == 200
    r = _post(
        client,
        "/alertas/config",
        {"turma_id": str(turma_id), "limite_alerta": "4", "limite_critico": "2"},
        follow_redirects=True,
    )
    assert "Limite crítico não pode ser menor que o limite de alerta.".encode() in r.data
    r = _post(
        client,
        "/alertas/config",
        {"turma_id": "abc", "limite_alerta": "2", "limite_critico": "4"},
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert "Turma inválida.".encode() in r.data
    r = _post(
        client,
        "/alertas/config",
        {"turma_id": str(turma_id), "limite_alerta": "2", "limite_critico": "4"},
        follow_redirects=True,
    )
    assert "Limites de frequência salvos.".encode() in r.data
    with session_scope(app) as s:
        cfg = s.query(ConfigFrequencia).one()
        assert (cfg.limite_alerta, cfg.limite_critico, cfg.disciplina_id) == (2, 4, None)


def test_notificacoes_pages(client, app):
    _registrar_faltas(app, 2)
    _login(client, "ana@example.com")
    r = client.get("/dashboard")
    assert b'<span class="badge">2</span>' in r.data

    r = client.get("/notificacoes")
    assert r.status_code == 200
    assert b"Falta registrada" in r.data

    with session_scope(app) as s:
        ana = _get(s, "ana@example.com")
        admin = _get(s, "admin@example.com")
        n_id = s.query(Notificacao).filter(Notificacao.user_id == ana.id).first().id
        admin_n_id = s.query(Notificacao).filter(Notificacao.user_id == admin.id).first().id

    r = _post(client, f"/notificacoes/{n_id}/lida", follow_redirects=False)
    assert r.headers["Location"].endswith("/minha-situacao")
    assert _post(client, f"/notificacoes/{admin_n_id}/lida").status_code == 403

    r = _post(client, "/notificacoes/lidas", follow_redirects=True)
    assert "1 notificação(ões) marcada(s) como lida(s).".encode() in r.data
    with session_scope(app) as s:
        assert unread_count(s, _get(s, "ana@example.com")) == 0
