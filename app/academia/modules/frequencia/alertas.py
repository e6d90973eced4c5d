"""
Attendance alerts and in-app notifications.

Rules applied when a chamada is published:
- every AUSENTE presença raises an IMEDIATO alert (severity INFO), once per
  (aula, aluno);
- when the aluno's absence count in the disciplina reaches the configured
  `limite_alerta` a LIMIAR/ALERTA alert is raised, at `limite_critico` a
  LIMIAR/CRITICO one. An unresolved LIMIAR alert of the same
  (aluno, disciplina, severidade) is never duplicated.

Thresholds come from ConfigFrequencia (turma + disciplina, then turma only),
falling back to FREQ_LIMITE_ALERTA / FREQ_LIMITE_CRITICO.
Each new alert notifies the aluno and every active admin.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from flask import current_app, has_app_context

from app.academia.audit import record_event
from app.academia.constants import ROLE_ADMIN
from app.academia.errors import InvalidTransition, PermissionDenied
from app.academia.rbac import is_admin, is_aluno

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User
    from app.academia.modules.frequencia.models import Alerta, Aula, ConfigFrequencia, Notificacao

logger = logging.getLogger(__name__)

TIPOS_ALERTA = ("IMEDIATO", "LIMIAR")
SEVERIDADES = ("INFO", "ALERTA", "CRITICO")
SEVERIDADE_LABELS = {"INFO": "Informativo", "ALERTA": "Alerta", "CRITICO": "Crítico"}

DEFAULT_LIMITE_ALERTA = 3
DEFAULT_LIMITE_CRITICO = 5


# ---------- Thresholds ----------
def default_limites() -> tuple[int, int]:
    if has_app_context():
        return (
            int(current_app.config.get("FREQ_LIMITE_ALERTA") or DEFAULT_LIMITE_ALERTA),
            int(current_app.config.get("FREQ_LIMITE_CRITICO") or DEFAULT_LIMITE_CRITICO),
        )
    return DEFAULT_LIMITE_ALERTA, DEFAULT_LIMITE_CRITICO


def limites_para(s: "Session", turma_id: int | None, disciplina_id: int | None) -> tuple[int, int]:
    from app.academia.modules.frequencia.models import ConfigFrequencia

    if turma_id is not None:
        candidates = []
        if disciplina_id is not None:
            candidates.append(
                s.query(ConfigFrequencia)
                .filter(ConfigFrequencia.turma_id == turma_id, ConfigFrequencia.disciplina_id == disciplina_id)
                .one_or_none()
            )
        candidates.append(
            s.query(ConfigFrequencia)
            .filter(ConfigFrequencia.turma_id == turma_id, ConfigFrequencia.disciplina_id.is_(None))
            .one_or_none()
        )
        for cfg in candidates:
            if cfg is not None:
                return cfg.limite_alerta, cfg.limite_critico
    return default_limites()


def validate_config_payload(payload: dict) -> list[str]:
    errors = []
    values = {}
    for key, label in (("limite_alerta", "Limite de alerta"), ("limite_critico", "Limite crítico")):
        try:
            values[key] = int(str(payload.get(key) or "").strip())
        except ValueError:
            errors.append(f"{label} deve ser um número inteiro.")
            continue
        if values[key] < 1:
            errors.append(f"{label} deve ser maior que zero.")
    if not errors and values["limite_critico"] < values["limite_alerta"]:
        errors.append("Limite crítico não pode ser menor que o limite de alerta.")
    turma_raw = str(payload.get("turma_id") or "").strip()
    if not turma_raw:
        errors.append("Turma é obrigatória.")
    elif not turma_raw.isdigit():
        errors.append("Turma inválida.")
    disciplina_raw = str(payload.get("disciplina_id") or "").strip()
    if disciplina_raw and not disciplina_raw.isdigit():
        errors.append("Disciplina inválida.")
    return errors


def set_config_frequencia(
    s: "Session",
    *,
    turma_id: int,
    disciplina_id: int | None,
    limite_alerta: int,
    limite_critico: int,
    user: "User",
) -> "ConfigFrequencia":
    from app.academia.modules.frequencia.models import ConfigFrequencia

    q = s.query(ConfigFrequencia).filter(ConfigFrequencia.turma_id == turma_id)
    if disciplina_id is None:
        q = q.filter(ConfigFrequencia.disciplina_id.is_(None))
    else:
        q = q.filter(ConfigFrequencia.disciplina_id == disciplina_id)
    cfg = q.one_or_none()
    if cfg is None:
        cfg = ConfigFrequencia(turma_id=turma_id, disciplina_id=disciplina_id, created_by_user_id=user.id)
        s.add(cfg)
    cfg.limite_alerta = limite_alerta
    cfg.limite_critico = limite_critico
    s.flush()
    record_event(
        s,
        actor=user,
        action="config_frequencia.set",
        entity_type="ConfigFrequencia",
        entity_id=str(cfg.id),
        metadata={
            "turma_id": turma_id,
            "disciplina_id": disciplina_id,
            "limite_alerta": limite_alerta,
            "limite_critico": limite_critico,
        },
    )
    return cfg


# ---------- Rules ----------
def contar_faltas(s: "Session", aluno_id: int, disciplina_id: int) -> int:
    """AUSENTE presenças of the aluno in published/finalized aulas of the disciplina."""
    from app.academia.modules.frequencia.models import Aula, Presenca
    from app.academia.modules.frequencia.service import STATUS_CONTABILIZADOS

    return (
        s.query(Presenca)
        .join(Aula, Aula.id == Presenca.aula_id)
        .filter(Presenca.aluno_id == aluno_id)
        .filter(Presenca.status == "AUSENTE")
        .filter(Aula.disciplina_id == disciplina_id)
        .filter(Aula.status.in_(STATUS_CONTABILIZADOS))
        .count()
    )


def severidade_para(faltas: int, limite_alerta: int, limite_critico: int) -> str | None:
    if faltas >= limite_critico:
        return "CRITICO"
    if faltas >= limite_alerta:
        return "ALERTA"
    return None


def evaluate_alertas(s: "Session", aula: "Aula", actor: "User") -> list["Alerta"]:
    from app.academia.modules.frequencia.models import Alerta

    created: list[Alerta] = []
    disciplina_nome = aula.disciplina.nome if aula.disciplina else "disciplina"
    data_fmt = aula.data_aula.strftime("%d/%m/%Y")

    for p in aula.presencas:
        if p.status != "AUSENTE":
            continue
        profile = p.aluno.profile if p.aluno else None
        pelotao = (profile.pelotao if profile else None) or aula.pelotao
        turma_id = pelotao.turma_id if pelotao else None
        common = {
            "aluno_id": p.aluno_id,
            "pelotao_id": pelotao.id if pelotao else None,
            "turma_id": turma_id,
            "disciplina_id": aula.disciplina_id,
            "aula_id": aula.id,
            "instrutor_id": aula.instrutor_id,
        }

        already = (
            s.query(Alerta.id)
            .filter(Alerta.tipo == "IMEDIATO", Alerta.aula_id == aula.id, Alerta.aluno_id == p.aluno_id)
            .first()
        )
        if not already:
            alerta = Alerta(
                tipo="IMEDIATO",
                severidade="INFO",
                motivo=f"Falta registrada em {disciplina_nome} ({data_fmt}).",
                **common,
            )
            s.add(alerta)
            created.append(alerta)

        faltas = contar_faltas(s, p.aluno_id, aula.disciplina_id)
        limite_alerta, limite_critico = limites_para(s, turma_id, aula.disciplina_id)
        severidade = severidade_para(faltas, limite_alerta, limite_critico)
        if severidade is None:
            continue
        open_limiar = (
            s.query(Alerta.id)
            .filter(Alerta.tipo == "LIMIAR")
            .filter(Alerta.aluno_id == p.aluno_id, Alerta.disciplina_id == aula.disciplina_id)
            .filter(Alerta.severidade == severidade, Alerta.resolvido.is_(False))
            .first()
        )
        if open_limiar:
            continue
        limite = limite_critico if severidade == "CRITICO" else limite_alerta
        alerta = Alerta(
            tipo="LIMIAR",
            severidade=severidade,
            motivo=f"{faltas} faltas em {disciplina_nome} (limite {limite}).",
            contagem_faltas=faltas,
            **common,
        )
        s.add(alerta)
        created.append(alerta)

    s.flush()
    for alerta in created:
        notificar(s, alerta)
    if created:
        logger.info("Aula %s: %s alert(s) raised", aula.id, len(created))
        record_event(
            s,
            actor=actor,
            action="alerta.create",
            entity_type="Aula",
            entity_id=str(aula.id),
            metadata={"alertas": [a.id for a in created]},
        )
    return created


# ---------- Notifications ----------
def _admins(s: "Session") -> list["User"]:
    from app.academia.models import Role, User

    return (
        s.query(User)
        .join(User.roles)
        .filter(Role.key == ROLE_ADMIN)
        .filter(User.is_active.is_(True))
        .all()
    )


def notificar(s: "Session", alerta: "Alerta") -> list["Notificacao"]:
    from app.academia.models import User
    from app.academia.modules.frequencia.models import Notificacao

    aluno = alerta.aluno or s.get(User, alerta.aluno_id)
    nome = aluno.display_name if aluno else "Aluno"
    titulo = "Falta registrada" if alerta.tipo == "IMEDIATO" else f"Alerta de frequência ({SEVERIDADE_LABELS[alerta.severidade]})"

    out = [
        Notificacao(user_id=alerta.aluno_id, alerta_id=alerta.id, titulo=titulo, corpo=alerta.motivo, url="/minha-situacao")
    ]
    for admin in _admins(s):
        if admin.id == alerta.aluno_id:
            continue
        out.append(
            Notificacao(
                user_id=admin.id,
                alerta_id=alerta.id,
                titulo=titulo,
                corpo=f"{nome}: {alerta.motivo}",
                url="/alertas",
            )
        )
    s.add_all(out)
    return out


def list_notificacoes(s: "Session", user: "User", *, only_unread: bool = False, limit: int = 50) -> list["Notificacao"]:
    from app.academia.modules.frequencia.models import Notificacao

    q = s.query(Notificacao).filter(Notificacao.user_id == user.id)
    if only_unread:
        q = q.filter(Notificacao.lida.is_(False))
    return q.order_by(Notificacao.created_at.desc(), Notificacao.id.desc()).limit(limit).all()


def unread_count(s: "Session", user: "User") -> int:
    from app.academia.modules.frequencia.models import Notificacao

    return s.query(Notificacao).filter(Notificacao.user_id == user.id, Notificacao.lida.is_(False)).count()


def marcar_lida(s: "Session", notificacao: "Notificacao", user: "User") -> "Notificacao":
    if notificacao.user_id != user.id:
        raise PermissionDenied("Notificação de outro usuário.")
    if not notificacao.lida:
        notificacao.lida = True
        notificacao.lida_em = datetime.utcnow()
    return notificacao


def marcar_todas_lidas(s: "Session", user: "User") -> int:
    now = datetime.utcnow()
    pending = list_notificacoes(s, user, only_unread=True, limit=10_000)
    for n in pending:
        n.lida = True
        n.lida_em = now
    return len(pending)


# ---------- Listing / resolution ----------
def list_alertas(s: "Session", user: "User", filters: dict | None = None) -> list["Alerta"]:
    """Admins see every alert, instrutores alerts of their aulas, alunos their own."""
    from app.academia.modules.frequencia.models import Alerta

    filters = filters or {}
    q = s.query(Alerta)
    if is_admin(user):
        pass
    elif is_aluno(user):
        q = q.filter(Alerta.aluno_id == user.id)
    else:
        q = q.filter(Alerta.instrutor_id == user.id)

    for key, column in (
        ("turma_id", Alerta.turma_id),
        ("pelotao_id", Alerta.pelotao_id),
        ("disciplina_id", Alerta.disciplina_id),
    ):
        value = filters.get(key)
        if value:
            q = q.filter(column == int(value))
    if filters.get("severidade") in SEVERIDADES:
        q = q.filter(Alerta.severidade == filters["severidade"])
    if filters.get("tipo") in TIPOS_ALERTA:
        q = q.filter(Alerta.tipo == filters["tipo"])
    resolvido = filters.get("resolvido")
    if resolvido == "sim":
        q = q.filter(Alerta.resolvido.is_(True))
    elif resolvido == "nao":
        q = q.filter(Alerta.resolvido.is_(False))
    return q.order_by(Alerta.resolvido.asc(), Alerta.created_at.desc(), Alerta.id.desc()).all()


def resumo_alertas(alertas: Iterable["Alerta"]) -> dict[str, int]:
    resumo = {
        "total": 0,
        "imediatos": 0,
        "limiares": 0,
        "info": 0,
        "alerta": 0,
        "critico": 0,
        "nao_resolvidos": 0,
    }
    for a in alertas:
        resumo["total"] += 1
        resumo["imediatos" if a.tipo == "IMEDIATO" else "limiares"] += 1
        key = a.severidade.lower()
        if key in resumo:
            resumo[key] += 1
        if not a.resolvido:
            resumo["nao_resolvidos"] += 1
    return resumo


def resolver_alerta(s: "Session", alerta: "Alerta", user: "User", observacao: str | None = None) -> "Alerta":
    if alerta.resolvido:
        raise InvalidTransition("Alerta já resolvido.")
    if not is_admin(user) and alerta.instrutor_id != user.id:
        raise PermissionDenied("Você só pode resolver alertas das suas aulas.")
    alerta.resolvido = True
    alerta.resolvido_por_user_id = user.id
    alerta.resolvido_em = datetime.utcnow()
    alerta.observacao_resolucao = (observacao or "").strip() or None
    record_event(
        s,
        actor=user,
        action="alerta.resolve",
        entity_type="Alerta",
        entity_id=str(alerta.id),
        reason=alerta.observacao_resolucao,
        metadata={"aluno_id": alerta.aluno_id, "severidade": alerta.severidade, "tipo": alerta.tipo},
    )
    return alerta
