from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from app.academia.constants import ROLE_ADMIN, ROLE_ALUNO, ROLE_INSTRUTOR
from app.academia.rbac import primary_role

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User


def _count_role(s: "Session", role_key: str) -> int:
    from app.academia.models import Role, User

    return (
        s.query(User)
        .filter(User.roles.any(Role.key == role_key))
        .filter(User.is_active.is_(True))
        .count()
    )


def admin_stats(s: "Session", today: date) -> dict:
    from app.academia.modules.frequencia.models import Alerta, Aula

    return {
        "total_alunos": _count_role(s, ROLE_ALUNO),
        "total_instrutores": _count_role(s, ROLE_INSTRUTOR),
        "aulas_hoje": s.query(Aula).filter(Aula.data_aula == today).count(),
        "alertas_abertos": s.query(Alerta).filter(Alerta.resolvido.is_(False)).count(),
    }


def instrutor_stats(s: "Session", user: "User", today: date) -> dict:
    from app.academia.modules.frequencia.models import Alerta, Aula

    mine = s.query(Aula).filter(Aula.instrutor_id == user.id)
    return {
        "aulas_hoje": mine.filter(Aula.data_aula == today).count(),
        "chamadas_rascunho": mine.filter(Aula.status == "RASCUNHO").count(),
        "alertas_abertos": (
            s.query(Alerta).filter(Alerta.instrutor_id == user.id, Alerta.resolvido.is_(False)).count()
        ),
    }


def aluno_stats(s: "Session", user: "User", today: date, *, limit: int = 5) -> dict:
    from app.academia.modules.frequencia.models import Aula
    from app.academia.modules.frequencia.service import STATUS_CONTABILIZADOS, resumo_aluno

    resumo = resumo_aluno(s, user.id)
    pelotao_id = user.profile.pelotao_id if user.profile else None
    proximas = []
    if pelotao_id is not None:
        proximas = (
            s.query(Aula)
            .filter(Aula.pelotao_id == pelotao_id, Aula.data_aula >= today)
            .filter(Aula.status.in_(STATUS_CONTABILIZADOS))
            .order_by(Aula.data_aula.asc(), Aula.hora_inicio.asc())
            .limit(limit)
            .all()
        )
    return {
        "percentual_presenca": resumo.percentual,
        "total_aulas": resumo.total,
        "faltas": resumo.ausentes,
        "proximas_aulas": proximas,
    }


def dashboard_context(s: "Session", user: "User", *, today: date | None = None) -> dict:
    from app.academia.modules.avisos.service import list_avisos

    today = today or date.today()
    role = primary_role(user)
    if role == ROLE_ADMIN:
        stats = admin_stats(s, today)
    elif role == ROLE_INSTRUTOR:
        stats = instrutor_stats(s, user, today)
    else:
        stats = aluno_stats(s, user, today)
    return {
        "role": role,
        "stats": stats,
        "avisos": list_avisos(s, user, limit=5),
        "today": today,
    }
