from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.academia.audit import record_event
from app.academia.constants import ROLE_ALUNO
from app.academia.errors import AcademiaError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User
    from app.academia.modules.turmas.models import Pelotao, Turma


def _parse_int(value) -> int | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def validate_turma_payload(payload: dict) -> list[str]:
    errors = []
    nome = (payload.get("nome") or "").strip()
    if not nome:
        errors.append("Nome da turma é obrigatório.")
    elif len(nome) > 128:
        errors.append("Nome da turma muito longo.")
    raw_ano = str(payload.get("ano") or "").strip()
    if raw_ano:
        ano = _parse_int(raw_ano)
        if ano is None or not 1900 <= ano <= 2100:
            errors.append("Ano inválido.")
    return errors


def create_turma(s: "Session", payload: dict, user: "User") -> "Turma":
    from app.academia.modules.turmas.models import Turma

    nome = (payload.get("nome") or "").strip()
    if s.query(Turma).filter(Turma.nome == nome).one_or_none():
        raise AcademiaError(f"Já existe uma turma chamada {nome}.")
    now = datetime.utcnow()
    turma = Turma(
        nome=nome,
        ano=_parse_int(payload.get("ano")),
        descricao=(payload.get("descricao") or "").strip() or None,
        ativa=bool(payload.get("ativa", True)),
        created_at=now,
        updated_at=now,
    )
    s.add(turma)
    s.flush()
    record_event(
        s,
        actor=user,
        action="turma.create",
        entity_type="Turma",
        entity_id=str(turma.id),
        metadata={"nome": turma.nome, "ano": turma.ano},
    )
    return turma


def update_turma(s: "Session", turma: "Turma", payload: dict, user: "User") -> "Turma":
    from app.academia.modules.turmas.models import Turma

    changes = {}
    nome = (payload.get("nome") or "").strip()
    if nome and nome != turma.nome:
        clash = s.query(Turma).filter(Turma.nome == nome, Turma.id != turma.id).one_or_none()
        if clash:
            raise AcademiaError(f"Já existe uma turma chamada {nome}.")
        changes["nome"] = {"old": turma.nome, "new": nome}
        turma.nome = nome

    ano = _parse_int(payload.get("ano"))
    if ano != turma.ano:
        changes["ano"] = {"old": turma.ano, "new": ano}
        turma.ano = ano

    descricao = (payload.get("descricao") or "").strip() or None
    if descricao != turma.descricao:
        changes["descricao"] = {"old": turma.descricao, "new": descricao}
        turma.descricao = descricao

    ativa = bool(payload.get("ativa"))
    if ativa != turma.ativa:
        changes["ativa"] = {"old": turma.ativa, "new": ativa}
        turma.ativa = ativa

    turma.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="turma.edit",
        entity_type="Turma",
        entity_id=str(turma.id),
        metadata={"changes": changes},
    )
    return turma


def delete_turma(s: "Session", turma: "Turma", user: "User") -> None:
    if turma.pelotoes:
        raise AcademiaError("Não é possível excluir uma turma que possui pelotões.")
    record_event(
        s,
        actor=user,
        action="turma.delete",
        entity_type="Turma",
        entity_id=str(turma.id),
        metadata={"nome": turma.nome},
    )
    s.delete(turma)


def validate_pelotao_payload(payload: dict) -> list[str]:
    errors = []
    nome = (payload.get("nome") or "").strip()
    if not nome:
        errors.append("Nome do pelotão é obrigatório.")
    elif len(nome) > 128:
        errors.append("Nome do pelotão muito longo.")
    if _parse_int(payload.get("turma_id")) is None:
        errors.append("Turma é obrigatória.")
    raw_coord = str(payload.get("coordenador_id") or "").strip()
    if raw_coord and _parse_int(raw_coord) is None:
        errors.append("Coordenador inválido.")
    return errors


def _check_pelotao_refs(s: "Session", turma_id: int, coordenador_id: int | None) -> None:
    from app.academia.models import User
    from app.academia.modules.turmas.models import Turma

    if s.get(Turma, turma_id) is None:
        raise AcademiaError("Turma não encontrada.")
    if coordenador_id is not None and s.get(User, coordenador_id) is None:
        raise AcademiaError("Coordenador não encontrado.")


def create_pelotao(s: "Session", payload: dict, user: "User") -> "Pelotao":
    from app.academia.modules.turmas.models import Pelotao

    nome = (payload.get("nome") or "").strip()
    turma_id = _parse_int(payload.get("turma_id"))
    coordenador_id = _parse_int(payload.get("coordenador_id"))
    if turma_id is None:
        raise AcademiaError("Turma é obrigatória.")
    _check_pelotao_refs(s, turma_id, coordenador_id)
    clash = s.query(Pelotao).filter(Pelotao.turma_id == turma_id, Pelotao.nome == nome).one_or_none()
    if clash:
        raise AcademiaError(f"A turma já possui um pelotão chamado {nome}.")

    now = datetime.utcnow()
    pelotao = Pelotao(nome=nome, turma_id=turma_id, coordenador_id=coordenador_id, created_at=now, updated_at=now)
    s.add(pelotao)
    s.flush()
    record_event(
        s,
        actor=user,
        action="pelotao.create",
        entity_type="Pelotao",
        entity_id=str(pelotao.id),
        metadata={"nome": nome, "turma_id": turma_id, "coordenador_id": coordenador_id},
    )
    return pelotao


def update_pelotao(s: "Session", pelotao: "Pelotao", payload: dict, user: "User") -> "Pelotao":
    from app.academia.modules.turmas.models import Pelotao

    nome = (payload.get("nome") or "").strip() or pelotao.nome
    turma_id = _parse_int(payload.get("turma_id")) or pelotao.turma_id
    coordenador_id = _parse_int(payload.get("coordenador_id"))
    _check_pelotao_refs(s, turma_id, coordenador_id)
    clash = (
        s.query(Pelotao)
        .filter(Pelotao.turma_id == turma_id, Pelotao.nome == nome, Pelotao.id != pelotao.id)
        .one_or_none()
    )
    if clash:
        raise AcademiaError(f"A turma já possui um pelotão chamado {nome}.")

    changes = {}
    for field, new in (("nome", nome), ("turma_id", turma_id), ("coordenador_id", coordenador_id)):
        old = getattr(pelotao, field)
        if old != new:
            changes[field] = {"old": old, "new": new}
            setattr(pelotao, field, new)
    pelotao.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="pelotao.edit",
        entity_type="Pelotao",
        entity_id=str(pelotao.id),
        metadata={"changes": changes},
    )
    return pelotao


def delete_pelotao(s: "Session", pelotao: "Pelotao", user: "User") -> None:
    """Members are kept and simply left without a pelotão."""
    for profile in list(pelotao.membros):
        profile.pelotao_id = None
    record_event(
        s,
        actor=user,
        action="pelotao.delete",
        entity_type="Pelotao",
        entity_id=str(pelotao.id),
        metadata={"nome": pelotao.nome, "membros": len(pelotao.membros)},
    )
    s.delete(pelotao)


def assign_pelotao(s: "Session", aluno: "User", pelotao: "Pelotao | None", user: "User") -> None:
    from app.academia.modules.perfil.service import ensure_profile

    profile = ensure_profile(s, aluno)
    before = profile.pelotao_id
    profile.pelotao_id = pelotao.id if pelotao else None
    record_event(
        s,
        actor=user,
        action="pelotao.assign",
        entity_type="Profile",
        entity_id=str(aluno.id),
        metadata={"before": before, "after": profile.pelotao_id},
    )


def alunos_do_pelotao(s: "Session", pelotao_id: int, *, only_active: bool = True) -> list["User"]:
    """Users holding the aluno role whose profile points at the pelotão."""
    from app.academia.models import Role, User
    from app.academia.modules.perfil.models import Profile

    q = (
        s.query(User)
        .join(Profile, Profile.user_id == User.id)
        .join(User.roles)
        .filter(Profile.pelotao_id == pelotao_id)
        .filter(Role.key == ROLE_ALUNO)
        .filter(User.is_active.is_(True))
    )
    if only_active:
        q = q.filter(Profile.status == "ativo")
    return q.order_by(User.nome.asc(), User.id.asc()).all()
