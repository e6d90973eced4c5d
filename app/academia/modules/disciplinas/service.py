from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from app.academia.audit import record_event
from app.academia.errors import AcademiaError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User
    from app.academia.modules.disciplinas.models import Disciplina

COR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
DEFAULT_COR = "#3b82f6"


def validate_disciplina_payload(payload: dict) -> list[str]:
    errors = []
    nome = (payload.get("nome") or "").strip()
    if not nome:
        errors.append("Nome da disciplina é obrigatório.")
    elif len(nome) > 128:
        errors.append("Nome da disciplina muito longo.")
    codigo = (payload.get("codigo") or "").strip()
    if len(codigo) > 32:
        errors.append("Código muito longo.")
    raw_carga = str(payload.get("carga_horaria") or "").strip()
    try:
        if int(raw_carga) <= 0:
            errors.append("Carga horária deve ser maior que zero.")
    except ValueError:
        errors.append("Carga horária deve ser um número inteiro.")
    cor = (payload.get("cor") or "").strip()
    if cor and not COR_RE.match(cor):
        errors.append("Cor deve estar no formato #RRGGBB.")
    return errors


def _check_unique(s: "Session", nome: str, codigo: str | None, exclude_id: int | None = None) -> None:
    from app.academia.modules.disciplinas.models import Disciplina

    q = s.query(Disciplina).filter(Disciplina.nome == nome)
    if exclude_id is not None:
        q = q.filter(Disciplina.id != exclude_id)
    if q.first():
        raise AcademiaError(f"Já existe uma disciplina chamada {nome}.")
    if codigo:
        q = s.query(Disciplina).filter(Disciplina.codigo == codigo)
        if exclude_id is not None:
            q = q.filter(Disciplina.id != exclude_id)
        if q.first():
            raise AcademiaError(f"Código {codigo} já está em uso.")


def create_disciplina(s: "Session", payload: dict, user: "User") -> "Disciplina":
    from app.academia.modules.disciplinas.models import Disciplina

    nome = (payload.get("nome") or "").strip()
    codigo = (payload.get("codigo") or "").strip().upper() or None
    _check_unique(s, nome, codigo)
    now = datetime.utcnow()
    disciplina = Disciplina(
        nome=nome,
        codigo=codigo,
        descricao=(payload.get("descricao") or "").strip() or None,
        carga_horaria=int(str(payload.get("carga_horaria")).strip()),
        cor=(payload.get("cor") or "").strip().lower() or DEFAULT_COR,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(disciplina)
    s.flush()
    record_event(
        s,
        actor=user,
        action="disciplina.create",
        entity_type="Disciplina",
        entity_id=str(disciplina.id),
        metadata={"nome": nome, "codigo": codigo},
    )
    return disciplina


def update_disciplina(s: "Session", disciplina: "Disciplina", payload: dict, user: "User") -> "Disciplina":
    nome = (payload.get("nome") or "").strip() or disciplina.nome
    codigo = (payload.get("codigo") or "").strip().upper() or None
    _check_unique(s, nome, codigo, exclude_id=disciplina.id)

    new_values = {
        "nome": nome,
        "codigo": codigo,
        "descricao": (payload.get("descricao") or "").strip() or None,
        "carga_horaria": int(str(payload.get("carga_horaria")).strip()),
        "cor": (payload.get("cor") or "").strip().lower() or disciplina.cor,
    }
    changes = {}
    for field, new in new_values.items():
        old = getattr(disciplina, field)
        if old != new:
            changes[field] = {"old": old, "new": new}
            setattr(disciplina, field, new)
    disciplina.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="disciplina.edit",
        entity_type="Disciplina",
        entity_id=str(disciplina.id),
        metadata={"changes": changes},
    )
    return disciplina


def delete_disciplina(s: "Session", disciplina: "Disciplina", user: "User") -> None:
    from app.academia.modules.frequencia.models import Aula

    if s.query(Aula.id).filter(Aula.disciplina_id == disciplina.id).first():
        raise AcademiaError("Não é possível excluir uma disciplina com aulas registradas.")
    record_event(
        s,
        actor=user,
        action="disciplina.delete",
        entity_type="Disciplina",
        entity_id=str(disciplina.id),
        metadata={"nome": disciplina.nome},
    )
    s.delete(disciplina)
