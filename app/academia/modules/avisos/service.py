from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.academia.audit import record_event
from app.academia.errors import NotFound, PermissionDenied
from app.academia.rbac import is_admin, is_aluno

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User
    from app.academia.modules.avisos.models import Aviso


def _parse_int(value) -> int | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def validate_aviso_payload(payload: dict) -> list[str]:
    errors = []
    titulo = (payload.get("titulo") or "").strip()
    if not titulo:
        errors.append("Título é obrigatório.")
    elif len(titulo) > 255:
        errors.append("Título muito longo.")
    if not (payload.get("conteudo") or "").strip():
        errors.append("Conteúdo é obrigatório.")
    for key, label in (("pelotao_id", "Pelotão"), ("disciplina_id", "Disciplina")):
        raw = str(payload.get(key) or "").strip()
        if raw and _parse_int(raw) is None:
            errors.append(f"{label} inválido.")
    return errors


def _targets(s: "Session", payload: dict) -> tuple[int | None, int | None]:
    from app.academia.modules.disciplinas.models import Disciplina
    from app.academia.modules.turmas.models import Pelotao

    pelotao_id = _parse_int(payload.get("pelotao_id"))
    disciplina_id = _parse_int(payload.get("disciplina_id"))
    if pelotao_id is not None and s.get(Pelotao, pelotao_id) is None:
        raise NotFound("Pelotão não encontrado.")
    if disciplina_id is not None and s.get(Disciplina, disciplina_id) is None:
        raise NotFound("Disciplina não encontrada.")
    return pelotao_id, disciplina_id


def create_aviso(s: "Session", payload: dict, user: "User") -> "Aviso":
    from app.academia.modules.avisos.models import Aviso

    pelotao_id, disciplina_id = _targets(s, payload)
    now = datetime.utcnow()
    aviso = Aviso(
        autor_id=user.id,
        titulo=(payload.get("titulo") or "").strip(),
        conteudo=(payload.get("conteudo") or "").strip(),
        fixado=bool(payload.get("fixado")),
        pelotao_id=pelotao_id,
        disciplina_id=disciplina_id,
        created_at=now,
        updated_at=now,
    )
    s.add(aviso)
    s.flush()
    record_event(
        s,
        actor=user,
        action="aviso.create",
        entity_type="Aviso",
        entity_id=str(aviso.id),
        metadata={"titulo": aviso.titulo, "fixado": aviso.fixado, "pelotao_id": pelotao_id},
    )
    return aviso


def can_edit_aviso(user: "User", aviso: "Aviso") -> bool:
    return is_admin(user) or aviso.autor_id == user.id


def update_aviso(s: "Session", aviso: "Aviso", payload: dict, user: "User") -> "Aviso":
    if not can_edit_aviso(user, aviso):
        raise PermissionDenied("Você só pode editar os seus avisos.")
    pelotao_id, disciplina_id = _targets(s, payload)
    new_values = {
        "titulo": (payload.get("titulo") or "").strip(),
        "conteudo": (payload.get("conteudo") or "").strip(),
        "fixado": bool(payload.get("fixado")),
        "pelotao_id": pelotao_id,
        "disciplina_id": disciplina_id,
    }
    changes = {}
    for field, new in new_values.items():
        old = getattr(aviso, field)
        if old != new:
            changes[field] = {"old": old, "new": new}
            setattr(aviso, field, new)
    aviso.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="aviso.edit",
        entity_type="Aviso",
        entity_id=str(aviso.id),
        metadata={"changes": sorted(changes)},
    )
    return aviso


def delete_aviso(s: "Session", aviso: "Aviso", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="aviso.delete",
        entity_type="Aviso",
        entity_id=str(aviso.id),
        metadata={"titulo": aviso.titulo},
    )
    s.delete(aviso)


def list_avisos(s: "Session", user: "User", *, limit: int | None = None) -> list["Aviso"]:
    """Pinned first, then newest. Alunos only see general avisos and those of their pelotão."""
    from app.academia.modules.avisos.models import Aviso

    q = s.query(Aviso)
    if is_aluno(user):
        pelotao_id = user.profile.pelotao_id if user.profile else None
        if pelotao_id is None:
            q = q.filter(Aviso.pelotao_id.is_(None))
        else:
            q = q.filter(or_(Aviso.pelotao_id.is_(None), Aviso.pelotao_id == pelotao_id))
    q = q.order_by(Aviso.fixado.desc(), Aviso.created_at.desc(), Aviso.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()
