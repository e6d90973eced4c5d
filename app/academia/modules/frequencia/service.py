"""
Aulas and chamada (roll call).

Lifecycle of an aula:
    RASCUNHO -> PUBLICADA -> FINALIZADA

- A chamada can be saved any number of times before FINALIZADA.
- Publishing may be repeated (RASCUNHO/PUBLICADA -> PUBLICADA); each publish
  recomputes the totals and runs the alert rules.
- FINALIZADA locks the presenças.
"""
from __future__ import annotations

import calendar as _calendar
import hashlib
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Iterable

from werkzeug.utils import secure_filename

from app.academia.audit import record_event
from app.academia.errors import AcademiaError, InvalidTransition, NotFound, PermissionDenied
from app.academia.rbac import is_admin, is_aluno, user_has_permission
from app.academia.utils import parse_date, parse_time

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User
    from app.academia.modules.frequencia.models import Alerta, Aula, Presenca
    from app.academia.storage import Storage


TIPOS_AULA = ("AULA", "PROVA", "AVALIACAO", "SIMULADO", "ATIVIDADE_PRATICA")
TIPO_AULA_LABELS = {
    "AULA": "Aula",
    "PROVA": "Prova",
    "AVALIACAO": "Avaliação",
    "SIMULADO": "Simulado",
    "ATIVIDADE_PRATICA": "Atividade prática",
}

STATUS_AULA = ("RASCUNHO", "PUBLICADA", "FINALIZADA")
STATUS_PRESENCA = ("PRESENTE", "AUSENTE", "JUSTIFICADO", "ATRASO")
STATUS_PRESENCA_LABELS = {
    "PRESENTE": "Presente",
    "AUSENTE": "Ausente",
    "JUSTIFICADO": "Justificado",
    "ATRASO": "Atraso",
}

# Only published (or finalized) chamadas count towards attendance.
STATUS_CONTABILIZADOS = ("PUBLICADA", "FINALIZADA")

STATUS_TRANSITIONS = {
    "RASCUNHO": ["PUBLICADA"],
    "PUBLICADA": ["PUBLICADA", "FINALIZADA"],
    "FINALIZADA": [],
}

JUSTIFICATIVA_EXTENSIONS = ("pdf", "png", "jpg", "jpeg")


def _parse_int(value) -> int | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


# ---------- Aulas ----------
def validate_aula_payload(payload: dict) -> list[str]:
    errors = []
    if _parse_int(payload.get("disciplina_id")) is None:
        errors.append("Disciplina é obrigatória.")
    raw_pelotao = str(payload.get("pelotao_id") or "").strip()
    if raw_pelotao and _parse_int(raw_pelotao) is None:
        errors.append("Pelotão inválido.")

    titulo = (payload.get("titulo") or "").strip()
    if not titulo:
        errors.append("Título é obrigatório.")
    elif len(titulo) > 255:
        errors.append("Título muito longo.")

    if parse_date(payload.get("data_aula")) is None:
        errors.append("Data da aula deve estar no formato AAAA-MM-DD.")

    inicio = parse_time(payload.get("hora_inicio"))
    if inicio is None:
        errors.append("Hora de início deve estar no formato HH:MM.")
    raw_fim = (payload.get("hora_fim") or "").strip()
    fim = parse_time(raw_fim)
    if raw_fim and fim is None:
        errors.append("Hora de término deve estar no formato HH:MM.")
    elif inicio and fim and fim < inicio:
        errors.append("Hora de término não pode ser anterior ao início.")

    tipo = (payload.get("tipo") or "AULA").strip()
    if tipo not in TIPOS_AULA:
        errors.append(f"Tipo inválido. Use um de: {', '.join(TIPOS_AULA)}")
    return errors


def can_manage_aula(user: "User | None", aula: "Aula") -> bool:
    """Admins manage every aula; instrutores only their own."""
    if not user_has_permission(user, "presenca.manage"):
        return False
    return is_admin(user) or aula.instrutor_id == user.id


def _require_manage(user: "User", aula: "Aula") -> None:
    if not can_manage_aula(user, aula):
        raise PermissionDenied("Você não pode gerenciar a chamada desta aula.")


def _transition(aula: "Aula", new_status: str) -> None:
    allowed = STATUS_TRANSITIONS.get(aula.status, [])
    if new_status not in allowed:
        raise InvalidTransition(f"Transição inválida: {aula.status} -> {new_status}")
    aula.status = new_status


def criar_presencas_pelotao(s: "Session", aula: "Aula", user: "User") -> int:
    """One PRESENTE row per active aluno of the aula's pelotão (existing rows are kept)."""
    from app.academia.modules.frequencia.models import Presenca
    from app.academia.modules.turmas.service import alunos_do_pelotao

    if aula.pelotao_id is None:
        return 0
    existing = {p.aluno_id for p in aula.presencas}
    created = 0
    for aluno in alunos_do_pelotao(s, aula.pelotao_id):
        if aluno.id in existing:
            continue
        aula.presencas.append(Presenca(aluno_id=aluno.id, status="PRESENTE", created_by_user_id=user.id))
        created += 1
    aula.total_alunos = len(aula.presencas)
    return created


def create_aula(s: "Session", payload: dict, user: "User") -> "Aula":
    from app.academia.models import User as UserModel
    from app.academia.modules.disciplinas.models import Disciplina
    from app.academia.modules.frequencia.models import Aula
    from app.academia.modules.turmas.models import Pelotao

    disciplina_id = _parse_int(payload.get("disciplina_id"))
    if disciplina_id is None or s.get(Disciplina, disciplina_id) is None:
        raise NotFound("Disciplina não encontrada.")
    pelotao_id = _parse_int(payload.get("pelotao_id"))
    if pelotao_id is not None and s.get(Pelotao, pelotao_id) is None:
        raise NotFound("Pelotão não encontrado.")

    instrutor_id = user.id
    requested = _parse_int(payload.get("instrutor_id"))
    if requested and requested != user.id:
        if not is_admin(user):
            raise PermissionDenied("Somente administradores podem criar aulas para outro instrutor.")
        if s.get(UserModel, requested) is None:
            raise NotFound("Instrutor não encontrado.")
        instrutor_id = requested

    aula = Aula(
        disciplina_id=disciplina_id,
        instrutor_id=instrutor_id,
        pelotao_id=pelotao_id,
        data_aula=parse_date(payload.get("data_aula")),
        hora_inicio=parse_time(payload.get("hora_inicio")),
        hora_fim=parse_time(payload.get("hora_fim")),
        tipo=(payload.get("tipo") or "AULA").strip(),
        titulo=(payload.get("titulo") or "").strip(),
        descricao=(payload.get("descricao") or "").strip() or None,
        local=(payload.get("local") or "").strip() or None,
        status="RASCUNHO",
        created_by_user_id=user.id,
        created_at=datetime.utcnow(),
    )
    s.add(aula)
    s.flush()
    criar_presencas_pelotao(s, aula, user)
    s.flush()

    record_event(
        s,
        actor=user,
        action="aula.create",
        entity_type="Aula",
        entity_id=str(aula.id),
        metadata={
            "titulo": aula.titulo,
            "disciplina_id": disciplina_id,
            "pelotao_id": pelotao_id,
            "data_aula": aula.data_aula,
            "total_alunos": aula.total_alunos,
        },
    )
    return aula


def list_aulas(
    s: "Session",
    user: "User",
    *,
    data_inicio: date | None = None,
    data_fim: date | None = None,
    disciplina_id: int | None = None,
    status: str | None = None,
) -> list["Aula"]:
    """Admins see every aula, instrutores their own, alunos the published aulas of their pelotão."""
    from app.academia.modules.frequencia.models import Aula

    q = s.query(Aula)
    if is_admin(user):
        pass
    elif is_aluno(user):
        pelotao_id = user.profile.pelotao_id if user.profile else None
        if pelotao_id is None:
            return []
        q = q.filter(Aula.pelotao_id == pelotao_id).filter(Aula.status.in_(STATUS_CONTABILIZADOS))
    else:
        q = q.filter(Aula.instrutor_id == user.id)

    if data_inicio:
        q = q.filter(Aula.data_aula >= data_inicio)
    if data_fim:
        q = q.filter(Aula.data_aula <= data_fim)
    if disciplina_id:
        q = q.filter(Aula.disciplina_id == disciplina_id)
    if status:
        q = q.filter(Aula.status == status)
    return q.order_by(Aula.data_aula.desc(), Aula.hora_inicio.desc(), Aula.id.desc()).all()


def delete_aula(s: "Session", aula: "Aula", user: "User") -> None:
    if aula.status != "RASCUNHO":
        raise InvalidTransition("Somente aulas em rascunho podem ser excluídas.")
    if not is_admin(user) and aula.instrutor_id != user.id:
        raise PermissionDenied("Você só pode excluir as suas aulas.")
    record_event(
        s,
        actor=user,
        action="aula.delete",
        entity_type="Aula",
        entity_id=str(aula.id),
        metadata={"titulo": aula.titulo, "data_aula": aula.data_aula},
    )
    s.delete(aula)


# ---------- Chamada ----------
def contadores(presencas: Iterable["Presenca"]) -> dict[str, int]:
    counts = {"total": 0, "presentes": 0, "ausentes": 0, "justificados": 0, "atrasos": 0}
    keys = {
        "PRESENTE": "presentes",
        "AUSENTE": "ausentes",
        "JUSTIFICADO": "justificados",
        "ATRASO": "atrasos",
    }
    for p in presencas:
        counts["total"] += 1
        key = keys.get(p.status)
        if key:
            counts[key] += 1
    return counts


def _recompute_totals(aula: "Aula") -> dict[str, int]:
    c = contadores(aula.presencas)
    aula.total_alunos = c["total"]
    aula.total_presentes = c["presentes"]
    aula.total_ausentes = c["ausentes"]
    aula.total_justificados = c["justificados"]
    aula.total_atrasos = c["atrasos"]
    return c


def _ensure_editable(aula: "Aula") -> None:
    if aula.status == "FINALIZADA":
        raise InvalidTransition("Aula finalizada: a chamada não pode mais ser alterada.")


def save_chamada(
    s: "Session",
    aula: "Aula",
    marks: dict[int, str],
    user: "User",
    *,
    observacoes: dict[int, str] | None = None,
) -> list["Presenca"]:
    """Upsert one presença per (aula, aluno) from {aluno_id: status}."""
    from app.academia.models import User as UserModel
    from app.academia.modules.frequencia.models import Presenca

    _require_manage(user, aula)
    _ensure_editable(aula)
    observacoes = observacoes or {}

    invalid = sorted({st for st in marks.values() if st not in STATUS_PRESENCA})
    if invalid:
        raise AcademiaError(f"Status de presença inválido: {', '.join(invalid)}")

    by_aluno = {p.aluno_id: p for p in aula.presencas}
    now = datetime.utcnow()
    changed = 0
    for aluno_id, status in marks.items():
        p = by_aluno.get(aluno_id)
        obs = (observacoes.get(aluno_id) or "").strip() or None
        if p is None:
            if s.get(UserModel, aluno_id) is None:
                raise NotFound(f"Aluno não encontrado: {aluno_id}")
            p = Presenca(aluno_id=aluno_id, status=status, observacao=obs, created_by_user_id=user.id)
            aula.presencas.append(p)
            by_aluno[aluno_id] = p
            changed += 1
            continue
        if p.status != status or (aluno_id in observacoes and p.observacao != obs):
            p.status = status
            if aluno_id in observacoes:
                p.observacao = obs
            p.updated_at = now
            p.updated_by_user_id = user.id
            changed += 1

    aula.updated_at = now
    aula.updated_by_user_id = user.id
    if aula.status != "RASCUNHO":
        _recompute_totals(aula)
    else:
        aula.total_alunos = len(aula.presencas)
    s.flush()

    record_event(
        s,
        actor=user,
        action="chamada.save",
        entity_type="Aula",
        entity_id=str(aula.id),
        metadata={"changed": changed, "status_aula": aula.status},
    )
    return list(aula.presencas)


def mark_all(s: "Session", aula: "Aula", status: str, user: "User") -> int:
    if status not in STATUS_PRESENCA:
        raise AcademiaError(f"Status de presença inválido: {status}")
    save_chamada(s, aula, {p.aluno_id: status for p in aula.presencas}, user)
    return len(aula.presencas)


@dataclass
class PublishResult:
    totais: dict[str, int]
    alertas: list["Alerta"] = field(default_factory=list)


def publish_chamada(s: "Session", aula: "Aula", user: "User") -> PublishResult:
    from app.academia.modules.frequencia.alertas import evaluate_alertas

    _require_manage(user, aula)
    _transition(aula, "PUBLICADA")
    totais = _recompute_totals(aula)
    now = datetime.utcnow()
    aula.publicada_at = now
    aula.publicada_by_user_id = user.id
    aula.updated_at = now
    aula.updated_by_user_id = user.id
    s.flush()

    alertas = evaluate_alertas(s, aula, user)
    record_event(
        s,
        actor=user,
        action="chamada.publish",
        entity_type="Aula",
        entity_id=str(aula.id),
        metadata={"totais": totais, "alertas": len(alertas)},
    )
    return PublishResult(totais=totais, alertas=alertas)


def finalize_aula(s: "Session", aula: "Aula", user: "User") -> "Aula":
    _require_manage(user, aula)
    _transition(aula, "FINALIZADA")
    aula.updated_at = datetime.utcnow()
    aula.updated_by_user_id = user.id
    record_event(s, actor=user, action="aula.finalize", entity_type="Aula", entity_id=str(aula.id))
    return aula


# ---------- Justificativas ----------
def build_justificativa_storage_key(aula_id: int, aluno_id: int, filename: str) -> str:
    safe_filename = secure_filename(filename) or "justificativa.bin"
    return f"justificativas/{aula_id}/{aluno_id}/{safe_filename}"


def validate_justificativa_file(filename: str, data: bytes, *, max_bytes: int = 10 * 1024 * 1024) -> list[str]:
    errors = []
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in JUSTIFICATIVA_EXTENSIONS:
        errors.append(f"Arquivo deve ser {', '.join(JUSTIFICATIVA_EXTENSIONS).upper()}.")
    if not data:
        errors.append("Arquivo vazio.")
    elif len(data) > max_bytes:
        errors.append("Arquivo muito grande (máximo 10MB).")
    return errors


def upload_justificativa(
    s: "Session",
    storage: "Storage",
    presenca: "Presenca",
    *,
    filename: str,
    data: bytes,
    content_type: str | None,
    user: "User",
    observacao: str | None = None,
) -> "Presenca":
    aula = presenca.aula
    _require_manage(user, aula)
    _ensure_editable(aula)

    key = build_justificativa_storage_key(aula.id, presenca.aluno_id, filename)
    previous_key = presenca.justificativa_storage_key
    storage.put_bytes(key, data, content_type=content_type)
    if previous_key and previous_key != key:
        storage.delete(previous_key)
    presenca.justificativa_storage_key = key
    presenca.justificativa_filename = filename
    presenca.status = "JUSTIFICADO"
    if observacao:
        presenca.observacao = observacao.strip()
    presenca.updated_at = datetime.utcnow()
    presenca.updated_by_user_id = user.id
    if aula.status != "RASCUNHO":
        _recompute_totals(aula)

    record_event(
        s,
        actor=user,
        action="presenca.justificativa_upload",
        entity_type="Presenca",
        entity_id=str(presenca.id),
        metadata={
            "aula_id": aula.id,
            "aluno_id": presenca.aluno_id,
            "storage_key": key,
            "sha256": hashlib.sha256(data).hexdigest(),
            "size_bytes": len(data),
        },
    )
    return presenca


# ---------- Situação do aluno ----------
def percentual_presenca(presentes: int, justificados: int, atrasos: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half up: 74.5% shows as 75%
    return (200 * (presentes + justificados + atrasos) + total) // (2 * total)


@dataclass
class ResumoDisciplina:
    disciplina_id: int
    disciplina_nome: str
    cor: str
    total: int = 0
    presentes: int = 0
    ausentes: int = 0
    justificados: int = 0
    atrasos: int = 0

    @property
    def percentual(self) -> int:
        return percentual_presenca(self.presentes, self.justificados, self.atrasos, self.total)


@dataclass
class ResumoAluno:
    disciplinas: list[ResumoDisciplina]
    historico: list["Presenca"]

    @property
    def total(self) -> int:
        return sum(d.total for d in self.disciplinas)

    @property
    def presentes(self) -> int:
        return sum(d.presentes for d in self.disciplinas)

    @property
    def ausentes(self) -> int:
        return sum(d.ausentes for d in self.disciplinas)

    @property
    def justificados(self) -> int:
        return sum(d.justificados for d in self.disciplinas)

    @property
    def atrasos(self) -> int:
        return sum(d.atrasos for d in self.disciplinas)

    @property
    def percentual(self) -> int:
        return percentual_presenca(self.presentes, self.justificados, self.atrasos, self.total)


def resumo_aluno(s: "Session", aluno_id: int) -> ResumoAluno:
    from app.academia.modules.frequencia.models import Aula, Presenca

    presencas = (
        s.query(Presenca)
        .join(Aula, Aula.id == Presenca.aula_id)
        .filter(Presenca.aluno_id == aluno_id)
        .filter(Aula.status.in_(STATUS_CONTABILIZADOS))
        .order_by(Aula.data_aula.desc(), Aula.hora_inicio.desc())
        .all()
    )
    por_disciplina: "OrderedDict[int, ResumoDisciplina]" = OrderedDict()
    for p in sorted(presencas, key=lambda x: x.aula.disciplina.nome):
        d = p.aula.disciplina
        r = por_disciplina.get(d.id)
        if r is None:
            r = por_disciplina[d.id] = ResumoDisciplina(disciplina_id=d.id, disciplina_nome=d.nome, cor=d.cor)
        r.total += 1
        if p.status == "PRESENTE":
            r.presentes += 1
        elif p.status == "AUSENTE":
            r.ausentes += 1
        elif p.status == "JUSTIFICADO":
            r.justificados += 1
        elif p.status == "ATRASO":
            r.atrasos += 1
    return ResumoAluno(disciplinas=list(por_disciplina.values()), historico=presencas)


# ---------- Calendário ----------
def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f"Mês inválido: {month}")
    last = _calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def calendario(s: "Session", user: "User", year: int, month: int) -> "OrderedDict[date, list[Aula]]":
    """Aulas of the month grouped by day (days without aulas are omitted)."""
    inicio, fim = month_bounds(year, month)
    dias: "OrderedDict[date, list[Aula]]" = OrderedDict()
    for aula in sorted(
        list_aulas(s, user, data_inicio=inicio, data_fim=fim),
        key=lambda a: (a.data_aula, a.hora_inicio),
    ):
        dias.setdefault(aula.data_aula, []).append(aula)
    return dias
