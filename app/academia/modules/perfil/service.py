from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.academia.audit import record_event
from app.academia.errors import AcademiaError
from app.academia.modules.perfil.validators import validate_step
from app.academia.utils import apply_mask, parse_date, strip_or_none

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import MultiDict

    from app.academia.models import User
    from app.academia.modules.perfil.models import Profile


_TRUTHY = ("1", "on", "true", "sim")


def _flag(form: "MultiDict", key: str) -> bool:
    return (form.get(key) or "").strip().lower() in _TRUTHY


def _rows(form: "MultiDict", prefix: str, fields: tuple[str, ...]) -> list[dict[str, str]]:
    """Zip parallel `<prefix>_<field>` lists into row dicts, dropping blank rows."""
    columns = {f: form.getlist(f"{prefix}_{f}") for f in fields}
    size = max((len(v) for v in columns.values()), default=0)
    rows = []
    for i in range(size):
        row = {f: (columns[f][i] if i < len(columns[f]) else "").strip() for f in fields}
        if any(row.values()):
            rows.append(row)
    return rows


def ensure_profile(s: "Session", user: "User") -> "Profile":
    from app.academia.modules.perfil.models import Profile

    if user.profile is None:
        user.profile = Profile(perfil_completo=False)
        s.flush()
    return user.profile


def step_payload_from_form(step: int, form: "MultiDict") -> dict[str, Any]:
    """Build the nested payload of a wizard step (or settings tab) from form fields."""
    if step == 1:
        return {
            "cpf": apply_mask("cpf", form.get("cpf")),
            "data_nascimento": (form.get("data_nascimento") or "").strip(),
            "sexo": (form.get("sexo") or "").strip(),
            "tipo_sanguineo": (form.get("tipo_sanguineo") or "").strip(),
            "contato_emergencia": {
                "nome": (form.get("contato_nome") or "").strip(),
                "parentesco": (form.get("contato_parentesco") or "").strip(),
                "telefone": apply_mask("telefone", form.get("contato_telefone")),
            },
        }
    if step == 2:
        return {
            "endereco": {
                "cep": apply_mask("cep", form.get("cep")),
                "logradouro": (form.get("logradouro") or "").strip(),
                "numero": (form.get("numero") or "").strip(),
                "complemento": (form.get("complemento") or "").strip(),
                "bairro": (form.get("bairro") or "").strip(),
                "cidade": (form.get("cidade") or "").strip(),
                "uf": (form.get("uf") or "").strip().upper(),
            }
        }
    if step == 3:
        return {
            "cursos_operacionais": [c.strip() for c in form.getlist("cursos_operacionais") if c.strip()],
            "cursos_operacionais_outros": (form.get("cursos_operacionais_outros") or "").strip(),
            "formacao_academica": _rows(form, "formacao", ("nivel", "curso", "instituicao", "ano")),
            "experiencia_profissional": _rows(
                form,
                "experiencia",
                ("cargo", "instituicao_empresa", "periodo_inicio", "periodo_fim", "descricao"),
            ),
        }
    if step == 4:
        doenca = _flag(form, "doenca_cronica")
        return {
            "saude": {
                "doenca_cronica": doenca,
                "doenca_cronica_qual": (form.get("doenca_cronica_qual") or "").strip() if doenca else "",
                "alergias": (form.get("alergias") or "").strip(),
                "medicamentos_uso": (form.get("medicamentos_uso") or "").strip(),
                "restricao_fisica": (form.get("restricao_fisica") or "").strip(),
                "observacoes_medicas": (form.get("observacoes_medicas") or "").strip(),
            }
        }
    raise ValueError(f"Etapa inválida: {step}")


def step_initial_data(profile: "Profile | None", step: int) -> dict[str, Any]:
    """Current profile values in the payload shape of `step` (for form prefill)."""
    if profile is None:
        return {}
    if step == 1:
        return {
            "cpf": profile.cpf or "",
            "data_nascimento": profile.data_nascimento.isoformat() if profile.data_nascimento else "",
            "sexo": profile.sexo or "",
            "tipo_sanguineo": profile.tipo_sanguineo or "",
            "contato_emergencia": dict(profile.contato_emergencia or {}),
        }
    if step == 2:
        return {"endereco": dict(profile.endereco or {})}
    if step == 3:
        return {
            "cursos_operacionais": list(profile.cursos_operacionais or []),
            "cursos_operacionais_outros": profile.cursos_operacionais_outros or "",
            "formacao_academica": list(profile.formacao_academica or []),
            "experiencia_profissional": list(profile.experiencia_profissional or []),
        }
    if step == 4:
        return {"saude": dict(profile.saude or {})}
    raise ValueError(f"Etapa inválida: {step}")


def save_profile_step(
    s: "Session",
    user: "User",
    step: int,
    payload: dict[str, Any],
    *,
    actor: "User",
    action: str = "profile.wizard_step",
) -> "Profile":
    """
    Validate and store one step's data. Raises AcademiaError carrying the
    joined validation messages; callers normally validate first and flash.
    """
    errors = validate_step(step, payload)
    if errors:
        raise AcademiaError("; ".join(errors))

    profile = ensure_profile(s, user)
    if step == 1:
        profile.cpf = payload["cpf"]
        profile.data_nascimento = parse_date(payload["data_nascimento"])
        profile.sexo = strip_or_none(payload.get("sexo"))
        profile.tipo_sanguineo = payload["tipo_sanguineo"]
        profile.contato_emergencia = dict(payload["contato_emergencia"])
    elif step == 2:
        endereco = dict(payload["endereco"])
        endereco["complemento"] = endereco.get("complemento") or None
        profile.endereco = endereco
    elif step == 3:
        profile.cursos_operacionais = list(payload.get("cursos_operacionais") or [])
        profile.cursos_operacionais_outros = strip_or_none(payload.get("cursos_operacionais_outros"))
        profile.formacao_academica = list(payload.get("formacao_academica") or [])
        profile.experiencia_profissional = list(payload.get("experiencia_profissional") or [])
    elif step == 4:
        saude = dict(payload["saude"])
        # Keep the consent stamp from a previous completion.
        previous = profile.saude or {}
        if previous.get("consentimento_data") and not saude.get("consentimento_data"):
            saude["consentimento_data"] = previous["consentimento_data"]
        profile.saude = saude
    profile.updated_at = datetime.utcnow()

    # Health data is not copied into the audit trail.
    record_event(
        s,
        actor=actor,
        action=action,
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"step": step},
    )
    return profile


def mark_profile_complete(s: "Session", user: "User", *, now: datetime | None = None) -> "Profile":
    """Finish onboarding: stamp health-data consent and flag the profile complete."""
    profile = ensure_profile(s, user)
    now = now or datetime.utcnow()
    saude = dict(profile.saude or {})
    saude["consentimento_data"] = now.isoformat()
    profile.saude = saude
    profile.perfil_completo = True
    profile.perfil_completo_em = now
    profile.updated_at = now
    record_event(s, actor=user, action="profile.complete", entity_type="Profile", entity_id=str(user.id))
    return profile


def perfil_basico_payload_from_form(form: "MultiDict") -> dict[str, Any]:
    return {
        "nome": (form.get("nome") or "").strip(),
        "telefone": apply_mask("telefone", form.get("telefone")),
        "matricula": (form.get("matricula") or "").strip(),
        "posto_graduacao": (form.get("posto_graduacao") or "").strip(),
        "nome_guerra": (form.get("nome_guerra") or "").strip(),
        "lotacao": (form.get("lotacao") or "").strip(),
        "possui_cnh": _flag(form, "possui_cnh"),
        "categoria_cnh": (form.get("categoria_cnh") or "").strip().upper(),
    }


def update_perfil_basico(s: "Session", user: "User", payload: dict[str, Any], *, actor: "User") -> "Profile":
    profile = ensure_profile(s, user)
    changes = {}
    nome = (payload.get("nome") or "").strip()
    if nome and nome != user.nome:
        changes["nome"] = {"old": user.nome, "new": nome}
        user.nome = nome

    for field in ("telefone", "matricula", "posto_graduacao", "nome_guerra", "lotacao"):
        new = strip_or_none(payload.get(field))
        old = getattr(profile, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(profile, field, new)

    possui = bool(payload.get("possui_cnh"))
    categoria = strip_or_none(payload.get("categoria_cnh")) if possui else None
    if possui != profile.possui_cnh or categoria != profile.categoria_cnh:
        changes["cnh"] = {"old": profile.categoria_cnh, "new": categoria}
    profile.possui_cnh = possui
    profile.categoria_cnh = categoria
    profile.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=actor,
        action="profile.update",
        entity_type="Profile",
        entity_id=str(user.id),
        metadata={"changes": changes},
    )
    return profile
