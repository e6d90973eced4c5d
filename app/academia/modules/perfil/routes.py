from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, session, url_for

from app.academia.db import db_session
from app.academia.models import User
from app.academia.modules.perfil.service import (
    ensure_profile,
    mark_profile_complete,
    perfil_basico_payload_from_form,
    save_profile_step,
    step_initial_data,
    step_payload_from_form,
    update_perfil_basico,
)
from app.academia.modules.perfil.validators import (
    CATEGORIAS_CNH,
    SEXOS,
    TIPOS_SANGUINEOS,
    validate_perfil_basico,
    validate_step,
)
from app.academia.modules.perfil.wizard import PROFILE_WIZARD_STEPS, SESSION_KEY, WizardState, step_config
from app.academia.rbac import login_required

bp = Blueprint("perfil", __name__)

# Settings tabs reuse the wizard step payloads.
TABS = {
    "pessoais": 1,
    "endereco": 2,
    "formacao": 3,
    "saude": 4,
}


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _wizard_state() -> WizardState:
    return WizardState.from_dict(session.get(SESSION_KEY), total_steps=len(PROFILE_WIZARD_STEPS))


def _store(state: WizardState) -> None:
    session[SESSION_KEY] = state.to_dict()


def _form_choices() -> dict:
    return {
        "sexos": SEXOS,
        "tipos_sanguineos": TIPOS_SANGUINEOS,
        "categorias_cnh": CATEGORIAS_CNH,
    }


# ---------- Wizard ----------
@bp.get("/perfil/wizard")
@login_required
def wizard():
    u = _current_user()
    if u.profile is not None and u.profile.perfil_completo:
        return redirect(url_for("dashboard.index"))
    state = _wizard_state()
    _store(state)
    cfg = step_config(state.current_step)
    return render_template(
        "perfil/wizard.html",
        state=state,
        steps=PROFILE_WIZARD_STEPS,
        step=cfg,
        data=step_initial_data(u.profile, state.current_step),
        **_form_choices(),
    )


@bp.post("/perfil/wizard/etapa/<int:step>")
@login_required
def wizard_step_post(step: int):
    s = db_session()
    u = _current_user()
    state = _wizard_state()
    if not state.can_visit(step):
        flash("Etapa fora de ordem.", "warning")
        return redirect(url_for("perfil.wizard"))
    state.go_to_step(step)

    payload = step_payload_from_form(step, request.form)
    errors = validate_step(step, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("perfil.wizard"))

    save_profile_step(s, u, step, payload, actor=u)
    state.can_go_next = True
    if state.is_last_step:
        mark_profile_complete(s, u)
        s.commit()
        session.pop(SESSION_KEY, None)
        flash("Perfil completado com sucesso!", "success")
        return redirect(url_for("dashboard.index"))

    s.commit()
    state.next_step()
    _store(state)
    return redirect(url_for("perfil.wizard"))


@bp.post("/perfil/wizard/ir/<int:step>")
@login_required
def wizard_goto(step: int):
    state = _wizard_state()
    if not state.go_to_step(step):
        flash("Conclua as etapas anteriores primeiro.", "warning")
    _store(state)
    return redirect(url_for("perfil.wizard"))


@bp.post("/perfil/wizard/voltar")
@login_required
def wizard_back():
    state = _wizard_state()
    state.previous_step()
    _store(state)
    return redirect(url_for("perfil.wizard"))


# ---------- Settings ----------
@bp.get("/configuracoes")
@login_required
def configuracoes():
    s = db_session()
    u = _current_user()
    tab = (request.args.get("tab") or "basico").strip()
    if tab != "basico" and tab not in TABS:
        tab = "basico"
    profile = ensure_profile(s, u)
    data = step_initial_data(profile, TABS[tab]) if tab in TABS else {}
    return render_template(
        "perfil/configuracoes.html",
        tab=tab,
        tabs=TABS,
        profile=profile,
        data=data,
        **_form_choices(),
    )


@bp.post("/configuracoes/basico")
@login_required
def configuracoes_basico_post():
    s = db_session()
    u = _current_user()
    payload = perfil_basico_payload_from_form(request.form)
    errors = validate_perfil_basico(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("perfil.configuracoes", tab="basico"))
    update_perfil_basico(s, u, payload, actor=u)
    s.commit()
    flash("Perfil atualizado com sucesso!", "success")
    return redirect(url_for("perfil.configuracoes", tab="basico"))


@bp.post("/configuracoes/<tab>")
@login_required
def configuracoes_tab_post(tab: str):
    if tab not in TABS:
        flash("Aba inválida.", "danger")
        return redirect(url_for("perfil.configuracoes"))
    s = db_session()
    u = _current_user()
    step = TABS[tab]
    payload = step_payload_from_form(step, request.form)
    errors = validate_step(step, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("perfil.configuracoes", tab=tab))
    save_profile_step(s, u, step, payload, actor=u, action="profile.update")
    s.commit()
    flash("Dados salvos com sucesso!", "success")
    return redirect(url_for("perfil.configuracoes", tab=tab))
