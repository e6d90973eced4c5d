from datetime import datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for
from sqlalchemy import or_
from werkzeug.security import generate_password_hash

from app.academia.audit import record_event
from app.academia.auth import create_account, validate_signup_payload
from app.academia.constants import ROLE_LABELS, ROLE_PRECEDENCE
from app.academia.db import db_session
from app.academia.errors import AcademiaError, PermissionDenied
from app.academia.models import AuditEvent, Role, User
from app.academia.modules.perfil.models import Profile
from app.academia.modules.perfil.service import step_initial_data
from app.academia.rbac import (
    assign_role,
    login_required,
    primary_role,
    require_permission,
    toggle_admin_role,
    user_permission_keys,
)
from app.academia.utils import parse_date

bp = Blueprint("admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Usuários ----------
@bp.get("/usuarios")
@require_permission("admin_usuarios.view")
def usuarios_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    role = (request.args.get("role") or "").strip()

    q = s.query(User).outerjoin(Profile, Profile.user_id == User.id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.nome.ilike(like), User.email.ilike(like), Profile.matricula.ilike(like)))
    if role in ROLE_PRECEDENCE:
        q = q.filter(User.roles.any(Role.key == role))
    users = q.order_by(User.nome.asc(), User.email.asc()).all()

    return render_template(
        "admin/usuarios/list.html",
        users=users,
        search=search,
        role=role,
        roles=[(k, ROLE_LABELS[k]) for k in ROLE_PRECEDENCE],
        primary_role=primary_role,
    )


@bp.post("/usuarios/new")
@require_permission("usuarios.manage")
def usuarios_new_post():
    s = db_session()
    payload = {
        "nome": request.form.get("nome"),
        "email": request.form.get("email"),
        "password": request.form.get("password"),
        "confirm_password": request.form.get("confirm_password"),
    }
    role = (request.form.get("role") or "").strip()
    errors = validate_signup_payload(payload)
    if role not in ROLE_PRECEDENCE:
        errors.append("Papel inválido.")
    email = (payload["email"] or "").strip().lower()
    if not errors and s.query(User).filter(User.email == email).one_or_none():
        errors.append("Este email já está cadastrado.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.usuarios_list"))

    create_account(
        s,
        nome=payload["nome"] or "",
        email=email,
        password=payload["password"] or "",
        role_key=role,
        actor=_current_user(),
    )
    s.commit()
    flash(f"Conta criada para {email}.", "success")
    return redirect(url_for("admin.usuarios_list"))


@bp.post("/usuarios/<int:user_id>/papel")
@require_permission("roles.change")
def usuarios_change_role(user_id: int):
    s = db_session()
    u = _current_user()
    target = s.get(User, user_id)
    if not target:
        abort(404)
    if target.id == u.id:
        flash("Você não pode alterar o seu próprio papel por aqui.", "danger")
        return redirect(url_for("admin.usuarios_list"))
    role = (request.form.get("role") or "").strip()
    try:
        assign_role(s, target, role, actor=u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("admin.usuarios_list"))
    s.commit()
    flash(f"Papel de {target.display_name} alterado para {ROLE_LABELS[role]}.", "success")
    return redirect(url_for("admin.usuarios_list"))


@bp.post("/usuarios/<int:user_id>/ativo")
@require_permission("usuarios.manage")
def usuarios_toggle_active(user_id: int):
    s = db_session()
    u = _current_user()
    target = s.get(User, user_id)
    if not target:
        abort(404)
    if target.id == u.id:
        flash("Você não pode desativar a sua própria conta.", "danger")
        return redirect(url_for("admin.usuarios_list"))
    target.is_active = not target.is_active
    if target.profile is not None:
        target.profile.status = "ativo" if target.is_active else "inativo"
    record_event(
        s,
        actor=u,
        action="user.activate" if target.is_active else "user.deactivate",
        entity_type="User",
        entity_id=str(target.id),
    )
    s.commit()
    flash(f"{target.display_name} {'ativado' if target.is_active else 'desativado'}.", "success")
    return redirect(url_for("admin.usuarios_list"))


@bp.post("/usuarios/<int:user_id>/senha")
@require_permission("usuarios.manage")
def usuarios_reset_password(user_id: int):
    s = db_session()
    target = s.get(User, user_id)
    if not target:
        abort(404)
    password = request.form.get("password") or ""
    if len(password) < 6:
        flash("Senha deve ter pelo menos 6 caracteres.", "danger")
        return redirect(url_for("admin.usuarios_list"))
    target.password_hash = generate_password_hash(password)
    record_event(
        s,
        actor=_current_user(),
        action="user.reset_password",
        entity_type="User",
        entity_id=str(target.id),
    )
    s.commit()
    flash(f"Senha de {target.display_name} redefinida.", "success")
    return redirect(url_for("admin.usuarios_list"))


@bp.get("/usuarios/<int:user_id>/perfil")
@require_permission("admin_usuarios.view")
def usuarios_profile(user_id: int):
    s = db_session()
    target = s.get(User, user_id)
    if not target:
        abort(404)
    profile = target.profile
    sections = {step: step_initial_data(profile, step) for step in (1, 2, 3, 4)} if profile else {}
    return render_template(
        "admin/usuarios/perfil.html",
        target=target,
        profile=profile,
        sections=sections,
        role_label=ROLE_LABELS.get(primary_role(target) or "", "Sem papel"),
    )


# ---------- Role toggle ----------
@bp.post("/toggle-role")
@login_required
def toggle_role():
    s = db_session()
    try:
        result = toggle_admin_role(s, _current_user())
    except PermissionDenied:
        abort(403)
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("dashboard.index"))
    s.commit()
    flash(result.message, "success")
    return redirect(url_for("dashboard.index"))


# ---------- Me ----------
@bp.get("/me")
@login_required
def me():
    user = _current_user()
    role_keys = sorted({r.key for r in (user.roles or [])})
    return render_template("admin/me.html", user=user, role_keys=role_keys, perm_keys=user_permission_keys(user))


# ---------- Auditoria ----------
@bp.get("/auditoria")
@require_permission("usuarios.manage")
def audit_list():
    """
    Last 200 audit events, filterable by:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = parse_date(request.args.get("date_from"))
    date_to = parse_date(request.args.get("date_to"))

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("Data inicial deve estar no formato AAAA-MM-DD.", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("Data final deve estar no formato AAAA-MM-DD.", "danger")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return render_template(
        "admin/audit/list.html",
        events=events,
        action=action,
        actor_email=actor_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
