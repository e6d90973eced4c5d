from __future__ import annotations

import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.academia.audit import record_event
from app.academia.constants import ROLE_ALUNO
from app.academia.db import db_session
from app.academia.models import User
from app.academia.modules.perfil.models import Profile
from app.academia.rbac import assign_role
from app.academia.security import is_safe_next

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def validate_signup_payload(payload: dict) -> list[str]:
    errors = []
    nome = (payload.get("nome") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    confirm = payload.get("confirm_password") or ""

    if len(nome) < 3:
        errors.append("Nome deve ter pelo menos 3 caracteres.")
    elif len(nome) > 100:
        errors.append("Nome muito longo.")
    if not email or not is_valid_email(email):
        errors.append("Email inválido.")
    elif len(email) > 255:
        errors.append("Email muito longo.")
    if len(password) < 6:
        errors.append("Senha deve ter pelo menos 6 caracteres.")
    elif password != confirm:
        errors.append("As senhas não coincidem.")
    return errors


def create_account(s, *, nome: str, email: str, password: str, role_key: str = ROLE_ALUNO, actor: User | None = None) -> User:
    """Create a user with an empty profile and a single role."""
    user = User(
        email=email.strip().lower(),
        nome=nome.strip(),
        password_hash=generate_password_hash(password),
        is_active=True,
    )
    user.profile = Profile(perfil_completo=False)
    s.add(user)
    s.flush()
    assign_role(s, user, role_key, actor=actor or user)
    record_event(
        s,
        actor=actor or user,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": role_key},
    )
    return user


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("dashboard.index"))
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt, allow_signup=current_app.config.get("ALLOW_SIGNUP"))


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Muitas tentativas de login. Aguarde 5 minutos.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            flash("Erro ao fazer login. Verifique suas credenciais.", "danger")
            return redirect(url_for("auth.login_get", next=nxt) if nxt else url_for("auth.login_get"))

        session["user_id"] = user.id
        _login_attempts[ip].clear()
        user.last_login_at = datetime.utcnow()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        flash("Login realizado com sucesso!", "success")
        if is_safe_next(nxt):
            return redirect(nxt)
        return redirect(url_for("dashboard.index"))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.get("/signup")
def signup_get():
    if not current_app.config.get("ALLOW_SIGNUP"):
        abort(404)
    return render_template("auth/signup.html")


@bp.post("/signup")
def signup_post():
    if not current_app.config.get("ALLOW_SIGNUP"):
        abort(404)
    payload = {
        "nome": request.form.get("nome"),
        "email": request.form.get("email"),
        "password": request.form.get("password"),
        "confirm_password": request.form.get("confirm_password"),
    }
    errors = validate_signup_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("auth.signup_get"))

    s = db_session()
    email = (payload["email"] or "").strip().lower()
    if s.query(User).filter(User.email == email).one_or_none():
        flash("Este email já está cadastrado.", "danger")
        return redirect(url_for("auth.signup_get"))

    create_account(s, nome=payload["nome"] or "", email=email, password=payload["password"] or "")
    s.commit()
    flash("Conta criada com sucesso! Faça login.", "success")
    return redirect(url_for("auth.login_get"))


@bp.get("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    session.pop("wizard", None)
    return redirect(url_for("auth.login_get"))
