"""
Role-based access control.

Two declarative tables drive everything (see `constants`):
- ROLE_PERMISSIONS: role key -> permission keys
- ROUTE_PERMISSIONS: request path -> permission key

The role table is materialised into the roles/permissions tables by
`sync_role_permissions`; runtime checks walk the user's DB roles.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import abort, current_app, flash, g, redirect, request, url_for
from sqlalchemy.orm import Session

from app.academia.audit import record_event
from app.academia.constants import (
    NAV_ITEMS,
    PERMISSIONS,
    ROLE_ADMIN,
    ROLE_ALUNO,
    ROLE_INSTRUTOR,
    ROLE_LABELS,
    ROLE_PERMISSIONS,
    ROLE_PRECEDENCE,
    ROUTE_PERMISSIONS,
)
from app.academia.errors import InvalidTransition, PermissionDenied
from app.academia.models import Permission, Role, User

logger = logging.getLogger(__name__)

ACCESS_DENIED_MESSAGE = "Acesso não permitido"


# ---------- Table lookups ----------
def permissions_for_role(role_key: str | None) -> tuple[str, ...]:
    if not role_key:
        return ()
    return ROLE_PERMISSIONS.get(role_key, ())


def required_permission(path: str) -> str | None:
    return ROUTE_PERMISSIONS.get(path)


# ---------- User checks ----------
def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def user_has_any_permission(user: User | None, permission_keys: Iterable[str]) -> bool:
    return any(user_has_permission(user, k) for k in permission_keys)


def user_has_all_permissions(user: User | None, permission_keys: Iterable[str]) -> bool:
    return all(user_has_permission(user, k) for k in permission_keys)


def user_permission_keys(user: User | None) -> list[str]:
    if not user or not user.is_active:
        return []
    return sorted({p.key for r in user.roles for p in r.permissions})


def can_access_route(user: User | None, path: str) -> bool:
    """Unmapped paths are open to any signed-in user."""
    if not user or not user.is_active:
        return False
    permission = required_permission(path)
    if not permission:
        return True
    return user_has_permission(user, permission)


def primary_role(user: User | None) -> str | None:
    if not user:
        return None
    keys = {r.key for r in user.roles}
    for key in ROLE_PRECEDENCE:
        if key in keys:
            return key
    return None


def role_label(role_key: str | None) -> str:
    return ROLE_LABELS.get(role_key or "", "Sem papel")


def is_admin(user: User | None) -> bool:
    return primary_role(user) == ROLE_ADMIN


def is_instrutor(user: User | None) -> bool:
    return primary_role(user) == ROLE_INSTRUTOR


def is_aluno(user: User | None) -> bool:
    return primary_role(user) == ROLE_ALUNO


def is_bootstrap_admin(user: User | None) -> bool:
    email = (current_app.config.get("BOOTSTRAP_ADMIN_EMAIL") or "").strip().lower()
    return bool(email) and is_admin(user) and user is not None and user.email.lower() == email


def nav_items_for(user: User | None) -> list[tuple[str, str]]:
    return [(label, path) for label, path in NAV_ITEMS if can_access_route(user, path)]


# ---------- Route guard ----------
def _redirect_to_login():
    nxt = request.full_path or request.path
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Any signed-in, active user (pages without a mapped permission)."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _redirect_to_login()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> login, then come back.
            if not user or not user.is_active:
                return _redirect_to_login()
            if user_has_permission(user, permission_key):
                return fn(*args, **kwargs)

            g.missing_permission = permission_key
            # Page navigation falls back to the dashboard (unless that is the page refused).
            if (
                request.method == "GET"
                and request.endpoint != "dashboard.index"
                and user_has_permission(user, "dashboard.view")
            ):
                logger.info(
                    "Route denied: user_id=%s path=%s missing_permission=%s",
                    user.id,
                    request.path,
                    permission_key,
                )
                flash(ACCESS_DENIED_MESSAGE, "danger")
                return redirect(url_for("dashboard.index"))
            abort(403)

        return wrapped

    return decorator


# ---------- Role administration ----------
def sync_role_permissions(s: Session) -> dict[str, Role]:
    """
    Make the roles/permissions tables match ROLE_PERMISSIONS exactly.
    Idempotent; returns roles by key.
    """
    perms: dict[str, Permission] = {p.key: p for p in s.query(Permission).all()}
    for key, name in PERMISSIONS.items():
        p = perms.get(key)
        if p is None:
            p = Permission(key=key, name=name)
            s.add(p)
            perms[key] = p
        elif p.name != name:
            p.name = name

    roles: dict[str, Role] = {r.key: r for r in s.query(Role).all()}
    for key in ROLE_PRECEDENCE:
        role = roles.get(key)
        if role is None:
            role = Role(key=key, name=ROLE_LABELS[key])
            s.add(role)
            roles[key] = role
        wanted = [perms[k] for k in ROLE_PERMISSIONS[key]]
        wanted_keys = {p.key for p in wanted}
        for p in list(role.permissions):
            if p.key not in wanted_keys:
                role.permissions.remove(p)
        for p in wanted:
            if p not in role.permissions:
                role.permissions.append(p)
    s.flush()
    return roles


def assign_role(s: Session, user: User, role_key: str, *, actor: User | None) -> User:
    """Replace the user's role (a user holds exactly one)."""
    if role_key not in ROLE_PRECEDENCE:
        raise ValueError(f"Papel inválido: {role_key}")
    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if role is None:
        raise ValueError(f"Papel não cadastrado: {role_key}. Execute scripts/init_db.py.")

    before = primary_role(user)
    user.roles.clear()
    user.roles.append(role)
    record_event(
        s,
        actor=actor,
        action="user.role_change",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": before, "after": role_key},
    )
    return user


def can_toggle_admin(user: User | None) -> bool:
    if not user or not user.is_active:
        return False
    if primary_role(user) not in (ROLE_ADMIN, ROLE_INSTRUTOR):
        return False
    allowed = set(current_app.config.get("ADMIN_TOGGLE_EMAILS") or ())
    bootstrap = (current_app.config.get("BOOTSTRAP_ADMIN_EMAIL") or "").strip().lower()
    if bootstrap:
        allowed.add(bootstrap)
    return user.email.lower() in allowed


@dataclass(frozen=True)
class ToggleResult:
    previous_role: str
    new_role: str
    message: str


def toggle_admin_role(s: Session, user: User) -> ToggleResult:
    """Swap the user's own role between admin and instrutor."""
    if not can_toggle_admin(user):
        raise PermissionDenied("Você não tem permissão para alternar o papel de administrador.")
    previous = primary_role(user)
    if previous == ROLE_ADMIN:
        new = ROLE_INSTRUTOR
    elif previous == ROLE_INSTRUTOR:
        new = ROLE_ADMIN
    else:
        raise InvalidTransition(f"Papel atual não permite alternância: {previous}")
    assign_role(s, user, new, actor=user)
    return ToggleResult(
        previous_role=previous,
        new_role=new,
        message=f"Papel alterado de {role_label(previous)} para {role_label(new)}.",
    )
