from __future__ import annotations

from flask import Blueprint, g, redirect, render_template, url_for

from app.academia.db import db_session
from app.academia.modules.dashboard.service import dashboard_context
from app.academia.rbac import require_permission

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
@require_permission("dashboard.view")
def index():
    u = g.current_user
    # Onboarding comes first.
    if u.profile is None or not u.profile.perfil_completo:
        return redirect(url_for("perfil.wizard"))
    s = db_session()
    return render_template("dashboard/index.html", **dashboard_context(s, u))
