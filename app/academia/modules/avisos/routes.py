from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.academia.db import db_session
from app.academia.errors import AcademiaError, PermissionDenied
from app.academia.models import User
from app.academia.modules.avisos.models import Aviso
from app.academia.modules.avisos.service import (
    can_edit_aviso,
    create_aviso,
    delete_aviso,
    list_avisos,
    update_aviso,
    validate_aviso_payload,
)
from app.academia.modules.disciplinas.models import Disciplina
from app.academia.modules.turmas.models import Pelotao
from app.academia.rbac import require_permission

bp = Blueprint("avisos", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    return {
        "titulo": request.form.get("titulo"),
        "conteudo": request.form.get("conteudo"),
        "fixado": request.form.get("fixado") == "1",
        "pelotao_id": request.form.get("pelotao_id"),
        "disciplina_id": request.form.get("disciplina_id"),
    }


@bp.get("/avisos")
@require_permission("avisos.view")
def avisos_list():
    s = db_session()
    u = _current_user()
    return render_template(
        "avisos/list.html",
        avisos=list_avisos(s, u),
        pelotoes=s.query(Pelotao).order_by(Pelotao.nome.asc()).all(),
        disciplinas=s.query(Disciplina).order_by(Disciplina.nome.asc()).all(),
        can_edit=lambda a: can_edit_aviso(u, a),
    )


@bp.post("/avisos/new")
@require_permission("aviso.create")
def avisos_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_aviso_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("avisos.avisos_list"))
    try:
        create_aviso(s, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("avisos.avisos_list"))
    s.commit()
    flash("Aviso publicado com sucesso!", "success")
    return redirect(url_for("avisos.avisos_list"))


@bp.post("/avisos/<int:aviso_id>/edit")
@require_permission("aviso.edit")
def avisos_edit_post(aviso_id: int):
    s = db_session()
    aviso = s.get(Aviso, aviso_id)
    if not aviso:
        abort(404)
    payload = _payload()
    errors = validate_aviso_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("avisos.avisos_list"))
    try:
        update_aviso(s, aviso, payload, _current_user())
    except PermissionDenied:
        abort(403)
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("avisos.avisos_list"))
    s.commit()
    flash("Aviso atualizado com sucesso!", "success")
    return redirect(url_for("avisos.avisos_list"))


@bp.post("/avisos/<int:aviso_id>/delete")
@require_permission("aviso.delete")
def avisos_delete(aviso_id: int):
    s = db_session()
    aviso = s.get(Aviso, aviso_id)
    if not aviso:
        abort(404)
    delete_aviso(s, aviso, _current_user())
    s.commit()
    flash("Aviso excluído com sucesso!", "success")
    return redirect(url_for("avisos.avisos_list"))
