from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.academia.db import db_session
from app.academia.errors import AcademiaError
from app.academia.models import User
from app.academia.modules.disciplinas.models import Disciplina
from app.academia.modules.disciplinas.service import (
    create_disciplina,
    delete_disciplina,
    update_disciplina,
    validate_disciplina_payload,
)
from app.academia.rbac import require_permission

bp = Blueprint("disciplinas", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    return {
        "nome": request.form.get("nome"),
        "codigo": request.form.get("codigo"),
        "descricao": request.form.get("descricao"),
        "carga_horaria": request.form.get("carga_horaria"),
        "cor": request.form.get("cor"),
    }


@bp.get("/disciplinas")
@require_permission("disciplinas.view")
def disciplinas_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    q = s.query(Disciplina)
    if search:
        like = f"%{search}%"
        q = q.filter((Disciplina.nome.ilike(like)) | (Disciplina.codigo.ilike(like)))
    disciplinas = q.order_by(Disciplina.nome.asc()).all()
    return render_template("disciplinas/list.html", disciplinas=disciplinas, search=search)


@bp.post("/disciplinas/new")
@require_permission("disciplinas.manage")
def disciplinas_new_post():
    s = db_session()
    payload = _payload()
    errors = validate_disciplina_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("disciplinas.disciplinas_list"))
    try:
        create_disciplina(s, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("disciplinas.disciplinas_list"))
    s.commit()
    flash("Disciplina criada com sucesso!", "success")
    return redirect(url_for("disciplinas.disciplinas_list"))


@bp.post("/disciplinas/<int:disciplina_id>/edit")
@require_permission("disciplinas.manage")
def disciplinas_edit_post(disciplina_id: int):
    s = db_session()
    disciplina = s.get(Disciplina, disciplina_id)
    if not disciplina:
        abort(404)
    payload = _payload()
    errors = validate_disciplina_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("disciplinas.disciplinas_list"))
    try:
        update_disciplina(s, disciplina, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("disciplinas.disciplinas_list"))
    s.commit()
    flash("Disciplina atualizada com sucesso!", "success")
    return redirect(url_for("disciplinas.disciplinas_list"))


@bp.post("/disciplinas/<int:disciplina_id>/delete")
@require_permission("disciplinas.manage")
def disciplinas_delete(disciplina_id: int):
    s = db_session()
    disciplina = s.get(Disciplina, disciplina_id)
    if not disciplina:
        abort(404)
    try:
        delete_disciplina(s, disciplina, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("disciplinas.disciplinas_list"))
    s.commit()
    flash("Disciplina excluída com sucesso!", "success")
    return redirect(url_for("disciplinas.disciplinas_list"))
