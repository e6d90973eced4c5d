from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.academia.constants import ROLE_ADMIN, ROLE_ALUNO, ROLE_INSTRUTOR
from app.academia.db import db_session
from app.academia.errors import AcademiaError
from app.academia.models import Role, User
from app.academia.modules.perfil.models import Profile
from app.academia.modules.turmas.models import Pelotao, Turma
from app.academia.modules.turmas.service import (
    assign_pelotao,
    create_pelotao,
    create_turma,
    delete_pelotao,
    delete_turma,
    update_pelotao,
    update_turma,
    validate_pelotao_payload,
    validate_turma_payload,
)
from app.academia.rbac import require_permission

bp = Blueprint("turmas", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _turma_payload() -> dict:
    return {
        "nome": request.form.get("nome"),
        "ano": request.form.get("ano"),
        "descricao": request.form.get("descricao"),
        "ativa": request.form.get("ativa") == "1",
    }


def _pelotao_payload() -> dict:
    return {
        "nome": request.form.get("nome"),
        "turma_id": request.form.get("turma_id"),
        "coordenador_id": request.form.get("coordenador_id"),
    }


def _coordenadores(s) -> list[User]:
    return (
        s.query(User)
        .join(User.roles)
        .filter(Role.key.in_((ROLE_ADMIN, ROLE_INSTRUTOR)))
        .filter(User.is_active.is_(True))
        .order_by(User.nome.asc())
        .all()
    )


# ---------- Turmas ----------
@bp.get("/turmas")
@require_permission("admin_turmas.view")
def turmas_list():
    s = db_session()
    turmas = s.query(Turma).order_by(Turma.ativa.desc(), Turma.ano.desc(), Turma.nome.asc()).all()
    return render_template("turmas/list.html", turmas=turmas)


@bp.post("/turmas/new")
@require_permission("turmas.manage")
def turmas_new_post():
    s = db_session()
    payload = _turma_payload()
    payload["ativa"] = True
    errors = validate_turma_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("turmas.turmas_list"))
    try:
        create_turma(s, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("turmas.turmas_list"))
    s.commit()
    flash("Turma criada com sucesso!", "success")
    return redirect(url_for("turmas.turmas_list"))


@bp.post("/turmas/<int:turma_id>/edit")
@require_permission("turmas.manage")
def turmas_edit_post(turma_id: int):
    s = db_session()
    turma = s.get(Turma, turma_id)
    if not turma:
        abort(404)
    payload = _turma_payload()
    errors = validate_turma_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("turmas.turmas_list"))
    try:
        update_turma(s, turma, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("turmas.turmas_list"))
    s.commit()
    flash("Turma atualizada com sucesso!", "success")
    return redirect(url_for("turmas.turmas_list"))


@bp.post("/turmas/<int:turma_id>/delete")
@require_permission("turmas.manage")
def turmas_delete(turma_id: int):
    s = db_session()
    turma = s.get(Turma, turma_id)
    if not turma:
        abort(404)
    try:
        delete_turma(s, turma, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("turmas.turmas_list"))
    s.commit()
    flash("Turma excluída com sucesso!", "success")
    return redirect(url_for("turmas.turmas_list"))


# ---------- Pelotões ----------
@bp.get("/pelotoes")
@require_permission("admin_pelotoes.view")
def pelotoes_list():
    s = db_session()
    turma_id = request.args.get("turma_id", type=int)
    q = s.query(Pelotao)
    if turma_id:
        q = q.filter(Pelotao.turma_id == turma_id)
    pelotoes = q.order_by(Pelotao.turma_id.asc(), Pelotao.nome.asc()).all()
    return render_template(
        "turmas/pelotoes.html",
        pelotoes=pelotoes,
        turmas=s.query(Turma).order_by(Turma.nome.asc()).all(),
        coordenadores=_coordenadores(s),
        turma_id=turma_id,
    )


@bp.post("/pelotoes/new")
@require_permission("pelotoes.manage")
def pelotoes_new_post():
    s = db_session()
    payload = _pelotao_payload()
    errors = validate_pelotao_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("turmas.pelotoes_list"))
    try:
        create_pelotao(s, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("turmas.pelotoes_list"))
    s.commit()
    flash("Pelotão criado com sucesso!", "success")
    return redirect(url_for("turmas.pelotoes_list"))


@bp.get("/pelotoes/<int:pelotao_id>")
@require_permission("admin_pelotoes.view")
def pelotao_detail(pelotao_id: int):
    s = db_session()
    pelotao = s.get(Pelotao, pelotao_id)
    if not pelotao:
        abort(404)
    membros = (
        s.query(User)
        .join(Profile, Profile.user_id == User.id)
        .filter(Profile.pelotao_id == pelotao.id)
        .order_by(User.nome.asc())
        .all()
    )
    sem_pelotao = (
        s.query(User)
        .join(Profile, Profile.user_id == User.id)
        .join(User.roles)
        .filter(Role.key == ROLE_ALUNO)
        .filter(Profile.pelotao_id.is_(None))
        .order_by(User.nome.asc())
        .all()
    )
    return render_template(
        "turmas/pelotao_detail.html",
        pelotao=pelotao,
        membros=membros,
        sem_pelotao=sem_pelotao,
        turmas=s.query(Turma).order_by(Turma.nome.asc()).all(),
        coordenadores=_coordenadores(s),
    )


@bp.post("/pelotoes/<int:pelotao_id>/edit")
@require_permission("pelotoes.manage")
def pelotoes_edit_post(pelotao_id: int):
    s = db_session()
    pelotao = s.get(Pelotao, pelotao_id)
    if not pelotao:
        abort(404)
    payload = _pelotao_payload()
    errors = validate_pelotao_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("turmas.pelotao_detail", pelotao_id=pelotao.id))
    try:
        update_pelotao(s, pelotao, payload, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("turmas.pelotao_detail", pelotao_id=pelotao.id))
    s.commit()
    flash("Pelotão atualizado com sucesso!", "success")
    return redirect(url_for("turmas.pelotao_detail", pelotao_id=pelotao.id))


@bp.post("/pelotoes/<int:pelotao_id>/delete")
@require_permission("pelotoes.manage")
def pelotoes_delete(pelotao_id: int):
    s = db_session()
    pelotao = s.get(Pelotao, pelotao_id)
    if not pelotao:
        abort(404)
    delete_pelotao(s, pelotao, _current_user())
    s.commit()
    flash("Pelotão excluído com sucesso!", "success")
    return redirect(url_for("turmas.pelotoes_list"))


@bp.post("/pelotoes/<int:pelotao_id>/membros")
@require_permission("pelotoes.manage")
def pelotao_add_membro(pelotao_id: int):
    s = db_session()
    pelotao = s.get(Pelotao, pelotao_id)
    if not pelotao:
        abort(404)
    aluno = s.get(User, request.form.get("user_id", type=int) or 0)
    if not aluno:
        flash("Aluno não encontrado.", "danger")
        return redirect(url_for("turmas.pelotao_detail", pelotao_id=pelotao.id))
    assign_pelotao(s, aluno, pelotao, _current_user())
    s.commit()
    flash(f"{aluno.display_name} adicionado ao pelotão.", "success")
    return redirect(url_for("turmas.pelotao_detail", pelotao_id=pelotao.id))


@bp.post("/pelotoes/<int:pelotao_id>/membros/<int:user_id>/remove")
@require_permission("pelotoes.manage")
def pelotao_remove_membro(pelotao_id: int, user_id: int):
    s = db_session()
    aluno = s.get(User, user_id)
    if not aluno or not aluno.profile or aluno.profile.pelotao_id != pelotao_id:
        abort(404)
    assign_pelotao(s, aluno, None, _current_user())
    s.commit()
    flash(f"{aluno.display_name} removido do pelotão.", "success")
    return redirect(url_for("turmas.pelotao_detail", pelotao_id=pelotao_id))
