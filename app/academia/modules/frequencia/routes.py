from __future__ import annotations

from datetime import MAXYEAR, MINYEAR, date

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, send_file, url_for

from app.academia.db import db_session
from app.academia.errors import AcademiaError, PermissionDenied
from app.academia.models import User
from app.academia.modules.disciplinas.models import Disciplina
from app.academia.modules.frequencia.alertas import (
    SEVERIDADES,
    TIPOS_ALERTA,
    list_alertas,
    list_notificacoes,
    marcar_lida,
    marcar_todas_lidas,
    resolver_alerta,
    resumo_alertas,
    set_config_frequencia,
    validate_config_payload,
)
from app.academia.modules.frequencia.models import Alerta, Aula, ConfigFrequencia, Notificacao, Presenca
from app.academia.modules.frequencia.service import (
    STATUS_AULA,
    STATUS_PRESENCA,
    STATUS_PRESENCA_LABELS,
    TIPO_AULA_LABELS,
    TIPOS_AULA,
    calendario as build_calendario,
    can_manage_aula,
    contadores,
    create_aula,
    delete_aula,
    finalize_aula,
    list_aulas,
    mark_all,
    publish_chamada,
    resumo_aluno,
    save_chamada,
    upload_justificativa,
    validate_aula_payload,
    validate_justificativa_file,
)
from app.academia.modules.turmas.models import Pelotao, Turma
from app.academia.rbac import is_admin, login_required, require_permission
from app.academia.storage import storage_from_config
from app.academia.utils import parse_date

bp = Blueprint("frequencia", __name__)

MESES = (
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro",
)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _get_aula(s, aula_id: int) -> Aula:
    aula = s.get(Aula, aula_id)
    if not aula:
        abort(404)
    return aula


def _form_options(s) -> dict:
    return {
        "disciplinas": s.query(Disciplina).order_by(Disciplina.nome.asc()).all(),
        "pelotoes": s.query(Pelotao).order_by(Pelotao.nome.asc()).all(),
        "tipos_aula": TIPOS_AULA,
        "tipo_labels": TIPO_AULA_LABELS,
    }


# ---------- Aulas ----------
@bp.get("/frequencia")
@require_permission("frequencia.view")
def aulas_list():
    s = db_session()
    u = _current_user()
    data_filtro = parse_date(request.args.get("data"))
    disciplina_id = request.args.get("disciplina_id", type=int)
    status = (request.args.get("status") or "").strip()
    if status not in STATUS_AULA:
        status = ""
    aulas = list_aulas(
        s,
        u,
        data_inicio=data_filtro,
        data_fim=data_filtro,
        disciplina_id=disciplina_id,
        status=status or None,
    )
    return render_template(
        "frequencia/aulas.html",
        aulas=aulas,
        data_filtro=data_filtro,
        disciplina_id=disciplina_id,
        status=status,
        status_aula=STATUS_AULA,
        today=date.today(),
        **_form_options(s),
    )


@bp.post("/frequencia/aulas/new")
@require_permission("aula.create")
def aulas_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "disciplina_id": request.form.get("disciplina_id"),
        "pelotao_id": request.form.get("pelotao_id"),
        "instrutor_id": request.form.get("instrutor_id"),
        "data_aula": request.form.get("data_aula"),
        "hora_inicio": request.form.get("hora_inicio"),
        "hora_fim": request.form.get("hora_fim"),
        "tipo": request.form.get("tipo"),
        "titulo": request.form.get("titulo"),
        "descricao": request.form.get("descricao"),
        "local": request.form.get("local"),
    }
    errors = validate_aula_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("frequencia.aulas_list"))
    try:
        aula = create_aula(s, payload, u)
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("frequencia.aulas_list"))
    s.commit()
    flash(f"Aula criada com {aula.total_alunos} aluno(s) na chamada.", "success")
    return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))


@bp.post("/frequencia/aulas/<int:aula_id>/delete")
@require_permission("aula.edit")
def aulas_delete(aula_id: int):
    s = db_session()
    aula = _get_aula(s, aula_id)
    try:
        delete_aula(s, aula, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("frequencia.aulas_list"))
    s.commit()
    flash("Aula excluída.", "success")
    return redirect(url_for("frequencia.aulas_list"))


# ---------- Chamada ----------
@bp.get("/chamada")
@require_permission("chamada.view")
def chamada_list():
    s = db_session()
    u = _current_user()
    pendentes = [a for a in list_aulas(s, u) if a.status != "FINALIZADA"]
    return render_template("frequencia/chamada_list.html", aulas=pendentes, tipo_labels=TIPO_AULA_LABELS)


@bp.get("/chamada/<int:aula_id>")
@require_permission("chamada.view")
def chamada_detail(aula_id: int):
    s = db_session()
    u = _current_user()
    aula = _get_aula(s, aula_id)
    if not is_admin(u) and aula.instrutor_id != u.id:
        abort(403)
    presencas = sorted(aula.presencas, key=lambda p: (p.aluno.nome or "").lower())
    return render_template(
        "frequencia/chamada.html",
        aula=aula,
        presencas=presencas,
        contadores=contadores(presencas),
        status_presenca=STATUS_PRESENCA,
        status_labels=STATUS_PRESENCA_LABELS,
        pode_editar=can_manage_aula(u, aula) and aula.status != "FINALIZADA",
    )


def _marks_from_form(aula: Aula) -> tuple[dict[int, str], dict[int, str]]:
    marks: dict[int, str] = {}
    observacoes: dict[int, str] = {}
    for p in aula.presencas:
        status = request.form.get(f"status_{p.aluno_id}")
        if status:
            marks[p.aluno_id] = status.strip().upper()
        obs_key = f"obs_{p.aluno_id}"
        if obs_key in request.form:
            observacoes[p.aluno_id] = request.form.get(obs_key) or ""
    return marks, observacoes


@bp.post("/chamada/<int:aula_id>/salvar")
@require_permission("presenca.manage")
def chamada_save(aula_id: int):
    s = db_session()
    aula = _get_aula(s, aula_id)
    marks, observacoes = _marks_from_form(aula)
    try:
        save_chamada(s, aula, marks, _current_user(), observacoes=observacoes)
    except AcademiaError as e:
        flash(f"Erro ao salvar chamada: {e}", "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))
    s.commit()
    flash("Chamada salva como rascunho.", "success")
    return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))


@bp.post("/chamada/<int:aula_id>/todos-presentes")
@require_permission("presenca.manage")
def chamada_mark_all(aula_id: int):
    s = db_session()
    aula = _get_aula(s, aula_id)
    try:
        mark_all(s, aula, "PRESENTE", _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))
    s.commit()
    flash("Todos marcados como presentes.", "success")
    return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))


@bp.post("/chamada/<int:aula_id>/publicar")
@require_permission("presenca.manage")
def chamada_publish(aula_id: int):
    s = db_session()
    u = _current_user()
    aula = _get_aula(s, aula_id)
    marks, observacoes = _marks_from_form(aula)
    try:
        if marks:
            save_chamada(s, aula, marks, u, observacoes=observacoes)
        result = publish_chamada(s, aula, u)
    except AcademiaError as e:
        s.rollback()
        flash(f"Erro ao publicar chamada: {e}", "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=aula_id))
    s.commit()
    flash(
        f"Chamada publicada! {len(result.alertas)} alerta(s) processado(s) automaticamente.",
        "success",
    )
    return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))


@bp.post("/chamada/<int:aula_id>/finalizar")
@require_permission("presenca.manage")
def chamada_finalize(aula_id: int):
    s = db_session()
    aula = _get_aula(s, aula_id)
    try:
        finalize_aula(s, aula, _current_user())
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))
    s.commit()
    flash("Aula finalizada.", "success")
    return redirect(url_for("frequencia.chamada_detail", aula_id=aula.id))


@bp.post("/chamada/presencas/<int:presenca_id>/justificativa")
@require_permission("presenca.manage")
def justificativa_upload(presenca_id: int):
    s = db_session()
    presenca = s.get(Presenca, presenca_id)
    if not presenca:
        abort(404)
    f = request.files.get("file")
    if not f or not f.filename:
        flash("Selecione um arquivo.", "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=presenca.aula_id))
    data = f.read()
    errors = validate_justificativa_file(f.filename, data)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=presenca.aula_id))
    try:
        upload_justificativa(
            s,
            storage_from_config(current_app.config),
            presenca,
            filename=f.filename,
            data=data,
            content_type=f.mimetype,
            user=_current_user(),
            observacao=request.form.get("observacao"),
        )
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("frequencia.chamada_detail", aula_id=presenca.aula_id))
    s.commit()
    flash("Justificativa anexada.", "success")
    return redirect(url_for("frequencia.chamada_detail", aula_id=presenca.aula_id))


@bp.get("/chamada/presencas/<int:presenca_id>/justificativa")
@login_required
def justificativa_download(presenca_id: int):
    s = db_session()
    u = _current_user()
    presenca = s.get(Presenca, presenca_id)
    if not presenca or not presenca.justificativa_storage_key:
        abort(404)
    if presenca.aluno_id != u.id and not can_manage_aula(u, presenca.aula):
        abort(403)
    storage = storage_from_config(current_app.config)
    if not storage.exists(presenca.justificativa_storage_key):
        current_app.logger.warning("Justificativa file missing: %s", presenca.justificativa_storage_key)
        abort(404)
    return send_file(
        storage.open(presenca.justificativa_storage_key),
        download_name=presenca.justificativa_filename or "justificativa",
        as_attachment=True,
    )


# ---------- Calendário ----------
@bp.get("/calendario")
@require_permission("calendario.view")
def calendario():
    s = db_session()
    today = date.today()
    ano = request.args.get("ano", type=int) or today.year
    mes = request.args.get("mes", type=int) or today.month
    if not MINYEAR <= ano <= MAXYEAR:
        ano = today.year
    if not 1 <= mes <= 12:
        mes = today.month
    dias = build_calendario(s, _current_user(), ano, mes)
    prev_ano, prev_mes = (ano - 1, 12) if mes == 1 else (ano, mes - 1)
    next_ano, next_mes = (ano + 1, 1) if mes == 12 else (ano, mes + 1)
    return render_template(
        "frequencia/calendario.html",
        dias=dias,
        ano=ano,
        mes=mes,
        mes_nome=MESES[mes - 1],
        prev=(prev_ano, prev_mes),
        next=(next_ano, next_mes),
        tipo_labels=TIPO_AULA_LABELS,
        today=today,
    )


# ---------- Minha situação ----------
@bp.get("/minha-situacao")
@require_permission("minha_situacao.view")
def minha_situacao():
    s = db_session()
    u = _current_user()
    resumo = resumo_aluno(s, u.id)
    return render_template(
        "frequencia/minha_situacao.html",
        resumo=resumo,
        status_labels=STATUS_PRESENCA_LABELS,
        minimo=current_app.config.get("FREQ_MINIMA_PERCENT", 75),
        alertas=list_alertas(s, u, {"resolvido": "nao"}),
    )


# ---------- Alertas ----------
@bp.get("/alertas")
@require_permission("alertas.view")
def alertas_list():
    s = db_session()
    filters = {
        "turma_id": request.args.get("turma_id", type=int),
        "pelotao_id": request.args.get("pelotao_id", type=int),
        "disciplina_id": request.args.get("disciplina_id", type=int),
        "severidade": (request.args.get("severidade") or "").strip(),
        "tipo": (request.args.get("tipo") or "").strip(),
        "resolvido": (request.args.get("resolvido") or "nao").strip(),
    }
    alertas = list_alertas(s, _current_user(), filters)
    return render_template(
        "frequencia/alertas.html",
        alertas=alertas,
        resumo=resumo_alertas(alertas),
        filters=filters,
        severidades=SEVERIDADES,
        tipos=TIPOS_ALERTA,
        turmas=s.query(Turma).order_by(Turma.nome.asc()).all(),
        pelotoes=s.query(Pelotao).order_by(Pelotao.nome.asc()).all(),
        disciplinas=s.query(Disciplina).order_by(Disciplina.nome.asc()).all(),
    )


@bp.post("/alertas/<int:alerta_id>/resolver")
@require_permission("alertas.resolve")
def alertas_resolve(alerta_id: int):
    s = db_session()
    alerta = s.get(Alerta, alerta_id)
    if not alerta:
        abort(404)
    try:
        resolver_alerta(s, alerta, _current_user(), request.form.get("observacao"))
    except PermissionDenied:
        abort(403)
    except AcademiaError as e:
        flash(str(e), "danger")
        return redirect(url_for("frequencia.alertas_list"))
    s.commit()
    flash("Alerta resolvido.", "success")
    return redirect(url_for("frequencia.alertas_list"))


@bp.get("/alertas/config")
@require_permission("turmas.manage")
def alertas_config():
    s = db_session()
    configs = s.query(ConfigFrequencia).order_by(ConfigFrequencia.turma_id.asc()).all()
    return render_template(
        "frequencia/alertas_config.html",
        configs=configs,
        turmas=s.query(Turma).order_by(Turma.nome.asc()).all(),
        disciplinas=s.query(Disciplina).order_by(Disciplina.nome.asc()).all(),
        default_alerta=current_app.config.get("FREQ_LIMITE_ALERTA"),
        default_critico=current_app.config.get("FREQ_LIMITE_CRITICO"),
    )


@bp.post("/alertas/config")
@require_permission("turmas.manage")
def alertas_config_post():
    s = db_session()
    payload = {
        "turma_id": request.form.get("turma_id"),
        "disciplina_id": request.form.get("disciplina_id"),
        "limite_alerta": request.form.get("limite_alerta"),
        "limite_critico": request.form.get("limite_critico"),
    }
    errors = validate_config_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("frequencia.alertas_config"))
    turma = s.get(Turma, int(payload["turma_id"]))
    if not turma:
        abort(404)
    disciplina_id = request.form.get("disciplina_id", type=int)
    set_config_frequencia(
        s,
        turma_id=turma.id,
        disciplina_id=disciplina_id,
        limite_alerta=int(payload["limite_alerta"]),
        limite_critico=int(payload["limite_critico"]),
        user=_current_user(),
    )
    s.commit()
    flash("Limites de frequência salvos.", "success")
    return redirect(url_for("frequencia.alertas_config"))


# ---------- Notificações ----------
@bp.get("/notificacoes")
@login_required
def notificacoes():
    s = db_session()
    return render_template("frequencia/notificacoes.html", notificacoes=list_notificacoes(s, _current_user()))


@bp.post("/notificacoes/<int:notificacao_id>/lida")
@login_required
def notificacao_lida(notificacao_id: int):
    s = db_session()
    n = s.get(Notificacao, notificacao_id)
    if not n:
        abort(404)
    try:
        marcar_lida(s, n, _current_user())
    except PermissionDenied:
        abort(403)
    s.commit()
    if n.url and n.url.startswith("/"):
        return redirect(n.url)
    return redirect(url_for("frequencia.notificacoes"))


@bp.post("/notificacoes/lidas")
@login_required
def notificacoes_todas_lidas():
    s = db_session()
    count = marcar_todas_lidas(s, _current_user())
    s.commit()
    flash(f"{count} notificação(ões) marcada(s) como lida(s).", "success")
    return redirect(url_for("frequencia.notificacoes"))
