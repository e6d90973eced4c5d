from __future__ import annotations

import io
from datetime import date

from flask import Blueprint, current_app, flash, g, render_template, request, send_file

from app.academia.audit import record_event
from app.academia.constants import ROLE_LABELS, ROLE_PRECEDENCE
from app.academia.db import db_session
from app.academia.models import User
from app.academia.modules.disciplinas.models import Disciplina
from app.academia.modules.relatorios.service import (
    FREQUENCIA_HEADERS,
    USUARIOS_HEADERS,
    frequencia_rows,
    relatorio_frequencia,
    relatorio_usuarios,
    to_csv_bytes,
    to_xlsx_bytes,
    usuarios_rows,
)
from app.academia.modules.turmas.models import Pelotao
from app.academia.rbac import require_permission
from app.academia.utils import parse_date

bp = Blueprint("relatorios", __name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _export(headers: list[str], rows: list[list], fmt: str, basename: str, sheet_title: str):
    stamp = date.today().strftime("%Y%m%d")
    if fmt == "xlsx":
        data = to_xlsx_bytes(headers, rows, sheet_title=sheet_title)
        return send_file(
            io.BytesIO(data),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=f"{basename}_{stamp}.xlsx",
            max_age=0,
        )
    data = to_csv_bytes(headers, rows)
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"{basename}_{stamp}.csv",
        max_age=0,
    )


@bp.get("/relatorios")
@require_permission("relatorios.view")
def frequencia():
    s = db_session()
    u = _current_user()
    raw_inicio = (request.args.get("data_inicio") or "").strip()
    raw_fim = (request.args.get("data_fim") or "").strip()
    data_inicio = parse_date(raw_inicio)
    data_fim = parse_date(raw_fim)
    if raw_inicio and not data_inicio:
        flash("Data inicial deve estar no formato AAAA-MM-DD.", "danger")
    if raw_fim and not data_fim:
        flash("Data final deve estar no formato AAAA-MM-DD.", "danger")

    filters = {
        "disciplina_id": request.args.get("disciplina_id", type=int),
        "pelotao_id": request.args.get("pelotao_id", type=int),
        "data_inicio": data_inicio,
        "data_fim": data_fim,
    }
    minimo = int(current_app.config.get("FREQ_MINIMA_PERCENT") or 75)
    linhas = relatorio_frequencia(s, u, minimo=minimo, **filters)

    fmt = (request.args.get("format") or "").strip().lower()
    if fmt in ("csv", "xlsx"):
        record_event(
            s,
            actor=u,
            action="relatorio.frequencia_export",
            entity_type="Relatorio",
            entity_id="frequencia",
            metadata={"filters": filters, "format": fmt, "row_count": len(linhas)},
        )
        s.commit()
        return _export(FREQUENCIA_HEADERS, frequencia_rows(linhas), fmt, "relatorio_frequencia", "Frequência")

    return render_template(
        "relatorios/frequencia.html",
        linhas=linhas,
        filters=filters,
        minimo=minimo,
        disciplinas=s.query(Disciplina).order_by(Disciplina.nome.asc()).all(),
        pelotoes=s.query(Pelotao).order_by(Pelotao.nome.asc()).all(),
    )


@bp.get("/relatorios/usuarios")
@require_permission("usuarios.manage")
def usuarios():
    s = db_session()
    u = _current_user()
    role = (request.args.get("role") or "").strip()
    if role not in ROLE_PRECEDENCE:
        role = ""
    completo_raw = (request.args.get("perfil_completo") or "").strip()
    perfil_completo = {"sim": True, "nao": False}.get(completo_raw)
    pelotao_id = request.args.get("pelotao_id", type=int)

    users = relatorio_usuarios(s, role=role or None, pelotao_id=pelotao_id, perfil_completo=perfil_completo)

    fmt = (request.args.get("format") or "").strip().lower()
    if fmt in ("csv", "xlsx"):
        record_event(
            s,
            actor=u,
            action="relatorio.usuarios_export",
            entity_type="Relatorio",
            entity_id="usuarios",
            metadata={
                "role": role,
                "pelotao_id": pelotao_id,
                "perfil_completo": completo_raw,
                "format": fmt,
                "row_count": len(users),
            },
        )
        s.commit()
        return _export(USUARIOS_HEADERS, usuarios_rows(users), fmt, "relatorio_usuarios", "Usuários")

    return render_template(
        "relatorios/usuarios.html",
        users=users,
        rows=usuarios_rows(users),
        headers=USUARIOS_HEADERS,
        role=role,
        roles=[(k, ROLE_LABELS[k]) for k in ROLE_PRECEDENCE],
        pelotao_id=pelotao_id,
        perfil_completo=completo_raw,
        pelotoes=s.query(Pelotao).order_by(Pelotao.nome.asc()).all(),
    )
