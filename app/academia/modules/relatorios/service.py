from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from app.academia.constants import ROLE_LABELS
from app.academia.modules.frequencia.service import STATUS_CONTABILIZADOS, percentual_presenca
from app.academia.rbac import is_admin, primary_role

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.academia.models import User


# ---------- Attendance report ----------
@dataclass
class LinhaFrequencia:
    aluno_id: int
    nome: str
    matricula: str | None
    pelotao: str | None
    total: int = 0
    presentes: int = 0
    ausentes: int = 0
    justificados: int = 0
    atrasos: int = 0
    minimo: int = 75

    @property
    def percentual(self) -> int:
        return percentual_presenca(self.presentes, self.justificados, self.atrasos, self.total)

    @property
    def abaixo_minimo(self) -> bool:
        return self.total > 0 and self.percentual < self.minimo


def relatorio_frequencia(
    s: "Session",
    user: "User",
    *,
    disciplina_id: int | None = None,
    pelotao_id: int | None = None,
    data_inicio: date | None = None,
    data_fim: date | None = None,
    minimo: int = 75,
) -> list[LinhaFrequencia]:
    """
    One row per aluno over the published/finalized aulas matching the filters.
    Instrutores only report on their own aulas.
    """
    from app.academia.modules.frequencia.models import Aula, Presenca

    q = (
        s.query(Presenca)
        .join(Aula, Aula.id == Presenca.aula_id)
        .filter(Aula.status.in_(STATUS_CONTABILIZADOS))
    )
    if not is_admin(user):
        q = q.filter(Aula.instrutor_id == user.id)
    if disciplina_id:
        q = q.filter(Aula.disciplina_id == disciplina_id)
    if pelotao_id:
        q = q.filter(Aula.pelotao_id == pelotao_id)
    if data_inicio:
        q = q.filter(Aula.data_aula >= data_inicio)
    if data_fim:
        q = q.filter(Aula.data_aula <= data_fim)

    linhas: dict[int, LinhaFrequencia] = {}
    for p in q.all():
        linha = linhas.get(p.aluno_id)
        if linha is None:
            profile = p.aluno.profile
            linha = linhas[p.aluno_id] = LinhaFrequencia(
                aluno_id=p.aluno_id,
                nome=p.aluno.display_name,
                matricula=profile.matricula if profile else None,
                pelotao=profile.pelotao.nome if profile and profile.pelotao else None,
                minimo=minimo,
            )
        linha.total += 1
        if p.status == "PRESENTE":
            linha.presentes += 1
        elif p.status == "AUSENTE":
            linha.ausentes += 1
        elif p.status == "JUSTIFICADO":
            linha.justificados += 1
        elif p.status == "ATRASO":
            linha.atrasos += 1
    return sorted(linhas.values(), key=lambda l: (l.percentual, l.nome.lower()))


FREQUENCIA_HEADERS = [
    "Aluno",
    "Matrícula",
    "Pelotão",
    "Aulas",
    "Presenças",
    "Faltas",
    "Justificadas",
    "Atrasos",
    "Frequência (%)",
    "Abaixo do mínimo",
]


def frequencia_rows(linhas: list[LinhaFrequencia]) -> list[list]:
    return [
        [
            l.nome,
            l.matricula or "",
            l.pelotao or "",
            l.total,
            l.presentes,
            l.ausentes,
            l.justificados,
            l.atrasos,
            l.percentual,
            "Sim" if l.abaixo_minimo else "Não",
        ]
        for l in linhas
    ]


# ---------- Users report ----------
USUARIOS_HEADERS = [
    "Nome",
    "Email",
    "Papel",
    "Matrícula",
    "Posto/Graduação",
    "Nome de guerra",
    "Pelotão",
    "Telefone",
    "Perfil completo",
    "Ativo",
]


def relatorio_usuarios(
    s: "Session",
    *,
    role: str | None = None,
    pelotao_id: int | None = None,
    perfil_completo: bool | None = None,
) -> list["User"]:
    from app.academia.models import Role, User
    from app.academia.modules.perfil.models import Profile

    q = s.query(User).outerjoin(Profile, Profile.user_id == User.id)
    if role:
        q = q.filter(User.roles.any(Role.key == role))
    if pelotao_id:
        q = q.filter(Profile.pelotao_id == pelotao_id)
    if perfil_completo is True:
        q = q.filter(Profile.perfil_completo.is_(True))
    elif perfil_completo is False:
        q = q.filter((Profile.perfil_completo.is_(False)) | (Profile.user_id.is_(None)))
    return q.order_by(User.nome.asc(), User.id.asc()).all()


def usuarios_rows(users: list["User"]) -> list[list]:
    rows = []
    for u in users:
        p = u.profile
        rows.append(
            [
                u.nome,
                u.email,
                ROLE_LABELS.get(primary_role(u) or "", ""),
                (p.matricula if p else None) or "",
                (p.posto_graduacao if p else None) or "",
                (p.nome_guerra if p else None) or "",
                (p.pelotao.nome if p and p.pelotao else None) or "",
                (p.telefone if p else None) or "",
                "Sim" if p and p.perfil_completo else "Não",
                "Sim" if u.is_active else "Não",
            ]
        )
    return rows


# ---------- Export formats ----------
def to_csv_bytes(headers: list[str], rows: list[list]) -> bytes:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(headers)
    for row in rows:
        w.writerow(row)
    # BOM so spreadsheet apps pick up UTF-8 accents.
    return out.getvalue().encode("utf-8-sig")


def to_xlsx_bytes(headers: list[str], rows: list[list], *, sheet_title: str = "Relatório") -> bytes:
    from openpyxl import Workbook
    from openpyxl.styles import Font

    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    for i, header in enumerate(headers, start=1):
        width = max([len(str(header))] + [len(str(r[i - 1])) for r in rows]) + 2
        ws.column_dimensions[ws.cell(row=1, column=i).column_letter].width = min(width, 50)
    ws.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
