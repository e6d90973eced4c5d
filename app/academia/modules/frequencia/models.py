from __future__ import annotations

from datetime import date, datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.academia.models import Base

if TYPE_CHECKING:
    from app.academia.models import User
    from app.academia.modules.disciplinas.models import Disciplina
    from app.academia.modules.turmas.models import Pelotao, Turma


class Aula(Base):
    __tablename__ = "aulas"
    __table_args__ = (
        Index("idx_aulas_data", "data_aula"),
        Index("idx_aulas_instrutor", "instrutor_id"),
        Index("idx_aulas_disciplina", "disciplina_id"),
        Index("idx_aulas_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    disciplina_id: Mapped[int] = mapped_column(ForeignKey("disciplinas.id", ondelete="RESTRICT"), nullable=False)
    instrutor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    pelotao_id: Mapped[int | None] = mapped_column(ForeignKey("pelotoes.id", ondelete="SET NULL"), nullable=True)

    data_aula: Mapped[date] = mapped_column(Date, nullable=False)
    hora_inicio: Mapped[time] = mapped_column(Time, nullable=False)
    hora_fim: Mapped[time | None] = mapped_column(Time, nullable=True)
    tipo: Mapped[str] = mapped_column(String(32), nullable=False, default="AULA")
    titulo: Mapped[str] = mapped_column(String(255), nullable=False)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    local: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="RASCUNHO")  # RASCUNHO, PUBLICADA, FINALIZADA
    total_alunos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_presentes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_ausentes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_justificados: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_atrasos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    publicada_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    publicada_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    disciplina: Mapped["Disciplina"] = relationship("Disciplina", lazy="selectin")
    instrutor: Mapped["User"] = relationship("User", foreign_keys=[instrutor_id], lazy="selectin")
    pelotao: Mapped["Pelotao | None"] = relationship("Pelotao", lazy="selectin")
    presencas: Mapped[list["Presenca"]] = relationship(
        "Presenca",
        back_populates="aula",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Presenca(Base):
    __tablename__ = "presencas"
    __table_args__ = (
        UniqueConstraint("aula_id", "aluno_id", name="uq_presencas_aula_aluno"),
        Index("idx_presencas_aluno", "aluno_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    aula_id: Mapped[int] = mapped_column(ForeignKey("aulas.id", ondelete="CASCADE"), nullable=False)
    aluno_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PRESENTE")
    observacao: Mapped[str | None] = mapped_column(Text, nullable=True)
    justificativa_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    justificativa_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    aula: Mapped[Aula] = relationship("Aula", back_populates="presencas", lazy="selectin")
    aluno: Mapped["User"] = relationship("User", foreign_keys=[aluno_id], lazy="selectin")


class ConfigFrequencia(Base):
    """Absence-count thresholds per turma (optionally narrowed to one disciplina)."""

    __tablename__ = "config_frequencia"
    __table_args__ = (
        UniqueConstraint("turma_id", "disciplina_id", name="uq_config_frequencia_turma_disciplina"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    turma_id: Mapped[int] = mapped_column(ForeignKey("turmas.id", ondelete="CASCADE"), nullable=False)
    disciplina_id: Mapped[int | None] = mapped_column(ForeignKey("disciplinas.id", ondelete="CASCADE"), nullable=True)
    limite_alerta: Mapped[int] = mapped_column(Integer, nullable=False)
    limite_critico: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    turma: Mapped["Turma"] = relationship("Turma", lazy="selectin")
    disciplina: Mapped["Disciplina | None"] = relationship("Disciplina", lazy="selectin")


class Alerta(Base):
    __tablename__ = "alertas"
    __table_args__ = (
        Index("idx_alertas_aluno", "aluno_id"),
        Index("idx_alertas_resolvido", "resolvido"),
        Index("idx_alertas_instrutor", "instrutor_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    aluno_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    pelotao_id: Mapped[int | None] = mapped_column(ForeignKey("pelotoes.id", ondelete="SET NULL"), nullable=True)
    turma_id: Mapped[int | None] = mapped_column(ForeignKey("turmas.id", ondelete="SET NULL"), nullable=True)
    disciplina_id: Mapped[int | None] = mapped_column(ForeignKey("disciplinas.id", ondelete="SET NULL"), nullable=True)
    aula_id: Mapped[int | None] = mapped_column(ForeignKey("aulas.id", ondelete="SET NULL"), nullable=True)
    instrutor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    tipo: Mapped[str] = mapped_column(String(16), nullable=False)  # IMEDIATO, LIMIAR
    severidade: Mapped[str] = mapped_column(String(16), nullable=False)  # INFO, ALERTA, CRITICO
    motivo: Mapped[str] = mapped_column(String(512), nullable=False)
    contagem_faltas: Mapped[int | None] = mapped_column(Integer, nullable=True)

    resolvido: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolvido_por_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolvido_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    observacao_resolucao: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    aluno: Mapped["User"] = relationship("User", foreign_keys=[aluno_id], lazy="selectin")
    instrutor: Mapped["User | None"] = relationship("User", foreign_keys=[instrutor_id], lazy="selectin")
    resolvido_por: Mapped["User | None"] = relationship("User", foreign_keys=[resolvido_por_user_id], lazy="selectin")
    pelotao: Mapped["Pelotao | None"] = relationship("Pelotao", lazy="selectin")
    disciplina: Mapped["Disciplina | None"] = relationship("Disciplina", lazy="selectin")
    aula: Mapped[Aula | None] = relationship("Aula", lazy="selectin")


class Notificacao(Base):
    __tablename__ = "notificacoes"
    __table_args__ = (Index("idx_notificacoes_user_lida", "user_id", "lida"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    alerta_id: Mapped[int | None] = mapped_column(ForeignKey("alertas.id", ondelete="CASCADE"), nullable=True)
    titulo: Mapped[str] = mapped_column(String(255), nullable=False)
    corpo: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    lida: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lida_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
