from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.academia.models import Base

if TYPE_CHECKING:
    from app.academia.models import User
    from app.academia.modules.perfil.models import Profile


class Turma(Base):
    __tablename__ = "turmas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nome: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    ano: Mapped[int | None] = mapped_column(Integer, nullable=True)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    ativa: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    pelotoes: Mapped[list["Pelotao"]] = relationship(
        "Pelotao",
        back_populates="turma",
        lazy="selectin",
        order_by="Pelotao.nome",
    )


class Pelotao(Base):
    __tablename__ = "pelotoes"
    __table_args__ = (
        UniqueConstraint("turma_id", "nome", name="uq_pelotoes_turma_nome"),
        Index("idx_pelotoes_turma", "turma_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nome: Mapped[str] = mapped_column(String(128), nullable=False)
    turma_id: Mapped[int] = mapped_column(ForeignKey("turmas.id", ondelete="RESTRICT"), nullable=False)
    coordenador_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    turma: Mapped[Turma] = relationship("Turma", back_populates="pelotoes", lazy="selectin")
    coordenador: Mapped["User | None"] = relationship("User", lazy="selectin")
    membros: Mapped[list["Profile"]] = relationship("Profile", back_populates="pelotao")

    @property
    def label(self) -> str:
        return f"{self.nome} ({self.turma.nome})" if self.turma else self.nome
