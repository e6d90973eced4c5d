from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.academia.models import Base

if TYPE_CHECKING:
    from app.academia.models import User
    from app.academia.modules.disciplinas.models import Disciplina
    from app.academia.modules.turmas.models import Pelotao


class Aviso(Base):
    __tablename__ = "avisos"
    __table_args__ = (
        Index("idx_avisos_fixado_created", "fixado", "created_at"),
        Index("idx_avisos_pelotao", "pelotao_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    autor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    titulo: Mapped[str] = mapped_column(String(255), nullable=False)
    conteudo: Mapped[str] = mapped_column(Text, nullable=False)
    fixado: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Targeting; both NULL means a general announcement.
    pelotao_id: Mapped[int | None] = mapped_column(ForeignKey("pelotoes.id", ondelete="SET NULL"), nullable=True)
    disciplina_id: Mapped[int | None] = mapped_column(ForeignKey("disciplinas.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    autor: Mapped["User | None"] = relationship("User", lazy="selectin")
    pelotao: Mapped["Pelotao | None"] = relationship("Pelotao", lazy="selectin")
    disciplina: Mapped["Disciplina | None"] = relationship("Disciplina", lazy="selectin")
