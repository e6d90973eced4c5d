from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.academia.models import Base


class Disciplina(Base):
    __tablename__ = "disciplinas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    nome: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    codigo: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True)
    descricao: Mapped[str | None] = mapped_column(Text, nullable=True)
    carga_horaria: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # hours
    cor: Mapped[str] = mapped_column(String(7), nullable=False, default="#3b82f6")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
