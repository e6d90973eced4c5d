from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.academia.models import Base

if TYPE_CHECKING:
    from app.academia.models import User
    from app.academia.modules.turmas.models import Pelotao


class Profile(Base):
    """
    Personal record of a user. One row per user; created at signup/seed with
    `perfil_completo = False` and filled in by the onboarding wizard.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        Index("idx_profiles_pelotao", "pelotao_id"),
        Index("idx_profiles_status", "status"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    pelotao_id: Mapped[int | None] = mapped_column(ForeignKey("pelotoes.id", ondelete="SET NULL"), nullable=True)

    # Basic
    matricula: Mapped[str | None] = mapped_column(String(64), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    posto_graduacao: Mapped[str | None] = mapped_column(String(64), nullable=True)
    nome_guerra: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lotacao: Mapped[str | None] = mapped_column(String(128), nullable=True)
    possui_cnh: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    categoria_cnh: Mapped[str | None] = mapped_column(String(8), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ativo")  # ativo, inativo

    # Step 1: identificação e contato
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True)
    data_nascimento: Mapped[date | None] = mapped_column(Date, nullable=True)
    sexo: Mapped[str | None] = mapped_column(String(32), nullable=True)
    tipo_sanguineo: Mapped[str | None] = mapped_column(String(3), nullable=True)
    contato_emergencia: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # nome, parentesco, telefone

    # Step 2: endereço
    endereco: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Step 3: formação
    cursos_operacionais: Mapped[list | None] = mapped_column(JSON, nullable=True)
    cursos_operacionais_outros: Mapped[str | None] = mapped_column(Text, nullable=True)
    formacao_academica: Mapped[list | None] = mapped_column(JSON, nullable=True)
    experiencia_profissional: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Step 4: saúde
    saude: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    perfil_completo: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    perfil_completo_em: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="profile")
    pelotao: Mapped["Pelotao | None"] = relationship("Pelotao", back_populates="membros", lazy="selectin")
