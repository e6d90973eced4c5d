"""Initial schema: accounts/RBAC, profiles, turmas/pelotões, disciplinas, frequência, avisos.

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ---------- Accounts / RBAC ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("nome", sa.String(100), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "role_id"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("permission_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("role_id", "permission_id"),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_events_created", "audit_events", ["created_at"])

    # ---------- Turmas / pelotões ----------
    op.create_table(
        "turmas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(128), nullable=False),
        sa.Column("ano", sa.Integer(), nullable=True),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.Column("ativa", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("nome"),
    )
    op.create_table(
        "pelotoes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(128), nullable=False),
        sa.Column("turma_id", sa.Integer(), nullable=False),
        sa.Column("coordenador_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["turma_id"], ["turmas.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["coordenador_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("turma_id", "nome", name="uq_pelotoes_turma_nome"),
    )
    op.create_index("idx_pelotoes_turma", "pelotoes", ["turma_id"])

    # ---------- Profiles ----------
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("pelotao_id", sa.Integer(), nullable=True),
        sa.Column("matricula", sa.String(64), nullable=True),
        sa.Column("telefone", sa.String(32), nullable=True),
        sa.Column("posto_graduacao", sa.String(64), nullable=True),
        sa.Column("nome_guerra", sa.String(64), nullable=True),
        sa.Column("lotacao", sa.String(128), nullable=True),
        sa.Column("possui_cnh", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("categoria_cnh", sa.String(8), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="ativo"),
        sa.Column("cpf", sa.String(14), nullable=True),
        sa.Column("data_nascimento", sa.Date(), nullable=True),
        sa.Column("sexo", sa.String(32), nullable=True),
        sa.Column("tipo_sanguineo", sa.String(3), nullable=True),
        sa.Column("contato_emergencia", sa.JSON(), nullable=True),
        sa.Column("endereco", sa.JSON(), nullable=True),
        sa.Column("cursos_operacionais", sa.JSON(), nullable=True),
        sa.Column("cursos_operacionais_outros", sa.Text(), nullable=True),
        sa.Column("formacao_academica", sa.JSON(), nullable=True),
        sa.Column("experiencia_profissional", sa.JSON(), nullable=True),
        sa.Column("saude", sa.JSON(), nullable=True),
        sa.Column("perfil_completo", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("perfil_completo_em", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pelotao_id"], ["pelotoes.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_profiles_pelotao", "profiles", ["pelotao_id"])
    op.create_index("idx_profiles_status", "profiles", ["status"])

    # ---------- Disciplinas ----------
    op.create_table(
        "disciplinas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(128), nullable=False),
        sa.Column("codigo", sa.String(32), nullable=True),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.Column("carga_horaria", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cor", sa.String(7), nullable=False, server_default="#3b82f6"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("nome"),
        sa.UniqueConstraint("codigo"),
    )

    # ---------- Frequência ----------
    op.create_table(
        "aulas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("disciplina_id", sa.Integer(), nullable=False),
        sa.Column("instrutor_id", sa.Integer(), nullable=False),
        sa.Column("pelotao_id", sa.Integer(), nullable=True),
        sa.Column("data_aula", sa.Date(), nullable=False),
        sa.Column("hora_inicio", sa.Time(), nullable=False),
        sa.Column("hora_fim", sa.Time(), nullable=True),
        sa.Column("tipo", sa.String(32), nullable=False, server_default="AULA"),
        sa.Column("titulo", sa.String(255), nullable=False),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.Column("local", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="RASCUNHO"),
        sa.Column("total_alunos", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_presentes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_ausentes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_justificados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_atrasos", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("publicada_at", sa.DateTime(), nullable=True),
        sa.Column("publicada_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["disciplina_id"], ["disciplinas.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["instrutor_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["pelotao_id"], ["pelotoes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["publicada_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_aulas_data", "aulas", ["data_aula"])
    op.create_index("idx_aulas_instrutor", "aulas", ["instrutor_id"])
    op.create_index("idx_aulas_disciplina", "aulas", ["disciplina_id"])
    op.create_index("idx_aulas_status", "aulas", ["status"])

    op.create_table(
        "presencas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("aula_id", sa.Integer(), nullable=False),
        sa.Column("aluno_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PRESENTE"),
        sa.Column("observacao", sa.Text(), nullable=True),
        sa.Column("justificativa_storage_key", sa.String(512), nullable=True),
        sa.Column("justificativa_filename", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["aula_id"], ["aulas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["aluno_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("aula_id", "aluno_id", name="uq_presencas_aula_aluno"),
    )
    op.create_index("idx_presencas_aluno", "presencas", ["aluno_id"])

    op.create_table(
        "config_frequencia",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("turma_id", sa.Integer(), nullable=False),
        sa.Column("disciplina_id", sa.Integer(), nullable=True),
        sa.Column("limite_alerta", sa.Integer(), nullable=False),
        sa.Column("limite_critico", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["turma_id"], ["turmas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["disciplina_id"], ["disciplinas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("turma_id", "disciplina_id", name="uq_config_frequencia_turma_disciplina"),
    )

    op.create_table(
        "alertas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("aluno_id", sa.Integer(), nullable=False),
        sa.Column("pelotao_id", sa.Integer(), nullable=True),
        sa.Column("turma_id", sa.Integer(), nullable=True),
        sa.Column("disciplina_id", sa.Integer(), nullable=True),
        sa.Column("aula_id", sa.Integer(), nullable=True),
        sa.Column("instrutor_id", sa.Integer(), nullable=True),
        sa.Column("tipo", sa.String(16), nullable=False),
        sa.Column("severidade", sa.String(16), nullable=False),
        sa.Column("motivo", sa.String(512), nullable=False),
        sa.Column("contagem_faltas", sa.Integer(), nullable=True),
        sa.Column("resolvido", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolvido_por_user_id", sa.Integer(), nullable=True),
        sa.Column("resolvido_em", sa.DateTime(), nullable=True),
        sa.Column("observacao_resolucao", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["aluno_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pelotao_id"], ["pelotoes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["turma_id"], ["turmas.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["disciplina_id"], ["disciplinas.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["aula_id"], ["aulas.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["instrutor_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["resolvido_por_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_alertas_aluno", "alertas", ["aluno_id"])
    op.create_index("idx_alertas_resolvido", "alertas", ["resolvido"])
    op.create_index("idx_alertas_instrutor", "alertas", ["instrutor_id"])

    op.create_table(
        "notificacoes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("alerta_id", sa.Integer(), nullable=True),
        sa.Column("titulo", sa.String(255), nullable=False),
        sa.Column("corpo", sa.Text(), nullable=True),
        sa.Column("url", sa.String(512), nullable=True),
        sa.Column("lida", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("lida_em", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["alerta_id"], ["alertas.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_notificacoes_user_lida", "notificacoes", ["user_id", "lida"])

    # ---------- Avisos ----------
    op.create_table(
        "avisos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("autor_id", sa.Integer(), nullable=True),
        sa.Column("titulo", sa.String(255), nullable=False),
        sa.Column("conteudo", sa.Text(), nullable=False),
        sa.Column("fixado", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pelotao_id", sa.Integer(), nullable=True),
        sa.Column("disciplina_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["autor_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["pelotao_id"], ["pelotoes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["disciplina_id"], ["disciplinas.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_avisos_fixado_created", "avisos", ["fixado", "created_at"])
    op.create_index("idx_avisos_pelotao", "avisos", ["pelotao_id"])


def downgrade() -> None:
    op.drop_index("idx_avisos_pelotao", table_name="avisos")
    op.drop_index("idx_avisos_fixado_created", table_name="avisos")
    op.drop_table("avisos")
    op.drop_index("idx_notificacoes_user_lida", table_name="notificacoes")
    op.drop_table("notificacoes")
    op.drop_index("idx_alertas_instrutor", table_name="alertas")
    op.drop_index("idx_alertas_resolvido", table_name="alertas")
    op.drop_index("idx_alertas_aluno", table_name="alertas")
    op.drop_table("alertas")
    op.drop_table("config_frequencia")
    op.drop_index("idx_presencas_aluno", table_name="presencas")
    op.drop_table("presencas")
    for name in ("idx_aulas_status", "idx_aulas_disciplina", "idx_aulas_instrutor", "idx_aulas_data"):
        op.drop_index(name, table_name="aulas")
    op.drop_table("aulas")
    op.drop_table("disciplinas")
    op.drop_index("idx_profiles_status", table_name="profiles")
    op.drop_index("idx_profiles_pelotao", table_name="profiles")
    op.drop_table("profiles")
    op.drop_index("idx_pelotoes_turma", table_name="pelotoes")
    op.drop_table("pelotoes")
    op.drop_table("turmas")
    op.drop_index("idx_audit_events_created", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("users")
