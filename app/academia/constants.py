"""
Central constants for the Academia application: roles, the permission catalog,
the role -> permission table and the route -> permission table.
"""
from __future__ import annotations

ROLE_ADMIN = "admin"
ROLE_INSTRUTOR = "instrutor"
ROLE_ALUNO = "aluno"

# Highest first; a user's effective role is the first one they hold.
ROLE_PRECEDENCE = (ROLE_ADMIN, ROLE_INSTRUTOR, ROLE_ALUNO)

ROLE_LABELS = {
    ROLE_ADMIN: "Administrador",
    ROLE_INSTRUTOR: "Instrutor",
    ROLE_ALUNO: "Aluno",
}

# key -> display name
PERMISSIONS: dict[str, str] = {
    # views
    "dashboard.view": "Dashboard: visualizar",
    "avisos.view": "Avisos: visualizar",
    "calendario.view": "Calendário: visualizar",
    "disciplinas.view": "Disciplinas: visualizar",
    "materiais.view": "Materiais: visualizar",
    "frequencia.view": "Frequência: visualizar",
    "avaliacoes.view": "Avaliações: visualizar",
    "tarefas.view": "Tarefas: visualizar",
    "minha_situacao.view": "Minha situação: visualizar",
    "chamada.view": "Chamada: visualizar",
    "relatorios.view": "Relatórios: visualizar",
    "alertas.view": "Alertas: visualizar",
    "admin_usuarios.view": "Admin usuários: visualizar",
    "admin_turmas.view": "Admin turmas: visualizar",
    "admin_pelotoes.view": "Admin pelotões: visualizar",
    # CRUD
    "aula.create": "Aulas: criar",
    "aula.edit": "Aulas: editar",
    "aula.delete": "Aulas: excluir",
    "material.create": "Materiais: criar",
    "material.edit": "Materiais: editar",
    "material.delete": "Materiais: excluir",
    "avaliacao.create": "Avaliações: criar",
    "avaliacao.edit": "Avaliações: editar",
    "avaliacao.delete": "Avaliações: excluir",
    "tarefa.create": "Tarefas: criar",
    "tarefa.edit": "Tarefas: editar",
    "tarefa.delete": "Tarefas: excluir",
    "aviso.create": "Avisos: criar",
    "aviso.edit": "Avisos: editar",
    "aviso.delete": "Avisos: excluir",
    "entrega.submit": "Entregas: enviar",
    "resposta.submit": "Respostas: enviar",
    "presenca.manage": "Presenças: gerenciar",
    "alertas.resolve": "Alertas: resolver",
    "usuarios.manage": "Usuários: gerenciar",
    "turmas.manage": "Turmas: gerenciar",
    "pelotoes.manage": "Pelotões: gerenciar",
    "disciplinas.manage": "Disciplinas: gerenciar",
    "roles.change": "Papéis: alterar",
}

_COMMON_VIEWS = (
    "dashboard.view",
    "avisos.view",
    "calendario.view",
    "disciplinas.view",
    "materiais.view",
    "frequencia.view",
    "avaliacoes.view",
    "tarefas.view",
)

ROLE_PERMISSIONS: dict[str, tuple[str, ...]] = {
    ROLE_ALUNO: _COMMON_VIEWS
    + (
        "minha_situacao.view",
        "entrega.submit",
        "resposta.submit",
    ),
    ROLE_INSTRUTOR: _COMMON_VIEWS
    + (
        "chamada.view",
        "relatorios.view",
        "alertas.view",
        "aula.create",
        "aula.edit",
        "material.create",
        "material.edit",
        "avaliacao.create",
        "avaliacao.edit",
        "tarefa.create",
        "tarefa.edit",
        "aviso.create",
        "aviso.edit",
        "presenca.manage",
        "alertas.resolve",
    ),
    ROLE_ADMIN: tuple(PERMISSIONS),
}

# Exact request paths -> permission required to open them.
ROUTE_PERMISSIONS: dict[str, str] = {
    "/dashboard": "dashboard.view",
    "/avisos": "avisos.view",
    "/calendario": "calendario.view",
    "/disciplinas": "disciplinas.view",
    "/materiais": "materiais.view",
    "/frequencia": "frequencia.view",
    "/avaliacoes": "avaliacoes.view",
    "/tarefas": "tarefas.view",
    "/minha-situacao": "minha_situacao.view",
    "/chamada": "chamada.view",
    "/relatorios": "relatorios.view",
    "/alertas": "alertas.view",
    "/admin/usuarios": "admin_usuarios.view",
    "/admin/turmas": "admin_turmas.view",
    "/admin/pelotoes": "admin_pelotoes.view",
}

# Sidebar entries: (label, path). Only paths served by this app are listed.
NAV_ITEMS: tuple[tuple[str, str], ...] = (
    ("Dashboard", "/dashboard"),
    ("Avisos", "/avisos"),
    ("Calendário", "/calendario"),
    ("Disciplinas", "/disciplinas"),
    ("Frequência", "/frequencia"),
    ("Minha Situação", "/minha-situacao"),
    ("Chamada", "/chamada"),
    ("Alertas", "/alertas"),
    ("Relatórios", "/relatorios"),
    ("Usuários", "/admin/usuarios"),
    ("Turmas", "/admin/turmas"),
    ("Pelotões", "/admin/pelotoes"),
)
