"""
Profile payload validators.

Each validator takes the nested payload for one wizard step (the same shape
is used by the settings tabs) and returns a list of human-readable errors.
An empty list means the payload may be saved.
"""
from __future__ import annotations

import re
from datetime import date

from app.academia.utils import age_on, parse_date, validar_cpf

CPF_RE = re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}$")
TELEFONE_RE = re.compile(r"^\(\d{2}\) \d{5}-\d{4}$")
CEP_RE = re.compile(r"^\d{5}-\d{3}$")
UF_RE = re.compile(r"^[A-Z]{2}$")
ANO_RE = re.compile(r"^\d{4}$")

SEXOS = ("Masculino", "Feminino", "Outro", "Prefiro não informar")
TIPOS_SANGUINEOS = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")
CATEGORIAS_CNH = ("A", "B", "AB", "C", "D", "E", "AC", "AD", "AE")
IDADE_MINIMA = 16


def _text(payload: dict, key: str) -> str:
    return str(payload.get(key) or "").strip()


def validate_perfil_basico(payload: dict) -> list[str]:
    errors = []
    nome = _text(payload, "nome")
    if len(nome) < 3:
        errors.append("Nome deve ter pelo menos 3 caracteres.")
    elif len(nome) > 100:
        errors.append("Nome muito longo.")
    telefone = _text(payload, "telefone")
    if not telefone:
        errors.append("Telefone é obrigatório.")
    elif not TELEFONE_RE.match(telefone):
        errors.append("Telefone deve estar no formato (00) 00000-0000.")
    if payload.get("possui_cnh"):
        categoria = _text(payload, "categoria_cnh").upper()
        if categoria not in CATEGORIAS_CNH:
            errors.append("Selecione a categoria da CNH.")
    return errors


def validate_step1(payload: dict, *, today: date | None = None) -> list[str]:
    """Identificação e contato."""
    errors = []
    cpf = _text(payload, "cpf")
    if not cpf:
        errors.append("CPF é obrigatório.")
    elif not CPF_RE.match(cpf):
        errors.append("CPF deve estar no formato 000.000.000-00.")
    elif not validar_cpf(cpf):
        errors.append("CPF inválido.")

    raw_nascimento = _text(payload, "data_nascimento")
    nascimento = parse_date(raw_nascimento)
    if not raw_nascimento:
        errors.append("Data de nascimento é obrigatória.")
    elif nascimento is None:
        errors.append("Data de nascimento inválida.")
    elif age_on(nascimento, today or date.today()) < IDADE_MINIMA:
        errors.append(f"Idade mínima é {IDADE_MINIMA} anos.")

    sexo = _text(payload, "sexo")
    if sexo and sexo not in SEXOS:
        errors.append("Selecione uma opção de sexo válida.")

    if _text(payload, "tipo_sanguineo") not in TIPOS_SANGUINEOS:
        errors.append("Tipo sanguíneo é obrigatório.")

    contato = payload.get("contato_emergencia") or {}
    if len(_text(contato, "nome")) < 3:
        errors.append("Contato de emergência: nome deve ter pelo menos 3 caracteres.")
    if len(_text(contato, "parentesco")) < 2:
        errors.append("Contato de emergência: parentesco é obrigatório.")
    if not TELEFONE_RE.match(_text(contato, "telefone")):
        errors.append("Contato de emergência: telefone deve estar no formato (00) 00000-0000.")
    return errors


def validate_step2(payload: dict) -> list[str]:
    """Endereço."""
    errors = []
    endereco = payload.get("endereco") or {}
    cep = _text(endereco, "cep")
    if not cep:
        errors.append("CEP é obrigatório.")
    elif not CEP_RE.match(cep):
        errors.append("CEP deve estar no formato 00000-000.")
    if len(_text(endereco, "logradouro")) < 3:
        errors.append("Logradouro é obrigatório.")
    if not _text(endereco, "numero"):
        errors.append("Número é obrigatório.")
    if len(_text(endereco, "bairro")) < 2:
        errors.append("Bairro é obrigatório.")
    if len(_text(endereco, "cidade")) < 2:
        errors.append("Cidade é obrigatória.")
    uf = _text(endereco, "uf")
    if len(uf) != 2:
        errors.append("UF deve ter 2 caracteres.")
    elif not UF_RE.match(uf):
        errors.append("UF deve conter apenas letras maiúsculas.")
    return errors


def validate_step3(payload: dict) -> list[str]:
    """Formação e experiência. Every list is optional; filled entries must be complete."""
    errors = []
    cursos = payload.get("cursos_operacionais")
    if cursos is not None and not isinstance(cursos, list):
        errors.append("Cursos operacionais inválidos.")

    for i, item in enumerate(payload.get("formacao_academica") or [], start=1):
        if not _text(item, "nivel"):
            errors.append(f"Formação {i}: nível é obrigatório.")
        if not _text(item, "curso"):
            errors.append(f"Formação {i}: curso é obrigatório.")
        if not _text(item, "instituicao"):
            errors.append(f"Formação {i}: instituição é obrigatória.")
        if not ANO_RE.match(_text(item, "ano")):
            errors.append(f"Formação {i}: ano deve ter 4 dígitos.")

    for i, item in enumerate(payload.get("experiencia_profissional") or [], start=1):
        if not _text(item, "cargo"):
            errors.append(f"Experiência {i}: cargo é obrigatório.")
        if not _text(item, "instituicao_empresa"):
            errors.append(f"Experiência {i}: instituição/empresa é obrigatória.")
        if not _text(item, "periodo_inicio"):
            errors.append(f"Experiência {i}: período de início é obrigatório.")
        if not _text(item, "periodo_fim"):
            errors.append(f"Experiência {i}: período de fim é obrigatório.")
    return errors


def validate_step4(payload: dict) -> list[str]:
    """Saúde."""
    saude = payload.get("saude") or {}
    if saude.get("doenca_cronica") and not _text(saude, "doenca_cronica_qual"):
        return ["Especifique qual doença crônica."]
    return []


STEP_VALIDATORS = {
    1: validate_step1,
    2: validate_step2,
    3: validate_step3,
    4: validate_step4,
}


def validate_step(step: int, payload: dict) -> list[str]:
    try:
        validator = STEP_VALIDATORS[step]
    except KeyError:
        raise ValueError(f"Etapa inválida: {step}")
    return validator(payload)
