from __future__ import annotations

import re
from datetime import date, datetime, time

_NON_DIGIT = re.compile(r"\D")


def only_digits(value: str | None) -> str:
    return _NON_DIGIT.sub("", value or "")


def strip_or_none(value: str | None) -> str | None:
    return (value or "").strip() or None


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD; blank or malformed input gives None."""
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def parse_time(s: str | None) -> time | None:
    """Parse HH:MM (or HH:MM:SS); blank or malformed input gives None."""
    s = (s or "").strip()
    if not s:
        return None
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(s, fmt).time()
        except ValueError:
            continue
    return None


def age_on(birth: date, today: date) -> int:
    years = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        years -= 1
    return years


# ---------- Input masks ----------
# Each mask keeps digits only and formats progressively while typing, so a
# partial value ("1234") becomes a partial mask ("123.4"). Extra digits are cut.


def mask_cpf(value: str | None) -> str:
    v = only_digits(value)
    v = re.sub(r"(\d{3})(\d)", r"\1.\2", v, count=1)
    v = re.sub(r"(\d{3})(\d)", r"\1.\2", v, count=1)
    v = re.sub(r"(\d{3})(\d{1,2})", r"\1-\2", v, count=1)
    return re.sub(r"(-\d{2})\d+?$", r"\1", v, count=1)


def mask_telefone(value: str | None) -> str:
    v = only_digits(value)
    v = re.sub(r"(\d{2})(\d)", r"(\1) \2", v, count=1)
    v = re.sub(r"(\d{5})(\d)", r"\1-\2", v, count=1)
    return re.sub(r"(-\d{4})\d+?$", r"\1", v, count=1)


def mask_cep(value: str | None) -> str:
    v = only_digits(value)
    v = re.sub(r"(\d{5})(\d)", r"\1-\2", v, count=1)
    return re.sub(r"(-\d{3})\d+?$", r"\1", v, count=1)


MASKS = {
    "cpf": mask_cpf,
    "telefone": mask_telefone,
    "cep": mask_cep,
}


def apply_mask(mask_type: str, value: str | None) -> str:
    try:
        return MASKS[mask_type](value)
    except KeyError:
        raise ValueError(f"Unknown mask type: {mask_type}")


def validar_cpf(cpf: str | None) -> bool:
    """Check the two CPF verification digits. Repeated-digit CPFs are invalid."""
    numeros = only_digits(cpf)
    if len(numeros) != 11:
        return False
    if numeros == numeros[0] * 11:
        return False

    soma = sum(int(numeros[i]) * (10 - i) for i in range(9))
    resto = 11 - (soma % 11)
    digito1 = 0 if resto in (10, 11) else resto
    if digito1 != int(numeros[9]):
        return False

    soma = sum(int(numeros[i]) * (11 - i) for i in range(10))
    resto = 11 - (soma % 11)
    digito2 = 0 if resto in (10, 11) else resto
    return digito2 == int(numeros[10])
