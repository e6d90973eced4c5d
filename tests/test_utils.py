from datetime import date, time

import pytest

from app.academia.utils import (
    age_on,
    apply_mask,
    mask_cep,
    mask_cpf,
    mask_telefone,
    parse_date,
    parse_time,
    validar_cpf,
)


def test_mask_cpf_full_and_partial():
    assert mask_cpf("52998224725") == "529.982.247-25"
    assert mask_cpf("529.982.247-25") == "529.982.247-25"
    assert mask_cpf("1234") == "123.4"
    assert mask_cpf("5299822472599") == "529.982.247-25"
    assert mask_cpf("") == ""
    assert mask_cpf(None) == ""


def test_mask_telefone():
    assert mask_telefone("11987654321") == "(11) 98765-4321"
    assert mask_telefone("119") == "(11) 9"
    assert mask_telefone("1198765432100") == "(11) 98765-4321"


def test_mask_cep():
    assert mask_cep("01310100") == "01310-100"
    assert mask_cep("013") == "013"
    assert mask_cep("0131010099") == "01310-100"


def test_apply_mask_unknown_type():
    assert apply_mask("cep", "01310100") == "01310-100"
    with pytest.raises(ValueError):
        apply_mask("rg", "123")


def test_validar_cpf():
    assert validar_cpf("529.982.247-25")
    assert validar_cpf("52998224725")
    assert not validar_cpf("529.982.247-26")
    assert not validar_cpf("111.111.111-11")
    assert not validar_cpf("123")
    assert not validar_cpf(None)


def test_parse_date_and_time():
    assert parse_date("2024-03-01") == date(2024, 3, 1)
    assert parse_date("01/03/2024") is None
    assert parse_date("") is None
    assert parse_time("08:30") == time(8, 30)
    assert parse_time("08:30:15") == time(8, 30, 15)
    assert parse_time("8h30") is None


def test_age_on_birthday_boundary():
    assert age_on(date(2008, 6, 15), date(2024, 6, 14)) == 15
    assert age_on(date(2008, 6, 15), date(2024, 6, 15)) == 16
