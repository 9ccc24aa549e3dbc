from __future__ import annotations

import pytest

from docassist.tools.normalization import (
    amount_in_words,
    key_tokens,
    normalize_address,
    normalize_city,
    normalize_currency,
    normalize_date,
    normalize_document_number,
    normalize_mapping,
    normalize_value,
    parse_amount,
)


def test_names_are_upper_cased_with_diacritics_preserved() -> None:
    assert normalize_value("nombre_completo", "  ana   gómez ") == "ANA GÓMEZ"
    assert normalize_value("NAME", "josé núñez") == "JOSÉ NÚÑEZ"


def test_document_numbers_are_grouped_with_dots() -> None:
    assert normalize_document_number("1234567890") == "1.234.567.890"
    assert normalize_document_number("C.C. 1.020.304") == "1.020.304"
    assert normalize_value("Cédula", "79 123 456") == "79.123.456"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("5/3/2024", "5 de marzo de 2024"),
        ("2024-03-05", "5 de marzo de 2024"),
        ("05 de Marzo de 2024", "5 de marzo de 2024"),
        ("1 de setiembre de 2023", "1 de septiembre de 2023"),
    ],
)
def test_dates_use_long_spanish_format(raw: str, expected: str) -> None:
    assert normalize_date(raw) == expected


def test_invalid_dates_are_left_untouched() -> None:
    assert normalize_date("13/13/2024") == "13/13/2024"
    assert normalize_date("mañana") == "mañana"


def test_currency_renders_digits_and_words() -> None:
    assert normalize_currency("1500000") == "1.500.000 (un millón quinientos mil pesos)"
    assert normalize_currency("$2.000.000") == "2.000.000 (dos millones de pesos)"
    assert normalize_currency("1.500,50") == "1.500,50 (mil quinientos pesos)"


def test_amount_in_words_applies_apocope() -> None:
    assert amount_in_words(1) == "un peso"
    assert amount_in_words(21000) == "veintiún mil pesos"
    assert amount_in_words(101) == "ciento un pesos"
    assert amount_in_words(100) == "cien pesos"
    assert amount_in_words(3_250_000) == "tres millones doscientos cincuenta mil pesos"


def test_parse_amount_understands_both_separator_styles() -> None:
    assert parse_amount("1,250.75") == parse_amount("1.250,75")
    assert parse_amount("sin valor") is None


def test_known_cities_gain_their_department() -> None:
    assert normalize_city("cali") == "CALI, VALLE DEL CAUCA"
    assert normalize_city("Medellín") == "MEDELLÍN, ANTIOQUIA"
    assert normalize_city("Jamundí") == "JAMUNDÍ, COLOMBIA"


def test_addresses_expand_abbreviations() -> None:
    assert normalize_address("cra 5 # 10-20 apto 301") == "CARRERA 5 # 10-20 APARTAMENTO 301"
    assert normalize_address("Cl. 80 No. 12-30 of 402") == "CALLE 80 NO. 12-30 OFICINA 402"


def test_normalization_is_stable_when_applied_twice() -> None:
    raw = {
        "nombre": "ana gómez",
        "cedula": "1020304",
        "fecha": "5/3/2024",
        "ciudad": "cali",
        "direccion": "cra 5 # 10-20",
        "valor": "1500000",
    }
    once = normalize_mapping(raw)
    assert normalize_mapping(once) == once


def test_unmatched_keys_are_only_trimmed() -> None:
    assert normalize_mapping({"observaciones": "  Sin novedad\n ", "edad": 34}) == {
        "observaciones": "Sin novedad",
        "edad": "34",
    }


@pytest.mark.parametrize(
    ("key", "raw"),
    [
        ("plazo_definitivo", "12 meses"),
        ("cantidad_unitaria", "3 cajas"),
        ("update_notes", "revisar 3/4/2024 y lote 7"),
        ("mandate_ref", "5/3/2024"),
    ],
)
def test_hints_match_whole_words_of_the_key(key: str, raw: str) -> None:
    assert normalize_value(key, raw) == raw


def test_key_words_split_on_separators_and_camel_case() -> None:
    assert key_tokens("fechaFirma") == ("fecha", "firma")
    assert key_tokens("Número-de documento") == ("numero", "de", "documento")
    assert normalize_value("fechaFirma", "5/3/2024") == "5 de marzo de 2024"
    assert normalize_value("nombres", "ana") == "ANA"
    assert normalize_value("precio_unitario", "45000") == "45.000 (cuarenta y cinco mil pesos)"


def test_email_keys_are_not_treated_as_addresses() -> None:
    assert normalize_value("email_address", "ana.ap@example.com") == "ana.ap@example.com"
    assert normalize_value("correo", " Ana.AP@Example.com ") == "ana.ap@example.com"
    assert normalize_value("direccion_oficina", "cl 80 ap 2") == "CALLE 80 APARTAMENTO 2"


def test_rules_keep_values_that_are_not_entirely_their_kind() -> None:
    assert normalize_value("cedula", "pendiente, la envía mañana 12") == "pendiente, la envía mañana 12"
    assert normalize_value("fecha_firma", "revisar 3/4/2024 y lote 7") == "revisar 3/4/2024 y lote 7"
    assert normalize_value("valor", "12 meses") == "12 meses"
    assert normalize_currency("$ 2.000.000 COP") == "2.000.000 (dos millones de pesos)"


def test_tax_id_check_digit_is_kept() -> None:
    assert normalize_document_number("NIT 900123456-7") == "900.123.456-7"
    assert normalize_document_number("900.123.456-7") == "900.123.456-7"
