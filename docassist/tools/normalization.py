"""Colombian-locale canonicalization rules applied to collected field values.

Rules are selected from whole-word hints in the field key (Spanish and English)
and are deterministic: applying them twice yields the same text as applying
them once. Values that are not entirely of a rule's kind are left as written.
"""

from __future__ import annotations

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping

from ..utils.json_encoding import stringify_value

MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)

CITY_REGIONS: dict[str, str] = {
    "bogota": "BOGOTÁ, CUNDINAMARCA",
    "bogota d.c.": "BOGOTÁ, CUNDINAMARCA",
    "medellin": "MEDELLÍN, ANTIOQUIA",
    "cali": "CALI, VALLE DEL CAUCA",
    "barranquilla": "BARRANQUILLA, ATLÁNTICO",
    "cartagena": "CARTAGENA, BOLÍVAR",
    "cucuta": "CÚCUTA, NORTE DE SANTANDER",
    "bucaramanga": "BUCARAMANGA, SANTANDER",
    "pereira": "PEREIRA, RISARALDA",
    "manizales": "MANIZALES, CALDAS",
    "ibague": "IBAGUÉ, TOLIMA",
    "santa marta": "SANTA MARTA, MAGDALENA",
    "villavicencio": "VILLAVICENCIO, META",
    "pasto": "PASTO, NARIÑO",
    "monteria": "MONTERÍA, CÓRDOBA",
    "valledupar": "VALLEDUPAR, CESAR",
    "neiva": "NEIVA, HUILA",
    "armenia": "ARMENIA, QUINDÍO",
    "popayan": "POPAYÁN, CAUCA",
    "sincelejo": "SINCELEJO, SUCRE",
    "florencia": "FLORENCIA, CAQUETÁ",
    "tunja": "TUNJA, BOYACÁ",
    "quibdo": "QUIBDÓ, CHOCÓ",
    "riohacha": "RIOHACHA, LA GUAJIRA",
    "yopal": "YOPAL, CASANARE",
    "mocoa": "MOCOA, PUTUMAYO",
    "leticia": "LETICIA, AMAZONAS",
}

ADDRESS_ABBREVIATIONS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern), replacement)
    for pattern, replacement in (
        (r"\b(?:CL|CLL|CLLE)\b\.?", "CALLE"),
        (r"\b(?:CRA|KRA|KR|CR|CARR)\b\.?", "CARRERA"),
        (r"\b(?:AV|AVDA|AVE)\b\.?", "AVENIDA"),
        (r"\b(?:DG|DIAG)\b\.?", "DIAGONAL"),
        (r"\b(?:TV|TR|TRANSV)\b\.?", "TRANSVERSAL"),
        (r"\bCIRC\b\.?", "CIRCULAR"),
        (r"\b(?:APTO|APT|AP)\b\.?", "APARTAMENTO"),
        (r"\bOF\b\.?", "OFICINA"),
        (r"\bLC\b\.?", "LOCAL"),
        (r"\bBRR\b\.?", "BARRIO"),
        (r"\b(?:URB|URBANIZACION)\b\.?", "URBANIZACIÓN"),
        (r"\b(?:ED|EDIF)\b\.?", "EDIFICIO"),
    )
)

_DOCUMENT = re.compile(
    r"(?:(?:c\.?\s*c|c\.?\s*e|t\.?\s*i|nit|pasaporte)\.?\s*(?:no\.?|n[°º]|#)?\s*)?"
    r"(?P<number>\d[\d.,\s]*?)(?:\s*-\s*(?P<check>\d))?",
    re.IGNORECASE,
)
_CURRENCY = re.compile(
    r"(?:\$|cop)?\s*(?P<amount>\d[\d.,\s]*?)\s*(?:cop|pesos?|m/?cte\.?)?\s*(?:\([^()]*pesos?\))?",
    re.IGNORECASE,
)
_DATE_NUMERIC_DMY = re.compile(r"(\d{1,2})\s*[/\-.]\s*(\d{1,2})\s*[/\-.]\s*(\d{4})")
_DATE_NUMERIC_YMD = re.compile(r"(\d{4})\s*[/\-.]\s*(\d{1,2})\s*[/\-.]\s*(\d{1,2})")
_DATE_LONG = re.compile(r"(\d{1,2})\s+de\s+([a-záéíóú]+)\s+(?:de|del)\s+(\d{4})", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_KEY_SEPARATOR = re.compile(r"[^a-z]+")

_UNITS = (
    "cero", "uno", "dos", "tres", "cuatro", "cinco", "seis", "siete", "ocho", "nueve",
    "diez", "once", "doce", "trece", "catorce", "quince", "dieciséis", "diecisiete",
    "dieciocho", "diecinueve", "veinte", "veintiuno", "veintidós", "veintitrés",
    "veinticuatro", "veinticinco", "veintiséis", "veintisiete", "veintiocho", "veintinueve",
)
_TENS = ("", "", "", "treinta", "cuarenta", "cincuenta", "sesenta", "setenta", "ochenta", "noventa")
_HUNDREDS = (
    "", "ciento", "doscientos", "trescientos", "cuatrocientos", "quinientos",
    "seiscientos", "setecientos", "ochocientos", "novecientos",
)


def fold_key(value: str) -> str:
    """Lower-case ``value`` and strip diacritics, for key and lookup matching."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _WHITESPACE.sub(" ", stripped.lower()).strip()


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def normalize_name(value: str) -> str:
    return _collapse(value).upper()


def normalize_email(value: str) -> str:
    return _collapse(value).replace(" ", "").lower()


def normalize_document_number(value: str) -> str:
    """Group an identity number with dots; text that is not only a number is kept."""
    text = _collapse(value)
    match = _DOCUMENT.fullmatch(text)
    if match is None:
        return text
    grouped = group_thousands(re.sub(r"\D", "", match.group("number")))
    check = match.group("check")
    return f"{grouped}-{check}" if check else grouped


def normalize_date(value: str) -> str:
    text = _collapse(value)
    match = _DATE_LONG.fullmatch(text)
    if match:
        day, month_name, year = match.groups()
        month_key = fold_key(month_name)
        if month_key == "setiembre":
            month_key = "septiembre"
        if month_key in MONTHS and 1 <= int(day) <= 31:
            return f"{int(day)} de {month_key} de {year}"
        return text
    match = _DATE_NUMERIC_YMD.fullmatch(text)
    if match:
        year, month, day = match.groups()
    else:
        match = _DATE_NUMERIC_DMY.fullmatch(text)
        if not match:
            return text
        day, month, year = match.groups()
    if not (1 <= int(month) <= 12 and 1 <= int(day) <= 31):
        return text
    return f"{int(day)} de {MONTHS[int(month) - 1]} de {year}"


def normalize_currency(value: str) -> str:
    text = _collapse(value)
    match = _CURRENCY.fullmatch(text)
    if match is None:
        return text
    amount = parse_amount(match.group("amount"))
    if amount is None:
        return text
    integer = int(amount)
    fraction = amount - integer
    formatted = group_thousands(str(integer))
    if fraction:
        cents = int((fraction * 100).quantize(Decimal("1")))
        formatted = f"{formatted},{cents:02d}"
    return f"{formatted} ({amount_in_words(integer)})"


def normalize_city(value: str) -> str:
    text = _collapse(value)
    canonical = CITY_REGIONS.get(fold_key(text))
    if canonical is not None:
        return canonical
    if "," in text:
        return text.upper()
    return f"{text.upper()}, COLOMBIA"


def normalize_address(value: str) -> str:
    text = _collapse(value).upper()
    for pattern, replacement in ADDRESS_ABBREVIATIONS:
        text = pattern.sub(replacement, text)
    return _collapse(text)


# first match wins; multi-word hints are joined with underscores
_RULES: tuple[tuple[tuple[str, ...], Callable[[str], str]], ...] = (
    (("email", "correo", "mail"), normalize_email),
    (("nombre", "apellido", "name"), normalize_name),
    (("cedula", "documento", "nit", "identificacion", "id_number"), normalize_document_number),
    (("fecha", "date"), normalize_date),
    (("ciudad", "municipio", "ubicacion", "city"), normalize_city),
    (("direccion", "address"), normalize_address),
    (("salario", "valor", "precio", "monto", "canon", "amount", "price", "salary"), normalize_currency),
)


def key_tokens(key: str) -> tuple[str, ...]:
    """Split a field key into folded words: ``fechaFirma`` and ``fecha-firma`` give ``("fecha", "firma")``."""
    folded = fold_key(_CAMEL_BOUNDARY.sub(" ", key))
    return tuple(token for token in _KEY_SEPARATOR.split(folded) if token)


def _has_hint(tokens: tuple[str, ...], hint: str) -> bool:
    words = tuple(hint.split("_"))
    last = words[-1]
    plurals = (last, f"{last}s", f"{last}es")
    for start in range(len(tokens) - len(words) + 1):
        window = tokens[start : start + len(words)]
        if window[:-1] == words[:-1] and window[-1] in plurals:
            return True
    return False


def rule_for_key(key: str) -> Callable[[str], str] | None:
    tokens = key_tokens(key)
    for hints, rule in _RULES:
        if any(_has_hint(tokens, hint) for hint in hints):
            return rule
    return None


def normalize_value(key: str, value: Any) -> str:
    text = stringify_value(value)
    if not text.strip():
        return ""
    rule = rule_for_key(key)
    if rule is None:
        return text.strip()
    return rule(text)


def normalize_mapping(raw: Mapping[str, Any]) -> dict[str, str]:
    return {str(key): normalize_value(str(key), value) for key, value in raw.items()}


def parse_amount(value: str) -> Decimal | None:
    """Parse an amount written with Colombian or international separators."""
    cleaned = re.sub(r"[^\d.,]", "", value)
    if not re.search(r"\d", cleaned):
        return None
    if "," in cleaned and "." in cleaned:
        decimal_sep = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        cleaned = cleaned.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in cleaned or "." in cleaned:
        separator = "," if "," in cleaned else "."
        parts = cleaned.split(separator)
        if len(parts) > 2 or len(parts[-1]) == 3:
            cleaned = "".join(parts)
        else:
            cleaned = ".".join(parts)
    cleaned = cleaned.strip(".")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def amount_in_words(amount: int) -> str:
    """Spell a peso amount in Spanish, e.g. ``1500000`` -> ``un millón quinientos mil pesos``."""
    if amount == 1:
        return "un peso"
    words = spell_number(amount, apocope=True)
    if amount >= 1_000_000 and amount % 1_000_000 == 0:
        return f"{words} de pesos"
    return f"{words} pesos"


def spell_number(number: int, *, apocope: bool = False) -> str:
    if number < 0:
        return f"menos {spell_number(-number, apocope=apocope)}"
    if number < 1_000_000:
        return _spell_below_million(number, apocope=apocope)
    millions, remainder = divmod(number, 1_000_000)
    head = "un millón" if millions == 1 else f"{_spell_below_million(millions, apocope=True)} millones"
    if remainder == 0:
        return head
    return f"{head} {_spell_below_million(remainder, apocope=apocope)}"


def _spell_below_million(number: int, *, apocope: bool) -> str:
    if number < 1000:
        return _spell_below_thousand(number, apocope=apocope)
    thousands, remainder = divmod(number, 1000)
    head = "mil" if thousands == 1 else f"{_spell_below_thousand(thousands, apocope=True)} mil"
    if remainder == 0:
        return head
    return f"{head} {_spell_below_thousand(remainder, apocope=apocope)}"


def _spell_below_thousand(number: int, *, apocope: bool) -> str:
    if number == 100:
        return "cien"
    hundreds, remainder = divmod(number, 100)
    parts: list[str] = []
    if hundreds:
        parts.append(_HUNDREDS[hundreds])
    if remainder or not parts:
        parts.append(_spell_below_hundred(remainder, apocope=apocope))
    return " ".join(parts)


def _spell_below_hundred(number: int, *, apocope: bool) -> str:
    if number < 30:
        word = _UNITS[number]
    else:
        tens, units = divmod(number, 10)
        word = _TENS[tens] if units == 0 else f"{_TENS[tens]} y {_UNITS[units]}"
    if apocope:
        if word.endswith("veintiuno"):
            return word[: -len("veintiuno")] + "veintiún"
        if word.endswith("uno"):
            return word[:-1]
    return word


def group_thousands(digits: str) -> str:
    return re.sub(r"\B(?=(\d{3})+(?!\d))", ".", digits)


__all__ = [
    "CITY_REGIONS",
    "MONTHS",
    "amount_in_words",
    "fold_key",
    "group_thousands",
    "key_tokens",
    "normalize_address",
    "normalize_city",
    "normalize_currency",
    "normalize_date",
    "normalize_document_number",
    "normalize_email",
    "normalize_mapping",
    "normalize_name",
    "normalize_value",
    "parse_amount",
    "rule_for_key",
    "spell_number",
]
