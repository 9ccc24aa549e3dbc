from __future__ import annotations

from docassist.orchestration.synthesis import (
    FieldDescriptor,
    build_placeholder_mapping,
    canonical_token,
    missing_fields,
    synthesize,
)

from tests.helpers.stubs import TEMPLATE, make_profile

FIELDS = make_profile().template.fields


def test_canonical_token_strips_brackets() -> None:
    assert canonical_token("{{CITY}}") == "CITY"
    assert canonical_token("{{ CITY }}") == "CITY"
    assert canonical_token("NAME") == "NAME"


def test_all_fields_resolved_and_normalized() -> None:
    result = synthesize(TEMPLATE, FIELDS, {"name": "Ana Gómez", "city": "cali"})

    assert result.text == "Yo, ANA GÓMEZ, domiciliado en CALI, VALLE DEL CAUCA, declaro lo siguiente."
    assert result.unresolved == []
    assert result.complete


def test_missing_field_stays_bracketed_and_is_reported() -> None:
    result = synthesize(TEMPLATE, FIELDS, {"name": "Ana Gómez"})

    assert result.unresolved == ["CITY"]
    assert result.unresolved_required == ["CITY"]
    assert "{{CITY}}" in result.text
    assert "ANA GÓMEZ" in result.text
    assert not result.complete


def test_placeholder_mapping_takes_precedence_over_collected_data() -> None:
    result = synthesize(TEMPLATE, FIELDS, {"name": "Ana", "city": "Cali"}, {"NAME": "Luis Pérez"})

    assert "LUIS PÉREZ" in result.text
    assert "ANA" not in result.text


def test_value_found_by_prompt_text() -> None:
    result = synthesize(TEMPLATE, FIELDS, {"name": "Ana", "¿En qué ciudad reside?": "Bogotá"})

    assert "BOGOTÁ, CUNDINAMARCA" in result.text
    assert result.complete


def test_fuzzy_key_match_is_the_last_resort() -> None:
    result = synthesize(TEMPLATE, FIELDS, {"full_name": "ana"})

    assert "Yo, ANA," in result.text
    assert result.unresolved == ["CITY"]


def test_field_names_that_only_contain_a_hint_keep_their_value() -> None:
    fields = [FieldDescriptor(name="plazo_definitivo", placeholder="PLAZO")]

    result = synthesize("Plazo: {{PLAZO}}", fields, {"plazo_definitivo": "12 meses"})

    assert result.text == "Plazo: 12 meses"


def test_bare_tokens_are_replaced_when_no_bracketed_form_exists() -> None:
    result = synthesize("Firmado: NAME en CITY. NAMES no cambia.", FIELDS, {"name": "Ana", "city": "Cali"})

    assert result.text == "Firmado: ANA en CALI, VALLE DEL CAUCA. NAMES no cambia."


def test_observations_are_appended_after_substitution() -> None:
    result = synthesize(TEMPLATE, FIELDS, {"name": "Ana", "city": "Cali"}, observations="Entregar en dos copias")

    assert result.text.endswith("\n\nAdditional observations: Entregar en dos copias")


def test_optional_fields_do_not_block_completion() -> None:
    fields = [*FIELDS, FieldDescriptor(name="notes", placeholder="NOTES", required=False)]

    result = synthesize(TEMPLATE + " {{NOTES}}", fields, {"name": "Ana", "city": "Cali"})

    assert result.unresolved == ["NOTES"]
    assert result.unresolved_required == []
    assert result.complete


def test_build_placeholder_mapping_uses_field_metadata() -> None:
    mapping = build_placeholder_mapping(
        {"name": "Ana", "¿En qué ciudad reside?": "Cali", "extra": "x"},
        FIELDS,
    )

    assert mapping == {"NAME": "Ana", "CITY": "Cali", "extra": "x"}


def test_missing_fields_lists_prompts_and_blank_values() -> None:
    assert missing_fields({"name": "Ana", "note": "  "}, FIELDS) == ["¿En qué ciudad reside?", "note"]
    assert missing_fields({"NAME": "Ana", "CITY": "Cali"}, FIELDS) == []
