from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from pydantic import BaseModel, Field

from ..tools.normalization import normalize_value, rule_for_key

_BRACKETED = re.compile(r"^\{\{\s*(.+?)\s*\}\}$")


def canonical_token(placeholder: str) -> str:
    """Return the bare token for ``NAME`` or ``{{NAME}}``."""
    text = placeholder.strip()
    match = _BRACKETED.match(text)
    return match.group(1) if match else text


def bracketed(token: str) -> str:
    return "{{" + token + "}}"


class FieldDescriptor(BaseModel):
    """A template field: its data key, placeholder token and the question that collects it."""

    name: str = ""
    placeholder: str = Field(min_length=1)
    prompt: str = ""
    required: bool = True

    @property
    def token(self) -> str:
        return canonical_token(self.placeholder)

    @property
    def key(self) -> str:
        return self.name or self.token

    @property
    def label(self) -> str:
        return self.prompt or self.token or self.name

    def matches_key(self, key: str) -> bool:
        return key in {self.name, self.token, self.placeholder.strip(), self.prompt} - {""}


class DocumentTemplate(BaseModel):
    content: str
    fields: list[FieldDescriptor] = Field(default_factory=list)


@dataclass(slots=True)
class SynthesisResult:
    text: str
    unresolved: list[str] = field(default_factory=list)
    unresolved_required: list[str] = field(default_factory=list)
    resolved: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.unresolved_required


def _present(value: str | None) -> bool:
    return value is not None and bool(str(value).strip())


def resolve_field(
    descriptor: FieldDescriptor,
    collected_data: Mapping[str, str],
    placeholder_mapping: Mapping[str, str],
) -> str | None:
    token = descriptor.token
    for candidate in (token, bracketed(token), descriptor.name):
        if candidate and _present(placeholder_mapping.get(candidate)):
            return placeholder_mapping[candidate]
    for candidate in (descriptor.name, token, descriptor.prompt):
        if candidate and _present(collected_data.get(candidate)):
            return collected_data[candidate]
    needle = descriptor.key.lower()
    for key, value in collected_data.items():
        lowered = key.lower()
        if not lowered or not _present(value):
            continue
        if needle in lowered or lowered in needle:
            return value
    return None


def _normalize(descriptor: FieldDescriptor, value: str) -> str:
    hint = descriptor.name if descriptor.name and rule_for_key(descriptor.name) else descriptor.token
    return normalize_value(hint, value)


def synthesize(
    template: str,
    fields: Iterable[FieldDescriptor],
    collected_data: Mapping[str, str],
    placeholder_mapping: Mapping[str, str] | None = None,
    *,
    observations: str | None = None,
) -> SynthesisResult:
    """Substitute resolved field values into ``template``.

    Unresolved tokens stay as ``{{TOKEN}}`` in the text and are reported in
    declaration order. Nothing is written anywhere; callers decide whether a
    result with unresolved required tokens may be emitted.
    """
    mapping = placeholder_mapping or {}
    text = template
    result = SynthesisResult(text=template)
    for descriptor in fields:
        token = descriptor.token
        if token in result.resolved or token in result.unresolved:
            continue
        value = resolve_field(descriptor, collected_data, mapping)
        if value is None:
            result.unresolved.append(token)
            if descriptor.required:
                result.unresolved_required.append(token)
            text = _bracket_bare_occurrences(text, token)
            continue
        rendered = _normalize(descriptor, value)
        result.resolved[token] = rendered
        text = _substitute(text, token, rendered)
    if observations and observations.strip():
        text = f"{text}\n\nAdditional observations: {observations.strip()}"
    result.text = text
    return result


def _bracket_pattern(token: str) -> re.Pattern[str]:
    return re.compile(r"\{\{\s*" + re.escape(token) + r"\s*\}\}")


def _bare_pattern(token: str) -> re.Pattern[str]:
    return re.compile(r"(?<![\w{])" + re.escape(token) + r"(?![\w}])")


def _substitute(text: str, token: str, value: str) -> str:
    bracket = _bracket_pattern(token)
    if bracket.search(text):
        return bracket.sub(lambda _: value, text)
    return _bare_pattern(token).sub(lambda _: value, text)


def _bracket_bare_occurrences(text: str, token: str) -> str:
    if _bracket_pattern(token).search(text):
        return text
    return _bare_pattern(token).sub(lambda _: bracketed(token), text)


def build_placeholder_mapping(
    collected_data: Mapping[str, str],
    fields: Iterable[FieldDescriptor],
) -> dict[str, str]:
    """Map template tokens to collected values, falling back to the raw key."""
    descriptors = list(fields)
    mapping: dict[str, str] = {}
    for key, value in collected_data.items():
        descriptor = next((item for item in descriptors if item.matches_key(key)), None)
        mapping[descriptor.token if descriptor is not None else key] = value
    return mapping


def missing_fields(
    collected_data: Mapping[str, str],
    fields: Iterable[FieldDescriptor],
) -> list[str]:
    """Labels of required fields without a value, plus any blank collected entry."""
    descriptors = list(fields)
    missing: list[str] = []
    for descriptor in descriptors:
        if not descriptor.required:
            continue
        found = any(
            _present(collected_data.get(candidate))
            for candidate in (descriptor.name, descriptor.token, descriptor.prompt)
            if candidate
        )
        if not found and descriptor.label not in missing:
            missing.append(descriptor.label)
    for key, value in collected_data.items():
        if _present(value):
            continue
        owner = next((item for item in descriptors if item.matches_key(key)), None)
        label = owner.label if owner is not None else key
        if label not in missing:
            missing.append(label)
    return missing


__all__ = [
    "DocumentTemplate",
    "FieldDescriptor",
    "SynthesisResult",
    "bracketed",
    "build_placeholder_mapping",
    "canonical_token",
    "missing_fields",
    "resolve_field",
    "synthesize",
]
