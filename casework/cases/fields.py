"""Closed registry of record fields.

Workflows address case fields by name (an edit suggestion names one field, a
proposal names many). Names are only ever resolved through this table; a name
that is not registered for the record type can never reach storage.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from casework.diff.engine import parse_timestamp
from casework.shared.errors import ValidationError


def _text(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        raise ValueError("expected text")
    return str(value).strip()


def _date(value: Any) -> Any:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or parse_timestamp(value) is None:
        raise ValueError("expected an ISO-8601 date")
    return value


def _integer(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    return int(value)


def _boolean(value: Any) -> Any:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValueError("expected true or false")
    return value


def _text_list(value: Any) -> Any:
    if value is None or value == "":
        return []
    if not isinstance(value, list):
        raise ValueError("expected a list")
    return [str(item).strip() for item in value if item not in (None, "")]


def _json_list(value: Any) -> Any:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("expected a list")
    return value


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str
    coerce: Callable[[Any], Any]

    def setter(self, fields: Dict[str, Any], value: Any) -> None:
        try:
            fields[self.name] = self.coerce(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid value for field '{self.name}': {exc}")


def _specs(**kinds: str) -> Dict[str, FieldSpec]:
    coercers = {
        "text": _text,
        "date": _date,
        "integer": _integer,
        "boolean": _boolean,
        "text_list": _text_list,
        "json_list": _json_list,
    }
    return {name: FieldSpec(name, kind, coercers[kind]) for name, kind in kinds.items()}


INCIDENT_FIELDS = _specs(
    subject_name="text",
    incident_date="date",
    incident_type="text",
    incident_types="text_list",
    city="text",
    state="text",
    country="text",
    facility="text",
    summary="text",
    cause_of_death="text",
    age="integer",
    gender="text",
    nationality="text",
    immigration_status="text",
    agencies_involved="text_list",
    tags="text_list",
    victims="json_list",
    media_coverage="json_list",
    outcome="text",
    custody_status="text",
    death_confirmed="boolean",
)

STATEMENT_FIELDS = _specs(
    headline="text",
    speaker_name="text",
    speaker_title="text",
    speaker_type="text",
    statement_date="date",
    statement_text="text",
    statement_type="text",
    context="text",
    platform="text",
    summary="text",
    tags="text_list",
    impact_level="text",
)

FIELD_REGISTRY: Dict[str, Dict[str, FieldSpec]] = {
    "incident": INCIDENT_FIELDS,
    "statement": STATEMENT_FIELDS,
}

# Superseded names folded into their canonical field on intake
LEGACY_ALIASES: Dict[str, str] = {
    "victim_name": "subject_name",
}


def _registry_for(record_type: Any) -> Dict[str, FieldSpec]:
    return FIELD_REGISTRY.get(getattr(record_type, "value", record_type), {})


def get_field(record_type: Any, name: str) -> FieldSpec:
    spec = _registry_for(record_type).get(name)
    if spec is None:
        kind = getattr(record_type, "value", record_type)
        raise ValidationError(f"Unknown field '{name}' for {kind} records")
    return spec


def is_known_field(record_type: Any, name: str) -> bool:
    return name in _registry_for(record_type)


def fold_legacy_aliases(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Move values under superseded names onto the canonical name.

    The canonical value wins when both are present and non-empty.
    """
    folded = dict(data)
    for alias, canonical in LEGACY_ALIASES.items():
        if alias not in folded:
            continue
        legacy_value = folded.pop(alias)
        if folded.get(canonical) in (None, ""):
            folded[canonical] = legacy_value
    return folded


def build_fields(record_type: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate and coerce a full field map; unknown names are rejected."""
    fields: Dict[str, Any] = {}
    for name, value in fold_legacy_aliases(data).items():
        get_field(record_type, name).setter(fields, value)
    return fields
