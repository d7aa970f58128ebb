"""Noise-tolerant comparison of a live record against a proposed version.

Reviewers edit records through forms that round-trip values loosely: nulls
come back as empty strings, multi-selects come back reordered, dates come back
with a time component. ``values_effectively_equal`` treats all of those as the
same value so that only real edits show up as changed fields.
"""
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

# Nested evidence collections are diffed separately, never as plain fields
EVIDENCE_COLLECTIONS = ("quotes", "sources")

# Related collections carried on a proposal payload that are not record fields
RELATED_COLLECTIONS = frozenset({
    *EVIDENCE_COLLECTIONS,
    "media", "timeline", "agencies", "violations", "field_quote_map",
    "verified_fields", "verified_sources", "verified_quotes",
    "verified_timeline", "verified_media",
})

IDENTITY_AND_TIMESTAMP_FIELDS = frozenset({
    "id", "created_at", "updated_at", "submitted_at", "reviewed_at", "validated_at",
})

SKIP_FIELDS = IDENTITY_AND_TIMESTAMP_FIELDS | RELATED_COLLECTIONS

_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def is_absent(value: Any) -> bool:
    """None, empty string and empty list all mean "no value"."""
    return value is None or value == "" or (isinstance(value, list) and len(value) == 0)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 date or timestamp; date-only and naive values are UTC."""
    if not _DATE_PREFIX.match(value):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def values_effectively_equal(original: Any, proposed: Any) -> bool:
    if is_absent(original) and is_absent(proposed):
        return True

    if isinstance(original, list) and isinstance(proposed, list):
        return sorted(_canonical(v) for v in original) == sorted(_canonical(v) for v in proposed)

    if isinstance(original, str) and isinstance(proposed, str):
        original_instant = parse_timestamp(original)
        proposed_instant = parse_timestamp(proposed)
        if original_instant is not None and proposed_instant is not None:
            return original_instant == proposed_instant
        return original == proposed

    return _canonical(original) == _canonical(proposed)


def changed_fields(
    original: Mapping[str, Any],
    proposed: Mapping[str, Any],
    skip: Iterable[str] = SKIP_FIELDS,
) -> List[str]:
    """Names of fields in ``original`` whose proposed value really differs.

    Keys that only exist in ``proposed`` are ignored; clients routinely send
    extra keys that are not part of the stored record.
    """
    skipped = set(skip)
    return [
        key for key in original
        if key not in skipped
        and not values_effectively_equal(original.get(key), proposed.get(key))
    ]


def normalize_quote(quote: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": _normalize_id(quote.get("id")),
        "quote_text": quote.get("quote_text"),
        "category": quote.get("category"),
        "source_id": _normalize_id(quote.get("source_id")),
        "linked_fields": sorted(quote.get("linked_fields") or []),
        "verified": bool(quote.get("verified")),
    }


def normalize_source(source: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": _normalize_id(source.get("id")),
        "url": source.get("url"),
        "title": source.get("title"),
        "publication": source.get("publication"),
        "source_type": source.get("source_type"),
    }


def _normalize_id(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _collection_changed(original: Sequence[Mapping], proposed: Sequence[Mapping], normalize) -> bool:
    normalized_original = [normalize(item) for item in original]
    normalized_proposed = [normalize(item) for item in proposed]
    if len(normalized_original) != len(normalized_proposed):
        return True
    return _canonical(normalized_original) != _canonical(normalized_proposed)


def evidence_changes(
    original_quotes: Sequence[Mapping[str, Any]],
    original_sources: Sequence[Mapping[str, Any]],
    proposed: Mapping[str, Any],
) -> List[str]:
    """Synthetic changed-field names for the nested evidence collections."""
    changes = []
    if _collection_changed(original_quotes, proposed.get("quotes") or [], normalize_quote):
        changes.append("quotes")
    if _collection_changed(original_sources, proposed.get("sources") or [], normalize_source):
        changes.append("sources")
    return changes


def diff_preview(
    original: Mapping[str, Any],
    proposed: Mapping[str, Any],
    changed: Sequence[str],
) -> Dict[str, Any]:
    """Itemized view of a proposal: per-field before/after, and the evidence
    items that will be updated in place or inserted."""
    fields = [
        {"field": name, "original": original.get(name), "proposed": proposed.get(name)}
        for name in changed
        if name not in EVIDENCE_COLLECTIONS
    ]
    evidence = {}
    for collection in EVIDENCE_COLLECTIONS:
        if collection not in changed:
            continue
        items = proposed.get(collection) or []
        evidence[collection] = {
            "update": [item for item in items if _normalize_id(item.get("id"))],
            "insert": [item for item in items if not _normalize_id(item.get("id"))],
        }
    return {"fields": fields, "evidence": evidence}
