from casework.diff.engine import (
    EVIDENCE_COLLECTIONS,
    changed_fields,
    diff_preview,
    evidence_changes,
    is_absent,
    normalize_quote,
    normalize_source,
    values_effectively_equal,
)
