"""Backend rule documents and the read-only presentation view.

The persistence backend stores a rule as a flat document: metadata, list
fields wrapped as ``{"value": ...}`` entries, and the detection block as raw
text.  Hand-edited pass-through keys travel under ``extras``.  Documents
coming back may instead carry structured ``selections`` (what older
editor builds saved), so hydration accepts both.
"""

from dataclasses import dataclass

from sigma_editor.rules import ConditionExpression, RuleRecord, Selection
from sigma_editor.rules.parser import parse_detection
from sigma_editor.rules.serializer import serialize_detection


def to_document(record: RuleRecord) -> dict:
    """Create/update payload.  The record must already pass the gate."""
    return {
        "id": record.id or "",
        "category": record.log_type,
        "title": record.name,
        "description": record.description,
        "status": record.status,
        "author": record.author,
        "references": [{"value": v} for v in record.references],
        "tags": [{"value": v} for v in record.tags],
        "log_source": "",
        "detection": serialize_detection(record),
        "level": record.level,
        "false_positives": [{"value": v} for v in record.false_positives],
        "extras": dict(record.extras),
    }


def from_document(doc: dict) -> RuleRecord:
    """Hydrate a record for editing from a stored rule document."""
    detection = doc.get("detection")
    if isinstance(detection, str) and detection.strip():
        selections, condition = parse_detection(detection)
    else:
        selections = [_selection(s) for s in doc.get("selections", [])]
        condition = _condition(doc.get("condition", []))

    return RuleRecord(
        id=doc.get("id") or doc.get("_id") or None,
        name=doc.get("title", ""),
        description=doc.get("description", "") or "",
        author=doc.get("author", ""),
        log_type=doc.get("category", ""),
        level=doc.get("level", ""),
        status=doc.get("status", "experimental"),
        tags=_values(doc.get("tags")),
        references=_values(doc.get("references")),
        false_positives=_values(doc.get("false_positives")),
        selections=selections,
        condition=condition,
        extras={str(k): str(v) for k, v in (doc.get("extras") or {}).items()},
    )


def _values(entries) -> list[str]:
    # Stored either as [{"value": "x"}] or as plain strings.
    result = []
    for entry in entries or []:
        if isinstance(entry, dict):
            result.append(str(entry.get("value", "")))
        else:
            result.append(str(entry))
    return result


def _selection(entry: dict) -> Selection:
    return Selection(
        name=entry["name"],
        field_key=entry.get("field_key", ""),
        value=entry.get("value", ""),
        match_style=entry.get("match_style", "value"),
        modifier=entry.get("modifier") or None,
    )


def _condition(value) -> ConditionExpression:
    if isinstance(value, str):
        return ConditionExpression(value.split())
    return ConditionExpression(list(value))


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuleView:
    """What flyouts and tables show.  No path back into the record."""

    title: str
    log_type: str
    severity: str
    tags: tuple[str, ...]
    references: tuple[str, ...]
    false_positives: tuple[str, ...]
    status: str
    detection: str


def project(record: RuleRecord) -> RuleView:
    return RuleView(
        title=record.name,
        log_type=record.log_type,
        severity=record.level,
        tags=tuple(record.tags),
        references=tuple(record.references),
        false_positives=tuple(record.false_positives),
        status=record.status,
        detection=serialize_detection(record, strict=False),
    )
