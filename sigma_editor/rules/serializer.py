"""RuleRecord -> canonical Sigma text.

The output is deterministic: fixed key order, lowercase level, single-quoted
references and bare everything else (unless a value would not survive a
re-parse unquoted).  Nested keys are indented two spaces so the text is also
plain YAML; canonical comparisons ignore indentation.

Canonical order::

    id / logsource.product / title / description / tags / falsepositives /
    level / status / references / author / <extras> / detection

``serialize`` refuses incomplete detection structure with
SerializationError.  ``preview`` is the best-effort rendering the form shows
while the analyst is still filling things in; it never raises.
"""

from sigma_editor.rules import MatchStyle, RuleRecord, Selection
from sigma_editor.rules.errors import SerializationError

_INDENT = "  "

# Leading characters that would change meaning if emitted bare.
_UNSAFE_LEADING = ("'", '"', "#", "[", "{", "&", "*", "!", "|", ">", "%", "@", "`")


def serialize(record: RuleRecord) -> list[str]:
    """Canonical line sequence for a complete record."""
    return _render(record, strict=True)


def serialize_text(record: RuleRecord) -> str:
    return "\n".join(serialize(record)) + "\n"


def preview(record: RuleRecord) -> str:
    """Best-effort text for live preview; incomplete parts render empty."""
    return "\n".join(_render(record, strict=False)) + "\n"


def serialize_detection(record: RuleRecord, strict: bool = True) -> str:
    """Only the detection block, unindented, as the backend stores it."""
    lines = _detection_lines(record, strict, depth=0)
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _render(record, strict):
    lines = [_pair("id", record.id or "", strict)]

    lines.append("logsource:")
    lines.append(_INDENT + _pair("product", record.log_type, strict))

    lines.append(_pair("title", record.name, strict))
    if record.description:
        lines.append(_pair("description", record.description, strict))

    lines.extend(_list_block("tags", record.tags, strict))
    lines.extend(_list_block("falsepositives", record.false_positives, strict))

    lines.append(_pair("level", (record.level or "").lower(), strict))
    lines.append(_pair("status", record.status, strict))

    lines.extend(_list_block("references", record.references, strict,
                             always_quote=True))

    lines.append(_pair("author", record.author, strict))
    for key, value in record.extras.items():
        lines.append(_pair(key, value, strict))

    lines.append("detection:")
    lines.extend(_detection_lines(record, strict, depth=1))
    return lines


def _detection_lines(record, strict, depth):
    pad = _INDENT * depth
    if strict and record.condition.is_empty():
        raise SerializationError("Condition is required")

    lines = [pad + _pair("condition", record.condition.text(), strict)]
    for sel in record.selections:
        if strict and not sel.is_complete():
            raise SerializationError(f"Selection '{sel.name}' is incomplete")
        lines.append(f"{pad}{sel.name}:")
        lines.extend(_matcher_lines(sel, strict, pad + _INDENT))
    return lines


def _matcher_lines(sel: Selection, strict, pad):
    if not sel.field_key:
        return []  # preview only; strict mode raised already
    if sel.match_style is MatchStyle.LIST:
        lines = [f"{pad}{sel.key}:"]
        for item in sel.value:
            lines.append(f"{pad}{_INDENT}- {_scalar(item, strict, quote_empty=True)}")
        return lines
    return [pad + _pair(sel.key, sel.value, strict)]


def _list_block(key, items, strict, always_quote=False):
    # Header is emitted even with zero items.
    lines = [f"{key}:"]
    for item in items:
        if always_quote:
            text = _quote(_single_line(item, strict))
        else:
            text = _scalar(item, strict, quote_empty=True)
        lines.append(f"{_INDENT}- {text}")
    return lines


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

def _pair(key, value, strict):
    text = _scalar(value, strict, quote_empty=False)
    return f"{key}: {text}" if text else f"{key}:"


def _scalar(value, strict, quote_empty):
    value = _single_line(value, strict)
    if value == "":
        return "''" if quote_empty else ""
    if _needs_quotes(value):
        return _quote(value)
    return value


def _needs_quotes(value: str) -> bool:
    return (
        value != value.strip()
        or value.startswith(_UNSAFE_LEADING)
        or value.startswith("- ")
        or value == "-"
        or ": " in value
        or " #" in value
        or value.endswith(":")
    )


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _single_line(value, strict):
    value = "" if value is None else str(value)
    if "\n" in value or "\r" in value:
        if strict:
            raise SerializationError(f"Value must be a single line: {value!r}")
        return " ".join(value.split())
    return value
