"""Per-field validators for the rule form.

Each check is a pure function of the field's value and returns a
ValidationResult.  The editor runs them when a field loses focus and again
before submission, never on every keystroke, so half-typed input is not
flagged while the analyst is still typing.

Closed sets (log types, levels, statuses) and the tag namespace are
injected at construction so tests do not depend on the real catalog.
"""

import re
from dataclasses import dataclass

from sigma_editor.rules import MODIFIERS, MatchStyle, Selection, ConditionExpression

_NAME_RE = re.compile(r"^[a-zA-Z0-9 _-]{5,50}$")
_AUTHOR_RE = re.compile(r"^[a-zA-Z0-9 _-]+$")
_DESCRIPTION_RE = re.compile(r"^[a-zA-Z0-9,.\- _]*$")
_DESCRIPTION_MAX = 500

# Selection names are condition terms, so they cannot contain whitespace or
# collide with the condition key and operator words.
_SELECTION_NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")
_RESERVED_NAMES = {"condition", "and", "or", "not", "all", "any", "of", "them"}
_FIELD_KEY_RE = re.compile(r"^[^\s:|#'\"\-\[][^:|\r\n]*(?<!\s)$")
# Keys the rule text already gives a meaning to; pass-through extras cannot
# reuse them.
_RULE_KEYS = {
    "id", "title", "description", "author", "level", "status", "tags",
    "falsepositives", "references", "logsource", "product", "detection",
    "condition",
}

DESCRIPTION_ERROR = (
    "Description should only consist of upper and lowercase letters, numbers "
    "0-9, commas, hyphens, periods, spaces, and underscores. Max limit of "
    "500 characters."
)


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    message: str | None = None


_OK = ValidationResult(True)


def _fail(message: str) -> ValidationResult:
    return ValidationResult(False, message)


def _single_line(value: str) -> bool:
    return "\n" not in value and "\r" not in value


class FieldValidators:
    """Validators bound to one catalog of log types, levels and statuses."""

    def __init__(self, log_types, levels, statuses, tag_prefix: str = "attack."):
        self.log_types = frozenset(log_types)
        self.levels = frozenset(level.lower() for level in levels)
        self.statuses = frozenset(statuses)
        self.tag_prefix = tag_prefix

    @classmethod
    def from_catalog(cls, catalog) -> "FieldValidators":
        return cls(catalog.log_types, catalog.levels, catalog.statuses,
                   catalog.tag_prefix)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def name(self, value: str) -> ValidationResult:
        if not value:
            return _fail("Rule name is required")
        if not _NAME_RE.fullmatch(value):
            return _fail("Invalid rule name.")
        return _OK

    def author(self, value: str) -> ValidationResult:
        if not value:
            return _fail("Author name is required")
        if not _AUTHOR_RE.fullmatch(value):
            return _fail("Invalid author.")
        return _OK

    def description(self, value: str) -> ValidationResult:
        # Optional field: empty is fine.
        if len(value) > _DESCRIPTION_MAX or not _DESCRIPTION_RE.fullmatch(value):
            return _fail(DESCRIPTION_ERROR)
        return _OK

    def log_type(self, value: str) -> ValidationResult:
        if not value:
            return _fail("Log type is required")
        if value not in self.log_types:
            return _fail("Invalid log type.")
        return _OK

    def level(self, value: str) -> ValidationResult:
        if not value:
            return _fail("Rule level is required")
        if value.lower() not in self.levels:
            return _fail("Invalid rule level.")
        return _OK

    def status(self, value: str) -> ValidationResult:
        if not value:
            return _fail("Rule status is required")
        if value not in self.statuses:
            return _fail("Invalid rule status.")
        return _OK

    def tag(self, value: str) -> ValidationResult:
        if not value or not value.startswith(self.tag_prefix):
            return _fail(f"Tags must start with '{self.tag_prefix}'")
        if not _single_line(value):
            return _fail("Tag must be a single line.")
        return _OK

    def reference(self, value: str) -> ValidationResult:
        if not _single_line(value):
            return _fail("Reference must be a single line.")
        return _OK

    def false_positive(self, value: str) -> ValidationResult:
        if not _single_line(value):
            return _fail("False positive must be a single line.")
        return _OK

    def extra(self, key: str, value: str) -> ValidationResult:
        """Pass-through keys such as ``date`` kept from hand-edited text."""
        if not _FIELD_KEY_RE.fullmatch(key) or key in _RULE_KEYS:
            return _fail(f"Invalid key '{key}'.")
        if not value:
            return _fail(f"Value for '{key}' is required")
        if not _single_line(value):
            return _fail("Value must be a single line.")
        return _OK

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def selection_name(self, value: str, siblings=()) -> ValidationResult:
        """*siblings* are the names of the other selections in the record."""
        if not value:
            return _fail("Selection name is required")
        if (not _SELECTION_NAME_RE.fullmatch(value) or value.isdigit()
                or value.lower() in _RESERVED_NAMES):
            return _fail("Invalid selection name.")
        if value in siblings:
            return _fail("Selection name must be unique.")
        return _OK

    def selection_key(self, value: str, modifier: str | None = None) -> ValidationResult:
        if not value:
            return _fail("Key name is required")
        if not _FIELD_KEY_RE.fullmatch(value):
            return _fail("Invalid key name.")
        if modifier is not None and modifier not in MODIFIERS:
            return _fail(f"Unsupported modifier '{modifier}'.")
        return _OK

    def selection_value(self, selection: Selection) -> ValidationResult:
        if selection.match_style is MatchStyle.LIST:
            if not any(selection.value):
                return _fail("Value is required")
        elif not selection.value:
            return _fail("Value is required")
        if not all(_single_line(v) for v in selection.values()):
            return _fail("Value must be a single line.")
        return _OK

    def condition(self, expression: ConditionExpression) -> ValidationResult:
        if expression.is_empty():
            return _fail("Condition is required")
        return _OK
