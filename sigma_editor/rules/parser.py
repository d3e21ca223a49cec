"""Sigma text -> RuleRecord.

Accepts the serializer's own output as well as hand-edited or pasted text,
indented (real YAML) or flat (every line at column 0, as the rule flyout
displays it).  The scan is a single top-to-bottom pass keyed on line
prefixes; there is deliberately no general YAML load here, because anything
the visual editor cannot represent must fail loudly with the line number
instead of importing half a rule.

Supported detection shape::

    detection:
      condition: Selection_1 Selection_2     # names only, implicit AND
      Selection_1:
        Field|contains:                      # one matcher per selection
          - a
          - b
      Selection_2:
        Other: value
"""

import re

from sigma_editor.rules import (
    MODIFIERS,
    ConditionExpression,
    MatchStyle,
    RuleRecord,
    Selection,
)
from sigma_editor.rules.errors import ParseError

_KEY_RE = re.compile(r"^(?P<key>[^\s:#'\"\-][^:]*?):(?:[ \t]+(?P<value>.*))?$")

_SCALAR_KEYS = {
    "title": "name",
    "description": "description",
    "level": "level",
    "status": "status",
    "author": "author",
}
_LIST_KEYS = {
    "tags": "tags",
    "falsepositives": "false_positives",
    "references": "references",
}

_OPERATORS = {"and", "or", "not"}
_AGGREGATES = {"1", "all", "any", "of", "them"}
_CONDITION_BAD_CHARS = set("()|*?")


def parse(text: str) -> RuleRecord:
    """Parse a whole rule.  Raises ParseError on the first bad line."""
    return _Scanner().run(text)


def parse_detection(text: str) -> tuple[list[Selection], ConditionExpression]:
    """Parse a bare detection block (``condition:`` at column 0)."""
    scanner = _Scanner()
    scanner.section = "detection"
    scanner.section_indent = -1
    scanner.run(text)
    return scanner.selections, scanner.condition


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def _flow_list(value: str, lineno: int) -> list[str] | None:
    """``[a, 'b, c']`` -> ['a', 'b, c'];  None if *value* is not a flow list."""
    if not value.startswith("["):
        return None
    if not value.endswith("]"):
        raise ParseError(lineno, "unterminated inline list")
    inner = value[1:-1].strip()
    if not inner:
        return []
    return [_unquote(item.strip()) for item in _split_flow(inner, lineno)]


def _split_flow(inner: str, lineno: int) -> list[str]:
    # A quote only opens at the start of an item; commas inside it are kept.
    items, start, quote, skip = [], 0, None, False
    for i, ch in enumerate(inner):
        if skip:
            skip = False
        elif quote == "'":
            if ch == "'":
                if inner[i + 1:i + 2] == "'":
                    skip = True
                else:
                    quote = None
        elif quote == '"':
            if ch == "\\":
                skip = True
            elif ch == '"':
                quote = None
        elif ch in "'\"" and not inner[start:i].strip():
            quote = ch
        elif ch == ",":
            items.append(inner[start:i])
            start = i + 1
    if quote is not None:
        raise ParseError(lineno, "unterminated quote in inline list")
    items.append(inner[start:])
    return items


def _condition_terms(value: str, lineno: int) -> list[str]:
    terms = _unquote(value).split()
    for term in terms:
        lowered = term.lower()
        if lowered in _OPERATORS:
            raise ParseError(
                lineno,
                f"boolean operator '{term}' is not supported; "
                "conditions are a list of selection names",
            )
        if lowered in _AGGREGATES or term.isdigit():
            raise ParseError(lineno, f"aggregate condition '{term}' is not supported")
        if _CONDITION_BAD_CHARS & set(term):
            raise ParseError(lineno, f"unsupported condition term '{term}'")
    return terms


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class _PendingSelection:
    __slots__ = ("name", "field_key", "modifier", "style", "value",
                 "has_matcher", "matcher_indent")

    def __init__(self, name):
        self.name = name
        self.field_key = ""
        self.modifier = None
        self.style = MatchStyle.VALUE
        self.value = ""
        self.has_matcher = False
        self.matcher_indent = None

    def build(self) -> Selection:
        return Selection(name=self.name, field_key=self.field_key,
                         value=self.value, match_style=self.style,
                         modifier=self.modifier)


class _Scanner:
    def __init__(self):
        self.fields: dict = {}
        self.extras: dict[str, str] = {}
        self.seen: set[str] = set()
        self.lists = {attr: [] for attr in _LIST_KEYS.values()}
        self.list_target: list | None = None
        self.base_indent: int | None = None
        self.started = False

        # None | "logsource" | "detection"
        self.section: str | None = None
        self.section_indent = 0
        self.child_indent: int | None = None
        self.flat = False

        self.selections: list[Selection] = []
        self.condition = ConditionExpression()
        self.condition_seen = False
        self.current: _PendingSelection | None = None

    def run(self, text: str) -> RuleRecord:
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.rstrip()
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if stripped == "---":
                if self.started:
                    raise ParseError(lineno, "multiple documents are not supported")
                continue
            if line.startswith("\t"):
                raise ParseError(lineno, "tabs are not allowed for indentation")
            self.started = True
            indent = len(line) - len(line.lstrip(" "))
            if self.base_indent is None:
                self.base_indent = indent
            self._line(lineno, indent, stripped)

        self._close_selection()
        return self._build()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _line(self, lineno, indent, stripped):
        if self.section is not None and self._in_section(indent):
            if self.section == "detection":
                self._detection_line(lineno, indent, stripped)
            else:
                self._logsource_line(lineno, indent, stripped)
            return
        self._top_level_line(lineno, indent, stripped)

    def _in_section(self, indent):
        if self.child_indent is None:
            self.child_indent = indent
            self.flat = indent <= self.section_indent
            return True
        if self.flat and self.section == "detection":
            # Flat detection swallows the rest of the document.
            return True
        if not self.flat and indent > self.section_indent:
            return True
        self._leave_section()
        return False

    def _leave_section(self):
        if self.section == "detection":
            self._close_selection()
        self.section = None
        self.child_indent = None
        self.flat = False
        self.list_target = None

    def _split_key(self, lineno, stripped):
        match = _KEY_RE.match(stripped)
        if match is None:
            raise ParseError(lineno, f"expected 'key: value', got '{stripped}'")
        return match.group("key").strip(), (match.group("value") or "").strip()

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def _top_level_line(self, lineno, indent, stripped):
        if stripped.startswith("- ") or stripped == "-":
            self._list_item(lineno, stripped)
            return

        key, value = self._split_key(lineno, stripped)
        if indent > self.base_indent:
            raise ParseError(lineno, f"nested key '{key}' is not supported here")
        if key in self.seen:
            raise ParseError(lineno, f"duplicate key '{key}'")
        self.seen.add(key)
        self.list_target = None

        if key == "id":
            self.fields["id"] = _unquote(value) or None
        elif key in _SCALAR_KEYS:
            self.fields[_SCALAR_KEYS[key]] = _unquote(value)
        elif key in _LIST_KEYS:
            self._open_list(lineno, key, value, self.lists[_LIST_KEYS[key]])
        elif key in ("logsource", "detection"):
            if value:
                raise ParseError(lineno, f"'{key}' must be a mapping")
            self.section = key
            self.section_indent = indent
            self.child_indent = None
        elif key == "product":
            # Flat text: logsource's product line after another key.
            if "logsource" not in self.seen:
                raise ParseError(lineno, "'product' outside of 'logsource'")
            self.fields["log_type"] = _unquote(value)
        elif key == "condition":
            raise ParseError(lineno, "'condition' outside of 'detection'")
        else:
            if not value:
                raise ParseError(lineno, f"unsupported key '{key}'")
            self.extras[key] = _unquote(value)

    def _open_list(self, lineno, key, value, target):
        if not value:
            self.list_target = target
            return
        items = _flow_list(value, lineno)
        if items is None:
            raise ParseError(lineno, f"'{key}' must be a list")
        target.extend(items)

    def _list_item(self, lineno, stripped):
        if self.list_target is None:
            raise ParseError(lineno, "list item without a preceding list key")
        self.list_target.append(_unquote(stripped[1:].strip()))

    # ------------------------------------------------------------------
    # logsource
    # ------------------------------------------------------------------

    def _logsource_line(self, lineno, indent, stripped):
        key, value = self._split_key(lineno, stripped)
        if key != "product":
            if self.flat:
                self._leave_section()
                self._top_level_line(lineno, indent, stripped)
                return
            raise ParseError(lineno, f"unsupported logsource key '{key}'")
        if "product" in self.seen:
            raise ParseError(lineno, "duplicate key 'product'")
        self.seen.add("product")
        self.fields["log_type"] = _unquote(value)
        if self.flat:
            self._leave_section()

    # ------------------------------------------------------------------
    # detection
    # ------------------------------------------------------------------

    def _detection_line(self, lineno, indent, stripped):
        current = self.current
        if stripped.startswith("- ") or stripped == "-":
            if current is not None and not current.has_matcher:
                raise ParseError(
                    lineno,
                    f"list directly under selection '{current.name}' is not "
                    "supported; use 'Field: value' or 'Field:' followed by items",
                )
            self._list_item(lineno, stripped)
            return

        key, value = self._split_key(lineno, stripped)
        self.list_target = None

        if key == "condition" and (self.flat or indent == self.child_indent):
            if self.condition_seen:
                raise ParseError(lineno, "duplicate key 'condition'")
            self.condition_seen = True
            self._close_selection()
            self.condition = ConditionExpression(_condition_terms(value, lineno))
            return

        if self.flat:
            is_matcher = current is not None and not current.has_matcher
        elif indent == self.child_indent:
            is_matcher = False
        elif indent > self.child_indent:
            if current is None:
                raise ParseError(lineno, f"unexpected indentation before '{key}'")
            is_matcher = True
        else:
            raise ParseError(lineno, "inconsistent indentation in detection")

        if is_matcher:
            self._matcher(lineno, indent, key, value)
        else:
            self._open_selection(lineno, key, value)

    def _open_selection(self, lineno, name, value):
        self._close_selection()
        if value:
            raise ParseError(
                lineno, f"selection '{name}' must map one field to its value(s)"
            )
        if any(sel.name == name for sel in self.selections):
            raise ParseError(lineno, f"duplicate selection '{name}'")
        self.current = _PendingSelection(name)

    def _matcher(self, lineno, indent, key, value):
        current = self.current
        if current.has_matcher:
            if indent > current.matcher_indent:
                raise ParseError(lineno, f"nested mapping under '{current.field_key}' "
                                         "is not supported")
            raise ParseError(
                lineno,
                f"selection '{current.name}' already has a field; "
                "only one field per selection is supported",
            )

        field_key, _, modifier = key.partition("|")
        field_key = field_key.strip()
        if not field_key:
            raise ParseError(lineno, "empty field name")
        if modifier:
            if "|" in modifier:
                raise ParseError(lineno, f"chained modifiers are not supported: '{key}'")
            if modifier not in MODIFIERS:
                raise ParseError(lineno, f"unsupported modifier '{modifier}'")

        current.field_key = field_key
        current.modifier = modifier or None
        current.has_matcher = True
        current.matcher_indent = indent

        items = _flow_list(value, lineno) if value else []
        if items is not None:
            current.style = MatchStyle.LIST
            current.value = items
            if not value:
                self.list_target = current.value
        else:
            current.value = _unquote(value)

    def _close_selection(self):
        if self.current is not None:
            self.selections.append(self.current.build())
            self.current = None

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def _build(self) -> RuleRecord:
        return RuleRecord(
            **self.fields,
            **self.lists,
            selections=self.selections,
            condition=self.condition,
            extras=self.extras,
        )
