# Rule records as plain dataclasses, not free-form dicts.
#
# The visual editor grows and shrinks tags, references, false positives and
# selections at will.  Each of those is an explicit ordered list on a fixed
# schema, so the serializer and the gate never meet a field they did not
# expect.  Selection and condition edits go through the helpers below or the
# editor session; the serializer and parser only read or replace whole
# records.

from dataclasses import dataclass, field
from enum import Enum

from sigma_editor.rules.errors import EditorStateError

# Match-operator suffixes the editor can construct (``FieldKey|contains``).
# Anything outside this set is a parse failure, not a silent import.
MODIFIERS = ("contains", "startswith", "endswith", "re", "all")

SELECTION_PREFIX = "Selection_"


class MatchStyle(str, Enum):
    """How a selection compares its field: one scalar or one-of-a-list."""

    VALUE = "value"
    LIST = "list"


@dataclass
class Selection:
    """One named matcher block: a field key plus a value or value list."""

    name: str
    field_key: str = ""
    value: str | list[str] = ""
    match_style: MatchStyle = MatchStyle.VALUE
    modifier: str | None = None

    def __post_init__(self):
        self.match_style = MatchStyle(self.match_style)
        if self.match_style is MatchStyle.LIST:
            if isinstance(self.value, str):
                self.value = [self.value] if self.value else []
            else:
                self.value = list(self.value)
        elif not isinstance(self.value, str):
            raise ValueError(
                f"Selection '{self.name}': a value-style selection takes a single string"
            )

    @property
    def key(self) -> str:
        """Left-hand side as written in text, modifier included."""
        if self.modifier:
            return f"{self.field_key}|{self.modifier}"
        return self.field_key

    def values(self) -> list[str]:
        if self.match_style is MatchStyle.LIST:
            return list(self.value)
        return [self.value] if self.value else []

    def is_complete(self) -> bool:
        if not self.field_key:
            return False
        if self.match_style is MatchStyle.LIST:
            return any(self.value)
        return self.value != ""

    def switch_style(self, style: MatchStyle) -> None:
        """Flip between value and list style, carrying the first value over."""
        style = MatchStyle(style)
        if style is self.match_style:
            return
        if style is MatchStyle.LIST:
            self.value = [self.value] if self.value else []
        else:
            self.value = self.value[0] if self.value else ""
        self.match_style = style


@dataclass
class ConditionExpression:
    """Selection names combined by implicit conjunction, in authoring order."""

    terms: list[str] = field(default_factory=list)

    def add(self, name: str) -> None:
        self.terms.append(name)

    def remove(self, index: int) -> str:
        return self.terms.pop(index)

    def references(self) -> list[str]:
        """Distinct referenced names, first occurrence order."""
        return list(dict.fromkeys(self.terms))

    def is_empty(self) -> bool:
        return not self.terms

    def text(self) -> str:
        return " ".join(self.terms)


@dataclass
class RuleRecord:
    """The aggregate edited in the form and round-tripped to text.

    ``id`` stays None until the persistence collaborator assigns one on the
    first successful create.  ``extras`` carries hand-edited top-level
    scalar keys (``date``, ``modified``, ...) the editor does not model.
    """

    id: str | None = None
    name: str = ""
    description: str = ""
    author: str = ""
    log_type: str = ""
    level: str = ""
    status: str = "experimental"
    tags: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    false_positives: list[str] = field(default_factory=list)
    selections: list[Selection] = field(default_factory=list)
    condition: ConditionExpression = field(default_factory=ConditionExpression)
    extras: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Serialized text always carries the lowercase level, so the record
        # does too; otherwise parse(serialize(r)) could never equal r.
        self.level = (self.level or "").lower()
        if not self.id:
            self.id = None

    @classmethod
    def new(cls) -> "RuleRecord":
        """The create-form starting point: one empty selection, no condition."""
        return cls(selections=[Selection(name=f"{SELECTION_PREFIX}1")])

    def assign_id(self, rule_id: str) -> None:
        if self.id is not None and self.id != rule_id:
            raise EditorStateError(
                f"Rule id is already assigned ({self.id}); refusing to replace it"
            )
        self.id = rule_id

    def selection(self, name: str) -> Selection | None:
        for sel in self.selections:
            if sel.name == name:
                return sel
        return None

    def selection_names(self) -> list[str]:
        return [sel.name for sel in self.selections]


def next_selection_name(record: RuleRecord) -> str:
    """Smallest ``Selection_<n>`` not already taken in *record*."""
    taken = set(record.selection_names())
    n = 1
    while f"{SELECTION_PREFIX}{n}" in taken:
        n += 1
    return f"{SELECTION_PREFIX}{n}"
