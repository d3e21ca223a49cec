"""Editor session — one analyst editing one rule.

Owns the in-memory RuleRecord exclusively.  The visual form mutates it only
through the setters below; the text editor replaces it wholesale, and only
after a successful parse.  Nothing here blocks except the single store call
made from submit().

State machine::

    EMPTY -> EDITING <-> INVALID
               |  ^
               v  |
             VALID -> SUBMITTING -> SUBMITTED
                           |
                           +-> SUBMIT_FAILED -> EDITING

Two mutually exclusive modes share the record: STRUCTURED (field setters)
and TEXT (raw Sigma text).  Leaving TEXT requires the text to parse; on
failure the last valid structured record is kept and parse_error is set.
"""

from enum import Enum

from sigma_editor.gate import GateReport, SubmissionGate
from sigma_editor.rules import MatchStyle, RuleRecord, Selection, next_selection_name
from sigma_editor.rules.document import to_document
from sigma_editor.rules.errors import EditorStateError, ParseError, SubmissionFailure
from sigma_editor.rules.parser import parse
from sigma_editor.rules.serializer import preview


class SessionState(str, Enum):
    EMPTY = "empty"
    EDITING = "editing"
    INVALID = "invalid"
    VALID = "valid"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"


class EditorMode(str, Enum):
    STRUCTURED = "structured"
    TEXT = "text"


class RuleEditorSession:

    def __init__(self, gate: SubmissionGate, record: RuleRecord | None = None,
                 notify=None):
        self.gate = gate
        if record is None:
            self.record = RuleRecord.new()
            self.state = SessionState.EMPTY
        else:
            self.record = record
            self.state = SessionState.EDITING
        self.mode = EditorMode.STRUCTURED
        self.text: str | None = None
        self.parse_error: ParseError | None = None
        self.field_errors: dict[str, list[str]] = {}
        self.notifications: list[str] = []
        self._notify = notify

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def report(self) -> GateReport:
        return self.gate.evaluate(self.record)

    @property
    def preview(self) -> str:
        if self.mode is EditorMode.TEXT:
            return self.text or ""
        return preview(self.record)

    def blur(self, field_name: str) -> list[str]:
        """Validate one field as focus leaves it; returns its messages."""
        errors = self.gate.check_field(self.record, field_name)
        if errors:
            self.field_errors[field_name] = errors
            if self.state not in (SessionState.SUBMITTING, SessionState.EMPTY):
                self.state = SessionState.INVALID
        else:
            self.field_errors.pop(field_name, None)
        return errors

    # ------------------------------------------------------------------
    # Metadata setters
    # ------------------------------------------------------------------

    def set_name(self, value: str) -> None:
        self._set("name", value)

    def set_description(self, value: str) -> None:
        self._set("description", value)

    def set_author(self, value: str) -> None:
        self._set("author", value)

    def set_log_type(self, value: str) -> None:
        self._set("log_type", value)

    def set_level(self, value: str) -> None:
        self._set("level", (value or "").lower())

    def set_status(self, value: str) -> None:
        self._set("status", value)

    def add_tag(self, value: str = "") -> None:
        self._list_add("tags", value)

    def set_tag(self, index: int, value: str) -> None:
        self._list_set("tags", index, value)

    def remove_tag(self, index: int) -> None:
        self._list_remove("tags", index)

    def add_reference(self, value: str = "") -> None:
        self._list_add("references", value)

    def set_reference(self, index: int, value: str) -> None:
        self._list_set("references", index, value)

    def remove_reference(self, index: int) -> None:
        self._list_remove("references", index)

    def add_false_positive(self, value: str = "") -> None:
        self._list_add("false_positives", value)

    def set_false_positive(self, index: int, value: str) -> None:
        self._list_set("false_positives", index, value)

    def remove_false_positive(self, index: int) -> None:
        self._list_remove("false_positives", index)

    # ------------------------------------------------------------------
    # Detection setters
    # ------------------------------------------------------------------

    def add_selection(self, name: str | None = None) -> Selection:
        self._check_mutable()
        name = name or next_selection_name(self.record)
        if self.record.selection(name) is not None:
            raise ValueError(f"Selection '{name}' already exists")
        selection = Selection(name=name)
        self.record.selections.append(selection)
        self._changed()
        return selection

    def rename_selection(self, index: int, name: str) -> None:
        # The condition keeps the old name on purpose; the gate flags it.
        self._check_mutable()
        self.record.selections[index].name = name
        self._changed()

    def set_selection_key(self, index: int, key: str) -> None:
        """Accepts ``Field`` or ``Field|modifier`` as typed in the form."""
        self._check_mutable()
        field_key, _, modifier = key.partition("|")
        selection = self.record.selections[index]
        selection.field_key = field_key
        selection.modifier = modifier or None
        self._changed()

    def set_match_style(self, index: int, style: MatchStyle) -> None:
        self._check_mutable()
        self.record.selections[index].switch_style(style)
        self._changed()

    def set_selection_value(self, index: int, value: str) -> None:
        self._check_mutable()
        selection = self.record.selections[index]
        selection.switch_style(MatchStyle.VALUE)
        selection.value = value
        self._changed()

    def set_selection_list(self, index: int, values: list[str]) -> None:
        self._check_mutable()
        selection = self.record.selections[index]
        selection.switch_style(MatchStyle.LIST)
        selection.value = list(values)
        self._changed()

    def remove_selection(self, index: int) -> None:
        self._check_mutable()
        del self.record.selections[index]
        self._changed()

    def add_condition_term(self, name: str | None = None) -> None:
        """Append a term; defaults to the first selection, as the form does."""
        self._check_mutable()
        if name is None:
            if not self.record.selections:
                raise ValueError("No selection to add to the condition")
            name = self.record.selections[0].name
        self.record.condition.add(name)
        self._changed()

    def remove_condition_term(self, index: int) -> None:
        self._check_mutable()
        self.record.condition.remove(index)
        self._changed()

    # ------------------------------------------------------------------
    # Editor modes
    # ------------------------------------------------------------------

    def switch_to_text(self) -> str:
        self._check_not_submitting()
        if self.mode is EditorMode.STRUCTURED:
            self.text = preview(self.record)
            self.mode = EditorMode.TEXT
            self.parse_error = None
        return self.text

    def set_text(self, text: str) -> None:
        self._check_not_submitting()
        if self.mode is not EditorMode.TEXT:
            raise EditorStateError("Switch to the text editor before editing text")
        self.text = text

    def switch_to_structured(self) -> RuleRecord:
        """Parse the text back; on ParseError stay in TEXT and re-raise."""
        self._check_not_submitting()
        if self.mode is EditorMode.STRUCTURED:
            return self.record
        try:
            record = parse(self.text or "")
            self._carry_id(record)
        except ParseError as e:
            self.parse_error = e
            raise
        self.record = record
        self.mode = EditorMode.STRUCTURED
        self.text = None
        self.parse_error = None
        self._changed()
        return record

    def _carry_id(self, record: RuleRecord) -> None:
        current = self.record.id
        if current is None or record.id == current:
            return
        if record.id is None:
            record.id = current
            return
        raise ParseError(_id_line(self.text or ""),
                         f"rule id cannot change once assigned ({current})")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, store) -> bool:
        """Validate, then hand the record to *store* atomically.

        Returns True on success.  Any failure produces exactly one
        notification and leaves the record untouched and editable.
        """
        self._check_not_submitting()
        action = "update" if self.record.id else "create"

        if self.mode is EditorMode.TEXT:
            try:
                self.switch_to_structured()
            except ParseError as e:
                self._fail(f"Failed to {action} rule: {e}", SessionState.INVALID)
                return False

        report = self.report
        if not report.submittable:
            self.field_errors = {}
            for failure in report.failures:
                self.field_errors.setdefault(failure.field, []).append(failure.message)
            count = len(report.failures)
            self._fail(f"Failed to {action} rule: {count} field(s) need attention",
                       SessionState.INVALID)
            return False

        self.state = SessionState.SUBMITTING
        try:
            document = to_document(self.record)
            if self.record.id:
                rule_id = store.update(self.record.id, document)
            else:
                rule_id = store.create(document)
            self.record.assign_id(rule_id)
        except SubmissionFailure as e:
            self._fail(f"Failed to {action} rule: {e.reason}", SessionState.SUBMIT_FAILED)
            return False
        except Exception as e:
            # Unexpected collaborator error: unlock the editor, then propagate.
            self._fail(f"Failed to {action} rule: {e}", SessionState.SUBMIT_FAILED)
            raise

        self.field_errors = {}
        self.state = SessionState.SUBMITTED
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fail(self, message, state):
        self.state = state
        self.notifications.append(message)
        if self._notify is not None:
            self._notify(message)

    def _check_not_submitting(self):
        if self.state is SessionState.SUBMITTING:
            raise EditorStateError("Rule is being submitted; edits are locked")

    def _check_mutable(self):
        self._check_not_submitting()
        if self.mode is EditorMode.TEXT:
            raise EditorStateError("Switch back to the visual editor to edit fields")

    def _changed(self):
        if self.report.submittable:
            self.state = SessionState.VALID
        else:
            self.state = SessionState.EDITING

    def _set(self, attr, value):
        self._check_mutable()
        setattr(self.record, attr, value)
        self._changed()

    def _list_add(self, attr, value):
        self._check_mutable()
        getattr(self.record, attr).append(value)
        self._changed()

    def _list_set(self, attr, index, value):
        self._check_mutable()
        getattr(self.record, attr)[index] = value
        self._changed()

    def _list_remove(self, attr, index):
        self._check_mutable()
        del getattr(self.record, attr)[index]
        self._changed()


def _id_line(text: str) -> int:
    for lineno, line in enumerate(text.splitlines(), start=1):
        if line.strip().startswith("id:"):
            return lineno
    return 1
