"""Submission gate — decides whether a RuleRecord may be persisted.

Pure, no I/O.  The editor session calls it after every edit (to show
validity) and again on submit.  It runs every field validator plus the
structural checks that span fields:

  1. Metadata   — name, author, description, log type, level, status, tags,
                 references, false positives, pass-through keys
  2. Selections — name (unique), key, value per selection
  3. Condition  — at least one term
  4. Structure  — at least one selection, every condition term resolves

Referential integrity is checked here, not enforced by the model: renaming
or removing a selection leaves the condition pointing at the old name until
the analyst fixes it.
"""

from dataclasses import dataclass, field

from sigma_editor.rules import RuleRecord
from sigma_editor.rules.errors import ValidationFailure
from sigma_editor.rules.validators import FieldValidators


@dataclass
class GateReport:
    failures: list[ValidationFailure] = field(default_factory=list)

    @property
    def submittable(self) -> bool:
        return not self.failures

    def errors_for(self, field_name: str) -> list[str]:
        return [f.message for f in self.failures if f.field == field_name]

    def structural(self) -> list[ValidationFailure]:
        return [f for f in self.failures if f.structural]


class SubmissionGate:

    def __init__(self, validators: FieldValidators):
        self.validators = validators

    def evaluate(self, record: RuleRecord) -> GateReport:
        """Every failing check, in form order.  Empty means submittable."""
        v = self.validators
        report = GateReport()

        def check(field_name, result):
            if not result.valid:
                report.failures.append(ValidationFailure(field_name, result.message))

        # 1. Metadata
        check("name", v.name(record.name))
        check("description", v.description(record.description))
        check("author", v.author(record.author))
        check("log_type", v.log_type(record.log_type))
        check("level", v.level(record.level))
        check("status", v.status(record.status))
        for i, tag in enumerate(record.tags):
            check(f"tags[{i}]", v.tag(tag))
        for i, ref in enumerate(record.references):
            check(f"references[{i}]", v.reference(ref))
        for i, fp in enumerate(record.false_positives):
            check(f"false_positives[{i}]", v.false_positive(fp))
        for key, value in record.extras.items():
            check(f"extras.{key}", v.extra(key, value))

        # 2. Selections
        names = record.selection_names()
        for i, sel in enumerate(record.selections):
            siblings = names[:i] + names[i + 1:]
            check(f"selections[{i}].name", v.selection_name(sel.name, siblings))
            check(f"selections[{i}].field_key", v.selection_key(sel.field_key, sel.modifier))
            check(f"selections[{i}].field_value", v.selection_value(sel))

        # 3. Condition
        check("condition", v.condition(record.condition))

        # 4. Structure
        if not record.selections:
            report.failures.append(ValidationFailure(
                "selections", "At least one selection is required.", structural=True,
            ))
        known = set(names)
        for term in record.condition.references():
            if term not in known:
                report.failures.append(ValidationFailure(
                    "condition",
                    f"Condition references unknown selection '{term}'.",
                    structural=True,
                ))

        return report

    def check_field(self, record: RuleRecord, field_name: str) -> list[str]:
        """Messages for one field only — what a blur event shows."""
        return self.evaluate(record).errors_for(field_name)
