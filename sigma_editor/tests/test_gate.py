"""Tests for the submission gate — aggregate validity and structural checks."""

import pytest

from sigma_editor.gate import SubmissionGate
from sigma_editor.rules import ConditionExpression, MatchStyle, RuleRecord, Selection
from sigma_editor.rules.parser import parse
from sigma_editor.rules.serializer import serialize_text
from sigma_editor.rules.validators import FieldValidators


def _gate():
    return SubmissionGate(FieldValidators(
        log_types=["windows", "dns"],
        levels=["critical", "high", "medium", "low"],
        statuses=["experimental", "test", "stable", "deprecated"],
        tag_prefix="attack.",
    ))


def _complete():
    return RuleRecord(
        name="Sample Rule",
        author="Sample Author",
        log_type="windows",
        level="critical",
        status="experimental",
        tags=["attack.persistence"],
        references=["https://example.com"],
        false_positives=["unknown"],
        selections=[Selection(name="Selection_1", field_key="FieldKey",
                              value="FieldValue")],
        condition=ConditionExpression(["Selection_1"]),
    )


class TestSubmittable:
    def setup_method(self):
        self.gate = _gate()

    def test_complete_record_passes(self):
        report = self.gate.evaluate(_complete())
        assert report.submittable
        assert report.failures == []

    def test_new_record_fails_everywhere(self):
        report = self.gate.evaluate(RuleRecord.new())
        assert not report.submittable
        failed = {f.field for f in report.failures}
        assert {"name", "author", "log_type", "level", "selections[0].field_key",
                "selections[0].field_value", "condition"} <= failed
        # status defaults to experimental, so it is not among the failures
        assert "status" not in failed

    def test_failures_are_in_form_order(self):
        fields = [f.field for f in self.gate.evaluate(RuleRecord.new()).failures]
        assert fields.index("name") < fields.index("log_type") < fields.index("condition")


class TestSingleCauseGating:
    """Emptying one required field flips the gate; restoring flips it back."""

    @pytest.mark.parametrize("field_name, clear, restore", [
        ("name", lambda r: setattr(r, "name", ""),
         lambda r: setattr(r, "name", "Sample Rule")),
        ("author", lambda r: setattr(r, "author", ""),
         lambda r: setattr(r, "author", "John Doe")),
        ("log_type", lambda r: setattr(r, "log_type", ""),
         lambda r: setattr(r, "log_type", "dns")),
        ("level", lambda r: setattr(r, "level", ""),
         lambda r: setattr(r, "level", "high")),
        ("status", lambda r: setattr(r, "status", ""),
         lambda r: setattr(r, "status", "stable")),
        ("tags[0]", lambda r: r.tags.__setitem__(0, ""),
         lambda r: r.tags.__setitem__(0, "attack.tag")),
        ("selections[0].field_key", lambda r: setattr(r.selections[0], "field_key", ""),
         lambda r: setattr(r.selections[0], "field_key", "FieldKey")),
        ("selections[0].field_value", lambda r: setattr(r.selections[0], "value", ""),
         lambda r: setattr(r.selections[0], "value", "FieldValue")),
        ("condition", lambda r: r.condition.remove(0),
         lambda r: r.condition.add("Selection_1")),
    ])
    def test_flip_and_restore(self, field_name, clear, restore):
        gate = _gate()
        record = _complete()

        clear(record)
        report = gate.evaluate(record)
        assert not report.submittable
        assert report.errors_for(field_name)

        restore(record)
        assert gate.evaluate(record).submittable

    def test_list_value_flip(self):
        gate = _gate()
        record = _complete()
        record.selections[0].switch_style(MatchStyle.LIST)
        assert gate.evaluate(record).submittable

        record.selections[0].value = []
        assert gate.evaluate(record).errors_for("selections[0].field_value") == [
            "Value is required"
        ]
        record.selections[0].value = ["FieldValue"]
        assert gate.evaluate(record).submittable


class TestStructural:
    def setup_method(self):
        self.gate = _gate()

    def test_renamed_selection_leaves_condition_dangling(self):
        record = _complete()
        record.selections[0].name = "Renamed"
        report = self.gate.evaluate(record)
        assert not report.submittable
        assert all(f.structural for f in report.failures)
        assert report.structural()[0].message == (
            "Condition references unknown selection 'Selection_1'."
        )

    def test_removed_selection(self):
        record = _complete()
        record.selections.clear()
        report = self.gate.evaluate(record)
        messages = [f.message for f in report.structural()]
        assert "At least one selection is required." in messages
        assert "Condition references unknown selection 'Selection_1'." in messages

    def test_duplicate_names_are_field_errors(self):
        record = _complete()
        record.selections.append(Selection(name="Selection_1", field_key="K", value="v"))
        report = self.gate.evaluate(record)
        assert report.errors_for("selections[1].name") == ["Selection name must be unique."]
        assert report.errors_for("selections[0].name") == ["Selection name must be unique."]

    def test_repeated_term_reported_once(self):
        record = _complete()
        record.condition = ConditionExpression(["Gone", "Gone"])
        assert len(self.gate.evaluate(record).structural()) == 1


class TestCheckField:
    def test_single_field(self):
        record = _complete()
        record.name = "tex&"
        assert _gate().check_field(record, "name") == ["Invalid rule name."]
        assert _gate().check_field(record, "author") == []


def _multiline_name(record):
    record.selections[0].name = "Selection_1\n"
    record.condition = ConditionExpression(["Selection_1\n"])


class TestOnlySerializableRecordsPass:
    """Whatever the gate accepts must survive serialize -> parse unchanged."""

    @pytest.mark.parametrize("field_name, mutate", [
        ("name", lambda r: setattr(r, "name", "Sample Rule\n")),
        ("author", lambda r: setattr(r, "author", "Sample Author\n")),
        ("description", lambda r: setattr(r, "description", "Stored rule\n")),
        ("tags[0]", lambda r: r.tags.__setitem__(0, "attack.a\nb")),
        ("references[0]", lambda r: r.references.__setitem__(0, "https://a\nb")),
        ("false_positives[0]", lambda r: r.false_positives.__setitem__(0, "a\nb")),
        ("selections[0].name", _multiline_name),
        ("selections[0].field_key",
         lambda r: setattr(r.selections[0], "field_key", "Field\nKey")),
        ("selections[0].field_value",
         lambda r: setattr(r.selections[0], "value", "Field\nValue")),
        ("extras.date", lambda r: r.extras.__setitem__("date", "2022\n11")),
    ])
    def test_line_breaks_are_rejected(self, field_name, mutate):
        record = _complete()
        mutate(record)
        report = _gate().evaluate(record)
        assert not report.submittable
        assert report.errors_for(field_name)

    @pytest.mark.parametrize("key, value", [
        ("date", ""),
        ("title", "Shadowed"),
        ("bad key:", "x"),
    ])
    def test_bad_extras(self, key, value):
        record = _complete()
        record.extras[key] = value
        assert _gate().evaluate(record).errors_for(f"extras.{key}")

    def test_accepted_record_round_trips(self):
        record = _complete()
        record.description = "Stored rule"
        record.extras["date"] = "2022/11/01"
        assert _gate().evaluate(record).submittable
        assert parse(serialize_text(record)) == record
