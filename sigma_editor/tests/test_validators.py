"""Tests for field validators: messages, character sets and injected catalogs."""

import pytest

from sigma_editor.rules import ConditionExpression, MatchStyle, Selection
from sigma_editor.rules.validators import DESCRIPTION_ERROR, FieldValidators


def _validators(**overrides):
    kwargs = {
        "log_types": ["windows", "dns"],
        "levels": ["critical", "high", "medium", "low"],
        "statuses": ["experimental", "test", "stable", "deprecated"],
        "tag_prefix": "attack.",
    }
    kwargs.update(overrides)
    return FieldValidators(**kwargs)


class TestName:
    def setup_method(self):
        self.v = _validators()

    def test_empty_is_required(self):
        result = self.v.name("")
        assert not result.valid
        assert result.message == "Rule name is required"

    def test_too_short(self):
        assert self.v.name("text").message == "Invalid rule name."

    def test_bad_character(self):
        assert self.v.name("tex&t").message == "Invalid rule name."

    def test_boundaries(self):
        assert self.v.name("a" * 5).valid
        assert self.v.name("a" * 50).valid
        assert not self.v.name("a" * 51).valid

    def test_allowed_characters(self):
        assert self.v.name("Rule name_1-x").valid


class TestAuthor:
    def setup_method(self):
        self.v = _validators()

    def test_empty_is_required(self):
        assert self.v.author("").message == "Author name is required"

    def test_bad_character(self):
        assert self.v.author("tex&").message == "Invalid author."

    def test_short_author_is_fine(self):
        """No length bound beyond being present."""
        assert self.v.author("Al").valid


class TestDescription:
    def setup_method(self):
        self.v = _validators()

    def test_optional(self):
        assert self.v.description("").valid

    def test_punctuation_allowed(self):
        assert self.v.description("Detects things, mostly. Not-all_of them").valid

    def test_over_500_characters(self):
        result = self.v.description("a" * 501)
        assert not result.valid
        assert result.message == DESCRIPTION_ERROR

    def test_bad_character(self):
        assert not self.v.description("quote's").valid


class TestClosedSets:
    def setup_method(self):
        self.v = _validators()

    def test_log_type_required(self):
        assert self.v.log_type("").message == "Log type is required"

    def test_log_type_outside_catalog(self):
        assert self.v.log_type("mainframe").message == "Invalid log type."

    def test_log_type_comes_from_injected_set(self):
        v = _validators(log_types=["mainframe"])
        assert v.log_type("mainframe").valid
        assert not v.log_type("windows").valid

    def test_level_required(self):
        assert self.v.level("").message == "Rule level is required"

    def test_level_case_insensitive(self):
        assert self.v.level("Critical").valid

    def test_level_unknown(self):
        assert not self.v.level("informational").valid

    def test_status_required(self):
        assert self.v.status("").message == "Rule status is required"

    def test_status_unknown(self):
        assert not self.v.status("retired").valid


class TestTags:
    def setup_method(self):
        self.v = _validators()

    @pytest.mark.parametrize("tag", ["wrong.tag", "", "Attack.x", "x.attack.y"])
    def test_without_prefix_fails(self, tag):
        result = self.v.tag(tag)
        assert not result.valid
        assert result.message == "Tags must start with 'attack.'"

    @pytest.mark.parametrize("tag", ["attack.tag", "attack.t1543.003", "attack."])
    def test_with_prefix_passes(self, tag):
        assert self.v.tag(tag).valid

    def test_custom_prefix(self):
        v = _validators(tag_prefix="cve.")
        assert v.tag("cve.2021-44228").valid
        assert v.tag("attack.x").message == "Tags must start with 'cve.'"


class TestSelection:
    def setup_method(self):
        self.v = _validators()

    def test_name_required(self):
        assert self.v.selection_name("").message == "Selection name is required"

    def test_name_unique(self):
        result = self.v.selection_name("Selection_1", ["Selection_1"])
        assert result.message == "Selection name must be unique."

    @pytest.mark.parametrize("name", ["condition", "and", "Sel 1", "1", "a:b"])
    def test_name_must_be_a_condition_term(self, name):
        assert self.v.selection_name(name).message == "Invalid selection name."

    def test_key_required(self):
        assert self.v.selection_key("").message == "Key name is required"

    def test_key_with_colon(self):
        assert self.v.selection_key("Field:Key").message == "Invalid key name."

    def test_unsupported_modifier(self):
        result = self.v.selection_key("FieldKey", "base64offset")
        assert result.message == "Unsupported modifier 'base64offset'."

    def test_supported_modifier(self):
        assert self.v.selection_key("FieldKey", "contains").valid

    def test_scalar_value_required(self):
        sel = Selection(name="S", field_key="K", value="")
        assert self.v.selection_value(sel).message == "Value is required"

    def test_list_value_required(self):
        sel = Selection(name="S", field_key="K", value=[], match_style=MatchStyle.LIST)
        assert self.v.selection_value(sel).message == "Value is required"

    def test_list_of_blanks_is_empty(self):
        sel = Selection(name="S", field_key="K", value=["", ""], match_style="list")
        assert not self.v.selection_value(sel).valid

    def test_multiline_value(self):
        sel = Selection(name="S", field_key="K", value="a\nb")
        assert self.v.selection_value(sel).message == "Value must be a single line."


class TestCondition:
    def test_empty_is_required(self):
        result = _validators().condition(ConditionExpression())
        assert result.message == "Condition is required"

    def test_one_term_is_enough(self):
        assert _validators().condition(ConditionExpression(["Selection_1"])).valid


class TestLineBreaks:
    """``$`` matches before a trailing newline, so anchors alone are not enough."""

    def setup_method(self):
        self.v = _validators()

    def test_trailing_newline_in_name(self):
        assert self.v.name("Sample Rule\n").message == "Invalid rule name."

    def test_trailing_newline_in_author(self):
        assert not self.v.author("Sample Author\n").valid

    def test_trailing_newline_in_description(self):
        assert self.v.description("Stored rule\n").message == DESCRIPTION_ERROR

    def test_trailing_newline_in_selection_name(self):
        assert not self.v.selection_name("Selection_1\n").valid

    def test_line_break_in_key(self):
        assert not self.v.selection_key("Field\nKey").valid
        assert not self.v.selection_key("FieldKey\n").valid

    def test_tag(self):
        assert self.v.tag("attack.a\nb").message == "Tag must be a single line."

    def test_reference(self):
        assert self.v.reference("https://example.com").valid
        assert self.v.reference("").valid
        assert self.v.reference("https://a\nb").message == "Reference must be a single line."

    def test_false_positive(self):
        assert self.v.false_positive("unknown").valid
        assert not self.v.false_positive("a\r\nb").valid


class TestExtras:
    def setup_method(self):
        self.v = _validators()

    def test_pass_through_key(self):
        assert self.v.extra("date", "2022/11/01").valid

    def test_value_required(self):
        assert self.v.extra("date", "").message == "Value for 'date' is required"

    def test_known_key_cannot_be_an_extra(self):
        assert self.v.extra("detection", "x").message == "Invalid key 'detection'."

    def test_multiline_value(self):
        assert self.v.extra("date", "2022\n11").message == "Value must be a single line."
