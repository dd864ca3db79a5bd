"""Tests for {{NAME}} placeholder resolution."""

import pytest

from reqtag.templating import (
    find_placeholders,
    resolve_template,
    resolve_template_object,
    unresolved_placeholders,
)


class TestResolveTemplate:
    @pytest.mark.parametrize(
        "text",
        [
            "https://api.example.com/users",
            "plain text with { single braces }",
            "{{ spaced }}",
            "{{}}",
            "{{a-b}}",
            "{{not closed",
            "}}{{",
            '{"json": {"nested": true}}',
        ],
    )
    def test_text_without_tokens_is_unchanged(self, text):
        assert resolve_template(text, {"spaced": "x", "a": "y"}) == text

    def test_known_variable(self):
        assert resolve_template("{{X}}", {"X": "5"}) == "5"

    def test_unknown_variable_left_verbatim(self):
        assert resolve_template("{{Y}}", {"X": "5"}) == "{{Y}}"

    def test_multiple_tokens(self):
        text = "{{BASE_URL}}/users/{{id}}?q={{missing}}"
        variables = {"BASE_URL": "https://api.example.com", "id": "42"}
        assert resolve_template(text, variables) == "https://api.example.com/users/42?q={{missing}}"

    def test_none_and_empty_become_empty_string(self):
        assert resolve_template(None, {"X": "1"}) == ""
        assert resolve_template("", {"X": "1"}) == ""

    def test_empty_value_is_a_binding(self):
        assert resolve_template("a{{X}}b", {"X": ""}) == "ab"

    def test_substituted_values_are_not_rescanned(self):
        variables = {"A": "{{B}}", "B": "nope"}
        assert resolve_template("{{A}}", variables) == "{{B}}"

    def test_identifier_is_ascii_word_characters(self):
        assert resolve_template("{{café}}", {"café": "x"}) == "{{café}}"
        assert resolve_template("{{_x9}}", {"_x9": "ok"}) == "ok"

    def test_triple_braces(self):
        assert resolve_template("{{{X}}}", {"X": "1"}) == "{1}"


class TestResolveTemplateObject:
    def test_values_resolved_keys_untouched(self):
        result = resolve_template_object(
            {"{{KEY}}": "{{KEY}}", "Authorization": "Bearer {{TOKEN}}"},
            {"KEY": "k", "TOKEN": "t"},
        )
        assert result == {"{{KEY}}": "k", "Authorization": "Bearer t"}

    def test_order_preserved(self):
        result = resolve_template_object({"b": "1", "a": "2", "c": "3"}, {})
        assert list(result) == ["b", "a", "c"]

    def test_none_gives_empty_dict(self):
        assert resolve_template_object(None, {"X": "1"}) == {}


class TestPlaceholderDiscovery:
    def test_find_placeholders_in_order_without_duplicates(self):
        assert find_placeholders("{{B}}/{{A}}/{{B}}") == ["B", "A"]

    def test_unresolved_placeholders(self):
        assert unresolved_placeholders("{{A}}{{B}}", {"A": "1"}) == ["B"]
        assert unresolved_placeholders(None, {}) == []
