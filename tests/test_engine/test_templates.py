"""Tests for message template rendering (scoutflow/engine/templates.py)."""

import pytest

from scoutflow.core.exceptions import TemplateRenderError
from scoutflow.db.models import AgentProfile, Prospect
from scoutflow.engine.templates import DEFAULT_CONTEXT, build_context, render


class TestRender:
    """Placeholder substitution."""

    def test_substitutes_every_occurrence(self):
        text = render("{{first_name}}, {{first_name}}!", {"first_name": "Ana"})
        assert text == "Ana, Ana!"

    def test_spaces_inside_braces(self):
        assert render("Hi {{ first_name }}", {"first_name": "Ana"}) == "Hi Ana"

    def test_missing_variable_uses_builtin_default(self):
        assert render("Hi {{first_name}}, I'm {{agent_name}}", {}) == "Hi Friend, I'm Your Agent"

    def test_none_and_empty_values_count_as_missing(self):
        assert render("Hi {{first_name}}", {"first_name": None}) == "Hi Friend"
        assert render("Hi {{first_name}}", {"first_name": ""}) == "Hi Friend"

    def test_unknown_variable_uses_caller_default(self):
        assert render("Code: {{promo_code}}", {}, default="N/A") == "Code: N/A"
        assert render("Code: {{promo_code}}", {}) == "Code: "

    def test_case_study_defaults(self):
        text = render("{{client_example_name}} {{client_result}}", None)
        assert text == f"{DEFAULT_CONTEXT['client_example_name']} {DEFAULT_CONTEXT['client_result']}"

    def test_no_html_escaping(self):
        assert render("{{x}}", {"x": "<b>&</b>"}) == "<b>&</b>"

    def test_plain_text_unchanged(self):
        assert render("No placeholders here.", {"first_name": "Ana"}) == "No placeholders here."

    def test_block_and_comment_markers_are_text(self):
        text = render("Hi {{first_name}}! Promo {#1 pick} this week {% off %}", {"first_name": "Ana"})
        assert text == "Hi Ana! Promo {#1 pick} this week {% off %}"

    def test_internals_not_reachable(self):
        assert render("[{{ first_name.__class__ }}]", {"first_name": "Ana"}) == "[]"

    def test_malformed_template_raises(self):
        with pytest.raises(TemplateRenderError):
            render("Hi {{first_name", {"first_name": "Ana"})


class TestBuildContext:
    """Context assembly."""

    def test_prospect_and_agent_fields(self):
        context = build_context(
            Prospect(first_name="Ana", last_name="Reyes"),
            AgentProfile(user_id="u", agent_name="Joy", product_name="Plan", booking_link="https://b"),
        )
        assert context["first_name"] == "Ana"
        assert context["full_name"] == "Ana Reyes"
        assert context["agent_name"] == "Joy"
        assert context["booking_link"] == "https://b"
        assert "user_goal" not in context

    def test_blank_name_falls_back(self):
        context = build_context(Prospect(first_name="  "))
        assert render("Hi {{first_name}}", context) == "Hi Friend"
