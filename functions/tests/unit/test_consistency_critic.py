"""Unit tests for the revision consistency critic."""

import pytest

from agents.critics.consistency_critic import (
    INTENT_ADD,
    INTENT_MODIFY,
    INTENT_NONE,
    INTENT_REMOVE,
    check_consistency,
    common_prefix_length,
    detect_changes,
    detect_intent,
    extract_mentioned_items,
)
from config.pricing_policy import ROT
from models.quote import WorkItem
from services.job_registry import find_job_definition
from services.pricing_engine import PricingEngine
from tests.fixtures.mock_quote_data import bathroom_interpretation, generic_quote, make_quote


def _priced(interpretation):
    engine = PricingEngine()
    job_def = find_job_definition(interpretation.job_type)
    lines = engine.price_lines(interpretation, job_def)
    return engine.assemble_quote(interpretation, job_def, lines, ROT)


@pytest.fixture
def bathroom_quote():
    return _priced(bathroom_interpretation())


@pytest.fixture
def bathroom_without_floor_heating():
    return _priced(bathroom_interpretation(exclusions=["golvvärme"]))


class TestDetectIntent:
    """Tests for detect_intent."""

    @pytest.mark.parametrize("message,expected", [
        ("Ta bort golvvärmen", INTENT_REMOVE),
        ("Vi gör det utan tapetsering", INTENT_REMOVE),
        ("Lägg till fönsterputs", INTENT_ADD),
        ("Vi vill även måla taket", INTENT_ADD),
        ("Byt till premiumkakel", INTENT_MODIFY),
        ("Ta bort tapeten och lägg till spackling", INTENT_MODIFY),
        ("Kan ni göra det billigare?", INTENT_NONE),
        ("Standardkvalitet räcker", INTENT_NONE),
    ])
    def test_detect_intent(self, message, expected):
        assert detect_intent(message) == expected


class TestCommonPrefixLength:
    """Tests for common_prefix_length."""

    @pytest.mark.parametrize("a,b,expected", [
        ("golvvärmen", "golvvärmematta", 9),
        ("kakel", "kakel", 5),
        ("kakel", "klinker", 1),
        ("tätskikt", "", 0),
        ("väggfärg", "vägg", 4),
    ])
    def test_common_prefix_length(self, a, b, expected):
        assert common_prefix_length(a, b) == expected


class TestExtractMentionedItems:
    """Tests for extract_mentioned_items."""

    def test_definite_form_matches_compounds(self, bathroom_quote):
        mentioned = extract_mentioned_items("Ta bort golvvärmen", bathroom_quote)

        assert {m.item_name: m.old_value for m in mentioned} == {
            "Golvvärmemontage": 3750,
            "Golvvärmematta": 3000,
            "Termostat golvvärme": 1500,
        }

    def test_short_words_do_not_match(self, bathroom_quote):
        assert extract_mentioned_items("Ta bort el", bathroom_quote) == []


class TestDetectChanges:
    """Tests for detect_changes."""

    def test_modified_line(self):
        changes = detect_changes(generic_quote(hours=8), generic_quote(hours=10))

        assert len(changes) == 1
        assert changes[0].type == INTENT_MODIFY
        assert changes[0].old_value == 5200
        assert changes[0].new_value == 6500

    def test_removed_lines(self, bathroom_quote, bathroom_without_floor_heating):
        changes = detect_changes(bathroom_quote, bathroom_without_floor_heating)

        assert {c.item_name for c in changes} == {
            "Golvvärmemontage", "Golvvärmematta", "Termostat golvvärme"
        }
        assert all(c.type == INTENT_REMOVE for c in changes)

    def test_added_line(self):
        previous = generic_quote()
        new = make_quote(previous.work_items + [WorkItem(name="Fönsterputs", hours=2, hourly_rate=650)])

        changes = detect_changes(previous, new)

        assert [(c.type, c.item_name, c.new_value) for c in changes] == [(INTENT_ADD, "Fönsterputs", 1300)]


class TestCheckConsistency:
    """Tests for check_consistency."""

    def test_removing_floor_heating_is_consistent(self, bathroom_quote, bathroom_without_floor_heating):
        """The price drops by exactly the removed lines."""
        result = check_consistency(bathroom_quote, bathroom_without_floor_heating, "Ta bort golvvärmen")

        assert result.valid is True
        assert result.intent == INTENT_REMOVE
        assert result.consistency_warnings == []
        assert result.price_change == pytest.approx(-8250 * 1.25)

    def test_remove_without_price_drop(self):
        result = check_consistency(generic_quote(), generic_quote(), "Ta bort städningen")

        assert result.valid is False
        assert len(result.consistency_warnings) == 1
        assert "tas bort" in result.consistency_warnings[0]

    def test_add_with_price_drop(self):
        result = check_consistency(generic_quote(hours=8), generic_quote(hours=6), "Lägg till fönsterputs")

        assert result.valid is False
        assert "läggas till" in result.consistency_warnings[0]

    def test_unexplained_jump(self):
        result = check_consistency(generic_quote(hours=8), generic_quote(hours=16), "Hej igen")

        assert result.intent == INTENT_NONE
        assert result.price_change_percent == 100.0
        assert "utan tydlig anledning" in result.consistency_warnings[0]

    def test_small_change_without_intent_is_fine(self):
        result = check_consistency(generic_quote(hours=8), generic_quote(hours=9), "Hej igen")

        assert result.valid is True

    def test_removal_far_larger_than_removed_lines(self):
        previous = make_quote([
            WorkItem(name="Golvvärmemontage", hours=5, hourly_rate=750),
            WorkItem(name="Kakelsättning", hours=20, hourly_rate=750),
        ])
        new = make_quote([WorkItem(name="Kakelsättning", hours=5, hourly_rate=750)])

        result = check_consistency(previous, new, "Ta bort golvvärmen")

        assert result.valid is False
        assert len(result.consistency_warnings) == 1
        assert "dubbelt" in result.consistency_warnings[0]
