"""Unit tests for the assumption and confidence scorer."""

import pytest

from agents.scorers.confidence_scorer import (
    ConfidenceScorer,
    assumption_confidence,
    generate_assumptions,
    overall_confidence,
    summarise_history,
)
from config.pricing_policy import PricingPolicy
from models.interpretation import Interpretation
from models.quote import Assumption
from models.rates import HistoricalPattern, HistoricalQuote, RateContext
from services.job_registry import find_job_definition
from services.pricing_engine import PricingEngine
from tests.fixtures.mock_quote_data import (
    GENERAL_RATE,
    painting_interpretation,
    similar_quotes,
)


def _score_inputs(interpretation, rates=None):
    job_def = find_job_definition(interpretation.job_type)
    lines = PricingEngine().price_lines(interpretation, job_def, rates)
    return job_def, lines


def _assumption(confidence):
    return Assumption(text="Antagande", confidence=confidence, source_of_truth="Test")


class TestAssumptionConfidence:
    """Confidence grows with the number of backing quotes."""

    @pytest.mark.parametrize("samples,fallback,expected", [
        (0, 30, 30),
        (0, 60, 49),
        (1, 30, 35),
        (2, 45, 49),
        (3, 30, 70),
        (5, 30, 80),
        (8, 30, 95),
        (20, 30, 95),
    ])
    def test_ranges(self, samples, fallback, expected):
        assert assumption_confidence(samples, fallback) == expected

    def test_few_samples_stay_below_fifty(self):
        assert all(assumption_confidence(n, 45) < 50 for n in range(3))

    def test_three_samples_reach_seventy(self):
        assert all(70 <= assumption_confidence(n, 0) <= 95 for n in range(3, 30))


class TestOverallConfidence:
    """Tests for overall_confidence."""

    def test_no_assumptions(self):
        assert overall_confidence([]) == 1.0

    def test_mean_of_assumptions(self):
        assert overall_confidence([_assumption(40), _assumption(60)]) == 0.5

    def test_clarification_penalty(self):
        assert overall_confidence([_assumption(40), _assumption(60)], 1) == 0.45
        assert overall_confidence([], 2) == 0.8

    def test_penalty_is_capped(self):
        assert overall_confidence([], 7) == overall_confidence([], 5) == 0.5


class TestGenerateAssumptions:
    """Tests for generate_assumptions."""

    def test_market_rate_assumption(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp)

        assumptions = generate_assumptions(interp, job_def, lines)

        assert len(assumptions) == 1
        market = assumptions[0]
        assert "550" in market.text
        assert market.confidence == 40
        assert market.can_confirm is False
        assert market.field == "hourly_rate"

    def test_user_rate_needs_no_assumption(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp, RateContext(hourly_rates=GENERAL_RATE))

        assert generate_assumptions(interp, job_def, lines) == []

    def test_inferred_quantity_is_confirmable(self):
        interp = Interpretation(job_type="ai_driven")
        job_def, lines = _score_inputs(interp, RateContext(hourly_rates=GENERAL_RATE))

        assumptions = generate_assumptions(interp, job_def, lines)

        assert len(assumptions) == 1
        inferred = assumptions[0]
        assert inferred.text == "Antagen mängd: 8 tim"
        assert inferred.can_confirm is True
        assert inferred.field == "quantity"
        assert inferred.confidence == 30

    def test_defaulted_enum_is_confirmable(self):
        interp = painting_interpretation(defaulted_fields=["complexity"])
        job_def, lines = _score_inputs(interp, RateContext(hourly_rates=GENERAL_RATE))

        assumptions = generate_assumptions(interp, job_def, lines)

        assert [a.text for a in assumptions] == ["Antagen komplexitet: normal"]
        assert assumptions[0].field == "complexity"
        assert assumptions[0].confidence == 45

    def test_model_assumptions_are_carried(self):
        interp = painting_interpretation(assumptions=["Väggarna är i gott skick"])
        job_def, lines = _score_inputs(interp, RateContext(hourly_rates=GENERAL_RATE))

        assumptions = generate_assumptions(interp, job_def, lines)

        assert assumptions[0].text == "Väggarna är i gott skick"
        assert assumptions[0].can_confirm is False

    def test_history_raises_confidence(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp)
        history = summarise_history(similar_quotes([14000, 15000, 16000]))

        assumptions = generate_assumptions(interp, job_def, lines, history)

        assert [a.confidence for a in assumptions] == [70, 70]
        assert "(3 st)" in assumptions[-1].text
        assert assumptions[-1].source_of_truth == "Egen offerthistorik"

    def test_sparse_history_stays_low(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp)
        history = summarise_history(similar_quotes([15000]))

        assumptions = generate_assumptions(interp, job_def, lines, history)

        assert all(a.confidence < 50 for a in assumptions)


class TestSummariseHistory:
    """Tests for summarise_history."""

    def test_empty(self):
        pattern = summarise_history([])

        assert pattern == HistoricalPattern()
        assert pattern.sample_size == 0

    def test_aggregates(self):
        pattern = summarise_history(similar_quotes([14000, 15000, 16000]))

        assert pattern.sample_size == 3
        assert pattern.min_total == 14000
        assert pattern.max_total == 16000
        assert pattern.avg_total == 15000
        assert pattern.avg_price_per_unit == pytest.approx(333.33)

    def test_ignores_zero_totals_and_missing_area(self):
        quotes = [
            HistoricalQuote(job_type="målning", area=None, total_before_vat=12000),
            HistoricalQuote(job_type="målning", area=40, total_before_vat=0),
        ]

        pattern = summarise_history(quotes)

        assert pattern.sample_size == 1
        assert pattern.avg_price_per_unit is None


class TestConfidenceScorer:
    """Tests for ConfidenceScorer."""

    def test_market_rate_only_needs_review(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp)

        report = ConfidenceScorer().score(interp, job_def, lines)

        assert report.confidence == 0.4
        assert report.needs_review is True

    def test_fully_stated_quote(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp, RateContext(hourly_rates=GENERAL_RATE))

        report = ConfidenceScorer().score(interp, job_def, lines)

        assert report.assumptions == []
        assert report.confidence == 1.0
        assert report.needs_review is False

    def test_open_clarifications_lower_confidence(self):
        interp = painting_interpretation(clarifications_needed=["Vilken kulör ska det vara?"])
        job_def, lines = _score_inputs(interp, RateContext(hourly_rates=GENERAL_RATE))

        report = ConfidenceScorer().score(interp, job_def, lines)

        assert report.confidence == 0.9

    def test_threshold_follows_policy(self):
        interp = painting_interpretation()
        job_def, lines = _score_inputs(interp)

        report = ConfidenceScorer(PricingPolicy(review_threshold=0.3)).score(interp, job_def, lines)

        assert report.needs_review is False
