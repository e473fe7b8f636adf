"""Unit tests for quote, interpretation and rate models."""

import pytest
from pydantic import ValidationError

from models.interpretation import Complexity, Interpretation, QualityLevel, unit_field
from models.quote import Assumption, EquipmentLine, Material, Quote, Summary, WorkItem
from models.rates import PriceMultipliers, Multiplier, RateContext, HourlyRate, DeductionRecipient
from models.responses import ClarificationResponse, ErrorResponse


class TestLineItems:
    """Tests for line item subtotals."""

    def test_work_item_subtotal(self):
        """Subtotal is hours times rate."""
        item = WorkItem(name="Målning", hours=19.8, hourly_rate=550)

        assert item.subtotal == 10890.0

    def test_work_item_rejects_zero_rate(self):
        """A work item can never be priced at 0 kr/h."""
        with pytest.raises(ValidationError):
            WorkItem(name="Målning", hours=2, hourly_rate=0)

    def test_material_subtotal(self):
        material = Material(name="Väggfärg", quantity=7.5, unit="liter", price_per_unit=250)

        assert material.subtotal == 1875.0

    def test_equipment_needs_a_price(self):
        """Equipment without day or hour price is rejected."""
        with pytest.raises(ValidationError):
            EquipmentLine(name="Ställning", quantity=2)

    def test_equipment_hourly_price(self):
        line = EquipmentLine(name="Slipmaskin", price_per_hour=150, quantity=4)

        assert line.subtotal == 600.0

    def test_camel_case_aliases(self):
        """Lines can be built from and dumped to camelCase."""
        item = WorkItem.model_validate({"name": "Rivning", "hours": 8, "hourlyRate": 700, "rotEligible": True})
        dumped = item.model_dump(by_alias=True)

        assert dumped["hourlyRate"] == 700
        assert dumped["rotEligible"] is True
        assert dumped["subtotal"] == 5600.0


class TestSummary:
    """Tests for Summary.calculate arithmetic invariants."""

    def test_totals_follow_from_lines(self):
        """TotalBeforeVAT = work + material + equipment; VAT on top."""
        summary = Summary.calculate(
            [WorkItem(name="Målning", hours=19.8, hourly_rate=550)],
            [Material(name="Väggfärg", quantity=7.5, price_per_unit=250)],
            [EquipmentLine(name="Servicebil", price_per_day=800, quantity=0.5)],
            vat_rate=0.25,
        )

        assert summary.work_cost == 10890.0
        assert summary.material_cost == 1875.0
        assert summary.equipment_cost == 400.0
        assert summary.total_before_vat == 13165.0
        assert summary.vat_amount == 3291.25
        assert summary.total_with_vat == 16456.25
        assert summary.customer_pays == summary.total_with_vat

    def test_risk_margin_stays_out_of_vat_base(self):
        """The margin is added on top of the total; totals and VAT are unchanged."""
        summary = Summary.calculate(
            [WorkItem(name="Arbete", hours=10, hourly_rate=600)],
            [], [],
            vat_rate=0.25,
            risk_margin=300,
        )

        assert summary.risk_margin == 300.0
        assert summary.total_before_vat == 6000.0
        assert summary.vat_amount == 1500.0
        assert summary.total_with_vat == 7500.0
        assert summary.total_with_risk_margin == 7800.0
        assert summary.customer_pays == 7800.0

    def test_no_margin_means_customer_pays_total(self):
        summary = Summary.calculate(
            [WorkItem(name="Arbete", hours=10, hourly_rate=600)], [], [], vat_rate=0.25
        )

        assert summary.total_with_risk_margin == summary.total_with_vat
        assert summary.customer_pays == summary.total_with_vat

    def test_money_is_rounded_to_ore(self):
        summary = Summary.calculate(
            [WorkItem(name="Arbete", hours=1.333, hourly_rate=555.55)],
            [], [],
            vat_rate=0.25,
        )

        assert summary.work_cost == round(summary.work_cost, 2)
        assert summary.vat_amount == round(summary.vat_amount, 2)


class TestAssumption:
    """Tests for the Assumption model."""

    def test_confirmable_assumption_needs_field(self):
        """CanConfirm=true requires the field to re-supply."""
        with pytest.raises(ValidationError):
            Assumption(text="Antagen yta", confidence=30, source_of_truth="Standard", can_confirm=True)

    def test_confirmable_assumption_with_field(self):
        assumption = Assumption(
            text="Antagen yta", confidence=30, source_of_truth="Standard", can_confirm=True, field="area"
        )

        assert assumption.field == "area"

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            Assumption(text="x", confidence=101, source_of_truth="y")


class TestInterpretation:
    """Tests for the Interpretation model."""

    def test_numbers_are_coerced(self):
        """String measurements and comma decimals become floats."""
        interp = Interpretation(job_type="Målning", area="12,5 kvm", rooms="3")

        assert interp.job_type == "målning"
        assert interp.area == 12.5
        assert interp.rooms == 3.0

    def test_non_positive_numbers_are_absent(self):
        interp = Interpretation(area=0, length=-2)

        assert interp.area is None
        assert interp.length is None

    def test_null_lists_become_empty(self):
        interp = Interpretation.model_validate({"exclusions": None, "assumptions": "en sak"})

        assert interp.exclusions == []
        assert interp.assumptions == ["en sak"]

    def test_invalid_start_month_is_dropped(self):
        assert Interpretation(start_month=13).start_month is None
        assert Interpretation(start_month="5").start_month == 5

    def test_unit_quantity(self):
        interp = Interpretation(area=45, length=12, quantity=3)

        assert interp.unit_quantity("kvm") == 45
        assert interp.unit_quantity("lm") == 12
        assert interp.unit_quantity("tim") == 3
        assert unit_field("rum") == "rooms"

    def test_field_present(self):
        interp = Interpretation(job_type="badrum", complexity=Complexity.COMPLEX)

        assert interp.field_present("job_type") is True
        assert interp.field_present("complexity") is True
        assert interp.field_present("area") is False
        assert interp.field_present("exclusions") is False

    def test_frozen(self):
        interp = Interpretation(job_type="målning")

        with pytest.raises(ValidationError):
            interp.area = 10

        updated = interp.model_copy(update={"quality_level": QualityLevel.PREMIUM})
        assert updated.quality_level == QualityLevel.PREMIUM
        assert interp.quality_level == QualityLevel.STANDARD


class TestRates:
    """Tests for rate models."""

    def test_combined_multiplier(self):
        multipliers = PriceMultipliers(
            regional=Multiplier(value=1.1, reason="Stockholm"),
            seasonal=Multiplier(value=0.9, reason="Lågsäsong"),
        )

        assert multipliers.combined == pytest.approx(0.99)

    def test_rate_context_drops_zero_rates(self):
        context = RateContext(hourly_rates=[
            HourlyRate(work_type="målare", rate=0),
            HourlyRate(work_type="snickare", rate=650),
        ])

        assert [r.work_type for r in context.hourly_rates] == ["snickare"]

    def test_recipient_share_bounds(self):
        with pytest.raises(ValidationError):
            DeductionRecipient(share=1.5)


class TestResponses:
    """Tests for pipeline response shapes."""

    def test_clarification_response_dump(self):
        response = ClarificationResponse(
            questions=["Hur stort är badrummet?"],
            first_question="Hur stort är badrummet?",
            missing_fields=["area"],
        )
        dumped = response.model_dump(by_alias=True)

        assert dumped["type"] == "clarification"
        assert dumped["firstQuestion"] == "Hur stort är badrummet?"
        assert dumped["missingFields"] == ["area"]

    def test_error_response(self):
        response = ErrorResponse(error={"code": "INPUT_ERROR", "message": "Tom beskrivning", "details": {}})

        assert response.type == "error"

    def test_quote_round_trips_from_json(self):
        """A quote sent back as previousQuote parses into the same quote."""
        work_items = [WorkItem(name="Arbete", hours=8, hourly_rate=650)]
        quote = Quote(
            title="Arbete 8 tim",
            job_type="ai_driven",
            unit_qty=8,
            work_items=work_items,
            summary=Summary.calculate(work_items, [], [], vat_rate=0.25),
        )

        parsed = Quote.model_validate(quote.to_dict())

        assert parsed.summary.total_with_vat == quote.summary.total_with_vat
        assert parsed.work_items[0].subtotal == 5200.0
