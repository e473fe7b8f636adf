"""Unit tests for the pricing engine."""

from datetime import date

import pytest

from config.errors import ErrorCode, InputError, QuoteError
from config.pricing_policy import DEFAULT_POLICY, NO_DEDUCTION, ROT, RUT, PricingPolicy
from models.interpretation import Complexity, Interpretation, QualityLevel
from models.quote import Assumption, Material, WorkItem
from models.rates import (
    DeductionRecipient,
    EquipmentRate,
    HourlyRate,
    Multiplier,
    PriceMultipliers,
    RateContext,
)
from services.job_registry import GENERIC_JOB_TYPE, find_job_definition
from services.pricing_engine import (
    RATE_SOURCE_CLAMPED,
    RATE_SOURCE_JOB_DEFAULT,
    RATE_SOURCE_USER,
    RATE_SOURCE_USER_GENERAL,
    PricingEngine,
    mentions,
    merge_duplicate_lines,
)
from tests.fixtures.mock_quote_data import (
    GENERAL_RATE,
    PAINTER_RATE,
    SERVICE_VEHICLE_RATE,
    bathroom_interpretation,
    kitchen_interpretation,
    painting_interpretation,
)


@pytest.fixture
def engine():
    return PricingEngine()


def _low(count: int):
    return [Assumption(text=f"Antagande {i}", confidence=40, source_of_truth="Standard") for i in range(count)]


class TestPaintingQuote:
    """'Måla 3 rum, totalt 45 kvm, standardkvalitet'."""

    def test_hours_follow_area(self, engine):
        """45 kvm x 0.44 h/kvm = 19.8 h at the market rate."""
        job_def = find_job_definition("målning")
        lines = engine.price_lines(painting_interpretation(), job_def)

        assert lines.unit_qty == 45
        assert lines.unit_qty_inferred is False
        assert lines.total_hours == pytest.approx(19.8)
        assert all(item.hourly_rate == 550 for item in lines.work_items)
        assert all(item.rate_source == RATE_SOURCE_JOB_DEFAULT for item in lines.work_items)

    def test_summary(self, engine):
        job_def = find_job_definition("målning")
        lines = engine.price_lines(painting_interpretation(), job_def)

        summary = engine.build_summary(lines)

        assert summary.work_cost == 10890.0
        assert summary.material_cost == 3635.0
        assert summary.equipment_cost == 400.0
        assert summary.total_before_vat == 14925.0
        assert summary.total_with_vat == 18656.25

    def test_materials(self, engine):
        job_def = find_job_definition("målning")
        lines = engine.price_lines(painting_interpretation(), job_def)

        by_name = {m.name: m for m in lines.materials}
        assert by_name["Väggfärg"].quantity == 7.5
        assert by_name["Täckpapp och maskeringstejp"].quantity == 3

    def test_users_painter_rate(self, engine):
        job_def = find_job_definition("målning")
        lines = engine.price_lines(painting_interpretation(), job_def, RateContext(hourly_rates=PAINTER_RATE))

        assert all(item.hourly_rate == 600 for item in lines.work_items)
        assert all(item.rate_source == RATE_SOURCE_USER for item in lines.work_items)
        assert engine.build_summary(lines).work_cost == 11880.0

    def test_customer_provides_material(self, engine):
        job_def = find_job_definition("målning")
        interp = painting_interpretation(customer_provides_material=True)

        lines = engine.price_lines(interp, job_def)

        assert lines.materials == []

    def test_complexity_scales_hours(self, engine):
        job_def = find_job_definition("målning")
        complex_lines = engine.price_lines(painting_interpretation(complexity=Complexity.COMPLEX), job_def)

        assert complex_lines.total_hours == pytest.approx(19.8 * 1.3, abs=0.05)

    def test_quality_selects_material_price(self, engine):
        job_def = find_job_definition("målning")
        premium = engine.price_lines(painting_interpretation(quality_level=QualityLevel.PREMIUM), job_def)

        paint = next(m for m in premium.materials if m.name == "Väggfärg")
        assert paint.price_per_unit == 400


class TestQuantities:
    """Tests for unit quantity resolution."""

    def test_missing_quantity_raises(self, engine):
        job_def = find_job_definition("målning")

        with pytest.raises(QuoteError) as exc_info:
            engine.resolve_unit_qty(Interpretation(job_type="målning"), job_def)

        assert exc_info.value.code == ErrorCode.MISSING_FIELD

    def test_generic_default_quantity_is_inferred(self, engine):
        job_def = find_job_definition(GENERIC_JOB_TYPE)

        qty, inferred = engine.resolve_unit_qty(Interpretation(job_type="byta taklampa"), job_def)

        assert qty == 8
        assert inferred is True

    def test_generic_job_prices_hours(self, engine):
        job_def = find_job_definition(GENERIC_JOB_TYPE)
        interp = Interpretation(job_type="byta taklampa", quantity=3)

        lines = engine.price_lines(interp, job_def)

        assert len(lines.work_items) == 1
        assert lines.work_items[0].name == "Byta taklampa"
        assert lines.work_items[0].hours == 3
        assert lines.work_items[0].rot_eligible is None


class TestRateSelection:
    """Tests for hourly rate selection."""

    def test_work_type_match(self, engine):
        job_def = find_job_definition("badrum")
        rates = [HourlyRate(work_type="Elektriker", rate=850), HourlyRate(work_type="Plattsättare", rate=720)]

        assert engine.select_hourly_rate("el", rates, job_def) == (850, RATE_SOURCE_USER)
        assert engine.select_hourly_rate("plattsättare", rates, job_def) == (720, RATE_SOURCE_USER)

    def test_short_key_does_not_match_inside_word(self, engine):
        """'el' must not match 'Kakel'."""
        job_def = find_job_definition(GENERIC_JOB_TYPE)
        rates = [HourlyRate(work_type="Kakel", rate=900)]

        assert engine.select_hourly_rate("el", rates, job_def) == (650, RATE_SOURCE_JOB_DEFAULT)

    def test_general_rate(self, engine):
        job_def = find_job_definition("badrum")

        assert engine.select_hourly_rate("vvs", GENERAL_RATE, job_def) == (750, RATE_SOURCE_USER_GENERAL)

    def test_zero_rate_is_ignored(self, engine):
        """A non-positive user rate never prices a line."""
        job_def = find_job_definition("målning")
        rates = [HourlyRate(work_type="Målare", rate=0)]

        rate, source = engine.select_hourly_rate("målare", rates, job_def)

        assert rate == 550
        assert source == RATE_SOURCE_JOB_DEFAULT

    def test_regional_multiplier(self, engine):
        job_def = find_job_definition("målning")
        rates = RateContext(multipliers=PriceMultipliers(regional=Multiplier(value=1.1, reason="Stockholm")))

        lines = engine.price_lines(painting_interpretation(), job_def, rates)

        assert lines.work_items[0].hourly_rate == 605.0
        assert engine.build_summary(lines).work_cost == 11979.0
        assert lines.notes == ["Stockholm (1.1 x timpris, material oförändrat)"]

    def test_multiplier_leaves_materials_unchanged(self, engine):
        """Regional and seasonal multipliers scale labour only."""
        job_def = find_job_definition("målning")
        plain = engine.price_lines(painting_interpretation(), job_def)
        rates = RateContext(multipliers=PriceMultipliers(regional=Multiplier(value=1.1, reason="Stockholm")))

        scaled = engine.price_lines(painting_interpretation(), job_def, rates)

        assert [m.subtotal for m in scaled.materials] == [m.subtotal for m in plain.materials]
        assert engine.build_summary(scaled).material_cost == engine.build_summary(plain).material_cost
        assert engine.build_summary(scaled).work_cost > engine.build_summary(plain).work_cost

    def test_multiplier_is_listed_on_quote(self, engine):
        job_def = find_job_definition("målning")
        rates = RateContext(multipliers=PriceMultipliers(regional=Multiplier(value=1.1, reason="Stockholm")))
        lines = engine.price_lines(painting_interpretation(), job_def, rates)

        quote = engine.assemble_quote(painting_interpretation(), job_def, lines, NO_DEDUCTION)

        assert quote.adjustments == ["Stockholm (1.1 x timpris, material oförändrat)"]
        assert quote.to_dict()["adjustments"] == quote.adjustments

    def test_clamp_hourly_rates(self, engine):
        items = [WorkItem(name="A", hours=2, hourly_rate=200), WorkItem(name="B", hours=2, hourly_rate=900)]

        clamped = engine.clamp_hourly_rates(items, 500, 800)

        assert [i.hourly_rate for i in clamped] == [500, 800]
        assert all(i.rate_source == RATE_SOURCE_CLAMPED for i in clamped)


class TestLineSelection:
    """Tests for exclusions, inclusions and equipment."""

    def test_bathroom_totals(self, engine):
        job_def = find_job_definition("badrum")
        lines = engine.price_lines(bathroom_interpretation(), job_def)

        summary = engine.build_summary(lines)

        assert lines.total_hours == pytest.approx(69.5)
        assert summary.work_cost == 52125.0
        assert summary.material_cost == 49200.0
        assert summary.equipment_cost == 2000.0
        assert summary.total_before_vat == 103325.0

    def test_exclusion_removes_work_and_material(self, engine):
        """Excluding floor heating drops its work item and materials."""
        job_def = find_job_definition("badrum")
        interp = bathroom_interpretation(exclusions=["golvvärme"])

        lines = engine.price_lines(interp, job_def)
        names = [i.name for i in lines.work_items] + [m.name for m in lines.materials]

        assert not any("Golvvärme" in n or "golvvärme" in n for n in names)
        assert engine.build_summary(lines).total_before_vat == 95075.0

    def test_optional_item_needs_inclusion(self, engine):
        job_def = find_job_definition("altan")
        base = engine.price_lines(Interpretation(job_type="altan", area=20), job_def)
        with_railing = engine.price_lines(
            Interpretation(job_type="altan", area=20, inclusions=["räcke och trappa"]), job_def
        )

        assert "Räcke och trappa" not in [i.name for i in base.work_items]
        assert "Räcke och trappa" in [i.name for i in with_railing.work_items]

    def test_service_vehicle_uses_user_price(self, engine):
        job_def = find_job_definition("kök")
        lines = engine.price_lines(
            kitchen_interpretation(), job_def, RateContext(equipment_rates=SERVICE_VEHICLE_RATE)
        )

        vehicle = next(e for e in lines.equipment_lines if e.name == "Servicebil")
        assert vehicle.price_per_day == 1000
        assert vehicle.quantity == 1.0

    def test_kitchen_totals(self, engine):
        job_def = find_job_definition("kök")
        lines = engine.price_lines(kitchen_interpretation(), job_def)

        summary = engine.build_summary(lines)

        assert lines.total_hours == pytest.approx(65)
        assert summary.total_before_vat == 120400.0
        assert summary.total_with_vat == 150500.0

    def test_mentions(self):
        assert mentions(["golvvärme"], "Golvvärmemontage") is True
        assert mentions(["Termostat golvvärme"], "Termostat golvvärme") is True
        assert mentions(["el"], "El-installation") is False
        assert mentions([], "Kakel vägg") is False


class TestMergeDuplicateLines:
    """Tests for merge_duplicate_lines."""

    def test_same_work_at_same_rate_is_merged(self):
        items = [
            WorkItem(name="Spackling", hours=3, hourly_rate=550),
            WorkItem(name="Grundmålning", hours=4, hourly_rate=550),
            WorkItem(name="spackling", hours=2, hourly_rate=550),
        ]

        merged, _ = merge_duplicate_lines(items, [])

        assert [(i.name, i.hours) for i in merged] == [("Spackling", 5), ("Grundmålning", 4)]
        assert sum(i.subtotal for i in merged) == sum(i.subtotal for i in items)

    def test_different_rates_stay_separate(self):
        items = [
            WorkItem(name="Montering", hours=3, hourly_rate=550),
            WorkItem(name="Montering", hours=2, hourly_rate=700),
        ]

        merged, _ = merge_duplicate_lines(items, [])

        assert len(merged) == 2

    def test_spelling_variants_are_merged(self):
        items = [
            WorkItem(name="El-installation", hours=6, hourly_rate=800),
            WorkItem(name="Elinstallation", hours=4, hourly_rate=800),
            WorkItem(name="Våtrumsarbete", hours=2, hourly_rate=750),
        ]

        merged, _ = merge_duplicate_lines(items, [])

        assert [(i.name, i.hours) for i in merged] == [("El-installation", 10), ("Våtrumsarbete", 2)]

    def test_materials_merge_on_unit_and_price(self):
        materials = [
            Material(name="Väggfärg", quantity=10, unit="liter", price_per_unit=120),
            Material(name="Väggfärg", quantity=5, unit="liter", price_per_unit=120),
            Material(name="Väggfärg", quantity=5, unit="liter", price_per_unit=200),
        ]

        _, merged = merge_duplicate_lines([], materials)

        assert [(m.quantity, m.price_per_unit) for m in merged] == [(15, 120), (5, 200)]
        assert sum(m.subtotal for m in merged) == sum(m.subtotal for m in materials)

    def test_standard_lines_are_untouched(self, engine):
        job_def = find_job_definition("badrum")
        lines = engine.price_lines(bathroom_interpretation(), job_def)

        assert len(lines.work_items) == len(job_def.work_items)


class TestDeduction:
    """Tests for ROT/RUT deduction."""

    def _items(self, hours=100, rate=800):
        return [WorkItem(name="Renovering", hours=hours, hourly_rate=rate, rot_eligible=True)]

    def test_rot_on_labor_incl_vat(self, engine):
        deduction = engine.calculate_deduction(ROT, self._items(10, 600), on_date=date(2026, 3, 1))

        assert deduction.labor_cost_excl_vat == 6000.0
        assert deduction.labor_cost_incl_vat == 7500.0
        assert deduction.deduction_rate == 0.30
        assert deduction.deduction_amount == 2250.0
        assert deduction.rule_version == "rot-2026"

    def test_temporary_rot_rate(self, engine):
        deduction = engine.calculate_deduction(ROT, self._items(10, 600), on_date=date(2025, 6, 1))

        assert deduction.deduction_rate == 0.50
        assert deduction.deduction_amount == 3750.0

    def test_rut(self, engine):
        deduction = engine.calculate_deduction(RUT, self._items(4, 450), on_date=date(2026, 3, 1))

        assert deduction.deduction_amount == 1125.0

    def test_only_eligible_labor(self, engine):
        items = self._items(10, 600) + [WorkItem(name="Bortforsling", hours=2, hourly_rate=600, rot_eligible=False)]

        deduction = engine.calculate_deduction(ROT, items, on_date=date(2026, 3, 1))

        assert deduction.labor_cost_excl_vat == 6000.0

    def test_no_deduction(self, engine):
        assert engine.calculate_deduction(NO_DEDUCTION, self._items()) is None
        ineligible = [WorkItem(name="Arbete", hours=5, hourly_rate=600, rot_eligible=False)]
        assert engine.calculate_deduction(ROT, ineligible) is None

    def test_cap_per_recipient(self, engine):
        """Each recipient is capped by their share of the yearly cap, less what they used."""
        recipients = [
            DeductionRecipient(name="Anna", share=0.5),
            DeductionRecipient(name="Erik", share=0.5, used_this_year=20000),
        ]

        deduction = engine.calculate_deduction(ROT, self._items(), date(2025, 6, 1), recipients)

        amounts = {r.name: r.amount for r in deduction.recipients}
        assert amounts == {"Anna": 25000.0, "Erik": 5000.0}
        assert [r.cap_remaining for r in deduction.recipients] == [25000.0, 5000.0]
        assert deduction.deduction_amount == 30000.0
        assert deduction.deduction_cap == 50000
        assert deduction.price_after_deduction == 70000.0

    def test_exhausted_recipient_gets_nothing(self, engine):
        recipients = [
            DeductionRecipient(name="Anna", share=0.5),
            DeductionRecipient(name="Erik", share=0.5, used_this_year=45000),
        ]

        deduction = engine.calculate_deduction(ROT, self._items(), date(2025, 6, 1), recipients)

        amounts = {r.name: r.amount for r in deduction.recipients}
        assert amounts == {"Anna": 25000.0, "Erik": 0.0}
        assert deduction.deduction_amount == 25000.0

    @pytest.mark.parametrize("shares", [(0.9, 0.1), (0.5, 0.5), (0.7, 0.2, 0.1), (1.0,)])
    def test_no_recipient_exceeds_pro_rata_cap(self, engine, shares):
        """An uneven split never lets the minority owner claim more than their share."""
        recipients = [DeductionRecipient(name=f"Ägare {i}", share=s) for i, s in enumerate(shares)]

        deduction = engine.calculate_deduction(ROT, self._items(500, 800), date(2025, 6, 1), recipients)

        for part in deduction.recipients:
            assert part.amount <= 50000 * part.share + 0.01
        assert deduction.deduction_amount <= deduction.deduction_cap
        assert deduction.deduction_amount == pytest.approx(50000.0)

    def test_single_recipient_cap(self, engine):
        deduction = engine.calculate_deduction(ROT, self._items(200, 800), date(2025, 6, 1))

        assert deduction.deduction_amount == 50000.0

    def test_shares_must_sum_to_one(self, engine):
        recipients = [DeductionRecipient(share=0.5), DeductionRecipient(share=0.3)]

        with pytest.raises(InputError):
            engine.calculate_deduction(ROT, self._items(), date(2026, 3, 1), recipients)

    def test_deduction_floors_to_ore(self, engine):
        items = [WorkItem(name="Arbete", hours=1, hourly_rate=333.33, rot_eligible=True)]

        deduction = engine.calculate_deduction(ROT, items, date(2026, 3, 1))

        # 333.33 * 1.25 = 416.66 (rounded), * 0.3 = 124.998
        assert deduction.deduction_amount == 124.99

    def test_summary_customer_pays(self, engine):
        job_def = find_job_definition("målning")
        lines = engine.price_lines(painting_interpretation(), job_def)
        deduction = engine.calculate_deduction(ROT, lines.work_items, date(2026, 3, 1))

        summary = engine.build_summary(lines, deduction)

        assert deduction.deduction_amount == 4083.75
        assert summary.customer_pays == pytest.approx(summary.total_with_vat - 4083.75)


class TestRiskMargin:
    """Tests for the risk margin."""

    def test_applied_above_threshold(self, engine):
        margin = engine.compute_risk_margin(150500, _low(4))

        assert margin.amount == 7525.0
        assert margin.rate == 0.05
        assert margin.low_confidence_count == 4

    def test_not_applied_with_few_weak_assumptions(self, engine):
        assert engine.compute_risk_margin(150500, _low(3)) is None

    def test_not_applied_below_threshold(self, engine):
        assert engine.compute_risk_margin(90000, _low(10)) is None

    def test_policy_parameters(self):
        engine = PricingEngine(PricingPolicy(risk_margin_value_threshold=50000, risk_margin_rate=0.1))

        margin = engine.compute_risk_margin(60000, _low(4))

        assert margin.amount == 6000.0

    def test_margin_is_labelled_line_outside_vat_base(self, engine):
        job_def = find_job_definition("kök")
        interp = kitchen_interpretation()
        lines = engine.price_lines(interp, job_def)
        margin = engine.compute_risk_margin(engine.build_summary(lines).total_with_vat, _low(4))

        quote = engine.assemble_quote(interp, job_def, lines, ROT, risk_margin=margin)
        summary = quote.summary

        assert summary.risk_margin == 7525.0
        assert summary.total_before_vat == 120400.0
        assert summary.total_before_vat == pytest.approx(
            summary.work_cost + summary.material_cost + summary.equipment_cost
        )
        assert summary.vat_amount == pytest.approx(summary.total_before_vat * 0.25)
        assert summary.total_with_vat == 150500.0
        assert summary.total_with_risk_margin == 158025.0
        assert summary.customer_pays == 158025.0
        assert quote.risk_margin.reason.startswith("Osäkerhetsmarginal")

    def test_margin_and_deduction(self, engine):
        job_def = find_job_definition("kök")
        interp = kitchen_interpretation()
        lines = engine.price_lines(interp, job_def)
        deduction = engine.calculate_deduction(ROT, lines.work_items, date(2026, 3, 1))
        margin = engine.compute_risk_margin(engine.build_summary(lines).total_with_vat, _low(4))

        summary = engine.build_summary(lines, deduction, margin)

        assert summary.customer_pays == pytest.approx(
            summary.total_with_vat + summary.risk_margin - deduction.deduction_amount
        )


class TestPolicy:
    """Tests for the dated deduction rules."""

    def test_rot_rate_by_date(self):
        assert DEFAULT_POLICY.deduction_rule(ROT, date(2025, 5, 11)).rate == 0.30
        assert DEFAULT_POLICY.deduction_rule(ROT, date(2025, 5, 12)).rate == 0.50
        assert DEFAULT_POLICY.deduction_rule(ROT, date(2025, 12, 31)).rate == 0.50
        assert DEFAULT_POLICY.deduction_rule(ROT, date(2026, 1, 1)).rate == 0.30

    def test_rut_rule(self):
        rule = DEFAULT_POLICY.deduction_rule(RUT, date(2026, 1, 1))

        assert rule.rate == 0.50
        assert rule.cap_per_person == 75000

    def test_no_rule_for_none(self):
        assert DEFAULT_POLICY.deduction_rule(NO_DEDUCTION) is None


class TestAssembleQuote:
    """Tests for quote assembly."""

    def test_title_and_fields(self, engine):
        job_def = find_job_definition("målning")
        interp = painting_interpretation(exclusions=["tak"])
        lines = engine.price_lines(interp, job_def)

        quote = engine.assemble_quote(interp, job_def, lines, ROT, description="Måla 3 rum")

        assert quote.title == "Målning 45 kvm"
        assert quote.job_type == "målning"
        assert quote.unit_type == "kvm"
        assert quote.exclusions == ["tak"]
        assert quote.deduction_type == ROT

    def test_generic_quote_keeps_interpreted_job_type(self, engine):
        job_def = find_job_definition(GENERIC_JOB_TYPE)
        interp = Interpretation(job_type="byta taklampa", quantity=2)
        lines = engine.price_lines(interp, job_def)

        quote = engine.assemble_quote(interp, job_def, lines, NO_DEDUCTION)

        assert quote.job_type == "byta taklampa"
        assert quote.title == "Byta taklampa 2 tim"
