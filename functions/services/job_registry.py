"""Job registry.

Static, immutable definitions of every job type the engine can price, and
lookup from a free-form job type or description to a definition. Lookup
never fails: unknown job types resolve to the generic hourly definition.
"""

import re
from types import MappingProxyType
from typing import List, Mapping, Optional

import structlog

from models.job_definition import (
    EquipmentNeed,
    JobDefinition,
    MaterialCalculation,
    RateRange,
    ServiceVehicleRule,
    StandardWorkItem,
)

logger = structlog.get_logger()

GENERIC_JOB_TYPE = "ai_driven"


PAINTING = JobDefinition(
    job_type="målning",
    aliases=("måla", "målare", "måleri", "färg", "tapet", "spackl"),
    category="rot",
    unit_type="kvm",
    required_input=("area", "complexity"),
    hourly_rate_range=RateRange(min=450, typical=550, max=650),
    rate_keys=("målning", "målare", "måleri"),
    work_items=(
        StandardWorkItem(name="Förberedelser och skydd", hours_per_unit=0.05, worker_type="målare"),
        StandardWorkItem(name="Spackling och slipning", hours_per_unit=0.10, worker_type="målare"),
        StandardWorkItem(name="Grundmålning", hours_per_unit=0.10, worker_type="målare"),
        StandardWorkItem(name="Slutstrykningar (2 ggr)", hours_per_unit=0.15, worker_type="målare"),
        StandardWorkItem(name="Städning och efterarbete", hours_per_unit=0.04, worker_type="målare"),
    ),
    material_calculations=(
        MaterialCalculation(
            name="Väggfärg", unit="liter", quantity_per_unit=1 / 6,
            price_per_unit={"budget": 150, "standard": 250, "premium": 400},
        ),
        MaterialCalculation(
            name="Grundfärg", unit="liter", quantity_per_unit=0.1,
            price_per_unit={"budget": 120, "standard": 180, "premium": 280},
        ),
        MaterialCalculation(
            name="Spackel och slippapper", unit="set", fixed_quantity=1,
            price_per_unit={"budget": 300, "standard": 500, "premium": 800},
        ),
        MaterialCalculation(
            name="Täckpapp och maskeringstejp", unit="rulle", quantity_per_unit=1 / 20, round_up=True,
            price_per_unit={"budget": 100, "standard": 150, "premium": 200},
        ),
    ),
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="halv"),
    question_templates={
        "area": "Hur många kvadratmeter vägg- eller takyta ska målas?",
        "complexity": "Är ytorna i gott skick eller behövs mycket spackling och lagning?",
    },
    validator="painting",
    benchmark_category="målning",
    season_sensitive=True,
)

BATHROOM = JobDefinition(
    job_type="badrum",
    aliases=("badrum", "dusch", "wc", "toalett", "våtrum", "badrumsrenovering"),
    category="rot",
    unit_type="kvm",
    required_input=("area", "complexity"),
    accessibility_multipliers={"easy": 1.0, "normal": 1.0, "hard": 1.15},
    hourly_rate_range=RateRange(min=600, typical=750, max=950),
    rate_keys=("badrum", "plattsättare", "snickare"),
    work_items=(
        StandardWorkItem(name="Rivning befintligt badrum", fixed_hours=8, worker_type="snickare"),
        StandardWorkItem(name="VVS-installation", fixed_hours=12, worker_type="vvs"),
        StandardWorkItem(name="El-installation våtrum", fixed_hours=10, worker_type="el"),
        StandardWorkItem(name="Tätskiktsarbete", fixed_hours=4, hours_per_unit=1.0, worker_type="plattsättare"),
        StandardWorkItem(name="Kakel- och klinkersättning", fixed_hours=6, hours_per_unit=2.5, worker_type="plattsättare"),
        StandardWorkItem(name="Golvvärmemontage", fixed_hours=2, hours_per_unit=0.6, worker_type="el"),
        StandardWorkItem(name="Ventilationsinstallation", fixed_hours=3, worker_type="snickare"),
        StandardWorkItem(name="Slutbesiktning och städning", fixed_hours=4, worker_type="snickare"),
    ),
    material_calculations=(
        MaterialCalculation(name="Våtrumsskivor", unit="kvm", quantity_per_unit=3.5,
                            price_per_unit={"budget": 200, "standard": 250, "premium": 350}),
        MaterialCalculation(name="Tätskiktssystem", unit="paket", fixed_quantity=1,
                            price_per_unit={"budget": 3500, "standard": 5000, "premium": 7000}),
        MaterialCalculation(name="Kakel vägg", unit="kvm", quantity_per_unit=2.5,
                            price_per_unit={"budget": 300, "standard": 600, "premium": 1500}),
        MaterialCalculation(name="Klinker golv", unit="kvm", quantity_per_unit=1.15,
                            price_per_unit={"budget": 350, "standard": 700, "premium": 1800}),
        MaterialCalculation(name="Golvvärmematta", unit="kvm", quantity_per_unit=1.0,
                            price_per_unit={"budget": 450, "standard": 600, "premium": 850}),
        MaterialCalculation(name="Termostat golvvärme", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 1000, "standard": 1500, "premium": 2500}),
        MaterialCalculation(name="Golvbrunn", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 1800, "standard": 2500, "premium": 3500}),
        MaterialCalculation(name="Duschblandare termostat", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 2500, "standard": 4500, "premium": 9000}),
        MaterialCalculation(name="WC-stol", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 2500, "standard": 4000, "premium": 8000}),
        MaterialCalculation(name="Tvättställ med blandare", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 2500, "standard": 4300, "premium": 9000}),
        MaterialCalculation(name="Badrumsfläkt", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 1500, "standard": 2200, "premium": 3500}),
        MaterialCalculation(name="VVS-rör och kopplingar", unit="set", fixed_quantity=1,
                            price_per_unit={"budget": 2500, "standard": 3500, "premium": 4500}),
        MaterialCalculation(name="Elmaterial våtrum", unit="set", fixed_quantity=1,
                            price_per_unit={"budget": 2000, "standard": 2800, "premium": 4000}),
    ),
    equipment=(
        EquipmentNeed(name="Byggfläkt och avfuktare", unit="dag", quantity=3, default_price=400),
    ),
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="dag"),
    question_templates={
        "area": "Hur stort är badrummet i kvadratmeter?",
        "complexity": "Ska allt rivas ut till stomme, eller behålls delar av befintligt badrum?",
    },
    validator="bathroom",
    benchmark_category="badrum",
)

KITCHEN = JobDefinition(
    job_type="kök",
    aliases=("kök", "köksrenovering", "köket", "köksbyte"),
    category="rot",
    unit_type="kvm",
    required_input=("area", "complexity"),
    accessibility_multipliers={"easy": 1.0, "normal": 1.0, "hard": 1.15},
    hourly_rate_range=RateRange(min=600, typical=700, max=900),
    rate_keys=("kök", "snickare"),
    work_items=(
        StandardWorkItem(name="Rivning befintligt kök", fixed_hours=10, worker_type="snickare"),
        StandardWorkItem(name="VVS-installation", fixed_hours=8, worker_type="vvs"),
        StandardWorkItem(name="El-installation", fixed_hours=12, worker_type="el"),
        StandardWorkItem(name="Montering skåp och bänkskiva", fixed_hours=8, hours_per_unit=1.5, worker_type="snickare"),
        StandardWorkItem(name="Väggbeklädning", hours_per_unit=0.8, worker_type="snickare"),
        StandardWorkItem(name="Slutbesiktning och städning", fixed_hours=4, worker_type="snickare"),
    ),
    material_calculations=(
        MaterialCalculation(name="Köksskåp", unit="st", quantity_per_unit=0.9, round_up=True,
                            price_per_unit={"budget": 3000, "standard": 5500, "premium": 9500}),
        MaterialCalculation(name="Bänkskiva", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 4000, "standard": 8000, "premium": 20000}),
        MaterialCalculation(name="Diskho", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 1500, "standard": 2500, "premium": 5000}),
        MaterialCalculation(name="Diskblandare", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 1200, "standard": 2000, "premium": 4500}),
        MaterialCalculation(name="Köksfläkt", unit="st", fixed_quantity=1,
                            price_per_unit={"budget": 2500, "standard": 4000, "premium": 9000}),
        MaterialCalculation(name="Eluttag och kablage", unit="st", fixed_quantity=6,
                            price_per_unit={"budget": 200, "standard": 250, "premium": 400}),
        MaterialCalculation(name="Kakel eller väggskiva", unit="kvm", quantity_per_unit=1.1,
                            price_per_unit={"budget": 350, "standard": 600, "premium": 1400}),
    ),
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="dag"),
    question_templates={
        "area": "Hur stort är köket i kvadratmeter?",
        "complexity": "Ska köket flyttas eller byggs det om på samma plats?",
    },
    validator="kitchen",
    benchmark_category="kök",
)

DECK = JobDefinition(
    job_type="altan",
    aliases=("altan", "trädäck", "terrass", "uteplats"),
    category="rot",
    unit_type="kvm",
    required_input=("area",),
    hourly_rate_range=RateRange(min=550, typical=650, max=800),
    rate_keys=("altan", "snickare"),
    work_items=(
        StandardWorkItem(name="Markarbete och plintar", fixed_hours=4, hours_per_unit=0.8, worker_type="snickare"),
        StandardWorkItem(name="Bärlinor och reglar", hours_per_unit=1.2, worker_type="snickare"),
        StandardWorkItem(name="Trall", hours_per_unit=1.0, worker_type="snickare"),
        StandardWorkItem(name="Räcke och trappa", mandatory=False, fixed_hours=6, hours_per_unit=0.3, worker_type="snickare"),
    ),
    material_calculations=(
        MaterialCalculation(name="Trall", unit="kvm", quantity_per_unit=1.1,
                            price_per_unit={"budget": 250, "standard": 400, "premium": 900}),
        MaterialCalculation(name="Reglar och bärlinor", unit="kvm", quantity_per_unit=1.0,
                            price_per_unit={"budget": 150, "standard": 200, "premium": 300}),
        MaterialCalculation(name="Plintar", unit="st", quantity_per_unit=0.5, round_up=True,
                            price_per_unit={"budget": 150, "standard": 250, "premium": 400}),
        MaterialCalculation(name="Skruv och beslag", unit="set", fixed_quantity=1,
                            price_per_unit={"budget": 800, "standard": 1200, "premium": 2000}),
    ),
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="dag"),
    question_templates={
        "area": "Hur stor ska altanen vara i kvadratmeter?",
    },
    benchmark_category="altan",
    season_sensitive=True,
)

FLOORING = JobDefinition(
    job_type="golvläggning",
    aliases=("golv", "parkett", "laminat", "golvläggning", "klinkergolv"),
    category="rot",
    unit_type="kvm",
    required_input=("area",),
    hourly_rate_range=RateRange(min=500, typical=600, max=750),
    rate_keys=("golv", "golvläggare", "snickare"),
    work_items=(
        StandardWorkItem(name="Rivning och bortforsling av gammalt golv", fixed_hours=2, hours_per_unit=0.2, worker_type="golvläggare"),
        StandardWorkItem(name="Avjämning och underlag", hours_per_unit=0.15, worker_type="golvläggare"),
        StandardWorkItem(name="Golvläggning", hours_per_unit=0.5, worker_type="golvläggare"),
        StandardWorkItem(name="Lister och trösklar", fixed_hours=2, hours_per_unit=0.1, worker_type="golvläggare"),
    ),
    material_calculations=(
        MaterialCalculation(name="Golv", unit="kvm", quantity_per_unit=1.1,
                            price_per_unit={"budget": 200, "standard": 400, "premium": 900}),
        MaterialCalculation(name="Underlagsmatta", unit="kvm", quantity_per_unit=1.05,
                            price_per_unit={"budget": 30, "standard": 50, "premium": 90}),
        MaterialCalculation(name="Golvlister", unit="lm", quantity_per_unit=0.5,
                            price_per_unit={"budget": 40, "standard": 70, "premium": 140}),
    ),
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="halv"),
    question_templates={
        "area": "Hur många kvadratmeter golv ska läggas?",
    },
    benchmark_category="golv",
)

MOVE_OUT_CLEANING = JobDefinition(
    job_type="flyttstädning",
    aliases=("flyttstäd", "flyttstädning", "städning", "storstädning"),
    category="rut",
    unit_type="kvm",
    required_input=("area",),
    hourly_rate_range=RateRange(min=400, typical=500, max=650),
    rate_keys=("städ", "städning", "flyttstädning"),
    work_items=(
        StandardWorkItem(name="Grundstädning", fixed_hours=1, hours_per_unit=0.1, worker_type="städare",
                         description="Dammsugning, våttorkning och dammtorkning av alla ytor"),
        StandardWorkItem(name="Sanitetsutrymmen", fixed_hours=1.5, worker_type="städare",
                         description="Toaletter, badrum och handfat skuras och desinficeras"),
        StandardWorkItem(name="Fönsterputs", mandatory=False, fixed_hours=0.5, hours_per_unit=0.02, worker_type="städare"),
    ),
    material_calculations=(
        MaterialCalculation(name="Städmaterial", unit="set", fixed_quantity=1,
                            price_per_unit={"budget": 150, "standard": 250, "premium": 400}),
    ),
    question_templates={
        "area": "Hur stor är bostaden i kvadratmeter?",
    },
    validator="cleaning",
    region_sensitive=True,
)

GARDEN = JobDefinition(
    job_type="trädgårdsskötsel",
    aliases=("trädgård", "gräsklippning", "häckklippning", "beskärning", "ogräsrensning", "lövkrattning"),
    category="rut",
    unit_type="tim",
    required_input=("quantity",),
    hourly_rate_range=RateRange(min=400, typical=500, max=650),
    rate_keys=("trädgård", "trädgårdsskötsel"),
    question_templates={
        "quantity": "Ungefär hur många timmar trädgårdsarbete gäller det?",
    },
    validator="garden",
    season_sensitive=True,
)

ELECTRICAL = JobDefinition(
    job_type="elinstallation",
    aliases=("elinstallation", "elektriker", "eluttag", "elcentral", "elarbete", "belysning", "uttag"),
    category="rot",
    unit_type="st",
    required_input=("quantity",),
    hourly_rate_range=RateRange(min=800, typical=1000, max=1300),
    rate_keys=("el", "elektriker"),
    work_items=(
        StandardWorkItem(name="Planering och felsökning", fixed_hours=2, worker_type="el"),
        StandardWorkItem(name="Installation uttag och armaturer", hours_per_unit=1.5, worker_type="el"),
        StandardWorkItem(name="Inkoppling och testning", fixed_hours=1.5, worker_type="el"),
    ),
    material_calculations=(
        MaterialCalculation(name="Kablar och ledningar", unit="set", fixed_quantity=1,
                            price_per_unit={"budget": 1000, "standard": 1500, "premium": 2200}),
        MaterialCalculation(name="Uttag och strömbrytare", unit="st", quantity_per_unit=1,
                            price_per_unit={"budget": 120, "standard": 250, "premium": 600}),
        MaterialCalculation(name="Kopplingsdon och säkringar", unit="set", fixed_quantity=1,
                            price_per_unit={"budget": 350, "standard": 500, "premium": 800}),
    ),
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="halv"),
    question_templates={
        "quantity": "Hur många uttag, strömbrytare eller armaturer gäller det?",
    },
    validator="electrical",
)

GENERIC = JobDefinition(
    job_type=GENERIC_JOB_TYPE,
    category="none",
    unit_type="tim",
    required_input=("job_type",),
    hourly_rate_range=RateRange(min=500, typical=650, max=900),
    rate_keys=("allmänt", "hantverkare"),
    default_unit_qty=8,
    service_vehicle=ServiceVehicleRule(threshold_hours=4, unit="halv"),
    question_templates={
        "job_type": "Kan du beskriva vilket arbete som ska utföras?",
        "quantity": "Ungefär hur många timmar uppskattar du att jobbet tar?",
    },
    source="generisk timdebitering",
)


JOB_REGISTRY: Mapping[str, JobDefinition] = MappingProxyType({
    job.job_type: job
    for job in (PAINTING, BATHROOM, KITCHEN, DECK, FLOORING, MOVE_OUT_CLEANING, GARDEN, ELECTRICAL, GENERIC)
})

# Keyword order matters: more specific job types are matched first.
_DETECTION_ORDER = (BATHROOM, KITCHEN, ELECTRICAL, MOVE_OUT_CLEANING, FLOORING, DECK, GARDEN, PAINTING)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def list_job_types() -> List[str]:
    """Return all registered job type keys."""
    return list(JOB_REGISTRY.keys())


def detect_job_type(text: str) -> Optional[str]:
    """Detect a registered job type from free text by keyword, or None."""
    normalized = _normalize(text)
    if not normalized:
        return None
    for job in _DETECTION_ORDER:
        if job.job_type in normalized:
            return job.job_type
        if any(alias in normalized for alias in job.aliases):
            return job.job_type
    return None


def find_job_definition(job_type: Optional[str]) -> JobDefinition:
    """Resolve a job type to its definition.

    Exact key first, then keyword/alias match, then substring match,
    finally the generic hourly definition. Never returns None.
    """
    key = _normalize(job_type or "")

    if key in JOB_REGISTRY:
        return JOB_REGISTRY[key]

    detected = detect_job_type(key)
    if detected:
        logger.debug("job_definition_matched_by_keyword", requested=key, job_type=detected)
        return JOB_REGISTRY[detected]

    for registered, job in JOB_REGISTRY.items():
        if len(key) >= 3 and registered != GENERIC_JOB_TYPE and (registered in key or key in registered):
            logger.debug("job_definition_matched_by_substring", requested=key, job_type=registered)
            return job

    logger.info("job_definition_fallback", requested=key, job_type=GENERIC_JOB_TYPE)
    return GENERIC
