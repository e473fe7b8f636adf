"""Rate & benchmark store models.

Read-only records coming from Firestore: a user's own hourly and equipment
rates, industry benchmarks, regional/seasonal multipliers and accepted
historical quotes.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class HourlyRate(BaseModel):
    """A user's hourly rate for one work type (kr/h excl. VAT)."""

    model_config = ConfigDict(populate_by_name=True)

    work_type: str = Field(alias="workType")
    rate: float


class EquipmentRate(BaseModel):
    """A user's price for a piece of equipment."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    price_per_day: Optional[float] = Field(default=None, alias="pricePerDay")
    price_per_hour: Optional[float] = Field(default=None, alias="pricePerHour")
    is_rented: bool = Field(default=False, alias="isRented")


class Benchmark(BaseModel):
    """Industry benchmark for a job category (kr per unit)."""

    model_config = ConfigDict(populate_by_name=True)

    category: str
    median_value: float = Field(alias="medianValue")
    min_value: Optional[float] = Field(default=None, alias="minValue")
    max_value: Optional[float] = Field(default=None, alias="maxValue")
    sample_size: int = Field(default=0, alias="sampleSize")


class Multiplier(BaseModel):
    """A regional or seasonal price multiplier."""

    value: float = 1.0
    reason: str = ""


class PriceMultipliers(BaseModel):
    """Regional and seasonal multipliers applied to labor rates."""

    regional: Multiplier = Field(default_factory=Multiplier)
    seasonal: Multiplier = Field(default_factory=Multiplier)

    @property
    def combined(self) -> float:
        return self.regional.value * self.seasonal.value


class HistoricalQuote(BaseModel):
    """Summary of an accepted or completed quote of the same user."""

    model_config = ConfigDict(populate_by_name=True)

    quote_id: Optional[str] = Field(default=None, alias="quoteId")
    job_type: str = Field(default="", alias="jobType")
    area: Optional[float] = None
    total_before_vat: float = Field(default=0.0, alias="totalBeforeVat")
    total_hours: Optional[float] = Field(default=None, alias="totalHours")
    quality_level: Optional[str] = Field(default=None, alias="qualityLevel")
    duration_weeks: Optional[float] = Field(default=None, alias="durationWeeks")


class HistoricalPattern(BaseModel):
    """Aggregate of a user's similar accepted quotes."""

    model_config = ConfigDict(populate_by_name=True)

    sample_size: int = Field(default=0, alias="sampleSize")
    min_total: Optional[float] = Field(default=None, alias="minTotal")
    max_total: Optional[float] = Field(default=None, alias="maxTotal")
    avg_total: Optional[float] = Field(default=None, alias="avgTotal")
    avg_price_per_unit: Optional[float] = Field(default=None, alias="avgPricePerUnit")


class DeductionRecipient(BaseModel):
    """A person sharing the ROT/RUT deduction for the job."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    share: float = Field(default=1.0, gt=0, le=1)
    used_this_year: float = Field(default=0.0, ge=0, alias="usedThisYear")


def single_recipient() -> List[DeductionRecipient]:
    return [DeductionRecipient(share=1.0)]


class RateContext(BaseModel):
    """Everything fetched from the store that pricing reads."""

    hourly_rates: List[HourlyRate] = Field(default_factory=list)
    equipment_rates: List[EquipmentRate] = Field(default_factory=list)
    multipliers: PriceMultipliers = Field(default_factory=PriceMultipliers)

    @model_validator(mode="after")
    def _drop_unusable_rates(self) -> "RateContext":
        self.hourly_rates = [r for r in self.hourly_rates if r.rate and r.rate > 0]
        return self
