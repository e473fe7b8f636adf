"""Location service.

Maps a free-text location to a price region and resolves the regional
and seasonal multipliers applied to labor rates. Anything unknown or
unavailable resolves to a neutral multiplier of 1.0.
"""

import unicodedata
from typing import Optional

import structlog

from config.errors import StoreError
from models.job_definition import JobDefinition
from models.rates import Multiplier, PriceMultipliers
from services.firestore_service import FirestoreService

logger = structlog.get_logger()


REGION_MAPPING = {
    "stockholm": ("stockholm", "solna", "sundbyberg", "nacka", "täby", "lidingö", "huddinge", "danderyd", "sollentuna"),
    "goteborg": ("göteborg", "goteborg", "mölndal", "partille", "kungsbacka", "kungälv"),
    "malmo": ("malmö", "malmo", "lund", "helsingborg", "trelleborg", "vellinge"),
    "uppsala": ("uppsala", "enköping", "knivsta"),
    "norrland": ("umeå", "luleå", "sundsvall", "östersund", "skellefteå", "kiruna", "härnösand", "örnsköldsvik"),
    "smaland": ("växjö", "jönköping", "kalmar", "värnamo", "ljungby", "nässjö"),
}
RURAL_REGION = "landsbygd"


def _fold(text: str) -> str:
    return unicodedata.normalize("NFC", (text or "").strip().lower())


def match_region(location: Optional[str]) -> Optional[str]:
    """Return the price region for a location, or None when unknown."""
    folded = _fold(location or "")
    if not folded:
        return None
    for region, places in REGION_MAPPING.items():
        if region in folded or any(place in folded for place in places):
            return region
    if "landsbygd" in folded or "glesbygd" in folded:
        return RURAL_REGION
    return None


class LocationService:
    """Resolves regional and seasonal multipliers for a job."""

    def __init__(self, firestore_service: Optional[FirestoreService] = None):
        self.firestore = firestore_service or FirestoreService()

    async def get_multipliers(
        self,
        job_def: JobDefinition,
        location: Optional[str],
        start_month: Optional[int]
    ) -> PriceMultipliers:
        """Return multipliers for a job; neutral where unknown or unavailable."""
        regional = Multiplier()
        seasonal = Multiplier()

        region = match_region(location) if job_def.region_sensitive else None
        if region:
            try:
                found = await self.firestore.get_regional_multiplier(region, job_def.job_type)
                if found:
                    regional = found
            except StoreError as e:
                logger.warning("regional_multiplier_unavailable", region=region, error=e.message)

        if job_def.season_sensitive and start_month:
            try:
                found = await self.firestore.get_seasonal_multiplier(job_def.job_type, start_month)
                if found:
                    seasonal = found
            except StoreError as e:
                logger.warning("seasonal_multiplier_unavailable", month=start_month, error=e.message)

        logger.info(
            "price_multipliers_resolved",
            job_type=job_def.job_type,
            region=region,
            regional=regional.value,
            seasonal=seasonal.value
        )
        return PriceMultipliers(regional=regional, seasonal=seasonal)
