"""Firestore service for the quote engine.

Read-only access to the rate & benchmark store: a user's hourly and
equipment rates, industry benchmarks, regional/seasonal multipliers and
accepted historical quotes.
"""

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
from config.errors import StoreError, ErrorCode
from models.rates import (
    Benchmark,
    EquipmentRate,
    HistoricalQuote,
    HourlyRate,
    Multiplier,
)

logger = structlog.get_logger()

T = TypeVar("T")


class FirestoreService:
    """Service for Firestore reads.

    Note: Firebase Admin SDK for Python is synchronous. Each read runs in a
    worker thread bounded by the configured store timeout; failures raise
    StoreError and the caller decides how to degrade.
    """

    COLLECTION_HOURLY_RATES = "hourlyRates"
    COLLECTION_EQUIPMENT_RATES = "equipmentRates"
    COLLECTION_BENCHMARKS = "industryBenchmarks"
    COLLECTION_REGIONAL = "regionalMultipliers"
    COLLECTION_SEASONAL = "seasonalMultipliers"
    COLLECTION_QUOTES = "quotes"

    ACCEPTED_STATUSES = ["accepted", "completed"]
    AREA_WINDOW = 0.2

    def __init__(self, db=None, timeout_seconds: Optional[float] = None):
        """Initialize FirestoreService.

        Args:
            db: Optional Firestore client. If not provided, uses default.
            timeout_seconds: Per-read timeout (default from settings).
        """
        self._db = db
        self.timeout_seconds = timeout_seconds or settings.store_timeout_seconds

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    async def _maybe_await(self, result: Any) -> Any:
        """Await result if it is awaitable (supports AsyncMock in unit tests)."""
        if inspect.isawaitable(result):
            return await result
        return result

    async def _read(self, operation: str, fn: Callable[[], Any], **context) -> Any:
        """Run a blocking read with a timeout, mapping failures to StoreError."""
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(fn),
                timeout=self.timeout_seconds
            )
            return await self._maybe_await(result)
        except asyncio.TimeoutError:
            logger.warning("firestore_read_timeout", operation=operation, **context)
            raise StoreError(
                message=f"Store read timed out after {self.timeout_seconds}s",
                operation=operation,
                code=ErrorCode.STORE_TIMEOUT,
                details=context
            )
        except Exception as e:
            logger.error("firestore_read_failed", operation=operation, error=str(e), **context)
            raise StoreError(
                message=f"Store read failed: {str(e)}",
                operation=operation,
                details=context
            )

    def _parse_row(self, operation: str, build: Callable[[], T], **context) -> Optional[T]:
        """Build a model from a stored row; a malformed row is logged and skipped."""
        try:
            return build()
        except (PydanticValidationError, TypeError, ValueError) as e:
            logger.warning("firestore_row_skipped", operation=operation, error=str(e), **context)
            return None

    async def _get_document(self, collection: str, doc_id: str, operation: str) -> Optional[Dict[str, Any]]:
        doc_ref = self.db.collection(collection).document(doc_id)
        doc = await self._read(operation, doc_ref.get, doc_id=doc_id)
        if doc is None or not doc.exists:
            return None
        return doc.to_dict() or {}

    async def _query_user_docs(self, collection: str, user_id: str, operation: str) -> List[Dict[str, Any]]:
        query = self.db.collection(collection).where(filter=FieldFilter("userId", "==", user_id))
        docs = await self._read(operation, lambda: list(query.stream()), user_id=user_id)
        return [doc.to_dict() or {} for doc in docs]

    async def get_hourly_rates(self, user_id: str) -> List[HourlyRate]:
        """Fetch the user's own hourly rates."""
        rows = await self._query_user_docs(self.COLLECTION_HOURLY_RATES, user_id, "get_hourly_rates")
        rates = []
        for row in rows:
            if not row.get("workType") or not row.get("rate"):
                continue
            rate = self._parse_row(
                "get_hourly_rates",
                lambda: HourlyRate(work_type=row["workType"], rate=float(row["rate"])),
                user_id=user_id
            )
            if rate is not None:
                rates.append(rate)

        logger.info("hourly_rates_loaded", user_id=user_id, count=len(rates))
        return rates

    async def get_equipment_rates(self, user_id: str) -> List[EquipmentRate]:
        """Fetch the user's equipment prices."""
        rows = await self._query_user_docs(self.COLLECTION_EQUIPMENT_RATES, user_id, "get_equipment_rates")
        rates = []
        for row in rows:
            if not row.get("name"):
                continue
            if row.get("pricePerDay") is None and row.get("pricePerHour") is None:
                continue
            rate = self._parse_row(
                "get_equipment_rates", lambda: EquipmentRate.model_validate(row), user_id=user_id
            )
            if rate is not None:
                rates.append(rate)

        logger.info("equipment_rates_loaded", user_id=user_id, count=len(rates))
        return rates

    async def get_benchmark(self, category: str) -> Optional[Benchmark]:
        """Fetch the industry benchmark for a job category."""
        data = await self._get_document(self.COLLECTION_BENCHMARKS, category, "get_benchmark")
        if not data or data.get("medianValue") is None:
            return None
        return self._parse_row(
            "get_benchmark",
            lambda: Benchmark.model_validate({"category": category, **data}),
            category=category
        )

    async def get_regional_multiplier(self, region: str, category: str) -> Optional[Multiplier]:
        """Fetch the regional multiplier for a job category, falling back to 'alla'."""
        data = await self._get_document(self.COLLECTION_REGIONAL, region, "get_regional_multiplier")
        if not data:
            return None
        multipliers = data.get("multipliers", data)
        value = multipliers.get(category, multipliers.get("alla"))
        if value is None:
            return None
        return self._parse_row(
            "get_regional_multiplier",
            lambda: Multiplier(value=float(value), reason=data.get("reason", f"Regional prisnivå ({region})")),
            region=region
        )

    async def get_seasonal_multiplier(self, job_type: str, month: int) -> Optional[Multiplier]:
        """Fetch the seasonal multiplier for a job type and start month."""
        data = await self._get_document(self.COLLECTION_SEASONAL, job_type, "get_seasonal_multiplier")
        if not data:
            return None
        months = data.get("months", {})
        value = months.get(str(month))
        if value is None:
            return None
        return self._parse_row(
            "get_seasonal_multiplier",
            lambda: Multiplier(value=float(value), reason=data.get("reason", f"Säsongsjustering (månad {month})")),
            job_type=job_type
        )

    async def find_similar_accepted_quotes(
        self,
        user_id: str,
        job_type: str,
        area: Optional[float] = None,
        limit: Optional[int] = None
    ) -> List[HistoricalQuote]:
        """Fetch the user's accepted/completed quotes of the same job type.

        When an area is given, only quotes within +/-20 % of it are kept.
        """
        limit = limit or settings.history_sample_limit
        query = (
            self.db.collection(self.COLLECTION_QUOTES)
            .where(filter=FieldFilter("userId", "==", user_id))
            .where(filter=FieldFilter("status", "in", self.ACCEPTED_STATUSES))
        )
        docs = await self._read(
            "find_similar_accepted_quotes",
            lambda: list(query.stream()),
            user_id=user_id,
            job_type=job_type
        )

        similar = []
        for doc in docs:
            data = doc.to_dict() or {}
            if (data.get("jobType") or "").lower() != job_type.lower():
                continue
            quote = self._parse_row(
                "find_similar_accepted_quotes",
                lambda: HistoricalQuote.model_validate({"quoteId": getattr(doc, "id", None), **data}),
                user_id=user_id
            )
            if quote is None:
                continue
            if area and quote.area:
                if abs(quote.area - area) > area * self.AREA_WINDOW:
                    continue
            similar.append(quote)
            if len(similar) >= limit:
                break

        logger.info(
            "similar_quotes_loaded",
            user_id=user_id,
            job_type=job_type,
            count=len(similar)
        )
        return similar
