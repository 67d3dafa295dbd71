"""Statistical validation of submitted market prices.

Compares a proposed price against recent regional prices, the expected
price for its quality grade, and the same month of the previous year.
Validation is advisory: it never raises and never blocks a submission
because of an internal failure.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from market_engine import metrics
from market_engine.config import settings
from market_engine.db.repositories import DataAccessError, PriceRepository
from market_engine.detect.types import (
    QUALITY_MULTIPLIERS,
    MarketTrend,
    PriceRecord,
    Quality,
    SuggestionType,
)

logger = logging.getLogger(__name__)

BASELINE_CONFIDENCE = 0.8
NO_HISTORY_CONFIDENCE = 0.7
MODERATE_DEVIATION_CONFIDENCE = 0.6
QUALITY_MISMATCH_CONFIDENCE = 0.5
SEASONAL_MISMATCH_CONFIDENCE = 0.5
FAILURE_CONFIDENCE = 0.3

SEVERE_DEVIATION = Decimal("0.5")
MODERATE_DEVIATION = Decimal("0.2")
QUALITY_DEVIATION = Decimal("0.3")
SEASONAL_DEVIATION = Decimal("0.4")
TREND_THRESHOLD_PERCENT = 5.0

TREND_WINDOW = 3  # Records per side when comparing recent vs previous prices
MIN_SEASONAL_RECORDS = 3


@dataclass
class PriceSuggestion:
    """A correction the submitter may want to apply."""

    type: SuggestionType
    message: str
    confidence: float
    suggested_value: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "confidence": self.confidence,
            "suggested_value": float(self.suggested_value) if self.suggested_value is not None else None,
        }


@dataclass
class ValidationResult:
    """Outcome of validating one price submission."""

    is_valid: bool = True
    confidence: float = BASELINE_CONFIDENCE
    warnings: list[str] = field(default_factory=list)
    suggestions: list[PriceSuggestion] = field(default_factory=list)
    regional_average: Optional[Decimal] = None
    price_change: Optional[float] = None  # Percent
    market_trend: Optional[MarketTrend] = None

    def lower_confidence(self, ceiling: float) -> None:
        """Cap confidence; it is never raised once lowered."""
        self.confidence = min(self.confidence, ceiling)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "suggestions": [s.to_dict() for s in self.suggestions],
            "regional_average": float(self.regional_average) if self.regional_average is not None else None,
            "price_change": self.price_change,
            "market_trend": self.market_trend.value if self.market_trend else None,
        }


@dataclass
class QualityCheck:
    """Result of the quality-grade consistency check."""

    is_valid: bool
    expected_price: Decimal
    deviation: Decimal
    message: str = ""
    suggestion: Optional[PriceSuggestion] = None


@dataclass
class QualityGradingCriteria:
    """Descriptive grading guidance for a crop."""

    crop_type: str
    characteristics: dict[Quality, list[str]]
    multipliers: dict[Quality, Decimal]


def _mean(prices: list[Decimal]) -> Decimal:
    return sum(prices, Decimal("0")) / len(prices)


def check_quality_consistency(
    price_per_unit: Decimal,
    quality: Quality,
    regional_average: Decimal,
) -> QualityCheck:
    """
    Check that a price matches what its quality grade should fetch.

    The expected price is the regional average scaled by the grade
    multiplier. A relative deviation strictly greater than 30% fails.

    Args:
        price_per_unit: Submitted price
        quality: Submitted quality grade
        regional_average: Mean of recent comparable prices

    Returns:
        QualityCheck with the expected price and, on failure, a suggestion
    """
    expected_price = regional_average * QUALITY_MULTIPLIERS[quality]
    if expected_price <= 0:
        return QualityCheck(is_valid=True, expected_price=expected_price, deviation=Decimal("0"))

    deviation = abs(price_per_unit - expected_price) / expected_price
    if deviation <= QUALITY_DEVIATION:
        return QualityCheck(is_valid=True, expected_price=expected_price, deviation=deviation)

    grade = quality.value.lower()
    return QualityCheck(
        is_valid=False,
        expected_price=expected_price,
        deviation=deviation,
        message=f"Price is not consistent with {grade} quality grade",
        suggestion=PriceSuggestion(
            type=SuggestionType.QUALITY_ADJUSTMENT,
            message=f"For {grade} quality, consider pricing around {expected_price:.2f}",
            confidence=0.9,
            suggested_value=expected_price,
        ),
    )


def prior_year_month_window(now: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) covering the current calendar month one year earlier."""
    year = now.year - 1
    start = datetime(year, now.month, 1)
    if now.month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, now.month + 1, 1)
    return start, end


def calculate_trend(records: list[PriceRecord]) -> Optional[float]:
    """
    Percent change of the newest prices against the ones before them.

    Compares the mean of the three most recent records with the mean of
    the next three. Returns None when there is no older window or its
    mean is zero.
    """
    recent = [r.price_per_unit for r in records[:TREND_WINDOW]]
    previous = [r.price_per_unit for r in records[TREND_WINDOW:TREND_WINDOW * 2]]
    if not recent or not previous:
        return None

    previous_avg = _mean(previous)
    if previous_avg == 0:
        return None

    return float((_mean(recent) - previous_avg) / previous_avg * 100)


def classify_trend(price_change: float) -> MarketTrend:
    if price_change > TREND_THRESHOLD_PERCENT:
        return MarketTrend.UP
    if price_change < -TREND_THRESHOLD_PERCENT:
        return MarketTrend.DOWN
    return MarketTrend.STABLE


def calculate_verification_score(
    result: ValidationResult,
    user_reputation: float = 0.5,
) -> float:
    """
    Score how much a submission can be trusted without manual review.

    Args:
        result: Validation outcome
        user_reputation: Submitter reputation in [0, 1]

    Returns:
        Score clamped to [0, 1]
    """
    score = 0.5
    score += result.confidence * 0.3
    score += user_reputation * 0.2
    score -= len(result.warnings) * 0.05
    return max(0.0, min(1.0, score))


def get_quality_grading_criteria(crop_type: str) -> QualityGradingCriteria:
    """Describe how quality grades are told apart for a crop."""
    return QualityGradingCriteria(
        crop_type=crop_type,
        characteristics={
            Quality.PREMIUM: ["High quality", "Certified organic", "Premium grade"],
            Quality.STANDARD: ["Standard quality", "Good condition", "Regular grade"],
            Quality.ECONOMY: ["Economy grade", "Basic quality", "Value option"],
        },
        multipliers=dict(QUALITY_MULTIPLIERS),
    )


class PriceValidator:
    """
    Validates submitted prices against historical and regional data.

    Stateless apart from the injected repository; safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        prices: PriceRepository,
        timeout_seconds: Optional[float] = None,
        history_limit: Optional[int] = None,
    ):
        """
        Initialize validator.

        Args:
            prices: Price repository
            timeout_seconds: Upper bound for one validation (defaults to settings)
            history_limit: Number of recent prices to compare against
        """
        self.prices = prices
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.validation_timeout_seconds
        )
        self.history_limit = history_limit or settings.price_history_limit

    async def validate(
        self,
        crop_type: str,
        price_per_unit: Decimal,
        quality: Quality,
        location: str,
        unit: str,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate a proposed price.

        Args:
            crop_type: Crop name (matched as a case-insensitive substring)
            price_per_unit: Proposed price
            quality: Quality grade
            location: Market location (matched as a case-insensitive substring)
            unit: Unit the price is quoted in
            now: Reference time for the seasonal comparison

        Returns:
            ValidationResult; never raises
        """
        price_per_unit = Decimal(str(price_per_unit))
        result = ValidationResult()

        try:
            await self._run_checks(result, crop_type, price_per_unit, quality, location, unit, now)
        except (DataAccessError, SQLAlchemyError) as e:
            logger.error(f"Price validation failed on data access for {crop_type}/{location}: {e}")
            self._mark_failed(result, "data_access", f"Database error while validating price: {e}")
        except asyncio.TimeoutError:
            logger.error(
                f"Price validation timed out after {self.timeout_seconds}s for {crop_type}/{location}"
            )
            self._mark_failed(result, "timeout", "Validation timeout. Please try again.")
        except Exception as e:
            logger.error(f"Unexpected error validating price for {crop_type}/{location}: {e}", exc_info=True)
            self._mark_failed(result, "unknown", f"Validation error: {e}")

        metrics.record_validation(result.is_valid)
        return result

    def _mark_failed(self, result: ValidationResult, category: str, warning: str) -> None:
        # Internal failures never block a submission
        result.warnings.append(warning)
        result.is_valid = True
        result.confidence = FAILURE_CONFIDENCE
        metrics.record_validation_failure(category)

    async def _run_checks(
        self,
        result: ValidationResult,
        crop_type: str,
        price_per_unit: Decimal,
        quality: Quality,
        location: str,
        unit: str,
        now: Optional[datetime],
    ) -> None:
        recent = await asyncio.wait_for(
            self.prices.find_recent_approved_prices(
                crop_type,
                location,
                quality,
                limit=self.history_limit,
                exclude_expired=True,
            ),
            timeout=self.timeout_seconds,
        )

        if not recent:
            result.warnings.append(
                "No recent price data available for comparison. This is normal for new submissions."
            )
            result.confidence = NO_HISTORY_CONFIDENCE
            return

        average = _mean([r.price_per_unit for r in recent])
        result.regional_average = average

        if len(recent) >= 2:
            change = calculate_trend(recent)
            if change is not None:
                result.price_change = change
                result.market_trend = classify_trend(change)

        if average > 0:
            self._check_regional_deviation(result, price_per_unit, average, unit)

            quality_check = check_quality_consistency(price_per_unit, quality, average)
            if not quality_check.is_valid:
                result.is_valid = False
                result.warnings.append(quality_check.message)
                result.suggestions.append(quality_check.suggestion)
                result.lower_confidence(QUALITY_MISMATCH_CONFIDENCE)

        await self._check_seasonal(result, crop_type, price_per_unit, location, now or datetime.utcnow())

    def _check_regional_deviation(
        self,
        result: ValidationResult,
        price_per_unit: Decimal,
        average: Decimal,
        unit: str,
    ) -> None:
        deviation = abs(price_per_unit - average) / average
        percent = float(deviation * 100)

        if deviation > SEVERE_DEVIATION:
            result.warnings.append(
                f"Price deviates significantly from regional average ({percent:.1f}%)"
            )
            result.is_valid = False
            result.lower_confidence(FAILURE_CONFIDENCE)
            low = average * Decimal("0.8")
            high = average * Decimal("1.2")
            result.suggestions.append(
                PriceSuggestion(
                    type=SuggestionType.PRICE_RANGE,
                    message=f"Consider adjusting price to be within {low:.2f} - {high:.2f} {unit}",
                    confidence=0.8,
                    suggested_value=average,
                )
            )
        elif deviation > MODERATE_DEVIATION:
            result.warnings.append(
                f"Price deviates moderately from regional average ({percent:.1f}%)"
            )
            result.lower_confidence(MODERATE_DEVIATION_CONFIDENCE)

    async def _check_seasonal(
        self,
        result: ValidationResult,
        crop_type: str,
        price_per_unit: Decimal,
        location: str,
        now: datetime,
    ) -> None:
        """Compare against the same month last year. Advisory only."""
        try:
            start, end = prior_year_month_window(now)
            seasonal = await asyncio.wait_for(
                self.prices.find_seasonal_prices(crop_type, location, start, end),
                timeout=self.timeout_seconds,
            )
            if len(seasonal) < MIN_SEASONAL_RECORDS:
                return

            seasonal_average = _mean([r.price_per_unit for r in seasonal])
            if seasonal_average <= 0:
                return

            deviation = abs(price_per_unit - seasonal_average) / seasonal_average
            if deviation > SEASONAL_DEVIATION:
                result.warnings.append(
                    f"Price deviates significantly from seasonal average for {crop_type} in {location}"
                )
                result.lower_confidence(SEASONAL_MISMATCH_CONFIDENCE)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                f"Seasonal validation timed out after {self.timeout_seconds}s for {crop_type}/{location}"
            )
        except Exception as e:
            logger.warning(f"Seasonal validation failed (non-critical) for {crop_type}/{location}: {e}")
