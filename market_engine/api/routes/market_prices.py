"""Market price validation routes."""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from market_engine.api.deps import get_price_validator
from market_engine.config import settings
from market_engine.detect.types import Quality
from market_engine.detect.validator import PriceValidator, calculate_verification_score

router = APIRouter(prefix="/api/market-prices", tags=["market-prices"])


class PriceValidationRequest(BaseModel):
    crop_type: str = Field(..., min_length=1)
    price_per_unit: Decimal = Field(..., gt=0)
    quality: Quality
    location: str = Field(..., min_length=1)
    unit: str = Field(..., min_length=1)
    user_reputation: Optional[float] = Field(None, ge=0, le=1)


class SuggestionResponse(BaseModel):
    type: str
    message: str
    confidence: float
    suggested_value: Optional[float] = None


class PriceValidationResponse(BaseModel):
    is_valid: bool
    confidence: float
    warnings: list[str]
    suggestions: list[SuggestionResponse]
    regional_average: Optional[float] = None
    price_change: Optional[float] = None
    market_trend: Optional[str] = None
    verification_score: float


@router.post("/validate", response_model=PriceValidationResponse)
async def validate_price(
    body: PriceValidationRequest,
    validator: PriceValidator = Depends(get_price_validator),
):
    """Validate a price before it is submitted."""
    result = await validator.validate(
        crop_type=body.crop_type,
        price_per_unit=body.price_per_unit,
        quality=body.quality,
        location=body.location,
        unit=body.unit,
    )
    reputation = (
        body.user_reputation
        if body.user_reputation is not None
        else settings.default_user_reputation
    )
    return PriceValidationResponse(
        **result.to_dict(),
        verification_score=calculate_verification_score(result, reputation),
    )
