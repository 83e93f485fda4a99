from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, field_validator


def parse_timestamp(value: str) -> datetime:
    """Parses an ISO-8601 instant. Naive values are taken to be UTC."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PriceSample(BaseModel):
    timestamp: str = Field(..., examples=["2024-06-01T00:00:00.000Z"])
    floor_price: float = Field(..., gt=0, allow_inf_nan=False, examples=[0.00021])
    market_cap: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False, examples=[1234567.89])

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_parse(cls, v: str) -> str:
        parse_timestamp(v)
        return v

    @property
    def recorded_at(self) -> datetime:
        return parse_timestamp(self.timestamp)


class PricePoint(BaseModel):
    """One entry of the /prices response."""
    timestamp: str
    price: float
    market_cap: Optional[float] = Field(default=None, serialization_alias="marketCap")


class MarketCapResponse(BaseModel):
    market_cap: Optional[float] = Field(default=None, serialization_alias="marketCap")
