"""Pydantic schemas shared by the API."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, StrictInt, StrictStr
from pydantic.alias_generators import to_camel

# 15 significant digits survive the float the value passes through on SQLite and in JSON
MONEY_MAX_DIGITS = 15

Money = Annotated[
    Decimal,
    Field(ge=Decimal("0"), max_digits=MONEY_MAX_DIGITS, decimal_places=2),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    """Error body returned for every failed request."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: StrictInt = Field(ge=100, le=599, examples=[404])
    error: StrictStr = Field(examples=["Not Found"])
    message: StrictStr = Field(examples=["Product not found with id: 7"])
    path: StrictStr = Field(examples=["/api/products/7"])
    error_code: StrictStr = Field(examples=["PRODUCT_NOT_FOUND"])
    details: List[StrictStr] = Field(default_factory=list)


class LoginRequest(CamelModel):
    """Credentials exchanged for a bearer token."""

    username: StrictStr = Field(min_length=1, max_length=64, examples=["admin"])
    password: StrictStr = Field(min_length=1, max_length=128, examples=["admin123"])


class TokenResponse(CamelModel):
    """Issued bearer token."""

    token: StrictStr
    type: Literal["Bearer"] = Field(default="Bearer")
    expires_in_seconds: StrictInt = Field(ge=0, examples=[3600])


class CreateProductRequest(CamelModel):
    """Payload for creating a product."""

    sku: StrictStr = Field(min_length=1, max_length=64, examples=["SKU-123"])
    name: StrictStr = Field(min_length=1, max_length=128, examples=["Test Product"])
    price: Money = Field(examples=[Decimal("15.99")])
    currency: StrictStr = Field(pattern=r"^[A-Z]{3}$", examples=["EUR"])
    description: Optional[StrictStr] = Field(default=None, max_length=512, examples=["Some description"])


class ChangePriceRequest(CamelModel):
    """Payload for changing the price of a product."""

    new_price: Money = Field(examples=[Decimal("99.99")])


class ProductResponse(CamelModel):
    """Product representation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    sku: str
    name: str
    price: Money
    currency: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
