"""
Catalog data models.

``Product`` is the domain record shared by both stores; the pydantic models
are the HTTP request bodies and the response envelopes built per request.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from shared.errors import ValidationError


NAME_MAX_LENGTH = 255
CATEGORY_MAX_LENGTH = 100
# NUMERIC(12, 2)
PRICE_MAX_DIGITS = 12
PRICE_DECIMAL_PLACES = 2


class Source(str, Enum):
    """Where a read was served from."""
    CACHE = "cache"
    DATABASE = "database"


class CacheStatus(str, Enum):
    """Cache outcome reported in response metadata."""
    HIT = "hit"
    CACHED = "cached"
    CACHE_FAILED = "cache_failed"
    NOT_CACHED = "not_cached"
    CLEARED_AND_UPDATED = "cache_cleared_and_updated"
    UPDATED = "cache_updated"
    CLEARED = "cache_cleared"
    MANAGEMENT_FAILED = "cache_management_failed"


@dataclass
class Product:
    """Catalog item."""
    id: str
    name: str
    price: Decimal
    category: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the cache. Price is kept as a string to stay exact."""
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "category": self.category,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            name=data["name"],
            price=Decimal(data["price"]),
            category=data.get("category"),
            description=data.get("description"),
            is_active=data.get("is_active", True),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass
class ProductDraft:
    """Fields supplied by a caller when creating a product."""
    name: str
    price: Decimal
    category: Optional[str] = None
    description: Optional[str] = None


def _fits_price_column(price: Decimal) -> bool:
    _, digits, exponent = price.normalize().as_tuple()
    decimal_places = max(-exponent, 0)
    integer_digits = max(len(digits) + exponent, 0)
    return (
        decimal_places <= PRICE_DECIMAL_PLACES
        and integer_digits <= PRICE_MAX_DIGITS - PRICE_DECIMAL_PLACES
    )


def validate_product_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Check name/price/category constraints on a draft or patch.

    Raises ValidationError naming every offending field.
    """
    errors: Dict[str, str] = {}

    if "name" in fields:
        name = fields["name"]
        if not isinstance(name, str) or not name.strip():
            errors["name"] = "must be a non-empty string"
        elif len(name) > NAME_MAX_LENGTH:
            errors["name"] = f"must be at most {NAME_MAX_LENGTH} characters"

    if "price" in fields:
        try:
            price = Decimal(str(fields["price"]))
        except (InvalidOperation, ValueError):
            errors["price"] = "must be a number"
        else:
            if not price.is_finite() or price < 0:
                errors["price"] = "must be a non-negative number"
            elif not _fits_price_column(price):
                errors["price"] = (
                    f"must have at most {PRICE_MAX_DIGITS - PRICE_DECIMAL_PLACES} integer digits "
                    f"and {PRICE_DECIMAL_PLACES} decimal places"
                )
            else:
                fields = {**fields, "price": price}

    category = fields.get("category")
    if category is not None and len(category) > CATEGORY_MAX_LENGTH:
        errors["category"] = f"must be at most {CATEGORY_MAX_LENGTH} characters"

    if errors:
        raise ValidationError("Invalid product fields", details=errors)

    return fields


class ProductCreateRequest(BaseModel):
    """Request model for creating a product."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH, description="Product name")
    price: Decimal = Field(
        ..., ge=0, max_digits=PRICE_MAX_DIGITS, decimal_places=PRICE_DECIMAL_PLACES, description="Unit price"
    )
    category: Optional[str] = Field(None, max_length=CATEGORY_MAX_LENGTH, description="Category")
    description: Optional[str] = Field(None, description="Free-text description")

    def to_draft(self) -> ProductDraft:
        return ProductDraft(
            name=self.name,
            price=self.price,
            category=self.category,
            description=self.description,
        )


class ProductUpdateRequest(BaseModel):
    """Request model for patching a product. Only supplied fields change."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX_LENGTH)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=PRICE_MAX_DIGITS, decimal_places=PRICE_DECIMAL_PLACES)
    category: Optional[str] = Field(None, max_length=CATEGORY_MAX_LENGTH)
    description: Optional[str] = None

    def to_patch(self) -> Dict[str, Any]:
        patch = self.model_dump(exclude_unset=True)
        # name and price are NOT NULL columns
        for required in ("name", "price"):
            if required in patch and patch[required] is None:
                raise ValidationError("Invalid product fields", details={required: "cannot be null"})
        if not patch:
            raise ValidationError("No fields to update")
        return patch


class ProductResponse(BaseModel):
    """Product as returned over HTTP."""
    id: str
    name: str
    price: float
    category: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            name=product.name,
            price=float(product.price),
            category=product.category,
            description=product.description,
            is_active=product.is_active,
            created_at=product.created_at,
        )


class ReadMeta(BaseModel):
    """Provenance and timing for a read."""
    source: Source
    fetch_time_ms: float
    db_time_ms: Optional[float] = None
    cache_time_ms: Optional[float] = None
    total_time_ms: float
    cached: bool
    cache_status: CacheStatus
    count: Optional[int] = None


class ProductListResponse(BaseModel):
    data: List[ProductResponse]
    meta: ReadMeta


class ProductDetailResponse(BaseModel):
    data: ProductResponse
    meta: ReadMeta


class CreateMeta(BaseModel):
    """Timing and cache outcome for a create."""
    create_time_ms: float
    db_time_ms: float
    cache_time_ms: Optional[float] = None
    total_time_ms: float
    cache_cleared: bool
    cache_status: CacheStatus


class ProductCreateResponse(BaseModel):
    data: ProductResponse
    meta: CreateMeta


class WriteMeta(BaseModel):
    """Timing and cache outcome for an update or delete."""
    db_time_ms: float
    cache_time_ms: Optional[float] = None
    total_time_ms: float
    cache_status: CacheStatus


class ProductWriteResponse(BaseModel):
    data: ProductResponse
    meta: WriteMeta


class DeleteResponse(BaseModel):
    success: bool
    message: str
    meta: WriteMeta


class CacheClearResponse(BaseModel):
    deleted: int
    cache_status: CacheStatus
