"""
Catalog record schemas: parent products and their variants.

These mirror what the catalog repository stores. The import engine
never mutates them; it builds ProductUpsert / VariantUpsert payloads
and hands them to the repository.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from models.base import BaseSchema


class ProductStatus(str, Enum):
    """Catalog lifecycle of a parent product."""
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class ProductRecord(BaseSchema):
    """Parent product as stored in the catalog."""

    id: str = Field(..., description="Product ID")
    name: str = Field(..., min_length=1, description="Display name")
    parent_sku: Optional[str] = Field(None, description="Three-digit parent SKU (e.g. '001')")
    description: Optional[str] = None
    status: ProductStatus = ProductStatus.ACTIVE
    auto_generated: bool = Field(False, description="Created by parent inference, not by an operator")


class VariantRecord(BaseSchema):
    """Sellable variant as stored in the catalog."""

    id: str = Field(..., description="Variant ID")
    product_id: str = Field(..., description="Parent product ID")
    sku: str = Field(..., min_length=1)
    color: Optional[str] = None
    size: Optional[str] = None
    retail_price: Optional[Decimal] = Field(None, ge=0)
    barcodes: list[str] = Field(default_factory=list)

    @property
    def has_barcode(self) -> bool:
        return len(self.barcodes) > 0


class ProductUpsert(BaseSchema):
    """
    Write payload for a parent product.

    With id=None the repository inserts; otherwise it updates the
    record with that id. Fields left as None are not written on update.
    """

    id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1)
    parent_sku: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProductStatus] = None
    auto_generated: Optional[bool] = None


class VariantUpsert(BaseSchema):
    """Write payload for a variant. Same insert/update rule as ProductUpsert."""

    id: Optional[str] = None
    product_id: Optional[str] = None
    sku: Optional[str] = Field(None, min_length=1)
    color: Optional[str] = None
    size: Optional[str] = None
    retail_price: Optional[Decimal] = Field(None, ge=0)

    @field_validator("sku")
    @classmethod
    def sku_trimmed(cls, v: Optional[str]) -> Optional[str]:
        """SKU is stored trimmed but keeps its case."""
        if v is None:
            return v
        return v.strip()
