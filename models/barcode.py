"""
Barcode pool schemas.

The pool is a finite set of pre-generated GS1 codes. Entries only
ever move from AVAILABLE to ASSIGNED during imports.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.base import BaseSchema


class BarcodeStatus(str, Enum):
    """Pool entry status."""
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    RESERVED = "reserved"
    LEGACY_ARCHIVE = "legacy_archive"


class BarcodePoolEntry(BaseSchema):
    """One barcode in the pool."""

    id: str
    barcode: str = Field(..., min_length=8, max_length=14)
    barcode_type: str = "EAN13"
    status: BarcodeStatus = BarcodeStatus.AVAILABLE
    is_legacy: bool = Field(False, description="Old stock, only handed out after fresh codes run out")
    row_number: int = Field(0, ge=0, description="Insertion order from the GS1 spreadsheet")
    assigned_to: Optional[str] = Field(None, description="Variant ID")
    assigned_at: Optional[datetime] = None

    @property
    def is_available(self) -> bool:
        return self.status == BarcodeStatus.AVAILABLE


class PoolStatistics(BaseModel):
    """Counts for one barcode type."""

    barcode_type: str
    total: int = 0
    available: int = 0
    assigned: int = 0
    reserved: int = 0
    legacy: int = 0
    ready_for_assignment: int = 0
    assignment_rate: float = Field(0.0, description="Percent of pool assigned")


class PoolHealth(BaseModel):
    """Pool health verdict for dashboards and pre-import checks."""

    barcode_type: str
    is_healthy: bool = True
    available_count: int = 0
    total_count: int = 0
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
