"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.product import (
    ProductStatus,
    ProductRecord,
    VariantRecord,
    ProductUpsert,
    VariantUpsert,
)
from models.barcode import (
    BarcodeStatus,
    BarcodePoolEntry,
    PoolStatistics,
    PoolHealth,
)
from models.catalog_import import (
    ImportMode,
    ImportConfig,
    ColumnMapping,
    IMPORT_FIELDS,
    REQUIRED_FIELDS,
    MappingRequest,
    Row,
    ParentKeyKind,
    ParentKey,
    ParentCandidate,
    VariantCandidate,
    MatchAction,
    MatchResult,
    DUPLICATE_IN_BATCH,
    ProductPlanEntry,
    RowPlanEntry,
    RowError,
    PlanCounts,
    ImportPlan,
    UnitStatus,
    UnitOutcome,
    ExecutionResult,
    ProgressStatus,
    ProgressEvent,
)

__all__ = [
    # Base
    "BaseSchema",

    # Catalog records
    "ProductStatus",
    "ProductRecord",
    "VariantRecord",
    "ProductUpsert",
    "VariantUpsert",

    # Barcode pool
    "BarcodeStatus",
    "BarcodePoolEntry",
    "PoolStatistics",
    "PoolHealth",

    # Import
    "ImportMode",
    "ImportConfig",
    "ColumnMapping",
    "IMPORT_FIELDS",
    "REQUIRED_FIELDS",
    "MappingRequest",
    "Row",
    "ParentKeyKind",
    "ParentKey",
    "ParentCandidate",
    "VariantCandidate",
    "MatchAction",
    "MatchResult",
    "DUPLICATE_IN_BATCH",
    "ProductPlanEntry",
    "RowPlanEntry",
    "RowError",
    "PlanCounts",
    "ImportPlan",
    "UnitStatus",
    "UnitOutcome",
    "ExecutionResult",
    "ProgressStatus",
    "ProgressEvent",
]
