"""
Catalog import schemas.

Covers the whole pipeline: import configuration, mapped rows,
parent/variant candidates, match decisions, the plan shared by
dry-run and real runs, execution results and progress events.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.text_utils import normalize_sku


# ===================
# CONFIGURATION
# ===================

class ImportMode(str, Enum):
    """Conflict policy applied when a row matches (or misses) an existing record."""
    CREATE_ONLY = "create_only"
    UPDATE_EXISTING = "update_existing"
    CREATE_OR_UPDATE = "create_or_update"


class ImportConfig(BaseModel):
    """
    Options for one import run.

    Immutable: the same config object drives planning and execution.
    """
    model_config = ConfigDict(frozen=True)

    mode: ImportMode = ImportMode.CREATE_OR_UPDATE
    auto_generate_parents: bool = Field(
        True,
        description="Infer parents from SKU prefix / names instead of an is_parent column"
    )
    assign_barcodes: bool = Field(
        True,
        description="Claim pool barcodes for variants that have none"
    )
    barcode_type: str = "EAN13"
    update_prices: bool = True


# Logical field name -> 0-based column index (None = unmapped)
ColumnMapping = dict[str, Optional[int]]

IMPORT_FIELDS = (
    "product_name",
    "variant_sku",
    "variant_color",
    "variant_size",
    "barcode",
    "retail_price",
    "is_parent",
    "description",
)
REQUIRED_FIELDS = ("variant_sku", "product_name")


class MappingRequest(BaseModel):
    """Body for saving a column mapping."""
    mapping: ColumnMapping
    user_id: str = "default"


# ===================
# ROWS AND CANDIDATES
# ===================

class Row(BaseModel):
    """One upload row after column mapping."""
    model_config = ConfigDict(frozen=True)

    row_number: int = Field(..., ge=1, description="1-based data row (header excluded)")
    product_name: str = ""
    variant_sku: str = ""
    variant_color: Optional[str] = None
    variant_size: Optional[str] = None
    barcode: Optional[str] = None
    retail_price: Optional[str] = None
    is_parent: bool = False
    description: Optional[str] = None
    raw: dict[str, str] = Field(default_factory=dict)
    extra: dict[str, str] = Field(default_factory=dict, description="Mapped columns outside IMPORT_FIELDS")


class ParentKeyKind(str, Enum):
    """Where a parent grouping came from."""
    SKU = "sku"            # NNN prefix of an NNN-NNN SKU
    NAME = "name"          # normalized name similarity
    DECLARED = "declared"  # explicit is_parent row (standard mode)


class ParentKey(BaseModel):
    """Grouping identity for the rows that share one parent product."""
    model_config = ConfigDict(frozen=True)

    kind: ParentKeyKind
    value: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


class ParentCandidate(BaseModel):
    """A parent product, either found in the catalog or synthesized."""
    model_config = ConfigDict(frozen=True)

    parent_sku: Optional[str] = None
    name: str = Field(..., min_length=1)
    auto_generated: bool = True
    existing_id: Optional[str] = Field(None, description="Catalog ID when reused")
    description: Optional[str] = None


class VariantCandidate(BaseModel):
    """A variant to be matched against the catalog."""
    model_config = ConfigDict(frozen=True)

    sku: str = Field(..., min_length=1)
    color: Optional[str] = None
    size: Optional[str] = None
    price: Optional[Decimal] = None
    barcode: Optional[str] = None
    parent_key: ParentKey
    raw: Row

    @property
    def match_sku(self) -> str:
        return normalize_sku(self.sku)

    @property
    def has_attributes(self) -> bool:
        """Color/size lookups only make sense when at least one is set."""
        return bool(self.color or self.size)


# ===================
# MATCHING
# ===================

class MatchAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


DUPLICATE_IN_BATCH = "duplicate_in_batch"


class MatchResult(BaseModel):
    """Decision for one product or variant candidate."""
    model_config = ConfigDict(frozen=True)

    action: MatchAction
    existing_id: Optional[str] = None
    reason: str
    matched_by: Optional[str] = Field(None, description="sku, color_size, parent_sku or name")


# ===================
# PLAN
# ===================

class ProductPlanEntry(BaseModel):
    """Planned action for one parent product (one unit)."""

    parent_key: ParentKey
    candidate: ParentCandidate
    result: MatchResult
    row_numbers: list[int] = Field(default_factory=list)


class RowPlanEntry(BaseModel):
    """Planned action for one variant row."""

    row_number: int
    parent_key: ParentKey
    candidate: VariantCandidate
    result: MatchResult
    needs_barcode: bool = False


class RowError(BaseModel):
    """A row excluded from the import."""

    row_number: int
    field: str
    message: str


class PlanCounts(BaseModel):
    """
    Totals for a plan or an execution.

    Always built with fold() so previews and real runs are
    counted the same way.
    """

    products_to_create: int = 0
    products_to_update: int = 0
    products_to_skip: int = 0
    variants_to_create: int = 0
    variants_to_update: int = 0
    variants_to_skip: int = 0
    error_rows: int = 0
    valid_rows: int = 0

    @classmethod
    def fold(
        cls,
        product_actions: Iterable[MatchAction],
        variant_actions: Iterable[MatchAction],
        error_rows: int = 0,
        valid_rows: int = 0,
    ) -> "PlanCounts":
        counts = {
            "products_to_create": 0,
            "products_to_update": 0,
            "products_to_skip": 0,
            "variants_to_create": 0,
            "variants_to_update": 0,
            "variants_to_skip": 0,
        }
        for action in product_actions:
            counts[f"products_to_{action.value}"] += 1
        for action in variant_actions:
            counts[f"variants_to_{action.value}"] += 1
        return cls(**counts, error_rows=error_rows, valid_rows=valid_rows)


class ImportPlan(BaseModel):
    """
    Output of the planner.

    Identical in shape for dry-run and real execution; the executor
    consumes this object directly.
    """

    config: ImportConfig
    counts: PlanCounts
    products: list[ProductPlanEntry] = Field(default_factory=list)
    rows: list[RowPlanEntry] = Field(default_factory=list)
    errors: list[RowError] = Field(default_factory=list)
    barcodes_required: int = 0
    warnings: list[str] = Field(default_factory=list)

    def rows_for(self, parent_key: ParentKey) -> list[RowPlanEntry]:
        """Variant rows belonging to one unit, in row order."""
        return [r for r in self.rows if r.parent_key == parent_key]

    def summary(self) -> dict:
        """Compact form for API responses and logs."""
        return {
            **self.counts.model_dump(),
            "barcodes_required": self.barcodes_required,
            "warnings": list(self.warnings),
            "errors": [e.model_dump() for e in self.errors],
        }


# ===================
# EXECUTION
# ===================

class UnitStatus(str, Enum):
    """State machine for one parent + its variants."""
    PENDING = "pending"
    CREATING = "creating"
    UPDATING = "updating"
    ASSIGNING_BARCODES = "assigning_barcodes"
    COMMITTED = "committed"
    FAILED = "failed"


class UnitOutcome(BaseModel):
    """What actually happened to one unit."""

    parent_key: ParentKey
    status: UnitStatus = UnitStatus.PENDING
    product_action: Optional[MatchAction] = None
    product_id: Optional[str] = None
    variant_actions: list[MatchAction] = Field(default_factory=list)
    barcodes_assigned: int = 0
    row_numbers: list[int] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


class ExecutionResult(BaseModel):
    """Result of applying a plan."""

    import_id: str
    counts: PlanCounts
    planned: Optional[PlanCounts] = Field(None, description="Counts of the plan that was executed")
    units: list[UnitOutcome] = Field(default_factory=list)
    stats: dict[str, int] = Field(default_factory=dict)
    duration_seconds: float = 0.0
    warnings: list[str] = Field(default_factory=list)

    @property
    def failed_units(self) -> list[UnitOutcome]:
        return [u for u in self.units if u.status == UnitStatus.FAILED]

    @property
    def success(self) -> bool:
        return not self.failed_units


# ===================
# PROGRESS
# ===================

class ProgressStatus(str, Enum):
    """Checkpoints emitted during a real import, in order."""
    READING_FILE = "reading_file"
    VALIDATING = "validating"
    RESOLVING_PARENTS = "resolving_parents"
    MATCHING = "matching"
    CREATING = "creating"
    UPDATING = "updating"
    COMPLETED = "completed"
    ERROR = "error"


# creating/updating share a rank: units alternate between them
PROGRESS_RANK = {
    ProgressStatus.READING_FILE: 0,
    ProgressStatus.VALIDATING: 1,
    ProgressStatus.RESOLVING_PARENTS: 2,
    ProgressStatus.MATCHING: 3,
    ProgressStatus.CREATING: 4,
    ProgressStatus.UPDATING: 4,
    ProgressStatus.COMPLETED: 5,
    ProgressStatus.ERROR: 5,
}


class ProgressEvent(BaseModel):
    """One progress checkpoint with cumulative stats."""

    import_id: str
    status: ProgressStatus
    current_action: str
    stats: dict[str, int] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


def empty_stats() -> dict[str, int]:
    """Cumulative counters carried by every progress event."""
    return {
        "products_created": 0,
        "products_updated": 0,
        "products_skipped": 0,
        "variants_created": 0,
        "variants_updated": 0,
        "variants_skipped": 0,
        "barcodes_assigned": 0,
        "units_failed": 0,
        "errors": 0,
    }
