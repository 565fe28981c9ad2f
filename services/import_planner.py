"""
Reconciliation planner.

Turns decoded upload rows into an ImportPlan: which parents and
variants will be created, updated or skipped. Planning only reads from
the catalog, so the same plan serves as the dry-run preview and as the
input of the real run.

Steps:
    1. Map rows through the column mapping and validate required fields
    2. Group rows under parents (inferred or declared)
    3. Match parents and variants against the catalog
    4. Guard against duplicates within the batch (row order)
    5. Fold per-row results into counts
"""

from typing import Any, Callable, Optional, Sequence

import structlog

from exceptions import ColumnMappingError, RowValidationError
from models.catalog_import import (
    DUPLICATE_IN_BATCH,
    IMPORT_FIELDS,
    REQUIRED_FIELDS,
    ColumnMapping,
    ImportConfig,
    ImportPlan,
    MatchAction,
    MatchResult,
    ParentCandidate,
    ParentKey,
    PlanCounts,
    ProductPlanEntry,
    ProgressStatus,
    Row,
    RowError,
    RowPlanEntry,
    VariantCandidate,
)
from services.candidate_matcher import CandidateMatcher, VariantLookup
from services.catalog_repository import CatalogRepository
from services.parent_resolver import (
    ParentResolver,
    declared_key_for,
    inferred_parent_keys,
    parent_key_for,
)
from utils.text_utils import (
    clean_cell,
    optional_text,
    parse_bool_flag,
    parse_price,
)

logger = structlog.get_logger(__name__)

PhaseCallback = Callable[[ProgressStatus, str], Any]


# ===================
# ROW MAPPING
# ===================

def validate_mapping(mapping: ColumnMapping, column_count: Optional[int] = None) -> None:
    """
    Check a column mapping before any row is read.

    Raises:
        ColumnMappingError: Required field unmapped, or an index that is
            negative or beyond the header
    """
    missing = [f for f in REQUIRED_FIELDS if mapping.get(f) is None]
    if missing:
        raise ColumnMappingError(
            f"Required fields not mapped: {', '.join(missing)}",
            {"missing_fields": missing}
        )

    for field, index in mapping.items():
        if index is None:
            continue
        if not isinstance(index, int) or isinstance(index, bool) or index < 0:
            raise ColumnMappingError(
                f"Invalid column index for {field}: {index!r}",
                {"field": field, "index": index}
            )
        if column_count is not None and index >= column_count:
            raise ColumnMappingError(
                f"Column {index} for {field} is out of range ({column_count} columns)",
                {"field": field, "index": index, "column_count": column_count}
            )


def map_row(values: Sequence[Any], mapping: ColumnMapping, row_number: int) -> Row:
    """
    Map one decoded row into a Row.

    Cells past the end of a short row read as blank. Mapped fields
    outside IMPORT_FIELDS land in Row.extra.
    """
    raw: dict[str, str] = {}
    for field, index in mapping.items():
        if index is None:
            continue
        raw[field] = clean_cell(values[index]) if index < len(values) else ""

    return Row(
        row_number=row_number,
        product_name=raw.get("product_name", ""),
        variant_sku=raw.get("variant_sku", ""),
        variant_color=optional_text(raw.get("variant_color")),
        variant_size=optional_text(raw.get("variant_size")),
        barcode=optional_text(raw.get("barcode")),
        retail_price=optional_text(raw.get("retail_price")),
        is_parent=parse_bool_flag(raw.get("is_parent")),
        description=optional_text(raw.get("description")),
        raw=raw,
        extra={k: v for k, v in raw.items() if k not in IMPORT_FIELDS},
    )


def validate_row(row: Row) -> None:
    """Raises RowValidationError for the first missing required field."""
    if not row.variant_sku:
        raise RowValidationError(row.row_number, "variant_sku", "SKU is required")
    if not row.product_name:
        raise RowValidationError(row.row_number, "product_name", "Product name is required")


def to_variant_candidate(row: Row, parent_key: ParentKey) -> VariantCandidate:
    return VariantCandidate(
        sku=row.variant_sku,
        color=row.variant_color,
        size=row.variant_size,
        price=parse_price(row.retail_price),
        barcode=row.barcode,
        parent_key=parent_key,
        raw=row,
    )


# ===================
# PLANNER
# ===================

class ImportPlanner:
    """
    Builds import plans against one catalog repository.

    Deterministic: the same rows, mapping, config and catalog state
    always produce the same plan.
    """

    def __init__(self, repository: CatalogRepository):
        self.repository = repository
        self.matcher = CandidateMatcher(repository)

    def plan(
        self,
        rows: Sequence[Sequence[Any]],
        mapping: ColumnMapping,
        config: ImportConfig,
        on_phase: Optional[PhaseCallback] = None,
        column_count: Optional[int] = None,
    ) -> ImportPlan:
        """
        Plan an import.

        Args:
            rows: Decoded data rows (header excluded), cells in column order
            mapping: Logical field -> column index
            config: Import options
            on_phase: Called with each planning checkpoint
            column_count: Header width, for mapping range checks

        Returns:
            ImportPlan

        Raises:
            ColumnMappingError: If the mapping itself is unusable
        """
        notify = on_phase or (lambda status, action: None)
        validate_mapping(mapping, column_count)

        logger.info(
            "planning_import",
            rows=len(rows),
            mode=config.mode.value,
            auto_generate_parents=config.auto_generate_parents
        )

        notify(ProgressStatus.VALIDATING, f"Validating {len(rows)} rows")
        valid_rows, errors = self._validate_rows(rows, mapping)

        notify(ProgressStatus.RESOLVING_PARENTS, f"Resolving parents for {len(valid_rows)} rows")
        resolver = ParentResolver(self.repository)
        warnings: list[str] = []
        if config.auto_generate_parents:
            parents, variants = self._group_inferred(valid_rows, resolver)
        else:
            parents, variants = self._group_declared(valid_rows, resolver, warnings)

        notify(ProgressStatus.MATCHING, f"Matching {len(variants)} variants against the catalog")
        products = [
            ProductPlanEntry(
                parent_key=key,
                candidate=candidate,
                result=self.matcher.match_product(candidate, config.mode),
                row_numbers=row_numbers,
            )
            for key, (candidate, row_numbers) in parents.items()
        ]
        parent_ids = {p.parent_key: p.result.existing_id for p in products}
        row_entries = self._match_variants(variants, parent_ids, config)

        duplicates = sum(1 for r in row_entries if r.result.reason == DUPLICATE_IN_BATCH)
        if duplicates:
            warnings.append(f"{duplicates} rows skipped as duplicates within the file")

        counts = PlanCounts.fold(
            (p.result.action for p in products),
            (r.result.action for r in row_entries),
            error_rows=len(errors),
            valid_rows=len(valid_rows),
        )
        plan = ImportPlan(
            config=config,
            counts=counts,
            products=products,
            rows=row_entries,
            errors=errors,
            barcodes_required=sum(1 for r in row_entries if r.needs_barcode),
            warnings=warnings,
        )

        logger.info(
            "plan_built",
            valid_rows=counts.valid_rows,
            error_rows=counts.error_rows,
            products_to_create=counts.products_to_create,
            products_to_update=counts.products_to_update,
            variants_to_create=counts.variants_to_create,
            variants_to_update=counts.variants_to_update,
            barcodes_required=plan.barcodes_required
        )
        return plan

    # ===================
    # STEP 1: VALIDATION
    # ===================

    def _validate_rows(
        self,
        rows: Sequence[Sequence[Any]],
        mapping: ColumnMapping,
    ) -> tuple[list[Row], list[RowError]]:
        valid: list[Row] = []
        errors: list[RowError] = []

        for index, values in enumerate(rows, start=1):
            if all(clean_cell(v) == "" for v in values):
                continue

            row = map_row(values, mapping, index)
            try:
                validate_row(row)
            except RowValidationError as e:
                logger.info(
                    "row_rejected",
                    row_number=e.row_number,
                    field=e.field,
                    reason=e.message
                )
                errors.append(RowError(row_number=e.row_number, field=e.field, message=e.message))
                continue
            valid.append(row)

        return valid, errors

    # ===================
    # STEP 2: GROUPING
    # ===================

    def _group_inferred(
        self,
        rows: list[Row],
        resolver: ParentResolver,
    ) -> tuple[dict[ParentKey, tuple[ParentCandidate, list[int]]], list[VariantCandidate]]:
        """Group by SKU prefix or similar names; one resolution per group."""
        variants = [
            to_variant_candidate(row, key)
            for row, key in zip(rows, inferred_parent_keys(rows))
        ]

        groups: dict[ParentKey, list[VariantCandidate]] = {}
        for variant in variants:
            groups.setdefault(variant.parent_key, []).append(variant)

        parents = {
            key: (resolver.resolve_group(key, members), [v.raw.row_number for v in members])
            for key, members in groups.items()
        }
        return parents, variants

    def _group_declared(
        self,
        rows: list[Row],
        resolver: ParentResolver,
        warnings: list[str],
    ) -> tuple[dict[ParentKey, tuple[ParentCandidate, list[int]]], list[VariantCandidate]]:
        """
        is_parent rows declare parents; later rows attach to the most
        recently declared one. Rows before any declaration fall back to
        inference.
        """
        parents: dict[ParentKey, tuple[ParentCandidate, list[int]]] = {}
        variants: list[VariantCandidate] = []
        current: Optional[ParentKey] = None
        orphans = 0

        for row in rows:
            if row.is_parent:
                current = declared_key_for(row)
                candidate = resolver.declare(current, row)
                parents.setdefault(current, (candidate, []))[1].append(row.row_number)
                continue

            if current is not None:
                variant = to_variant_candidate(row, current)
                parents[current][1].append(row.row_number)
            else:
                orphans += 1
                variant = to_variant_candidate(row, parent_key_for(row))
                candidate = resolver.resolve(variant)
                parents.setdefault(variant.parent_key, (candidate, []))[1].append(row.row_number)
                logger.warning(
                    "row_without_declared_parent",
                    row_number=row.row_number,
                    parent=candidate.name
                )
            variants.append(variant)

        if orphans:
            warnings.append(f"{orphans} rows had no declared parent; parents were inferred")
        return parents, variants

    # ===================
    # STEP 3-4: MATCHING
    # ===================

    def _match_variants(
        self,
        variants: list[VariantCandidate],
        parent_ids: dict[ParentKey, Optional[str]],
        config: ImportConfig,
    ) -> list[RowPlanEntry]:
        """Match variants in row order; later duplicates in the batch are skipped."""
        seen_skus: set[str] = set()
        seen_attributes: set[tuple] = set()
        entries: list[RowPlanEntry] = []

        for variant in variants:
            attribute_key = None
            if variant.has_attributes:
                attribute_key = (
                    variant.parent_key,
                    (variant.color or "").casefold(),
                    (variant.size or "").casefold(),
                )

            if variant.match_sku in seen_skus or (
                attribute_key is not None and attribute_key in seen_attributes
            ):
                logger.info(
                    "duplicate_in_batch",
                    row_number=variant.raw.row_number,
                    sku=variant.sku
                )
                entries.append(RowPlanEntry(
                    row_number=variant.raw.row_number,
                    parent_key=variant.parent_key,
                    candidate=variant,
                    result=MatchResult(action=MatchAction.SKIP, reason=DUPLICATE_IN_BATCH),
                ))
                continue

            seen_skus.add(variant.match_sku)
            if attribute_key is not None:
                seen_attributes.add(attribute_key)

            lookup = self.matcher.find_variant(variant, parent_ids.get(variant.parent_key))
            result = self.matcher.decide_variant(lookup, config.mode)
            entries.append(RowPlanEntry(
                row_number=variant.raw.row_number,
                parent_key=variant.parent_key,
                candidate=variant,
                result=result,
                needs_barcode=self._needs_barcode(variant, result, lookup, config),
            ))

        return entries

    @staticmethod
    def _needs_barcode(
        variant: VariantCandidate,
        result: MatchResult,
        lookup: VariantLookup,
        config: ImportConfig,
    ) -> bool:
        """A pool barcode is needed when the variant will exist without one."""
        if not config.assign_barcodes or result.action == MatchAction.SKIP:
            return False
        if variant.barcode:
            return False
        return not (lookup.record is not None and lookup.record.has_barcode)
