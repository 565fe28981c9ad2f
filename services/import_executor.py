"""
Import executor.

Applies an ImportPlan to the catalog one unit at a time. A unit is one
parent product plus its variant rows:

    pending -> creating/updating -> assigning_barcodes -> committed
                                                       \\-> failed

Each unit runs inside repository.transaction(). A persistence failure
rolls back that unit only and the batch carries on; only an
unreachable store aborts the whole import.

Known limitation: pool entries claimed for a unit that later fails
stay ASSIGNED without a variant. Entries are never handed out twice,
so those codes are lost rather than reused.
"""

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import structlog

from exceptions import AppError, InsufficientPoolError, PersistenceError, RepositoryUnavailableError
from models.catalog_import import (
    ExecutionResult,
    ImportConfig,
    ImportPlan,
    MatchAction,
    ParentKey,
    PlanCounts,
    ProductPlanEntry,
    ProgressStatus,
    RowPlanEntry,
    UnitOutcome,
    UnitStatus,
    empty_stats,
)
from models.product import ProductStatus, ProductUpsert, VariantRecord, VariantUpsert
from services.barcode_allocator import BarcodeAllocator
from services.barcode_pool_repository import BarcodePoolRepository
from services.catalog_repository import CatalogRepository
from services.import_progress_service import ProgressReporter, ProgressSink

logger = structlog.get_logger(__name__)


@contextmanager
def temporary_upload(path: Optional[Union[str, Path]]) -> Iterator[Optional[Path]]:
    """Yield the upload path and delete the file afterwards, success or not."""
    upload = Path(path) if path else None
    try:
        yield upload
    finally:
        if upload is not None and upload.exists():
            try:
                upload.unlink()
                logger.debug("upload_removed", path=str(upload))
            except OSError as e:
                logger.warning("upload_remove_failed", path=str(upload), error=str(e))


class ImportExecutor:
    """Executes plans against a catalog and (optionally) a barcode pool."""

    def __init__(
        self,
        repository: CatalogRepository,
        pool_repository: Optional[BarcodePoolRepository] = None,
        progress_sink: Optional[ProgressSink] = None,
    ):
        self.repository = repository
        self.pool_repository = pool_repository
        self.progress_sink = progress_sink

    def execute(
        self,
        plan: ImportPlan,
        import_id: Optional[str] = None,
        source_file: Optional[Union[str, Path]] = None,
        reporter: Optional[ProgressReporter] = None,
    ) -> ExecutionResult:
        """
        Apply a plan.

        Args:
            plan: Output of ImportPlanner.plan
            import_id: Progress stream id (generated if omitted)
            source_file: Uploaded file to delete once the run ends
            reporter: Existing progress stream to continue

        Returns:
            ExecutionResult with per-unit outcomes

        Raises:
            InsufficientPoolError: Pool cannot cover plan.barcodes_required
                (raised before any write)
            RepositoryUnavailableError: Catalog store unreachable
        """
        reporter = reporter or ProgressReporter(self.progress_sink, import_id)
        started = time.monotonic()
        stats = empty_stats()
        units: list[UnitOutcome] = []

        with temporary_upload(source_file):
            try:
                reporter.catch_up(ProgressStatus.MATCHING, f"Plan ready: {plan.counts.valid_rows} rows")
                allocator = self._allocator(plan.config)
                if allocator is not None and plan.barcodes_required:
                    allocator.ensure_available(plan.barcodes_required)

                logger.info(
                    "import_execution_started",
                    import_id=reporter.import_id,
                    units=len(plan.products),
                    barcodes_required=plan.barcodes_required
                )

                rows_by_key: dict[ParentKey, list[RowPlanEntry]] = {}
                for row in plan.rows:
                    rows_by_key.setdefault(row.parent_key, []).append(row)

                for entry in plan.products:
                    outcome = self._run_unit(
                        entry,
                        rows_by_key.get(entry.parent_key, []),
                        plan.config,
                        allocator,
                        stats,
                        reporter,
                    )
                    units.append(outcome)

            except Exception as e:
                logger.error(
                    "import_execution_failed",
                    import_id=reporter.import_id,
                    error=str(e),
                    error_type=type(e).__name__
                )
                stats["errors"] += 1
                reporter.emit(ProgressStatus.ERROR, f"Import failed: {e}", stats)
                raise

            committed = [u for u in units if u.status == UnitStatus.COMMITTED]
            counts = PlanCounts.fold(
                (u.product_action for u in committed if u.product_action is not None),
                (action for u in committed for action in u.variant_actions),
                error_rows=plan.counts.error_rows,
                valid_rows=plan.counts.valid_rows,
            )
            result = ExecutionResult(
                import_id=reporter.import_id,
                counts=counts,
                planned=plan.counts,
                units=units,
                stats=dict(stats),
                duration_seconds=round(time.monotonic() - started, 3),
                warnings=list(plan.warnings),
            )

            failed = len(result.failed_units)
            reporter.emit(
                ProgressStatus.COMPLETED,
                f"Import completed: {len(committed)} units committed, {failed} failed",
                stats,
            )
            logger.info(
                "import_execution_completed",
                import_id=result.import_id,
                committed=len(committed),
                failed=failed,
                duration_seconds=result.duration_seconds,
                **stats
            )
            return result

    def _allocator(self, config: ImportConfig) -> Optional[BarcodeAllocator]:
        if not config.assign_barcodes or self.pool_repository is None:
            return None
        return BarcodeAllocator(self.pool_repository, config.barcode_type)

    # ===================
    # UNITS
    # ===================

    def _run_unit(
        self,
        entry: ProductPlanEntry,
        rows: list[RowPlanEntry],
        config: ImportConfig,
        allocator: Optional[BarcodeAllocator],
        stats: dict[str, int],
        reporter: ProgressReporter,
    ) -> UnitOutcome:
        """Apply one unit in its own transaction and merge its stats on commit."""
        outcome = UnitOutcome(
            parent_key=entry.parent_key,
            product_action=entry.result.action,
            row_numbers=list(entry.row_numbers),
        )
        creating = entry.result.action == MatchAction.CREATE or any(
            r.result.action == MatchAction.CREATE for r in rows
        )
        outcome.status = UnitStatus.CREATING if creating else UnitStatus.UPDATING
        reporter.emit(
            ProgressStatus.CREATING if creating else ProgressStatus.UPDATING,
            f"{'Creating' if creating else 'Updating'} {entry.candidate.name}",
            stats,
        )

        delta = empty_stats()
        try:
            with self.repository.transaction():
                product_id = self._apply_product(entry, delta)
                outcome.product_id = product_id

                applied: list[tuple[RowPlanEntry, VariantRecord]] = []
                for row in rows:
                    outcome.variant_actions.append(row.result.action)
                    record = self._apply_variant(row, product_id, config, delta)
                    if record is not None:
                        applied.append((row, record))

                if applied:
                    outcome.status = UnitStatus.ASSIGNING_BARCODES
                    outcome.barcodes_assigned = self._assign_barcodes(applied, allocator)
                    delta["barcodes_assigned"] += outcome.barcodes_assigned

        except RepositoryUnavailableError:
            raise
        except AppError as e:
            outcome.status = UnitStatus.FAILED
            outcome.error = e.message
            outcome.error_code = e.code
            stats["units_failed"] += 1
            stats["errors"] += 1
            logger.warning(
                "import_unit_failed",
                parent_key=str(entry.parent_key),
                rows=entry.row_numbers,
                error=e.message,
                code=e.code
            )
            return outcome

        outcome.status = UnitStatus.COMMITTED
        for key, value in delta.items():
            stats[key] += value
        logger.debug(
            "import_unit_committed",
            parent_key=str(entry.parent_key),
            product_id=outcome.product_id,
            variants=len(rows)
        )
        return outcome

    def _apply_product(self, entry: ProductPlanEntry, delta: dict[str, int]) -> Optional[str]:
        """Write the parent. Returns the product id variants attach to."""
        candidate = entry.candidate
        action = entry.result.action

        if action == MatchAction.CREATE:
            record = self.repository.upsert_product(ProductUpsert(
                name=candidate.name,
                parent_sku=candidate.parent_sku,
                description=candidate.description,
                status=ProductStatus.ACTIVE,
                auto_generated=candidate.auto_generated,
            ))
            delta["products_created"] += 1
            return record.id

        if action == MatchAction.UPDATE:
            # Existing names are operator-owned unless the file declared the parent
            record = self.repository.upsert_product(ProductUpsert(
                id=entry.result.existing_id,
                name=None if candidate.auto_generated else candidate.name,
                description=candidate.description,
                status=ProductStatus.ACTIVE,
            ))
            delta["products_updated"] += 1
            return record.id

        delta["products_skipped"] += 1
        return entry.result.existing_id

    def _apply_variant(
        self,
        row: RowPlanEntry,
        product_id: Optional[str],
        config: ImportConfig,
        delta: dict[str, int],
    ) -> Optional[VariantRecord]:
        candidate = row.candidate
        action = row.result.action

        if action == MatchAction.SKIP:
            delta["variants_skipped"] += 1
            return None

        price = candidate.price if config.update_prices else None

        if action == MatchAction.CREATE:
            if product_id is None:
                raise PersistenceError(
                    "insert",
                    f"Row {row.row_number}: variant {candidate.sku} has no parent product"
                )
            record = self.repository.upsert_variant(VariantUpsert(
                product_id=product_id,
                sku=candidate.sku,
                color=candidate.color,
                size=candidate.size,
                retail_price=candidate.price,
            ))
            delta["variants_created"] += 1
            return record

        record = self.repository.upsert_variant(VariantUpsert(
            id=row.result.existing_id,
            sku=candidate.sku,
            color=candidate.color,
            size=candidate.size,
            retail_price=price,
        ))
        delta["variants_updated"] += 1
        return record

    def _assign_barcodes(
        self,
        applied: list[tuple[RowPlanEntry, VariantRecord]],
        allocator: Optional[BarcodeAllocator],
    ) -> int:
        """
        Give every written variant without a barcode one.

        File-supplied barcodes are attached as-is; the rest come from
        one all-or-nothing pool claim.
        """
        assigned = 0
        from_pool: list[VariantRecord] = []

        for row, record in applied:
            if record.has_barcode:
                continue
            if row.candidate.barcode:
                self.repository.attach_barcode(record.id, row.candidate.barcode)
                assigned += 1
            elif allocator is not None:
                from_pool.append(record)

        if not from_pool:
            return assigned

        try:
            entries = allocator.allocate(len(from_pool))
        except InsufficientPoolError:
            logger.warning("unit_barcode_claim_failed", variants=len(from_pool))
            raise

        for entry, record in zip(entries, from_pool):
            allocator.mark_assigned(entry, record.id)
            self.repository.attach_barcode(record.id, entry.barcode)
            assigned += 1
        return assigned
