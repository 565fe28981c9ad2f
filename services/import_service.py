"""
Catalog import service.

Entry point for dry runs (preview) and real runs. Both go through the
same planner, so the preview an operator confirms is the plan that
gets executed.
"""

from pathlib import Path
from typing import Any, Optional, Sequence, Union

import structlog

from config import settings
from exceptions import AppError
from models.catalog_import import (
    ColumnMapping,
    ExecutionResult,
    ImportConfig,
    ImportMode,
    ImportPlan,
    ProgressStatus,
)
from services.barcode_allocator import BarcodeAllocator
from services.barcode_pool_repository import BarcodePoolRepository, get_barcode_pool_repository
from services.catalog_repository import CatalogRepository, get_catalog_repository
from services.import_executor import ImportExecutor, temporary_upload
from services.import_planner import ImportPlanner
from services.import_progress_service import ProgressReporter, ProgressSink

logger = structlog.get_logger(__name__)


def default_config(**overrides) -> ImportConfig:
    """ImportConfig seeded from settings."""
    values = {
        "mode": ImportMode(settings.import_default_mode),
        "auto_generate_parents": settings.auto_generate_parents,
        "assign_barcodes": settings.assign_barcodes,
        "barcode_type": settings.barcode_type,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ImportConfig(**values)


class ImportService:
    """
    Plans and runs catalog imports.

    Handles:
        - Dry runs with pool coverage warnings
        - Real runs with ordered progress events
        - Upload cleanup on every exit path
    """

    def __init__(
        self,
        repository: CatalogRepository,
        pool_repository: Optional[BarcodePoolRepository] = None,
    ):
        self.repository = repository
        self.pool_repository = pool_repository

    # ===================
    # DRY RUN
    # ===================

    def dry_run(
        self,
        rows: Sequence[Sequence[Any]],
        mapping: ColumnMapping,
        config: ImportConfig,
        column_count: Optional[int] = None,
    ) -> ImportPlan:
        """
        Build the plan without writing anything.

        Adds a warning when the barcode pool cannot cover the plan; the
        real run would refuse it.
        """
        plan = ImportPlanner(self.repository).plan(rows, mapping, config, column_count=column_count)

        if config.assign_barcodes and plan.barcodes_required and self.pool_repository is not None:
            available = BarcodeAllocator(self.pool_repository, config.barcode_type).available_count()
            if available < plan.barcodes_required:
                plan.warnings.append(
                    f"Barcode pool has {available} {config.barcode_type} codes available, "
                    f"{plan.barcodes_required} required"
                )

        logger.info("dry_run_completed", **plan.counts.model_dump(), warnings=len(plan.warnings))
        return plan

    # ===================
    # REAL RUN
    # ===================

    def run(
        self,
        rows: Sequence[Sequence[Any]],
        mapping: ColumnMapping,
        config: ImportConfig,
        import_id: Optional[str] = None,
        source_file: Optional[Union[str, Path]] = None,
        progress_sink: Optional[ProgressSink] = None,
        column_count: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Plan and execute an import.

        Raises:
            ColumnMappingError: Mapping unusable (before any write)
            InsufficientPoolError: Pool too small (before any write)
            RepositoryUnavailableError: Catalog store unreachable
        """
        reporter = ProgressReporter(progress_sink, import_id)
        logger.info("import_started", import_id=reporter.import_id, rows=len(rows))

        with temporary_upload(source_file):
            reporter.emit(ProgressStatus.READING_FILE, f"Reading {len(rows)} rows")
            try:
                plan = ImportPlanner(self.repository).plan(
                    rows,
                    mapping,
                    config,
                    on_phase=reporter.phase,
                    column_count=column_count,
                )
            except AppError as e:
                logger.error("import_planning_failed", import_id=reporter.import_id, error=e.message)
                reporter.emit(ProgressStatus.ERROR, f"Import failed: {e.message}")
                raise

            executor = ImportExecutor(self.repository, self.pool_repository)
            return executor.execute(plan, reporter=reporter)


# Singleton instance for convenience
_import_service: Optional[ImportService] = None

def get_import_service() -> ImportService:
    """Get or create ImportService wired to the Supabase repositories."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService(get_catalog_repository(), get_barcode_pool_repository())
    return _import_service
