"""
Business logic services.

Each service handles one stage of the catalog import pipeline.
"""

from services.catalog_repository import (
    CatalogRepository,
    SupabaseCatalogRepository,
    get_catalog_repository,
)
from services.barcode_pool_repository import (
    BarcodePoolRepository,
    SupabaseBarcodePoolRepository,
    get_barcode_pool_repository,
)
from services.barcode_allocator import BarcodeAllocator
from services.parent_resolver import ParentResolver, parent_key_for
from services.candidate_matcher import CandidateMatcher, apply_policy
from services.import_planner import ImportPlanner, map_row, validate_mapping
from services.import_executor import ImportExecutor, temporary_upload
from services.import_progress_service import (
    ProgressSink,
    ProgressReporter,
    ImportProgressTracker,
    LoggingProgressSink,
    CompositeProgressSink,
    get_progress_tracker,
)
from services.import_service import ImportService, get_import_service, default_config

__all__ = [
    "CatalogRepository",
    "SupabaseCatalogRepository",
    "get_catalog_repository",
    "BarcodePoolRepository",
    "SupabaseBarcodePoolRepository",
    "get_barcode_pool_repository",
    "BarcodeAllocator",
    "ParentResolver",
    "parent_key_for",
    "CandidateMatcher",
    "apply_policy",
    "ImportPlanner",
    "map_row",
    "validate_mapping",
    "ImportExecutor",
    "temporary_upload",
    "ProgressSink",
    "ProgressReporter",
    "ImportProgressTracker",
    "LoggingProgressSink",
    "CompositeProgressSink",
    "get_progress_tracker",
    "ImportService",
    "get_import_service",
    "default_config",
]
