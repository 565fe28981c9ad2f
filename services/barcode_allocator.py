"""
Barcode allocation service.

Hands out pool barcodes to variants that have none, and reports on
pool health so operators can top the pool up before it runs dry.
"""

from typing import Iterable, Optional

import structlog

from exceptions import InsufficientPoolError
from models.barcode import BarcodePoolEntry, PoolHealth, PoolStatistics
from models.product import VariantRecord
from services.barcode_pool_repository import BarcodePoolRepository

logger = structlog.get_logger(__name__)

LOW_WATER_MARK = 100
HIGH_ASSIGNMENT_RATE = 90.0


class BarcodeAllocator:
    """Claims barcodes from one pool for one barcode type."""

    def __init__(self, pool: BarcodePoolRepository, barcode_type: str = "EAN13"):
        self.pool = pool
        self.barcode_type = barcode_type

    # ===================
    # ALLOCATION
    # ===================

    def available_count(self) -> int:
        return self.pool.count_available(self.barcode_type)

    def ensure_available(self, n: int) -> int:
        """
        Fail fast before any writes when the pool cannot cover n claims.

        Returns:
            Available count at check time

        Raises:
            InsufficientPoolError: If fewer than n entries are available
        """
        available = self.available_count()
        if n > 0 and available < n:
            logger.warning(
                "barcode_pool_insufficient",
                requested=n,
                available=available,
                barcode_type=self.barcode_type
            )
            raise InsufficientPoolError(n, available, self.barcode_type)
        return available

    def allocate(self, n: int) -> list[BarcodePoolEntry]:
        """
        Claim n barcodes.

        All-or-nothing: returns exactly n distinct entries or raises
        InsufficientPoolError without claiming any.
        """
        if n <= 0:
            return []
        entries = self.pool.claim_next_available(n, self.barcode_type)
        logger.info(
            "barcodes_allocated",
            count=len(entries),
            barcode_type=self.barcode_type
        )
        return entries

    def mark_assigned(self, entry: BarcodePoolEntry, variant_id: str) -> None:
        self.pool.mark_assigned(entry, variant_id)

    @staticmethod
    def variants_needing_barcodes(variants: Iterable[VariantRecord]) -> list[VariantRecord]:
        """Variants that already carry a barcode never get a second one."""
        return [v for v in variants if not v.has_barcode]

    # ===================
    # POOL REPORTING
    # ===================

    def get_pool_statistics(self) -> PoolStatistics:
        return self.pool.statistics(self.barcode_type)

    def check_pool_health(
        self,
        low_water_mark: int = LOW_WATER_MARK,
        high_assignment_rate: float = HIGH_ASSIGNMENT_RATE,
        stats: Optional[PoolStatistics] = None,
    ) -> PoolHealth:
        """
        Health verdict for the pool.

        Unhealthy when fewer non-legacy codes than the low-water mark
        are ready. A high assignment rate only adds a warning.
        """
        stats = stats or self.get_pool_statistics()
        health = PoolHealth(
            barcode_type=self.barcode_type,
            available_count=stats.ready_for_assignment,
            total_count=stats.total,
        )

        if stats.ready_for_assignment < low_water_mark:
            health.is_healthy = False
            health.warnings.append(
                f"Low barcode availability: {stats.ready_for_assignment} ready for assignment"
            )
            health.recommendations.append("Import additional GS1 barcodes")

        if stats.assignment_rate > high_assignment_rate:
            health.warnings.append(f"High assignment rate: {stats.assignment_rate}%")
            health.recommendations.append("Plan for barcode pool expansion")

        if stats.legacy and stats.ready_for_assignment == 0 and stats.available > 0:
            health.warnings.append("Only legacy barcodes remain available")

        logger.info(
            "barcode_pool_health_checked",
            barcode_type=self.barcode_type,
            is_healthy=health.is_healthy,
            available=stats.available
        )
        return health
