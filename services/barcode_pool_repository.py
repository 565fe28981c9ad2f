"""
Barcode pool repository.

Claims are compare-and-set: an entry is only taken when its status is
still 'available' at update time, so two imports running at once can
never hand out the same code. Fresh codes go out before legacy stock,
then in spreadsheet order.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

import structlog
from supabase import Client

from config import get_supabase_client
from exceptions import (
    AppError,
    DatabaseError,
    InsufficientPoolError,
    PersistenceError,
    RepositoryUnavailableError,
)
from models.barcode import BarcodePoolEntry, BarcodeStatus, PoolStatistics
from services.catalog_repository import is_unavailable

logger = structlog.get_logger(__name__)


class BarcodePoolRepository(Protocol):
    """Pool port used by the barcode allocator."""

    def count_available(self, barcode_type: str) -> int: ...

    def claim_next_available(self, n: int, barcode_type: str) -> list[BarcodePoolEntry]: ...

    def mark_assigned(self, entry: BarcodePoolEntry, variant_id: str) -> None: ...

    def statistics(self, barcode_type: str) -> PoolStatistics: ...


class SupabaseBarcodePoolRepository:
    """BarcodePoolRepository over the barcode_pool table."""

    def __init__(self, client: Optional[Client] = None):
        self.db = client if client is not None else get_supabase_client()
        self.table = "barcode_pool"

    def _raise(self, operation: str, error: Exception, write: bool = False):
        if isinstance(error, AppError):
            raise error
        if is_unavailable(error):
            raise RepositoryUnavailableError(str(error), {"operation": operation})
        if write:
            raise PersistenceError(operation, str(error))
        raise DatabaseError(operation, str(error))

    # ===================
    # READ OPERATIONS
    # ===================

    def _count(self, barcode_type: str, **filters) -> int:
        query = (
            self.db.table(self.table)
            .select("id", count="exact")
            .eq("barcode_type", barcode_type)
        )
        for column, value in filters.items():
            query = query.eq(column, value)
        result = query.execute()
        return result.count or 0

    def count_available(self, barcode_type: str) -> int:
        """Number of entries that can still be claimed."""
        try:
            return self._count(barcode_type, status=BarcodeStatus.AVAILABLE.value)
        except Exception as e:
            logger.error("count_available_barcodes_failed", barcode_type=barcode_type, error=str(e))
            self._raise("count", e)

    def statistics(self, barcode_type: str) -> PoolStatistics:
        """Per-status counts for one barcode type."""
        logger.debug("getting_pool_statistics", barcode_type=barcode_type)

        try:
            total = self._count(barcode_type)
            available = self._count(barcode_type, status=BarcodeStatus.AVAILABLE.value)
            assigned = self._count(barcode_type, status=BarcodeStatus.ASSIGNED.value)
            reserved = self._count(barcode_type, status=BarcodeStatus.RESERVED.value)
            legacy = self._count(barcode_type, is_legacy=True)
            ready = self._count(
                barcode_type,
                status=BarcodeStatus.AVAILABLE.value,
                is_legacy=False
            )
        except Exception as e:
            logger.error("get_pool_statistics_failed", barcode_type=barcode_type, error=str(e))
            self._raise("count", e)

        rate = round(assigned / total * 100, 2) if total else 0.0
        return PoolStatistics(
            barcode_type=barcode_type,
            total=total,
            available=available,
            assigned=assigned,
            reserved=reserved,
            legacy=legacy,
            ready_for_assignment=ready,
            assignment_rate=rate,
        )

    # ===================
    # CLAIMS
    # ===================

    def _next_candidates(self, n: int, barcode_type: str) -> list[BarcodePoolEntry]:
        result = (
            self.db.table(self.table)
            .select("*")
            .eq("barcode_type", barcode_type)
            .eq("status", BarcodeStatus.AVAILABLE.value)
            .order("is_legacy")
            .order("row_number")
            .limit(n)
            .execute()
        )
        return [BarcodePoolEntry(**row) for row in result.data or []]

    def _try_claim(self, entry: BarcodePoolEntry, claimed_at: datetime) -> Optional[BarcodePoolEntry]:
        result = (
            self.db.table(self.table)
            .update({
                "status": BarcodeStatus.ASSIGNED.value,
                "assigned_at": claimed_at.isoformat(),
            })
            .eq("id", entry.id)
            .eq("status", BarcodeStatus.AVAILABLE.value)
            .execute()
        )
        if not result.data:
            return None
        return BarcodePoolEntry(**result.data[0])

    def _release(self, entries: list[BarcodePoolEntry]) -> None:
        """Undo an incomplete claim. Entries were never handed to a variant."""
        if not entries:
            return
        (
            self.db.table(self.table)
            .update({"status": BarcodeStatus.AVAILABLE.value, "assigned_at": None})
            .in_("id", [e.id for e in entries])
            .is_("assigned_to", "null")
            .execute()
        )

    def claim_next_available(self, n: int, barcode_type: str) -> list[BarcodePoolEntry]:
        """
        Atomically claim n entries.

        Either returns exactly n entries, all now ASSIGNED, or raises
        InsufficientPoolError with the pool left as it was.
        """
        if n <= 0:
            return []

        logger.info("claiming_barcodes", requested=n, barcode_type=barcode_type)
        claimed: list[BarcodePoolEntry] = []

        try:
            available = self.count_available(barcode_type)
            if available < n:
                raise InsufficientPoolError(n, available, barcode_type)

            claimed_at = datetime.now(timezone.utc)
            lost: set[str] = set()
            while len(claimed) < n:
                candidates = [
                    c for c in self._next_candidates(n - len(claimed) + len(lost), barcode_type)
                    if c.id not in lost
                ][:n - len(claimed)]
                if not candidates:
                    break
                for candidate in candidates:
                    entry = self._try_claim(candidate, claimed_at)
                    if entry is None:
                        lost.add(candidate.id)
                    else:
                        claimed.append(entry)

            if len(claimed) < n:
                got = len(claimed)
                self._release(claimed)
                claimed = []
                raise InsufficientPoolError(n, got, barcode_type)

        except InsufficientPoolError:
            logger.warning("barcode_claim_short", requested=n, barcode_type=barcode_type)
            raise
        except Exception as e:
            logger.error("claim_barcodes_failed", requested=n, error=str(e))
            self._release(claimed)
            self._raise("claim", e, write=True)

        logger.info("barcodes_claimed", count=len(claimed), barcode_type=barcode_type)
        return claimed

    def mark_assigned(self, entry: BarcodePoolEntry, variant_id: str) -> None:
        """Record which variant a claimed entry went to."""
        try:
            (
                self.db.table(self.table)
                .update({"assigned_to": variant_id})
                .eq("id", entry.id)
                .execute()
            )
        except Exception as e:
            logger.error("mark_barcode_assigned_failed", barcode=entry.barcode, error=str(e))
            self._raise("update", e, write=True)


# Singleton instance for convenience
_barcode_pool_repository: Optional[SupabaseBarcodePoolRepository] = None

def get_barcode_pool_repository() -> SupabaseBarcodePoolRepository:
    """Get or create SupabaseBarcodePoolRepository instance."""
    global _barcode_pool_repository
    if _barcode_pool_repository is None:
        _barcode_pool_repository = SupabaseBarcodePoolRepository()
    return _barcode_pool_repository
