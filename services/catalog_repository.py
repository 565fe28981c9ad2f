"""
Catalog repository: lookups and writes for parent products and variants.

The import engine only talks to the CatalogRepository protocol. The
Supabase implementation below is the production store; tests use an
in-memory fake with the same behaviour.
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Iterator, Optional, Protocol

import httpx
import structlog
from supabase import Client

from config import get_supabase_client
from config import ConnectionError as StoreConnectionError
from exceptions import (
    AppError,
    DatabaseError,
    PersistenceError,
    RepositoryUnavailableError,
)
from models.product import (
    ProductRecord,
    VariantRecord,
    ProductUpsert,
    VariantUpsert,
)
from utils.text_utils import normalize_for_comparison, normalize_sku

logger = structlog.get_logger(__name__)


class CatalogRepository(Protocol):
    """Persistence port used by the resolver, matcher and executor."""

    def find_product_by_parent_sku(self, parent_sku: str) -> Optional[ProductRecord]: ...

    def find_product_by_name(self, name: str) -> Optional[ProductRecord]: ...

    def find_variant_by_sku(self, sku: str) -> Optional[VariantRecord]: ...

    def find_variant_by_parent_color_size(
        self,
        product_id: str,
        color: Optional[str],
        size: Optional[str],
    ) -> Optional[VariantRecord]: ...

    def upsert_product(self, data: ProductUpsert) -> ProductRecord: ...

    def upsert_variant(self, data: VariantUpsert) -> VariantRecord: ...

    def attach_barcode(self, variant_id: str, barcode: str) -> None: ...

    def transaction(self) -> ContextManager[None]: ...


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so ilike() behaves as case-insensitive equality."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def is_unavailable(error: Exception) -> bool:
    """True for failures that mean the store itself is unreachable."""
    return isinstance(error, (httpx.TransportError, StoreConnectionError, ConnectionError))


class SupabaseCatalogRepository:
    """
    CatalogRepository backed by Supabase tables.

    Tables:
        products          parent products
        product_variants  variants (product_id -> products.id)
        variant_barcodes  barcodes attached to variants

    Supabase has no client-side transactions, so transaction() keeps an
    undo log of every write made inside it and replays it in reverse
    when the block raises. The log is per thread, so imports running
    side by side on one instance never share it.
    """

    def __init__(self, client: Optional[Client] = None):
        self.db = client if client is not None else get_supabase_client()
        self.products_table = "products"
        self.variants_table = "product_variants"
        self.barcodes_table = "variant_barcodes"
        self._local = threading.local()

    @property
    def _undo(self) -> Optional[list[Callable[[], Any]]]:
        return getattr(self._local, "undo", None)

    @_undo.setter
    def _undo(self, value: Optional[list[Callable[[], Any]]]) -> None:
        self._local.undo = value

    # ===================
    # ERROR MAPPING
    # ===================

    def _raise(self, operation: str, error: Exception, write: bool = False):
        if isinstance(error, AppError):
            raise error
        if is_unavailable(error):
            raise RepositoryUnavailableError(str(error), {"operation": operation})
        if write:
            raise PersistenceError(operation, str(error))
        raise DatabaseError(operation, str(error))

    # ===================
    # PRODUCT LOOKUPS
    # ===================

    def find_product_by_parent_sku(self, parent_sku: str) -> Optional[ProductRecord]:
        """Exact parent SKU lookup."""
        logger.debug("finding_product_by_parent_sku", parent_sku=parent_sku)

        try:
            result = (
                self.db.table(self.products_table)
                .select("*")
                .eq("parent_sku", parent_sku.strip())
                .order("created_at")
                .limit(1)
                .execute()
            )
            if not result.data:
                return None
            return ProductRecord(**result.data[0])

        except Exception as e:
            logger.error("find_product_by_parent_sku_failed", parent_sku=parent_sku, error=str(e))
            self._raise("select", e)

    def find_product_by_name(self, name: str) -> Optional[ProductRecord]:
        """
        Case-insensitive exact name lookup.

        ilike narrows the candidates; the final comparison also folds
        accents and whitespace the same way the resolver does.
        """
        logger.debug("finding_product_by_name", name=name)

        try:
            result = (
                self.db.table(self.products_table)
                .select("*")
                .ilike("name", escape_like(name.strip()))
                .order("created_at")
                .execute()
            )
            wanted = normalize_for_comparison(name)
            for row in result.data or []:
                if normalize_for_comparison(row.get("name")) == wanted:
                    return ProductRecord(**row)
            return None

        except Exception as e:
            logger.error("find_product_by_name_failed", name=name, error=str(e))
            self._raise("select", e)

    # ===================
    # VARIANT LOOKUPS
    # ===================

    def _with_barcodes(self, row: dict) -> VariantRecord:
        barcodes = (
            self.db.table(self.barcodes_table)
            .select("barcode")
            .eq("variant_id", row["id"])
            .execute()
        )
        return VariantRecord(
            **{k: v for k, v in row.items() if k != "barcodes"},
            barcodes=[b["barcode"] for b in barcodes.data or []],
        )

    def find_variant_by_sku(self, sku: str) -> Optional[VariantRecord]:
        """SKU lookup, case-insensitive after trimming."""
        logger.debug("finding_variant_by_sku", sku=sku)

        try:
            result = (
                self.db.table(self.variants_table)
                .select("*")
                .ilike("sku", escape_like(sku.strip()))
                .execute()
            )
            wanted = normalize_sku(sku)
            for row in result.data or []:
                if normalize_sku(row.get("sku")) == wanted:
                    return self._with_barcodes(row)
            return None

        except Exception as e:
            logger.error("find_variant_by_sku_failed", sku=sku, error=str(e))
            self._raise("select", e)

    def find_variant_by_parent_color_size(
        self,
        product_id: str,
        color: Optional[str],
        size: Optional[str],
    ) -> Optional[VariantRecord]:
        """Variant of one product with the given color and size (None matches NULL)."""
        logger.debug(
            "finding_variant_by_attributes",
            product_id=product_id,
            color=color,
            size=size
        )

        try:
            query = (
                self.db.table(self.variants_table)
                .select("*")
                .eq("product_id", product_id)
            )
            if color:
                query = query.ilike("color", escape_like(color.strip()))
            else:
                query = query.is_("color", "null")
            if size:
                query = query.ilike("size", escape_like(size.strip()))
            else:
                query = query.is_("size", "null")

            result = query.order("created_at").limit(1).execute()
            if not result.data:
                return None
            return self._with_barcodes(result.data[0])

        except Exception as e:
            logger.error(
                "find_variant_by_attributes_failed",
                product_id=product_id,
                error=str(e)
            )
            self._raise("select", e)

    # ===================
    # WRITES
    # ===================

    def _fetch(self, table: str, record_id: str) -> Optional[dict]:
        result = self.db.table(table).select("*").eq("id", record_id).execute()
        return result.data[0] if result.data else None

    def _record_undo(self, action: Callable[[], Any]) -> None:
        if self._undo is not None:
            self._undo.append(action)

    def _write(self, table: str, record_id: Optional[str], payload: dict) -> dict:
        """Insert (record_id None) or update one row, logging the inverse."""
        if record_id is None:
            result = self.db.table(table).insert(payload).execute()
            if not result.data:
                raise PersistenceError("insert", f"No row returned from {table}")
            row = result.data[0]
            self._record_undo(
                lambda: self.db.table(table).delete().eq("id", row["id"]).execute()
            )
            return row

        before = self._fetch(table, record_id)
        if before is None:
            raise PersistenceError("update", f"{table} row {record_id} not found")
        if not payload:
            return before

        result = self.db.table(table).update(payload).eq("id", record_id).execute()
        if not result.data:
            raise PersistenceError("update", f"No row returned from {table}")
        restore = {k: before.get(k) for k in payload}
        self._record_undo(
            lambda: self.db.table(table).update(restore).eq("id", record_id).execute()
        )
        return result.data[0]

    def upsert_product(self, data: ProductUpsert) -> ProductRecord:
        """Insert or update a parent product."""
        payload = data.model_dump(exclude={"id"}, exclude_none=True, mode="json")
        operation = "insert" if data.id is None else "update"
        logger.info("upserting_product", operation=operation, product_id=data.id, name=data.name)

        try:
            row = self._write(self.products_table, data.id, payload)
            return ProductRecord(**row)

        except Exception as e:
            logger.error("upsert_product_failed", product_id=data.id, error=str(e))
            self._raise(operation, e, write=True)

    def upsert_variant(self, data: VariantUpsert) -> VariantRecord:
        """Insert or update a variant. Returns the record with its barcodes."""
        payload = data.model_dump(exclude={"id"}, exclude_none=True, mode="json")
        operation = "insert" if data.id is None else "update"
        logger.info("upserting_variant", operation=operation, variant_id=data.id, sku=data.sku)

        try:
            row = self._write(self.variants_table, data.id, payload)
            if data.id is None:
                return VariantRecord(**row)
            return self._with_barcodes(row)

        except Exception as e:
            logger.error("upsert_variant_failed", variant_id=data.id, sku=data.sku, error=str(e))
            self._raise(operation, e, write=True)

    def attach_barcode(self, variant_id: str, barcode: str) -> None:
        """Link a barcode to a variant."""
        logger.info("attaching_barcode", variant_id=variant_id, barcode=barcode)

        try:
            result = (
                self.db.table(self.barcodes_table)
                .insert({"variant_id": variant_id, "barcode": barcode})
                .execute()
            )
            if not result.data:
                raise PersistenceError("insert", "No row returned from variant_barcodes")
            row_id = result.data[0]["id"]
            self._record_undo(
                lambda: self.db.table(self.barcodes_table).delete().eq("id", row_id).execute()
            )

        except Exception as e:
            logger.error("attach_barcode_failed", variant_id=variant_id, error=str(e))
            self._raise("insert", e, write=True)

    # ===================
    # TRANSACTIONS
    # ===================

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        All-or-nothing block for one import unit.

        On any exception the writes made inside the block are undone in
        reverse order and the exception is re-raised. Not reentrant within
        one thread.
        """
        if self._undo is not None:
            raise PersistenceError("transaction", "Nested catalog transactions are not supported")

        self._undo = []
        try:
            yield
        except Exception as e:
            undo, self._undo = self._undo, None
            logger.warning("rolling_back_unit", writes=len(undo), error=str(e))
            for action in reversed(undo):
                try:
                    action()
                except Exception as rollback_error:
                    logger.error("rollback_step_failed", error=str(rollback_error))
            raise
        else:
            self._undo = None


# Singleton instance for convenience
_catalog_repository: Optional[SupabaseCatalogRepository] = None

def get_catalog_repository() -> SupabaseCatalogRepository:
    """Get or create SupabaseCatalogRepository instance."""
    global _catalog_repository
    if _catalog_repository is None:
        _catalog_repository = SupabaseCatalogRepository()
    return _catalog_repository
