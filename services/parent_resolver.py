"""
Parent resolution.

Works out which parent product each variant row belongs to, reusing
catalog parents where they exist and synthesizing new ones otherwise.

Order of precedence:
    1. NNN-NNN SKU -> parent SKU NNN (catalog parent reused if present)
    2. Similar names (shared leading words) -> one parent named after
       the common words, catalog parent by name reused if present
    3. Synthesized parent named after the stripped name

Resolution never fails on ambiguous input; the worst case is a parent
holding a single variant.
"""

from typing import Optional, Sequence

import structlog

from models.catalog_import import (
    ParentCandidate,
    ParentKey,
    ParentKeyKind,
    Row,
    VariantCandidate,
)
from models.product import ProductRecord
from services.catalog_repository import CatalogRepository
from utils.text_utils import (
    extract_parent_sku_prefix,
    names_are_similar,
    normalize_for_comparison,
    normalize_sku,
    similarity_group_key,
    strip_variant_descriptors,
)

logger = structlog.get_logger(__name__)


def parent_key_for(row: Row) -> ParentKey:
    """Grouping key for a row in auto-parent mode."""
    prefix = extract_parent_sku_prefix(row.variant_sku)
    if prefix:
        return ParentKey(kind=ParentKeyKind.SKU, value=prefix)

    stripped = strip_variant_descriptors(row.product_name)
    value = normalize_for_comparison(stripped) or normalize_for_comparison(row.product_name)
    return ParentKey(kind=ParentKeyKind.NAME, value=value)


def inferred_parent_keys(rows: Sequence[Row]) -> list[ParentKey]:
    """
    Grouping keys for a batch of rows in auto-parent mode, one per row.

    Rows with an NNN-NNN SKU are keyed on the prefix. The rest are
    clustered in row order: each row not yet clustered seeds a cluster
    and pulls in every later row whose stripped name is similar to the
    seed's. A cluster is keyed on the common leading words of its names.
    """
    keys: list[Optional[ParentKey]] = [None] * len(rows)
    pending: list[tuple[int, str]] = []

    for index, row in enumerate(rows):
        if extract_parent_sku_prefix(row.variant_sku):
            keys[index] = parent_key_for(row)
        else:
            name = strip_variant_descriptors(row.product_name) or row.product_name
            pending.append((index, name))

    clustered: set[int] = set()
    for position, (seed_index, seed_name) in enumerate(pending):
        if seed_index in clustered:
            continue

        members = [(seed_index, seed_name)]
        clustered.add(seed_index)
        for index, name in pending[position + 1:]:
            if index not in clustered and names_are_similar(seed_name, name):
                members.append((index, name))
                clustered.add(index)

        group_name = similarity_group_key(name for _, name in members)
        key = ParentKey(
            kind=ParentKeyKind.NAME,
            value=normalize_for_comparison(group_name) or normalize_for_comparison(seed_name),
        )
        for index, _ in members:
            keys[index] = key

    return keys


def declared_key_for(row: Row) -> ParentKey:
    """Grouping key for an explicit is_parent row."""
    return ParentKey(kind=ParentKeyKind.DECLARED, value=normalize_sku(row.variant_sku))


def _from_record(record: ProductRecord) -> ParentCandidate:
    return ParentCandidate(
        parent_sku=record.parent_sku,
        name=record.name,
        auto_generated=record.auto_generated,
        existing_id=record.id,
        description=record.description,
    )


class ParentResolver:
    """
    Resolves parent candidates against one catalog.

    Results are cached per ParentKey, so every variant of a group gets
    the same candidate. Create one resolver per plan.
    """

    def __init__(self, repository: CatalogRepository):
        self.repository = repository
        self._cache: dict[ParentKey, ParentCandidate] = {}

    # ===================
    # RESOLUTION
    # ===================

    def resolve(self, variant: VariantCandidate) -> ParentCandidate:
        """Resolve the parent of a single variant."""
        return self.resolve_group(variant.parent_key, [variant])

    def resolve_group(self, key: ParentKey, variants: Sequence[VariantCandidate]) -> ParentCandidate:
        """
        Resolve the shared parent of a group of variants.

        SKU groups take their name from the first row; name groups use
        the common leading words of all names in the group.
        """
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if key.kind == ParentKeyKind.SKU:
            candidate = self._resolve_by_sku(key.value, variants[0].raw.product_name)
        else:
            candidate = self._resolve_by_name([v.raw.product_name for v in variants])

        self._cache[key] = candidate
        logger.debug(
            "parent_resolved",
            parent_key=str(key),
            name=candidate.name,
            existing_id=candidate.existing_id,
            variants=len(variants)
        )
        return candidate

    def declare(self, key: ParentKey, row: Row) -> ParentCandidate:
        """
        Parent from an explicit is_parent row.

        The row's SKU is the parent SKU. Declared parents keep the name
        and description given in the file.
        """
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        parent_sku = row.variant_sku.strip()
        existing = self.repository.find_product_by_parent_sku(parent_sku)
        candidate = ParentCandidate(
            parent_sku=parent_sku,
            name=row.product_name.strip() or (existing.name if existing else parent_sku),
            auto_generated=False,
            existing_id=existing.id if existing else None,
            description=row.description,
        )
        self._cache[key] = candidate
        return candidate

    def _resolve_by_sku(self, prefix: str, product_name: str) -> ParentCandidate:
        existing = self.repository.find_product_by_parent_sku(prefix)
        if existing is not None:
            return _from_record(existing)

        name = strip_variant_descriptors(product_name) or product_name.strip()
        return ParentCandidate(
            parent_sku=prefix,
            name=name or f"Product {prefix}",
            auto_generated=True,
        )

    def _resolve_by_name(self, names: Sequence[str]) -> ParentCandidate:
        group_name = similarity_group_key(names) or names[0].strip()
        name = strip_variant_descriptors(group_name) or group_name

        existing = self._find_by_name(name)
        if existing is not None:
            return _from_record(existing)

        if len(names) == 1 and normalize_for_comparison(name) == normalize_for_comparison(names[0]):
            logger.warning("parent_inference_fallback", name=name)

        return ParentCandidate(name=name, auto_generated=True)

    def _find_by_name(self, name: str) -> Optional[ProductRecord]:
        if not name:
            return None
        return self.repository.find_product_by_name(name)
