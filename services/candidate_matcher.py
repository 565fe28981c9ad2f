"""
Candidate matching: decides create / update / skip for each parent and
variant candidate.

Policy matrix:

    mode               found     not found
    create_only        skip      create
    update_existing    update    skip
    create_or_update   update    create
"""

from typing import NamedTuple, Optional

import structlog

from models.catalog_import import (
    ImportMode,
    MatchAction,
    MatchResult,
    ParentCandidate,
    VariantCandidate,
)
from models.product import VariantRecord
from services.catalog_repository import CatalogRepository

logger = structlog.get_logger(__name__)


def apply_policy(found: bool, mode: ImportMode) -> MatchAction:
    """Action for a candidate given whether a catalog record matched."""
    if found:
        if mode == ImportMode.CREATE_ONLY:
            return MatchAction.SKIP
        return MatchAction.UPDATE
    if mode == ImportMode.UPDATE_EXISTING:
        return MatchAction.SKIP
    return MatchAction.CREATE


def _reason(action: MatchAction, mode: ImportMode, matched_by: Optional[str]) -> str:
    if action == MatchAction.CREATE:
        return "new_record"
    if action == MatchAction.UPDATE:
        return f"matched_by_{matched_by}"
    if matched_by:
        return f"exists_in_{mode.value}"
    return f"not_found_in_{mode.value}"


class VariantLookup(NamedTuple):
    """Catalog variant a candidate matched, and which key matched it."""
    record: Optional[VariantRecord]
    matched_by: Optional[str]


class CandidateMatcher:
    """Matches candidates against the catalog and applies the mode policy."""

    def __init__(self, repository: CatalogRepository):
        self.repository = repository

    # ===================
    # PRODUCTS
    # ===================

    def match_product(self, candidate: ParentCandidate, mode: ImportMode) -> MatchResult:
        """
        Match a parent candidate.

        A candidate the resolver already tied to a catalog record
        (existing_id) counts as found; otherwise look it up by parent SKU.
        """
        existing_id = candidate.existing_id
        matched_by = "resolved" if existing_id else None

        if existing_id is None and candidate.parent_sku:
            record = self.repository.find_product_by_parent_sku(candidate.parent_sku)
            if record is not None:
                existing_id = record.id
                matched_by = "parent_sku"

        action = apply_policy(existing_id is not None, mode)
        return MatchResult(
            action=action,
            existing_id=existing_id,
            reason=_reason(action, mode, matched_by),
            matched_by=matched_by,
        )

    # ===================
    # VARIANTS
    # ===================

    def find_variant(self, candidate: VariantCandidate, parent_id: Optional[str]) -> VariantLookup:
        """
        SKU first; then (parent, color, size) when the parent exists and
        the candidate carries at least one attribute.
        """
        record = self.repository.find_variant_by_sku(candidate.sku)
        if record is not None:
            return VariantLookup(record, "sku")

        if parent_id and candidate.has_attributes:
            record = self.repository.find_variant_by_parent_color_size(
                parent_id, candidate.color, candidate.size
            )
            if record is not None:
                return VariantLookup(record, "color_size")

        return VariantLookup(None, None)

    def decide_variant(self, lookup: VariantLookup, mode: ImportMode) -> MatchResult:
        action = apply_policy(lookup.record is not None, mode)
        return MatchResult(
            action=action,
            existing_id=lookup.record.id if lookup.record else None,
            reason=_reason(action, mode, lookup.matched_by),
            matched_by=lookup.matched_by,
        )

    def match_variant(
        self,
        candidate: VariantCandidate,
        parent_id: Optional[str],
        mode: ImportMode,
    ) -> MatchResult:
        """Match a variant candidate under the given parent."""
        result = self.decide_variant(self.find_variant(candidate, parent_id), mode)
        logger.debug(
            "variant_matched",
            sku=candidate.sku,
            action=result.action.value,
            matched_by=result.matched_by
        )
        return result
