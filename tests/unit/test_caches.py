"""
Unit tests for the preview and mapping caches.

Run: pytest tests/unit/test_caches.py -v
"""

from models.catalog_import import ImportConfig, PlanCounts
from services import mapping_cache_service, preview_cache_service
from services.mapping_cache_service import (
    delete_mapping,
    retrieve_mapping,
    store_mapping,
    suggest_mapping,
)
from services.preview_cache_service import (
    ImportPreview,
    delete_preview,
    retrieve_preview,
    store_preview,
)
from tests.factories import CATALOG_HEADERS, CATALOG_MAPPING


def make_preview(upload_path=None) -> ImportPreview:
    return ImportPreview(
        filename="catalog.csv",
        headers=CATALOG_HEADERS,
        rows=[["Lamp", "LMP-1"]],
        mapping=dict(CATALOG_MAPPING),
        config=ImportConfig(),
        counts=PlanCounts(variants_to_create=1, valid_rows=1),
        upload_path=upload_path,
    )


class TestPreviewCache:
    """Tests for preview_cache_service"""

    def test_store_and_retrieve(self):
        preview_id = store_preview(make_preview())

        preview = retrieve_preview(preview_id)

        assert preview is not None
        assert preview.counts.variants_to_create == 1

    def test_unknown_id_returns_none(self):
        assert retrieve_preview("missing") is None

    def test_expired_preview_removes_upload(self, tmp_path):
        """An unconfirmed preview does not leave its upload behind."""
        upload = tmp_path / "catalog.csv"
        upload.write_text("Name,SKU\n")
        preview_id = store_preview(make_preview(str(upload)), ttl_minutes=-1)

        assert retrieve_preview(preview_id) is None
        assert not upload.exists()
        assert preview_id not in preview_cache_service._cache

    def test_delete_keeps_upload(self, tmp_path):
        upload = tmp_path / "catalog.csv"
        upload.write_text("Name,SKU\n")
        preview_id = store_preview(make_preview(str(upload)))

        delete_preview(preview_id)

        assert retrieve_preview(preview_id) is None
        assert upload.exists()


class TestMappingCache:
    """Tests for mapping_cache_service"""

    def test_store_per_user_and_type(self):
        store_mapping("alice", "catalog", {"product_name": 0, "variant_sku": 1})

        assert retrieve_mapping("alice", "catalog") == {"product_name": 0, "variant_sku": 1}
        assert retrieve_mapping("bob", "catalog") is None
        assert retrieve_mapping("alice", "pricing") is None

    def test_retrieved_copy_is_independent(self):
        store_mapping("alice", "catalog", {"product_name": 0})

        retrieve_mapping("alice", "catalog")["product_name"] = 5

        assert retrieve_mapping("alice", "catalog") == {"product_name": 0}

    def test_delete(self):
        store_mapping("alice", "catalog", {"product_name": 0})

        delete_mapping("alice", "catalog")

        assert ("alice", "catalog") not in mapping_cache_service._cache

    def test_suggest_from_headers(self):
        mapping = suggest_mapping(CATALOG_HEADERS)

        assert mapping == CATALOG_MAPPING

    def test_suggest_first_header_wins(self):
        mapping = suggest_mapping(["EAN", "Title", "Barcode", "Colour", "item-sku"])

        assert mapping["barcode"] == 0
        assert mapping["product_name"] == 1
        assert mapping["variant_color"] == 3
        assert mapping["variant_sku"] == 4
        assert mapping["variant_size"] is None
