"""
API tests: preview -> confirm -> progress, mapping cache and pool endpoints.

Run: pytest tests/test_import_api.py -v
"""

import json
from pathlib import Path

from tests.factories import CATALOG_HEADERS, CATALOG_MAPPING, CatalogRowFactory


def catalog_csv(rows: list[list[str]]) -> bytes:
    lines = [",".join(CATALOG_HEADERS)] + [",".join(row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


def post_preview(client, rows, **form):
    return client.post(
        "/api/imports/preview",
        files={"file": ("catalog.csv", catalog_csv(rows), "text/csv")},
        data=form,
    )


class TestPreview:
    """POST /api/imports/preview"""

    def test_preview_returns_plan_and_writes_nothing(self, test_client, catalog):
        response = post_preview(test_client, CatalogRowFactory.create_sized("001", ["S", "M", "L"]))

        assert response.status_code == 200
        body = response.json()
        assert body["preview_id"]
        assert body["mapping"] == CATALOG_MAPPING
        assert body["plan"]["products_to_create"] == 1
        assert body["plan"]["variants_to_create"] == 3
        assert body["plan"]["barcodes_required"] == 3
        assert [r["action"] for r in body["rows"]] == ["create", "create", "create"]
        assert catalog.products == {}

    def test_explicit_mapping_and_mode(self, test_client, catalog):
        product = catalog.add_product("Classic Tee", parent_sku="001")
        catalog.add_variant(product.id, "001-001")

        response = post_preview(
            test_client,
            CatalogRowFactory.create_sized("001", ["S", "M"]),
            mapping=json.dumps(CATALOG_MAPPING),
            mode="create_only",
        )

        body = response.json()
        assert body["config"]["mode"] == "create_only"
        assert body["plan"]["variants_to_skip"] == 1
        assert body["plan"]["variants_to_create"] == 1

    def test_invalid_mapping_json(self, test_client):
        response = post_preview(test_client, [CatalogRowFactory.create()], mapping="{not json")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "COLUMN_MAPPING_ERROR"

    def test_unsupported_file(self, test_client):
        response = test_client.post(
            "/api/imports/preview",
            files={"file": ("catalog.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "IMPORT_FILE_ERROR"


class TestConfirm:
    """POST /api/imports/{preview_id}/confirm"""

    def test_confirm_executes_previewed_import(self, test_client, catalog, pool, tmp_path):
        """The confirmed run matches the preview and cleans up the upload."""
        # Arrange
        preview = post_preview(test_client, CatalogRowFactory.create_sized("001", ["S", "M"])).json()

        # Act
        response = test_client.post(f"/api/imports/{preview['preview_id']}/confirm")

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["plan_drift"] is False
        assert body["counts"]["variants_to_create"] == 2
        assert body["stats"]["barcodes_assigned"] == 2
        assert len(catalog.variants) == 2
        assert pool.count_available("EAN13") == 48
        assert list(Path(tmp_path / "uploads").iterdir()) == []

    def test_preview_can_only_be_confirmed_once(self, test_client):
        preview = post_preview(test_client, CatalogRowFactory.create_sized("001", ["S"])).json()
        test_client.post(f"/api/imports/{preview['preview_id']}/confirm")

        response = test_client.post(f"/api/imports/{preview['preview_id']}/confirm")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "IMPORT_PREVIEW_NOT_FOUND"

    def test_catalog_change_reports_plan_drift(self, test_client, catalog):
        preview = post_preview(test_client, CatalogRowFactory.create_sized("001", ["S"])).json()
        catalog.add_product("Classic Tee", parent_sku="001")

        body = test_client.post(f"/api/imports/{preview['preview_id']}/confirm").json()

        assert body["plan_drift"] is True
        assert body["counts"]["products_to_update"] == 1

    def test_short_pool_is_conflict(self, test_client, pool):
        for entry in pool.entries[:49]:
            entry.status = "assigned"
        preview = post_preview(test_client, CatalogRowFactory.create_sized("001", ["S", "M"])).json()
        assert any("required" in w for w in preview["plan"]["warnings"])

        response = test_client.post(f"/api/imports/{preview['preview_id']}/confirm")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INSUFFICIENT_BARCODE_POOL"


class TestProgress:
    """GET /api/imports/{import_id}/progress"""

    def test_progress_after_confirm(self, test_client):
        preview = post_preview(test_client, CatalogRowFactory.create_sized("001", ["S"])).json()
        result = test_client.post(f"/api/imports/{preview['preview_id']}/confirm").json()

        response = test_client.get(f"/api/imports/{result['import_id']}/progress")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert [e["status"] for e in body["events"]] == [
            "reading_file",
            "validating",
            "resolving_parents",
            "matching",
            "creating",
            "completed",
        ]

    def test_unknown_import(self, test_client):
        response = test_client.get("/api/imports/nope/progress")

        assert response.status_code == 404


class TestMappingEndpoints:
    """GET/PUT /api/imports/mapping/{import_type}"""

    def test_save_and_load(self, test_client):
        saved = test_client.put(
            "/api/imports/mapping/catalog",
            json={"mapping": CATALOG_MAPPING, "user_id": "alice"},
        )
        loaded = test_client.get("/api/imports/mapping/catalog", params={"user_id": "alice"})

        assert saved.status_code == 200
        assert loaded.json()["mapping"] == CATALOG_MAPPING

    def test_save_rejects_incomplete_mapping(self, test_client):
        response = test_client.put("/api/imports/mapping/catalog", json={"mapping": {"product_name": 0}})

        assert response.status_code == 422

    def test_saved_mapping_used_by_preview(self, test_client):
        """A remembered mapping wins over header guessing."""
        swapped = {"product_name": 1, "variant_sku": 0}
        test_client.put("/api/imports/mapping/catalog", json={"mapping": swapped})

        body = post_preview(test_client, [["LMP-1", "Desk Lamp", "", "", "", "", "", ""]]).json()

        assert body["mapping"] == swapped
        assert body["rows"][0]["sku"] == "LMP-1"


class TestPoolEndpoints:
    """GET /api/barcodes/pool/*"""

    def test_stats(self, test_client):
        body = test_client.get("/api/barcodes/pool/stats").json()

        assert body["total"] == 50
        assert body["available"] == 50

    def test_health_below_low_water_mark(self, test_client):
        body = test_client.get("/api/barcodes/pool/health").json()

        assert body["is_healthy"] is False
        assert body["available_count"] == 50
