"""
Unit tests for ImportService.

Run: pytest tests/unit/test_import_service.py -v
"""

from unittest.mock import patch

import pytest

from exceptions import ColumnMappingError
from models.catalog_import import ImportMode
from services.import_service import ImportService, default_config
from tests.factories import CatalogRowFactory
from tests.fakes import InMemoryBarcodePool


class TestDefaultConfig:
    """Tests for default_config()"""

    def test_seeded_from_settings(self):
        with patch("services.import_service.settings") as mock_settings:
            mock_settings.import_default_mode = "create_only"
            mock_settings.auto_generate_parents = False
            mock_settings.assign_barcodes = True
            mock_settings.barcode_type = "EAN13"

            config = default_config()

        assert config.mode == ImportMode.CREATE_ONLY
        assert config.auto_generate_parents is False

    def test_none_overrides_are_ignored(self):
        config = default_config(mode=ImportMode.UPDATE_EXISTING, assign_barcodes=None)

        assert config.mode == ImportMode.UPDATE_EXISTING
        assert config.assign_barcodes is True


class TestDryRun:
    """Tests for ImportService.dry_run()"""

    def test_dry_run_writes_nothing(self, catalog, pool, mapping, auto_config):
        service = ImportService(catalog, pool)

        plan = service.dry_run(CatalogRowFactory.create_sized("001", ["S", "M"]), mapping, auto_config)

        assert plan.counts.variants_to_create == 2
        assert catalog.products == {}
        assert pool.count_available("EAN13") == 50

    def test_short_pool_is_a_warning(self, catalog, mapping, auto_config):
        """The preview still succeeds; the shortfall shows up as a warning."""
        service = ImportService(catalog, InMemoryBarcodePool.with_codes(1))

        plan = service.dry_run(CatalogRowFactory.create_sized("001", ["S", "M", "L"]), mapping, auto_config)

        assert plan.barcodes_required == 3
        assert any("1 EAN13 codes available, 3 required" in w for w in plan.warnings)

    def test_dry_run_matches_real_run(self, catalog, pool, mapping, auto_config):
        rows = [
            *CatalogRowFactory.create_sized("001", ["S", "M"]),
            CatalogRowFactory.create(name="Desk Lamp", sku="LMP-1"),
        ]
        service = ImportService(catalog, pool)

        preview = service.dry_run(rows, mapping, auto_config)
        result = service.run(rows, mapping, auto_config)

        assert result.counts == preview.counts


class TestRun:
    """Tests for ImportService.run()"""

    def test_full_progress_sequence(self, catalog, pool, sink, mapping, auto_config):
        """Events arrive in checkpoint order from reading_file to completed."""
        # Arrange
        service = ImportService(catalog, pool)
        rows = CatalogRowFactory.create_sized("001", ["S", "M"])

        # Act
        result = service.run(rows, mapping, auto_config, import_id="imp-1", progress_sink=sink)

        # Assert
        assert result.import_id == "imp-1"
        assert sink.statuses == [
            "reading_file",
            "validating",
            "resolving_parents",
            "matching",
            "creating",
            "completed",
        ]

    def test_bad_mapping_reports_error_and_raises(self, catalog, pool, sink, mapping, auto_config, tmp_path):
        upload = tmp_path / "catalog.xlsx"
        upload.write_bytes(b"stub")
        mapping["product_name"] = None
        service = ImportService(catalog, pool)

        with pytest.raises(ColumnMappingError):
            service.run(
                CatalogRowFactory.create_sized("001", ["S"]),
                mapping,
                auto_config,
                source_file=upload,
                progress_sink=sink,
            )

        assert sink.statuses == ["reading_file", "error"]
        assert not upload.exists()
        assert catalog.transactions == 0

    def test_second_run_updates_instead_of_creating(self, catalog, pool, mapping, auto_config):
        """Re-importing the same file is idempotent apart from updates."""
        rows = CatalogRowFactory.create_sized("001", ["S", "M"])
        service = ImportService(catalog, pool)

        service.run(rows, mapping, auto_config)
        second = service.run(rows, mapping, auto_config)

        assert second.counts.products_to_update == 1
        assert second.counts.variants_to_update == 2
        assert second.stats["barcodes_assigned"] == 0
        assert len(catalog.products) == 1
        assert len(catalog.variants) == 2
