"""Tests for lookup tables built from the reference sheets."""

import dataclasses

import pytest

from planning.cell_store import InMemoryCellStore, load_sheet
from planning.config import (
    CAPACITY_SHEET,
    COUNTRY_MASTER_SHEET,
    DEFAULT_UNIT_STORAGE_COST,
    FREIGHT_SHEET,
    ITEM_MASTER_SHEET,
    UNLIMITED_QTY,
)
from planning.errors import DataGapReport, FatalBatchError
from planning.lookups import (
    CapacityClassifier,
    CountryResolver,
    FreightCostTable,
    build_lookups,
    planning_months,
)
from sample_data import build_sample_grids, country_master_grid
from tests.conftest import BATCH, create_cell_store


class TestPlanningMonths:
    def test_horizon_starts_at_period_five(self):
        months = planning_months()

        assert len(months) == 12
        assert months["Jun 2025"] == 5
        assert months["Dec 2025"] == 11
        assert months["Jan 2026"] == 12
        assert months["May 2026"] == 16

    def test_months_outside_horizon_are_absent(self):
        months = planning_months()

        assert "May 2025" not in months
        assert "Jun 2026" not in months


class TestCountryResolver:
    def _resolver(self, grid, gaps=None):
        store = InMemoryCellStore()
        store.add_grid(BATCH, COUNTRY_MASTER_SHEET.name, grid)
        return CountryResolver.from_frame(load_sheet(store, BATCH, COUNTRY_MASTER_SHEET), gaps=gaps)

    def test_resolves_name_and_market(self):
        resolver = self._resolver(country_master_grid())

        assert resolver.resolve("Saudi Arabia", "Domestic") == "KSA"
        assert resolver.resolve("Oman", "Export") == "Oman"

    def test_uae_fs_code_is_normalized(self):
        """Country master spells UAE FS with a space; records use UAE-FS."""
        resolver = self._resolver(country_master_grid())

        assert resolver.resolve("UAE", "Domestic") == "UAE-FS"
        assert resolver.default_warehouse("UAE-FS") == "GFCM"

    def test_lookup_is_trimmed(self):
        resolver = self._resolver(country_master_grid())

        assert resolver.resolve("  Kuwait ", "Domestic ") == "Kuwait"

    def test_unknown_pair_is_none(self):
        resolver = self._resolver(country_master_grid())

        assert resolver.resolve("Oman", "Domestic") is None
        assert resolver.default_warehouse("Qatar") == "NA"

    def test_conflicting_mapping_keeps_first_and_records_gap(self):
        grid = country_master_grid() + [["Oman-2", "Export", "Oman", "NA"]]
        gaps = DataGapReport(batch_id=BATCH)

        resolver = self._resolver(grid, gaps)

        assert resolver.resolve("Oman", "Export") == "Oman"
        assert gaps.keys("lookups") == [("Oman", "Export")]


class TestCapacityClassifier:
    @pytest.fixture
    def classifier(self):
        store = create_cell_store()
        return CapacityClassifier.from_frames(
            load_sheet(store, BATCH, ITEM_MASTER_SHEET),
            load_sheet(store, BATCH, CAPACITY_SHEET),
        )

    def test_factories_with_capacity_in_sheet_order(self, classifier):
        assert classifier.factories_for("SKU-100") == ("NFC", "GFC")
        assert classifier.has_capacity("SKU-300")

    def test_sku_without_capacity_row(self, classifier):
        """SKU-200 is in the item master but on no capacity row."""
        assert not classifier.has_capacity("SKU-200")
        assert classifier.factories_for("SKU-200") == ()

    def test_zero_capacity_row_still_counts(self):
        """An entry is what matters, not the capacity value."""
        grid = [
            ["Factory", "FGSKU Code", "Capacity"],
            ["KFC", "SKU-200", 0],
            ["NFC", "SKU-200", None],
            ["", "SKU-500", 100],
        ]
        store = InMemoryCellStore()
        store.add_grid(BATCH, CAPACITY_SHEET.name, grid)
        store.add_grid(BATCH, ITEM_MASTER_SHEET.name, build_sample_grids()["Item master"])

        classifier = CapacityClassifier.from_frames(
            load_sheet(store, BATCH, ITEM_MASTER_SHEET),
            load_sheet(store, BATCH, CAPACITY_SHEET),
        )

        assert classifier.factories_for("SKU-200") == ("KFC", "NFC")
        assert not classifier.has_capacity("SKU-500")

    def test_item_master_fields(self, classifier):
        assert classifier.production_environment("SKU-400") == "MTO"
        assert classifier.inventory_days_norm("SKU-100", "MTS") == 15.0
        assert classifier.opening_stock_days("SKU-300") == 5.0
        assert classifier.weight_per_unit("SKU-100") == 1.5

    def test_unknown_sku_defaults(self, classifier):
        assert classifier.production_environment("SKU-999") == "MTS"
        assert classifier.inventory_days_norm("SKU-999", "MTS") == 0.0
        assert classifier.weight_per_unit("SKU-999") == 0.0


class TestFreightCostTable:
    @pytest.fixture
    def table(self):
        return FreightCostTable({
            ("GFC", "KSA", "A"): 2.0,
            ("GFC", "KSA", "B"): 4.0,
            ("KFC", "KSA", "A"): 6.0,
            ("KFC", "Oman", "A"): 10.0,
        })

    def test_rate_is_freight_over_load(self):
        store = create_cell_store()
        table = FreightCostTable.from_frame(load_sheet(store, BATCH, FREIGHT_SHEET))

        assert table.lookup("GFC", "KSA", "SKU-100") == pytest.approx(2.5)
        assert table.lookup("KFC", "Kuwait", "SKU-300") == pytest.approx(0.5)

    def test_destination_aliases(self):
        """Saudi Arabia -> KSA, UAE FS -> UAE-FS on the freight sheet."""
        store = create_cell_store()
        table = FreightCostTable.from_frame(load_sheet(store, BATCH, FREIGHT_SHEET))

        assert table.lookup("NFC", "UAE-FS", "SKU-100") == pytest.approx(2.5)
        assert table.lookup("GFC", "Saudi Arabia", "SKU-100") is None

    def test_missing_truck_load_is_skipped(self):
        store = create_cell_store()
        table = FreightCostTable.from_frame(load_sheet(store, BATCH, FREIGHT_SHEET))

        assert table.lookup("NFC", "Oman", "SKU-400") is None
        assert len(table) == 6

    def test_fallback_tiers(self, table):
        # origin -> destination average
        assert table.fallback_rate("GFC", "KSA") == pytest.approx(3.0)
        # destination average
        assert table.fallback_rate("NFC", "KSA") == pytest.approx(4.0)
        # maximum destination average
        assert table.fallback_rate("NFC", "Qatar") == pytest.approx(10.0)

    def test_miss_defaults_to_zero_with_gap(self, table):
        gaps = DataGapReport(batch_id=BATCH)

        rate = table.rate_or_default("NFC", "KSA", "A", gaps, stage="supply")

        assert rate == 0.0
        assert gaps.keys("supply") == [("NFC", "KSA", "A")]

    def test_miss_with_fallback_still_records_gap(self, table):
        gaps = DataGapReport(batch_id=BATCH)

        rate = table.rate_or_default("GFC", "KSA", "C", gaps, stage="supply", use_fallback=True)

        assert rate == pytest.approx(3.0)
        assert len(gaps) == 1

    def test_hit_records_no_gap(self, table):
        gaps = DataGapReport(batch_id=BATCH)

        assert table.rate_or_default("GFC", "KSA", "A", gaps, stage="supply") == 2.0
        assert len(gaps) == 0

    def test_strict_policy_escalates_miss(self, table):
        gaps = DataGapReport(batch_id=BATCH, strict=True)

        with pytest.raises(FatalBatchError) as exc_info:
            table.rate_or_default("NFC", "KSA", "A", gaps, stage="distribution")

        assert exc_info.value.stage == "distribution"
        assert exc_info.value.key == ("NFC", "KSA", "A")


class TestBuildLookups:
    def test_optional_tables(self):
        lookups = build_lookups(create_cell_store(), BATCH)

        assert lookups.unit_storage_cost("GFCM") == pytest.approx(0.02)
        assert lookups.seed("NFCM", "SKU-100") == 100.0
        assert lookups.seed("GFCM", "SKU-100") == 0.0
        assert lookups.supply_limit("KFCM", "SKU-300") == 15.0
        assert lookups.supply_limit("GFCM", "SKU-100") == UNLIMITED_QTY

    def test_custom_cost_table(self):
        lookups = build_lookups(create_cell_store(), BATCH)

        assert len(lookups.customs) == 1
        # (10 + 0 + 2) x 1.1 x 0.055
        assert lookups.customs.cost_per_unit("GFC", "SKU-100", 0.0) == pytest.approx(0.726)
        assert lookups.customs.cost_per_unit("KFC", "SKU-100", 0.0) == 0.0

    def test_periods_cover_horizon(self):
        lookups = build_lookups(create_cell_store(), BATCH)

        assert lookups.periods == list(range(5, 17))

    def test_missing_optional_sheets_use_defaults(self):
        store = create_cell_store(drop=("Storage costs", "Opening stock", "Max supply", "Custom cost"))

        lookups = build_lookups(store, BATCH)

        assert lookups.unit_storage_cost("GFCM") == DEFAULT_UNIT_STORAGE_COST
        assert lookups.seed("NFCM", "SKU-100") == 0.0
        assert lookups.supply_limit("KFCM", "SKU-300") == UNLIMITED_QTY
        assert len(lookups.customs) == 0

    def test_missing_required_sheet_is_fatal(self):
        store = create_cell_store(drop=("Capacity",))

        with pytest.raises(FatalBatchError) as exc_info:
            build_lookups(store, BATCH)

        assert exc_info.value.stage == "lookups"
        assert "Capacity" in str(exc_info.value)

    def test_too_few_columns_is_fatal(self):
        grids = build_sample_grids()
        grids["FreightRawData"] = [["a", "b"], ["c", "d"]]
        store = create_cell_store(grids)

        with pytest.raises(FatalBatchError):
            build_lookups(store, BATCH)

    def test_lookups_are_immutable(self):
        lookups = build_lookups(create_cell_store(), BATCH)

        with pytest.raises(dataclasses.FrozenInstanceError):
            lookups.freight = None
        with pytest.raises(TypeError):
            lookups.opening_stock[("GFCM", "SKU-100")] = 1.0
