"""Tests for SupplyExpander (stage 2)."""

from dataclasses import replace

import pytest

from planning.config import UNLIMITED_QTY, WAREHOUSES
from planning.errors import DataGapReport
from planning.lookups import FreightCostTable
from planning.models import PipelineConfig
from planning.supply import SupplyExpander
from tests.conftest import BATCH, create_demand


def by_warehouse(records):
    return {r.warehouse: r for r in records}


class TestExpansion:
    def test_four_candidates_per_demand_in_fixed_order(self, lookups, gaps):
        demand = [
            create_demand("KSA", "SKU-100", 5, 50),
            create_demand("Oman", "SKU-400", 5, 10),
        ]

        records = SupplyExpander(gaps=gaps).expand(demand, lookups, BATCH)

        assert len(records) == 4 * len(demand)
        assert [r.warehouse for r in records] == WAREHOUSES * 2
        assert [r.demand_key for r in records[:4]] == [("KSA", "SKU-100", 5)] * 4

    def test_empty_demand(self, lookups):
        assert SupplyExpander().expand([], lookups) == []

    def test_fields_copied_from_demand_and_lookups(self, lookups, gaps):
        records = SupplyExpander(gaps=gaps).expand([create_demand("KSA", "SKU-100", 5, 50)], lookups, BATCH)

        for record in records:
            assert record.market == "KSA"
            assert record.default_warehouse_restriction == "NFCM"
            assert record.weight_per_unit == 1.5
            assert record.qty == 0
            assert record.wt == 0
            assert record.position_ok
            assert record.upload_batch_id == BATCH

    def test_export_country_has_no_restriction(self, lookups, gaps):
        records = SupplyExpander(gaps=gaps).expand([create_demand("Oman", "SKU-400", 5, 10)], lookups)

        assert all(r.default_warehouse_restriction == "NA" for r in records)
        assert all(r.market == "Others" for r in records)


class TestMaxQty:
    def test_home_warehouse_and_placeholder_unlimited(self, lookups, gaps):
        records = by_warehouse(
            SupplyExpander(gaps=gaps).expand([create_demand("KSA", "SKU-100", 5, 50)], lookups)
        )

        assert records["NFCM"].max_qty == UNLIMITED_QTY
        assert records["X"].max_qty == UNLIMITED_QTY
        assert records["GFCM"].max_qty == 0
        assert records["KFCM"].max_qty == 0

    def test_export_country_only_placeholder(self, lookups, gaps):
        records = by_warehouse(
            SupplyExpander(gaps=gaps).expand([create_demand("Oman", "SKU-400", 5, 10)], lookups)
        )

        assert records["X"].max_qty == UNLIMITED_QTY
        assert all(records[wh].max_qty == 0 for wh in ["GFCM", "KFCM", "NFCM"])


class TestTransportCost:
    def test_cost_from_colocated_factory(self, lookups, gaps):
        """GFCM ships from GFC, KFCM from KFC."""
        records = by_warehouse(
            SupplyExpander(gaps=gaps).expand([create_demand("KSA", "SKU-100", 5, 50)], lookups)
        )

        assert records["GFCM"].transport_cost_per_case == 2.5
        assert records["KFCM"].transport_cost_per_case == 1.8
        assert records["X"].transport_cost_per_case == 0

    def test_home_warehouse_is_free_without_gap(self, lookups, gaps):
        """NFCM is in KSA, so NFCM -> KSA needs no freight rate."""
        records = by_warehouse(
            SupplyExpander(gaps=gaps).expand([create_demand("KSA", "SKU-100", 5, 50)], lookups)
        )

        assert records["NFCM"].transport_cost_per_case == 0
        assert len(gaps) == 0

    def test_home_warehouse_lanes_pass_strict_mode(self, lookups):
        strict = DataGapReport(BATCH, strict=True)
        demand = [create_demand(country, "SKU-100", 5, 10) for country in ("KSA", "UAE-FS")]
        lookups = replace(lookups, freight=FreightCostTable({
            ("GFC", "KSA", "SKU-100"): 2.5,
            ("KFC", "KSA", "SKU-100"): 1.8,
            ("KFC", "UAE-FS", "SKU-100"): 2.0,
            ("NFC", "UAE-FS", "SKU-100"): 2.5,
        }))

        records = SupplyExpander(gaps=strict).expand(demand, lookups, BATCH)

        assert len(records) == 8
        assert len(strict) == 0

    def test_missing_rate_is_zero_with_one_gap_per_lane(self, lookups, gaps):
        demand = [create_demand("UAE-FS", "SKU-100", m, 10) for m in (5, 6, 7)]

        records = SupplyExpander(gaps=gaps).expand(demand, lookups)

        assert all(r.transport_cost_per_case == 0 for r in records if r.warehouse == "KFCM")
        assert all(r.transport_cost_per_case == 2.5 for r in records if r.warehouse == "NFCM")
        assert gaps.keys("supply") == [("KFC", "UAE-FS", "SKU-100")]

    def test_fallback_uses_destination_average(self, lookups, gaps):
        expander = SupplyExpander(PipelineConfig(freight_fallback=True), gaps)

        records = by_warehouse(expander.expand([create_demand("UAE-FS", "SKU-100", 5, 50)], lookups))

        assert records["KFCM"].transport_cost_per_case == pytest.approx(2.5)
        assert len(gaps) == 1


class TestQuantityEdits:
    def test_set_quantity_recomputes_weight_cost_and_flags(self, lookups, gaps):
        records = by_warehouse(
            SupplyExpander(gaps=gaps).expand([create_demand("KSA", "SKU-100", 5, 50)], lookups)
        )
        record = records["GFCM"]

        record.set_quantity(10)

        assert record.wt == 15
        assert record.row_cost == 25
        assert record.position_ok
        assert not record.qty_within_max

    def test_negative_quantity_flagged(self, lookups, gaps):
        record = SupplyExpander(gaps=gaps).expand([create_demand("KSA", "SKU-100", 5, 50)], lookups)[3]

        record.set_quantity(-1)

        assert not record.position_ok
        assert record.qty_within_max
