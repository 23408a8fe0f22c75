"""Shared fixtures for planning pipeline tests."""

from types import MappingProxyType

import pytest

from planning.cell_store import InMemoryCellStore
from planning.config import COUNTRY_WAREHOUSE, EXPORT_MARKET, EXPORT_WAREHOUSE, MTO, MTS
from planning.errors import DataGapReport
from planning.lookups import CapacityClassifier, CountryResolver, FreightCostTable, PlanningLookups
from planning.models import DemandRecord, PipelineConfig, RawDemandRow
from sample_data import build_sample_grids

BATCH = "batch-test"


def create_raw_row(
    geography: str,
    market: str,
    sku: str,
    values: dict = None,
    pd_npd: str = "PD",
    origin: str = "Local",
    row_index: int = 3,
) -> RawDemandRow:
    """Helper to create a raw demand row with values keyed by period."""
    return RawDemandRow(
        row_index=row_index,
        geography=geography,
        market=market,
        pd_npd=pd_npd,
        origin=origin,
        sku=sku,
        values=dict(values or {}),
    )


def create_demand(
    country: str,
    sku: str,
    month: int,
    cases: float = 0.0,
    environment: str = None,
    inventory_days_norm: float = 0.0,
) -> DemandRecord:
    """Helper to create a classified demand record."""
    if country in COUNTRY_WAREHOUSE:
        market_class = country
        warehouse = COUNTRY_WAREHOUSE[country]
        environment = environment or MTS
    else:
        market_class = EXPORT_MARKET
        warehouse = EXPORT_WAREHOUSE
        environment = environment or MTO
    return DemandRecord(
        country=country,
        sku=sku,
        month=month,
        demand_cases=cases,
        market_class=market_class,
        production_environment=environment,
        safety_stock_warehouse=warehouse,
        inventory_days_norm=inventory_days_norm,
        upload_batch_id=BATCH,
    )


def create_cell_store(
    grids: dict = None,
    batch_id: str = BATCH,
    drop: tuple = (),
) -> InMemoryCellStore:
    """Helper to load sheet grids (sample grids by default) into a cell store."""
    grids = grids if grids is not None else build_sample_grids()
    store = InMemoryCellStore()
    for sheet, grid in grids.items():
        if sheet in drop:
            continue
        store.add_grid(batch_id, sheet, grid)
    return store


@pytest.fixture
def config():
    """Default PipelineConfig for tests."""
    return PipelineConfig()


@pytest.fixture
def gaps():
    return DataGapReport(batch_id=BATCH)


@pytest.fixture
def countries():
    return CountryResolver(
        {
            ("Saudi Arabia", "Domestic"): "KSA",
            ("Kuwait", "Domestic"): "Kuwait",
            ("UAE", "Domestic"): "UAE-FS",
            ("Oman", "Export"): "Oman",
        },
        {"KSA": "NFCM", "Kuwait": "KFCM", "UAE-FS": "GFCM"},
    )


@pytest.fixture
def capacity():
    """SKU-100 made at NFC and GFC, SKU-300 at KFC, SKU-200 nowhere."""
    return CapacityClassifier(
        environments={"SKU-100": "MTS", "SKU-300": "MTS", "SKU-400": "MTO"},
        inventory_days={("SKU-100", "MTS"): 15.0, ("SKU-300", "MTS"): 30.0},
        factories={"SKU-100": ("NFC", "GFC"), "SKU-300": ("KFC",)},
        opening_stock_days={"SKU-100": 10.0, "SKU-300": 0.0},
        weights={"SKU-100": 1.5, "SKU-300": 0.8},
    )


@pytest.fixture
def freight():
    return FreightCostTable({
        ("GFC", "KSA", "SKU-100"): 2.5,
        ("KFC", "KSA", "SKU-100"): 1.8,
        ("NFC", "UAE-FS", "SKU-100"): 2.5,
        ("GFC", "Oman", "SKU-400"): 3.0,
    })


@pytest.fixture
def lookups(countries, capacity, freight):
    return PlanningLookups(
        countries=countries,
        capacity=capacity,
        freight=freight,
        unit_storage_costs=MappingProxyType({"GFCM": 0.02, "KFCM": 0.015, "NFCM": 0.01, "X": 0.0}),
        opening_stock=MappingProxyType({("NFCM", "SKU-100"): 100.0}),
        max_supply=MappingProxyType({("NFCM", "SKU-100"): 35.0}),
    )
