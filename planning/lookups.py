"""Lookup tables built once at pipeline entry.

Every table is read-only after construction and is passed explicitly to the
stages that need it. Keys are tuples of natural keys, never joined strings.
"""

import calendar
import logging
from dataclasses import dataclass, field
from statistics import mean
from types import MappingProxyType
from typing import Mapping, Optional

import pandas as pd

from .cell_store import CellStore, data_rows, load_sheet
from .config import (
    CAPACITY_SHEET,
    COUNTRY_MASTER_SHEET,
    CUSTOM_COST_SHEET,
    CUSTOMS_COUNTRY,
    CUSTOMS_FACTORIES,
    CUSTOMS_WAREHOUSE,
    DEFAULT_CUSTOMS_DUTY,
    DEFAULT_CUSTOMS_MARKUP,
    DEFAULT_HOME_ENVIRONMENT,
    DEFAULT_UNIT_STORAGE_COST,
    FIRST_PERIOD,
    FREIGHT_SHEET,
    HORIZON_LENGTH,
    HORIZON_START_MONTH,
    HORIZON_START_YEAR,
    ITEM_MASTER_SHEET,
    MAX_SUPPLY_SHEET,
    OPENING_STOCK_SHEET,
    STORAGE_COST_SHEET,
    UNLIMITED_QTY,
    WAREHOUSES,
    SheetLayout,
)
from .errors import DataGapReport
from .models import clean_text, normalize_country, to_number

logger = logging.getLogger(__name__)


def planning_months(
    start_year: int = HORIZON_START_YEAR,
    start_month: int = HORIZON_START_MONTH,
    first_period: int = FIRST_PERIOD,
    length: int = HORIZON_LENGTH,
) -> dict[str, int]:
    """Map month header text onto planning periods.

    Example (defaults): "Jun 2025" -> 5, "Dec 2025" -> 11, "May 2026" -> 16
    """
    result = {}
    year, month = start_year, start_month
    for offset in range(length):
        result[f"{calendar.month_abbr[month]} {year}"] = first_period + offset
        month += 1
        if month > 12:
            month = 1
            year += 1
    return result


def _cell(row: pd.Series, layout: SheetLayout, name: str):
    return row.get(layout.columns[name])


class CountryResolver:
    """Maps (raw country name, market) to a country code."""

    def __init__(
        self,
        mapping: Mapping[tuple[str, str], str],
        default_warehouses: Optional[Mapping[str, str]] = None,
    ):
        self._mapping = MappingProxyType(dict(mapping))
        self._default_warehouses = MappingProxyType(dict(default_warehouses or {}))

    def resolve(self, geography: str, market: str) -> Optional[str]:
        return self._mapping.get((clean_text(geography), clean_text(market)))

    def default_warehouse(self, country: str) -> str:
        return self._default_warehouses.get(country, "NA")

    @property
    def countries(self) -> list[str]:
        return sorted(set(self._mapping.values()))

    def __len__(self) -> int:
        return len(self._mapping)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        layout: SheetLayout = COUNTRY_MASTER_SHEET,
        gaps: Optional[DataGapReport] = None,
    ) -> "CountryResolver":
        mapping: dict[tuple[str, str], str] = {}
        default_warehouses: dict[str, str] = {}

        for row_index, row in data_rows(frame, layout).iterrows():
            raw_name = clean_text(_cell(row, layout, "country_name_raw"))
            market = clean_text(_cell(row, layout, "market"))
            code = normalize_country(_cell(row, layout, "country_code"))
            if not raw_name or not market or not code:
                continue

            key = (raw_name, market)
            if key in mapping and mapping[key] != code:
                # Raw name + market must be unique; keep the first mapping
                if gaps is not None:
                    gaps.record(
                        "lookups", key,
                        f"Conflicting country mapping {mapping[key]!r} vs {code!r} (row {row_index})",
                    )
                continue
            mapping[key] = code

            default_wh = clean_text(_cell(row, layout, "default_warehouse"))
            if default_wh and code not in default_warehouses:
                default_warehouses[code] = default_wh

        logger.info("Country mapping: %d entries", len(mapping))
        return cls(mapping, default_warehouses)


class CapacityClassifier:
    """Item master and factory capacity lookups per SKU."""

    def __init__(
        self,
        environments: Mapping[str, str],
        inventory_days: Mapping[tuple[str, str], float],
        factories: Mapping[str, tuple[str, ...]],
        opening_stock_days: Optional[Mapping[str, float]] = None,
        weights: Optional[Mapping[str, float]] = None,
    ):
        self._environments = MappingProxyType(dict(environments))
        self._inventory_days = MappingProxyType(dict(inventory_days))
        self._factories = MappingProxyType({k: tuple(v) for k, v in factories.items()})
        self._opening_stock_days = MappingProxyType(dict(opening_stock_days or {}))
        self._weights = MappingProxyType(dict(weights or {}))

    def production_environment(self, sku: str, default: str = DEFAULT_HOME_ENVIRONMENT) -> str:
        return self._environments.get(sku, default)

    def inventory_days_norm(self, sku: str, environment: str) -> float:
        return self._inventory_days.get((sku, environment), 0.0)

    def factories_for(self, sku: str) -> tuple[str, ...]:
        """Factories with a capacity entry for the SKU, in sheet order."""
        return self._factories.get(sku, ())

    def has_capacity(self, sku: str) -> bool:
        return len(self.factories_for(sku)) > 0

    def opening_stock_days(self, sku: str) -> float:
        return self._opening_stock_days.get(sku, 0.0)

    def weight_per_unit(self, sku: str) -> float:
        return self._weights.get(sku, 0.0)

    @classmethod
    def from_frames(
        cls,
        item_master: pd.DataFrame,
        capacity: pd.DataFrame,
        item_layout: SheetLayout = ITEM_MASTER_SHEET,
        capacity_layout: SheetLayout = CAPACITY_SHEET,
    ) -> "CapacityClassifier":
        environments: dict[str, str] = {}
        inventory_days: dict[tuple[str, str], float] = {}
        opening_stock_days: dict[str, float] = {}
        weights: dict[str, float] = {}

        for _, row in data_rows(item_master, item_layout).iterrows():
            sku = clean_text(_cell(row, item_layout, "sku"))
            if not sku:
                continue
            environment = clean_text(_cell(row, item_layout, "production_environment")).upper()
            if environment and sku not in environments:
                environments[sku] = environment
            if environment:
                inventory_days[(sku, environment)] = to_number(
                    _cell(row, item_layout, "inventory_days_norm")
                )
            opening_stock_days[sku] = to_number(_cell(row, item_layout, "opening_stock_days"))
            weights[sku] = to_number(_cell(row, item_layout, "weight_per_unit"))

        factories: dict[str, list[str]] = {}
        for _, row in data_rows(capacity, capacity_layout).iterrows():
            sku = clean_text(_cell(row, capacity_layout, "sku"))
            factory = clean_text(_cell(row, capacity_layout, "factory"))
            if not sku or not factory:
                continue
            if factory not in factories.setdefault(sku, []):
                factories[sku].append(factory)

        logger.info(
            "Item master: %d SKUs, capacity: %d SKUs with at least one factory",
            len(environments), len(factories),
        )
        return cls(
            environments,
            inventory_days,
            {sku: tuple(fs) for sku, fs in factories.items()},
            opening_stock_days,
            weights,
        )


class FreightCostTable:
    """Freight cost per case keyed by (factory, country, sku).

    Fallback tiers, used only when enabled by the caller:
    1. average over the factory -> country lane
    2. average over the destination country
    3. maximum of all destination averages
    """

    def __init__(self, rates: Mapping[tuple[str, str, str], float]):
        self._rates = MappingProxyType(dict(rates))

        lane_costs: dict[tuple[str, str], list[float]] = {}
        destination_costs: dict[str, list[float]] = {}
        for (factory, country, _), rate in self._rates.items():
            lane_costs.setdefault((factory, country), []).append(rate)
            destination_costs.setdefault(country, []).append(rate)

        self._lane_avg = MappingProxyType({k: mean(v) for k, v in lane_costs.items()})
        self._destination_avg = MappingProxyType(
            {k: mean(v) for k, v in destination_costs.items()}
        )
        self._max_destination_avg = max(self._destination_avg.values(), default=0.0)

    def lookup(self, factory: str, country: str, sku: str) -> Optional[float]:
        return self._rates.get((factory, country, sku))

    def fallback_rate(self, factory: str, country: str) -> float:
        if (factory, country) in self._lane_avg:
            return self._lane_avg[(factory, country)]
        if country in self._destination_avg:
            return self._destination_avg[country]
        return self._max_destination_avg

    def rate_or_default(
        self,
        factory: str,
        country: str,
        sku: str,
        gaps: DataGapReport,
        stage: str,
        use_fallback: bool = False,
    ) -> float:
        """Exact rate, or a logged data gap and 0 (or the fallback tier)."""
        rate = self.lookup(factory, country, sku)
        if rate is not None:
            return rate
        if use_fallback:
            rate = self.fallback_rate(factory, country)
            gaps.record(stage, (factory, country, sku), f"No freight rate, using fallback {rate:.4f}")
            return rate
        gaps.record(stage, (factory, country, sku), "No freight rate, defaulting cost to 0")
        return 0.0

    def __len__(self) -> int:
        return len(self._rates)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        layout: SheetLayout = FREIGHT_SHEET,
    ) -> "FreightCostTable":
        """Cost per case = truck freight / truck load; invalid rows are skipped."""
        rates: dict[tuple[str, str, str], float] = {}
        skipped = 0

        for _, row in data_rows(frame, layout).iterrows():
            sku = clean_text(_cell(row, layout, "sku"))
            factory = clean_text(_cell(row, layout, "origin"))
            country = normalize_country(_cell(row, layout, "destination"))
            load = to_number(_cell(row, layout, "truck_load"))
            freight = to_number(_cell(row, layout, "truck_freight"))

            if not sku or not factory or not country or load <= 0 or freight <= 0:
                skipped += 1
                continue
            rates[(factory, country, sku)] = freight / load

        logger.info("Freight rates: %d lanes (%d rows skipped)", len(rates), skipped)
        return cls(rates)


class CustomCostTable:
    """Custom duty per case on imports, keyed by (factory, sku).

    duty = (rm_price + freight + factory_overhead) x (1 + markup) x duty rate,
    rounded to 4 decimals. Missing components count as 0.
    """

    def __init__(
        self,
        components: Mapping[tuple[str, str], tuple[float, float]],
        markup: float = DEFAULT_CUSTOMS_MARKUP,
        duty_rate: float = DEFAULT_CUSTOMS_DUTY,
    ):
        self._components = MappingProxyType(dict(components))
        self.markup = markup
        self.duty_rate = duty_rate

    @staticmethod
    def applies(warehouse: str, factory: str, country: str) -> bool:
        return (
            warehouse == CUSTOMS_WAREHOUSE
            and country == CUSTOMS_COUNTRY
            and factory in CUSTOMS_FACTORIES
        )

    def cost_per_unit(self, factory: str, sku: str, freight_cost: float) -> float:
        rm_price, overhead = self._components.get((factory, sku), (0.0, 0.0))
        duty = (rm_price + freight_cost + overhead) * (1 + self.markup) * self.duty_rate
        return round(duty, 4)

    def __len__(self) -> int:
        return len(self._components)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        layout: SheetLayout = CUSTOM_COST_SHEET,
    ) -> "CustomCostTable":
        components: dict[tuple[str, str], tuple[float, float]] = {}
        for _, row in data_rows(frame, layout).iterrows():
            factory = clean_text(_cell(row, layout, "factory"))
            sku = clean_text(_cell(row, layout, "sku"))
            if not factory or not sku or (factory, sku) in components:
                continue
            components[(factory, sku)] = (
                to_number(_cell(row, layout, "rm_price")),
                to_number(_cell(row, layout, "factory_overhead")),
            )

        logger.info("Custom cost: %d factory/SKU entries", len(components))
        return cls(components)


def _keyed_values(
    frame: pd.DataFrame,
    layout: SheetLayout,
    key_fields: list[str],
    value_field: str,
) -> dict:
    result = {}
    for _, row in data_rows(frame, layout).iterrows():
        key = tuple(clean_text(_cell(row, layout, name)) for name in key_fields)
        if not all(key):
            continue
        result[key if len(key) > 1 else key[0]] = to_number(_cell(row, layout, value_field))
    return result


@dataclass(frozen=True)
class PlanningLookups:
    """All lookup collaborators for one run."""
    countries: CountryResolver
    capacity: CapacityClassifier
    freight: FreightCostTable
    customs: CustomCostTable = field(default_factory=lambda: CustomCostTable({}))
    month_periods: Mapping[str, int] = field(default_factory=lambda: MappingProxyType(planning_months()))
    unit_storage_costs: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    opening_stock: Mapping[tuple[str, str], float] = field(default_factory=lambda: MappingProxyType({}))
    max_supply: Mapping[tuple[str, str], float] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def periods(self) -> list[int]:
        return sorted(self.month_periods.values())

    def unit_storage_cost(self, warehouse: str) -> float:
        return self.unit_storage_costs.get(warehouse, DEFAULT_UNIT_STORAGE_COST)

    def seed(self, warehouse: str, sku: str) -> float:
        return self.opening_stock.get((warehouse, sku), 0.0)

    def supply_limit(self, warehouse: str, sku: str) -> float:
        return self.max_supply.get((warehouse, sku), UNLIMITED_QTY)


def build_lookups(
    store: CellStore,
    batch_id: str,
    gaps: Optional[DataGapReport] = None,
) -> PlanningLookups:
    """Read the lookup sheets of a batch and freeze them."""
    countries = CountryResolver.from_frame(
        load_sheet(store, batch_id, COUNTRY_MASTER_SHEET), gaps=gaps
    )
    capacity = CapacityClassifier.from_frames(
        load_sheet(store, batch_id, ITEM_MASTER_SHEET),
        load_sheet(store, batch_id, CAPACITY_SHEET),
    )
    freight = FreightCostTable.from_frame(load_sheet(store, batch_id, FREIGHT_SHEET))
    customs = CustomCostTable.from_frame(load_sheet(store, batch_id, CUSTOM_COST_SHEET))

    storage = _keyed_values(
        load_sheet(store, batch_id, STORAGE_COST_SHEET),
        STORAGE_COST_SHEET, ["warehouse"], "unit_storage_cost",
    )
    for warehouse in WAREHOUSES:
        if warehouse not in storage and gaps is not None and storage:
            gaps.record(
                "lookups", (warehouse,),
                f"No unit storage cost, using default {DEFAULT_UNIT_STORAGE_COST}",
            )

    opening_stock = _keyed_values(
        load_sheet(store, batch_id, OPENING_STOCK_SHEET),
        OPENING_STOCK_SHEET, ["warehouse", "sku"], "opening_stock",
    )
    max_supply = _keyed_values(
        load_sheet(store, batch_id, MAX_SUPPLY_SHEET),
        MAX_SUPPLY_SHEET, ["warehouse", "sku"], "max_supply",
    )

    return PlanningLookups(
        countries=countries,
        capacity=capacity,
        freight=freight,
        customs=customs,
        unit_storage_costs=MappingProxyType(storage),
        opening_stock=MappingProxyType(opening_stock),
        max_supply=MappingProxyType(max_supply),
    )
