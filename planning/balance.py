"""Stage 4: monthly stock roll-forward per warehouse and SKU."""

import concurrent.futures as cf
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from statistics import mean
from typing import Iterable, Optional, Sequence

from .config import (
    DAYS_PER_MONTH,
    EXPORT_WAREHOUSE,
    INBOUND_SPLIT,
    MTO,
    MTS,
    PLACEHOLDER_WAREHOUSE,
    STORAGE_COST_V2_MARKDOWN,
    WAREHOUSES,
)
from .lookups import PlanningLookups
from .models import (
    ChainState,
    DemandRecord,
    PipelineConfig,
    SkuMonthBalance,
    WarehouseBalanceRecord,
)

logger = logging.getLogger(__name__)


def chain(
    seed: float,
    inbound: Sequence[float],
    outbound: Sequence[float],
    months: Optional[Sequence[int]] = None,
) -> list[ChainState]:
    """
    Roll stock forward month by month.

    opening(m) = closing(m-1), closing(m) = opening(m) + inbound(m) - outbound(m).
    Closing stock is never clamped, so a negative value shows a shortfall.

    Example:
        chain(100, [20, 20, 20], [30, 10, 50]) closes at 90, 100, 70
    """
    if len(inbound) != len(outbound):
        raise ValueError(f"inbound has {len(inbound)} months, outbound has {len(outbound)}")
    months = list(months) if months is not None else list(range(1, len(inbound) + 1))
    if len(months) != len(inbound):
        raise ValueError(f"{len(months)} months given for {len(inbound)} flows")

    states = []
    opening = seed
    for month, inflow, outflow in zip(months, inbound, outbound):
        closing = opening + inflow - outflow
        states.append(ChainState(month, opening, inflow, outflow, closing))
        opening = closing
    return states


@dataclass
class BalanceInputs:
    """Flows of one (warehouse, sku) chain, aligned with ``months``."""
    warehouse: str
    sku: str
    months: list[int]
    seed: float = 0.0
    inbound: list[float] = field(default_factory=list)
    planned_shipment: list[float] = field(default_factory=list)
    max_supply: list[float] = field(default_factory=list)
    closing_norm: list[float] = field(default_factory=list)

    @property
    def outbound(self) -> list[float]:
        return [min(planned, limit) for planned, limit in zip(self.planned_shipment, self.max_supply)]


def _shipment_warehouse(demand: DemandRecord) -> str:
    if demand.safety_stock_warehouse == EXPORT_WAREHOUSE:
        return PLACEHOLDER_WAREHOUSE
    return demand.safety_stock_warehouse


def build_balance_inputs(
    demand_records: Iterable[DemandRecord],
    lookups: PlanningLookups,
    months: Optional[Sequence[int]] = None,
) -> dict[tuple[str, str], BalanceInputs]:
    """
    Derive inbound, planned shipments and limits for every (warehouse, sku).

    Inbound for month m is next month's SKU demand split across warehouses by
    production environment; the last month has no inbound. Planned shipments
    are this month's demand of the countries the warehouse holds stock for.
    """
    demand_records = list(demand_records)
    months = sorted(months if months is not None else {d.month for d in demand_records})

    by_environment: dict[tuple[str, str, int], float] = defaultdict(float)
    planned: dict[tuple[str, str, int], float] = defaultdict(float)
    skus: set[str] = set()
    for demand in demand_records:
        skus.add(demand.sku)
        environment = MTO if demand.production_environment == MTO else MTS
        by_environment[(demand.sku, environment, demand.month)] += demand.demand_cases
        planned[(_shipment_warehouse(demand), demand.sku, demand.month)] += demand.demand_cases

    inputs = {}
    for sku in sorted(skus):
        mto_next = []
        mts_next = []
        for i, month in enumerate(months):
            following = months[i + 1] if i + 1 < len(months) else None
            mto_next.append(by_environment.get((sku, MTO, following), 0.0) if following is not None else 0.0)
            mts_next.append(by_environment.get((sku, MTS, following), 0.0) if following is not None else 0.0)

        days_norm = lookups.capacity.inventory_days_norm(sku, MTS)
        for warehouse in WAREHOUSES:
            mto_share, mts_share = INBOUND_SPLIT[warehouse]
            limit = lookups.supply_limit(warehouse, sku)
            inputs[(warehouse, sku)] = BalanceInputs(
                warehouse=warehouse,
                sku=sku,
                months=list(months),
                seed=lookups.seed(warehouse, sku),
                inbound=[mto * mto_share + mts * mts_share for mto, mts in zip(mto_next, mts_next)],
                planned_shipment=[planned.get((warehouse, sku, m), 0.0) for m in months],
                max_supply=[limit] * len(months),
                closing_norm=[
                    0.0 if warehouse == PLACEHOLDER_WAREHOUSE else mts * days_norm / DAYS_PER_MONTH
                    for mts in mts_next
                ],
            )
    return inputs


class WarehouseBalanceEngine:
    """Runs every (warehouse, sku) chain and attaches costs and bound flags."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()

    def run_chain(
        self,
        inputs: BalanceInputs,
        unit_storage_cost: float,
        batch_id: Optional[str] = None,
    ) -> list[WarehouseBalanceRecord]:
        cfg = self.config
        records = []
        states = chain(inputs.seed, inputs.inbound, inputs.outbound, inputs.months)
        for i, state in enumerate(states):
            min_closing = max(cfg.min_closing_stock, inputs.closing_norm[i])
            records.append(WarehouseBalanceRecord(
                warehouse=inputs.warehouse,
                sku=inputs.sku,
                month=state.month,
                opening_stock=state.opening_stock,
                inbound=state.inbound,
                outbound=state.outbound,
                closing_stock=state.closing_stock,
                planned_shipment=inputs.planned_shipment[i],
                max_supply=inputs.max_supply[i],
                average_stock=state.average_stock,
                storage_cost=state.average_stock * unit_storage_cost,
                opening_within_bounds=cfg.min_opening_stock <= state.opening_stock <= cfg.max_opening_stock,
                closing_within_bounds=min_closing <= state.closing_stock <= cfg.max_closing_stock,
                upload_batch_id=batch_id,
            ))
        return records

    def run(
        self,
        demand_records: Iterable[DemandRecord],
        lookups: PlanningLookups,
        batch_id: Optional[str] = None,
    ) -> list[WarehouseBalanceRecord]:
        """Full recompute of all chains; chains run in parallel when max_workers > 1."""
        inputs = build_balance_inputs(demand_records, lookups, lookups.periods)
        keys = list(inputs)

        if self.config.max_workers > 1 and len(keys) > 1:
            with cf.ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                futures = [
                    executor.submit(
                        self.run_chain,
                        inputs[key],
                        lookups.unit_storage_cost(key[0]),
                        batch_id,
                    )
                    for key in keys
                ]
                # Results are collected in submission order to keep output stable
                chains = [f.result() for f in futures]
        else:
            chains = [
                self.run_chain(inputs[key], lookups.unit_storage_cost(key[0]), batch_id)
                for key in keys
            ]

        records = [record for chain_records in chains for record in chain_records]
        shortfalls = sum(1 for r in records if r.closing_stock < 0)
        logger.info(
            "Warehouse balance: %d chains, %d records (%d with negative closing stock)",
            len(keys), len(records), shortfalls,
        )
        return records


def aggregate_unit_cost(lookups: PlanningLookups) -> float:
    """Mean unit cost over the four warehouse tracks, defaults included."""
    return mean(lookups.unit_storage_cost(warehouse) for warehouse in WAREHOUSES)


def aggregate_totals(
    records: Iterable[WarehouseBalanceRecord],
    lookups: PlanningLookups,
    batch_id: Optional[str] = None,
) -> list[SkuMonthBalance]:
    """Sum the warehouse tracks per (sku, month) and cost the average stock."""
    unit_cost = aggregate_unit_cost(lookups)
    totals: dict[tuple[str, int], SkuMonthBalance] = {}

    for record in records:
        key = (record.sku, record.month)
        if key not in totals:
            totals[key] = SkuMonthBalance(sku=record.sku, month=record.month, upload_batch_id=batch_id)
        total = totals[key]
        total.total_opening += record.opening_stock
        total.total_inbound += record.inbound
        total.total_outbound += record.outbound
        total.total_closing += record.closing_stock
        total.total_max_supply += record.max_supply

    for total in totals.values():
        total.average_stock = (total.total_opening + total.total_closing) / 2
        total.storage_cost = total.average_stock * unit_cost
        total.storage_cost_v2 = total.storage_cost * STORAGE_COST_V2_MARKDOWN

    return [totals[key] for key in sorted(totals)]
