"""Stage 2: expand demand records across the warehouse candidates."""

import logging
from typing import Iterable, Optional

from .config import (
    COUNTRY_WAREHOUSE,
    PLACEHOLDER_WAREHOUSE,
    UNLIMITED_QTY,
    WAREHOUSE_FACTORY,
    WAREHOUSES,
)
from .distribution import zero_cost_rule
from .errors import DataGapReport
from .lookups import PlanningLookups
from .models import DemandRecord, PipelineConfig, SupplyRecord

logger = logging.getLogger(__name__)


def warehouse_max_qty(warehouse: str, country: str) -> float:
    """Only the placeholder and the country's own warehouse may serve it."""
    if warehouse == PLACEHOLDER_WAREHOUSE or COUNTRY_WAREHOUSE.get(country) == warehouse:
        return UNLIMITED_QTY
    return 0


class SupplyExpander:
    """Four supply candidates per demand record, in WAREHOUSES order."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        gaps: Optional[DataGapReport] = None,
    ):
        self.config = config or PipelineConfig()
        self.gaps = gaps if gaps is not None else DataGapReport()
        self._costs: dict[tuple[str, str, str], float] = {}

    def transport_cost(self, warehouse: str, record: DemandRecord, lookups: PlanningLookups) -> float:
        # Candidates carry no source factory, so only the placeholder and
        # intra-country rules can apply
        if zero_cost_rule(warehouse, None, record.country) is not None:
            return 0.0
        # Same lane for all months; one lookup (and at most one gap) per lane
        lane = (WAREHOUSE_FACTORY[warehouse], record.country, record.sku)
        if lane not in self._costs:
            self._costs[lane] = lookups.freight.rate_or_default(
                *lane,
                self.gaps,
                stage="supply",
                use_fallback=self.config.freight_fallback,
            )
        return self._costs[lane]

    def expand(
        self,
        demand_records: Iterable[DemandRecord],
        lookups: PlanningLookups,
        batch_id: Optional[str] = None,
    ) -> list[SupplyRecord]:
        records = []
        demand_count = 0

        for demand in demand_records:
            demand_count += 1
            weight = lookups.capacity.weight_per_unit(demand.sku)
            restriction = lookups.countries.default_warehouse(demand.country)

            for warehouse in WAREHOUSES:
                record = SupplyRecord(
                    country=demand.country,
                    sku=demand.sku,
                    month=demand.month,
                    warehouse=warehouse,
                    market=demand.market_class,
                    default_warehouse_restriction=restriction,
                    transport_cost_per_case=self.transport_cost(warehouse, demand, lookups),
                    max_qty=warehouse_max_qty(warehouse, demand.country),
                    weight_per_unit=weight,
                    upload_batch_id=batch_id if batch_id is not None else demand.upload_batch_id,
                )
                record.set_quantity(0.0)
                records.append(record)

        logger.info("Supply expansion: %d demand records -> %d candidates", demand_count, len(records))
        return records
