"""Stage 3: primary distribution cost matrix."""

import logging
from typing import Iterable, Optional

from .config import (
    BLOCKED_LANES,
    PHYSICAL_WAREHOUSES,
    PLACEHOLDER_FACTORY,
    PLACEHOLDER_WAREHOUSE,
    UNLIMITED_QTY,
    WAREHOUSE_FACTORY,
    WAREHOUSE_HOME_COUNTRY,
)
from .errors import DataGapReport
from .lookups import CapacityClassifier, CustomCostTable, FreightCostTable
from .models import DemandRecord, DistributionRecord, PipelineConfig

logger = logging.getLogger(__name__)

# (warehouse, factory, country, sku, month)
Combination = tuple[str, str, str, str, int]


def zero_cost_rule(warehouse: str, factory: Optional[str], country: str) -> Optional[str]:
    """
    Name of the zero-cost exception that applies to a lane, if any.

    Rules are checked in order, first match wins:
    1. placeholder warehouse
    2. warehouse is in the destination country
    3. factory is co-located with the warehouse
    """
    if warehouse == PLACEHOLDER_WAREHOUSE:
        return "placeholder"
    if WAREHOUSE_HOME_COUNTRY.get(warehouse) == country:
        return "intra_country"
    if WAREHOUSE_FACTORY.get(warehouse) == factory:
        return "intra_site"
    return None


class DistributionCostEngine:
    """Builds and prices warehouse x factory lanes for eligible demand."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        gaps: Optional[DataGapReport] = None,
    ):
        self.config = config or PipelineConfig()
        self.gaps = gaps if gaps is not None else DataGapReport()

    def is_eligible(self, sku: str, classifier: CapacityClassifier) -> bool:
        if not classifier.has_capacity(sku):
            return False
        if self.config.apply_opening_stock_filter and classifier.opening_stock_days(sku) <= 0:
            return False
        return True

    def eligible_combinations(
        self,
        demand_records: Iterable[DemandRecord],
        classifier: CapacityClassifier,
    ) -> list[Combination]:
        """
        All candidate lanes for demand whose SKU passes the capacity gate.

        Every physical warehouse is paired with every factory that has capacity
        for the SKU; the placeholder warehouse only with the placeholder factory.
        """
        combinations: list[Combination] = []
        ineligible: set[str] = set()

        for demand in demand_records:
            if not self.is_eligible(demand.sku, classifier):
                ineligible.add(demand.sku)
                continue
            factories = classifier.factories_for(demand.sku)
            for warehouse in PHYSICAL_WAREHOUSES:
                for factory in factories:
                    combinations.append((warehouse, factory, demand.country, demand.sku, demand.month))
            combinations.append(
                (PLACEHOLDER_WAREHOUSE, PLACEHOLDER_FACTORY, demand.country, demand.sku, demand.month)
            )

        if ineligible:
            logger.info("Distribution: %d SKUs without capacity skipped", len(ineligible))
            logger.debug("Skipped SKUs: %s", sorted(ineligible))
        return combinations

    def lane_max_qty(self, warehouse: str, factory: str) -> float:
        if (warehouse, factory) in BLOCKED_LANES:
            return 0
        return UNLIMITED_QTY

    def assign(
        self,
        combinations: Iterable[Combination],
        freight: FreightCostTable,
        weights: Optional[dict[str, float]] = None,
        batch_id: Optional[str] = None,
        customs: Optional[CustomCostTable] = None,
    ) -> list[DistributionRecord]:
        """
        Price each lane; duplicate combinations collapse to the first one.

        Args:
            combinations: Output of ``eligible_combinations``
            freight: Freight cost per case for cross-border lanes
            weights: Optional weight per unit by SKU
            batch_id: Upload batch stamped on every record
            customs: Custom duty components for NFCM imports into KSA
        """
        weights = weights or {}
        customs = customs if customs is not None else CustomCostTable({})
        records: dict[Combination, DistributionRecord] = {}
        rule_counts: dict[str, int] = {}
        freight_costs: dict[tuple[str, str, str], float] = {}

        for combination in combinations:
            if combination in records:
                continue
            warehouse, factory, country, sku, month = combination

            rule = zero_cost_rule(warehouse, factory, country)
            cost = 0.0
            if rule is None:
                lane = (factory, country, sku)
                if lane not in freight_costs:
                    freight_costs[lane] = freight.rate_or_default(
                        factory, country, sku, self.gaps,
                        stage="distribution",
                        use_fallback=self.config.freight_fallback,
                    )
                cost = freight_costs[lane]
                rule = "freight" if freight.lookup(factory, country, sku) is not None else "freight_missing"

            custom_cost = 0.0
            if customs.applies(warehouse, factory, country):
                custom_cost = customs.cost_per_unit(factory, sku, cost)

            records[combination] = DistributionRecord(
                warehouse=warehouse,
                factory=factory,
                country=country,
                sku=sku,
                month=month,
                cost_per_unit=cost,
                custom_cost_per_unit=custom_cost,
                max_qty=self.lane_max_qty(warehouse, factory),
                weight_per_unit=weights.get(sku, 0.0),
                cost_rule=rule,
                upload_batch_id=batch_id,
            )
            rule_counts[rule] = rule_counts.get(rule, 0) + 1

        logger.info("Distribution: %d lanes priced %s", len(records), rule_counts)
        return list(records.values())

    def build(
        self,
        demand_records: Iterable[DemandRecord],
        classifier: CapacityClassifier,
        freight: FreightCostTable,
        batch_id: Optional[str] = None,
        customs: Optional[CustomCostTable] = None,
    ) -> list[DistributionRecord]:
        """Eligible combinations priced in one call."""
        demand_records = list(demand_records)
        weights = {d.sku: classifier.weight_per_unit(d.sku) for d in demand_records}
        return self.assign(
            self.eligible_combinations(demand_records, classifier),
            freight,
            weights=weights,
            batch_id=batch_id,
            customs=customs,
        )
