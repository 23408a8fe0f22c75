"""Supply planning pipeline: demand, supply, distribution and warehouse balance."""

from .models import (
    Cell,
    RawDemandRow,
    DemandRecord,
    SupplyRecord,
    DistributionRecord,
    WarehouseBalanceRecord,
    SkuMonthBalance,
    ChainState,
    RecordRef,
    SumReference,
    ComparisonFormula,
    PipelineConfig,
    new_batch_id,
    to_number,
    normalize_country,
)
from .errors import (
    PlanningError,
    FatalBatchError,
    DataGapWarning,
    DataGapReport,
)
from .cell_store import (
    CellStore,
    InMemoryCellStore,
    cells_to_frame,
    load_sheet,
)
from .lookups import (
    CountryResolver,
    CapacityClassifier,
    CustomCostTable,
    FreightCostTable,
    PlanningLookups,
    build_lookups,
    planning_months,
)
from .demand import DemandNormalizer, parse_demand_rows
from .supply import SupplyExpander
from .formulas import CrossReferenceFormulaGenerator, FormulaRenderer
from .distribution import DistributionCostEngine
from .balance import WarehouseBalanceEngine, chain, build_balance_inputs, aggregate_totals
from .store import RecordStore, InMemoryRecordStore
from .pipeline import PlanningPipeline, PipelineResult

__all__ = [
    # Models
    "Cell",
    "RawDemandRow",
    "DemandRecord",
    "SupplyRecord",
    "DistributionRecord",
    "WarehouseBalanceRecord",
    "SkuMonthBalance",
    "ChainState",
    "RecordRef",
    "SumReference",
    "ComparisonFormula",
    "PipelineConfig",
    "new_batch_id",
    "to_number",
    "normalize_country",
    # Errors
    "PlanningError",
    "FatalBatchError",
    "DataGapWarning",
    "DataGapReport",
    # Cell store
    "CellStore",
    "InMemoryCellStore",
    "cells_to_frame",
    "load_sheet",
    # Lookups
    "CountryResolver",
    "CapacityClassifier",
    "CustomCostTable",
    "FreightCostTable",
    "PlanningLookups",
    "build_lookups",
    "planning_months",
    # Stages
    "DemandNormalizer",
    "parse_demand_rows",
    "SupplyExpander",
    "CrossReferenceFormulaGenerator",
    "FormulaRenderer",
    "DistributionCostEngine",
    "WarehouseBalanceEngine",
    "chain",
    "build_balance_inputs",
    "aggregate_totals",
    # Pipeline
    "RecordStore",
    "InMemoryRecordStore",
    "PlanningPipeline",
    "PipelineResult",
]
