"""Four-stage planning pipeline over one upload batch."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from .balance import WarehouseBalanceEngine, aggregate_totals
from .cell_store import CellStore, load_sheet
from .config import DEMAND_SHEET
from .demand import DemandNormalizer, parse_demand_rows
from .distribution import DistributionCostEngine
from .errors import DataGapReport, FatalBatchError
from .formulas import CrossReferenceFormulaGenerator
from .lookups import PlanningLookups, build_lookups
from .models import PipelineConfig, new_batch_id
from .store import InMemoryRecordStore, RecordStore
from .supply import SupplyExpander

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""
    batch_id: str
    counts: dict[str, int] = field(default_factory=dict)
    gaps: DataGapReport = field(default_factory=DataGapReport)

    @property
    def gap_count(self) -> int:
        return len(self.gaps)


class PlanningPipeline:
    """
    Runs lookups, demand, supply, distribution and balance for one batch.

    Each stage writes its records to the record store and the next stage reads
    them back from there. A rerun of the same batch id first deletes everything
    the batch wrote before. If a stage fails, the stages before it stay written
    and a FatalBatchError carries the failing stage.
    """

    def __init__(
        self,
        cell_store: CellStore,
        record_store: Optional[RecordStore] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.cell_store = cell_store
        self.record_store = record_store if record_store is not None else InMemoryRecordStore()
        self.config = config or PipelineConfig()

    @contextmanager
    def stage(self, batch_id: str, name: str):
        logger.info("Batch %s: stage '%s' started", batch_id, name)
        try:
            yield
        except FatalBatchError as exc:
            if exc.batch_id is None:
                raise FatalBatchError(exc.message, batch_id, exc.stage or name, exc.key) from exc
            raise
        except Exception as exc:
            raise FatalBatchError(
                f"Stage '{name}' failed: {exc}", batch_id=batch_id, stage=name
            ) from exc
        logger.info("Batch %s: stage '%s' finished", batch_id, name)

    def store(self, batch_id: str, stage: str, records: list) -> int:
        return self.record_store.replace(
            batch_id, stage, records, chunk_size=self.config.write_chunk_size
        )

    def run(self, batch_id: Optional[str] = None, cells_batch_id: Optional[str] = None) -> PipelineResult:
        """
        Run all stages.

        Args:
            batch_id: Batch to (re)compute; a new id is generated when omitted
            cells_batch_id: Cell store batch to read, defaults to ``batch_id``

        Returns:
            PipelineResult with record counts per stage and collected data gaps

        Raises:
            FatalBatchError: A required sheet is missing or malformed, or a stage failed
        """
        batch_id = batch_id or new_batch_id()
        cells_batch_id = cells_batch_id or batch_id
        gaps = DataGapReport(batch_id=batch_id, strict=self.config.strict_data_gaps)
        result = PipelineResult(batch_id=batch_id, gaps=gaps)

        self.record_store.clear_batch(batch_id)

        with self.stage(batch_id, "lookups"):
            lookups = build_lookups(self.cell_store, cells_batch_id, gaps)

        with self.stage(batch_id, "demand"):
            self.run_demand(batch_id, cells_batch_id, lookups, gaps, result)

        with self.stage(batch_id, "supply"):
            self.run_supply(batch_id, lookups, gaps, result)

        with self.stage(batch_id, "distribution"):
            self.run_distribution(batch_id, lookups, gaps, result)

        with self.stage(batch_id, "balance"):
            self.run_balance(batch_id, lookups, result)

        logger.info(
            "Batch %s complete: %s, %d data gaps",
            batch_id, result.counts, len(gaps),
        )
        return result

    def run_demand(self, batch_id, cells_batch_id, lookups: PlanningLookups, gaps, result) -> None:
        frame = load_sheet(self.cell_store, cells_batch_id, DEMAND_SHEET, stage="demand")
        raw_rows = parse_demand_rows(frame, DEMAND_SHEET, lookups.month_periods)
        normalizer = DemandNormalizer(lookups.periods, gaps)
        records = normalizer.normalize(raw_rows, lookups.countries, lookups.capacity, batch_id)
        result.counts["demand"] = self.store(batch_id, "demand", records)

    def run_supply(self, batch_id, lookups: PlanningLookups, gaps, result) -> None:
        demand = self.record_store.read(batch_id, "demand")
        supply = SupplyExpander(self.config, gaps).expand(demand, lookups, batch_id)
        CrossReferenceFormulaGenerator(batch_id).link(demand, supply)
        result.counts["supply"] = self.store(batch_id, "supply", supply)
        # Demand rows now carry their references into the supply rows
        self.store(batch_id, "demand", demand)

    def run_distribution(self, batch_id, lookups: PlanningLookups, gaps, result) -> None:
        demand = self.record_store.read(batch_id, "demand")
        engine = DistributionCostEngine(self.config, gaps)
        records = engine.build(
            demand, lookups.capacity, lookups.freight, batch_id, customs=lookups.customs
        )
        result.counts["distribution"] = self.store(batch_id, "distribution", records)

    def run_balance(self, batch_id, lookups: PlanningLookups, result) -> None:
        demand = self.record_store.read(batch_id, "demand")
        records = WarehouseBalanceEngine(self.config).run(demand, lookups, batch_id)
        result.counts["balance"] = self.store(batch_id, "balance", records)

        totals = aggregate_totals(self.record_store.read(batch_id, "balance"), lookups, batch_id)
        result.counts["balance_totals"] = self.store(batch_id, "balance_totals", totals)
