#!/usr/bin/env python3
"""
Run the planning pipeline over a cell dump.

The cell dump is a CSV with columns sheet, row_index, column_index,
column_name, cell_value (see sample_data.py). For the batch:
- normalizes demand per country/SKU/month
- expands supply candidates over the warehouses
- prices the primary distribution lanes
- rolls warehouse stock forward month by month
Stage tables are optionally exported as CSV files.
"""

import logging
from pathlib import Path

import pandas as pd

from planning import (
    FatalBatchError,
    FormulaRenderer,
    InMemoryCellStore,
    InMemoryRecordStore,
    PipelineConfig,
    PlanningPipeline,
    new_batch_id,
)
from planning.store import STAGES

logger = logging.getLogger(__name__)


def demand_export_frame(store: InMemoryRecordStore, batch_id: str) -> pd.DataFrame:
    """Demand frame with references rendered as spreadsheet formulas."""
    renderer = FormulaRenderer()
    records = store.read(batch_id, "demand")
    df = store.frame(batch_id, "demand")
    if df.empty:
        return df
    df["supply_reference"] = [
        renderer.render_sum(r.supply_reference) if r.supply_reference else "" for r in records
    ]
    df["consumption_formula"] = [
        renderer.render_comparison(r.consumption_formula) if r.consumption_formula else ""
        for r in records
    ]
    return df


def export_stages(store: InMemoryRecordStore, batch_id: str, output_dir: str) -> list[Path]:
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    files_created = []
    for stage in STAGES:
        df = demand_export_frame(store, batch_id) if stage == "demand" else store.frame(batch_id, stage)
        filepath = output_path / f"{stage}_{batch_id[:8]}.csv"
        df.to_csv(filepath, index=False)
        files_created.append(filepath)
        print(f"  Created: {filepath.name} ({len(df)} rows)")
    return files_created


def run_pipeline(
    cells_file: str,
    output_dir: str = None,
    config: PipelineConfig = None,
):
    """
    Main pipeline function

    Args:
        cells_file: Path to the cell dump CSV
        output_dir: Directory for stage CSV files, nothing is exported when None
        config: Pipeline options, defaults when None
    """
    config = config or PipelineConfig()
    batch_id = new_batch_id()

    print(f"Loading {cells_file}...")
    cells = pd.read_csv(cells_file, dtype={"cell_value": object, "column_name": object})
    cell_store = InMemoryCellStore.from_frame(cells, batch_id)
    print(f"Sheets: {', '.join(cell_store.sheets(batch_id))}")

    record_store = InMemoryRecordStore()
    pipeline = PlanningPipeline(cell_store, record_store, config)
    result = pipeline.run(batch_id)

    print("\n=== Summary ===")
    print(f"Batch: {result.batch_id}")
    for stage, count in record_store.stats(batch_id).items():
        print(f"  {stage}: {count} records")
    print(f"Data gaps: {result.gap_count}")
    for stage, gaps in result.gaps.by_stage().items():
        print(f"  {stage}: {len(gaps)}")

    if output_dir:
        print("\nExporting stage tables...")
        export_stages(record_store, batch_id, output_dir)

    return result


if __name__ == "__main__":
    import sys

    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    flags = {a for a in sys.argv[1:] if a.startswith("--")}

    if not args:
        print("Usage: python run_pipeline.py <cells.csv> [output_dir] [--strict] [--fallback] [--opening-stock-filter]")
        print("  --strict               = treat data gaps as fatal")
        print("  --fallback             = use average freight rates for missing lanes")
        print("  --opening-stock-filter = require opening stock days > 0 for distribution")
        sys.exit(1)

    unknown = flags - {"--strict", "--fallback", "--opening-stock-filter", "--verbose"}
    if unknown:
        print(f"Error: unknown option(s) {', '.join(sorted(unknown))}")
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if "--verbose" in flags else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = PipelineConfig(
        strict_data_gaps="--strict" in flags,
        freight_fallback="--fallback" in flags,
        apply_opening_stock_filter="--opening-stock-filter" in flags,
    )

    try:
        run_pipeline(args[0], args[1] if len(args) > 1 else None, config)
    except FatalBatchError as exc:
        logger.error("Batch failed: %s", exc)
        sys.exit(2)
