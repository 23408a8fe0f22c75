"""Raw cell store boundary.

Spreadsheet ingestion lives outside this package; the pipeline only reads
``(row_index, column_index, column_name, cell_value)`` tuples for a named
logical sheet and upload batch. Sheets are pivoted into DataFrames whose
index is the row index and whose columns are the 0-indexed column numbers.
"""

import logging
from typing import Iterable, Protocol

import pandas as pd

from .config import SheetLayout
from .errors import FatalBatchError
from .models import Cell

logger = logging.getLogger(__name__)

CELL_DUMP_COLUMNS = ["sheet", "row_index", "column_index", "column_name", "cell_value"]


class CellStore(Protocol):
    def cells(self, batch_id: str, sheet: str) -> list[Cell]:
        ...


class InMemoryCellStore:
    """Cell store held in memory, keyed by (batch_id, sheet)."""

    def __init__(self):
        self._cells: dict[tuple[str, str], list[Cell]] = {}

    def add_cells(self, batch_id: str, sheet: str, cells: Iterable[Cell]) -> None:
        self._cells.setdefault((batch_id, sheet), []).extend(cells)

    def add_grid(self, batch_id: str, sheet: str, grid: list[list], start_row: int = 0) -> None:
        """Load a 2D list of values; ``None`` cells are skipped like blank cells."""
        cells = []
        header = grid[0] if grid else []
        for r, row in enumerate(grid):
            for c, value in enumerate(row):
                if value is None:
                    continue
                column_name = header[c] if c < len(header) else None
                cells.append(Cell(
                    row_index=start_row + r,
                    column_index=c,
                    column_name=str(column_name) if column_name is not None else None,
                    cell_value=value,
                ))
        self.add_cells(batch_id, sheet, cells)

    def cells(self, batch_id: str, sheet: str) -> list[Cell]:
        return list(self._cells.get((batch_id, sheet), []))

    def sheets(self, batch_id: str) -> list[str]:
        return [sheet for (bid, sheet) in self._cells if bid == batch_id]

    def clear_batch(self, batch_id: str) -> None:
        for key in [k for k in self._cells if k[0] == batch_id]:
            del self._cells[key]

    @classmethod
    def from_frame(cls, df: pd.DataFrame, batch_id: str) -> "InMemoryCellStore":
        """Build a store from a cell dump with CELL_DUMP_COLUMNS."""
        missing = [col for col in CELL_DUMP_COLUMNS if col not in df.columns]
        if missing:
            raise FatalBatchError(
                f"Cell dump is missing columns: {', '.join(missing)}",
                batch_id=batch_id,
                stage="ingest",
            )

        store = cls()
        for sheet, group in df.groupby("sheet", sort=False):
            cells = [
                Cell(
                    row_index=int(row["row_index"]),
                    column_index=int(row["column_index"]),
                    column_name=row["column_name"] if pd.notna(row["column_name"]) else None,
                    cell_value=row["cell_value"],
                )
                for _, row in group.iterrows()
                if pd.notna(row["cell_value"])
            ]
            store.add_cells(batch_id, str(sheet), cells)
        return store


def cells_to_frame(cells: list[Cell]) -> pd.DataFrame:
    """Pivot cells into a row x column DataFrame (missing cells are NaN)."""
    if not cells:
        return pd.DataFrame()

    long_df = pd.DataFrame(
        [(c.row_index, c.column_index, c.cell_value) for c in cells],
        columns=["row_index", "column_index", "cell_value"],
    )
    frame = long_df.pivot(index="row_index", columns="column_index", values="cell_value")
    frame = frame.reindex(columns=range(int(long_df["column_index"].max()) + 1))
    return frame.sort_index()


def load_sheet(
    store: CellStore,
    batch_id: str,
    layout: SheetLayout,
    stage: str = "lookups",
) -> pd.DataFrame:
    """Read one logical sheet as a grid DataFrame.

    Raises:
        FatalBatchError: If a required sheet is missing, has duplicate cells,
            or lacks one of the layout's columns.
    """
    cells = store.cells(batch_id, layout.name)
    if not cells:
        if layout.required:
            raise FatalBatchError(
                f"Required sheet '{layout.name}' is missing",
                batch_id=batch_id,
                stage=stage,
            )
        logger.info("Optional sheet '%s' not present, using defaults", layout.name)
        return pd.DataFrame()

    try:
        frame = cells_to_frame(cells)
    except ValueError as exc:
        raise FatalBatchError(
            f"Sheet '{layout.name}' has duplicate cells: {exc}",
            batch_id=batch_id,
            stage=stage,
        ) from exc

    needed = max(layout.columns.values(), default=-1)
    if layout.first_month_column is not None:
        needed = max(needed, layout.first_month_column)
    if needed >= len(frame.columns):
        raise FatalBatchError(
            f"Sheet '{layout.name}' has {len(frame.columns)} columns, expected at least {needed + 1}",
            batch_id=batch_id,
            stage=stage,
        )

    logger.debug("Loaded sheet '%s': %d rows x %d columns", layout.name, *frame.shape)
    return frame


def header_values(frame: pd.DataFrame, layout: SheetLayout) -> dict[int, object]:
    """Header row of a sheet grid as {column_index: value}."""
    if frame.empty or layout.header_row not in frame.index:
        return {}
    row = frame.loc[layout.header_row]
    return {int(col): val for col, val in row.items() if pd.notna(val)}


def data_rows(frame: pd.DataFrame, layout: SheetLayout) -> pd.DataFrame:
    """Rows below the sheet's fixed header offset."""
    if frame.empty:
        return frame
    return frame.loc[frame.index >= layout.first_data_row]
