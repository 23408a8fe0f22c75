#!/usr/bin/env python3
"""Generate a sample cell dump with defined scenarios for manual verification.

Scenarios:
- SKU-100: KSA demand with a negative correction row (50 + -10 -> 50 in Jun 2025)
- SKU-200: no capacity row at any factory -> no distribution lanes
- SKU-300: Kuwait demand, served from its home warehouse at zero cost
- SKU-400: export demand to Oman (MTO via the placeholder warehouse)
- NPD and "Other" origin rows that must be dropped
"""

import pandas as pd

from planning.cell_store import CELL_DUMP_COLUMNS
from planning.lookups import planning_months

MONTHS = list(planning_months())


def grid_row(values: dict) -> list:
    """Sparse {column_index: value} -> list padded with None."""
    if not values:
        return []
    row = [None] * (max(values) + 1)
    for col, val in values.items():
        row[col] = val
    return row


def demand_row(geography, market, sku, monthly, pd_npd="PD", origin="Local") -> list:
    """One demand sheet row; ``monthly`` maps "Jun 2025" style labels to cases."""
    values = {0: geography, 1: market, 2: "Region", 3: pd_npd, 4: origin, 5: "Brand", 6: sku}
    for label, qty in monthly.items():
        values[9 + MONTHS.index(label)] = qty
    return grid_row(values)


def demand_grid() -> list[list]:
    header = grid_row({
        0: "Geography", 1: "Market", 2: "Region", 3: "PD/NPD", 4: "Origin",
        5: "Brand", 6: "FGSKU Code", 7: "Description", 8: "UOM",
        **{9 + i: label for i, label in enumerate(MONTHS)},
    })
    return [
        ["Demand plan"],
        [],
        header,
        demand_row("Saudi Arabia", "Domestic", "SKU-100", {"Jun 2025": 50, "Jul 2025": 40, "Aug 2025": 30}),
        demand_row("Saudi Arabia", "Domestic", "SKU-100", {"Jun 2025": -10}),
        demand_row("UAE", "Domestic", "SKU-100", {"Jul 2025": 25}),
        demand_row("Kuwait", "Domestic", "SKU-200", {"Jun 2025": 15, "Jul 2025": 15}),
        demand_row("Kuwait", "Domestic", "SKU-300", {label: 20 for label in MONTHS}),
        demand_row("Oman", "Export", "SKU-400", {"Sep 2025": 60, "Oct 2025": "n/a"}),
        demand_row("Oman", "Export", "SKU-400", {"Sep 2025": 500}, pd_npd="NPD"),
        demand_row("Oman", "Export", "SKU-400", {"Sep 2025": 500}, origin="Other"),
        demand_row("Atlantis", "Export", "SKU-400", {"Sep 2025": 10}),
    ]


def country_master_grid() -> list[list]:
    return [
        ["Country", "Market", "Country name", "Default WH"],
        ["KSA", "Domestic", "Saudi Arabia", "NFCM"],
        ["UAE FS", "Domestic", "UAE", "GFCM"],
        ["Kuwait", "Domestic", "Kuwait", "KFCM"],
        ["Oman", "Export", "Oman", "NA"],
    ]


def item_master_grid() -> list[list]:
    header = grid_row({
        1: "FGSKU Code", 9: "Production Environment", 10: "Inventory Days Norm",
        11: "Opening Stock Days", 12: "Weight per unit",
    })

    def item(sku, environment, days, opening_days, weight):
        return grid_row({1: sku, 9: environment, 10: days, 11: opening_days, 12: weight})

    return [
        ["Item master"],
        header,
        item("SKU-100", "MTS", 15, 10, 1.5),
        item("SKU-200", "MTS", 10, 0, 2.0),
        item("SKU-300", "MTS", 30, 5, 0.8),
        item("SKU-400", "MTO", 0, 0, 1.2),
    ]


def capacity_grid() -> list[list]:
    return [
        ["Factory", "FGSKU Code", "Capacity"],
        ["NFC", "SKU-100", 1000],
        ["GFC", "SKU-100", 500],
        ["KFC", "SKU-300", 800],
        ["GFC", "SKU-400", 300],
    ]


def freight_lane(sku, origin, destination, load, freight) -> list:
    return grid_row({1: sku, 4: origin, 5: destination, 6: load, 7: freight})


def freight_grid() -> list[list]:
    return [
        ["Freight raw data"],
        [],
        [],
        grid_row({1: "FGSKU", 4: "Origin", 5: "Destination", 6: "Truck Load", 7: "Truck Freight"}),
        freight_lane("SKU-100", "GFC", "Saudi Arabia", 1000, 2500),
        freight_lane("SKU-100", "KFC", "Saudi Arabia", 1000, 1800),
        freight_lane("SKU-100", "NFC", "UAE FS", 1000, 2500),
        freight_lane("SKU-300", "KFC", "Kuwait", 800, 400),
        freight_lane("SKU-300", "GFC", "Kuwait", 800, 1600),
        freight_lane("SKU-400", "GFC", "Oman", 900, 2700),
        freight_lane("SKU-400", "NFC", "Oman", "Missing", 2000),
    ]


def storage_cost_grid() -> list[list]:
    return [
        ["WH", "Storage cost per case"],
        ["GFCM", 0.02],
        ["KFCM", 0.015],
        ["NFCM", 0.01],
        ["X", 0.0],
    ]


def custom_cost_grid() -> list[list]:
    return [
        ["Factory", "FGSKU Code", "Average RM price", "Factory overhead"],
        ["GFC", "SKU-100", 10, 2],
    ]


def opening_stock_grid() -> list[list]:
    return [
        ["WH", "FGSKU Code", "Opening stock"],
        ["NFCM", "SKU-100", 100],
        ["KFCM", "SKU-300", 60],
    ]


def max_supply_grid() -> list[list]:
    return [
        ["WH", "FGSKU Code", "Max supply"],
        ["KFCM", "SKU-300", 15],
    ]


def build_sample_grids() -> dict[str, list[list]]:
    """All sheets of the sample batch, as 2D lists keyed by sheet name."""
    return {
        "Demand": demand_grid(),
        "Demand country master": country_master_grid(),
        "Item master": item_master_grid(),
        "Capacity": capacity_grid(),
        "FreightRawData": freight_grid(),
        "Storage costs": storage_cost_grid(),
        "Opening stock": opening_stock_grid(),
        "Max supply": max_supply_grid(),
        "Custom cost": custom_cost_grid(),
    }


def grids_to_cell_dump(grids: dict[str, list[list]]) -> pd.DataFrame:
    """Flatten sheet grids into a cell dump frame (blank cells are left out)."""
    rows = []
    for sheet, grid in grids.items():
        header = grid[0] if grid else []
        for r, row in enumerate(grid):
            for c, value in enumerate(row):
                if value is None:
                    continue
                column_name = header[c] if c < len(header) else None
                rows.append((sheet, r, c, column_name, value))
    return pd.DataFrame(rows, columns=CELL_DUMP_COLUMNS)


def create_sample_cells(output_path: str = "sample_cells.csv") -> pd.DataFrame:
    df = grids_to_cell_dump(build_sample_grids())
    df.to_csv(output_path, index=False)

    print(f"Created: {output_path}")
    print(f"Sheets: {df['sheet'].nunique()}, cells: {len(df)}")
    print("\nRun: python run_pipeline.py " + output_path)
    return df


if __name__ == "__main__":
    import sys

    create_sample_cells(sys.argv[1] if len(sys.argv) > 1 else "sample_cells.csv")
