"""Stage 1: demand sheet parsing and normalization."""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

import pandas as pd

from .cell_store import data_rows, header_values
from .config import (
    COUNTRY_WAREHOUSE,
    DEFAULT_HOME_ENVIRONMENT,
    DEMAND_SHEET,
    EXPORT_MARKET,
    EXPORT_WAREHOUSE,
    HOME_COUNTRIES,
    MTO,
    NPD_MARKER,
    OTHER_ORIGIN_MARKER,
    SheetLayout,
)
from .errors import DataGapReport
from .lookups import CapacityClassifier, CountryResolver, planning_months
from .models import DemandRecord, RawDemandRow, clean_text, normalize_country, to_number

logger = logging.getLogger(__name__)


def month_label(val) -> str:
    """
    Normalize a month header cell to "Mon YYYY".

    Handles text headers ("Jun 2025", "jun-2025") and date cells, which is
    how a month header usually arrives from a workbook.
    """
    if isinstance(val, (datetime, date, pd.Timestamp)):
        return val.strftime("%b %Y")
    text = clean_text(val).replace("-", " ").replace("'", " ")
    parts = text.split()
    if len(parts) != 2:
        return text
    month, year = parts
    if len(year) == 2:
        year = "20" + year
    return f"{month[:3].title()} {year}"


def month_columns(
    frame: pd.DataFrame,
    layout: SheetLayout = DEMAND_SHEET,
    month_periods: Optional[Mapping[str, int]] = None,
) -> dict[int, int]:
    """
    Find the month columns of the demand sheet.

    Returns:
        {column_index: planning period} for header cells inside the horizon.
        Columns before ``layout.first_month_column`` are never month columns.
    """
    month_periods = month_periods if month_periods is not None else planning_months()
    first = layout.first_month_column or 0

    result = {}
    for col, val in header_values(frame, layout).items():
        if col < first:
            continue
        period = month_periods.get(month_label(val))
        if period is not None:
            result[col] = period
    return result


def parse_demand_rows(
    frame: pd.DataFrame,
    layout: SheetLayout = DEMAND_SHEET,
    month_periods: Optional[Mapping[str, int]] = None,
) -> list[RawDemandRow]:
    """
    Turn the demand sheet grid into raw rows with their month values.

    Args:
        frame: Sheet grid from ``load_sheet``
        layout: Column positions and header offset
        month_periods: Header text -> period mapping for the planning horizon

    Returns:
        One RawDemandRow per data row, values keyed by planning period
    """
    columns = month_columns(frame, layout, month_periods)
    if not columns:
        logger.warning("Demand sheet has no month columns inside the planning horizon")

    rows = []
    for row_index, row in data_rows(frame, layout).iterrows():
        values: dict[int, object] = {}
        for col, period in columns.items():
            val = row.get(col)
            if pd.isna(val):
                continue
            # Two headers on the same month add up, each clamped at 0
            if period in values:
                values[period] = max(0.0, to_number(values[period])) + max(0.0, to_number(val))
            else:
                values[period] = val

        rows.append(RawDemandRow(
            row_index=int(row_index),
            geography=clean_text(row.get(layout.columns["geography"])),
            market=clean_text(row.get(layout.columns["market"])),
            pd_npd=clean_text(row.get(layout.columns["pd_npd"])),
            origin=clean_text(row.get(layout.columns["origin"])),
            sku=clean_text(row.get(layout.columns["sku"])),
            values=values,
        ))

    logger.info("Demand sheet: %d rows, %d month columns", len(rows), len(columns))
    return rows


def is_excluded(row: RawDemandRow) -> bool:
    """NPD rows and rows sourced from "Other" never become demand."""
    return (
        row.pd_npd.strip().lower() == NPD_MARKER
        or row.origin.strip().lower() == OTHER_ORIGIN_MARKER
    )


def classify(country: str, sku: str, capacity: CapacityClassifier) -> tuple[str, str, str, float]:
    """
    Classify a destination country for one SKU.

    Returns:
        (market_class, production_environment, safety_stock_warehouse, inventory_days_norm)
    """
    if country in HOME_COUNTRIES:
        environment = capacity.production_environment(sku, DEFAULT_HOME_ENVIRONMENT)
        return (
            country,
            environment,
            COUNTRY_WAREHOUSE[country],
            capacity.inventory_days_norm(sku, environment),
        )
    return (EXPORT_MARKET, MTO, EXPORT_WAREHOUSE, 0.0)


class DemandNormalizer:
    """
    Filters, aggregates and classifies raw demand rows.

    Rules:
    - NPD rows and "Other" origin rows are dropped
    - (geography, market) must resolve to a country, otherwise a data gap
    - each row contributes max(0, value) to its (country, sku, month)
    - output is dense over the horizon for every (country, sku) seen
    """

    def __init__(self, periods: Iterable[int], gaps: Optional[DataGapReport] = None):
        self.periods = sorted(periods)
        self.gaps = gaps if gaps is not None else DataGapReport()

    def normalize(
        self,
        raw_rows: Iterable[RawDemandRow],
        countries: CountryResolver,
        capacity: CapacityClassifier,
        batch_id: Optional[str] = None,
    ) -> list[DemandRecord]:
        totals: dict[tuple[str, str], dict[int, float]] = defaultdict(
            lambda: {period: 0.0 for period in self.periods}
        )
        unresolved: set[tuple[str, str]] = set()
        excluded = skipped = 0

        for row in raw_rows:
            if is_excluded(row):
                excluded += 1
                continue
            if not row.geography or not row.market or not row.sku:
                skipped += 1
                continue

            country = countries.resolve(row.geography, row.market)
            if country is None:
                pair = (row.geography, row.market)
                if pair not in unresolved:
                    unresolved.add(pair)
                    self.gaps.record("demand", pair, "No country mapping for geography/market")
                continue
            country = normalize_country(country)

            month_totals = totals[(country, row.sku)]
            for period in self.periods:
                month_totals[period] += max(0.0, to_number(row.values.get(period)))

        records = []
        for country, sku in sorted(totals):
            market_class, environment, warehouse, days_norm = classify(country, sku, capacity)
            for period in self.periods:
                records.append(DemandRecord(
                    country=country,
                    sku=sku,
                    month=period,
                    demand_cases=totals[(country, sku)][period],
                    market_class=market_class,
                    production_environment=environment,
                    safety_stock_warehouse=warehouse,
                    inventory_days_norm=days_norm,
                    upload_batch_id=batch_id,
                ))

        logger.info(
            "Normalized demand: %d records for %d country/SKU pairs "
            "(%d rows excluded, %d incomplete, %d unmapped geographies)",
            len(records), len(totals), excluded, skipped, len(unresolved),
        )
        return records
