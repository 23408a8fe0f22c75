"""Cross references between demand and supply records.

References are stored as (record_type, ordinal, field) objects and are only
turned into spreadsheet text by FormulaRenderer at export time.
"""

import logging
from collections import defaultdict
from typing import Optional, Sequence

from openpyxl.utils import get_column_letter

from .config import (
    DEMAND_EXPORT_COLUMNS,
    DEMAND_EXPORT_SHEET,
    EXPORT_FIELD_COLUMNS,
    SUPPLY_EXPORT_COLUMNS,
    SUPPLY_EXPORT_SHEET,
    WAREHOUSES,
)
from .errors import FatalBatchError
from .models import ComparisonFormula, DemandRecord, RecordRef, SumReference, SupplyRecord

logger = logging.getLogger(__name__)


class CrossReferenceFormulaGenerator:
    """Links each demand record to the positions of its supply candidates."""

    def __init__(self, batch_id: Optional[str] = None):
        self.batch_id = batch_id

    def link(
        self,
        demand_records: Sequence[DemandRecord],
        supply_records: Sequence[SupplyRecord],
    ) -> list[DemandRecord]:
        """
        Set ``supply_reference`` and ``consumption_formula`` on every demand record.

        Ordinals are positions in ``supply_records`` as given, so re-sorting the
        supply list and linking again keeps the references valid.

        Raises:
            FatalBatchError: If a demand record does not have all its supply candidates
        """
        positions: dict[tuple, list[int]] = defaultdict(list)
        for ordinal, supply in enumerate(supply_records):
            positions[supply.demand_key].append(ordinal)

        for ordinal, demand in enumerate(demand_records):
            found = positions.get(demand.key, [])
            if len(found) < len(WAREHOUSES):
                raise FatalBatchError(
                    f"Expected {len(WAREHOUSES)} supply records, found {len(found)}",
                    batch_id=self.batch_id,
                    stage="supply",
                    key=demand.key,
                )

            demand.supply_reference = SumReference(
                tuple(RecordRef("supply", j, "qty_total") for j in found)
            )
            demand.consumption_formula = ComparisonFormula(
                left=RecordRef("demand", ordinal, "demand_cases"),
                operator="=",
                right=RecordRef("demand", ordinal, "supply"),
            )

        logger.info("Linked %d demand records to %d supply records", len(demand_records), len(supply_records))
        return list(demand_records)


class FormulaRenderer:
    """
    Render references as spreadsheet formula text.

    Example:
        SumReference over supply ordinals 10, 11 -> "T_02!V12+T_02!V13"
        ComparisonFormula on demand ordinal 0  -> '=@WB(D2,"=",I2)'
    """

    SHEETS = {
        "demand": (DEMAND_EXPORT_SHEET, DEMAND_EXPORT_COLUMNS),
        "supply": (SUPPLY_EXPORT_SHEET, SUPPLY_EXPORT_COLUMNS),
    }

    def __init__(self, header_rows: int = 1):
        self.header_rows = header_rows

    def column_letter(self, record_type: str, field: str) -> str:
        _, columns = self.SHEETS[record_type]
        header = EXPORT_FIELD_COLUMNS[record_type][field]
        return get_column_letter(columns.index(header) + 1)

    def cell(self, ref: RecordRef, qualified: bool = False) -> str:
        address = f"{self.column_letter(ref.record_type, ref.field)}{ref.ordinal + self.header_rows + 1}"
        if qualified:
            sheet, _ = self.SHEETS[ref.record_type]
            return f"{sheet}!{address}"
        return address

    def render_sum(self, reference: SumReference) -> str:
        return "+".join(self.cell(ref, qualified=True) for ref in reference.refs)

    def render_comparison(self, formula: ComparisonFormula) -> str:
        return f'=@WB({self.cell(formula.left)},"{formula.operator}",{self.cell(formula.right)})'
