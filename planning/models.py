"""Data models for the planning pipeline."""

from dataclasses import dataclass, field, asdict
from typing import Optional
import uuid
import pandas as pd

from .config import (
    COUNTRY_ALIASES,
    DEFAULT_WRITE_CHUNK_SIZE,
    UNLIMITED_QTY,
)


def new_batch_id() -> str:
    """Opaque random id scoping one complete pipeline run."""
    return str(uuid.uuid4())


def to_number(val) -> float:
    """Convert cell value to float, treating NaN/empty/non-numeric as 0."""
    if val is None:
        return 0.0
    if isinstance(val, str):
        val = val.strip().replace(",", "")
        if val == "":
            return 0.0
    try:
        if pd.isna(val):
            return 0.0
    except (TypeError, ValueError):
        return 0.0
    try:
        return float(val)
    except (ValueError, TypeError):
        return 0.0


def clean_text(val) -> str:
    """Stringify a cell value, treating NaN/None as empty."""
    if val is None:
        return ""
    try:
        if pd.isna(val):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val).strip()


def normalize_country(name: str) -> str:
    """Map raw country spellings onto country codes ("UAE FS" -> "UAE-FS")."""
    name = clean_text(name)
    return COUNTRY_ALIASES.get(name, name)


@dataclass(frozen=True)
class RecordRef:
    """Positional reference to a field of a record within one batch."""
    record_type: str     # "demand" or "supply"
    ordinal: int         # 0-based position in the batch's record list
    field: str           # export field, e.g. "qty_total"


@dataclass(frozen=True)
class SumReference:
    """Sum of several referenced cells."""
    refs: tuple[RecordRef, ...] = ()

    @property
    def ordinals(self) -> list[int]:
        return [r.ordinal for r in self.refs]


@dataclass(frozen=True)
class ComparisonFormula:
    """Solver constraint of the form ``left <operator> right``."""
    left: RecordRef
    operator: str
    right: RecordRef


@dataclass
class Cell:
    """One raw cell from the cell store."""
    row_index: int
    column_index: int
    column_name: Optional[str]
    cell_value: object


@dataclass
class RawDemandRow:
    """One demand sheet row with its month values keyed by planning period."""
    row_index: int
    geography: str
    market: str
    pd_npd: str
    origin: str
    sku: str
    values: dict[int, object] = field(default_factory=dict)


@dataclass
class DemandRecord:
    """Stage 1 output: normalized demand for one country/SKU/month."""
    country: str
    sku: str
    month: int
    demand_cases: float
    market_class: str
    production_environment: str
    safety_stock_warehouse: str
    inventory_days_norm: float = 0.0
    supply_reference: Optional[SumReference] = None
    consumption_formula: Optional[ComparisonFormula] = None
    upload_batch_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.country, self.sku, self.month)


@dataclass
class SupplyRecord:
    """Stage 2 output: one warehouse candidate for a demand record."""
    country: str
    sku: str
    month: int
    warehouse: str
    market: str
    default_warehouse_restriction: str = "NA"
    transport_cost_per_case: float = 0.0
    max_qty: float = UNLIMITED_QTY
    weight_per_unit: float = 0.0
    qty: float = 0.0
    wt: float = 0.0
    row_cost: float = 0.0
    position_ok: bool = True
    qty_within_max: bool = True
    upload_batch_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, str, int, str]:
        return (self.country, self.sku, self.month, self.warehouse)

    @property
    def demand_key(self) -> tuple[str, str, int]:
        return (self.country, self.sku, self.month)

    def set_quantity(self, qty: float) -> None:
        """Apply a manual quantity edit and refresh derived fields."""
        self.qty = qty
        self.wt = qty * self.weight_per_unit
        self.row_cost = qty * self.transport_cost_per_case
        self.position_ok = qty >= 0
        self.qty_within_max = qty <= self.max_qty


@dataclass
class DistributionRecord:
    """Stage 3 output: primary distribution lane from factory to warehouse."""
    warehouse: str
    factory: str
    country: str
    sku: str
    month: int
    cost_per_unit: float = 0.0
    custom_cost_per_unit: float = 0.0
    max_qty: float = UNLIMITED_QTY
    weight_per_unit: float = 0.0
    qty: float = 0.0
    wt: float = 0.0
    custom_duty: float = 0.0
    row_cost: float = 0.0
    cost_rule: str = ""
    upload_batch_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, str, str, str, int]:
        return (self.warehouse, self.factory, self.country, self.sku, self.month)

    @property
    def position_ok(self) -> bool:
        return self.qty >= 0

    @property
    def qty_within_max(self) -> bool:
        return self.qty <= self.max_qty

    def set_quantity(self, qty: float) -> None:
        """Apply a shipped quantity and refresh weight and cost columns."""
        self.qty = qty
        self.wt = qty * self.weight_per_unit
        self.custom_duty = qty * self.custom_cost_per_unit
        self.row_cost = qty * self.cost_per_unit


@dataclass(frozen=True)
class ChainState:
    """One month of a warehouse/SKU stock rollover."""
    month: int
    opening_stock: float
    inbound: float
    outbound: float
    closing_stock: float

    @property
    def average_stock(self) -> float:
        return (self.opening_stock + self.closing_stock) / 2


@dataclass
class WarehouseBalanceRecord:
    """Stage 4 output: monthly balance of one warehouse/SKU chain."""
    warehouse: str
    sku: str
    month: int
    opening_stock: float
    inbound: float
    outbound: float
    closing_stock: float
    planned_shipment: float = 0.0
    max_supply: float = UNLIMITED_QTY
    average_stock: float = 0.0
    storage_cost: float = 0.0
    opening_within_bounds: bool = True
    closing_within_bounds: bool = True
    upload_batch_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.warehouse, self.sku, self.month)


@dataclass
class SkuMonthBalance:
    """Stage 4 aggregate: the four warehouse tracks summed per SKU/month."""
    sku: str
    month: int
    total_opening: float = 0.0
    total_inbound: float = 0.0
    total_outbound: float = 0.0
    total_closing: float = 0.0
    total_max_supply: float = 0.0
    average_stock: float = 0.0
    storage_cost: float = 0.0
    storage_cost_v2: float = 0.0
    upload_batch_id: Optional[str] = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.sku, self.month)


@dataclass
class PipelineConfig:
    """Configuration for pipeline runs."""
    # Domain filter whose intent differs across source revisions; off unless asked for
    apply_opening_stock_filter: bool = False
    freight_fallback: bool = False
    strict_data_gaps: bool = False
    write_chunk_size: int = DEFAULT_WRITE_CHUNK_SIZE
    max_workers: int = 1

    # Advisory bounds for the balance validation flags
    min_opening_stock: float = 0.0
    max_opening_stock: float = UNLIMITED_QTY
    min_closing_stock: float = 0.0
    max_closing_stock: float = UNLIMITED_QTY

    def to_dict(self) -> dict:
        """Convert config to dictionary for JSON export."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineConfig":
        """Create config from dictionary (JSON import)."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
