"""Default configuration values."""

from dataclasses import dataclass, field

# Warehouse candidates in stable expansion order (A, B, C, placeholder)
PLACEHOLDER_WAREHOUSE = "X"
PLACEHOLDER_FACTORY = "X"
WAREHOUSES = ["GFCM", "KFCM", "NFCM", PLACEHOLDER_WAREHOUSE]
PHYSICAL_WAREHOUSES = [wh for wh in WAREHOUSES if wh != PLACEHOLDER_WAREHOUSE]

# Country codes that have a co-located warehouse and factory
HOME_COUNTRIES = ["KSA", "Kuwait", "UAE-FS"]

WAREHOUSE_HOME_COUNTRY = {
    "GFCM": "UAE-FS",
    "KFCM": "Kuwait",
    "NFCM": "KSA",
}

WAREHOUSE_FACTORY = {
    "GFCM": "GFC",
    "KFCM": "KFC",
    "NFCM": "NFC",
}

# Safety stock warehouse per home country; everything else is made to order
COUNTRY_WAREHOUSE = {country: wh for wh, country in WAREHOUSE_HOME_COUNTRY.items()}
EXPORT_WAREHOUSE = "NA-MTO"
EXPORT_MARKET = "Others"

# Raw spellings that appear in source sheets
COUNTRY_ALIASES = {
    "UAE FS": "UAE-FS",
    "Saudi Arabia": "KSA",
    "United Arab Emirates": "UAE",
}

# Rows with these markers never reach the normalized demand
NPD_MARKER = "npd"
OTHER_ORIGIN_MARKER = "other"

MTO = "MTO"
MTS = "MTS"
DEFAULT_HOME_ENVIRONMENT = MTS

# Planning horizon: Jun 2025 is period 5, twelve periods in total
HORIZON_START_YEAR = 2025
HORIZON_START_MONTH = 6
FIRST_PERIOD = 5
HORIZON_LENGTH = 12

# Used wherever a lane or a supply track is effectively unconstrained
UNLIMITED_QTY = 10 ** 10

# Storage cost v2 applies a fixed markdown on top of the average stock cost
STORAGE_COST_V2_MARKDOWN = 0.5
DAYS_PER_MONTH = 30
DEFAULT_UNIT_STORAGE_COST = 0.01

# Next-period demand split across production sources: (MTO share, MTS share)
INBOUND_SPLIT = {
    "GFCM": (0.6, 0.4),
    "KFCM": (0.3, 0.3),
    "NFCM": (0.1, 0.3),
    PLACEHOLDER_WAREHOUSE: (0.0, 0.0),
}

# Primary shipping lanes that are closed: (warehouse, factory)
BLOCKED_LANES = [("NFCM", "GFC")]

# Custom duty applies to imports into KSA through NFCM from the other factories
CUSTOMS_WAREHOUSE = "NFCM"
CUSTOMS_COUNTRY = "KSA"
CUSTOMS_FACTORIES = ["GFC", "KFC"]
DEFAULT_CUSTOMS_MARKUP = 0.1
DEFAULT_CUSTOMS_DUTY = 0.055

# Bulk persistence chunk size (parameter-count limit, not atomicity)
DEFAULT_WRITE_CHUNK_SIZE = 5000


@dataclass(frozen=True)
class SheetLayout:
    """Fixed position of a logical sheet inside the cell store.

    Rows before ``first_data_row`` are headers. ``columns`` maps a field
    name to its 0-indexed column.
    """
    name: str
    header_row: int
    first_data_row: int
    columns: dict[str, int] = field(default_factory=dict)
    first_month_column: int | None = None
    required: bool = True


DEMAND_SHEET = SheetLayout(
    name="Demand",
    header_row=2,
    first_data_row=3,
    columns={
        "geography": 0,
        "market": 1,
        "pd_npd": 3,
        "origin": 4,
        "sku": 6,
    },
    first_month_column=9,
)

COUNTRY_MASTER_SHEET = SheetLayout(
    name="Demand country master",
    header_row=0,
    first_data_row=1,
    columns={
        "country_code": 0,
        "market": 1,
        "country_name_raw": 2,
        "default_warehouse": 3,
    },
)

ITEM_MASTER_SHEET = SheetLayout(
    name="Item master",
    header_row=1,
    first_data_row=2,
    columns={
        "sku": 1,
        "production_environment": 9,
        "inventory_days_norm": 10,
        "opening_stock_days": 11,
        "weight_per_unit": 12,
    },
)

CAPACITY_SHEET = SheetLayout(
    name="Capacity",
    header_row=0,
    first_data_row=1,
    columns={
        "factory": 0,
        "sku": 1,
        "capacity": 2,
    },
)

FREIGHT_SHEET = SheetLayout(
    name="FreightRawData",
    header_row=3,
    first_data_row=4,
    columns={
        "sku": 1,
        "origin": 4,
        "destination": 5,
        "truck_load": 6,
        "truck_freight": 7,
    },
)

STORAGE_COST_SHEET = SheetLayout(
    name="Storage costs",
    header_row=0,
    first_data_row=1,
    columns={
        "warehouse": 0,
        "unit_storage_cost": 1,
    },
    required=False,
)

OPENING_STOCK_SHEET = SheetLayout(
    name="Opening stock",
    header_row=0,
    first_data_row=1,
    columns={
        "warehouse": 0,
        "sku": 1,
        "opening_stock": 2,
    },
    required=False,
)

MAX_SUPPLY_SHEET = SheetLayout(
    name="Max supply",
    header_row=0,
    first_data_row=1,
    columns={
        "warehouse": 0,
        "sku": 1,
        "max_supply": 2,
    },
    required=False,
)

CUSTOM_COST_SHEET = SheetLayout(
    name="Custom cost",
    header_row=0,
    first_data_row=1,
    columns={
        "factory": 0,
        "sku": 1,
        "rm_price": 2,
        "factory_overhead": 3,
    },
    required=False,
)

# Export column order; formula rendering derives cell letters from these
DEMAND_EXPORT_SHEET = "T_01"
DEMAND_EXPORT_COLUMNS = [
    "CTY",
    "Market",
    "FGSKU Code",
    "Demand Cases",
    "Month",
    "Production Environment",
    "Safety Stock WH",
    "Inventory Days Norm",
    "Supply",
    "Cons",
]

SUPPLY_EXPORT_SHEET = "T_02"
SUPPLY_EXPORT_COLUMNS = [
    "CTY",
    "WH",
    "Default WH Restrictions",
    "SKU specific Restrictions",
    "FGSKUCode",
    "TrimSKU",
    "RMSKU",
    "MthNum",
    "Market",
    "Customs?",
    "TransportCostPerCase",
    "Max_GFC",
    "Max_KFC",
    "Max_NFC",
    "FGWtPerUnit",
    "Custom Cost/Unit - GFC",
    "Custom Cost/Unit - KFC",
    "Custom Cost/Unit - NFC",
    "Max_Arbit",
    "Qty_GFC",
    "Qty_KFC",
    "Qty_Total",
]

# Export field name -> export column header
EXPORT_FIELD_COLUMNS = {
    "demand": {
        "demand_cases": "Demand Cases",
        "supply": "Supply",
    },
    "supply": {
        "qty_total": "Qty_Total",
    },
}
