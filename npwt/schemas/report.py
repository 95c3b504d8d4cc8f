# npwt/schemas/report.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime
from enum import Enum


class ExportFormat(str, Enum):
    CSV = "csv"
    EXCEL = "excel"


class ReportKind(str, Enum):
    CONSUMPTION = "consumption"
    INVENTORY = "inventory"


# ============================
# CONSOMMATION
# ============================
class ConsumptionRow(BaseModel):
    product_id: str
    product_name: str
    product_code: str
    category: str
    total_consumed: int
    unit_price: float
    total_value: float
    procedures_count: int
    patients_count: int


class MostUsedProduct(BaseModel):
    name: str
    quantity: int


class ProcedureSummary(BaseModel):
    total_procedures: int
    total_value: float
    avg_value_per_procedure: float
    most_used_product: MostUsedProduct


class ConsumptionReport(BaseModel):
    start_date: date
    end_date: date
    generated_at: datetime
    rows: List[ConsumptionRow]
    summary: ProcedureSummary


# ============================
# INVENTAIRE
# ============================
class InventoryRow(BaseModel):
    product_id: str
    product_name: str
    product_code: str
    category: str
    current_stock: int
    minimum_stock: int
    unit_price: float
    stock_value: float
    status: str


class InventoryTotals(BaseModel):
    total_inventory_value: float
    low_stock_value: float
    highest_stock_product: MostUsedProduct
    total_products: int
    low_stock_count: int
    out_of_stock_count: int


class InventoryReport(BaseModel):
    generated_at: datetime
    rows: List[InventoryRow]
    totals: InventoryTotals


# ============================
# RÉCONCILIATION
# ============================
class ReconciliationRow(BaseModel):
    product_id: str
    product_code: str
    product_name: str
    cached_stock: int
    ledger_stock: int
    difference: int


class ReconciliationReport(BaseModel):
    checked_products: int
    consistent: bool
    discrepancies: List[ReconciliationRow]
    generated_at: Optional[datetime] = None
