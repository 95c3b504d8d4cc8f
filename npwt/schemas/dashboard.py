# npwt/schemas/dashboard.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import date, time
from uuid import UUID


class LowStockProduct(BaseModel):
    id: UUID
    code: str
    name: str
    stock: int
    minimum_stock: int
    status: str


class ProcedureCard(BaseModel):
    id: UUID
    patient_name: Optional[str] = None
    machine_name: Optional[str] = None
    surgeon_name: str
    procedure_date: date
    start_time: time
    end_time: Optional[time] = None
    status: str


class DashboardOverview(BaseModel):
    day: date
    active_patients: int
    today_procedures: int
    low_stock_count: int
    active_machines: int
    low_stock_products: List[LowStockProduct]
    active_procedures: List[ProcedureCard]
    recent_closed_procedures: List[ProcedureCard]
