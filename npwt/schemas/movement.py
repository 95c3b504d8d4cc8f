# npwt/schemas/movement.py
from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime
from uuid import UUID


class MovementInDB(BaseModel):
    id: UUID
    product_id: UUID
    movement_type: str
    quantity: int
    reference_type: Optional[str] = None
    reference_id: Optional[UUID] = None
    notes: Optional[str] = None
    display_notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MovementSummary(BaseModel):
    total_in: int
    total_out: int
    current_stock: int


class MovementHistoryResponse(BaseModel):
    product_id: UUID
    product_name: str
    product_code: str
    movements: List[MovementInDB]
    summary: MovementSummary
