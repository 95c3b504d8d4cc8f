# npwt/schemas/machine.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, date
from uuid import UUID
from enum import Enum


class MachineStatusEnum(str, Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class MachineBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    serial_number: Optional[str] = Field(None, max_length=100)
    model: str = Field("VAC Therapy Unit", max_length=100)
    lot: Optional[str] = Field(None, max_length=100)
    status: MachineStatusEnum = MachineStatusEnum.ACTIVE
    location: Optional[str] = Field(None, max_length=200)
    purchase_date: Optional[date] = None
    last_maintenance: Optional[date] = None
    observations: Optional[str] = None


class MachineCreate(MachineBase):
    pass


class MachineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    serial_number: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    lot: Optional[str] = Field(None, max_length=100)
    status: Optional[MachineStatusEnum] = None
    location: Optional[str] = Field(None, max_length=200)
    purchase_date: Optional[date] = None
    last_maintenance: Optional[date] = None
    observations: Optional[str] = None


class MachineInDB(MachineBase):
    id: UUID
    status: str
    in_use: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
