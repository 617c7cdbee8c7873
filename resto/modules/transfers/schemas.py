from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from decimal import Decimal
from datetime import date, datetime

from resto.modules.inventory.models import QUANTITY_SCALE


class StockTransferItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=QUANTITY_SCALE)


class StockTransferCreate(BaseModel):
    transfer_number: str = Field(..., min_length=1, max_length=100)
    from_warehouse_id: int
    to_warehouse_id: int
    transfer_date: Optional[date] = None
    notes: Optional[str] = None
    items: List[StockTransferItemCreate] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_warehouses(self):
        if self.from_warehouse_id == self.to_warehouse_id:
            raise ValueError('Source and destination warehouses must be different')
        return self


class StockTransferItemOut(BaseModel):
    id: int
    product_id: int
    quantity: Decimal

    class Config:
        from_attributes = True


class StockTransferOut(BaseModel):
    id: int
    transfer_number: str
    from_warehouse_id: int
    to_warehouse_id: int
    transfer_date: date
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[StockTransferItemOut] = []

    class Config:
        from_attributes = True
