from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal
from datetime import date, datetime

from resto.modules.inventory.models import QUANTITY_SCALE


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=QUANTITY_SCALE)
    price_unit: Decimal = Field(..., ge=0, decimal_places=2)
    product_notes: Optional[str] = None


class OrderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    table_id: Optional[int] = None
    warehouse_id: Optional[int] = Field(None, description="Warehouse stock is drawn from on completion")
    order_date: Optional[date] = None
    note: Optional[str] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: Decimal
    price_unit: Decimal
    price_subtotal: Decimal
    product_notes: Optional[str] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    name: str
    table_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    state: str
    order_date: date
    total_amount: Decimal
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemOut] = []

    class Config:
        from_attributes = True
