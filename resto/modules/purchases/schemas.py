from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal
from datetime import date, datetime

from resto.modules.inventory.models import QUANTITY_SCALE, UNIT_COST_SCALE


class PurchaseOrderItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=QUANTITY_SCALE)
    unit_price: Decimal = Field(..., ge=0, decimal_places=UNIT_COST_SCALE)


class PurchaseOrderCreate(BaseModel):
    order_number: str = Field(..., min_length=1, max_length=100)
    warehouse_id: int
    partner_id: Optional[int] = None
    order_date: Optional[date] = None
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreate] = Field(..., min_length=1)


class PurchaseOrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class PurchaseOrderOut(BaseModel):
    id: int
    order_number: str
    warehouse_id: int
    partner_id: Optional[int] = None
    order_date: date
    received_date: Optional[date] = None
    status: str
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[PurchaseOrderItemOut] = []

    class Config:
        from_attributes = True
