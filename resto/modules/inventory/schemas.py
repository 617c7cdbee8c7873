from pydantic import BaseModel, Field
from typing import Annotated, Optional, List, Literal, Union
from decimal import Decimal
from datetime import datetime
from enum import Enum

from resto.modules.inventory.models import OriginKind, QUANTITY_SCALE


class AdjustmentDirection(str, Enum):
    IN = "in"
    OUT = "out"


# Origin of a movement: exactly one variant, discriminated on `kind`
class SaleOrigin(BaseModel):
    kind: Literal["sale"] = "sale"
    id: int


class PurchaseOrigin(BaseModel):
    kind: Literal["purchase"] = "purchase"
    id: int


class TransferOrigin(BaseModel):
    kind: Literal["transfer"] = "transfer"
    id: int


class ManualAdjustmentOrigin(BaseModel):
    kind: Literal["manual_adjustment"] = "manual_adjustment"


Origin = Annotated[
    Union[SaleOrigin, PurchaseOrigin, TransferOrigin, ManualAdjustmentOrigin],
    Field(discriminator="kind"),
]


def origin_to_columns(origin) -> tuple:
    """Split an Origin into the (origin_kind, origin_id) columns."""
    return OriginKind(origin.kind), getattr(origin, "id", None)


def origin_from_columns(kind: OriginKind, origin_id: Optional[int]):
    """Rebuild the Origin variant stored in (origin_kind, origin_id)."""
    if kind == OriginKind.SALE:
        return SaleOrigin(id=origin_id)
    if kind == OriginKind.PURCHASE:
        return PurchaseOrigin(id=origin_id)
    if kind == OriginKind.TRANSFER:
        return TransferOrigin(id=origin_id)
    return ManualAdjustmentOrigin()


# Line items accepted by the engine
class SaleItem(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0, description="Units drawn from stock")

    class Config:
        from_attributes = True


class PurchaseItem(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0, description="Units received")
    unit_price: Decimal = Field(..., ge=0, description="Unit purchase cost")

    class Config:
        from_attributes = True


class TransferItem(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0, description="Units moved between warehouses")

    class Config:
        from_attributes = True


class AdjustmentCreate(BaseModel):
    warehouse_id: int
    product_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=QUANTITY_SCALE)
    type: AdjustmentDirection
    reason: Optional[str] = Field(None, max_length=400)
    unit_cost: Optional[Decimal] = Field(None, ge=0, description="Only used for 'in' adjustments")


# Output schemas
class MovementOut(BaseModel):
    id: int
    product_id: int
    warehouse_id: int
    sequence: int
    origin: Origin
    detail: str
    quantity_in: Decimal
    cost_in: Decimal
    total_in: Decimal
    quantity_out: Decimal
    cost_out: Decimal
    total_out: Decimal
    quantity_balance: Decimal
    cost_balance: Decimal
    total_balance: Decimal
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CurrentStockOut(BaseModel):
    product_id: int
    warehouse_id: int
    quantity: Decimal


class StockValidationOut(BaseModel):
    product_id: int
    warehouse_id: int
    required: Decimal
    sufficient: bool
    available: Decimal


class KardexOut(BaseModel):
    product_id: int
    warehouse_id: int
    movements: List[MovementOut]
    total_in: Decimal
    total_out: Decimal
    final_balance: Decimal
    final_cost_balance: Decimal
    final_total_balance: Decimal


class LowStockOut(BaseModel):
    threshold: Decimal
    items: List[MovementOut]
    total_items: int
