from fastapi import APIRouter, Query
from typing import List, Optional
from decimal import Decimal

from resto.core.config import settings
from resto.dependencies.dbDependecies import db_dependency
from resto.modules.inventory.models import OriginKind
from resto.modules.inventory.service import InventoryService
from resto.modules.inventory.schemas import (
    MovementOut, CurrentStockOut, StockValidationOut, KardexOut, LowStockOut, AdjustmentCreate
)

inventory_router = APIRouter(prefix="/inventories", tags=["Inventory"])

@inventory_router.get("", response_model=List[MovementOut])
def get_movements(
    db: db_dependency,
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    origin_kind: Optional[OriginKind] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    """Get inventory movements with filters."""
    service = InventoryService(db)
    return service.get_movements(
        product_id=product_id,
        warehouse_id=warehouse_id,
        origin_kind=origin_kind,
        limit=limit,
        offset=offset
    )

@inventory_router.get("/low-stock", response_model=LowStockOut)
def get_low_stock(
    db: db_dependency,
    threshold: Optional[Decimal] = Query(None, ge=0)
):
    """Partitions whose current balance is below the threshold."""
    service = InventoryService(db)
    return service.get_low_stock(threshold)

@inventory_router.post("/adjust", response_model=MovementOut, status_code=201)
def adjust_inventory(adjustment: AdjustmentCreate, db: db_dependency):
    """Append a manual adjustment movement."""
    service = InventoryService(db)
    return service.register_adjustment(
        product_id=adjustment.product_id,
        warehouse_id=adjustment.warehouse_id,
        quantity=adjustment.quantity,
        direction=adjustment.type,
        reason=adjustment.reason,
        unit_cost=adjustment.unit_cost
    )

@inventory_router.get("/warehouse/{warehouse_id}/product/{product_id}", response_model=CurrentStockOut)
def get_current_stock(warehouse_id: int, product_id: int, db: db_dependency):
    """Current stock of a product in a warehouse."""
    service = InventoryService(db)
    quantity = service.get_current_stock(product_id, warehouse_id)
    return CurrentStockOut(product_id=product_id, warehouse_id=warehouse_id, quantity=quantity)

@inventory_router.get("/warehouse/{warehouse_id}/product/{product_id}/validate", response_model=StockValidationOut)
def validate_stock(
    warehouse_id: int,
    product_id: int,
    db: db_dependency,
    required_qty: Decimal = Query(..., gt=0)
):
    """Advisory stock check; does not reserve anything."""
    service = InventoryService(db)
    sufficient, available = service.validate_stock(product_id, warehouse_id, required_qty)
    return StockValidationOut(
        product_id=product_id,
        warehouse_id=warehouse_id,
        required=required_qty,
        sufficient=sufficient,
        available=available
    )

@inventory_router.get("/warehouse/{warehouse_id}/product/{product_id}/kardex", response_model=KardexOut)
def get_kardex(
    warehouse_id: int,
    product_id: int,
    db: db_dependency,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0)
):
    """Chronological movements of one partition with totals."""
    service = InventoryService(db)
    return service.get_kardex(product_id, warehouse_id, limit=limit, offset=offset)

@inventory_router.get("/{movement_id}", response_model=MovementOut)
def get_movement(movement_id: int, db: db_dependency):
    """Get a single inventory movement."""
    service = InventoryService(db)
    return service.get_movement(movement_id)
