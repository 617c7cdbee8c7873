from fastapi import APIRouter, Query
from typing import List, Optional

from resto.core.config import settings
from resto.dependencies.dbDependecies import db_dependency
from resto.modules.purchases.service import PurchaseOrderService
from resto.modules.purchases.schemas import PurchaseOrderCreate, PurchaseOrderOut

purchase_orders_router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])

@purchase_orders_router.post("", response_model=PurchaseOrderOut, status_code=201)
def create_purchase_order(order_data: PurchaseOrderCreate, db: db_dependency):
    return PurchaseOrderService(db).create_purchase_order(order_data)

@purchase_orders_router.get("", response_model=List[PurchaseOrderOut])
def get_purchase_orders(
    db: db_dependency,
    status: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    return PurchaseOrderService(db).get_purchase_orders(status=status, limit=limit, offset=offset)

@purchase_orders_router.get("/{purchase_order_id}", response_model=PurchaseOrderOut)
def get_purchase_order(purchase_order_id: int, db: db_dependency):
    return PurchaseOrderService(db).get_purchase_order(purchase_order_id)

@purchase_orders_router.patch("/{purchase_order_id}/receive", response_model=PurchaseOrderOut)
def receive_purchase_order(purchase_order_id: int, db: db_dependency):
    """Receive the purchase order and add its items to inventory."""
    return PurchaseOrderService(db).receive_purchase_order(purchase_order_id)

@purchase_orders_router.patch("/{purchase_order_id}/cancel", response_model=PurchaseOrderOut)
def cancel_purchase_order(purchase_order_id: int, db: db_dependency):
    return PurchaseOrderService(db).cancel_purchase_order(purchase_order_id)
