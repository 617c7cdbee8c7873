from fastapi import APIRouter, Query
from typing import List, Optional

from resto.core.config import settings
from resto.dependencies.dbDependecies import db_dependency
from resto.modules.orders.service import OrderService
from resto.modules.orders.schemas import OrderCreate, OrderOut

orders_router = APIRouter(prefix="/orders", tags=["Orders"])

@orders_router.post("", response_model=OrderOut, status_code=201)
def create_order(order_data: OrderCreate, db: db_dependency):
    """Create a draft order."""
    return OrderService(db).create_order(order_data)

@orders_router.get("", response_model=List[OrderOut])
def get_orders(
    db: db_dependency,
    state: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    return OrderService(db).get_orders(state=state, limit=limit, offset=offset)

@orders_router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, db: db_dependency):
    return OrderService(db).get_order(order_id)

@orders_router.patch("/{order_id}/complete", response_model=OrderOut)
def complete_order(order_id: int, db: db_dependency):
    """Complete the order and draw its items from inventory."""
    return OrderService(db).complete_order(order_id)

@orders_router.patch("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: int, db: db_dependency):
    return OrderService(db).cancel_order(order_id)
