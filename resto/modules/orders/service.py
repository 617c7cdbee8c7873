"""
Servicio de órdenes de venta

Completing an order is the business event that draws stock: the state
change and the sale movements are committed together by the Kardex engine,
so an order is only marked done when its inventory was actually discounted.
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session, selectinload

from resto.core.config import settings
from resto.core.exceptions import NotFoundError, InvalidMovementError
from resto.modules.inventory.service import InventoryService
from resto.modules.orders.models import Order, OrderItem, OrderState
from resto.modules.orders.schemas import OrderCreate

logger = logging.getLogger(__name__)


class OrderService:
    """Servicio para órdenes de venta"""

    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order_data: OrderCreate) -> Order:
        """Crear orden en borrador con sus líneas"""
        order = Order(
            name=order_data.name,
            table_id=order_data.table_id,
            warehouse_id=order_data.warehouse_id,
            order_date=order_data.order_date or date.today(),
            note=order_data.note,
            state=OrderState.DRAFT
        )

        total = Decimal("0")
        for item_data in order_data.items:
            subtotal = item_data.quantity * item_data.price_unit
            total += subtotal
            order.items.append(OrderItem(
                product_id=item_data.product_id,
                quantity=item_data.quantity,
                price_unit=item_data.price_unit,
                price_subtotal=subtotal,
                product_notes=item_data.product_notes
            ))
        order.total_amount = total

        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int, for_update: bool = False) -> Order:
        """
        Obtener orden con sus líneas.

        for_update locks the order row and reloads it, so a state check made
        right after sees what concurrent transactions already committed.
        """
        query = self.db.query(Order).options(selectinload(Order.items)).filter(Order.id == order_id)
        if for_update:
            query = query.with_for_update(of=Order).populate_existing()
        order = query.first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def get_orders(self, state: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Order]:
        query = self.db.query(Order).options(selectinload(Order.items))
        if state:
            query = query.filter(Order.state == state)
        return query.order_by(Order.id.desc()).offset(offset).limit(limit).all()

    def complete_order(self, order_id: int) -> Order:
        """
        Completar orden y registrar la salida en inventario.

        Raises:
            InvalidMovementError: la orden ya está completada o cancelada
            InsufficientStockError: algún producto no tiene stock suficiente
        """
        order = self.get_order(order_id, for_update=True)

        if order.state == OrderState.DONE:
            raise InvalidMovementError("Order already completed")
        if order.state == OrderState.CANCELLED:
            raise InvalidMovementError("Cancelled orders cannot be completed")

        warehouse_id = order.warehouse_id or settings.SALES_WAREHOUSE_ID
        order.state = OrderState.DONE

        # The engine commits the new state together with the movements
        InventoryService(self.db).register_sale(order.id, order.items, warehouse_id)

        logger.info(f"Order {order.name} completed, stock drawn from warehouse {warehouse_id}")
        self.db.refresh(order)
        return order

    def cancel_order(self, order_id: int) -> Order:
        order = self.get_order(order_id, for_update=True)
        if order.state == OrderState.DONE:
            raise InvalidMovementError("Completed orders cannot be cancelled")

        order.state = OrderState.CANCELLED
        self.db.commit()
        self.db.refresh(order)
        return order
