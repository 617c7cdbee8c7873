"""
Servicio de órdenes de compra

Receiving a purchase order adds its lines to the warehouse stock through
the Kardex engine, valued at each line's unit price.
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session, selectinload

from resto.core.exceptions import NotFoundError, InvalidMovementError
from resto.modules.inventory.service import InventoryService
from resto.modules.purchases.models import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from resto.modules.purchases.schemas import PurchaseOrderCreate

logger = logging.getLogger(__name__)


class PurchaseOrderService:
    """Servicio para órdenes de compra"""

    def __init__(self, db: Session):
        self.db = db

    def create_purchase_order(self, order_data: PurchaseOrderCreate) -> PurchaseOrder:
        purchase_order = PurchaseOrder(
            order_number=order_data.order_number,
            warehouse_id=order_data.warehouse_id,
            partner_id=order_data.partner_id,
            order_date=order_data.order_date or date.today(),
            notes=order_data.notes,
            status=PurchaseOrderStatus.CONFIRMED
        )

        subtotal = Decimal("0")
        for item_data in order_data.items:
            line_subtotal = item_data.quantity * item_data.unit_price
            subtotal += line_subtotal
            purchase_order.items.append(PurchaseOrderItem(
                product_id=item_data.product_id,
                quantity=item_data.quantity,
                unit_price=item_data.unit_price,
                subtotal=line_subtotal
            ))
        purchase_order.subtotal = subtotal
        purchase_order.tax = order_data.tax
        purchase_order.total = subtotal + order_data.tax

        self.db.add(purchase_order)
        self.db.commit()
        self.db.refresh(purchase_order)
        return purchase_order

    def get_purchase_order(self, purchase_order_id: int, for_update: bool = False) -> PurchaseOrder:
        query = self.db.query(PurchaseOrder).options(
            selectinload(PurchaseOrder.items)
        ).filter(PurchaseOrder.id == purchase_order_id)

        if for_update:
            # Lock and reload so the status check sees concurrent receipts
            query = query.with_for_update(of=PurchaseOrder).populate_existing()
        purchase_order = query.first()

        if not purchase_order:
            raise NotFoundError("Purchase order not found")
        return purchase_order

    def get_purchase_orders(self, status: Optional[str] = None,
                            limit: int = 50, offset: int = 0) -> List[PurchaseOrder]:
        query = self.db.query(PurchaseOrder).options(selectinload(PurchaseOrder.items))
        if status:
            query = query.filter(PurchaseOrder.status == status)
        return query.order_by(PurchaseOrder.id.desc()).offset(offset).limit(limit).all()

    def receive_purchase_order(self, purchase_order_id: int) -> PurchaseOrder:
        """Recibir orden de compra y registrar la entrada en inventario."""
        purchase_order = self.get_purchase_order(purchase_order_id, for_update=True)

        if purchase_order.status == PurchaseOrderStatus.RECEIVED:
            raise InvalidMovementError("Purchase order already received")
        if purchase_order.status == PurchaseOrderStatus.CANCELLED:
            raise InvalidMovementError("Cancelled purchase orders cannot be received")

        purchase_order.status = PurchaseOrderStatus.RECEIVED
        purchase_order.received_date = date.today()

        InventoryService(self.db).register_purchase(
            purchase_order.id, purchase_order.items, purchase_order.warehouse_id
        )

        logger.info(
            f"Purchase order {purchase_order.order_number} received "
            f"into warehouse {purchase_order.warehouse_id}"
        )
        self.db.refresh(purchase_order)
        return purchase_order

    def cancel_purchase_order(self, purchase_order_id: int) -> PurchaseOrder:
        purchase_order = self.get_purchase_order(purchase_order_id, for_update=True)
        if purchase_order.status == PurchaseOrderStatus.RECEIVED:
            raise InvalidMovementError("Received purchase orders cannot be cancelled")

        purchase_order.status = PurchaseOrderStatus.CANCELLED
        self.db.commit()
        self.db.refresh(purchase_order)
        return purchase_order
