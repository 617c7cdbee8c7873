"""
Modelos SQLAlchemy para órdenes de compra
"""

from resto.database.database import Base
from resto.common.mixins import TimestampMixin
from resto.modules.inventory.models import QUANTITY_SCALE, UNIT_COST_SCALE
from sqlalchemy import Column, Integer, String, Numeric, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import date


class PurchaseOrderStatus:
    """Estados de la orden de compra"""
    QUOTE_REQUEST = "quote_request"
    CONFIRMED = "confirmed"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class PurchaseOrder(Base, TimestampMixin):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(100), nullable=False)
    warehouse_id = Column(Integer, nullable=False)  # Almacén que recibe la mercancía
    partner_id = Column(Integer, nullable=True)  # Proveedor
    order_date = Column(Date, nullable=False, default=date.today)
    received_date = Column(Date, nullable=True)
    status = Column(String(50), nullable=False, default=PurchaseOrderStatus.QUOTE_REQUEST, index=True)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    items = relationship(
        "PurchaseOrderItem", back_populates="purchase_order",
        cascade="all, delete-orphan", order_by="PurchaseOrderItem.id"
    )


class PurchaseOrderItem(Base, TimestampMixin):
    __tablename__ = "purchase_order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    quantity = Column(Numeric(14, QUANTITY_SCALE), nullable=False)
    unit_price = Column(Numeric(14, UNIT_COST_SCALE), nullable=False)  # Costo unitario de compra
    subtotal = Column(Numeric(10, 2), nullable=False)

    purchase_order = relationship("PurchaseOrder", back_populates="items")
