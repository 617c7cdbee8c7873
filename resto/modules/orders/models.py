"""
Modelos SQLAlchemy para órdenes de venta

Solo lo necesario para que una orden completada descuente inventario:
cabecera con estado y sus líneas de productos.
"""

from resto.database.database import Base
from resto.common.mixins import TimestampMixin
from resto.modules.inventory.models import QUANTITY_SCALE
from sqlalchemy import Column, Integer, String, Numeric, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import date


class OrderState:
    """Estados de la orden"""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    DONE = "done"
    CANCELLED = "cancelled"


class Order(Base, TimestampMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)  # SO/2024/0001
    table_id = Column(Integer, nullable=True)  # Null si es para llevar
    warehouse_id = Column(Integer, nullable=True)  # Almacén del que sale el stock
    state = Column(String(50), nullable=False, default=OrderState.DRAFT, index=True)
    order_date = Column(Date, nullable=False, default=date.today)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    note = Column(Text, nullable=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")


class OrderItem(Base, TimestampMixin):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    quantity = Column(Numeric(14, QUANTITY_SCALE), nullable=False)
    price_unit = Column(Numeric(10, 2), nullable=False)  # Precio histórico
    price_subtotal = Column(Numeric(10, 2), nullable=False)
    product_notes = Column(Text, nullable=True)  # "Sin cebolla", "Extra queso"

    order = relationship("Order", back_populates="items")
