"""
Modelos SQLAlchemy para transferencias de stock entre almacenes
"""

from resto.database.database import Base
from resto.common.mixins import TimestampMixin
from resto.modules.inventory.models import QUANTITY_SCALE
from sqlalchemy import Column, Integer, String, Numeric, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import date


class TransferStatus:
    """Estados de la transferencia"""
    DRAFT = "draft"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class StockTransfer(Base, TimestampMixin):
    __tablename__ = "stock_transfers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transfer_number = Column(String(100), nullable=False)
    from_warehouse_id = Column(Integer, nullable=False)
    to_warehouse_id = Column(Integer, nullable=False)
    transfer_date = Column(Date, nullable=False, default=date.today)
    status = Column(String(50), nullable=False, default=TransferStatus.DRAFT, index=True)
    notes = Column(Text, nullable=True)

    items = relationship(
        "StockTransferItem", back_populates="stock_transfer",
        cascade="all, delete-orphan", order_by="StockTransferItem.id"
    )


class StockTransferItem(Base, TimestampMixin):
    __tablename__ = "stock_transfer_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stock_transfer_id = Column(Integer, ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    quantity = Column(Numeric(14, QUANTITY_SCALE), nullable=False)

    stock_transfer = relationship("StockTransfer", back_populates="items")
