"""
Modelo SQLAlchemy del Kardex (movimientos de inventario)

Cada fila es un movimiento inmutable de un producto en un almacén y guarda
el saldo resultante después de aplicarlo. El saldo actual de una partición
(producto, almacén) es el de su fila más reciente por id.
"""

from resto.database.database import Base
from resto.common.mixins import CreatedAtMixin
from sqlalchemy import Column, Integer, String, Numeric, Enum, Index, UniqueConstraint, CheckConstraint
import enum


# ===== ENUMS =====

class OriginKind(enum.Enum):
    """Origen del movimiento"""
    SALE = "sale"                            # Venta (orden completada)
    PURCHASE = "purchase"                    # Compra (orden de compra recibida)
    TRANSFER = "transfer"                    # Transferencia entre almacenes
    MANUAL_ADJUSTMENT = "manual_adjustment"  # Ajuste manual


# Precision of the stored amounts
QUANTITY_SCALE = 4
UNIT_COST_SCALE = 4
MONEY_SCALE = 2


# ===== MODELOS =====

class Movement(Base, CreatedAtMixin):
    """
    Movimiento de inventario (Kardex)

    Only one origin reference exists per row: origin_kind says which
    document origin_id points to, and manual adjustments carry none.
    """
    __tablename__ = "inventories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, nullable=False)
    warehouse_id = Column(Integer, nullable=False)
    sequence = Column(Integer, nullable=False)  # Posición dentro de la partición, desde 1

    origin_kind = Column(Enum(OriginKind, name="inventory_origin_kind"), nullable=False, index=True)
    origin_id = Column(Integer, nullable=True)

    detail = Column(String(500), nullable=False, default="")

    # Entradas
    quantity_in = Column(Numeric(14, QUANTITY_SCALE), nullable=False, default=0)
    cost_in = Column(Numeric(14, UNIT_COST_SCALE), nullable=False, default=0)
    total_in = Column(Numeric(14, MONEY_SCALE), nullable=False, default=0)

    # Salidas
    quantity_out = Column(Numeric(14, QUANTITY_SCALE), nullable=False, default=0)
    cost_out = Column(Numeric(14, UNIT_COST_SCALE), nullable=False, default=0)
    total_out = Column(Numeric(14, MONEY_SCALE), nullable=False, default=0)

    # Saldos (acumulados)
    quantity_balance = Column(Numeric(14, QUANTITY_SCALE), nullable=False, default=0)
    cost_balance = Column(Numeric(14, UNIT_COST_SCALE), nullable=False, default=0)
    total_balance = Column(Numeric(14, MONEY_SCALE), nullable=False, default=0)

    __table_args__ = (
        Index("ix_inventories_partition_latest", "product_id", "warehouse_id", "id"),
        UniqueConstraint("product_id", "warehouse_id", "sequence", name="uq_inventories_partition_sequence"),
        CheckConstraint("quantity_balance >= 0", name="ck_inventories_balance_non_negative"),
        CheckConstraint(
            "(origin_kind = 'MANUAL_ADJUSTMENT' AND origin_id IS NULL) "
            "OR (origin_kind <> 'MANUAL_ADJUSTMENT' AND origin_id IS NOT NULL)",
            name="ck_inventories_origin_reference",
        ),
    )

    @property
    def origin(self):
        from resto.modules.inventory.schemas import origin_from_columns
        return origin_from_columns(self.origin_kind, self.origin_id)

    def __repr__(self):
        return (
            f"<Movement id={self.id} product={self.product_id} warehouse={self.warehouse_id} "
            f"in={self.quantity_in} out={self.quantity_out} balance={self.quantity_balance}>"
        )
