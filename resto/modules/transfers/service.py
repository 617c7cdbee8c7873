"""
Servicio de transferencias de stock

Receiving a transfer writes both legs (source outflow, destination
inflow) in one Kardex transaction together with the status change.
"""

from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session, selectinload

from resto.core.exceptions import NotFoundError, InvalidMovementError
from resto.modules.inventory.service import InventoryService
from resto.modules.transfers.models import StockTransfer, StockTransferItem, TransferStatus
from resto.modules.transfers.schemas import StockTransferCreate

logger = logging.getLogger(__name__)


class StockTransferService:
    """Servicio para transferencias entre almacenes"""

    def __init__(self, db: Session):
        self.db = db

    def create_transfer(self, transfer_data: StockTransferCreate) -> StockTransfer:
        transfer = StockTransfer(
            transfer_number=transfer_data.transfer_number,
            from_warehouse_id=transfer_data.from_warehouse_id,
            to_warehouse_id=transfer_data.to_warehouse_id,
            transfer_date=transfer_data.transfer_date or date.today(),
            notes=transfer_data.notes,
            status=TransferStatus.DRAFT,
            items=[
                StockTransferItem(product_id=item.product_id, quantity=item.quantity)
                for item in transfer_data.items
            ]
        )

        self.db.add(transfer)
        self.db.commit()
        self.db.refresh(transfer)
        return transfer

    def get_transfer(self, transfer_id: int, for_update: bool = False) -> StockTransfer:
        query = self.db.query(StockTransfer).options(
            selectinload(StockTransfer.items)
        ).filter(StockTransfer.id == transfer_id)

        if for_update:
            query = query.with_for_update(of=StockTransfer).populate_existing()
        transfer = query.first()

        if not transfer:
            raise NotFoundError("Stock transfer not found")
        return transfer

    def get_transfers(self, status: Optional[str] = None,
                      limit: int = 50, offset: int = 0) -> List[StockTransfer]:
        query = self.db.query(StockTransfer).options(selectinload(StockTransfer.items))
        if status:
            query = query.filter(StockTransfer.status == status)
        return query.order_by(StockTransfer.id.desc()).offset(offset).limit(limit).all()

    def send_transfer(self, transfer_id: int) -> StockTransfer:
        """Marcar como en tránsito; el inventario se mueve al recibir."""
        transfer = self.get_transfer(transfer_id, for_update=True)
        if transfer.status != TransferStatus.DRAFT:
            raise InvalidMovementError(f"Only draft transfers can be sent (status: {transfer.status})")

        transfer.status = TransferStatus.IN_TRANSIT
        self.db.commit()
        self.db.refresh(transfer)
        return transfer

    def receive_transfer(self, transfer_id: int) -> StockTransfer:
        """Recibir transferencia: salida del origen + entrada al destino."""
        transfer = self.get_transfer(transfer_id, for_update=True)

        if transfer.status == TransferStatus.RECEIVED:
            raise InvalidMovementError("Stock transfer already received")
        if transfer.status == TransferStatus.CANCELLED:
            raise InvalidMovementError("Cancelled transfers cannot be received")

        transfer.status = TransferStatus.RECEIVED

        InventoryService(self.db).register_transfer(
            transfer.id, transfer.from_warehouse_id, transfer.to_warehouse_id, transfer.items
        )

        logger.info(
            f"Stock transfer {transfer.transfer_number} received: "
            f"{transfer.from_warehouse_id} -> {transfer.to_warehouse_id}"
        )
        self.db.refresh(transfer)
        return transfer

    def cancel_transfer(self, transfer_id: int) -> StockTransfer:
        transfer = self.get_transfer(transfer_id, for_update=True)
        if transfer.status == TransferStatus.RECEIVED:
            raise InvalidMovementError("Received transfers cannot be cancelled")

        transfer.status = TransferStatus.CANCELLED
        self.db.commit()
        self.db.refresh(transfer)
        return transfer
