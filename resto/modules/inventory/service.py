from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from pydantic import ValidationError

from resto.core.config import settings
from resto.core.exceptions import (
    RestoAPIError, NotFoundError, StorageError, ConcurrencyConflictError,
    InvalidMovementError, InsufficientStockError
)
from resto.modules.inventory.balance import Balance, ZERO, normalize_quantity
from resto.modules.inventory.models import Movement, OriginKind
from resto.modules.inventory.schemas import (
    SaleItem, PurchaseItem, TransferItem, AdjustmentDirection,
    SaleOrigin, PurchaseOrigin, TransferOrigin, ManualAdjustmentOrigin,
    MovementOut, KardexOut, LowStockOut, origin_to_columns
)

logger = logging.getLogger(__name__)

SEQUENCE_CONSTRAINT = "uq_inventories_partition_sequence"


class InventoryService:
    """
    Kardex engine: records stock movements as an append-only ledger.

    Every write operation runs in one transaction on the injected session.
    The latest row of each touched (product, warehouse) partition is locked
    with SELECT ... FOR UPDATE before its balance is read, so concurrent
    writers on the same partition serialize. The unique sequence per
    partition rejects the one race a row lock cannot cover: two first
    writes into an empty partition.
    """

    def __init__(self, db: Session, lock_timeout_ms: Optional[int] = None,
                 statement_timeout_ms: Optional[int] = None):
        self.db = db
        self.lock_timeout_ms = settings.DB_LOCK_TIMEOUT_MS if lock_timeout_ms is None else lock_timeout_ms
        self.statement_timeout_ms = (
            settings.DB_STATEMENT_TIMEOUT_MS if statement_timeout_ms is None else statement_timeout_ms
        )

    # ===== WRITE OPERATIONS =====

    def register_sale(self, order_id: int, items: Iterable, warehouse_id: int) -> List[Movement]:
        """Registrar salida de inventario por venta (all-or-nothing)."""
        sale_items = self._parse_items(SaleItem, items)
        origin = SaleOrigin(id=order_id)

        with self._transaction("register_sale"):
            self._lock_partitions((item.product_id, warehouse_id) for item in sale_items)
            movements = [
                self._append_outflow(
                    item.product_id, warehouse_id, item.quantity, origin,
                    f"Venta - Order #{order_id}"
                )
                for item in sale_items
            ]

        logger.info(f"Sale registered: order={order_id} warehouse={warehouse_id} movements={len(movements)}")
        return movements

    def register_purchase(self, purchase_order_id: int, items: Iterable, warehouse_id: int) -> List[Movement]:
        """Registrar entrada de inventario por compra (all-or-nothing)."""
        purchase_items = self._parse_items(PurchaseItem, items)
        origin = PurchaseOrigin(id=purchase_order_id)

        with self._transaction("register_purchase"):
            self._lock_partitions((item.product_id, warehouse_id) for item in purchase_items)
            movements = [
                self._append_inflow(
                    item.product_id, warehouse_id, item.quantity, item.unit_price, origin,
                    f"Compra - Purchase Order #{purchase_order_id}"
                )
                for item in purchase_items
            ]

        logger.info(
            f"Purchase registered: purchase_order={purchase_order_id} "
            f"warehouse={warehouse_id} movements={len(movements)}"
        )
        return movements

    def register_transfer(self, transfer_id: int, from_warehouse_id: int, to_warehouse_id: int,
                          items: Iterable) -> List[Movement]:
        """
        Registrar transferencia entre almacenes (salida + entrada).

        Each item yields two movements: an outflow at the source, checked
        for sufficient stock, and an inflow at the destination valued at the
        cost the source released. Returns them in that order per item.
        """
        if from_warehouse_id == to_warehouse_id:
            raise InvalidMovementError("Source and destination warehouses must be different")

        transfer_items = self._parse_items(TransferItem, items)
        origin = TransferOrigin(id=transfer_id)

        movements = []
        with self._transaction("register_transfer"):
            self._lock_partitions(
                key
                for item in transfer_items
                for key in ((item.product_id, from_warehouse_id), (item.product_id, to_warehouse_id))
            )
            for item in transfer_items:
                outflow = self._append_outflow(
                    item.product_id, from_warehouse_id, item.quantity, origin,
                    f"Transferencia salida - Transfer #{transfer_id}"
                )
                inflow = self._append_inflow(
                    item.product_id, to_warehouse_id, item.quantity, outflow.cost_out, origin,
                    f"Transferencia entrada - Transfer #{transfer_id}"
                )
                movements.extend([outflow, inflow])

        logger.info(
            f"Transfer registered: transfer={transfer_id} "
            f"{from_warehouse_id}->{to_warehouse_id} movements={len(movements)}"
        )
        return movements

    def register_adjustment(self, product_id: int, warehouse_id: int, quantity: Decimal,
                            direction: AdjustmentDirection, reason: Optional[str] = None,
                            unit_cost: Optional[Decimal] = None) -> Movement:
        """
        Ajuste manual de inventario.

        Corrections never touch existing rows: the adjustment is appended as
        a compensating movement. Outgoing adjustments obey the same
        non-negative rule as sales.
        """
        direction = AdjustmentDirection(direction)
        if normalize_quantity(quantity) <= 0:
            raise InvalidMovementError("Adjustment quantity must be greater than zero at ledger precision")

        origin = ManualAdjustmentOrigin()
        label = "entrada" if direction == AdjustmentDirection.IN else "salida"
        detail = f"Ajuste manual {label}" + (f" - {reason}" if reason else "")

        with self._transaction("register_adjustment"):
            self._lock_partitions([(product_id, warehouse_id)])
            if direction == AdjustmentDirection.IN:
                movement = self._append_inflow(product_id, warehouse_id, quantity, unit_cost, origin, detail)
            else:
                movement = self._append_outflow(product_id, warehouse_id, quantity, origin, detail)

        logger.info(
            f"Adjustment registered: product={product_id} warehouse={warehouse_id} "
            f"{direction.value} {movement.quantity_in or movement.quantity_out}"
        )
        return movement

    # ===== READ OPERATIONS =====

    def validate_stock(self, product_id: int, warehouse_id: int, required_qty: Decimal) -> Tuple[bool, Decimal]:
        """
        Verificar si hay stock suficiente antes de una venta.

        Advisory only: nothing is locked or reserved, writers re-check inside
        their own transaction. A partition without history reports
        (False, 0); a broken database raises StorageError instead.
        """
        with self._reading("validate_stock"):
            latest = self._latest(product_id, warehouse_id)

        if latest is None:
            return False, ZERO

        available = Decimal(latest.quantity_balance)
        return available >= normalize_quantity(required_qty), available

    def get_current_stock(self, product_id: int, warehouse_id: int) -> Decimal:
        """Stock actual; NotFoundError when the partition has no movements."""
        with self._reading("get_current_stock"):
            latest = self._latest(product_id, warehouse_id)

        if latest is None:
            raise NotFoundError(
                f"No inventory records found for product {product_id} in warehouse {warehouse_id}"
            )
        return Decimal(latest.quantity_balance)

    def get_movement(self, movement_id: int) -> Movement:
        with self._reading("get_movement"):
            movement = self.db.get(Movement, movement_id)

        if movement is None:
            raise NotFoundError(f"Inventory movement {movement_id} not found")
        return movement

    def get_movements(
        self,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        origin_kind: Optional[OriginKind] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Movement]:
        """Get inventory movements with filters, newest first."""
        query = self.db.query(Movement)

        if product_id is not None:
            query = query.filter(Movement.product_id == product_id)
        if warehouse_id is not None:
            query = query.filter(Movement.warehouse_id == warehouse_id)
        if origin_kind is not None:
            query = query.filter(Movement.origin_kind == OriginKind(origin_kind))

        with self._reading("get_movements"):
            return query.order_by(Movement.id.desc()).offset(offset).limit(limit).all()

    def get_kardex(self, product_id: int, warehouse_id: int,
                   limit: Optional[int] = None, offset: int = 0) -> KardexOut:
        """
        Kardex de un producto en un almacén.

        Movements come back in ledger order; the totals always cover the
        whole partition, independent of the page requested.
        """
        partition = (Movement.product_id == product_id, Movement.warehouse_id == warehouse_id)

        with self._reading("get_kardex"):
            query = self.db.query(Movement).filter(*partition).order_by(Movement.id.asc()).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            movements = query.all()

            total_in, total_out = self.db.query(
                func.coalesce(func.sum(Movement.quantity_in), 0),
                func.coalesce(func.sum(Movement.quantity_out), 0),
            ).filter(*partition).one()

            final = Balance.from_movement(self._latest(product_id, warehouse_id))

        return KardexOut(
            product_id=product_id,
            warehouse_id=warehouse_id,
            movements=[MovementOut.model_validate(m) for m in movements],
            total_in=Decimal(total_in),
            total_out=Decimal(total_out),
            final_balance=final.quantity,
            final_cost_balance=final.cost,
            final_total_balance=final.total,
        )

    def get_low_stock(self, threshold: Optional[Decimal] = None) -> LowStockOut:
        """Latest movement of every partition whose balance is below threshold."""
        threshold = Decimal(settings.LOW_STOCK_THRESHOLD if threshold is None else threshold)

        latest_ids = select(func.max(Movement.id)).group_by(Movement.product_id, Movement.warehouse_id)

        with self._reading("get_low_stock"):
            rows = self.db.query(Movement).filter(
                Movement.id.in_(latest_ids),
                Movement.quantity_balance < threshold
            ).order_by(Movement.quantity_balance.asc(), Movement.id.asc()).all()

        return LowStockOut(
            threshold=threshold,
            items=[MovementOut.model_validate(m) for m in rows],
            total_items=len(rows),
        )

    # ===== HELPERS =====

    @staticmethod
    def _parse_items(schema, items) -> list:
        try:
            return [schema.model_validate(item) for item in items]
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"])
            raise InvalidMovementError(f"Invalid {schema.__name__}: {field} {error['msg']}") from e

    @staticmethod
    def _stored_quantity(product_id: int, quantity) -> Decimal:
        """Quantity at ledger precision; it must still be positive after rounding."""
        stored = normalize_quantity(quantity)
        if stored <= 0:
            raise InvalidMovementError(
                f"Quantity {quantity} for product {product_id} rounds to zero at ledger precision"
            )
        return stored

    def _latest(self, product_id: int, warehouse_id: int, for_update: bool = False) -> Optional[Movement]:
        """Most recent movement of the partition (ORDER BY id DESC LIMIT 1)."""
        query = self.db.query(Movement).filter(
            Movement.product_id == product_id,
            Movement.warehouse_id == warehouse_id
        ).order_by(Movement.id.desc())

        if for_update:
            query = query.with_for_update()
        return query.first()

    def _lock_partitions(self, partitions) -> None:
        # Sorted so two writers touching the same partitions lock them in the same order
        for product_id, warehouse_id in sorted(set(partitions)):
            self._latest(product_id, warehouse_id, for_update=True)

    def _append_outflow(self, product_id: int, warehouse_id: int, quantity, origin, detail: str) -> Movement:
        quantity = self._stored_quantity(product_id, quantity)
        prior = Balance.from_movement(self._latest(product_id, warehouse_id, for_update=True))

        if not prior.covers(quantity):
            raise InsufficientStockError(product_id, warehouse_id, prior.quantity, quantity)

        return self._append(product_id, warehouse_id, prior.issue(quantity), origin, detail)

    def _append_inflow(self, product_id: int, warehouse_id: int, quantity, unit_cost,
                       origin, detail: str) -> Movement:
        quantity = self._stored_quantity(product_id, quantity)
        prior = Balance.from_movement(self._latest(product_id, warehouse_id, for_update=True))
        return self._append(product_id, warehouse_id, prior.receive(quantity, unit_cost), origin, detail)

    def _append(self, product_id: int, warehouse_id: int, entry, origin, detail: str) -> Movement:
        origin_kind, origin_id = origin_to_columns(origin)
        movement = Movement(
            product_id=product_id,
            warehouse_id=warehouse_id,
            origin_kind=origin_kind,
            origin_id=origin_id,
            detail=detail[:500],
            **entry.as_columns()
        )
        self.db.add(movement)
        # Flush so the next lookup in this batch sees the new balance
        self.db.flush()
        return movement

    def _apply_timeouts(self) -> None:
        if self.db.get_bind().dialect.name != "postgresql":
            return
        self.db.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))
        self.db.execute(text(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}"))

    @contextmanager
    def _transaction(self, operation: str):
        """Commit everything done in the block, or roll all of it back and raise."""
        try:
            self._apply_timeouts()
            yield
            self.db.commit()
        except RestoAPIError as e:
            self.db.rollback()
            logger.warning(f"{operation} rejected and rolled back: {e}")
            raise
        except IntegrityError as e:
            self.db.rollback()
            if SEQUENCE_CONSTRAINT in str(e.orig) or "inventories.sequence" in str(e.orig):
                logger.warning(f"{operation} lost a concurrent append race, rolled back")
                raise ConcurrencyConflictError(
                    "Another operation wrote to the same inventory partition; retry the request"
                ) from e
            logger.error(f"{operation} failed with integrity error: {e}", exc_info=True)
            raise StorageError(f"Failed to write inventory movements: {e.orig}") from e
        except OperationalError as e:
            self.db.rollback()
            logger.error(f"{operation} failed, database unavailable or timed out: {e}", exc_info=True)
            raise StorageError(f"Inventory storage unavailable: {e.orig}", retryable=True) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise StorageError(f"Failed to write inventory movements: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def _reading(self, operation: str):
        try:
            yield
        except OperationalError as e:
            self.db.rollback()
            logger.error(f"{operation} failed, database unavailable: {e}", exc_info=True)
            raise StorageError(f"Inventory storage unavailable: {e.orig}", retryable=True) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{operation} failed: {e}", exc_info=True)
            raise StorageError(f"Failed to read inventory movements: {e}") from e
