"""
Helper para el cálculo de saldos del Kardex (promedio ponderado)

Pure arithmetic on the running balance of one (product, warehouse)
partition. InventoryService reads the latest row, asks this module for the
entry and the new balance, and persists both in a single Movement.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from resto.modules.inventory.models import QUANTITY_SCALE, UNIT_COST_SCALE, MONEY_SCALE

ZERO = Decimal("0")
QUANTITY_STEP = Decimal(1).scaleb(-QUANTITY_SCALE)
UNIT_COST_STEP = Decimal(1).scaleb(-UNIT_COST_SCALE)
MONEY_STEP = Decimal(1).scaleb(-MONEY_SCALE)


def _q(value: Decimal, step: Decimal) -> Decimal:
    return Decimal(value).quantize(step, rounding=ROUND_HALF_UP)


def normalize_quantity(value) -> Decimal:
    """Round a requested quantity to the precision the ledger stores."""
    return _q(Decimal(str(value)), QUANTITY_STEP)


@dataclass(frozen=True)
class Balance:
    """Saldo de una partición después de un movimiento"""
    quantity: Decimal = ZERO
    cost: Decimal = ZERO
    total: Decimal = ZERO
    sequence: int = 0

    @classmethod
    def from_movement(cls, movement) -> "Balance":
        """Balance carried by a stored movement, or zero when there is none."""
        if movement is None:
            return cls()
        return cls(
            quantity=Decimal(movement.quantity_balance),
            cost=Decimal(movement.cost_balance),
            total=Decimal(movement.total_balance),
            sequence=movement.sequence,
        )

    def covers(self, quantity: Decimal) -> bool:
        return self.quantity >= quantity

    def receive(self, quantity: Decimal, unit_cost: Optional[Decimal] = None) -> "Entry":
        """
        Entrada: suma cantidad y valor, recalcula el costo promedio

        Args:
            quantity: Unidades que entran (> 0)
            unit_cost: Costo unitario; si es None se usa el promedio vigente

        Returns:
            Entry con los montos de entrada y el nuevo saldo
        """
        quantity = _q(quantity, QUANTITY_STEP)
        cost_in = _q(self.cost if unit_cost is None else unit_cost, UNIT_COST_STEP)
        total_in = _q(quantity * cost_in, MONEY_STEP)

        new_quantity = self.quantity + quantity
        new_total = self.total + total_in
        new_cost = _q(new_total / new_quantity, UNIT_COST_STEP) if new_quantity > 0 else self.cost

        return Entry(
            quantity_in=quantity,
            cost_in=cost_in,
            total_in=total_in,
            balance=Balance(new_quantity, new_cost, new_total, self.sequence + 1),
        )

    def issue(self, quantity: Decimal) -> "Entry":
        """
        Salida: descuenta al costo promedio vigente

        The caller must have checked covers(quantity); this method never
        produces a negative balance silently.
        """
        quantity = _q(quantity, QUANTITY_STEP)
        if not self.covers(quantity):
            raise ValueError(f"cannot issue {quantity} from a balance of {self.quantity}")

        new_quantity = self.quantity - quantity
        cost_out = self.cost
        if new_quantity == 0:
            # Emptying the partition releases its whole value
            total_out = self.total
        else:
            total_out = min(_q(quantity * cost_out, MONEY_STEP), self.total)
        new_total = self.total - total_out

        return Entry(
            quantity_out=quantity,
            cost_out=cost_out,
            total_out=total_out,
            balance=Balance(new_quantity, self.cost, new_total, self.sequence + 1),
        )


@dataclass(frozen=True)
class Entry:
    """Montos de un movimiento y el saldo resultante"""
    balance: Balance
    quantity_in: Decimal = ZERO
    cost_in: Decimal = ZERO
    total_in: Decimal = ZERO
    quantity_out: Decimal = ZERO
    cost_out: Decimal = ZERO
    total_out: Decimal = ZERO

    def as_columns(self) -> dict:
        return {
            "quantity_in": self.quantity_in,
            "cost_in": self.cost_in,
            "total_in": self.total_in,
            "quantity_out": self.quantity_out,
            "cost_out": self.cost_out,
            "total_out": self.total_out,
            "quantity_balance": self.balance.quantity,
            "cost_balance": self.balance.cost,
            "total_balance": self.balance.total,
            "sequence": self.balance.sequence,
        }
