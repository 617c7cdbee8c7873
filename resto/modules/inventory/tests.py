"""
Tests para el módulo de Inventario (Kardex)

Cubren:
- Aritmética de saldos (promedio ponderado)
- Ventas, compras, transferencias y ajustes con saldo acumulado
- Atomicidad: una operación escribe todos sus movimientos o ninguno
- Saldo nunca negativo y conservación en transferencias
- Consultas: stock actual, validación, kardex, movimientos, bajo stock
- Endpoints HTTP y formato de errores
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import OperationalError

from resto.core.exceptions import (
    NotFoundError, StorageError, ConcurrencyConflictError,
    InvalidMovementError, InsufficientStockError
)
from resto.modules.inventory.balance import Balance
from resto.modules.inventory.models import Movement, OriginKind
from resto.modules.inventory.schemas import (
    SaleItem, PurchaseItem, TransferItem, AdjustmentDirection,
    SaleOrigin, PurchaseOrigin, TransferOrigin, ManualAdjustmentOrigin
)
from resto.modules.inventory.service import InventoryService


# ===== FIXTURES =====

@pytest.fixture
def service(db_session):
    return InventoryService(db_session)


@pytest.fixture
def stocked(service):
    """Producto 10 en almacén 4 con 50 unidades a 2.00"""
    service.register_purchase(1, [PurchaseItem(product_id=10, quantity=50, unit_price=Decimal("2.00"))], 4)
    return service


def movement_count(db_session) -> int:
    return db_session.query(Movement).count()


def partition(db_session, product_id, warehouse_id):
    return db_session.query(Movement).filter(
        Movement.product_id == product_id,
        Movement.warehouse_id == warehouse_id
    ).order_by(Movement.id.asc()).all()


# ===== TESTS DE SALDOS =====

class TestBalance:
    """Tests para el cálculo de saldos"""

    def test_receive_on_empty_partition(self):
        entry = Balance().receive(Decimal("50"), Decimal("2.00"))

        assert entry.quantity_in == Decimal("50")
        assert entry.total_in == Decimal("100.00")
        assert entry.balance.quantity == Decimal("50")
        assert entry.balance.cost == Decimal("2.0000")
        assert entry.balance.total == Decimal("100.00")
        assert entry.balance.sequence == 1

    def test_receive_recomputes_weighted_average(self):
        first = Balance().receive(Decimal("10"), Decimal("2")).balance
        second = first.receive(Decimal("10"), Decimal("4")).balance

        assert second.quantity == Decimal("20")
        assert second.cost == Decimal("3.0000")
        assert second.total == Decimal("60.00")
        assert second.sequence == 2

    def test_receive_without_cost_uses_current_average(self):
        balance = Balance(quantity=Decimal("5"), cost=Decimal("3"), total=Decimal("15"), sequence=1)
        entry = balance.receive(Decimal("5"))

        assert entry.cost_in == Decimal("3.0000")
        assert entry.balance.cost == Decimal("3.0000")

    def test_issue_at_average_cost(self):
        balance = Balance(quantity=Decimal("20"), cost=Decimal("3"), total=Decimal("60"), sequence=2)
        entry = balance.issue(Decimal("5"))

        assert entry.quantity_out == Decimal("5")
        assert entry.cost_out == Decimal("3")
        assert entry.total_out == Decimal("15.00")
        assert entry.balance.quantity == Decimal("15")
        assert entry.balance.total == Decimal("45.00")
        assert entry.balance.sequence == 3

    def test_issue_everything_releases_whole_value(self):
        balance = Balance(quantity=Decimal("3"), cost=Decimal("0.3333"), total=Decimal("1.00"), sequence=1)
        entry = balance.issue(Decimal("3"))

        assert entry.total_out == Decimal("1.00")
        assert entry.balance.quantity == 0
        assert entry.balance.total == 0

    def test_issue_more_than_balance_raises(self):
        with pytest.raises(ValueError):
            Balance(quantity=Decimal("1")).issue(Decimal("2"))

    def test_from_movement_none_is_zero(self):
        balance = Balance.from_movement(None)
        assert balance.quantity == 0
        assert balance.sequence == 0


# ===== TESTS DE COMPRAS Y VENTAS =====

class TestSalesAndPurchases:
    """Tests para entradas por compra y salidas por venta"""

    def test_purchase_creates_inflow(self, stocked, db_session):
        [movement] = partition(db_session, 10, 4)

        assert movement.quantity_in == Decimal("50")
        assert movement.cost_in == Decimal("2")
        assert movement.total_in == Decimal("100")
        assert movement.quantity_out == 0
        assert movement.quantity_balance == Decimal("50")
        assert movement.sequence == 1
        assert movement.origin == PurchaseOrigin(id=1)
        assert movement.detail == "Compra - Purchase Order #1"

    def test_sale_scenario(self, stocked, db_session):
        """50 en stock, venta de 20 deja 30, venta de 40 es rechazada"""
        [sale] = stocked.register_sale(7, [SaleItem(product_id=10, quantity=20)], 4)

        assert sale.quantity_out == Decimal("20")
        assert sale.cost_out == Decimal("2")
        assert sale.total_out == Decimal("40")
        assert sale.quantity_balance == Decimal("30")
        assert sale.total_balance == Decimal("60")
        assert sale.origin_kind == OriginKind.SALE
        assert sale.origin_id == 7
        assert sale.detail == "Venta - Order #7"
        assert stocked.get_current_stock(10, 4) == Decimal("30")

        with pytest.raises(InsufficientStockError) as exc:
            stocked.register_sale(8, [SaleItem(product_id=10, quantity=40)], 4)

        assert exc.value.product_id == 10
        assert exc.value.warehouse_id == 4
        assert exc.value.available == Decimal("30")
        assert exc.value.required == Decimal("40")
        assert stocked.get_current_stock(10, 4) == Decimal("30")
        assert movement_count(db_session) == 2

    def test_sale_on_empty_partition_is_rejected(self, service, db_session):
        with pytest.raises(InsufficientStockError) as exc:
            service.register_sale(1, [SaleItem(product_id=99, quantity=1)], 4)

        assert exc.value.available == 0
        assert movement_count(db_session) == 0

    def test_sale_accepts_objects_with_attributes(self, stocked):
        class Line:
            product_id = 10
            quantity = Decimal("5")

        [sale] = stocked.register_sale(3, [Line()], 4)
        assert sale.quantity_balance == Decimal("45")

    def test_repeated_product_in_one_batch_chains_balances(self, stocked):
        movements = stocked.register_sale(
            9, [SaleItem(product_id=10, quantity=5), SaleItem(product_id=10, quantity=5)], 4
        )

        assert [m.quantity_balance for m in movements] == [Decimal("45"), Decimal("40")]
        assert [m.sequence for m in movements] == [2, 3]

    def test_repeated_product_exceeding_stock_rolls_back(self, stocked, db_session):
        with pytest.raises(InsufficientStockError) as exc:
            stocked.register_sale(
                9, [SaleItem(product_id=10, quantity=30), SaleItem(product_id=10, quantity=30)], 4
            )

        assert exc.value.available == Decimal("20")
        assert stocked.get_current_stock(10, 4) == Decimal("50")
        assert movement_count(db_session) == 1

    def test_failing_item_rolls_back_whole_sale(self, service, db_session):
        """El ítem 3 de 5 no tiene stock: ninguno de los cinco queda registrado"""
        service.register_purchase(
            1,
            [PurchaseItem(product_id=p, quantity=1 if p == 3 else 10, unit_price=1) for p in range(1, 6)],
            4
        )
        before = movement_count(db_session)

        with pytest.raises(InsufficientStockError) as exc:
            service.register_sale(2, [SaleItem(product_id=p, quantity=2) for p in range(1, 6)], 4)

        assert exc.value.product_id == 3
        assert movement_count(db_session) == before
        assert service.get_current_stock(1, 4) == Decimal("10")
        assert service.get_current_stock(2, 4) == Decimal("10")
        assert service.get_current_stock(3, 4) == Decimal("1")

    def test_storage_failure_rolls_back_purchase(self, service, db_session, monkeypatch):
        append_inflow = service._append_inflow
        calls = []

        def failing_append(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise OperationalError("INSERT INTO inventories", {}, Exception("connection reset"))
            return append_inflow(*args, **kwargs)

        monkeypatch.setattr(service, "_append_inflow", failing_append)

        with pytest.raises(StorageError) as exc:
            service.register_purchase(
                1,
                [PurchaseItem(product_id=1, quantity=5, unit_price=1),
                 PurchaseItem(product_id=2, quantity=5, unit_price=1)],
                4
            )

        assert exc.value.retryable is True
        assert movement_count(db_session) == 0

    def test_ledger_is_consistent_over_a_sequence(self, service, db_session):
        """Saldo final = entradas - salidas, nunca negativo, secuencia continua"""
        service.register_purchase(1, [PurchaseItem(product_id=5, quantity=12, unit_price=3)], 2)
        service.register_sale(1, [SaleItem(product_id=5, quantity=4)], 2)
        service.register_purchase(2, [PurchaseItem(product_id=5, quantity=8, unit_price=5)], 2)
        service.register_sale(2, [SaleItem(product_id=5, quantity=16)], 2)
        service.register_adjustment(5, 2, Decimal("3"), AdjustmentDirection.IN, unit_cost=Decimal("4"))

        rows = partition(db_session, 5, 2)
        total_in = sum(m.quantity_in for m in rows)
        total_out = sum(m.quantity_out for m in rows)

        assert [m.sequence for m in rows] == list(range(1, len(rows) + 1))
        assert all(m.quantity_balance >= 0 for m in rows)
        for previous, current in zip(rows, rows[1:]):
            assert current.quantity_balance == previous.quantity_balance + current.quantity_in - current.quantity_out
        assert service.get_current_stock(5, 2) == total_in - total_out == Decimal("3")


# ===== TESTS DE TRANSFERENCIAS =====

class TestTransfers:
    """Tests para transferencias entre almacenes"""

    def test_transfer_scenario(self, stocked, db_session):
        """30 unidades del almacén 4 al 5"""
        stocked.register_sale(1, [SaleItem(product_id=10, quantity=20)], 4)

        outflow, inflow = stocked.register_transfer(1, 4, 5, [TransferItem(product_id=10, quantity=30)])

        assert stocked.get_current_stock(10, 4) == 0
        assert stocked.get_current_stock(10, 5) == Decimal("30")
        assert outflow.origin == TransferOrigin(id=1)
        assert inflow.origin == TransferOrigin(id=1)
        assert outflow.detail == "Transferencia salida - Transfer #1"
        assert inflow.detail == "Transferencia entrada - Transfer #1"
        assert inflow.cost_in == outflow.cost_out == Decimal("2")
        assert inflow.total_in == outflow.total_out == Decimal("60")

    def test_transfer_conserves_total_quantity(self, stocked):
        stocked.register_purchase(2, [PurchaseItem(product_id=10, quantity=5, unit_price=1)], 5)
        before = stocked.get_current_stock(10, 4) + stocked.get_current_stock(10, 5)

        stocked.register_transfer(2, 4, 5, [TransferItem(product_id=10, quantity=17)])

        after = stocked.get_current_stock(10, 4) + stocked.get_current_stock(10, 5)
        assert before == after == Decimal("55")

    def test_transfer_with_insufficient_source_writes_nothing(self, stocked, db_session):
        with pytest.raises(InsufficientStockError) as exc:
            stocked.register_transfer(3, 4, 5, [TransferItem(product_id=10, quantity=51)])

        assert exc.value.warehouse_id == 4
        assert movement_count(db_session) == 1
        assert partition(db_session, 10, 5) == []

    def test_failing_second_item_rolls_back_first(self, stocked, db_session):
        with pytest.raises(InsufficientStockError):
            stocked.register_transfer(
                4, 4, 5,
                [TransferItem(product_id=10, quantity=10), TransferItem(product_id=11, quantity=1)]
            )

        assert movement_count(db_session) == 1
        assert stocked.get_current_stock(10, 4) == Decimal("50")

    def test_same_warehouse_is_rejected(self, stocked, db_session):
        with pytest.raises(InvalidMovementError):
            stocked.register_transfer(5, 4, 4, [TransferItem(product_id=10, quantity=1)])

        assert movement_count(db_session) == 1


# ===== TESTS DE AJUSTES =====

class TestAdjustments:
    """Tests para ajustes manuales"""

    def test_adjustment_in_on_empty_partition(self, service):
        movement = service.register_adjustment(
            20, 1, Decimal("8"), AdjustmentDirection.IN, reason="Conteo físico", unit_cost=Decimal("1.5")
        )

        assert movement.quantity_in == Decimal("8")
        assert movement.cost_in == Decimal("1.5")
        assert movement.quantity_balance == Decimal("8")
        assert movement.origin_kind == OriginKind.MANUAL_ADJUSTMENT
        assert movement.origin_id is None
        assert movement.origin == ManualAdjustmentOrigin()
        assert movement.detail == "Ajuste manual entrada - Conteo físico"

    def test_adjustment_out_appends_without_touching_history(self, stocked, db_session):
        movement = stocked.register_adjustment(10, 4, Decimal("3"), "out", reason="Merma")

        first, second = partition(db_session, 10, 4)
        assert first.quantity_balance == Decimal("50")
        assert second.id == movement.id
        assert second.quantity_out == Decimal("3")
        assert second.quantity_balance == Decimal("47")
        assert second.detail == "Ajuste manual salida - Merma"

    def test_adjustment_out_beyond_stock_is_rejected(self, stocked):
        with pytest.raises(InsufficientStockError):
            stocked.register_adjustment(10, 4, Decimal("51"), AdjustmentDirection.OUT)

        assert stocked.get_current_stock(10, 4) == Decimal("50")

    def test_non_positive_quantity_is_rejected(self, service):
        with pytest.raises(InvalidMovementError):
            service.register_adjustment(10, 4, Decimal("0"), AdjustmentDirection.IN)


# ===== TESTS DE CONSULTAS =====

class TestQueries:
    """Tests para consultas de stock y del libro"""

    def test_untouched_partition(self, service):
        """Sin historial: validate_stock da (False, 0) y get_current_stock NotFound"""
        assert service.validate_stock(77, 4, Decimal("1")) == (False, Decimal("0"))
        with pytest.raises(NotFoundError):
            service.get_current_stock(77, 4)

    def test_validate_stock(self, stocked):
        assert stocked.validate_stock(10, 4, Decimal("50")) == (True, Decimal("50"))
        assert stocked.validate_stock(10, 4, Decimal("10")) == (True, Decimal("50"))
        assert stocked.validate_stock(10, 4, Decimal("50.5")) == (False, Decimal("50"))

    def test_validate_stock_reports_storage_errors(self, service, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is down"))

        monkeypatch.setattr(service, "_latest", broken)

        with pytest.raises(StorageError) as exc:
            service.validate_stock(10, 4, Decimal("1"))
        assert exc.value.retryable is True

    def test_get_movement(self, stocked, db_session):
        [movement] = partition(db_session, 10, 4)
        assert stocked.get_movement(movement.id).id == movement.id

        with pytest.raises(NotFoundError):
            stocked.get_movement(9999)

    def test_get_movements_filters_newest_first(self, stocked):
        stocked.register_sale(1, [SaleItem(product_id=10, quantity=1)], 4)
        stocked.register_purchase(2, [PurchaseItem(product_id=11, quantity=1, unit_price=1)], 4)

        all_movements = stocked.get_movements()
        assert [m.id for m in all_movements] == sorted((m.id for m in all_movements), reverse=True)
        assert len(stocked.get_movements(product_id=10)) == 2
        assert len(stocked.get_movements(origin_kind=OriginKind.SALE)) == 1
        assert len(stocked.get_movements(warehouse_id=5)) == 0
        assert len(stocked.get_movements(limit=1)) == 1

    def test_kardex_totals_cover_whole_partition(self, stocked):
        stocked.register_sale(1, [SaleItem(product_id=10, quantity=20)], 4)
        stocked.register_purchase(2, [PurchaseItem(product_id=10, quantity=10, unit_price=5)], 4)

        kardex = stocked.get_kardex(10, 4, limit=1, offset=1)

        assert len(kardex.movements) == 1
        assert kardex.movements[0].sequence == 2
        assert kardex.total_in == Decimal("60")
        assert kardex.total_out == Decimal("20")
        assert kardex.final_balance == Decimal("40")
        assert kardex.final_total_balance == Decimal("110")
        assert kardex.final_cost_balance == Decimal("2.75")

    def test_kardex_of_untouched_partition_is_empty(self, service):
        kardex = service.get_kardex(1, 1)
        assert kardex.movements == []
        assert kardex.final_balance == 0

    def test_low_stock_uses_latest_balance(self, stocked):
        stocked.register_purchase(2, [PurchaseItem(product_id=11, quantity=3, unit_price=1)], 4)
        stocked.register_sale(3, [SaleItem(product_id=10, quantity=45)], 4)

        low = stocked.get_low_stock()
        assert low.threshold == Decimal("10")
        assert [(m.product_id, m.quantity_balance) for m in low.items] == [(11, Decimal("3")), (10, Decimal("5"))]
        assert low.total_items == 2

        assert stocked.get_low_stock(threshold=Decimal("4")).total_items == 1


# ===== TESTS DE CONCURRENCIA =====

class TestConcurrencyGuard:
    """El número de secuencia por partición rechaza escrituras sobre un saldo desactualizado"""

    def test_stale_read_is_rejected(self, stocked, db_session, monkeypatch):
        # Simula un escritor que no vio la fila existente de la partición
        monkeypatch.setattr(stocked, "_latest", lambda *args, **kwargs: None)

        with pytest.raises(ConcurrencyConflictError) as exc:
            stocked.register_purchase(2, [PurchaseItem(product_id=10, quantity=1, unit_price=1)], 4)

        assert exc.value.retryable is True
        assert exc.value.status_code == 409
        assert movement_count(db_session) == 1

    def test_two_sessions_chain_on_the_same_partition(self, session_factory):
        """Escrituras intercaladas desde dos sesiones encadenan saldos sin perder ninguna"""
        first, second = session_factory(), session_factory()
        try:
            cashier, kitchen = InventoryService(first), InventoryService(second)
            cashier.register_purchase(1, [PurchaseItem(product_id=10, quantity=50, unit_price=2)], 4)

            # La segunda sesión ya cargó la partición antes de la siguiente escritura
            assert kitchen.get_current_stock(10, 4) == Decimal("50")

            cashier.register_sale(1, [SaleItem(product_id=10, quantity=20)], 4)
            kitchen.register_sale(2, [SaleItem(product_id=10, quantity=25)], 4)

            with pytest.raises(InsufficientStockError) as exc:
                cashier.register_sale(3, [SaleItem(product_id=10, quantity=10)], 4)
            assert exc.value.available == Decimal("5")

            rows = partition(second, 10, 4)
            assert [m.sequence for m in rows] == [1, 2, 3]
            assert [m.quantity_balance for m in rows] == [Decimal("50"), Decimal("30"), Decimal("5")]
            assert cashier.get_current_stock(10, 4) == kitchen.get_current_stock(10, 4) == Decimal("5")
        finally:
            first.close()
            second.close()


# ===== TESTS DE PRECISIÓN =====

class TestQuantityPrecision:
    """Las cantidades se validan después de redondear a la precisión del libro"""

    def test_sale_rounding_to_zero_is_rejected(self, stocked, db_session):
        with pytest.raises(InvalidMovementError):
            stocked.register_sale(2, [SaleItem(product_id=10, quantity=Decimal("0.00001"))], 4)

        assert movement_count(db_session) == 1
        assert stocked.get_current_stock(10, 4) == Decimal("50")

    def test_purchase_and_transfer_rounding_to_zero_are_rejected(self, stocked, db_session):
        with pytest.raises(InvalidMovementError):
            stocked.register_purchase(
                2, [PurchaseItem(product_id=10, quantity=Decimal("0.00004"), unit_price=1)], 4
            )
        with pytest.raises(InvalidMovementError):
            stocked.register_transfer(1, 4, 5, [TransferItem(product_id=10, quantity=Decimal("0.00001"))])

        assert movement_count(db_session) == 1

    def test_adjustment_rounding_to_zero_is_rejected(self, stocked, db_session):
        with pytest.raises(InvalidMovementError):
            stocked.register_adjustment(10, 4, Decimal("0.00001"), AdjustmentDirection.OUT)

        assert movement_count(db_session) == 1

    def test_smallest_stored_quantity_is_accepted(self, stocked):
        [sale] = stocked.register_sale(2, [SaleItem(product_id=10, quantity=Decimal("0.0001"))], 4)

        assert sale.quantity_out == Decimal("0.0001")
        assert stocked.get_current_stock(10, 4) == Decimal("49.9999")

    def test_invalid_item_raises_invalid_movement(self, stocked, db_session):
        class Line:
            product_id = 10
            quantity = Decimal("0")

        with pytest.raises(InvalidMovementError) as exc:
            stocked.register_sale(2, [Line()], 4)

        assert exc.value.status_code == 400
        assert "quantity" in str(exc.value)
        assert movement_count(db_session) == 1


# ===== TESTS DE ORIGEN =====

class TestOrigin:

    def test_origin_round_trips_through_columns(self, stocked, db_session):
        stocked.register_sale(5, [SaleItem(product_id=10, quantity=1)], 4)
        first, second = partition(db_session, 10, 4)

        assert first.origin_kind == OriginKind.PURCHASE
        assert second.origin == SaleOrigin(id=5)


# ===== TESTS DE ENDPOINTS =====

class TestInventoryAPI:
    """Tests para los endpoints de /api/inventories"""

    def adjust(self, client, **overrides):
        payload = {"warehouse_id": 4, "product_id": 10, "quantity": "25", "type": "in", "unit_cost": "2.00"}
        payload.update(overrides)
        return client.post("/api/inventories/adjust", json=payload)

    def test_adjust_and_read_stock(self, client):
        response = self.adjust(client, reason="Inventario inicial")
        assert response.status_code == 201
        body = response.json()
        assert body["origin"] == {"kind": "manual_adjustment"}
        assert Decimal(body["quantity_balance"]) == Decimal("25")

        response = client.get("/api/inventories/warehouse/4/product/10")
        assert response.status_code == 200
        assert Decimal(response.json()["quantity"]) == Decimal("25")

    def test_stock_of_untouched_partition_is_404(self, client):
        response = client.get("/api/inventories/warehouse/4/product/404")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_validate_endpoint(self, client):
        self.adjust(client)

        response = client.get("/api/inventories/warehouse/4/product/10/validate", params={"required_qty": "30"})
        assert response.status_code == 200
        body = response.json()
        assert body["sufficient"] is False
        assert Decimal(body["available"]) == Decimal("25")

        response = client.get("/api/inventories/warehouse/4/product/10/validate", params={"required_qty": "0"})
        assert response.status_code == 422

    def test_adjust_out_beyond_stock_is_409(self, client):
        self.adjust(client)

        response = self.adjust(client, type="out", quantity="26", unit_cost=None)
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "INSUFFICIENT_STOCK"
        assert Decimal(body["detail"]["available"]) == Decimal("25")
        assert Decimal(body["detail"]["required"]) == Decimal("26")

    def test_kardex_list_and_detail_endpoints(self, client):
        created = self.adjust(client).json()
        self.adjust(client, type="out", quantity="5", unit_cost=None)

        kardex = client.get("/api/inventories/warehouse/4/product/10/kardex").json()
        assert len(kardex["movements"]) == 2
        assert Decimal(kardex["final_balance"]) == Decimal("20")

        listing = client.get("/api/inventories", params={"product_id": 10}).json()
        assert len(listing) == 2

        assert client.get(f"/api/inventories/{created['id']}").status_code == 200
        assert client.get("/api/inventories/9999").status_code == 404

    def test_low_stock_endpoint(self, client):
        self.adjust(client, quantity="3")

        body = client.get("/api/inventories/low-stock").json()
        assert body["total_items"] == 1
        assert body["items"][0]["product_id"] == 10

    def test_adjust_beyond_ledger_precision_is_422(self, client):
        response = self.adjust(client, quantity="0.00001")
        assert response.status_code == 422

        assert client.get("/api/inventories/warehouse/4/product/10").status_code == 404
