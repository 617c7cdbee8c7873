"""
Tests para el módulo de Órdenes

Completar una orden descuenta stock del almacén de la orden (o del almacén
de ventas por defecto) y solo queda en 'done' si el descuento se registró.
"""

import pytest
from decimal import Decimal

from resto.core.config import settings
from resto.modules.inventory.schemas import PurchaseItem
from resto.modules.inventory.service import InventoryService
from resto.core.exceptions import InvalidMovementError
from resto.modules.orders.models import OrderState
from resto.modules.orders.schemas import OrderCreate
from resto.modules.orders.service import OrderService


# ===== FIXTURES =====

@pytest.fixture
def sample_order_data():
    """Orden de mesa con dos productos"""
    return {
        "name": "SO/2024/0001",
        "table_id": 3,
        "note": "Mesa junto a la ventana",
        "items": [
            {"product_id": 10, "quantity": "2", "price_unit": "12.50", "product_notes": "Sin cebolla"},
            {"product_id": 11, "quantity": "1", "price_unit": "4.00"},
        ]
    }


@pytest.fixture
def stock(db_session):
    """Stock en el almacén de ventas por defecto"""
    InventoryService(db_session).register_purchase(
        1,
        [PurchaseItem(product_id=10, quantity=5, unit_price=6),
         PurchaseItem(product_id=11, quantity=5, unit_price=1)],
        settings.SALES_WAREHOUSE_ID
    )
    return InventoryService(db_session)


def create_order(client, data):
    response = client.post("/api/orders", json=data)
    assert response.status_code == 201
    return response.json()


# ===== TESTS =====

class TestOrderCRUD:
    """Tests para creación y consulta de órdenes"""

    def test_create_order_computes_totals(self, client, sample_order_data):
        order = create_order(client, sample_order_data)

        assert order["state"] == OrderState.DRAFT
        assert Decimal(order["total_amount"]) == Decimal("29.00")
        assert [Decimal(i["price_subtotal"]) for i in order["items"]] == [Decimal("25.00"), Decimal("4.00")]

    def test_create_order_requires_items(self, client, sample_order_data):
        sample_order_data["items"] = []
        assert client.post("/api/orders", json=sample_order_data).status_code == 422

    def test_get_and_list_orders(self, client, sample_order_data):
        order = create_order(client, sample_order_data)

        assert client.get(f"/api/orders/{order['id']}").json()["name"] == "SO/2024/0001"
        assert len(client.get("/api/orders", params={"state": "draft"}).json()) == 1

        response = client.get("/api/orders/999")
        assert response.status_code == 404
        assert response.json()["message"] == "Order not found"


class TestCompleteOrder:
    """Tests para completar órdenes y su efecto en inventario"""

    def test_complete_draws_from_sales_warehouse(self, client, sample_order_data, stock):
        order = create_order(client, sample_order_data)

        response = client.patch(f"/api/orders/{order['id']}/complete")

        assert response.status_code == 200
        assert response.json()["state"] == OrderState.DONE
        assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("3")
        assert stock.get_current_stock(11, settings.SALES_WAREHOUSE_ID) == Decimal("4")

        sales = stock.get_movements(origin_kind="sale")
        assert {m.origin_id for m in sales} == {order["id"]}
        assert all(m.detail == f"Venta - Order #{order['id']}" for m in sales)

    def test_complete_uses_order_warehouse(self, client, sample_order_data, stock, db_session):
        InventoryService(db_session).register_purchase(
            2,
            [PurchaseItem(product_id=10, quantity=2, unit_price=6),
             PurchaseItem(product_id=11, quantity=1, unit_price=1)],
            7
        )
        sample_order_data["warehouse_id"] = 7
        order = create_order(client, sample_order_data)

        assert client.patch(f"/api/orders/{order['id']}/complete").status_code == 200
        assert stock.get_current_stock(10, 7) == 0
        assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("5")

    def test_insufficient_stock_keeps_order_open(self, client, sample_order_data, stock):
        sample_order_data["items"][1]["quantity"] = "9"
        order = create_order(client, sample_order_data)

        response = client.patch(f"/api/orders/{order['id']}/complete")

        assert response.status_code == 409
        assert response.json()["detail"]["product_id"] == 11
        assert client.get(f"/api/orders/{order['id']}").json()["state"] == OrderState.DRAFT
        assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("5")

    def test_complete_twice_is_rejected(self, client, sample_order_data, stock):
        order = create_order(client, sample_order_data)
        client.patch(f"/api/orders/{order['id']}/complete")

        response = client.patch(f"/api/orders/{order['id']}/complete")

        assert response.status_code == 400
        assert response.json()["message"] == "Order already completed"
        assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("3")

    def test_cancelled_order_cannot_be_completed(self, client, sample_order_data, stock):
        order = create_order(client, sample_order_data)
        assert client.patch(f"/api/orders/{order['id']}/cancel").json()["state"] == OrderState.CANCELLED

        assert client.patch(f"/api/orders/{order['id']}/complete").status_code == 400
        assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("5")

    def test_completed_order_cannot_be_cancelled(self, client, sample_order_data, stock):
        order = create_order(client, sample_order_data)
        client.patch(f"/api/orders/{order['id']}/complete")

        assert client.patch(f"/api/orders/{order['id']}/cancel").status_code == 400


class TestConcurrentCompletion:
    """Dos sesiones que completan la misma orden"""

    def test_second_session_cannot_complete_again(self, session_factory, sample_order_data, stock):
        first, second = session_factory(), session_factory()
        try:
            order = OrderService(first).create_order(OrderCreate(**sample_order_data))

            stale = OrderService(second).get_order(order.id)
            assert stale.state == OrderState.DRAFT

            OrderService(first).complete_order(order.id)

            with pytest.raises(InvalidMovementError, match="already completed"):
                OrderService(second).complete_order(order.id)

            assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("3")
            assert stock.get_current_stock(11, settings.SALES_WAREHOUSE_ID) == Decimal("4")
        finally:
            first.close()
            second.close()

    def test_cancel_after_concurrent_completion_is_rejected(self, session_factory, sample_order_data, stock):
        first, second = session_factory(), session_factory()
        try:
            order = OrderService(first).create_order(OrderCreate(**sample_order_data))
            OrderService(second).get_order(order.id)

            OrderService(first).complete_order(order.id)

            with pytest.raises(InvalidMovementError):
                OrderService(second).cancel_order(order.id)
        finally:
            first.close()
            second.close()


class TestOrderPrecision:
    """Las cantidades de las líneas se guardan con la precisión del libro"""

    def test_fractional_quantity_is_stored_and_drawn(self, client, sample_order_data, stock):
        sample_order_data["items"] = [{"product_id": 10, "quantity": "0.001", "price_unit": "12.50"}]
        order = create_order(client, sample_order_data)
        assert Decimal(order["items"][0]["quantity"]) == Decimal("0.001")

        response = client.patch(f"/api/orders/{order['id']}/complete")

        assert response.status_code == 200
        assert stock.get_current_stock(10, settings.SALES_WAREHOUSE_ID) == Decimal("4.999")

    def test_quantity_beyond_ledger_precision_is_422(self, client, sample_order_data):
        sample_order_data["items"][0]["quantity"] = "0.00001"
        assert client.post("/api/orders", json=sample_order_data).status_code == 422
