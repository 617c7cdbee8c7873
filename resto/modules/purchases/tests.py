"""
Tests para el módulo de Órdenes de Compra

Recibir una orden de compra suma sus líneas al stock del almacén, valoradas
al precio unitario de compra.
"""

import pytest
from decimal import Decimal

from resto.modules.inventory.service import InventoryService
from resto.core.exceptions import InvalidMovementError
from resto.modules.purchases.models import PurchaseOrderStatus
from resto.modules.purchases.schemas import PurchaseOrderCreate
from resto.modules.purchases.service import PurchaseOrderService


# ===== FIXTURES =====

@pytest.fixture
def sample_purchase_data():
    return {
        "order_number": "PO-0001",
        "warehouse_id": 4,
        "partner_id": 12,
        "tax": "1.90",
        "items": [
            {"product_id": 10, "quantity": "50", "unit_price": "2.00"},
            {"product_id": 11, "quantity": "6", "unit_price": "0.50"},
        ]
    }


@pytest.fixture
def inventory(db_session):
    return InventoryService(db_session)


def create_purchase_order(client, data):
    response = client.post("/api/purchase-orders", json=data)
    assert response.status_code == 201
    return response.json()


# ===== TESTS =====

class TestPurchaseOrders:
    """Tests para creación y recepción de órdenes de compra"""

    def test_create_purchase_order(self, client, sample_purchase_data):
        purchase = create_purchase_order(client, sample_purchase_data)

        assert purchase["status"] == PurchaseOrderStatus.CONFIRMED
        assert Decimal(purchase["subtotal"]) == Decimal("103.00")
        assert Decimal(purchase["total"]) == Decimal("104.90")
        assert purchase["received_date"] is None

    def test_receive_adds_stock(self, client, sample_purchase_data, inventory):
        purchase = create_purchase_order(client, sample_purchase_data)

        response = client.patch(f"/api/purchase-orders/{purchase['id']}/receive")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == PurchaseOrderStatus.RECEIVED
        assert body["received_date"] is not None
        assert inventory.get_current_stock(10, 4) == Decimal("50")
        assert inventory.get_current_stock(11, 4) == Decimal("6")

        kardex = inventory.get_kardex(10, 4)
        [movement] = kardex.movements
        assert movement.cost_in == Decimal("2.00")
        assert movement.origin.kind == "purchase"
        assert movement.origin.id == purchase["id"]
        assert movement.detail == f"Compra - Purchase Order #{purchase['id']}"

    def test_receive_twice_is_rejected(self, client, sample_purchase_data, inventory):
        purchase = create_purchase_order(client, sample_purchase_data)
        client.patch(f"/api/purchase-orders/{purchase['id']}/receive")

        response = client.patch(f"/api/purchase-orders/{purchase['id']}/receive")

        assert response.status_code == 400
        assert response.json()["message"] == "Purchase order already received"
        assert inventory.get_current_stock(10, 4) == Decimal("50")

    def test_cancelled_purchase_order_cannot_be_received(self, client, sample_purchase_data, inventory):
        purchase = create_purchase_order(client, sample_purchase_data)
        response = client.patch(f"/api/purchase-orders/{purchase['id']}/cancel")
        assert response.json()["status"] == PurchaseOrderStatus.CANCELLED

        assert client.patch(f"/api/purchase-orders/{purchase['id']}/receive").status_code == 400
        assert inventory.validate_stock(10, 4, Decimal("1")) == (False, Decimal("0"))

    def test_received_purchase_order_cannot_be_cancelled(self, client, sample_purchase_data):
        purchase = create_purchase_order(client, sample_purchase_data)
        client.patch(f"/api/purchase-orders/{purchase['id']}/receive")

        assert client.patch(f"/api/purchase-orders/{purchase['id']}/cancel").status_code == 400

    def test_unknown_purchase_order(self, client):
        response = client.patch("/api/purchase-orders/999/receive")
        assert response.status_code == 404
        assert response.json()["message"] == "Purchase order not found"

    def test_list_by_status(self, client, sample_purchase_data):
        create_purchase_order(client, sample_purchase_data)
        sample_purchase_data["order_number"] = "PO-0002"
        second = create_purchase_order(client, sample_purchase_data)
        client.patch(f"/api/purchase-orders/{second['id']}/receive")

        received = client.get("/api/purchase-orders", params={"status": "received"}).json()
        assert [p["order_number"] for p in received] == ["PO-0002"]


class TestConcurrentReceipts:
    """Dos sesiones que reciben la misma orden de compra"""

    def test_second_session_cannot_receive_again(self, session_factory, sample_purchase_data):
        first, second = session_factory(), session_factory()
        try:
            purchase = PurchaseOrderService(first).create_purchase_order(PurchaseOrderCreate(**sample_purchase_data))

            # La segunda sesión carga la orden antes de que la primera la reciba
            stale = PurchaseOrderService(second).get_purchase_order(purchase.id)
            assert stale.status == PurchaseOrderStatus.CONFIRMED

            PurchaseOrderService(first).receive_purchase_order(purchase.id)

            with pytest.raises(InvalidMovementError, match="already received"):
                PurchaseOrderService(second).receive_purchase_order(purchase.id)

            assert InventoryService(first).get_current_stock(10, 4) == Decimal("50")
            assert InventoryService(second).get_current_stock(11, 4) == Decimal("6")
        finally:
            first.close()
            second.close()


class TestPurchasePrecision:

    def test_fractional_unit_cost_is_kept(self, client, sample_purchase_data, inventory):
        sample_purchase_data["items"] = [{"product_id": 12, "quantity": "3", "unit_price": "0.3333"}]
        purchase = create_purchase_order(client, sample_purchase_data)
        assert Decimal(purchase["items"][0]["unit_price"]) == Decimal("0.3333")

        client.patch(f"/api/purchase-orders/{purchase['id']}/receive")

        [movement] = inventory.get_kardex(12, 4).movements
        assert movement.cost_in == Decimal("0.3333")

    def test_quantity_beyond_ledger_precision_is_422(self, client, sample_purchase_data):
        sample_purchase_data["items"][0]["quantity"] = "0.00001"
        assert client.post("/api/purchase-orders", json=sample_purchase_data).status_code == 422
