"""
Tests para el módulo de Transferencias de Stock
"""

import pytest
from decimal import Decimal

from resto.modules.inventory.models import OriginKind
from resto.modules.inventory.schemas import PurchaseItem
from resto.modules.inventory.service import InventoryService
from resto.core.exceptions import InvalidMovementError
from resto.modules.transfers.models import TransferStatus
from resto.modules.transfers.schemas import StockTransferCreate
from resto.modules.transfers.service import StockTransferService


# ===== FIXTURES =====

@pytest.fixture
def inventory(db_session):
    """30 unidades del producto 10 en el almacén 4"""
    service = InventoryService(db_session)
    service.register_purchase(1, [PurchaseItem(product_id=10, quantity=30, unit_price=Decimal("2.00"))], 4)
    return service


@pytest.fixture
def sample_transfer_data():
    return {
        "transfer_number": "TR-0001",
        "from_warehouse_id": 4,
        "to_warehouse_id": 5,
        "notes": "Reposición cocina",
        "items": [{"product_id": 10, "quantity": "30"}]
    }


def create_transfer(client, data):
    response = client.post("/api/stock-transfers", json=data)
    assert response.status_code == 201
    return response.json()


# ===== TESTS =====

class TestStockTransfers:
    """Tests para el flujo de transferencias"""

    def test_same_warehouse_is_rejected(self, client, sample_transfer_data):
        sample_transfer_data["to_warehouse_id"] = 4
        assert client.post("/api/stock-transfers", json=sample_transfer_data).status_code == 422

    def test_send_then_receive_moves_stock(self, client, sample_transfer_data, inventory):
        transfer = create_transfer(client, sample_transfer_data)
        assert transfer["status"] == TransferStatus.DRAFT

        sent = client.patch(f"/api/stock-transfers/{transfer['id']}/send").json()
        assert sent["status"] == TransferStatus.IN_TRANSIT
        assert inventory.get_current_stock(10, 4) == Decimal("30")

        response = client.patch(f"/api/stock-transfers/{transfer['id']}/receive")

        assert response.status_code == 200
        assert response.json()["status"] == TransferStatus.RECEIVED
        assert inventory.get_current_stock(10, 4) == 0
        assert inventory.get_current_stock(10, 5) == Decimal("30")

        legs = inventory.get_movements(origin_kind=OriginKind.TRANSFER)
        assert {m.warehouse_id for m in legs} == {4, 5}
        assert {m.origin_id for m in legs} == {transfer["id"]}

    def test_insufficient_source_keeps_transfer_open(self, client, sample_transfer_data, inventory):
        sample_transfer_data["items"][0]["quantity"] = "31"
        transfer = create_transfer(client, sample_transfer_data)

        response = client.patch(f"/api/stock-transfers/{transfer['id']}/receive")

        assert response.status_code == 409
        assert response.json()["detail"]["warehouse_id"] == 4
        assert client.get(f"/api/stock-transfers/{transfer['id']}").json()["status"] == TransferStatus.DRAFT
        assert inventory.get_current_stock(10, 4) == Decimal("30")
        assert inventory.validate_stock(10, 5, Decimal("1")) == (False, Decimal("0"))

    def test_receive_twice_is_rejected(self, client, sample_transfer_data, inventory):
        transfer = create_transfer(client, sample_transfer_data)
        client.patch(f"/api/stock-transfers/{transfer['id']}/receive")

        response = client.patch(f"/api/stock-transfers/{transfer['id']}/receive")

        assert response.status_code == 400
        assert response.json()["message"] == "Stock transfer already received"
        assert inventory.get_current_stock(10, 5) == Decimal("30")

    def test_only_draft_transfers_can_be_sent(self, client, sample_transfer_data):
        transfer = create_transfer(client, sample_transfer_data)
        client.patch(f"/api/stock-transfers/{transfer['id']}/send")

        assert client.patch(f"/api/stock-transfers/{transfer['id']}/send").status_code == 400

    def test_cancelled_transfer_cannot_be_received(self, client, sample_transfer_data, inventory):
        transfer = create_transfer(client, sample_transfer_data)
        client.patch(f"/api/stock-transfers/{transfer['id']}/cancel")

        assert client.patch(f"/api/stock-transfers/{transfer['id']}/receive").status_code == 400
        assert inventory.get_current_stock(10, 4) == Decimal("30")

    def test_unknown_transfer(self, client):
        response = client.get("/api/stock-transfers/999")
        assert response.status_code == 404
        assert response.json()["message"] == "Stock transfer not found"


class TestConcurrentTransferReceipts:
    """Dos sesiones que reciben la misma transferencia"""

    def test_second_session_cannot_receive_again(self, session_factory, sample_transfer_data, inventory):
        sample_transfer_data["items"][0]["quantity"] = "10"
        first, second = session_factory(), session_factory()
        try:
            transfer = StockTransferService(first).create_transfer(StockTransferCreate(**sample_transfer_data))

            stale = StockTransferService(second).get_transfer(transfer.id)
            assert stale.status == TransferStatus.DRAFT

            StockTransferService(first).receive_transfer(transfer.id)

            with pytest.raises(InvalidMovementError, match="already received"):
                StockTransferService(second).receive_transfer(transfer.id)

            assert inventory.get_current_stock(10, 4) == Decimal("20")
            assert inventory.get_current_stock(10, 5) == Decimal("10")
        finally:
            first.close()
            second.close()

    def test_quantity_beyond_ledger_precision_is_422(self, client, sample_transfer_data):
        sample_transfer_data["items"][0]["quantity"] = "0.00001"
        assert client.post("/api/stock-transfers", json=sample_transfer_data).status_code == 422
