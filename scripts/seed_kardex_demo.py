"""
Seed script: run the restaurant Kardex demo through the real workflows.

What it does:
- Receives a purchase order of N units of a product into the sales warehouse.
- Completes a sales order that draws part of that stock.
- Tries an order larger than the remaining stock (rejected, nothing written).
- Receives a transfer of the remainder to a second warehouse.
- Prints the Kardex of both warehouses.

Run against the configured database (DATABASE_URL or POSTGRES_*):
    python scripts/seed_kardex_demo.py --product-id 10 --quantity 50 --unit-price 2.00

Note: This is intended for development environments only.
"""

# Add project root to sys.path so `resto.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
from decimal import Decimal

from resto.core.config import settings
from resto.core.exceptions import InsufficientStockError
from resto.database.database import SessionLocal, sync_engine, Base
from resto.modules.inventory.service import InventoryService
from resto.modules.orders.schemas import OrderCreate, OrderItemCreate
from resto.modules.orders.service import OrderService
from resto.modules.purchases.schemas import PurchaseOrderCreate, PurchaseOrderItemCreate
from resto.modules.purchases.service import PurchaseOrderService
from resto.modules.transfers.schemas import StockTransferCreate, StockTransferItemCreate
from resto.modules.transfers.service import StockTransferService


def print_kardex(db, product_id: int, warehouse_id: int):
    kardex = InventoryService(db).get_kardex(product_id, warehouse_id)
    print(f"\nKardex product {product_id} / warehouse {warehouse_id}")
    for m in kardex.movements:
        print(
            f"  #{m.sequence:<3} {m.detail:<40} in={m.quantity_in:>10} out={m.quantity_out:>10} "
            f"balance={m.quantity_balance:>10} value={m.total_balance:>10}"
        )
    print(f"  Final balance: {kardex.final_balance} (value {kardex.final_total_balance})")


def main():
    parser = argparse.ArgumentParser(description="Seed the Kardex demo scenario")
    parser.add_argument("--product-id", type=int, default=10)
    parser.add_argument("--warehouse-id", type=int, default=settings.SALES_WAREHOUSE_ID)
    parser.add_argument("--to-warehouse-id", type=int, default=5)
    parser.add_argument("--quantity", type=Decimal, default=Decimal("50"))
    parser.add_argument("--sold", type=Decimal, default=Decimal("20"))
    parser.add_argument("--unit-price", type=Decimal, default=Decimal("2.00"))
    parser.add_argument("--create-tables", action="store_true", help="Create tables before seeding")
    args = parser.parse_args()

    if args.create_tables:
        Base.metadata.create_all(bind=sync_engine)

    db = SessionLocal()
    try:
        print("Receiving purchase order...")
        purchases = PurchaseOrderService(db)
        purchase_order = purchases.create_purchase_order(PurchaseOrderCreate(
            order_number=f"PO-DEMO-{args.product_id}",
            warehouse_id=args.warehouse_id,
            items=[PurchaseOrderItemCreate(
                product_id=args.product_id, quantity=args.quantity, unit_price=args.unit_price
            )]
        ))
        purchases.receive_purchase_order(purchase_order.id)

        print("Completing sales order...")
        orders = OrderService(db)
        order = orders.create_order(OrderCreate(
            name=f"SO-DEMO-{args.product_id}",
            warehouse_id=args.warehouse_id,
            items=[OrderItemCreate(product_id=args.product_id, quantity=args.sold, price_unit=args.unit_price * 3)]
        ))
        orders.complete_order(order.id)

        remaining = InventoryService(db).get_current_stock(args.product_id, args.warehouse_id)
        print(f"Remaining stock: {remaining}")

        print("Trying an order larger than the remaining stock...")
        oversized = orders.create_order(OrderCreate(
            name=f"SO-DEMO-{args.product_id}-BIG",
            warehouse_id=args.warehouse_id,
            items=[OrderItemCreate(product_id=args.product_id, quantity=remaining + 10, price_unit=args.unit_price * 3)]
        ))
        try:
            orders.complete_order(oversized.id)
        except InsufficientStockError as e:
            print(f"  Rejected: {e}")

        if remaining > 0:
            print("Receiving stock transfer...")
            transfers = StockTransferService(db)
            transfer = transfers.create_transfer(StockTransferCreate(
                transfer_number=f"TR-DEMO-{args.product_id}",
                from_warehouse_id=args.warehouse_id,
                to_warehouse_id=args.to_warehouse_id,
                items=[StockTransferItemCreate(product_id=args.product_id, quantity=remaining)]
            ))
            transfers.receive_transfer(transfer.id)

        print_kardex(db, args.product_id, args.warehouse_id)
        print_kardex(db, args.product_id, args.to_warehouse_id)
        print("\nSeed completed.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
