from fastapi import APIRouter, Query
from typing import List, Optional

from resto.core.config import settings
from resto.dependencies.dbDependecies import db_dependency
from resto.modules.transfers.service import StockTransferService
from resto.modules.transfers.schemas import StockTransferCreate, StockTransferOut

stock_transfers_router = APIRouter(prefix="/stock-transfers", tags=["Stock Transfers"])

@stock_transfers_router.post("", response_model=StockTransferOut, status_code=201)
def create_stock_transfer(transfer_data: StockTransferCreate, db: db_dependency):
    return StockTransferService(db).create_transfer(transfer_data)

@stock_transfers_router.get("", response_model=List[StockTransferOut])
def get_stock_transfers(
    db: db_dependency,
    status: Optional[str] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    return StockTransferService(db).get_transfers(status=status, limit=limit, offset=offset)

@stock_transfers_router.get("/{transfer_id}", response_model=StockTransferOut)
def get_stock_transfer(transfer_id: int, db: db_dependency):
    return StockTransferService(db).get_transfer(transfer_id)

@stock_transfers_router.patch("/{transfer_id}/send", response_model=StockTransferOut)
def send_stock_transfer(transfer_id: int, db: db_dependency):
    return StockTransferService(db).send_transfer(transfer_id)

@stock_transfers_router.patch("/{transfer_id}/receive", response_model=StockTransferOut)
def receive_stock_transfer(transfer_id: int, db: db_dependency):
    """Receive the transfer: outflow at source plus inflow at destination."""
    return StockTransferService(db).receive_transfer(transfer_id)

@stock_transfers_router.patch("/{transfer_id}/cancel", response_model=StockTransferOut)
def cancel_stock_transfer(transfer_id: int, db: db_dependency):
    return StockTransferService(db).cancel_transfer(transfer_id)
