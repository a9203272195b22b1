import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from core.config import Settings, get_settings
from core.db import get_db
from core.errors import bad_request, not_found
from schemas.order import OrderCreate, OrderOut, OrderStatusUpdate
from security.auth import get_checkout_identity, get_current_identity
from security.jwt import Identity
from services import orders as order_service
from services.stock import StockClient, get_stock_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=List[OrderOut])
def list_orders(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    logger.info("Fetching orders for user %s", identity.id)
    orders = order_service.list_orders(db, identity.id)
    logger.info("Fetched %d orders for user %s", len(orders), identity.id)
    return orders


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    order = order_service.get_order(db, order_id, identity.id)
    if not order:
        raise not_found("Order not found")
    return order


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    data: OrderCreate,
    identity: Optional[Identity] = Depends(get_checkout_identity),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
    stock: StockClient = Depends(get_stock_client),
    cfg: Settings = Depends(get_settings),
):
    return order_service.create_order(db, data, identity, stock, cfg, authorization)


@router.put("", response_model=OrderOut)
def update_order_status(
    data: OrderStatusUpdate,
    id: Optional[int] = Query(default=None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if not id:
        raise bad_request("Order ID is required")
    if not data.status:
        raise bad_request("Status is required")

    logger.info("Updating order %s to status %s", id, data.status)
    order = order_service.update_order_status(db, id, identity.id, data.status, data.tracking_number)
    if not order:
        raise not_found("Order not found or unauthorized")
    logger.info("Updated order %s", id)
    return order
