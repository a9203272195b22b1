import json
import logging
import secrets
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload, selectinload

from core.config import Settings
from core.errors import bad_request
from models.order import Order
from models.order_item import OrderItem
from models.product import Product
from schemas.order import OrderCreate, OrderItemIn
from security.jwt import Identity
from services.stock import StockAdjustmentError, StockClient

logger = logging.getLogger(__name__)

VariantKey = Tuple[int, Optional[str], Optional[str]]


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def parse_variants(product: Product) -> Dict[str, Dict[str, Any]]:
    """Decode the ``color -> size -> quantity`` mapping stored on a product.

    Corrupt data is treated as "no stock" and reported with a ``corrupt variants``
    warning instead of failing the request.
    """
    raw = product.variants
    if not raw:
        return {}
    try:
        variants = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("corrupt variants on product %s: not valid JSON", product.id)
        return {}
    if not isinstance(variants, dict):
        logger.warning("corrupt variants on product %s: expected an object", product.id)
        return {}
    return variants


def available_stock(variants: Dict[str, Dict[str, Any]], color: Optional[str], size: Optional[str]) -> int:
    sizes = variants.get(color) if color is not None else None
    if not isinstance(sizes, dict) or size is None:
        return 0
    try:
        return int(sizes.get(size) or 0)
    except (TypeError, ValueError):
        return 0


def generate_order_number(prefix: str) -> str:
    """Readable order number: prefix, epoch milliseconds and four random digits."""
    return f"{prefix}{int(time.time() * 1000)}{secrets.randbelow(10000):04d}"


def _unique_order_number(db: Session, prefix: str) -> str:
    number = generate_order_number(prefix)
    while db.query(Order.id).filter(Order.order_number == number).first() is not None:
        number = generate_order_number(prefix)
    return number


def _item_label(item: OrderItemIn, product: Optional[Product] = None) -> str:
    if item.product_name:
        return item.product_name
    if product is not None:
        return product.name
    return str(item.product_id)


def _load_products(db: Session, items: List[OrderItemIn]) -> Dict[int, Product]:
    products: Dict[int, Product] = {}
    for item in items:
        if item.product_id in products:
            continue
        product = db.query(Product).filter(Product.id == item.product_id).one_or_none()
        if not product:
            raise bad_request(f"Product not found: {_item_label(item)}")
        products[product.id] = product
    return products


def check_stock(items: List[OrderItemIn], products: Dict[int, Product]) -> None:
    """Reject the whole order if any variant cannot cover its requested quantity."""
    requested: Dict[VariantKey, int] = {}
    variants_cache: Dict[int, Dict[str, Dict[str, Any]]] = {}
    for item in items:
        product = products[item.product_id]
        if product.id not in variants_cache:
            variants_cache[product.id] = parse_variants(product)
        key = (product.id, item.color, item.size)
        requested[key] = requested.get(key, 0) + item.quantity

        available = available_stock(variants_cache[product.id], item.color, item.size)
        if available < requested[key]:
            label = _item_label(item, product)
            raise bad_request(
                "Insufficient stock",
                message=f"Only {available} items available for {label} ({item.color}, {item.size})",
                product=label,
                product_id=product.id,
                color=item.color,
                size=item.size,
                availableStock=available,
                requestedQuantity=requested[key],
            )


def _line_price(item: OrderItemIn, product: Product) -> Decimal:
    if product.price is None:
        if item.price is None:
            raise bad_request(f"Price unavailable for {_item_label(item, product)}")
        return _to_decimal(item.price)
    price = _to_decimal(product.price)
    if item.price is not None and _to_decimal(item.price) != price:
        logger.warning(
            "Client price %s for product %s differs from catalog price %s; using catalog price",
            item.price, product.id, price,
        )
    return price


def _log_unreverted(applied: List[VariantKey], order_hint: str) -> None:
    if applied:
        logger.error(
            "Order %s aborted after stock was reduced; not reverted: %s",
            order_hint,
            ", ".join(f"product={p} color={c} size={s}" for p, c, s in applied),
        )


def get_order(db: Session, order_id: int, user_id=None) -> Optional[Order]:
    q = (
        db.query(Order)
        .options(selectinload(Order.items).joinedload(OrderItem.product))
        .populate_existing()
        .filter(Order.id == order_id)
    )
    if user_id is not None:
        q = q.filter(Order.user_id == user_id)
    return q.one_or_none()


def list_orders(db: Session, user_id) -> List[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items).joinedload(OrderItem.product))
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def create_order(
    db: Session,
    data: OrderCreate,
    identity: Optional[Identity],
    stock: StockClient,
    cfg: Settings,
    authorization: Optional[str] = None,
) -> Order:
    """Validate stock, reduce it, then persist the order and its items.

    Nothing is written locally unless every item passes the stock check. The
    header and items are committed together; remote stock reductions already
    made when a later step fails cannot be undone here and are logged.
    """
    if not data.items:
        raise bad_request("Order items are required")
    if not data.total or not data.customer_email:
        raise bad_request("Total amount and customer email are required")

    if data.user_id is not None:
        logger.warning("Ignoring deprecated user_id=%s in order body", data.user_id)
    user_id = identity.id if identity else None
    logger.info("Creating order for %s (user %s)", data.customer_email, user_id)

    try:
        products = _load_products(db, data.items)
        check_stock(data.items, products)
        lines = [(item, _line_price(item, products[item.product_id])) for item in data.items]
    finally:
        # The stock service writes these product rows; hold no transaction across its calls
        db.rollback()

    applied: List[VariantKey] = []
    try:
        for item in data.items:
            stock.adjust(item.product_id, item.color, item.size, item.quantity, authorization)
            applied.append((item.product_id, item.color, item.size))
    except StockAdjustmentError as e:
        _log_unreverted(applied, data.customer_email)
        product = products.get(e.product_id)
        label = product.name if product else str(e.product_id)
        raise bad_request("Stock update failed", message=e.message, product=label) from e
    except Exception:
        _log_unreverted(applied, data.customer_email)
        raise

    try:
        order_number = _unique_order_number(db, cfg.ORDER_NUMBER_PREFIX)
        subtotal = sum((price * _to_decimal(item.quantity) for item, price in lines), Decimal("0.00"))

        tax = _to_decimal(data.tax_amount)
        shipping = _to_decimal(data.shipping_amount)
        discount = _to_decimal(data.discount_amount)
        total = subtotal + tax + shipping - discount
        if abs(total - _to_decimal(data.total)) >= Decimal("0.01"):
            logger.warning("Client total %s differs from computed total %s for %s", data.total, total, order_number)

        order = Order(
            order_number=order_number,
            user_id=user_id,
            customer_email=data.customer_email,
            status=data.status or "pending",
            payment_status="pending",
            payment_method=data.payment_method,
            subtotal=subtotal,
            tax_amount=tax,
            shipping_amount=shipping,
            discount_amount=discount,
            total_amount=total,
            shipping_address=json.dumps(data.shipping_address or {}),
            notes=data.notes,
        )
        db.add(order)
        db.flush()

        db.add_all(
            OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                size=item.size,
                color=item.color,
                price=price,
            )
            for item, price in lines
        )
        db.commit()
    except Exception:
        db.rollback()
        _log_unreverted(applied, data.customer_email)
        raise

    logger.info("Created order %s with %d items", order_number, len(lines))
    return get_order(db, order.id)


def update_order_status(
    db: Session, order_id: int, user_id, status: str, tracking_number: Optional[str] = None
) -> Optional[Order]:
    """Set status and tracking on an order the caller owns. ``None`` when no row matched."""
    updated = (
        db.query(Order)
        .filter(Order.id == order_id, Order.user_id == user_id)
        .update(
            {
                Order.status: status,
                Order.tracking_number: tracking_number,
                Order.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        return None
    db.commit()
    return get_order(db, order_id, user_id)
