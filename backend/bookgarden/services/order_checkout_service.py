from __future__ import annotations

import logging
from datetime import datetime

from bookgarden.errors import Forbidden, InvalidReference, InvalidRequest, NotFound
from bookgarden.extensions import db
from bookgarden.models import CartItem, Order, OrderItem, OrderTransition, User
from bookgarden.services.address_service import link_address, resolve_address
from bookgarden.services.inventory_service import adjust_inventory
from bookgarden.services.notification_service import notify
from bookgarden.services.order_query_service import invalidate_order_views
from bookgarden.services.order_state_machine import OrderStatus, PaymentMethod, PaymentStatus
from bookgarden.utils.identifiers import parse_id, parse_id_list
from bookgarden.utils.order_settings import order_history_link
from bookgarden.utils.results import OperationResult, operation

logger = logging.getLogger(__name__)


def _text(payload: dict, key: str, limit: int) -> str:
    return str(payload.get(key) or "").strip()[:limit]


def _load_cart_items(user_id: int, cart_item_ids: list[int]) -> list[CartItem]:
    rows = CartItem.query.filter(CartItem.id.in_(cart_item_ids)).all()
    by_id = {int(r.id): r for r in rows}
    items: list[CartItem] = []
    for cid in cart_item_ids:
        item = by_id.get(cid)
        if item is None:
            raise NotFound(f"Cart item {cid} not found")
        if int(item.user_id) != int(user_id):
            raise Forbidden(f"Cart item {cid} does not belong to this user")
        items.append(item)
    return items


@operation("Failed to create order")
def create_order(user_id, payload) -> OperationResult:
    """Convert the selected cart items into a PENDING order in one transaction."""
    uid = parse_id(user_id, "user")
    user = db.session.get(User, uid)
    if user is None:
        raise NotFound("User not found")
    if not isinstance(payload, dict):
        raise InvalidRequest("Order payload must be an object")

    full_name = _text(payload, "full_name", 120)
    phone = _text(payload, "phone", 32)
    address_text = _text(payload, "address", 500)
    if not full_name or not phone or not address_text:
        raise InvalidRequest("full_name, phone and address are required")

    method = str(payload.get("payment_method") or PaymentMethod.COD).strip().upper()
    if method not in PaymentMethod.ALL:
        raise InvalidRequest(f"Unsupported payment method: {method}")

    cart_item_ids = parse_id_list(payload.get("cart_items"), "cart item")
    if not cart_item_ids:
        raise InvalidReference("Order must contain at least one cart item")

    address = resolve_address(full_name, phone, address_text)
    link_address(user, address)

    cart_items = _load_cart_items(uid, cart_item_ids)
    adjusted = adjust_inventory(cart_items)

    now = datetime.utcnow()
    order = Order(
        user_id=uid,
        shipping_address=address,
        status=OrderStatus.PENDING,
        payment_method=method,
        payment_status=PaymentStatus.NOT_PAID,
        order_date=now,
        updated_at=now,
        note=_text(payload, "note", 500) or None,
    )
    total = 0.0
    for position, (item, book) in enumerate(adjusted):
        unit_price = float(book.price or 0.0)
        order.items.append(
            OrderItem(book_id=int(book.id), quantity=int(item.quantity), unit_price=unit_price, position=position)
        )
        total += unit_price * int(item.quantity)
    order.total_price = round(total, 2)
    db.session.add(order)

    for item in cart_items:
        db.session.delete(item)
    db.session.flush()

    db.session.add(
        OrderTransition(
            order_id=int(order.id),
            field="status",
            from_status="",
            to_status=OrderStatus.PENDING,
            actor_type="customer",
            actor_id=uid,
            reason="order_created",
            created_at=now,
        )
    )
    db.session.commit()

    data = order.to_dict()
    invalidate_order_views(order.id, uid)
    logger.info("order_created order_id=%s user_id=%s items=%s", data["id"], uid, len(adjusted))
    notify(
        uid,
        "Order placed",
        f"Your order #{data['id']} has been placed successfully",
        order_history_link(),
        meta={"order_id": data["id"]},
    )
    return OperationResult.success("Order created successfully", data, status_code=201)
