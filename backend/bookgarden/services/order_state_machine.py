from __future__ import annotations

import json
import logging
from datetime import datetime

from bookgarden.errors import Forbidden, InvalidTransition, NotFound
from bookgarden.extensions import db
from bookgarden.models import Order, OrderTransition, User
from bookgarden.services.notification_service import notify_and_push
from bookgarden.services.order_query_service import invalidate_order_views
from bookgarden.utils.capabilities import Capability, require_capability
from bookgarden.utils.events import log_event
from bookgarden.utils.identifiers import parse_id
from bookgarden.utils.order_settings import order_history_link
from bookgarden.utils.results import OperationResult, operation

logger = logging.getLogger(__name__)


class OrderStatus:
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DELIVERING = "DELIVERING"
    DELIVERED = "DELIVERED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"

    ALL = (PENDING, PROCESSING, DELIVERING, DELIVERED, CONFIRMED, CANCELLED)

    # Edges any staff update may take.
    ALLOWED = {
        PENDING: {PROCESSING, CANCELLED},
        PROCESSING: {DELIVERING, CANCELLED},
        DELIVERING: {DELIVERED, CANCELLED},
        DELIVERED: set(),
        CONFIRMED: set(),
        CANCELLED: set(),
    }
    # Reachable only through confirm-receipt or the auto-confirm sweep.
    RECEIPT = {
        DELIVERED: {CONFIRMED},
    }


class PaymentStatus:
    NOT_PAID = "NOT_PAID"
    PAID = "PAID"


class PaymentMethod:
    ONLINE = "ONLINE"
    COD = "COD"

    ALL = (ONLINE, COD)


def normalize_status(value) -> str | None:
    status = str(value or "").strip().upper()
    if status in OrderStatus.ALL:
        return status
    return None


def can_transition(current: str, target: str, *, receipt: bool = False) -> bool:
    current = normalize_status(current)
    target = normalize_status(target)
    if current is None or target is None:
        return False
    table = OrderStatus.RECEIPT if receipt else OrderStatus.ALLOWED
    return target in table.get(current, set())


def load_order_for_update(order_id) -> Order:
    """Fresh read of the order, row-locked where the database supports it."""
    oid = parse_id(order_id, "order")
    order = (
        Order.query.filter_by(id=oid)
        .populate_existing()
        .with_for_update(of=Order)
        .first()
    )
    if order is None:
        raise NotFound("Order not found")
    return order


def _record_transition(order: Order, field: str, from_status: str, to_status: str, *, actor_type: str, actor_id, reason: str, metadata: dict | None = None) -> OrderTransition:
    row = OrderTransition(
        order_id=int(order.id),
        field=field,
        from_status=from_status or "",
        to_status=to_status,
        actor_type=(actor_type or "system")[:32],
        actor_id=int(actor_id) if actor_id is not None else None,
        reason=(reason or "")[:240],
        metadata_json=json.dumps(metadata or {})[:4000],
        created_at=datetime.utcnow(),
    )
    db.session.add(row)
    return row


def mark_order_paid(order: Order, *, actor_type: str, actor_id=None, reason: str = "") -> bool:
    """Set PAID once. payment_date is stamped only on the first success."""
    now = datetime.utcnow()
    changed = False
    if not order.payment_date:
        order.payment_date = now
        changed = True
    if order.payment_status != PaymentStatus.PAID:
        _record_transition(
            order,
            "payment_status",
            order.payment_status or PaymentStatus.NOT_PAID,
            PaymentStatus.PAID,
            actor_type=actor_type,
            actor_id=actor_id,
            reason=reason,
        )
        order.payment_status = PaymentStatus.PAID
        changed = True
    if changed:
        order.updated_at = now
    return changed


def apply_status_change(
    order: Order,
    target: str,
    *,
    actor_type: str,
    actor_id=None,
    reason: str = "",
    receipt: bool = False,
) -> OrderTransition:
    """Validate and stage a status change. The caller commits."""
    current = normalize_status(order.status) or OrderStatus.PENDING
    target = normalize_status(target)
    if target is None or not can_transition(current, target, receipt=receipt):
        raise InvalidTransition(f"Cannot change order status from {current} to {target or 'UNKNOWN'}")

    row = _record_transition(order, "status", current, target, actor_type=actor_type, actor_id=actor_id, reason=reason)
    order.status = target
    order.updated_at = datetime.utcnow()
    if target == OrderStatus.DELIVERED:
        mark_order_paid(order, actor_type=actor_type, actor_id=actor_id, reason="delivered")
    return row


def _load_user(user_id) -> User:
    user = db.session.get(User, parse_id(user_id, "user"))
    if user is None:
        raise NotFound("User not found")
    return user


def _load_owned_order(user: User, order_id, action: str) -> Order:
    order = load_order_for_update(order_id)
    if int(order.user_id) != int(user.id):
        raise Forbidden(f"You can only {action} your own orders")
    return order


@operation("Failed to update order status")
def request_transition(actor_id, order_id, new_status) -> OperationResult:
    actor = _load_user(actor_id)
    require_capability(actor, Capability.MANAGE_ORDERS)
    target = normalize_status(new_status)
    if target is None:
        raise InvalidTransition(f"Unknown order status: {new_status}")

    order = load_order_for_update(order_id)
    previous = order.status
    apply_status_change(order, target, actor_type="staff", actor_id=actor.id, reason="status_update")
    db.session.commit()

    data = order.to_dict()
    owner_id = int(order.user_id)
    invalidate_order_views(order.id, owner_id)
    logger.info("order_status_updated order_id=%s from=%s to=%s actor_id=%s", order.id, previous, target, actor.id)
    notify_and_push(
        owner_id,
        "Order status updated",
        f"Your order #{data['id']} has been updated to {target}",
        order_history_link(),
        meta={"order_id": data["id"], "status": target},
    )
    return OperationResult.success("Order status updated successfully", data)


@operation("Failed to cancel order")
def customer_cancel(user_id, order_id) -> OperationResult:
    user = _load_user(user_id)
    order = _load_owned_order(user, order_id, "cancel")
    if order.status != OrderStatus.PENDING:
        raise InvalidTransition("Only pending orders can be cancelled")

    apply_status_change(order, OrderStatus.CANCELLED, actor_type="customer", actor_id=user.id, reason="customer_cancel")
    db.session.commit()

    data = order.to_dict()
    invalidate_order_views(order.id, user.id)
    return OperationResult.success("Order cancelled successfully", data)


@operation("Failed to confirm order")
def customer_confirm_receipt(user_id, order_id) -> OperationResult:
    user = _load_user(user_id)
    order = _load_owned_order(user, order_id, "confirm")
    if order.status != OrderStatus.DELIVERED:
        raise InvalidTransition("Only delivered orders can be confirmed as received")

    apply_status_change(
        order,
        OrderStatus.CONFIRMED,
        actor_type="customer",
        actor_id=user.id,
        reason="customer_confirm_receipt",
        receipt=True,
    )
    log_event(
        "order_receipt_confirmed",
        subject_type="order",
        subject_id=order.id,
        actor_user_id=int(user.id),
        idempotency_key=f"order_receipt_confirmed:{int(order.id)}",
    )
    db.session.commit()

    data = order.to_dict()
    invalidate_order_views(order.id, user.id)
    return OperationResult.success("Order confirmed successfully", data)
