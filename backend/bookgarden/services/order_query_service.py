from __future__ import annotations

from sqlalchemy import func

from bookgarden.errors import Forbidden, InvalidRequest, NotFound
from bookgarden.extensions import db
from bookgarden.models import Order, User
from bookgarden.utils import cache_layer
from bookgarden.utils.capabilities import Capability, has_capability
from bookgarden.utils.identifiers import parse_id
from bookgarden.utils.order_settings import top_customers_limit
from bookgarden.utils.results import OperationResult, operation

MAX_PAGE_SIZE = 100


def _load_user(user_id) -> User:
    user = db.session.get(User, parse_id(user_id, "user"))
    if user is None:
        raise NotFound("User not found")
    return user


def _newest_first(query):
    return query.order_by(Order.order_date.desc(), Order.id.desc())


def _serialize(orders) -> list[dict]:
    return [o.to_dict() for o in orders]


def invalidate_order_views(order_id: int | None, user_id: int | None) -> None:
    """Drop every cached view that can contain the given order."""
    if order_id is not None:
        cache_layer.delete(cache_layer.order_key(order_id))
    if user_id is not None:
        cache_layer.delete_prefix(cache_layer.user_orders_prefix(user_id))
    cache_layer.delete_prefix(cache_layer.all_orders_prefix())
    cache_layer.delete_prefix(cache_layer.top_customers_prefix())


@operation("Failed to load order")
def get_order(actor_id, order_id) -> OperationResult:
    actor = _load_user(actor_id)
    oid = parse_id(order_id, "order")

    key = cache_layer.order_key(oid)
    payload = cache_layer.get_json(key)
    if payload is None:
        order = db.session.get(Order, oid)
        if order is None:
            raise NotFound("Order not found")
        payload = order.to_dict()
        cache_layer.set_json(key, payload)

    if int(payload.get("user_id") or 0) != int(actor.id) and not has_capability(actor, Capability.VIEW_ALL_ORDERS):
        raise Forbidden("You do not have permission to view this order")
    return OperationResult.success("Order retrieved successfully", payload)


@operation("Failed to load orders")
def list_user_orders(user_id) -> OperationResult:
    user = _load_user(user_id)
    key = cache_layer.build_key(cache_layer.user_orders_prefix(user.id), view="all")
    payload = cache_layer.get_json(key)
    if payload is None:
        payload = _serialize(_newest_first(Order.query.filter_by(user_id=int(user.id))).all())
        cache_layer.set_json(key, payload)
    return OperationResult.success("Orders retrieved successfully", payload)


@operation("Failed to load orders")
def list_orders(actor_id, page=0, size=10) -> OperationResult:
    """Paged order list, 0-based. Staff see every order, customers only their own."""
    actor = _load_user(actor_id)
    try:
        page = int(page)
        size = int(size)
    except (TypeError, ValueError):
        raise InvalidRequest("page and size must be integers")
    if page < 0 or size < 1 or size > MAX_PAGE_SIZE:
        raise InvalidRequest(f"page must be >= 0 and size between 1 and {MAX_PAGE_SIZE}")

    see_all = has_capability(actor, Capability.VIEW_ALL_ORDERS)
    prefix = cache_layer.all_orders_prefix() if see_all else cache_layer.user_orders_prefix(actor.id)
    key = cache_layer.build_key(prefix, page=page, size=size)
    payload = cache_layer.get_json(key)
    if payload is None:
        query = Order.query if see_all else Order.query.filter_by(user_id=int(actor.id))
        pagination = _newest_first(query).paginate(page=page + 1, per_page=size, error_out=False)
        payload = {
            "content": _serialize(pagination.items),
            "page": page,
            "size": size,
            "total_elements": int(pagination.total or 0),
            "total_pages": int(pagination.pages or 0),
        }
        cache_layer.set_json(key, payload)
    return OperationResult.success("Orders retrieved successfully", payload)


@operation("Failed to load orders")
def list_all_orders(actor_id) -> OperationResult:
    actor = _load_user(actor_id)
    see_all = has_capability(actor, Capability.VIEW_ALL_ORDERS)
    prefix = cache_layer.all_orders_prefix() if see_all else cache_layer.user_orders_prefix(actor.id)
    key = cache_layer.build_key(prefix, view="unpaged")
    payload = cache_layer.get_json(key)
    if payload is None:
        query = Order.query if see_all else Order.query.filter_by(user_id=int(actor.id))
        payload = _serialize(_newest_first(query).all())
        cache_layer.set_json(key, payload)
    return OperationResult.success("Orders retrieved successfully", payload)


@operation("Failed to load top customers")
def top_customers(actor_id, limit=None) -> OperationResult:
    actor = _load_user(actor_id)
    if not has_capability(actor, Capability.VIEW_ALL_ORDERS):
        raise Forbidden("You do not have permission to view customer statistics")
    n = top_customers_limit() if limit is None else max(1, min(int(limit), 100))

    key = cache_layer.build_key(cache_layer.top_customers_prefix(), limit=n)
    payload = cache_layer.get_json(key)
    if payload is None:
        order_count = func.count(Order.id).label("order_count")
        rows = (
            db.session.query(User, order_count)
            .join(Order, Order.user_id == User.id)
            .group_by(User.id)
            .order_by(order_count.desc(), User.id.asc())
            .limit(n)
            .all()
        )
        payload = [
            {
                "user_id": int(user.id),
                "full_name": user.full_name or "",
                "email": user.email,
                "avatar": user.avatar or "",
                "order_count": int(count or 0),
            }
            for user, count in rows
        ]
        cache_layer.set_json(key, payload)
    return OperationResult.success("Top customers retrieved successfully", payload)
