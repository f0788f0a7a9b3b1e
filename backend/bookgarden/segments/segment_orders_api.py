from __future__ import annotations

from flask import Blueprint, jsonify, request

from bookgarden.segments.auth import current_user_id, unauthorized
from bookgarden.services import order_query_service, order_state_machine
from bookgarden.services.order_checkout_service import create_order

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")


def _respond(result):
    body, status = result.to_response()
    return jsonify(body), status


@orders_bp.post("")
def create_order_route():
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    payload = request.get_json(silent=True)
    return _respond(create_order(uid, payload if payload is not None else {}))


@orders_bp.get("/my")
def my_orders():
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    return _respond(order_query_service.list_user_orders(uid))


@orders_bp.get("")
def paged_orders():
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    page = request.args.get("page", 0)
    size = request.args.get("size", 10)
    return _respond(order_query_service.list_orders(uid, page=page, size=size))


@orders_bp.get("/all")
def all_orders():
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    return _respond(order_query_service.list_all_orders(uid))


@orders_bp.get("/top-customers")
def top_customers():
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    limit = request.args.get("limit", type=int)
    return _respond(order_query_service.top_customers(uid, limit=limit))


@orders_bp.get("/<int:order_id>")
def get_order(order_id: int):
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    return _respond(order_query_service.get_order(uid, order_id))


@orders_bp.post("/<int:order_id>/cancel")
def cancel_order(order_id: int):
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    return _respond(order_state_machine.customer_cancel(uid, order_id))


@orders_bp.put("/<int:order_id>/confirm-received")
def confirm_received(order_id: int):
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    return _respond(order_state_machine.customer_confirm_receipt(uid, order_id))


@orders_bp.put("/<int:order_id>/status")
def update_status(order_id: int):
    uid = current_user_id()
    if uid is None:
        return unauthorized()
    payload = request.get_json(silent=True) or {}
    new_status = payload.get("status") or request.args.get("status")
    return _respond(order_state_machine.request_transition(uid, order_id, new_status))
