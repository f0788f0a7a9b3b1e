from __future__ import annotations

import hmac
import os

from flask import Blueprint, current_app, g, jsonify, request

from bookgarden.services.payment_callback_service import handle_payment_callback

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


def _callback_secret() -> str:
    return (os.getenv("PAYMENT_CALLBACK_SECRET") or "").strip()


def _signature_ok() -> bool:
    secret = _callback_secret()
    if not secret:
        return True
    provided = (request.headers.get("X-Callback-Token") or "").strip()
    return bool(provided) and hmac.compare_digest(provided, secret)


@payments_bp.post("/callback")
def payment_callback():
    if not _signature_ok():
        current_app.logger.warning("payment_callback_bad_token")
        return jsonify({"ok": False, "error": "UNAUTHORIZED", "message": "Invalid callback token", "data": None}), 401

    payload = request.get_json(silent=True) or {}
    if not payload:
        payload = request.form.to_dict() or request.args.to_dict()
    order_id = payload.get("orderId", payload.get("order_id"))
    response_code = payload.get("responseCode", payload.get("response_code"))
    g.order_id = order_id

    result = handle_payment_callback(order_id, response_code, payload)
    body, status = result.to_response()
    return jsonify(body), status
