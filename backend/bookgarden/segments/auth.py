from __future__ import annotations

from flask import g, jsonify, request

from bookgarden.utils.jwt_utils import user_id_from_header


def current_user_id() -> int | None:
    uid = user_id_from_header(request.headers.get("Authorization", ""))
    if uid is not None:
        g.auth_user_id = uid
    return uid


def unauthorized():
    return jsonify({"ok": False, "error": "UNAUTHORIZED", "message": "Authentication required", "data": None}), 401
