from __future__ import annotations

from flask import Blueprint, jsonify

from bookgarden.extensions import db
from bookgarden.jobs.order_runner import JOBS
from bookgarden.models import JobRun, User
from bookgarden.segments.auth import current_user_id, unauthorized
from bookgarden.utils.capabilities import Capability, has_capability

order_jobs_bp = Blueprint("order_jobs_bp", __name__, url_prefix="/api/admin/order-jobs")


def _staff_or_error():
    uid = current_user_id()
    if uid is None:
        return None, unauthorized()
    user = db.session.get(User, uid)
    if not has_capability(user, Capability.RUN_ORDER_JOBS):
        return None, (jsonify({"ok": False, "error": "FORBIDDEN", "message": "Staff only", "data": None}), 403)
    return user, None


@order_jobs_bp.post("/<job>")
def run_job(job: str):
    _, error = _staff_or_error()
    if error is not None:
        return error
    runner = JOBS.get((job or "").strip().lower())
    if runner is None:
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": f"Unknown job: {job}", "data": None}), 404
    summary = runner()
    return jsonify({"ok": bool(summary.get("ok")), "message": "Job finished", "data": summary}), 200


@order_jobs_bp.get("/runs")
def recent_runs():
    _, error = _staff_or_error()
    if error is not None:
        return error
    rows = JobRun.query.order_by(JobRun.ran_at.desc(), JobRun.id.desc()).limit(50).all()
    return jsonify({"ok": True, "message": "", "data": [r.to_dict() for r in rows]}), 200
