# dailydues/routes/log_routes.py
from datetime import date

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..carry_over import format_date_key, is_work_day, parse_date_key, previous_work_day
from ..services import logs as log_service
from ..services.commitments import list_user_commitments
from ..services.identity import current_actor
from ..services.notify import get_notifier

logs_bp = Blueprint("logs", __name__)


@logs_bp.route("/today", methods=["GET"])
@jwt_required()
def get_today():
    """
    The caller's active assignments for a day (default today), each with
    the amount due and the log already submitted, if any.
    """
    actor = current_actor()
    day = parse_date_key(request.args.get("date")) if request.args.get("date") else date.today()

    logs = {log.commitment_id: log for log in log_service.list_logs_for_day(actor, day)}

    items = []
    for assignment in list_user_commitments(actor):
        commitment = assignment.commitment
        if not commitment.is_active:
            continue
        log = logs.get(commitment.id)
        total_due = log.total_due if log else commitment.daily_target + assignment.pending_carry_over
        previous = previous_work_day(day, commitment.active_days or [])
        items.append(
            {
                "commitment": commitment.to_dict(),
                "assignment": assignment.to_dict(),
                "is_work_day": is_work_day(day, commitment.active_days or []),
                "is_holiday": log_service.is_holiday(commitment.realm_id, actor.user_id, day),
                "total_due": total_due,
                "previous_work_day": format_date_key(previous) if previous else None,
                "log": log.to_dict() if log else None,
            }
        )

    return jsonify({"date": format_date_key(day), "commitments": items}), 200


@logs_bp.route("", methods=["POST"])
@jwt_required()
def log_progress():
    """
    Body:
    {
      "commitment_id": 3,
      "date": "2025-01-15",
      "completed_amount": 40,
      "log_id": null          # set to resubmit a pending or rejected log
    }
    """
    data = request.get_json(silent=True) or {}
    commitment_id = data.get("commitment_id")
    if not isinstance(commitment_id, int):
        return jsonify({"message": "commitment_id is required"}), 400

    existing_log_id = data.get("log_id")
    if existing_log_id is not None and not isinstance(existing_log_id, int):
        return jsonify({"message": "log_id must be an id"}), 400

    log = log_service.log_progress(
        current_actor(),
        commitment_id,
        data.get("date") or format_date_key(date.today()),
        data.get("completed_amount"),
        existing_log_id=existing_log_id,
        notifier=get_notifier(),
    )
    return jsonify({"log": log.to_dict()}), 200 if existing_log_id else 201


@logs_bp.route("/pending", methods=["GET"])
@jwt_required()
def get_pending():
    realm_id = request.args.get("realm_id", type=int)
    logs = log_service.list_pending_logs(current_actor(), realm_id=realm_id)
    return jsonify({"logs": logs}), 200


@logs_bp.route("/<int:log_id>/review", methods=["POST"])
@jwt_required()
def review(log_id):
    data = request.get_json(silent=True) or {}
    approved = data.get("approved")
    if not isinstance(approved, bool):
        return jsonify({"message": "approved must be true or false"}), 400

    log = log_service.review_log(current_actor(), log_id, approved, notifier=get_notifier())
    return jsonify({"log": log.to_dict()}), 200
