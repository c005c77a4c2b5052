# dailydues/routes/leaderboard_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..leaderboard import SORT_STREAK
from ..services import leaderboard as leaderboard_service
from ..services.identity import current_actor
from ..services.notify import get_notifier

leaderboard_bp = Blueprint("leaderboard", __name__)


@leaderboard_bp.route("", methods=["GET"])
@jwt_required()
def get_leaderboard():
    """
    Query: ?commitment_id=&realm_id=&sort_by=streak|reps
    """
    entries = leaderboard_service.get_leaderboard(
        current_actor(),
        commitment_id=request.args.get("commitment_id", type=int),
        realm_id=request.args.get("realm_id", type=int),
        sort_by=request.args.get("sort_by", SORT_STREAK),
    )
    return jsonify({"entries": entries}), 200


@leaderboard_bp.route("/realm-stats", methods=["GET"])
@jwt_required()
def realm_stats():
    """
    Query: ?realm_id=
    Share of each realm's members with an approved log today.
    """
    stats = leaderboard_service.get_realm_stats(
        current_actor(),
        realm_id=request.args.get("realm_id", type=int),
    )
    return jsonify({"realms": stats}), 200


@leaderboard_bp.route("/share", methods=["POST"])
@jwt_required()
def share():
    data = request.get_json(silent=True) or {}
    commitment_id = data.get("commitment_id")
    if not isinstance(commitment_id, int):
        return jsonify({"message": "commitment_id is required"}), 400

    sent = leaderboard_service.share_leaderboard(
        current_actor(),
        commitment_id,
        sort_by=data.get("sort_by") or SORT_STREAK,
        notifier=get_notifier(),
    )
    if not sent:
        return jsonify({"message": "Failed to send leaderboard to Slack"}), 502
    return jsonify({"message": "Leaderboard shared"}), 200
