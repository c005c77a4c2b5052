# dailydues/routes/admin_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..services import commitments as commitment_service
from ..services import realms as realm_service
from ..services.identity import current_actor

admin_bp = Blueprint("admin", __name__)

COMMITMENT_FIELDS = (
    "name",
    "description",
    "daily_target",
    "unit",
    "active_days",
    "punishment_multiplier",
)


# ---------------------------------------------------------------------------
# Realms
# ---------------------------------------------------------------------------

@admin_bp.route("/realms", methods=["GET"])
@jwt_required()
def get_realms():
    realms = realm_service.list_realms(current_actor())
    return jsonify({"realms": [r.to_dict() for r in realms]}), 200


@admin_bp.route("/realms", methods=["POST"])
@jwt_required()
def create_realm():
    data = request.get_json(silent=True) or {}
    realm = realm_service.create_realm(
        current_actor(),
        name=data.get("name"),
        slug=data.get("slug"),
        avatar_url=data.get("avatar_url"),
    )
    return jsonify({"realm": realm.to_dict()}), 201


@admin_bp.route("/realms/<int:realm_id>/members", methods=["POST"])
@jwt_required()
def add_realm_member(realm_id):
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not isinstance(user_id, int):
        return jsonify({"message": "user_id is required"}), 400

    membership = realm_service.add_realm_member(current_actor(), realm_id, user_id)
    return jsonify(
        {"membership": {"id": membership.id, "realm_id": realm_id, "user_id": user_id}}
    ), 201


# ---------------------------------------------------------------------------
# Commitments
# ---------------------------------------------------------------------------

@admin_bp.route("/commitments", methods=["GET"])
@jwt_required()
def get_commitments():
    realm_id = request.args.get("realm_id", type=int)
    active_only = request.args.get("active") in ("1", "true", "yes")
    commitments = commitment_service.list_commitments(
        current_actor(), realm_id=realm_id, active_only=active_only
    )
    return jsonify({"commitments": [c.to_dict() for c in commitments]}), 200


@admin_bp.route("/commitments", methods=["POST"])
@jwt_required()
def create_commitment():
    """
    Body:
    {
      "realm_id": 1,
      "name": "Push-ups",
      "daily_target": 50,
      "unit": "reps",
      "active_days": [0, 1, 2, 3, 4],
      "punishment_multiplier": 2
    }
    """
    data = request.get_json(silent=True) or {}
    realm_id = data.get("realm_id")
    if not isinstance(realm_id, int):
        return jsonify({"message": "realm_id is required"}), 400

    commitment = commitment_service.create_commitment(
        current_actor(),
        realm_id=realm_id,
        name=data.get("name"),
        daily_target=data.get("daily_target"),
        unit=data.get("unit") or "reps",
        active_days=data.get("active_days"),
        punishment_multiplier=data.get("punishment_multiplier", 1),
        description=data.get("description"),
    )
    return jsonify({"commitment": commitment.to_dict()}), 201


@admin_bp.route("/commitments/<int:commitment_id>", methods=["PATCH"])
@jwt_required()
def update_commitment(commitment_id):
    data = request.get_json(silent=True) or {}
    changes = {k: data[k] for k in COMMITMENT_FIELDS if k in data}
    commitment = commitment_service.update_commitment(current_actor(), commitment_id, **changes)
    return jsonify({"commitment": commitment.to_dict()}), 200


@admin_bp.route("/commitments/<int:commitment_id>/toggle", methods=["POST"])
@jwt_required()
def toggle_commitment(commitment_id):
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    if not isinstance(is_active, bool):
        return jsonify({"message": "is_active must be true or false"}), 400

    commitment = commitment_service.set_commitment_active(current_actor(), commitment_id, is_active)
    return jsonify({"commitment": commitment.to_dict()}), 200


@admin_bp.route("/commitments/<int:commitment_id>", methods=["DELETE"])
@jwt_required()
def delete_commitment(commitment_id):
    commitment_service.delete_commitment(current_actor(), commitment_id)
    return jsonify({"message": "Commitment deleted"}), 200


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------

@admin_bp.route("/users/<int:user_id>/commitments", methods=["PUT"])
@jwt_required()
def set_user_commitments(user_id):
    data = request.get_json(silent=True) or {}
    commitment_ids = data.get("commitment_ids")
    if not isinstance(commitment_ids, list) or not all(
        isinstance(cid, int) and not isinstance(cid, bool) for cid in commitment_ids
    ):
        return jsonify({"message": "commitment_ids must be a list of ids"}), 400

    assignments = commitment_service.assign_user_commitments(current_actor(), user_id, commitment_ids)
    return jsonify({"assignments": [a.to_dict() for a in assignments]}), 200


# ---------------------------------------------------------------------------
# Holidays
# ---------------------------------------------------------------------------

@admin_bp.route("/holidays", methods=["GET"])
@jwt_required()
def get_holidays():
    realm_id = request.args.get("realm_id", type=int)
    if realm_id is None:
        return jsonify({"message": "realm_id is required"}), 400

    holidays = realm_service.list_holidays(current_actor(), realm_id)
    return jsonify({"holidays": [h.to_dict() for h in holidays]}), 200


@admin_bp.route("/holidays", methods=["POST"])
@jwt_required()
def create_holiday():
    data = request.get_json(silent=True) or {}
    realm_id = data.get("realm_id")
    if not isinstance(realm_id, int):
        return jsonify({"message": "realm_id is required"}), 400

    holiday = realm_service.create_holiday(
        current_actor(),
        realm_id=realm_id,
        date=data.get("date"),
        description=data.get("description"),
        user_id=data.get("user_id"),
    )
    return jsonify({"holiday": holiday.to_dict()}), 201


@admin_bp.route("/holidays/<int:holiday_id>", methods=["DELETE"])
@jwt_required()
def delete_holiday(holiday_id):
    realm_service.delete_holiday(current_actor(), holiday_id)
    return jsonify({"message": "Holiday deleted"}), 200
