# dailydues/routes/challenge_routes.py
from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from ..services import challenges as challenge_service
from ..services.identity import current_actor

challenges_bp = Blueprint("challenges", __name__)


@challenges_bp.route("", methods=["GET"])
@jwt_required()
def get_challenges():
    realm_id = request.args.get("realm_id", type=int)
    challenges = challenge_service.list_challenges(current_actor(), realm_id=realm_id)
    return jsonify({"challenges": challenges}), 200


@challenges_bp.route("", methods=["POST"])
@jwt_required()
def create_challenge():
    """
    Body:
    {
      "realm_id": 1,
      "commitment_id": 2,
      "name": "Friday max push-ups",
      "duration_hours": 24,
      "max_units": 200
    }
    """
    data = request.get_json(silent=True) or {}
    realm_id = data.get("realm_id")
    commitment_id = data.get("commitment_id")
    if not isinstance(realm_id, int) or not isinstance(commitment_id, int):
        return jsonify({"message": "realm_id and commitment_id are required"}), 400

    challenge = challenge_service.create_challenge(
        current_actor(),
        realm_id=realm_id,
        commitment_id=commitment_id,
        name=data.get("name"),
        duration_hours=data.get("duration_hours"),
        max_units=data.get("max_units"),
        description=data.get("description"),
    )
    return jsonify({"challenge": challenge.to_dict()}), 201


@challenges_bp.route("/<int:challenge_id>/join", methods=["POST"])
@jwt_required()
def join(challenge_id):
    member = challenge_service.join_challenge(current_actor(), challenge_id)
    return jsonify(
        {
            "message": "Joined challenge",
            "challenge_id": challenge_id,
            "user_id": member.user_id,
        }
    ), 201


@challenges_bp.route("/<int:challenge_id>/votes", methods=["POST"])
@jwt_required()
def vote(challenge_id):
    data = request.get_json(silent=True) or {}
    target_user_id = data.get("target_user_id")
    if not isinstance(target_user_id, int):
        return jsonify({"message": "target_user_id is required"}), 400

    votes = challenge_service.submit_vote(
        current_actor(), challenge_id, target_user_id, data.get("reps")
    )
    return jsonify(
        {
            "target_user_id": target_user_id,
            "votes": {str(voter): reps for voter, reps in votes.items()},
        }
    ), 200


@challenges_bp.route("/<int:challenge_id>/leaderboard", methods=["GET"])
@jwt_required()
def leaderboard(challenge_id):
    return jsonify(challenge_service.get_challenge_leaderboard(current_actor(), challenge_id)), 200


@challenges_bp.route("/<int:challenge_id>/archive", methods=["POST"])
@jwt_required()
def archive(challenge_id):
    challenge = challenge_service.archive_challenge(current_actor(), challenge_id)
    return jsonify({"challenge": challenge.to_dict()}), 200
