from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from shared.roles import STAFF_ROLES
from booking_api.auth import current_tenant_id, roles_required
from booking_api.opponent_match_service import OpponentMatchError

bp = Blueprint('opponent_matches', __name__, url_prefix='/api/v1/opponent-matches')


@bp.errorhandler(OpponentMatchError)
def handle_opponent_match_error(e: OpponentMatchError):
    return jsonify({'error': e.message}), e.status_code


def service():
    return current_app.opponent_matches


# Dashboard users act as the customer until customers have their own logins

@bp.route('', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_match():
    """Create an opponent match request."""
    match = service().create(current_tenant_id(), current_user.id, request.get_json(silent=True))
    return jsonify(match), 201


@bp.route('', methods=['GET'])
@roles_required(*STAFF_ROLES)
def list_matches():
    filters = {
        key: request.args.get(key)
        for key in ('facility_id', 'date', 'sport_type', 'skill_level', 'status')
    }
    return jsonify(service().list(current_tenant_id(), filters))


@bp.route('/<match_id>', methods=['GET'])
@roles_required(*STAFF_ROLES)
def get_match(match_id: str):
    return jsonify(service().get(current_tenant_id(), match_id))


@bp.route('/<match_id>/join', methods=['POST'])
@roles_required(*STAFF_ROLES)
def join_match(match_id: str):
    data = request.get_json(silent=True)
    notes = data.get('notes') if isinstance(data, dict) else None
    match = service().join(current_tenant_id(), current_user.id, match_id, notes=notes)
    return jsonify(match)


@bp.route('/<match_id>/leave', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def leave_match(match_id: str):
    return jsonify(service().leave(current_tenant_id(), current_user.id, match_id))


@bp.route('/<match_id>', methods=['DELETE'])
@roles_required(*STAFF_ROLES)
def cancel_match(match_id: str):
    """Cancel a match (creator only)."""
    return jsonify(service().cancel(current_tenant_id(), current_user.id, match_id))
