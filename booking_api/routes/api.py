import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from shared.roles import STAFF_ROLES
from booking_api.auth import issue_access_token, roles_required
from booking_api.mercadopago import MercadoPagoError, verify_webhook_signature
from booking_api.models import Facility, User

logger = logging.getLogger(__name__)

bp = Blueprint('api', __name__, url_prefix='/api/v1')


# ==================== Auth ====================

@bp.route('/auth/login', methods=['POST'])
def login():
    """Exchange email and password for an access token."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'email and password are required'}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not user.check_password(password):
        logger.info(f"Failed login for {email}")
        return jsonify({'error': 'Invalid credentials'}), 401

    hours = current_app.config.get('JWT_EXPIRATION_HOURS', 168)
    return jsonify({
        'access_token': issue_access_token(user),
        'expires_in': hours * 3600,
        'user': user.to_dict()
    })


@bp.route('/auth/me', methods=['GET'])
@roles_required()
def me():
    return jsonify(current_user.to_dict())


# ==================== Facilities ====================

@bp.route('/facilities', methods=['GET'])
@roles_required(*STAFF_ROLES)
def list_facilities():
    """Super admins see every facility; others only their tenant's."""
    query = Facility.query
    if not current_user.is_super_admin:
        query = query.filter_by(tenant_id=current_user.tenant_id)
    elif request.args.get('tenant_id'):
        query = query.filter_by(tenant_id=request.args['tenant_id'])

    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)

    facilities = query.order_by(Facility.name.asc()).all()
    return jsonify({
        'facilities': [f.to_dict() for f in facilities],
        'count': len(facilities)
    })


def _visible_facility(facility_id: str):
    if not isinstance(facility_id, str):
        return None
    facility = Facility.query.filter_by(id=facility_id).first()
    if not facility:
        return None
    if not current_user.is_super_admin and facility.tenant_id != current_user.tenant_id:
        return None
    return facility


@bp.route('/facilities/<facility_id>', methods=['GET'])
@roles_required(*STAFF_ROLES)
def get_facility(facility_id: str):
    facility = _visible_facility(facility_id)
    if not facility:
        return jsonify({'error': 'Facility not found'}), 404
    return jsonify(facility.to_dict())


# ==================== Payments ====================

@bp.route('/payments/preferences', methods=['POST'])
@roles_required(*STAFF_ROLES)
def create_payment_preference():
    """Create a Mercado Pago checkout preference for a facility."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    facility = _visible_facility(data.get('facility_id') or '')
    if not facility:
        return jsonify({'error': 'Facility not found'}), 404

    reference = data.get('reference')
    title = data.get('title')
    amount = data.get('amount')
    if not reference or not title:
        return jsonify({'error': 'reference and title are required'}), 400
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        return jsonify({'error': 'amount must be a positive number'}), 400

    try:
        preference = current_app.mercadopago.create_preference(
            access_token=facility.mercadopago_access_token,
            reference=reference,
            title=f"{title} - {facility.name}",
            amount=amount,
            description=data.get('description'),
            payer_email=data.get('payer_email')
        )
    except MercadoPagoError as e:
        return jsonify({'error': e.message}), 502

    return jsonify(preference), 201


# ==================== Webhooks ====================

@bp.route('/webhooks/mercadopago', methods=['POST'])
def mercadopago_webhook():
    """Public endpoint; validates the signature when a secret is configured."""
    payload = request.get_json(silent=True)
    signature = request.headers.get('x-signature')
    request_id = request.headers.get('x-request-id')

    if not isinstance(payload, dict) or not isinstance(payload.get('data') or {}, dict):
        logger.warning(f"Invalid webhook payload for request {request_id}")
        return jsonify({'error': 'Invalid webhook payload'}), 400

    data_id = str((payload.get('data') or {}).get('id') or '')
    logger.info(f"Webhook received: type={payload.get('type')}, id={data_id}, requestId={request_id}")

    if not payload.get('type'):
        logger.warning("Invalid webhook payload: missing type")
        return jsonify({'error': 'Invalid webhook payload'}), 400

    secret = current_app.settings['mercadopago'].webhook_secret
    if secret and signature:
        if not verify_webhook_signature(secret, signature, data_id, request_id):
            logger.warning(f"Invalid webhook signature for request {request_id}")
            return jsonify({'error': 'Invalid webhook signature'}), 400

    return jsonify({'status': 'received'})


@bp.route('/webhooks/mercadopago/test', methods=['POST'])
def mercadopago_webhook_test():
    logger.info("Test webhook received")
    return jsonify({'status': 'ok'})
