import logging

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_user, logout_user

from shared.roles import UserRole
from booking_api.auth import roles_required
from booking_api.models import db, Facility, User

logger = logging.getLogger(__name__)

bp = Blueprint('pages', __name__)


def facility_detail_path(facility) -> str:
    return url_for('pages.facility_detail', facility_id=facility.id)


def facility_credentials_path(facility) -> str:
    return url_for('pages.facility_credentials', facility_id=facility.id)


@bp.app_context_processor
def inject_navigation():
    return {
        'facility_detail_path': facility_detail_path,
        'facility_credentials_path': facility_credentials_path,
    }


def _safe_next(target: str) -> str:
    # Only same-site relative paths
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return url_for('pages.facilities')


@bp.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        email = (request.form.get('email') or '').strip().lower()
        password = request.form.get('password') or ''
        user = User.query.filter_by(email=email).first()

        if user and user.is_active and user.check_password(password):
            login_user(user)
            logger.info(f"User {user.email} logged in")
            return redirect(_safe_next(request.args.get('next')))

        flash('Credenciales inválidas')
        return render_template('login.html'), 401

    return render_template('login.html')


@bp.route('/logout')
def logout():
    logout_user()
    return redirect(url_for('pages.login'))


@bp.route('/facilities')
@roles_required(UserRole.SUPER_ADMIN)
def facilities():
    """Super admin view of every facility on the platform."""
    facility_list = Facility.query.order_by(Facility.name.asc()).all()
    return render_template('facilities.html',
                           facilities=facility_list,
                           active_page='facilities')


@bp.route('/facilities/<facility_id>')
@roles_required(UserRole.SUPER_ADMIN)
def facility_detail(facility_id: str):
    facility = db.session.get(Facility, facility_id)
    if not facility:
        abort(404)
    return render_template('facility_detail.html',
                           facility=facility,
                           active_page='facilities')


@bp.route('/facilities/<facility_id>/credentials', methods=['GET', 'POST'])
@roles_required(UserRole.SUPER_ADMIN)
def facility_credentials(facility_id: str):
    facility = db.session.get(Facility, facility_id)
    if not facility:
        abort(404)

    if request.method == 'POST':
        public_key = (request.form.get('public_key') or '').strip()
        access_token = (request.form.get('access_token') or '').strip()

        if not public_key or not access_token:
            flash('La clave pública y el access token son obligatorios')
            return render_template('facility_credentials.html', facility=facility,
                                   active_page='facilities'), 400

        facility.set_mercadopago_credentials(public_key, access_token)
        db.session.commit()
        logger.info(f"Mercado Pago credentials updated for facility {facility.id} by {current_user.email}")
        flash('Credenciales actualizadas')
        return redirect(facility_credentials_path(facility))

    return render_template('facility_credentials.html',
                           facility=facility,
                           active_page='facilities')
