import logging
from datetime import timedelta
from functools import wraps
from typing import Optional

import jwt
from flask import abort, current_app, request
from flask_login import LoginManager, current_user

from shared.roles import UserRole, can_access
from .models import db, User, utcnow

logger = logging.getLogger(__name__)

login_manager = LoginManager()
login_manager.login_view = 'pages.login'

# API blueprints answer 401 instead of redirecting to the login page
API_BLUEPRINTS = ('api', 'opponent_matches')
for _name in API_BLUEPRINTS:
    login_manager.blueprint_login_views[_name] = None


def issue_access_token(user: User) -> str:
    """Sign an HS256 access token for a user."""
    now = utcnow()
    hours = current_app.config.get('JWT_EXPIRATION_HOURS', 168)
    claims = {
        'sub': user.id,
        'email': user.email,
        'role': user.role,
        'tenant_id': user.tenant_id,
        'iat': now,
        'exp': now + timedelta(hours=hours),
    }
    return jwt.encode(claims, current_app.config['JWT_SECRET'], algorithm='HS256')


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired access token")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected invalid access token: {e}")
    return None


def user_from_token(token: Optional[str]) -> Optional[User]:
    """Resolve an active user from a bearer token, or None."""
    if not token:
        return None
    claims = decode_access_token(token)
    if not claims:
        return None
    user = db.session.get(User, claims.get('sub'))
    if user is None or not user.is_active:
        return None
    return user


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() == 'bearer' and token:
        return token.strip()
    return None


@login_manager.user_loader
def load_user(user_id: str):
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


@login_manager.request_loader
def load_user_from_request(req):
    return user_from_token(bearer_token(req.headers.get('Authorization')))


def roles_required(*roles: UserRole):
    """
    Guard a view with role-based access.

    Anonymous users go through Flask-Login's unauthorized handler (a
    redirect to the login page for pages, 401 for API blueprints);
    authenticated users lacking the role get 403.
    """
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if not can_access(current_user, roles):
                logger.info(f"Access denied for {current_user.email} to {request.path}")
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def current_tenant_id() -> str:
    """
    Tenant scope for the current request.

    Super admins have no tenant of their own and pick one with the
    X-Tenant-Id header (or ?tenant_id=).
    """
    if current_user.is_super_admin:
        tenant_id = request.headers.get('X-Tenant-Id') or request.args.get('tenant_id')
    else:
        tenant_id = current_user.tenant_id
    if not tenant_id:
        abort(400, description='Tenant context required')
    return tenant_id
