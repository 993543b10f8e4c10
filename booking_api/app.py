import os
import logging

import redis
from flask import Flask, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from .config import config, load_namespaces
from .models import db
from .auth import login_manager
from .realtime import socketio, connections, TenantBroadcaster
from .opponent_match_gateway import OpponentMatchGateway
from .opponent_match_service import OpponentMatchService
from .waiting_list import WaitingListService
from .mercadopago import MercadoPagoClient

logger = logging.getLogger(__name__)


def socketio_options(app_settings, flask_config) -> dict:
    """Socket server options; only the front-end origin may connect."""
    return {
        'cors_allowed_origins': [app_settings.frontend_url],
        'cors_credentials': True,
        'message_queue': flask_config.get('SOCKETIO_MESSAGE_QUEUE'),
    }


def server_options(app_settings) -> dict:
    """Arguments for socketio.run. Werkzeug serves only in development."""
    return {
        'host': '0.0.0.0',
        'port': app_settings.port,
        'debug': app_settings.is_development,
        'allow_unsafe_werkzeug': app_settings.is_development,
    }


def create_app(config_name: str = None, environ=None) -> Flask:
    """Application factory for the booking API."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV') or os.getenv('NODE_ENV') or 'development'

    app = Flask(__name__,
                template_folder='templates',
                static_folder='static')
    app.config.from_object(config.get(config_name, config['default']))

    # Resolved once; consumers receive these objects, never re-read the environment
    app.settings = load_namespaces(environ)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    socketio.init_app(app, **socketio_options(app.settings['app'], app.config))

    # Initialize services
    app.redis = redis.from_url(
        app.config['REDIS_URL'],
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5
    )
    app.opponent_match_gateway = OpponentMatchGateway(TenantBroadcaster(socketio))
    app.opponent_matches = OpponentMatchService(app.opponent_match_gateway)
    app.waiting_list = WaitingListService()
    app.mercadopago = MercadoPagoClient(app.settings['mercadopago'])

    # Create tables
    with app.app_context():
        db.create_all()

    from .routes import api, opponent_matches, pages
    app.register_blueprint(api.bp)
    app.register_blueprint(opponent_matches.bp)
    app.register_blueprint(pages.bp)

    register_error_handlers(app)
    register_health_route(app)

    logger.info(f"Booking API created with '{config_name}' config "
                f"(sandbox payments: {app.settings['mercadopago'].is_sandbox})")
    return app


def register_error_handlers(app: Flask):

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        if request.path.startswith('/api/'):
            return jsonify({'error': e.description}), e.code
        if e.code == 403:
            return render_template('access_denied.html'), 403
        if e.code == 404:
            return render_template('404.html'), 404
        return e


def register_health_route(app: Flask):

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        try:
            app.redis.ping()
            redis_ok = True
        except redis.exceptions.RedisError:
            redis_ok = False

        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_ok = False

        status = 'healthy' if (redis_ok and db_ok) else 'unhealthy'
        code = 200 if status == 'healthy' else 503

        return jsonify({
            'status': status,
            'redis': 'connected' if redis_ok else 'disconnected',
            'database': 'connected' if db_ok else 'disconnected',
            'websocket_clients': connections.total_client_count()
        }), code
