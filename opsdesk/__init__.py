"""
OpsDesk - Agency Operations Backend
Clients, packages, task assignment and QC review
"""
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
import os
import logging

from opsdesk.exceptions import OpsDeskError
from opsdesk.utils import NO_STORE_HEADERS

__version__ = "1.4.0"

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory pattern"""
    app = Flask(__name__)

    # Fix for running behind a reverse proxy (Render, Heroku, etc.)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # Load config
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    from opsdesk.config import config
    # Use instance instead of class to support @property
    config_instance = config.get(config_name, config['default'])()
    app.config.from_object(config_instance)

    # Enable CORS - set CORS_ORIGINS env var in production
    cors_origins = app.config.get('CORS_ORIGINS', '*')
    if cors_origins == '*' and config_name == 'production':
        logger.warning("SECURITY: CORS_ORIGINS is set to '*' in production! Set specific origins.")
    CORS(app, origins=cors_origins)

    # Rate limiting
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=["200 per day", "50 per hour"],
        storage_uri="memory://",
        enabled=app.config.get('RATE_LIMIT_ENABLED', True)
    )
    app.limiter = limiter

    # Initialize database
    from opsdesk.database import init_db
    init_db(app)

    # Register blueprints
    from opsdesk.routes import register_routes
    register_routes(app)

    @app.after_request
    def no_store(response):
        # API data is per-user and changes constantly
        if request.path.startswith('/api'):
            response.headers.update(NO_STORE_HEADERS)
        return response

    # ==========================================
    # GLOBAL ERROR HANDLERS
    # ==========================================

    @app.errorhandler(OpsDeskError)
    def domain_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({
            'error': 'Bad request',
            'message': str(error.description) if hasattr(error, 'description') else 'Invalid request'
        }), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({
            'error': 'Unauthorized',
            'message': 'Authentication required'
        }), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({
            'error': 'Forbidden',
            'message': 'Access denied'
        }), 403

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'Not found',
            'message': 'The requested resource was not found'
        }), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}")
        return jsonify({
            'error': 'Internal server error',
            'message': 'An unexpected error occurred'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Catch-all for unhandled exceptions"""
        if isinstance(error, HTTPException):
            return jsonify({'error': error.name, 'message': error.description}), error.code
        logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({
            'error': 'Server error',
            'message': 'An unexpected error occurred'
        }), 500

    # Health check
    @app.route('/health')
    def health():
        # Basic health check with database ping
        try:
            from opsdesk.database import db
            db.session.execute(db.text('SELECT 1'))
            db_status = 'connected'
        except Exception as e:
            db_status = f'error: {str(e)[:50]}'

        return {
            'status': 'healthy' if db_status == 'connected' else 'degraded',
            'version': __version__,
            'database': db_status
        }

    @app.route('/api')
    def api_index():
        return jsonify({
            'name': 'OpsDesk API',
            'version': __version__,
            'endpoints': {
                'auth': '/api/auth',
                'clients': '/api/clients',
                'packages': '/api/packages',
                'assignments': '/api/assignments',
                'tasks': '/api/tasks',
                'activity': '/api/activity',
                'dashboard': '/api/dashboard',
                'notifications': '/api/notifications'
            }
        })

    logger.info(f"OpsDesk {__version__} started ({config_name})")
    return app
