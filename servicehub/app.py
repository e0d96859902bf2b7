"""
Application factory

Builds the Flask app, wires extensions and registers every API blueprint
under /api.
"""
import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from servicehub.audit import audit_logger
from servicehub.config import Config
from servicehub.email_service import email_service
from servicehub.errors import ApiError
from servicehub.models import db
from servicehub.payment_gateway import gateway


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    if app.config.get('PROXY_FIX_X_FOR'):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config['PROXY_FIX_X_FOR'], x_proto=1)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    # Secure CORS configuration - restrict to specific origins in production
    CORS(app,
         origins=app.config['ALLOWED_ORIGINS'],
         supports_credentials=True,
         max_age=3600)

    db.init_app(app)
    audit_logger.init_app(app, db)
    email_service.init_app(app)
    gateway.init_app(app)

    register_blueprints(app)
    register_error_handlers(app)

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    with app.app_context():
        init_database(app)

    return app


def register_blueprints(app):
    from servicehub.routes.admin import admin_bp
    from servicehub.routes.auth import auth_bp
    from servicehub.routes.company import company_bp
    from servicehub.routes.disputes import disputes_bp
    from servicehub.routes.health import health_bp
    from servicehub.routes.kyc import admin_kyc_bp, kyc_bp
    from servicehub.routes.messages import messages_bp
    from servicehub.routes.notifications import notifications_bp
    from servicehub.routes.payment import payment_bp
    from servicehub.routes.provider import provider_bp
    from servicehub.routes.uploads import uploads_bp

    app.register_blueprint(health_bp, url_prefix='/api')
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(kyc_bp, url_prefix='/api/kyc')
    app.register_blueprint(admin_kyc_bp, url_prefix='/api/admin/kyc')
    app.register_blueprint(company_bp, url_prefix='/api/company')
    app.register_blueprint(provider_bp, url_prefix='/api/provider')
    app.register_blueprint(payment_bp, url_prefix='/api/payment')
    app.register_blueprint(disputes_bp, url_prefix='/api/disputes')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(messages_bp, url_prefix='/api/messages')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
    app.register_blueprint(uploads_bp, url_prefix='/api/uploads')


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        return error.to_response()

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.error(f"Unhandled error: {str(error)}", exc_info=True)
        return jsonify({'success': False, 'message': str(error) or 'Internal server error'}), 500


def init_database(app):
    """Create tables and the upload folder"""
    db.create_all()
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
