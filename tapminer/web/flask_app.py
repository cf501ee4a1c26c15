import logging
from flask import Flask, jsonify
from flask_cors import CORS

from tapminer import __version__
from tapminer.exceptions import ValidationError
from tapminer.services import build_services
from .routes import configure_routes

logger = logging.getLogger(__name__)


def create_app(config=None, services=None):
    """Application factory"""
    if config is None:
        from config import config

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH
    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    services = services or build_services(config)
    app.extensions['tapminer'] = services

    # Health check endpoint
    @app.route('/')
    def health_check():
        return jsonify({
            "status": "running",
            "service": "TapMiner",
            "version": __version__,
            "crypto": "SOL",
            "distributionConfigured": config.distribution_configured
        }), 200

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'no-referrer'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # Error handlers
    @app.errorhandler(ValidationError)
    def validation_error(error):
        body = {'error': str(error)}
        if error.field:
            body['field'] = error.field
        return jsonify(body), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'Endpoint not found',
            'message': 'The requested resource was not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({'error': 'Payload too large'}), 413

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}")
        return jsonify({
            'error': 'Internal server error',
            'message': 'An unexpected error occurred'
        }), 500

    # Configure all routes
    configure_routes(app, services)

    return app
