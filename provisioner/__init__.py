import os
import logging

from flask import Flask

from provisioner.config import ProvisioningSettings, config_by_name
from provisioner.services.identity_service import IdentityClient


def create_app(config_name=None, identity_client=None):
    """Application factory.

    identity_client replaces the default IdentityClient built from config
    (tests pass a fake so no request leaves the process).
    """

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Settings + identity client, built once per app ---
    settings = ProvisioningSettings.from_mapping(app.config)
    app.extensions["provisioning_settings"] = settings
    app.extensions["identity_client"] = (
        identity_client or IdentityClient.from_settings(settings)
    )

    # --- Register blueprints ---
    from provisioner.blueprints.webhooks import webhooks_bp

    app.register_blueprint(webhooks_bp)

    # --- Health check ---
    @app.route("/")
    def index():
        return "ok", 200, {"Content-Type": "text/plain; charset=utf-8"}

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return "Not found", 404, {"Content-Type": "text/plain; charset=utf-8"}

    @app.errorhandler(405)
    def method_not_allowed(e):
        return "Method not allowed", 405, {"Content-Type": "text/plain; charset=utf-8"}

    @app.errorhandler(500)
    def server_error(e):
        return "Internal server error", 500, {"Content-Type": "text/plain; charset=utf-8"}

    # --- CLI commands ---
    from provisioner.cli import register_cli

    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        # Webhook answers are per-delivery; never cache them
        response.headers["Cache-Control"] = "no-store"
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app
