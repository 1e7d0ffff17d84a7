import logging

from flask import Flask, jsonify
from config import Config
from routes import health_bp, booking_bp, catalog_bp, packages_bp

from models import db
from flask_migrate import Migrate
from security.tokens import AuthConfig, TokenVerifier
from services.errors import BookingError
from tasks.celery_app import celery_init_app
from utils.auth_context import load_current_principal

log = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(packages_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Bearer token verification; the secret comes from config only
    app.extensions["token_verifier"] = TokenVerifier(AuthConfig.from_mapping(app.config))

    # Background delivery (tickets, invoices)
    celery_init_app(app)

    @app.before_request
    def _load_principal():
        load_current_principal()

    @app.errorhandler(BookingError)
    def _booking_error(exc: BookingError):
        if exc.status_code >= 500:
            log.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.tenant import Tenant
from security.rbac import Role
from services.lock_manager import purge_expired_locks


def register_cli(app):
    @app.cli.command("create-tenant")
    @click.argument("name")
    def create_tenant(name):
        """Create a tenant and print its id (bootstrap)."""
        tenant = Tenant(name=name.strip())
        db.session.add(tenant)
        db.session.commit()
        print(f"Tenant {tenant.name} created: {tenant.id}")

    @app.cli.command("issue-token")
    @click.option("--user-id", required=True)
    @click.option("--role", type=click.Choice([r.value for r in Role]), required=True)
    @click.option("--tenant-id", default=None)
    @click.option("--expires-in", default=3600, show_default=True, help="Seconds")
    def issue_token(user_id, role, tenant_id, expires_in):
        """Sign a development bearer token with JWT_SECRET."""
        verifier = app.extensions["token_verifier"]
        print(verifier.issue(user_id, Role(role), tenant_id, expires_in=expires_in))

    @app.cli.command("purge-expired-locks")
    def purge_expired_locks_cmd():
        """Delete expired checkout locks (housekeeping only)."""
        deleted = purge_expired_locks()
        print(f"Deleted {deleted} expired lock(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
