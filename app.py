import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from models import db
from models.user import User, Role
from routes import health_bp, auth_bp, facilities_bp, booking_bp, admin_bp, staff_bp
from security.csrf import require_csrf
from security.rbac import ROLE_ADMIN, ROLE_STAFF
from services.booking import complete_past_bookings
from services.errors import BookingError, InternalError
from utils.auth_context import load_current_user
from utils.seed import seed_demo_facilities, seed_roles

logger = logging.getLogger(__name__)

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/health",
}


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(facilities_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(staff_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # skipped before the first `flask db upgrade`
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        if not app.config.get("CSRF_ENABLED", True):
            return None
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None
            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                return require_csrf()
        return None

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if isinstance(exc, InternalError):
            logger.error("Internal error on %s %s", request.method, request.path, exc_info=exc)
        return jsonify(error=exc.message, code=exc.code), exc.status

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def _grant_role(email, role_name):
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo("User not found")
        return False

    role = Role.query.filter_by(name=role_name).first()
    if not role:
        role = Role(name=role_name)
        db.session.add(role)

    if role not in user.roles:
        user.roles.append(role)
    db.session.commit()
    return True


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        if _grant_role(email, ROLE_ADMIN):
            click.echo(f"{email} promoted to ADMIN")

    @app.cli.command("make-staff")
    @click.argument("email")
    def make_staff(email):
        """Give a user the STAFF role."""
        if _grant_role(email, ROLE_STAFF):
            click.echo(f"{email} promoted to STAFF")

    @app.cli.command("seed-demo")
    def seed_demo():
        """Create demo facilities, courts and equipment."""
        added = seed_demo_facilities()
        click.echo(f"Added {added} facilities")

    @app.cli.command("complete-bookings")
    def complete_bookings():
        """Mark bookings that have ended as completed."""
        count = complete_past_bookings()
        click.echo(f"Completed {count} bookings")


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
