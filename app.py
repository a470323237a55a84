import logging
from datetime import date
from functools import partial

import click
from flask import Flask, jsonify
from sqlalchemy import inspect

from config import Config
from routes import (
    health_bp, auth_bp, venues_bp, slots_bp, booking_bp,
    matches_bp, notifications_bp, reports_bp, reviews_bp, admin_bp,
)

from models import db, ConnectionCache
from models.db import open_engine
from flask_migrate import Migrate
from services.errors import ServiceError
from utils.seed import seed_roles, seed_sports
from utils.auth_context import load_current_user
from security.csrf import csrf_protect


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(venues_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(matches_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)
    app.extensions["connection_cache"] = ConnectionCache(partial(open_engine, app))

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # before the first `flask db upgrade` there is nothing to seed
        if inspect(db.engine).has_table("roles"):
            seed_roles()
            seed_sports()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        return csrf_protect()

    @app.errorhandler(ServiceError)
    def _service_error(err):
        if err.status_code >= 500:
            app.logger.error("service failure: %s", err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
from models.user import User, Role
from services.deps import slot_service
from utils.audit import log_event

def _grant_role(email, role_name):
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo("User not found")
        return

    role = Role.query.filter_by(name=role_name).first()
    if not role:
        role = Role(name=role_name)
        db.session.add(role)
        db.session.commit()

    if role not in user.roles:
        user.roles.append(role)
        db.session.commit()

    click.echo(f"{user.email} promoted to {role_name}")


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN (facility owner) by email."""
        _grant_role(email, "ADMIN")

    @app.cli.command("make-super-admin")
    @click.argument("email")
    def make_super_admin(email):
        """Promote a user to SUPER_ADMIN by email (bootstrap)."""
        _grant_role(email, "SUPER_ADMIN")

    @app.cli.command("generate-slots")
    @click.argument("court_id", type=int)
    @click.argument("start", type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.argument("end", type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.option("--clear-existing", is_flag=True, help="Drop free slots in the range first.")
    def generate_slots(court_id, start, end, clear_existing):
        """Generate slots for COURT_ID from START to END (inclusive, YYYY-MM-DD)."""
        service = slot_service()
        try:
            court = service.get_court(court_id)
            created = service.generate_slots(court, start.date(), end.date(), clear_existing=clear_existing)
        except ServiceError as err:
            raise click.ClickException(err.message)
        log_event("SLOTS_GENERATE", entity="court", entity_id=court_id, metadata={"created": len(created), "source": "cli"})
        click.echo(f"Generated {len(created)} slots")

    @app.cli.command("purge-slots")
    @click.option("--days", type=int, default=None, help="Days of past slots to keep.")
    def purge_slots(days):
        """Soft-delete past slots that no booking references."""
        if days is None:
            days = app.config.get("SLOT_RETENTION_DAYS", 30)
        try:
            count = slot_service().delete_old_slots(days, today=date.today())
        except ServiceError as err:
            raise click.ClickException(err.message)
        log_event("SLOTS_PURGE", metadata={"deleted": count, "days_to_keep": days, "source": "cli"})
        click.echo(f"Deleted {count} slots")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
