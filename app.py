import click
from flask import Flask, jsonify
from sqlalchemy import inspect

from config import Config
from routes import health_bp, turf_bp, slot_bp, booking_bp, payments_bp

from models import db
from flask_migrate import Migrate
from services.errors import ReservationError
from services.sweeper import LockSweeper
from utils.clock import SystemClock
from utils.seed import seed_roles
from utils.auth_context import load_current_user


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(turf_bp)
    app.register_blueprint(slot_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Every lock timestamp and expiry check reads this clock
    app.extensions["clock"] = SystemClock()

    # Seed default roles once migrations have created the schema
    with app.app_context():
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(ReservationError)
    def _reservation_error(err):
        app.logger.info("%s: %s", type(err).__name__, err.message)
        return jsonify(**err.to_dict()), err.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    interval = app.config.get("LOCK_SWEEP_INTERVAL_SECONDS", 0)
    if interval > 0 and not app.testing:
        sweeper = LockSweeper(app, interval)
        sweeper.start()
        app.extensions["lock_sweeper"] = sweeper

    return app

#-------------------------
from models.user import User, Role
from services import slots as slot_store
from services.sweeper import sweep

def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--name", default=None, help="Full name used as booking contact.")
    @click.option("--phone", default=None, help="Phone number used as booking contact.")
    def create_user(email, name, phone):
        """Register a gateway user locally so its id can be sent in the identity header."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        user = User(email=email, full_name=name, phone_number=phone)
        user.roles.append(Role.query.filter_by(name="USER").first())
        db.session.add(user)
        db.session.commit()
        click.echo(f"{user.email} created with id {user.id}")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("sweep-locks")
    def sweep_locks():
        """Release expired slot holds and cancel bookings left without any."""
        result = sweep()
        click.echo(f"released {result['released']} slot(s), cancelled {result['cancelled']} booking(s)")

    @app.cli.command("generate-slots")
    @click.argument("turf_id", type=int)
    @click.argument("start_date")
    @click.argument("end_date")
    @click.option("--duration", type=int, default=None, help="Slot length in minutes.")
    def generate_slots(turf_id, start_date, end_date, duration):
        """Create slots for a turf across a date range (YYYY-MM-DD)."""
        count = slot_store.generate_slots(turf_id, start_date, end_date, duration)
        click.echo(f"{count} slots generated for turf {turf_id}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
