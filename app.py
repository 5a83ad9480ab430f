import logging

import click
from flask import Flask
from flask_migrate import Migrate

from config import Config
from models import db
from models.user import User, Role
from routes import health_bp, auth_bp, admin_bp, payments_bp, payouts_bp, salons_bp, webhook_bp
from security.csrf import csrf_protect
from security.password import hash_password
from services.gateway import init_gateway
from services.ledger import find_unrecorded_captures, repair_unrecorded_captures
from services.notifications import init_notifier
from services.payouts import run_scheduled_payouts
from utils.auth_context import load_current_user
from utils.seed import seed_roles, seed_payout_settings


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(payouts_bp)
    app.register_blueprint(salons_bp)
    app.register_blueprint(webhook_bp)

    db.init_app(app)
    Migrate(app, db)

    # Outbound collaborators, swapped out in tests through app.extensions
    init_gateway(app)
    init_notifier(app)

    with app.app_context():
        if app.config.get("CREATE_TABLES_ON_STARTUP"):
            db.create_all()
        # idempotent
        seed_roles()
        seed_payout_settings()

    # order matters: CSRF only applies once the session user is known
    app.before_request(load_current_user)
    app.before_request(csrf_protect)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").one()
        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.password_option()
    @click.option("--name", default=None)
    @click.option("--role", "role_name", default="CUSTOMER", show_default=True)
    def create_user(email, password, name, role_name):
        """Create a local account, e.g. for admins or salon owners."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo("User already exists")
            return

        role = Role.query.filter_by(name=role_name.upper()).first()
        if not role:
            raise click.BadParameter(f"Unknown role {role_name}", param_hint="--role")

        user = User(email=email, password_hash=hash_password(password), full_name=name)
        user.roles.append(role)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created {user.email} ({role.name})")

    @app.cli.command("run-payouts")
    def run_payouts():
        """Run the scheduled payout batch (no-op unless today is the payout day)."""
        summary = run_scheduled_payouts()
        click.echo(summary.to_dict())

    @app.cli.command("reconcile-ledger")
    @click.option("--dry-run", is_flag=True, help="Only list bookings missing a payment row.")
    def reconcile_ledger(dry_run):
        """Create missing payment rows for confirmed bookings."""
        if dry_run:
            for b in find_unrecorded_captures():
                click.echo(f"booking {b.id}: payment {b.payment_id} has no ledger row")
            return
        repaired = repair_unrecorded_captures()
        click.echo(f"Repaired {len(repaired)} bookings: {repaired}")


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5002)
