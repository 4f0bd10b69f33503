# commands.py
# Usage:
#   flask --app app:create_app seed-dev-users
#   flask --app app:create_app make-admin someone@example.com
#   flask --app app:create_app dev-token user1@zai.dev
import click
from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from logger import app_logger
from models import User, Role
from security import issue_token
from utils import utcnow


DEV_DOMAIN = "zai.dev"
DEV_USER_COUNT = 10


def _refuse_in_production():
    if current_app.config.get("FLASK_ENV") == "production":
        raise click.ClickException("This command is disabled in production")


def dev_accounts():
    """(email, display name, role, referral code) of the local test accounts."""
    accounts = [(f"admin@{DEV_DOMAIN}", "Dev Admin", Role.ADMIN.value, "ADMIN-DEV")]
    for i in range(1, DEV_USER_COUNT + 1):
        accounts.append((f"user{i}@{DEV_DOMAIN}", f"Dev User {i}", Role.USER.value, f"USER{i:03d}-DEV"))
    return accounts


def seed_dev_users():
    """Create any missing dev account. Returns the emails created."""
    created = []
    for email, display_name, role, referral_code in dev_accounts():
        if User.query.filter_by(email=email).first():
            continue
        db.session.add(User(
            email=email,
            display_name=display_name,
            role=role,
            referral_code=referral_code,
            email_verified=True,
            last_login=utcnow(),
        ))
        created.append(email)

    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise click.ClickException(f"Could not seed dev users: {e.orig}")
    return created


def register_commands(app):

    @app.cli.command("seed-dev-users")
    def seed_dev_users_command():
        """Create one dev admin and ten dev users (non-production only)."""
        _refuse_in_production()
        created = seed_dev_users()
        for email in created:
            click.echo(f"Created dev account: {email}")
        click.echo(f"{len(created)} account(s) created")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin_command(email):
        """Promote an existing user to admin."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException(f"No user with email {email}")
        user.role = Role.ADMIN.value
        db.session.commit()
        app_logger.info(f"User {user.id} promoted to admin from the command line")
        click.echo(f"User (id={user.id}, email={user.email}) is now admin.")

    @app.cli.command("dev-token")
    @click.argument("email")
    def dev_token_command(email):
        """Print a signed credential for a user (non-production only)."""
        _refuse_in_production()
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException(f"No user with email {email}")
        click.echo(issue_token(user))
