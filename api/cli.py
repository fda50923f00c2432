import click
from flask.cli import with_appcontext

from api.extensions import auth_service, get_storage, user_service
from models.role import Role


@click.command("init-db")
@with_appcontext
def init_db():
    """Create all tables."""
    get_storage().reload()
    click.echo("Database tables created")


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@with_appcontext
def create_admin(email, password, first_name, last_name):
    """Create an ADMIN account (registration only ever creates USER)."""
    if len(password) < 8:
        raise click.BadParameter("must be at least 8 characters long", param_hint="--password")
    result = user_service().create_user(email, password, first_name, last_name, role=Role.ADMIN)
    if not result.ok:
        raise click.ClickException(result.error.message)
    click.echo(f"Admin created: {result.value.id} {result.value.email}")


@click.command("purge-refresh-tokens")
@with_appcontext
def purge_refresh_tokens():
    """Delete refresh tokens whose expiry has passed."""
    deleted = auth_service().purge_expired()
    click.echo(f"Purged {deleted} expired refresh token(s)")


def register_cli(app):
    app.cli.add_command(init_db)
    app.cli.add_command(create_admin)
    app.cli.add_command(purge_refresh_tokens)
