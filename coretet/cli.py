"""
Command-line interface for running and administering the CoreTet service.
"""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import ServerConfig
from .constants import DEFAULT_INVITE_EXPIRY_DAYS
from .database import DatabaseManager
from .errors import CoreTetError
from .invites import ADMIN_ROLE, InviteService
from .models import Identity
from .storage import PROVIDER_CONFIGS

console = Console()


def _human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.0f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, verbose):
    """
    CoreTet service

    Signed track URLs, upload intake, invites and storage providers.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    ctx.obj = ServerConfig.from_env()


@cli.command()
@click.option('--host', default='0.0.0.0', help='Interface to bind')
@click.option('--port', default=5005, help='Port to listen on')
@click.option('--debug/--no-debug', default=False, help='Run in debug mode')
@click.pass_obj
def serve(config, host, port, debug):
    """Run the HTTP API."""
    from .api import create_app

    app = create_app(config)
    console.print(f"[green]CoreTet API listening on http://{host}:{port}[/green]")
    app.run(host=host, port=port, debug=debug)


@cli.command('init-db')
@click.pass_obj
def init_db(config):
    """Create the database schema."""
    db = DatabaseManager(config.database_path)
    console.print(f"[green]✓ Database ready at {db.db_path}[/green]")


@cli.command('grant-admin')
@click.argument('user_id')
@click.pass_obj
def grant_admin(config, user_id):
    """Give USER_ID the admin role."""
    DatabaseManager(config.database_path).set_user_role(user_id, ADMIN_ROLE)
    console.print(f"[green]✓ {user_id} is now an admin[/green]")


@cli.command('set-quota')
@click.argument('user_id')
@click.argument('limit_bytes', type=click.IntRange(min=0))
@click.option('--email', help='Email to record on the profile')
@click.pass_obj
def set_quota(config, user_id, limit_bytes, email):
    """Set USER_ID's storage limit in bytes."""
    profile = DatabaseManager(config.database_path).upsert_profile(
        user_id, email=email, storage_limit=limit_bytes
    )
    console.print(
        f"[green]✓ {user_id}: {_human_size(profile.storage_used)} used of "
        f"{_human_size(profile.storage_limit)}[/green]"
    )


@cli.command()
@click.option('--admin', 'admin_id', required=True, help='User ID of the admin issuing the invite')
@click.option('--email', help='Restrict the invite to this email')
@click.option('--days', default=DEFAULT_INVITE_EXPIRY_DAYS, type=click.IntRange(min=1),
              help='Days until the invite expires')
@click.pass_obj
def invite(config, admin_id, email, days):
    """Generate an invite code."""
    service = InviteService(DatabaseManager(config.database_path), app_url=config.app_url)
    try:
        result = service.generate(Identity(id=admin_id), email=email, expires_in_days=days)
    except CoreTetError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise SystemExit(1)

    created = result["invite"]
    console.print(Panel.fit(
        f"[bold cyan]{created['code']}[/bold cyan]\n\n"
        f"URL: {result['inviteUrl']}\n"
        f"Expires: {created['expires_at']}"
        + (f"\nFor: {created['email']}" if created.get('email') else ""),
        title="Invite created",
        border_style="cyan",
    ))


@cli.command()
def providers():
    """List storage providers."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Provider", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Max File", style="yellow")
    table.add_column("Formats")
    table.add_column("Available")

    for provider in PROVIDER_CONFIGS.values():
        table.add_row(
            provider.name.value,
            provider.display_name,
            _human_size(provider.max_file_size),
            ", ".join(provider.supported_formats),
            "[green]yes[/green]" if provider.enabled else "[dim]coming soon[/dim]",
        )
    console.print(table)


if __name__ == '__main__':
    cli()
