"""
Accounts CLI Application.

Command-line interface for running the service and managing users.
"""

import logging

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from accounts.config import (
    CONFIG_FILE,
    get_database_url,
    get_default_config,
    load_config,
    save_config,
    settings,
)
from accounts.logging_utils import configure_logging

# Initialize CLI app
app = typer.Typer(
    name="accounts",
    help="Accounts - user management and authentication service",
    add_completion=False,
)

# Sub-command groups
user_app = typer.Typer(help="User management commands")
config_app = typer.Typer(help="Configuration commands")

app.add_typer(user_app, name="user")
app.add_typer(config_app, name="config")

console = Console()

configure_logging(logging.INFO)


def init():
    """Initialize database and the first admin."""
    from accounts.users.models import init_db
    from accounts.web.server import create_first_admin

    init_db()
    create_first_admin()


# ==================== USER COMMANDS ====================


@user_app.command("create")
def user_create(
    email: str = typer.Option(..., "--email", "-e", help="Email (also the username)"),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True, help="Password"),
    name: str = typer.Option(..., "--name", "-n", help="Display name"),
    admin: bool = typer.Option(False, "--admin", help="Grant the ADMIN role"),
    verified: bool = typer.Option(True, "--verified/--unverified", help="Skip email verification"),
):
    """Create a user directly, without signup mails."""
    from accounts.auth.service import hash_password
    from accounts.users.models import Role, User, get_session, get_user_by_email

    init()

    session = get_session()
    try:
        if get_user_by_email(session, email) is not None:
            console.print(f"[red]❌ A user with email {email} already exists[/red]")
            raise typer.Exit(1)

        roles = []
        if admin:
            roles.append(Role.ADMIN.value)
        if not verified:
            roles.append(Role.UNVERIFIED.value)

        user = User(email=email.strip().lower(), password_hash=hash_password(password), name=name)
        user.set_roles(roles)
        user.credentials_updated()
        session.add(user)
        session.commit()

        console.print(f"[green]✅ Created user #{user.id}: {user.email}[/green]")
    finally:
        session.close()


@user_app.command("list")
def user_list(
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum number of users to show"),
):
    """List users."""
    from accounts.users.models import User, get_session

    init()

    session = get_session()
    try:
        users = session.query(User).order_by(User.id).limit(limit).all()

        table = Table(title=f"Users ({len(users)})")
        table.add_column("ID", justify="right")
        table.add_column("Email")
        table.add_column("Name")
        table.add_column("Roles")
        table.add_column("Created")

        for user in users:
            table.add_row(
                str(user.id),
                user.email,
                user.name or "",
                ", ".join(sorted(user.role_set)) or "-",
                user.created_at.strftime("%Y-%m-%d %H:%M") if user.created_at else "",
            )

        console.print(table)
    finally:
        session.close()


# ==================== CONFIG COMMANDS ====================


@config_app.command("show")
def config_show():
    """Show current configuration and file locations."""
    config = load_config()

    console.print(Panel("[bold]Configuration & File Locations[/bold]", border_style="blue"))

    console.print("\n[bold cyan]📁 Key File Locations:[/bold cyan]")
    console.print(f"  Config:      [green]{CONFIG_FILE}[/green]{'' if CONFIG_FILE.exists() else ' (not found, using defaults)'}")
    console.print("  Env vars:    .env")
    console.print(f"  Database:    [green]{get_database_url()}[/green]")

    console.print("\n[bold cyan]⚙️  Settings:[/bold cyan]")
    console.print(f"  API prefix:        {settings.api_prefix}")
    console.print(f"  App URL:           {settings.app_url}")
    console.print(f"  Token expiration:  {settings.jwt_expiration_millis} ms")
    console.print(f"  Auth header:       {settings.auth_header}")
    console.print(f"  First admin:       {settings.admin_username}")
    console.print(f"  Shared:            {config.get('shared', {})}")


@config_app.command("init")
def config_init():
    """Write a default config.yaml (if missing), initialize database and first admin."""
    if CONFIG_FILE.exists():
        console.print(f"[yellow]Config already exists: {CONFIG_FILE}[/yellow]")
    else:
        save_config(get_default_config())
        console.print(f"[green]✅ Wrote default config: {CONFIG_FILE}[/green]")

    init()
    console.print("[green]✅ Database initialized[/green]")
    console.print(f"\n[dim]Database: {get_database_url()}[/dim]")



# ==================== WEB SERVER ====================


@app.command("web")
def run_web(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
):
    """Start the API server."""
    init()

    url_host = host
    if url_host in {"0.0.0.0", "::"}:
        # Bind-all isn't directly reachable as a URL.
        url_host = "127.0.0.1"
    url = f"http://{url_host}:{port}{settings.api_prefix}"

    console.print(
        Panel(
            f"[bold]🚀 Accounts API[/bold]\n\n"
            f"Serving at: [cyan]{url}[/cyan]\n\n"
            f"Press Ctrl+C to stop the server",
            title="Web Server",
            border_style="green",
        )
    )

    from accounts.web.server import run_server

    run_server(host=host, port=port)


# ==================== MAIN ====================


@app.callback()
def main():
    """
    Accounts - user management and authentication service

    QUICK START:

    1. Start the API: accounts web
    2. Or manage users: accounts user --help
    """
    pass


if __name__ == "__main__":
    app()
