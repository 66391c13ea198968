"""Command-line interface for Flox administration."""

from datetime import datetime
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from flox.logging_config import configure_logging, get_logger
from flox.referral.models import DiscountType
from flox.referral.seed import default_codes
from flox.referral.service import ReferralService
from flox.settings import settings
from flox.storage.db import db
from flox.subscriptions.webhooks import WebhookHandler

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="flox",
    help="Flox - referral code and subscription administration",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _referral_service() -> ReferralService:
    return ReferralService(db)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("seed-codes")
def seed_codes() -> None:
    """Create the launch referral codes (existing codes are left untouched)."""
    created = _referral_service().seed_codes(default_codes())

    if not created:
        console.print("[yellow]All referral codes already exist[/yellow]")
        return

    for code in created:
        console.print(f"[bold green]✓[/bold green] Created referral code: [bold]{code}[/bold]")
    console.print(f"Referral codes setup complete! ({len(created)} created)")


@app.command("create-code")
def create_code(
    code: Annotated[str, typer.Argument(help="Code text (stored uppercase)")],
    discount_type: Annotated[DiscountType, typer.Option("--type", "-t", help="Discount type")],
    value: Annotated[int | None, typer.Option("--value", "-v", help="Percent, cents or extra trial days")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d", help="Text shown to users")] = None,
    max_uses: Annotated[int | None, typer.Option("--max-uses", "-m", help="Usage cap (default unlimited)")] = None,
    expires: Annotated[datetime | None, typer.Option("--expires", "-e", help="Expiry date (UTC)")] = None,
) -> None:
    """Create a single referral code."""
    try:
        referral_code = _referral_service().create_code(
            code=code,
            discount_type=discount_type,
            discount_value=value,
            description=description,
            max_uses=max_uses,
            expires_at=expires,
        )
    except ValueError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[bold green]✓[/bold green] Referral code created: [bold]{referral_code.code}[/bold]")
    console.print(f"  Type: {referral_code.discount_type}")
    console.print(f"  Value: {referral_code.discount_value if referral_code.discount_value is not None else '-'}")
    console.print(f"  Max uses: {referral_code.max_uses or 'unlimited'}")
    console.print(f"  Expires: {referral_code.expires_at.strftime('%Y-%m-%d %H:%M') if referral_code.expires_at else 'never'}")


@app.command("list-codes")
def list_codes() -> None:
    """List all referral codes."""
    codes = _referral_service().list_codes()

    if not codes:
        console.print("[yellow]No referral codes found[/yellow]")
        return

    table = Table(title="Referral Codes")
    table.add_column("Code", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Value", justify="right")
    table.add_column("Uses", justify="right")
    table.add_column("Expires")
    table.add_column("Active")

    for referral_code in codes:
        table.add_row(
            referral_code.code,
            referral_code.discount_type,
            str(referral_code.discount_value) if referral_code.discount_value is not None else "-",
            f"{referral_code.current_uses}/{referral_code.max_uses or '∞'}",
            referral_code.expires_at.strftime("%Y-%m-%d") if referral_code.expires_at else "never",
            "yes" if referral_code.is_active else "no",
        )

    console.print(table)


@app.command("deactivate-code")
def deactivate_code(
    code: Annotated[str, typer.Argument(help="Code to retire")],
) -> None:
    """Permanently deactivate a referral code."""
    if not _referral_service().deactivate_code(code):
        console.print(f"[bold red]✗[/bold red] Referral code not found: {code.upper()}")
        raise typer.Exit(code=1)

    console.print(f"[bold green]✓[/bold green] Referral code deactivated: [bold]{code.upper()}[/bold]")


@app.command("purge-webhook-events")
def purge_webhook_events(
    days: Annotated[int, typer.Option("--days", help="Keep events newer than this")] = settings.webhook_event_retention_days,
) -> None:
    """Delete old webhook idempotency records."""
    # Cleanup does not touch Stripe
    deleted = WebhookHandler(gateway=None, database=db).cleanup_old_events(days=days)
    console.print(f"[bold green]✓[/bold green] Deleted {deleted} webhook events older than {days} days")


if __name__ == "__main__":
    app()
