"""CLI entry point for Gmail Subscription Scanner."""

from __future__ import annotations

import click

from .auth import GoogleTokenRefresher, check_auth
from .display import configure_logging, console, create_progress, display_scan_results, display_subscriptions
from .errors import AuthExpired, FetchError, StoreError
from .export import export_subscriptions
from .scanner import ScanConfig, ScanContext, scan
from .store import SubscriptionStore


@click.group()
@click.version_option(version="0.1.0", prog_name="gmail-subscription-scanner")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("--db", "db_path", default=None, type=click.Path(dir_okay=False), help="Subscription database path.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: str | None) -> None:
    """Gmail Subscription Scanner - find recurring payments in your Gmail."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


@cli.command(name="scan")
@click.option("-u", "--user-id", required=True, help="User the subscriptions belong to.")
@click.option("--access-token", required=True, envvar="GMAIL_ACCESS_TOKEN", help="Gmail access token.")
@click.option("--refresh-token", default=None, envvar="GMAIL_REFRESH_TOKEN", help="Gmail refresh token.")
@click.option(
    "--expires-at",
    default=None,
    type=click.DateTime(formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]),
    help="Access token expiry (UTC). Without it the token is refreshed first.",
)
@click.option("-m", "--max-messages", default=None, type=int, help="Maximum messages to scan.")
@click.pass_context
def scan_cmd(
    ctx: click.Context,
    user_id: str,
    access_token: str,
    refresh_token: str | None,
    expires_at,
    max_messages: int | None,
) -> None:
    """Scan your Gmail inbox for subscriptions and price changes."""
    try:
        refresher = GoogleTokenRefresher.from_client_secrets_file()
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    config = ScanConfig()
    if max_messages:
        config.max_messages = max_messages

    with SubscriptionStore(db_path=ctx.obj["db_path"]) as store:
        context = ScanContext(store=store, refresher=refresher, config=config)
        try:
            with create_progress("Scanning messages") as progress:
                task = progress.add_task("scanning", total=config.max_messages)

                def on_batch(batch_num: int, processed: int) -> None:
                    progress.update(task, completed=processed)

                context.progress = on_batch
                result = scan(user_id, access_token, refresh_token, context, expires_at=expires_at)
                progress.update(task, completed=result.messages_scanned, total=result.messages_scanned)
        except AuthExpired as e:
            raise click.ClickException(f"{e}\nGmail access has expired. Sign in again to grant access.") from e
        except (FetchError, StoreError) as e:
            raise click.ClickException(f"{e}\nThe scan did not complete. Try again later.") from e

    display_scan_results(result)
    if result.token is not None and result.token.value != access_token:
        console.print(
            f"[dim]Access token was refreshed (expires {result.token.expires_at:%Y-%m-%d %H:%M} UTC).[/dim]"
        )


@cli.command(name="list")
@click.option("-u", "--user-id", required=True, help="User the subscriptions belong to.")
@click.pass_context
def list_cmd(ctx: click.Context, user_id: str) -> None:
    """Show stored subscriptions."""
    with SubscriptionStore(db_path=ctx.obj["db_path"]) as store:
        subscriptions = store.list_for_user(user_id)

    if not subscriptions:
        console.print(f"[yellow]No subscriptions stored for {user_id}.[/yellow]")
        return

    display_subscriptions(subscriptions)


@cli.command(name="export")
@click.option("-u", "--user-id", required=True, help="User the subscriptions belong to.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"]),
    default="csv",
    help="Output format.",
)
@click.option("-o", "--output", required=True, help="Output file path.")
@click.pass_context
def export_cmd(ctx: click.Context, user_id: str, fmt: str, output: str) -> None:
    """Export stored subscriptions to CSV or JSON."""
    with SubscriptionStore(db_path=ctx.obj["db_path"]) as store:
        subscriptions = store.list_for_user(user_id)

    if not subscriptions:
        raise click.ClickException(f"No subscriptions stored for {user_id}. Run 'scan' first.")

    export_subscriptions(subscriptions, format=fmt, output_path=output)


@cli.command()
@click.option("--refresh-token", required=True, envvar="GMAIL_REFRESH_TOKEN", help="Gmail refresh token.")
def auth(refresh_token: str) -> None:
    """Check that a refresh token can still be exchanged."""
    check_auth(refresh_token)


@cli.group(name="store")
def store_group() -> None:
    """Inspect the subscription store."""


@store_group.command(name="info")
@click.pass_context
def store_info(ctx: click.Context) -> None:
    """Show store statistics."""
    with SubscriptionStore(db_path=ctx.obj["db_path"]) as store:
        info = store.get_info()

    if not info["subscription_count"]:
        console.print("[dim]Store is empty.[/dim]")
        return

    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    console.print(f"[bold]Last updated:[/bold] {info['last_updated']}")
    console.print(f"[bold]Users:[/bold] {info['user_count']}")
    console.print(f"[bold]Subscriptions:[/bold] {info['subscription_count']}")
