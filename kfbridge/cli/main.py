"""
kfbridge CLI.

    kfbridge serve --port 8000
    kfbridge accounts list
    kfbridge accounts disable wkAbc123
"""

import asyncio
from pathlib import Path

import typer

from kfbridge.core.config.settings import settings
from kfbridge.core.exceptions import ConfigError
from kfbridge.domain.models.account import AccountStatus
from kfbridge.persistence.account_registry import AccountRegistry

app = typer.Typer(help="WeChat KF bridge CLI")
accounts_app = typer.Typer(help="Manage discovered customer-service accounts")
app.add_typer(accounts_app, name="accounts")

STATE_DIR_OPTION = typer.Option(
    None, "--state-dir", "-s", help="State directory (defaults to KF_STATE_DIR)"
)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(None, "--port", "-p", help="Port to bind to (defaults to PORT)"),
    no_polling: bool = typer.Option(
        False, "--no-polling", help="Disable the polling fallback"
    ),
):
    """Run the webhook server and sync pipeline."""
    from kfbridge.core.kf_app import KfBridge

    try:
        settings.validate_credentials()
    except ConfigError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"🚀 Starting kfbridge on http://{host}:{port or settings.port}")
    typer.echo(f"📍 Webhook path: {settings.webhook_path}")
    typer.echo("💡 Press CTRL+C to stop")
    KfBridge(polling=not no_polling).run(host=host, port=port)


async def _load_registry(state_dir: str | None) -> AccountRegistry:
    registry = AccountRegistry()
    await registry.load(state_dir or settings.state_dir)
    return registry


@accounts_app.command("list")
def list_accounts(state_dir: str = STATE_DIR_OPTION):
    """List every discovered account with its status."""
    registry = asyncio.run(_load_registry(state_dir))
    ids = registry.known_ids()
    if not ids:
        typer.echo(f"No accounts discovered yet in {Path(state_dir or settings.state_dir)}")
        return
    for account_id in ids:
        account = registry.get(account_id)
        typer.echo(f"{account_id}\t{account.status.value}")


def _set_status(account_id: str, status: AccountStatus, state_dir: str | None) -> None:
    async def _apply() -> None:
        registry = await _load_registry(state_dir)
        await registry.set_status(account_id, status)

    asyncio.run(_apply())
    typer.echo(f"✅ {account_id} is now {status.value}")
    typer.echo("💡 Restart a running server to apply the change")


@accounts_app.command("enable")
def enable_account(account_id: str, state_dir: str = STATE_DIR_OPTION):
    """Resume syncing an account. A running server picks this up on restart."""
    _set_status(account_id, AccountStatus.ACTIVE, state_dir)


@accounts_app.command("disable")
def disable_account(account_id: str, state_dir: str = STATE_DIR_OPTION):
    """Stop syncing an account after the next server restart."""
    _set_status(account_id, AccountStatus.DISABLED, state_dir)


@accounts_app.command("delete")
def delete_account(account_id: str, state_dir: str = STATE_DIR_OPTION):
    """Mark an account deleted after the next server restart. Its id stays in the registry."""
    _set_status(account_id, AccountStatus.DELETED, state_dir)


if __name__ == "__main__":
    app()
