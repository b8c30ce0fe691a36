"""
CLI interface for xc.

Budget, cost and auth management plus a few API commands that run through
the guarded client.
"""

import logging
import webbrowser
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from xc.config.accounts import (
    AUTH_BEARER,
    AUTH_OAUTH2,
    AccountConfig,
    AuthCredential,
    get_account,
    load_config,
    remove_account,
    resolve_account_name,
    set_account,
    set_default_account,
)
from xc.config.loader import ConfigContext, load_settings
from xc.core.errors import NoAccountConfigured, XcError
from xc.core.guardrails import BudgetAction, BudgetConfig, load_budget, reset_budget, save_budget
from xc.core.lock import is_locked, lock_budget, require_password_if_locked, unlock_budget, verify_password
from xc.core.pricing import format_currency
from xc.core.spend import DAY, HOUR, MONTH, WEEK, compute_spend, compute_today_spend, format_cost_footer
from xc.sdk.client import XClient
from xc.sdk.oauth import run_oauth_flow
from xc.storage.ledger import load_entries

app = typer.Typer(help="CLI client for the X API v2")
budget_app = typer.Typer(help="Manage API cost budget")
auth_app = typer.Typer(help="Manage account credentials")
app.add_typer(budget_app, name="budget")
app.add_typer(auth_app, name="auth")

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

VALID_ACTIONS = [action.value for action in BudgetAction]


@dataclass
class CliState:
    """Per-invocation state shared by all commands."""
    config: ConfigContext
    quiet: bool = False
    failed: bool = False


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


def _print_footer(state: CliState) -> None:
    if state.quiet or state.failed:
        return
    footer = format_cost_footer(load_entries(state.config))
    if footer:
        err_console.print(f"\n{footer}", markup=False)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        help="Config directory (default: $XC_CONFIG_DIR or ~/.config/xc)"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress cost footer"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """xc - X API v2 client with budget enforcement."""
    _configure_logging(verbose)
    config = ConfigContext(config_dir) if config_dir else ConfigContext.from_env()
    state = CliState(config=config, quiet=quiet)
    ctx.obj = state
    ctx.call_on_close(lambda: _print_footer(state))
    if ctx.invoked_subcommand is None:
        console.print("xc - Use --help to see available commands")


@contextmanager
def _reported_errors(state: CliState) -> Iterator[None]:
    """Report any xc or transport error once as ``Error: ...`` and exit 1."""
    try:
        yield
    except (XcError, httpx.HTTPError) as e:
        state.failed = True
        err_console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(code=EXIT_CODE_FAIL)


def _fail(state: CliState, message: str) -> None:
    state.failed = True
    err_console.print(f"[red]Error:[/] {escape(message)}")
    raise typer.Exit(code=EXIT_CODE_FAIL)


# --- budget ---------------------------------------------------------------


@budget_app.command("set")
def budget_set(
    ctx: typer.Context,
    daily: float = typer.Option(..., "--daily", help="Daily budget in dollars"),
    action: str = typer.Option("warn", "--action", help="Action when exceeded: block, warn, confirm"),
    password: Optional[str] = typer.Option(None, "--password", help="Password (required if budget is locked)")
):
    """Set daily budget limit."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        require_password_if_locked(state.config, password)

        if daily <= 0:
            _fail(state, "--daily must be a positive number.")
        if action.lower() not in VALID_ACTIONS:
            _fail(state, "--action must be block, warn, or confirm.")

        # Preserve an existing password lock
        existing = load_budget(state.config)
        save_budget(state.config, BudgetConfig(
            daily=daily,
            action=BudgetAction(action.lower()),
            password_hash=existing.password_hash,
            password_salt=existing.password_salt,
        ))
    console.print(f"Budget set: {format_currency(daily)}/day (action: {action.lower()})")


@budget_app.command("show")
def budget_show(ctx: typer.Context):
    """Show current budget and today's spend. Never requires a password."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        config = load_budget(state.config)
        today_spend = compute_today_spend(load_entries(state.config))

    if not config.daily:
        console.print("No budget configured.\n")
        console.print("Set one with: xc budget set --daily 2.00")
        return

    remaining = max(0.0, config.daily - today_spend)
    pct = today_spend / config.daily * 100

    console.print("Budget:\n")
    console.print(f"  Daily limit: {format_currency(config.daily)}")
    console.print(f"  Today spent: {format_currency(today_spend)} ({pct:.0f}%)")
    console.print(f"  Remaining:   {format_currency(remaining)}")
    console.print(f"  Action:      {config.action.value}")
    console.print(f"  Locked:      {'yes' if config.locked else 'no'}")


@budget_app.command("reset")
def budget_reset(
    ctx: typer.Context,
    password: Optional[str] = typer.Option(None, "--password", help="Password (required if budget is locked)")
):
    """Remove budget configuration. Usage history is kept."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        require_password_if_locked(state.config, password)
        reset_budget(state.config)
    console.print("Budget configuration removed.")


@budget_app.command("lock")
def budget_lock(
    ctx: typer.Context,
    password: str = typer.Option(..., "--password", help="Password to lock with")
):
    """Lock budget with a password."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        if is_locked(state.config):
            _fail(state, "budget is already locked. Unlock first.")
        lock_budget(state.config, password)
    console.print("Budget locked. Use --password for set/reset commands.")


@budget_app.command("unlock")
def budget_unlock(
    ctx: typer.Context,
    password: str = typer.Option(..., "--password", help="Current password")
):
    """Remove password lock from budget."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        if not is_locked(state.config):
            console.print("Budget is not locked.")
            return
        if not verify_password(state.config, password):
            _fail(state, "incorrect password.")
        unlock_budget(state.config)
    console.print("Budget unlocked.")


# --- cost -----------------------------------------------------------------


@app.command()
def cost(ctx: typer.Context):
    """Show estimated spend over rolling windows."""
    state: CliState = ctx.obj
    entries = load_entries(state.config)
    if not entries:
        console.print("No API usage recorded yet.")
        return

    table = Table(title="Estimated API spend")
    table.add_column("Window")
    table.add_column("Spend", justify="right")
    for window, label in ((HOUR, "1h"), (DAY, "24h"), (WEEK, "7d"), (MONTH, "30d")):
        table.add_row(label, format_currency(compute_spend(entries, window)))
    console.print(table)
    console.print(f"{len(entries)} calls recorded")


# --- auth -----------------------------------------------------------------


def _store_account(state: CliState, name: str, auth: AuthCredential) -> None:
    first = not load_config(state.config).accounts
    set_account(state.config, name, AccountConfig(name=name, auth=auth))
    if first:
        set_default_account(state.config, name)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    client_id: str = typer.Option(..., "--client-id", help="OAuth 2.0 client ID"),
    account: str = typer.Option("default", "--account", help="Account name to store"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Print the URL instead of opening it")
):
    """Log in with OAuth 2.0 (PKCE) in the browser."""
    state: CliState = ctx.obj

    def open_url(url: str) -> None:
        err_console.print(f"Open this URL to authorize:\n{url}", markup=False)
        if not no_browser:
            webbrowser.open(url)

    with _reported_errors(state):
        result = run_oauth_flow(client_id, open_url, settings=load_settings(state.config))
        _store_account(state, account, AuthCredential(
            type=AUTH_OAUTH2,
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_at=result.expires_at,
            client_id=client_id,
        ))
    console.print(f"Logged in as account '{account}'.")


@auth_app.command("token")
def auth_token(
    ctx: typer.Context,
    token: str = typer.Argument(..., help="App-only bearer token"),
    account: str = typer.Option("default", "--account", help="Account name to store")
):
    """Store an app-only bearer token."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        if not token.strip():
            _fail(state, "Bearer token is empty.")
        _store_account(state, account, AuthCredential(type=AUTH_BEARER, bearer_token=token.strip()))
    console.print(f"Bearer token saved for account '{account}'.")


@auth_app.command("status")
def auth_status(
    ctx: typer.Context,
    account: Optional[str] = typer.Option(None, "--account", help="Account to inspect")
):
    """Show credential type and expiry (never the secrets)."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        name = resolve_account_name(state.config, account)
        stored = get_account(state.config, name)
        if stored is None:
            raise NoAccountConfigured(account)

    auth = stored.auth
    console.print(f"Account:       {name}")
    console.print(f"Type:          {auth.type}")
    if auth.type == AUTH_OAUTH2:
        expires = (
            datetime.fromtimestamp(auth.expires_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
            if auth.expires_at else "unknown"
        )
        console.print(f"Expires:       {expires}")
        console.print(f"Refreshable:   {'yes' if auth.refresh_token and auth.client_id else 'no'}")
    if stored.username:
        console.print(f"User:          @{stored.username}")


@auth_app.command("logout")
def auth_logout(
    ctx: typer.Context,
    account: Optional[str] = typer.Option(None, "--account", help="Account to remove")
):
    """Remove stored credentials for an account."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        name = resolve_account_name(state.config, account)
        if not remove_account(state.config, name):
            raise NoAccountConfigured(name)
    console.print(f"Logged out of account '{name}'.")


@auth_app.command("default")
def auth_default(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Account to use by default")
):
    """Set the default account."""
    state: CliState = ctx.obj
    with _reported_errors(state):
        if get_account(state.config, name) is None:
            raise NoAccountConfigured(name)
        set_default_account(state.config, name)
    console.print(f"Default account: {name}")


# --- API commands ---------------------------------------------------------


def _client(state: CliState, account: Optional[str]) -> XClient:
    return XClient(state.config, account=account)


@app.command()
def whoami(
    ctx: typer.Context,
    account: Optional[str] = typer.Option(None, "--account", help="Account to check"),
    as_json: bool = typer.Option(False, "--json", help="Output raw JSON")
):
    """Show the authenticated user."""
    state: CliState = ctx.obj
    with _reported_errors(state), _client(state, account) as client:
        result = client.request(
            "users.getMe",
            "/users/me",
            params={"user.fields": "created_at,description,public_metrics,verified"},
        )
        if as_json:
            typer.echo(client.output_json(result))
            return

    data = result["data"]
    console.print(f"@{data['username']} ({data.get('name', '')})", markup=False)
    if data.get("description"):
        console.print(f"  {data['description']}", markup=False)
    metrics = data.get("public_metrics")
    if metrics:
        console.print(
            f"  {metrics['followers_count']:,} followers · "
            f"{metrics['following_count']:,} following · "
            f"{metrics['tweet_count']:,} posts"
        )


@app.command()
def post(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Post text"),
    account: Optional[str] = typer.Option(None, "--account", help="Account to post as"),
    as_json: bool = typer.Option(False, "--json", help="Output raw JSON")
):
    """Create a post."""
    state: CliState = ctx.obj
    with _reported_errors(state), _client(state, account) as client:
        result = client.request("posts.create", "/tweets", json={"text": text})
        if as_json:
            typer.echo(client.output_json(result))
            return
    console.print(f"Posted: {result['data']['id']}")


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search query"),
    max_results: int = typer.Option(10, "--max-results", "-n", min=10, max=100, help="Results to fetch (10-100)"),
    account: Optional[str] = typer.Option(None, "--account", help="Account to search as"),
    as_json: bool = typer.Option(False, "--json", help="Output raw JSON")
):
    """Search recent posts."""
    state: CliState = ctx.obj
    with _reported_errors(state), _client(state, account) as client:
        result = client.request(
            "posts.searchRecent",
            "/tweets/search/recent",
            params={"query": query, "max_results": str(max_results)},
        )
        if as_json:
            typer.echo(client.output_json(result))
            return

    posts = result.get("data") or []
    if not posts:
        console.print("No results.")
        return
    for item in posts:
        console.print(f"[dim]{item['id']}[/]  {escape(item.get('text', ''))}")


if __name__ == "__main__":
    app()
