#!/usr/bin/env python3
"""
Expense Tracker CLI - interactive client for the API

Usage:
    python cli.py --help
    python cli.py auth login
    python cli.py 2fa begin
    python cli.py 2fa verify 123456
    python cli.py expenses add --title Lunch --amount 12.50 --category food
"""

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

app = typer.Typer(help="Expense Tracker API CLI")
console = Console()

TOKEN_FILE = Path.home() / ".expense_tracker_token.json"
DEFAULT_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


# ============================================================================
# Token Management
# ============================================================================

def save_token(access_token: str):
    """Save access token to file."""
    TOKEN_FILE.write_text(json.dumps({"access_token": access_token}))
    TOKEN_FILE.chmod(0o600)
    console.print("[green]✓[/green] Token saved", style="bold")


def load_token() -> Optional[str]:
    """Load access token from file."""
    if TOKEN_FILE.exists():
        return json.loads(TOKEN_FILE.read_text()).get("access_token")
    return None


def get_headers() -> dict:
    """Get authorization headers."""
    token = load_token()
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}


# ============================================================================
# Pretty Printing
# ============================================================================

def print_response(response: httpx.Response):
    """Pretty print HTTP response."""
    status_color = "green" if 200 <= response.status_code < 300 else "red"
    console.print(f"\n[{status_color}]Status:[/{status_color}] {response.status_code}")

    if not response.content:
        return

    try:
        data = response.json()
    except ValueError:
        console.print(f"\n[yellow]Response:[/yellow]\n{response.text}")
        return

    console.print("\n[yellow]Response:[/yellow]")
    console.print(Syntax(json.dumps(data, indent=2), "json", theme="monokai"))


def print_error(message: str):
    """Print error message."""
    console.print(f"[red]✗ Error:[/red] {message}", style="bold")


def print_success(message: str):
    """Print success message."""
    console.print(f"[green]✓ Success:[/green] {message}", style="bold")


# ============================================================================
# Authentication Commands
# ============================================================================

auth_app = typer.Typer(help="Authentication commands")
app.add_typer(auth_app, name="auth")


@auth_app.command()
def register(
    email: str = typer.Option(..., "--email", "-e", prompt=True),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
    full_name: str = typer.Option(None, "--name", "-n"),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Register a new user."""
    data = {"email": email, "password": password, "full_name": full_name}

    with httpx.Client(base_url=base_url) as client:
        response = client.post("/api/v1/auth/register", json=data)
        print_response(response)

        if response.status_code == 201:
            print_success("User registered successfully!")


@auth_app.command()
def login(
    email: str = typer.Option(..., "--email", "-e", prompt=True),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Login and save access token."""
    with httpx.Client(base_url=base_url) as client:
        response = client.post(
            "/api/v1/auth/login",
            json={"email": email, "password": password},
        )
        print_response(response)

        if response.status_code == 200:
            result = response.json()
            save_token(result["access_token"])
            if result.get("two_factor_required"):
                console.print(
                    "\n[bold yellow]Two-factor verification required.[/bold yellow] "
                    "Run [cyan]python cli.py 2fa verify <code>[/cyan]\n"
                )
            else:
                print_success("Logged in successfully!")


@auth_app.command()
def me(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Get current user info."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        print_response(client.get("/api/v1/auth/me"))


@auth_app.command()
def logout():
    """Logout and clear token."""
    if TOKEN_FILE.exists():
        TOKEN_FILE.unlink()
        print_success("Logged out successfully!")
    else:
        console.print("[yellow]No active session found[/yellow]")


# ============================================================================
# Two-Factor Commands
# ============================================================================

twofa_app = typer.Typer(help="Two-factor authentication")
app.add_typer(twofa_app, name="2fa")


@twofa_app.command()
def begin(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Start enrollment and show the secret and backup codes."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        response = client.post("/api/v1/two-factor/enroll/begin")

    if response.status_code != 200:
        print_response(response)
        raise typer.Exit(1)

    data = response.json()
    console.print(
        Panel(
            f"[bold]Secret:[/bold] {data['secret']}\n\n"
            f"[bold]URI:[/bold] {data['provisioning_uri']}\n\n"
            f"[dim]Confirm before {data['expires_at']}[/dim]",
            title="Add to your authenticator app",
        )
    )

    table = Table(title="Backup codes (shown once)")
    table.add_column("#", style="dim")
    table.add_column("Code", style="bold cyan")
    for index, code in enumerate(data["backup_codes"], start=1):
        table.add_row(str(index), code)
    console.print(table)


@twofa_app.command()
def confirm(
    code: str = typer.Argument(..., help="6-digit code from the authenticator app"),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Confirm enrollment."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        response = client.post("/api/v1/two-factor/enroll/confirm", json={"code": code})
        print_response(response)

        if response.status_code == 200:
            print_success("Two-factor authentication enabled!")


@twofa_app.command()
def cancel(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Abandon a pending enrollment."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        print_response(client.post("/api/v1/two-factor/enroll/cancel"))


@twofa_app.command()
def verify(
    code: str = typer.Argument(..., help="TOTP code or backup code"),
    backup: bool = typer.Option(False, "--backup", "-b", help="Code is a backup code"),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Present the second factor and save the upgraded token."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        response = client.post(
            "/api/v1/two-factor/verify",
            json={"code": code, "is_backup_code": backup},
        )
        print_response(response)

        if response.status_code == 200:
            save_token(response.json()["access_token"])
            print_success("Second factor verified!")


@twofa_app.command()
def disable(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Disable two-factor authentication."""
    if not typer.confirm("Disable two-factor authentication?"):
        raise typer.Abort()

    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        print_response(client.post("/api/v1/two-factor/disable"))


@twofa_app.command()
def status(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Show two-factor status."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        print_response(client.get("/api/v1/two-factor/status"))


@twofa_app.command("backup-codes")
def backup_codes(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Regenerate backup codes (invalidates the old ones)."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        print_response(client.post("/api/v1/two-factor/backup-codes"))


# ============================================================================
# Expense Commands
# ============================================================================

expenses_app = typer.Typer(help="Expense management")
app.add_typer(expenses_app, name="expenses")


@expenses_app.command("list")
def list_expenses(
    category: str = typer.Option(None, "--category", "-c"),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """List expenses."""
    params = {"category": category} if category else {}
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        response = client.get("/api/v1/expenses", params=params)

    if response.status_code != 200:
        print_response(response)
        raise typer.Exit(1)

    data = response.json()
    table = Table(title=f"Expenses ({data['total']})")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Amount", justify="right")
    table.add_column("ID", style="dim")
    for item in data["items"]:
        table.add_row(item["date"][:10], item["title"], item["category"], str(item["amount"]), item["id"])
    console.print(table)


@expenses_app.command()
def add(
    title: str = typer.Option(..., "--title", "-t", prompt=True),
    amount: float = typer.Option(..., "--amount", "-a", prompt=True),
    category: str = typer.Option(..., "--category", "-c", prompt=True),
    date: str = typer.Option(None, "--date", "-d", help="ISO date, defaults to now"),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Add an expense."""
    data = {
        "title": title,
        "amount": str(amount),
        "category": category,
        "date": date or datetime.now(UTC).isoformat(),
    }
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        response = client.post("/api/v1/expenses", json=data)
        print_response(response)

        if response.status_code == 201:
            print_success("Expense added!")


@expenses_app.command()
def update(
    expense_id: str = typer.Argument(...),
    title: str = typer.Option(None, "--title", "-t"),
    amount: float = typer.Option(None, "--amount", "-a"),
    category: str = typer.Option(None, "--category", "-c"),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Update an expense."""
    data = {"title": title, "category": category}
    if amount is not None:
        data["amount"] = str(amount)
    data = {key: value for key, value in data.items() if value is not None}

    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        print_response(client.put(f"/api/v1/expenses/{expense_id}", json=data))


@expenses_app.command()
def delete(
    expense_id: str = typer.Argument(...),
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--url"),
):
    """Delete an expense."""
    with httpx.Client(base_url=base_url, headers=get_headers()) as client:
        response = client.delete(f"/api/v1/expenses/{expense_id}")
        print_response(response)

        if response.status_code == 204:
            print_success("Expense deleted!")


# ============================================================================
# Health Commands
# ============================================================================

@app.command()
def health(base_url: str = typer.Option(DEFAULT_BASE_URL, "--url")):
    """Check API and database health."""
    with httpx.Client(base_url=base_url) as client:
        print_response(client.get("/api/v1/health"))
        print_response(client.get("/api/v1/health/db"))


# ============================================================================
# Main
# ============================================================================

@app.callback()
def main():
    """
    Expense Tracker API CLI

    Interact with the expense tracker API from the command line.
    """
    pass


if __name__ == "__main__":
    app()
