"""Typer CLI for patron-creator.

Commands
--------
- ``patron-creator init``   -- interactive first-time setup
- ``patron-creator start``  -- launch the FastAPI server
- ``patron-creator status`` -- display configuration and barcode supply
- ``patron-creator seed``   -- insert the starting barcode of a sequence
- ``patron-creator luhn``   -- print a prefix completed with its check digit
"""

from __future__ import annotations

import socket
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from patron_creator import luhn
from patron_creator.config import (
    DEFAULT_BARCODE_PREFIX,
    DEFAULT_PORT,
    ILS_ENV_VARS,
    get_barcode_prefix,
    get_base_dir,
    get_database_url,
    get_ils_settings,
    get_port,
    get_so_license_key,
    reload_env,
)
from patron_creator.errors import ConfigurationError
from patron_creator.storage.barcodes import BarcodeStore
from patron_creator.storage.filesystem import ensure_directories, get_env_path

app = typer.Typer(
    name="patron-creator",
    help="Library card eligibility and patron provisioning",
    add_completion=False,
)
console = Console()

ILS_PROMPTS: dict[str, str] = {
    "ILS_CLIENT_KEY": "ILS client key",
    "ILS_CLIENT_SECRET": "ILS client secret",
    "ILS_CREATE_TOKEN_URL": "ILS token URL",
    "ILS_CREATE_PATRON_URL": "ILS patron URL (ending in /patrons/)",
    "ILS_FIND_VALUE_URL": "ILS find URL (ending in /patrons/find)",
}


def _is_port_in_use(port: int) -> bool:
    """Return True if *port* on localhost is currently accepting connections."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(1)
        return sock.connect_ex(("127.0.0.1", port)) == 0


def _write_env_file(path: Path, values: dict[str, str]) -> None:
    """Write a minimal .env file for patron-creator."""
    lines = ["# patron-creator configuration"]
    lines.extend(f"{key}={value}" for key, value in values.items())
    lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")


@app.command()
def init() -> None:
    """Create ~/.patron-creator/ and write the initial configuration."""

    console.print(
        Panel(
            "[bold cyan]patron-creator[/bold cyan] -- first-time setup",
            subtitle="Library card eligibility and patron provisioning",
        )
    )

    base = get_base_dir()

    # 1. Create directories ------------------------------------------------
    console.print("\n[bold]1.[/bold] Creating directory structure ...")
    ensure_directories()
    console.print(f"   [green]✓[/green] {base}")

    # 2. ILS credentials and endpoints -------------------------------------
    console.print("\n[bold]2.[/bold] ILS settings")
    values: dict[str, str] = {}
    for name in ILS_ENV_VARS:
        answer = Prompt.ask(f"   {ILS_PROMPTS[name]}", password=name == "ILS_CLIENT_SECRET")
        if not answer:
            console.print(f"[red]No value for {name}. Aborting.[/red]")
            raise typer.Exit(code=1)
        values[name] = answer

    # 3. Address vendor ----------------------------------------------------
    license_key = Prompt.ask("[bold]3.[/bold] Service Objects license key", password=True)
    if not license_key:
        console.print("[red]No license key provided. Aborting.[/red]")
        raise typer.Exit(code=1)
    values["SO_LICENSE_KEY"] = license_key

    # 4. Barcodes and port -------------------------------------------------
    values["BARCODE_PREFIX"] = Prompt.ask(
        "[bold]4.[/bold] Barcode prefix", default=DEFAULT_BARCODE_PREFIX
    )
    port_str = Prompt.ask("[bold]5.[/bold] Server port", default=str(DEFAULT_PORT))
    try:
        port = int(port_str)
    except ValueError:
        console.print(f"[red]Invalid port: {port_str}. Using default {DEFAULT_PORT}.[/red]")
        port = DEFAULT_PORT
    values["PATRON_CREATOR_PORT"] = str(port)

    # 5. Write .env ---------------------------------------------------------
    env_path = get_env_path()
    _write_env_file(env_path, values)
    console.print(f"\n   [green]✓[/green] Configuration written to [bold]{env_path}[/bold]")

    reload_env()

    console.print(
        Panel(
            f"[bold green]Setup complete![/bold green]\n\n"
            f"  Base dir : {base}\n"
            f"  Prefix   : {values['BARCODE_PREFIX']}\n"
            f"  Port     : {port}\n\n"
            f"Seed the barcode sequence with [bold]patron-creator seed BARCODE[/bold],\n"
            f"then run [bold]patron-creator start[/bold] to launch the server.",
            title="Done",
        )
    )


@app.command()
def start(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int | None = typer.Option(None, help="Override configured port"),
    reload: bool = typer.Option(False, help="Enable auto-reload (development)"),
) -> None:
    """Load configuration and start the patron-creator server."""

    import uvicorn

    reload_env()

    effective_port = port if port is not None else get_port()

    try:
        get_ils_settings()
    except ConfigurationError as exc:
        console.print(f"[red]{exc.message}[/red] Run [bold]patron-creator init[/bold] first.")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            f"Starting [bold cyan]patron-creator[/bold cyan] server\n"
            f"  Address : http://{host}:{effective_port}\n"
            f"  Reload  : {'on' if reload else 'off'}",
            title="patron-creator",
        )
    )

    uvicorn.run(
        "patron_creator.server:app",
        host=host,
        port=effective_port,
        reload=reload,
    )


@app.command()
def status() -> None:
    """Show configuration, server and barcode supply status."""

    reload_env()

    port = get_port()
    prefix = get_barcode_prefix()
    env_exists = get_env_path().exists()
    server_running = _is_port_in_use(port)

    try:
        get_ils_settings()
        ils_configured = True
    except ConfigurationError:
        ils_configured = False

    # Build table -----------------------------------------------------------
    table = Table(title="patron-creator status", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Base directory", str(get_base_dir()))
    table.add_row(
        "Configuration",
        "[green]found[/green]" if env_exists else "[red]missing -- run patron-creator init[/red]",
    )
    table.add_row(
        "ILS settings",
        "[green]complete[/green]" if ils_configured else "[red]incomplete[/red]",
    )
    table.add_row(
        "Address vendor",
        "[green]configured[/green]" if get_so_license_key() else "[red]no license key[/red]",
    )
    table.add_row(
        "Server",
        f"[green]running[/green] on port {port}"
        if server_running
        else f"[yellow]stopped[/yellow] (port {port})",
    )
    table.add_row("Barcode prefix", prefix)

    try:
        store = BarcodeStore.from_url(get_database_url())
        table.add_row("Barcodes stored", str(store.count(prefix)))
        table.add_row("Barcodes unused", str(store.count_unused(prefix)))
        latest = store.highest(prefix)
        table.add_row("Latest barcode", latest or "[yellow]none -- run patron-creator seed[/yellow]")
    except SQLAlchemyError as exc:
        table.add_row("Barcode store", f"[red]unavailable[/red] ({exc.__class__.__name__})")

    console.print()
    console.print(table)
    console.print()


@app.command()
def seed(
    barcode: str = typer.Argument(..., help="Luhn-valid barcode to start the sequence from"),
    unused: bool = typer.Option(False, help="Store it as unused so it is handed out first"),
) -> None:
    """Insert the starting barcode of a sequence into the local store."""

    reload_env()

    if not barcode.isdigit() or not luhn.validate(barcode):
        console.print(f"[red]{barcode} is not a Luhn-valid barcode.[/red]")
        raise typer.Exit(code=1)

    ensure_directories()
    store = BarcodeStore.from_url(get_database_url())
    if store.seed(barcode, used=not unused):
        console.print(f"[green]✓[/green] Seeded {barcode}")
    else:
        console.print(f"[yellow]{barcode} is already in the store.[/yellow]")


@app.command(name="luhn")
def luhn_command(
    prefix: str = typer.Argument(..., help="Digits without the check digit"),
) -> None:
    """Print PREFIX followed by its Luhn check digit."""

    if not prefix.isdigit():
        console.print(f"[red]{prefix} is not numeric.[/red]")
        raise typer.Exit(code=1)
    console.print(luhn.calculate(prefix))


if __name__ == "__main__":
    app()
