"""
Stream Gateway CLI.

Command-line interface for running the gateway and inspecting its config.
"""

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="stream-gateway",
    help="Stream Gateway relay CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: int = typer.Option(None, help="Bind port (defaults to PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the gateway with uvicorn."""
    import uvicorn

    from shared.config.settings import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    for problem in settings.validate_production_settings():
        console.print(f"[yellow]! {problem}[/yellow]")

    console.print(f"[blue]Starting Stream Gateway on {host}:{port}[/blue]")
    uvicorn.run(
        "stream_gateway.main:app",
        host=host,
        port=port,
        reload=reload,
    )


# =============================================================================
# Config Commands
# =============================================================================

@app.command()
def tiers():
    """Show the buffering tier applied to each configured stream id."""
    from shared.config.settings import get_settings
    from stream_gateway.components.core.exceptions import TierConfigError
    from stream_gateway.components.streams.tiers import TierTable

    try:
        table_cfg = TierTable.from_settings(get_settings().stream_tiers)
    except TierConfigError as e:
        console.print(f"[red]✗ Invalid STREAM_TIERS: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Stream Tiers")
    table.add_column("Stream ID", style="cyan")
    table.add_column("Capacity", justify="right")
    table.add_column("Max age (ms)", justify="right")
    table.add_column("Priority", justify="right")

    for stream_id, tier in table_cfg.items():
        table.add_row(stream_id, str(tier.capacity), str(tier.max_age_ms), str(tier.priority))

    default = table_cfg.default
    table.add_row(
        "[dim]<other>[/dim]",
        str(default.capacity),
        str(default.max_age_ms),
        str(default.priority),
    )
    console.print(table)


@app.command()
def version():
    """Show the gateway version."""
    from stream_gateway import __version__

    console.print(f"stream-gateway {__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
