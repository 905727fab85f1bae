"""CLI for Spendwise."""

import typer

from .mcp_server import run_server
from .settlement.cli import app as group_app

app = typer.Typer(
    name="spendwise",
    help="Group expense balances and settlements for Spendwise",
)

app.add_typer(group_app, name="group", help="Group balances and settlements")


@app.command()
def mcp():
    """Start the MCP server."""
    run_server()


if __name__ == "__main__":
    app()
