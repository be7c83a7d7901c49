"""CLI for Gift Registry database management."""

import psycopg
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from gift_registry.config import get_settings

app = typer.Typer(
    name="gift-registry",
    help="Gift Registry CLI - manage PostgreSQL tables and run the server",
    add_completion=False,
)
console = Console()

# Children before parents, for deletes that respect foreign keys
_TABLES = [
    "item_claims",
    "items",
    "inventory_members",
    "categories",
    "inventories",
    "users",
]


def get_local_connection() -> psycopg.Connection:
    """Get a database connection using the configured credentials."""
    return psycopg.connect(get_settings().database.conninfo)


def _connection_panel() -> None:
    settings = get_settings()
    console.print(Panel.fit(
        f"[bold]Database:[/bold] {settings.database.name}\n"
        f"[bold]Host:[/bold] {settings.database.host}:{settings.database.port}\n"
        f"[bold]User:[/bold] {settings.database.user}",
        title="PostgreSQL Connection",
    ))


@app.command()
def init_db(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show SQL without executing"),
):
    """Create tables, constraints and indexes."""
    from sqlalchemy import create_engine
    from sqlalchemy.dialects import postgresql
    from sqlalchemy.schema import CreateIndex, CreateTable

    from gift_registry.db.schemas import Base

    _connection_panel()

    if dry_run:
        console.print("\n[yellow]Dry run mode - SQL that would be executed:[/yellow]\n")
        dialect = postgresql.dialect()
        for table in Base.metadata.sorted_tables:
            console.print(f"{str(CreateTable(table).compile(dialect=dialect)).strip()};\n")
            for index in table.indexes:
                console.print(f"{CreateIndex(index).compile(dialect=dialect)};\n")
        return

    console.print("\n[blue]Initializing database tables...[/blue]")

    try:
        engine = create_engine(get_settings().database.connection_string)
        Base.metadata.create_all(engine)
        engine.dispose()
        console.print("[green]✓ Database tables initialized successfully![/green]")
    except Exception as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def clear_db(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """Clear all data from the registry tables."""
    _connection_panel()

    if not force:
        confirm = typer.confirm(
            "\n⚠️  This will DELETE ALL DATA from every registry table. Continue?"
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    console.print("\n[blue]Clearing database tables...[/blue]")

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                for table in _TABLES:
                    cur.execute(f"DELETE FROM {table}")
        console.print("[green]✓ All data cleared successfully![/green]")
    except Exception as e:
        console.print(f"[red]✗ Error clearing database: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def status():
    """Check database connection and show table counts."""
    _connection_panel()

    console.print("\n[blue]Checking database connection...[/blue]")

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                console.print("[green]✓ Database connected[/green]\n")

                counts = {}
                for table in reversed(_TABLES):
                    cur.execute(f"SELECT COUNT(*) FROM {table}")
                    counts[table] = cur.fetchone()[0]

                cur.execute("SELECT COUNT(*) FROM item_claims WHERE status = 'ASSIGNED'")
                assigned = cur.fetchone()[0]
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Table Statistics")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)
    console.print(f"  {assigned} items currently assigned")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the API server."""
    import uvicorn

    uvicorn.run("gift_registry.api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
