"""CLI for renostock database management and reports."""

from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from renostock.config import get_settings
from renostock.core.reporting import ReportService
from renostock.db.postgres import PostgresDB
from renostock.log import configure_logging

app = typer.Typer(
    name="renostock",
    help="renostock CLI - manage the stock database and print reports",
    add_completion=False,
)
console = Console()

TABLES = ["item_transfers", "needed_items", "item_assignments", "items", "rooms", "floors"]

INIT_SQL = """
DROP TABLE IF EXISTS item_transfers;
DROP TABLE IF EXISTS needed_items;
DROP TABLE IF EXISTS item_assignments;
DROP TABLE IF EXISTS items;
DROP TABLE IF EXISTS rooms;
DROP TABLE IF EXISTS floors;

CREATE TABLE floors (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    floor_number TEXT NOT NULL,
    display_name TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Room numbers are unique per floor (find-or-create relies on this)
CREATE TABLE rooms (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    floor_id UUID NOT NULL REFERENCES floors(id) ON DELETE CASCADE,
    room_number TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT uq_rooms_floor_room_number UNIQUE (floor_id, room_number)
);

CREATE TABLE items (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    item_type TEXT NOT NULL,
    description TEXT,
    quantity_total INT NOT NULL DEFAULT 0,
    quantity_assigned INT NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT ck_items_quantity_assigned
        CHECK (quantity_assigned >= 0 AND quantity_assigned <= quantity_total)
);

-- Needed items match items by lower-cased type
CREATE INDEX idx_items_item_type_lower ON items (lower(item_type));

CREATE TABLE item_assignments (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    item_id UUID NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    room_id UUID NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'building'
        CHECK (status IN ('building', 'built', 'delivering', 'in_room')),
    assigned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX idx_item_assignments_room ON item_assignments (room_id);
CREATE INDEX idx_item_assignments_item_room ON item_assignments (item_id, room_id);

CREATE TABLE item_transfers (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    assignment_id UUID NOT NULL REFERENCES item_assignments(id) ON DELETE CASCADE,
    from_room_id UUID NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    to_room_id UUID NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    reason TEXT,
    transferred_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX idx_item_transfers_assignment ON item_transfers (assignment_id, transferred_at DESC);

CREATE TABLE needed_items (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    room_id UUID NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    item_type TEXT NOT NULL,
    quantity INT NOT NULL DEFAULT 1 CHECK (quantity > 0),
    description TEXT,
    notes TEXT,
    fulfilled BOOLEAN NOT NULL DEFAULT FALSE,
    requested_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX idx_needed_items_room ON needed_items (room_id);
"""


def sql_statements(sql: str) -> list[str]:
    """Split a DDL script into statements, ignoring `--` comment lines."""
    body = "\n".join(line for line in sql.splitlines() if not line.lstrip().startswith("--"))
    return [s.strip() for s in body.split(";") if s.strip()]


@app.callback()
def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)


def _connection_panel() -> None:
    settings = get_settings()
    console.print(Panel.fit(
        f"[bold]Site:[/bold] {settings.site.name}\n"
        f"[bold]Database:[/bold] {settings.database.database}\n"
        f"[bold]Host:[/bold] {settings.database.host}\n"
        f"[bold]User:[/bold] {settings.database.user}",
        title="Database Connection",
    ))


@app.command()
def init_db(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show SQL without executing"),
):
    """Create the stock tables, dropping any existing ones."""
    _connection_panel()

    if dry_run:
        console.print("\n[yellow]Dry run mode - SQL that would be executed:[/yellow]\n")
        console.print(INIT_SQL)
        return

    console.print("\n[blue]Initializing database tables...[/blue]")

    try:
        with PostgresDB().session() as conn:
            with conn.cursor() as cur:
                for statement in sql_statements(INIT_SQL):
                    cur.execute(statement)
        console.print("[green]✓ Database tables initialized successfully![/green]")
    except Exception as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def clear_db(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """Delete all floors, rooms, items, assignments, transfers and requests."""
    _connection_panel()

    if not force:
        confirm = typer.confirm("\n⚠️  This will DELETE ALL stock data. Continue?")
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    console.print("\n[blue]Clearing database tables...[/blue]")

    try:
        with PostgresDB().session() as conn:
            with conn.cursor() as cur:
                # Children first so foreign keys are never dangling
                for table in TABLES:
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
        with PostgresDB().session() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                console.print("[green]✓ Database connected[/green]\n")

                counts = {}
                for table in reversed(TABLES):
                    cur.execute(f"SELECT COUNT(*) FROM {table}")
                    counts[table] = cur.fetchone()[0]

                cur.execute(
                    "SELECT COALESCE(SUM(quantity_total), 0), COALESCE(SUM(quantity_assigned), 0) FROM items"
                )
                total_units, assigned_units = cur.fetchone()
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(1)

    console.print("[bold]Table Statistics:[/bold]")
    for table, count in counts.items():
        console.print(f"  {table}: {count} rows")
    console.print(f"  units: {total_units} total, {assigned_units} assigned")


@app.command()
def shortages(
    floor_id: str = typer.Option(None, "--floor-id", help="Only report rooms on this floor"),
):
    """Print the rooms that are still short of needed items."""
    try:
        floor = UUID(floor_id) if floor_id else None
    except ValueError:
        console.print(f"[red]✗ Not a floor id: {floor_id}[/red]")
        raise typer.Exit(1)

    try:
        rooms = ReportService(PostgresDB()).shortages(floor)
    except Exception as e:
        console.print(f"[red]✗ Error building shortage report: {e}[/red]")
        raise typer.Exit(1)

    if not rooms:
        console.print("[green]✓ No shortages - every room with requests is complete[/green]")
        return

    table = Table(title=f"Shortages - {get_settings().site.name}")
    table.add_column("Floor")
    table.add_column("Room")
    table.add_column("Item type")
    table.add_column("Missing", justify="right")
    for room in rooms:
        for missing in room.missing_items:
            table.add_row(room.floor_display, room.room_number, missing.item_type, str(missing.quantity))
    console.print(table)


if __name__ == "__main__":
    app()
