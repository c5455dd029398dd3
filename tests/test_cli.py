from contextlib import contextmanager

import psycopg
import pytest
from typer.testing import CliRunner

from renostock import cli
from renostock.cli import INIT_SQL, TABLES, app, sql_statements

runner = CliRunner()

DDL_PREFIXES = ("DROP TABLE", "CREATE TABLE", "CREATE INDEX")


class _Cursor:
    """Answers the queries `status` runs with fixed numbers."""

    def __init__(self):
        self._row = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=()):
        if "SUM(" in sql:
            self._row = (12, 5)
        elif "COUNT(*)" in sql:
            self._row = (3,)
        else:
            self._row = (1,)

    def fetchone(self):
        return self._row


class _Conn:
    def cursor(self):
        return _Cursor()


class _SessionDB:
    def __init__(self, fail: bool = False):
        self.fail = fail

    @contextmanager
    def session(self):
        if self.fail:
            raise psycopg.OperationalError("connection refused")
        yield _Conn()


def test_every_init_statement_is_plain_ddl():
    statements = sql_statements(INIT_SQL)

    for statement in statements:
        assert statement.startswith(DDL_PREFIXES), statement
        assert statement.count("(") == statement.count(")"), statement
    assert sum(s.startswith("DROP TABLE") for s in statements) == len(TABLES)
    assert sum(s.startswith("CREATE TABLE") for s in statements) == len(TABLES)


def test_init_sql_creates_room_number_constraint():
    [rooms] = [s for s in sql_statements(INIT_SQL) if s.startswith("CREATE TABLE rooms")]

    assert "UNIQUE (floor_id, room_number)" in rooms


def test_sql_statements_ignores_semicolons_in_comments():
    script = """
    -- first; the floors
    CREATE TABLE a (id INT);
    -- second
    CREATE INDEX idx_a ON a (id);
    """

    assert sql_statements(script) == ["CREATE TABLE a (id INT)", "CREATE INDEX idx_a ON a (id)"]


def test_init_db_dry_run_prints_sql_without_connecting(monkeypatch):
    def _no_connect():
        raise AssertionError("dry run must not connect")

    monkeypatch.setattr(cli, "PostgresDB", _no_connect)

    result = runner.invoke(app, ["init-db", "--dry-run"])

    assert result.exit_code == 0
    assert "Dry run mode" in result.output
    assert "CREATE TABLE item_assignments" in result.output


def test_init_db_reports_connection_failure(monkeypatch):
    monkeypatch.setattr(cli, "PostgresDB", lambda: _SessionDB(fail=True))

    result = runner.invoke(app, ["init-db"])

    assert result.exit_code == 1
    assert "Error initializing database" in result.output


def test_status_prints_counts(monkeypatch):
    monkeypatch.setattr(cli, "PostgresDB", lambda: _SessionDB())

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Database connected" in result.output
    for table in TABLES:
        assert f"{table}: 3 rows" in result.output
    assert "units: 12 total, 5 assigned" in result.output


def test_status_reports_connection_failure(monkeypatch):
    monkeypatch.setattr(cli, "PostgresDB", lambda: _SessionDB(fail=True))

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "connection refused" in result.output


@pytest.fixture
def cli_db(db, monkeypatch):
    monkeypatch.setattr(cli, "PostgresDB", lambda: db)
    return db


def test_shortages_prints_missing_items(cli_db, stock, checklist, floor):
    created, _ = stock.create_rooms(floor.id, ["501"])
    checklist.add_needed_item(created[0].id, "Chair", 2)

    result = runner.invoke(app, ["shortages"])

    assert result.exit_code == 0
    assert "501" in result.output
    assert "Chair" in result.output


def test_shortages_when_every_room_is_complete(cli_db):
    result = runner.invoke(app, ["shortages"])

    assert result.exit_code == 0
    assert "No shortages" in result.output


def test_shortages_rejects_bad_floor_id(cli_db):
    result = runner.invoke(app, ["shortages", "--floor-id", "five"])

    assert result.exit_code == 1
    assert "Not a floor id" in result.output
