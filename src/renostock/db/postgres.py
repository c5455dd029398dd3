"""PostgreSQL database client for renostock."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Sequence
from uuid import UUID

import psycopg
import structlog

from renostock.config import DatabaseSettings, get_settings
from renostock.core.errors import ConflictError, TransientStoreError, ValidationError
from renostock.db.schemas import Floor, Item, ItemAssignment, ItemTransfer, NeededItem, Room

logger = structlog.get_logger()

FLOOR_COLUMNS = "id, floor_number, display_name, created_at"
ROOM_COLUMNS = "id, floor_id, room_number, created_at"
ITEM_COLUMNS = "id, item_type, description, quantity_total, quantity_assigned, created_at"
ASSIGNMENT_COLUMNS = "id, item_id, room_id, status, assigned_at, updated_at"
TRANSFER_COLUMNS = "id, assignment_id, from_room_id, to_room_id, reason, transferred_at"
NEEDED_COLUMNS = (
    "id, room_id, item_type, quantity, description, notes, fulfilled, requested_at"
)


def _floor(row) -> Floor:
    return Floor(id=row[0], floor_number=row[1], display_name=row[2], created_at=row[3])


def _room(row) -> Room:
    return Room(id=row[0], floor_id=row[1], room_number=row[2], created_at=row[3])


def _item(row) -> Item:
    return Item(
        id=row[0],
        item_type=row[1],
        description=row[2],
        quantity_total=row[3],
        quantity_assigned=row[4],
        created_at=row[5],
    )


def _assignment(row) -> ItemAssignment:
    return ItemAssignment(
        id=row[0],
        item_id=row[1],
        room_id=row[2],
        status=row[3],
        assigned_at=row[4],
        updated_at=row[5],
    )


def _transfer(row) -> ItemTransfer:
    return ItemTransfer(
        id=row[0],
        assignment_id=row[1],
        from_room_id=row[2],
        to_room_id=row[3],
        reason=row[4],
        transferred_at=row[5],
    )


def _needed(row) -> NeededItem:
    return NeededItem(
        id=row[0],
        room_id=row[1],
        item_type=row[2],
        quantity=row[3],
        description=row[4],
        notes=row[5],
        fulfilled=row[6],
        requested_at=row[7],
    )


class StockStore:
    """Reads and writes against one open transaction.

    Every method runs on the connection handed out by
    ``PostgresDB.transaction()``, so a group of calls commits or rolls back
    together.
    """

    def __init__(self, conn: psycopg.Connection):
        self._conn = conn

    def _fetchone(self, sql: str, params: Sequence = ()):
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def _fetchall(self, sql: str, params: Sequence = ()) -> list:
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchall()

    def _execute(self, sql: str, params: Sequence = ()) -> int:
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    # Floors

    def list_floors(self) -> list[Floor]:
        rows = self._fetchall(f"SELECT {FLOOR_COLUMNS} FROM floors ORDER BY floor_number")
        return [_floor(r) for r in rows]

    def get_floor(self, floor_id: UUID) -> Floor | None:
        row = self._fetchone(f"SELECT {FLOOR_COLUMNS} FROM floors WHERE id = %s", (floor_id,))
        return _floor(row) if row else None

    def insert_floor(self, floor_number: str, display_name: str) -> Floor:
        row = self._fetchone(
            f"""
            INSERT INTO floors (floor_number, display_name)
            VALUES (%s, %s)
            RETURNING {FLOOR_COLUMNS}
            """,
            (floor_number, display_name),
        )
        return _floor(row)

    def update_floor(self, floor_id: UUID, floor_number: str, display_name: str) -> Floor | None:
        row = self._fetchone(
            f"""
            UPDATE floors SET floor_number = %s, display_name = %s
            WHERE id = %s
            RETURNING {FLOOR_COLUMNS}
            """,
            (floor_number, display_name, floor_id),
        )
        return _floor(row) if row else None

    def delete_floor(self, floor_id: UUID) -> bool:
        return self._execute("DELETE FROM floors WHERE id = %s", (floor_id,)) > 0

    # Rooms

    def list_rooms(self, floor_id: UUID | None = None) -> list[Room]:
        if floor_id is None:
            rows = self._fetchall(f"SELECT {ROOM_COLUMNS} FROM rooms ORDER BY room_number")
        else:
            rows = self._fetchall(
                f"SELECT {ROOM_COLUMNS} FROM rooms WHERE floor_id = %s ORDER BY room_number",
                (floor_id,),
            )
        return [_room(r) for r in rows]

    def get_room(self, room_id: UUID) -> Room | None:
        row = self._fetchone(f"SELECT {ROOM_COLUMNS} FROM rooms WHERE id = %s", (room_id,))
        return _room(row) if row else None

    def find_room(self, floor_id: UUID, room_number: str) -> Room | None:
        row = self._fetchone(
            f"SELECT {ROOM_COLUMNS} FROM rooms WHERE floor_id = %s AND room_number = %s",
            (floor_id, room_number),
        )
        return _room(row) if row else None

    def insert_room(self, floor_id: UUID, room_number: str) -> Room | None:
        """Insert a room, or return None if the floor already has that number."""
        row = self._fetchone(
            f"""
            INSERT INTO rooms (floor_id, room_number)
            VALUES (%s, %s)
            ON CONFLICT (floor_id, room_number) DO NOTHING
            RETURNING {ROOM_COLUMNS}
            """,
            (floor_id, room_number),
        )
        return _room(row) if row else None

    def find_or_create_room(self, floor_id: UUID, room_number: str) -> Room:
        room = self.insert_room(floor_id, room_number)
        if room is not None:
            logger.info("room_created", room_id=str(room.id), room_number=room_number)
            return room
        # Lost the insert to an existing (or concurrently created) row
        return self.find_room(floor_id, room_number)

    def update_room_number(self, room_id: UUID, room_number: str) -> Room | None:
        row = self._fetchone(
            f"UPDATE rooms SET room_number = %s WHERE id = %s RETURNING {ROOM_COLUMNS}",
            (room_number, room_id),
        )
        return _room(row) if row else None

    def delete_room(self, room_id: UUID) -> bool:
        return self._execute("DELETE FROM rooms WHERE id = %s", (room_id,)) > 0

    def release_room_assignments(self, room_ids: list[UUID]) -> int:
        """Give back the assigned count of every assignment in the given rooms."""
        if not room_ids:
            return 0
        return self._execute(
            """
            UPDATE items
            SET quantity_assigned = GREATEST(items.quantity_assigned - held.n, 0)
            FROM (
                SELECT item_id, COUNT(*) AS n
                FROM item_assignments
                WHERE room_id = ANY(%s)
                GROUP BY item_id
            ) AS held
            WHERE items.id = held.item_id
            """,
            (list(room_ids),),
        )

    # Items

    def list_items(self) -> list[Item]:
        rows = self._fetchall(f"SELECT {ITEM_COLUMNS} FROM items ORDER BY created_at DESC")
        return [_item(r) for r in rows]

    def get_item(self, item_id: UUID, for_update: bool = False) -> Item | None:
        sql = f"SELECT {ITEM_COLUMNS} FROM items WHERE id = %s"
        if for_update:
            sql += " FOR UPDATE"
        row = self._fetchone(sql, (item_id,))
        return _item(row) if row else None

    def find_item_by_type(self, item_type: str, for_update: bool = False) -> Item | None:
        """Oldest item whose type matches case-insensitively."""
        sql = f"""
            SELECT {ITEM_COLUMNS} FROM items
            WHERE lower(item_type) = lower(%s)
            ORDER BY created_at
            LIMIT 1
        """
        if for_update:
            sql += " FOR UPDATE"
        row = self._fetchone(sql, (item_type.strip(),))
        return _item(row) if row else None

    def insert_item(
        self,
        item_type: str,
        description: str | None,
        quantity_total: int,
        quantity_assigned: int = 0,
    ) -> Item:
        row = self._fetchone(
            f"""
            INSERT INTO items (item_type, description, quantity_total, quantity_assigned)
            VALUES (%s, %s, %s, %s)
            RETURNING {ITEM_COLUMNS}
            """,
            (item_type, description, quantity_total, quantity_assigned),
        )
        return _item(row)

    def update_item(
        self, item_id: UUID, item_type: str, description: str | None, quantity_total: int
    ) -> Item | None:
        row = self._fetchone(
            f"""
            UPDATE items SET item_type = %s, description = %s, quantity_total = %s
            WHERE id = %s
            RETURNING {ITEM_COLUMNS}
            """,
            (item_type, description, quantity_total, item_id),
        )
        return _item(row) if row else None

    def adjust_item_quantities(
        self, item_id: UUID, total_delta: int = 0, assigned_delta: int = 0
    ) -> Item | None:
        """Shift the item's counters, flooring assigned at 0.

        Returns None when the item is missing or the change would push
        ``quantity_assigned`` above ``quantity_total``.
        """
        row = self._fetchone(
            f"""
            UPDATE items
            SET quantity_total = quantity_total + %s,
                quantity_assigned = GREATEST(quantity_assigned + %s, 0)
            WHERE id = %s
              AND GREATEST(quantity_assigned + %s, 0) <= quantity_total + %s
            RETURNING {ITEM_COLUMNS}
            """,
            (total_delta, assigned_delta, item_id, assigned_delta, total_delta),
        )
        return _item(row) if row else None

    def delete_item(self, item_id: UUID) -> bool:
        return self._execute("DELETE FROM items WHERE id = %s", (item_id,)) > 0

    # Assignments

    def list_assignments(
        self, room_id: UUID | None = None, item_id: UUID | None = None
    ) -> list[ItemAssignment]:
        clauses = []
        params: list = []
        if room_id is not None:
            clauses.append("room_id = %s")
            params.append(room_id)
        if item_id is not None:
            clauses.append("item_id = %s")
            params.append(item_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetchall(
            f"SELECT {ASSIGNMENT_COLUMNS} FROM item_assignments {where} ORDER BY assigned_at",
            params,
        )
        return [_assignment(r) for r in rows]

    def get_assignment(self, assignment_id: UUID, for_update: bool = False) -> ItemAssignment | None:
        sql = f"SELECT {ASSIGNMENT_COLUMNS} FROM item_assignments WHERE id = %s"
        if for_update:
            sql += " FOR UPDATE"
        row = self._fetchone(sql, (assignment_id,))
        return _assignment(row) if row else None

    def find_assignment(self, item_id: UUID, room_id: UUID) -> ItemAssignment | None:
        """An assignment linking the item to the room, in_room ones first."""
        row = self._fetchone(
            f"""
            SELECT {ASSIGNMENT_COLUMNS} FROM item_assignments
            WHERE item_id = %s AND room_id = %s
            ORDER BY (status = 'in_room') DESC, assigned_at DESC
            LIMIT 1
            """,
            (item_id, room_id),
        )
        return _assignment(row) if row else None

    def insert_assignment(self, item_id: UUID, room_id: UUID, status: str) -> ItemAssignment:
        row = self._fetchone(
            f"""
            INSERT INTO item_assignments (item_id, room_id, status)
            VALUES (%s, %s, %s)
            RETURNING {ASSIGNMENT_COLUMNS}
            """,
            (item_id, room_id, status),
        )
        return _assignment(row)

    def update_assignment(
        self,
        assignment_id: UUID,
        *,
        item_id: UUID | None = None,
        room_id: UUID | None = None,
        status: str | None = None,
    ) -> ItemAssignment | None:
        row = self._fetchone(
            f"""
            UPDATE item_assignments
            SET item_id = COALESCE(%s, item_id),
                room_id = COALESCE(%s, room_id),
                status = COALESCE(%s, status),
                updated_at = NOW()
            WHERE id = %s
            RETURNING {ASSIGNMENT_COLUMNS}
            """,
            (item_id, room_id, status, assignment_id),
        )
        return _assignment(row) if row else None

    def delete_assignment(self, assignment_id: UUID) -> bool:
        return self._execute("DELETE FROM item_assignments WHERE id = %s", (assignment_id,)) > 0

    # Transfers

    def insert_transfer(
        self, assignment_id: UUID, from_room_id: UUID, to_room_id: UUID, reason: str | None
    ) -> ItemTransfer:
        row = self._fetchone(
            f"""
            INSERT INTO item_transfers (assignment_id, from_room_id, to_room_id, reason)
            VALUES (%s, %s, %s, %s)
            RETURNING {TRANSFER_COLUMNS}
            """,
            (assignment_id, from_room_id, to_room_id, reason),
        )
        return _transfer(row)

    def list_transfers(
        self, assignment_id: UUID | None = None, limit: int = 50
    ) -> list[ItemTransfer]:
        if assignment_id is None:
            rows = self._fetchall(
                f"""
                SELECT {TRANSFER_COLUMNS} FROM item_transfers
                ORDER BY transferred_at DESC
                LIMIT %s
                """,
                (limit,),
            )
        else:
            rows = self._fetchall(
                f"""
                SELECT {TRANSFER_COLUMNS} FROM item_transfers
                WHERE assignment_id = %s
                ORDER BY transferred_at DESC
                LIMIT %s
                """,
                (assignment_id, limit),
            )
        return [_transfer(r) for r in rows]

    # Needed items

    def list_needed_items(
        self, room_id: UUID | None = None, fulfilled: bool | None = None
    ) -> list[NeededItem]:
        clauses = []
        params: list = []
        if room_id is not None:
            clauses.append("room_id = %s")
            params.append(room_id)
        if fulfilled is not None:
            clauses.append("fulfilled = %s")
            params.append(fulfilled)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetchall(
            f"SELECT {NEEDED_COLUMNS} FROM needed_items {where} ORDER BY requested_at",
            params,
        )
        return [_needed(r) for r in rows]

    def get_needed_item(self, needed_item_id: UUID, for_update: bool = False) -> NeededItem | None:
        sql = f"SELECT {NEEDED_COLUMNS} FROM needed_items WHERE id = %s"
        if for_update:
            sql += " FOR UPDATE"
        row = self._fetchone(sql, (needed_item_id,))
        return _needed(row) if row else None

    def insert_needed_item(
        self,
        room_id: UUID,
        item_type: str,
        quantity: int,
        description: str | None,
        notes: str | None,
    ) -> NeededItem:
        row = self._fetchone(
            f"""
            INSERT INTO needed_items (room_id, item_type, quantity, description, notes)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {NEEDED_COLUMNS}
            """,
            (room_id, item_type, quantity, description, notes),
        )
        return _needed(row)

    def set_needed_fulfilled(self, needed_item_id: UUID, fulfilled: bool) -> NeededItem | None:
        row = self._fetchone(
            f"""
            UPDATE needed_items SET fulfilled = %s
            WHERE id = %s
            RETURNING {NEEDED_COLUMNS}
            """,
            (fulfilled, needed_item_id),
        )
        return _needed(row) if row else None

    def delete_needed_item(self, needed_item_id: UUID) -> bool:
        return self._execute("DELETE FROM needed_items WHERE id = %s", (needed_item_id,)) > 0


class PostgresDB:
    """PostgreSQL database client using psycopg."""

    def __init__(self, settings: DatabaseSettings | None = None):
        """Initialize database client.

        Args:
            settings: Connection settings. If None, uses configured settings.
        """
        self._settings = settings or get_settings().database
        logger.info(
            "postgres_client_initialized",
            host=self._settings.host,
            database=self._settings.database,
        )

    def connect(self) -> psycopg.Connection:
        """Open a new connection."""
        return psycopg.connect(**self._settings.connect_kwargs())

    @contextmanager
    def session(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection context manager."""
        conn = self.connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[StockStore, None, None]:
        """Run a group of reads and writes as one all-or-nothing unit."""
        try:
            with self.session() as conn:
                yield StockStore(conn)
        except psycopg.DataError as e:
            logger.warning("database_data_error", error=str(e))
            raise ValidationError("A value is out of range or malformed") from e
        except psycopg.IntegrityError as e:
            logger.warning("database_integrity_error", error=str(e))
            raise ConflictError("The change conflicts with existing data") from e
        except (psycopg.OperationalError, psycopg.InterfaceError) as e:
            logger.error("database_unavailable", error=str(e))
            raise TransientStoreError("The database is unavailable, please try again") from e

    def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            with self.session() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            return True
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return False


# Global database instance
_db: PostgresDB | None = None


def get_db() -> PostgresDB:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = PostgresDB()
    return _db
