"""In-memory stand-in for PostgresDB used by the service tests.

Each ``transaction()`` works on a copy of the tables and only publishes it on
success, mirroring commit/rollback. Foreign-key cascades and the items check
constraint are emulated so service behaviour matches the real schema.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from itertools import count
from uuid import UUID, uuid4

from renostock.core.errors import ConflictError, TransientStoreError
from renostock.db.schemas import Floor, Item, ItemAssignment, ItemTransfer, NeededItem, Room

_EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _empty_tables() -> dict[str, dict[UUID, dict]]:
    return {
        "floors": {},
        "rooms": {},
        "items": {},
        "item_assignments": {},
        "item_transfers": {},
        "needed_items": {},
    }


class InMemoryStore:
    """Implements the StockStore methods against plain dicts."""

    def __init__(self, tables: dict, clock, failures: set[str]):
        self.t = tables
        self._clock = clock
        self._failures = failures

    def _now(self) -> datetime:
        return _EPOCH + timedelta(seconds=next(self._clock))

    def _maybe_fail(self, op: str) -> None:
        if op in self._failures:
            self._failures.discard(op)
            raise TransientStoreError(f"connection lost during {op}")

    # Floors

    def list_floors(self) -> list[Floor]:
        rows = sorted(self.t["floors"].values(), key=lambda r: r["floor_number"])
        return [Floor(**r) for r in rows]

    def get_floor(self, floor_id: UUID) -> Floor | None:
        row = self.t["floors"].get(floor_id)
        return Floor(**row) if row else None

    def insert_floor(self, floor_number: str, display_name: str) -> Floor:
        row = {
            "id": uuid4(),
            "floor_number": floor_number,
            "display_name": display_name,
            "created_at": self._now(),
        }
        self.t["floors"][row["id"]] = row
        return Floor(**row)

    def update_floor(self, floor_id: UUID, floor_number: str, display_name: str) -> Floor | None:
        row = self.t["floors"].get(floor_id)
        if row is None:
            return None
        row.update(floor_number=floor_number, display_name=display_name)
        return Floor(**row)

    def delete_floor(self, floor_id: UUID) -> bool:
        if self.t["floors"].pop(floor_id, None) is None:
            return False
        for room_id in [r["id"] for r in self.t["rooms"].values() if r["floor_id"] == floor_id]:
            self.delete_room(room_id)
        return True

    # Rooms

    def list_rooms(self, floor_id: UUID | None = None) -> list[Room]:
        rows = [r for r in self.t["rooms"].values() if floor_id is None or r["floor_id"] == floor_id]
        return [Room(**r) for r in sorted(rows, key=lambda r: r["room_number"])]

    def get_room(self, room_id: UUID) -> Room | None:
        row = self.t["rooms"].get(room_id)
        return Room(**row) if row else None

    def find_room(self, floor_id: UUID, room_number: str) -> Room | None:
        for row in self.t["rooms"].values():
            if row["floor_id"] == floor_id and row["room_number"] == room_number:
                return Room(**row)
        return None

    def insert_room(self, floor_id: UUID, room_number: str) -> Room | None:
        if self.find_room(floor_id, room_number) is not None:
            return None
        row = {
            "id": uuid4(),
            "floor_id": floor_id,
            "room_number": room_number,
            "created_at": self._now(),
        }
        self.t["rooms"][row["id"]] = row
        return Room(**row)

    def find_or_create_room(self, floor_id: UUID, room_number: str) -> Room:
        return self.insert_room(floor_id, room_number) or self.find_room(floor_id, room_number)

    def update_room_number(self, room_id: UUID, room_number: str) -> Room | None:
        row = self.t["rooms"].get(room_id)
        if row is None:
            return None
        row["room_number"] = room_number
        return Room(**row)

    def delete_room(self, room_id: UUID) -> bool:
        if self.t["rooms"].pop(room_id, None) is None:
            return False
        for a_id in [a["id"] for a in self.t["item_assignments"].values() if a["room_id"] == room_id]:
            self.delete_assignment(a_id)
        for n_id in [n["id"] for n in self.t["needed_items"].values() if n["room_id"] == room_id]:
            del self.t["needed_items"][n_id]
        for t_id in [
            t["id"]
            for t in self.t["item_transfers"].values()
            if room_id in (t["from_room_id"], t["to_room_id"])
        ]:
            del self.t["item_transfers"][t_id]
        return True

    def release_room_assignments(self, room_ids: list[UUID]) -> int:
        held: dict[UUID, int] = {}
        for a in self.t["item_assignments"].values():
            if a["room_id"] in room_ids:
                held[a["item_id"]] = held.get(a["item_id"], 0) + 1
        for item_id, n in held.items():
            item = self.t["items"][item_id]
            item["quantity_assigned"] = max(item["quantity_assigned"] - n, 0)
        return len(held)

    # Items

    def list_items(self) -> list[Item]:
        rows = sorted(self.t["items"].values(), key=lambda r: r["created_at"], reverse=True)
        return [Item(**r) for r in rows]

    def get_item(self, item_id: UUID, for_update: bool = False) -> Item | None:
        row = self.t["items"].get(item_id)
        return Item(**row) if row else None

    def find_item_by_type(self, item_type: str, for_update: bool = False) -> Item | None:
        key = item_type.strip().lower()
        matches = [r for r in self.t["items"].values() if r["item_type"].lower() == key]
        if not matches:
            return None
        return Item(**min(matches, key=lambda r: r["created_at"]))

    def _check_item(self, row: dict) -> None:
        if not 0 <= row["quantity_assigned"] <= row["quantity_total"]:
            raise ConflictError("The change conflicts with existing data")

    def insert_item(
        self,
        item_type: str,
        description: str | None,
        quantity_total: int,
        quantity_assigned: int = 0,
    ) -> Item:
        row = {
            "id": uuid4(),
            "item_type": item_type,
            "description": description,
            "quantity_total": quantity_total,
            "quantity_assigned": quantity_assigned,
            "created_at": self._now(),
        }
        self._check_item(row)
        self.t["items"][row["id"]] = row
        return Item(**row)

    def update_item(
        self, item_id: UUID, item_type: str, description: str | None, quantity_total: int
    ) -> Item | None:
        row = self.t["items"].get(item_id)
        if row is None:
            return None
        updated = dict(row, item_type=item_type, description=description, quantity_total=quantity_total)
        self._check_item(updated)
        row.update(updated)
        return Item(**row)

    def adjust_item_quantities(
        self, item_id: UUID, total_delta: int = 0, assigned_delta: int = 0
    ) -> Item | None:
        self._maybe_fail("adjust_item_quantities")
        row = self.t["items"].get(item_id)
        if row is None:
            return None
        total = row["quantity_total"] + total_delta
        assigned = max(row["quantity_assigned"] + assigned_delta, 0)
        if assigned > total:
            return None
        row.update(quantity_total=total, quantity_assigned=assigned)
        return Item(**row)

    def delete_item(self, item_id: UUID) -> bool:
        if self.t["items"].pop(item_id, None) is None:
            return False
        for a_id in [a["id"] for a in self.t["item_assignments"].values() if a["item_id"] == item_id]:
            self.delete_assignment(a_id)
        return True

    # Assignments

    def list_assignments(
        self, room_id: UUID | None = None, item_id: UUID | None = None
    ) -> list[ItemAssignment]:
        rows = [
            a
            for a in self.t["item_assignments"].values()
            if (room_id is None or a["room_id"] == room_id)
            and (item_id is None or a["item_id"] == item_id)
        ]
        return [ItemAssignment(**a) for a in sorted(rows, key=lambda a: a["assigned_at"])]

    def get_assignment(self, assignment_id: UUID, for_update: bool = False) -> ItemAssignment | None:
        row = self.t["item_assignments"].get(assignment_id)
        return ItemAssignment(**row) if row else None

    def find_assignment(self, item_id: UUID, room_id: UUID) -> ItemAssignment | None:
        rows = [
            a
            for a in self.t["item_assignments"].values()
            if a["item_id"] == item_id and a["room_id"] == room_id
        ]
        if not rows:
            return None
        best = max(rows, key=lambda a: (a["status"] == "in_room", a["assigned_at"]))
        return ItemAssignment(**best)

    def insert_assignment(self, item_id: UUID, room_id: UUID, status: str) -> ItemAssignment:
        self._maybe_fail("insert_assignment")
        if item_id not in self.t["items"] or room_id not in self.t["rooms"]:
            raise ConflictError("The change conflicts with existing data")
        now = self._now()
        row = {
            "id": uuid4(),
            "item_id": item_id,
            "room_id": room_id,
            "status": status,
            "assigned_at": now,
            "updated_at": now,
        }
        self.t["item_assignments"][row["id"]] = row
        return ItemAssignment(**row)

    def update_assignment(
        self,
        assignment_id: UUID,
        *,
        item_id: UUID | None = None,
        room_id: UUID | None = None,
        status: str | None = None,
    ) -> ItemAssignment | None:
        self._maybe_fail("update_assignment")
        row = self.t["item_assignments"].get(assignment_id)
        if row is None:
            return None
        if item_id is not None:
            row["item_id"] = item_id
        if room_id is not None:
            row["room_id"] = room_id
        if status is not None:
            row["status"] = status
        row["updated_at"] = self._now()
        return ItemAssignment(**row)

    def delete_assignment(self, assignment_id: UUID) -> bool:
        if self.t["item_assignments"].pop(assignment_id, None) is None:
            return False
        for t_id in [
            t["id"] for t in self.t["item_transfers"].values() if t["assignment_id"] == assignment_id
        ]:
            del self.t["item_transfers"][t_id]
        return True

    # Transfers

    def insert_transfer(
        self, assignment_id: UUID, from_room_id: UUID, to_room_id: UUID, reason: str | None
    ) -> ItemTransfer:
        row = {
            "id": uuid4(),
            "assignment_id": assignment_id,
            "from_room_id": from_room_id,
            "to_room_id": to_room_id,
            "reason": reason,
            "transferred_at": self._now(),
        }
        self.t["item_transfers"][row["id"]] = row
        return ItemTransfer(**row)

    def list_transfers(self, assignment_id: UUID | None = None, limit: int = 50) -> list[ItemTransfer]:
        rows = [
            t
            for t in self.t["item_transfers"].values()
            if assignment_id is None or t["assignment_id"] == assignment_id
        ]
        rows.sort(key=lambda t: t["transferred_at"], reverse=True)
        return [ItemTransfer(**t) for t in rows[:limit]]

    # Needed items

    def list_needed_items(
        self, room_id: UUID | None = None, fulfilled: bool | None = None
    ) -> list[NeededItem]:
        rows = [
            n
            for n in self.t["needed_items"].values()
            if (room_id is None or n["room_id"] == room_id)
            and (fulfilled is None or n["fulfilled"] == fulfilled)
        ]
        return [NeededItem(**n) for n in sorted(rows, key=lambda n: n["requested_at"])]

    def get_needed_item(self, needed_item_id: UUID, for_update: bool = False) -> NeededItem | None:
        row = self.t["needed_items"].get(needed_item_id)
        return NeededItem(**row) if row else None

    def insert_needed_item(
        self,
        room_id: UUID,
        item_type: str,
        quantity: int,
        description: str | None,
        notes: str | None,
    ) -> NeededItem:
        row = {
            "id": uuid4(),
            "room_id": room_id,
            "item_type": item_type,
            "quantity": quantity,
            "description": description,
            "notes": notes,
            "fulfilled": False,
            "requested_at": self._now(),
        }
        self.t["needed_items"][row["id"]] = row
        return NeededItem(**row)

    def set_needed_fulfilled(self, needed_item_id: UUID, fulfilled: bool) -> NeededItem | None:
        self._maybe_fail("set_needed_fulfilled")
        row = self.t["needed_items"].get(needed_item_id)
        if row is None:
            return None
        row["fulfilled"] = fulfilled
        return NeededItem(**row)

    def delete_needed_item(self, needed_item_id: UUID) -> bool:
        return self.t["needed_items"].pop(needed_item_id, None) is not None


class InMemoryDB:
    """Drop-in for PostgresDB with all-or-nothing transactions."""

    def __init__(self):
        self.tables = _empty_tables()
        self._clock = count(1)
        self._failures: set[str] = set()

    def fail_next(self, op: str) -> None:
        """Make the next call to store method ``op`` raise TransientStoreError."""
        self._failures.add(op)

    @contextmanager
    def transaction(self):
        working = copy.deepcopy(self.tables)
        yield InMemoryStore(working, self._clock, self._failures)
        self.tables = working

    def health_check(self) -> bool:
        return True

    # Test helpers

    def item(self, item_id: UUID) -> dict:
        return self.tables["items"][item_id]

    def assignment(self, assignment_id: UUID) -> dict:
        return self.tables["item_assignments"][assignment_id]

    def count(self, table: str) -> int:
        return len(self.tables[table])
