"""Read-only reports: room completion, shortages and site summaries.

Completeness is measured against physical presence: a room is complete when
it has at least one needed item and, for every one of them, enough ``in_room``
assignments of a matching item type. The checklist's fulfilled flags are
reported as progress only and never decide completeness.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Mapping
from uuid import UUID

import structlog

from renostock.core.errors import NotFoundError
from renostock.core.models import AssignmentStatus, normalize_item_type
from renostock.core.stock_service import room_label
from renostock.db.postgres import PostgresDB, get_db
from renostock.db.schemas import Floor, Item, ItemAssignment, NeededItem, Room

logger = structlog.get_logger()


@dataclass
class MissingItem:
    item_type: str
    quantity: int


@dataclass
class AssignedSummary:
    item_type: str
    status: str
    quantity: int


@dataclass
class RoomCompletion:
    """Completion state of one room that has needed items."""

    room_id: UUID
    room_number: str
    floor_id: UUID
    floor_display: str
    needed_items: list[NeededItem]
    assigned_items: list[AssignedSummary]
    missing_items: list[MissingItem]
    is_complete: bool

    @property
    def fulfilled_count(self) -> int:
        return sum(1 for n in self.needed_items if n.fulfilled)


@dataclass
class DashboardSummary:
    total_units: int
    status_counts: dict[str, int]
    floor_count: int
    room_count: int


@dataclass
class FloorRoomSummary:
    room: Room
    assignment_count: int
    in_room_count: int
    outstanding_needed: list[NeededItem] = field(default_factory=list)


@dataclass
class ChecklistRow:
    room: Room
    floor_display: str
    needed_count: int
    fulfilled_count: int


@dataclass
class ItemPlacement:
    assignment: ItemAssignment
    location: str


@dataclass
class ItemReportRow:
    item: Item
    placements: list[ItemPlacement]


@dataclass
class Snapshot:
    """Rows read together in one transaction."""

    floors: list[Floor]
    rooms: list[Room]
    items: list[Item]
    assignments: list[ItemAssignment]
    needed_items: list[NeededItem]


def in_room_counts(
    assignments: list[ItemAssignment], items: list[Item]
) -> dict[UUID, Counter]:
    """Per room, how many ``in_room`` assignments there are of each item type."""
    types = {item.id: normalize_item_type(item.item_type) for item in items}
    counts: dict[UUID, Counter] = {}
    for a in assignments:
        if a.status != AssignmentStatus.IN_ROOM.value or a.item_id not in types:
            continue
        counts.setdefault(a.room_id, Counter())[types[a.item_id]] += 1
    return counts


def missing_quantity(needed: NeededItem, counts: Mapping[str, int]) -> int:
    return max(0, needed.quantity - counts.get(normalize_item_type(needed.item_type), 0))


def _assigned_summary(
    assignments: list[ItemAssignment], items: dict[UUID, Item]
) -> list[AssignedSummary]:
    grouped: Counter = Counter()
    for a in assignments:
        item = items.get(a.item_id)
        grouped[(item.item_type if item else "", a.status)] += 1
    return [
        AssignedSummary(item_type=item_type, status=status, quantity=quantity)
        for (item_type, status), quantity in sorted(grouped.items())
    ]


def room_completion(snapshot: Snapshot) -> list[RoomCompletion]:
    """Completion state for every room with at least one needed item."""
    floors = {f.id: f for f in snapshot.floors}
    items = {i.id: i for i in snapshot.items}
    counts = in_room_counts(snapshot.assignments, snapshot.items)

    needed_by_room: dict[UUID, list[NeededItem]] = {}
    for n in snapshot.needed_items:
        needed_by_room.setdefault(n.room_id, []).append(n)
    assignments_by_room: dict[UUID, list[ItemAssignment]] = {}
    for a in snapshot.assignments:
        assignments_by_room.setdefault(a.room_id, []).append(a)

    results = []
    for room in snapshot.rooms:
        needed = needed_by_room.get(room.id, [])
        if not needed:
            continue
        room_counts = counts.get(room.id, Counter())
        missing = []
        for n in needed:
            short = missing_quantity(n, room_counts)
            if short > 0:
                missing.append(MissingItem(item_type=n.item_type, quantity=short))
        floor = floors.get(room.floor_id)
        results.append(
            RoomCompletion(
                room_id=room.id,
                room_number=room.room_number,
                floor_id=room.floor_id,
                floor_display=floor.display_name if floor else "",
                needed_items=needed,
                assigned_items=_assigned_summary(assignments_by_room.get(room.id, []), items),
                missing_items=missing,
                is_complete=not missing,
            )
        )
    return results


def shortage_report(completions: list[RoomCompletion]) -> list[RoomCompletion]:
    """Rooms still short of at least one needed item."""
    return [c for c in completions if c.missing_items]


def dashboard_summary(snapshot: Snapshot) -> DashboardSummary:
    status_counts = {status.value: 0 for status in AssignmentStatus}
    for a in snapshot.assignments:
        status_counts[a.status] = status_counts.get(a.status, 0) + 1
    return DashboardSummary(
        total_units=sum(i.quantity_total for i in snapshot.items),
        status_counts=status_counts,
        floor_count=len(snapshot.floors),
        room_count=len(snapshot.rooms),
    )


def floor_overview(snapshot: Snapshot, floor_id: UUID) -> list[FloorRoomSummary]:
    summaries = []
    for room in snapshot.rooms:
        if room.floor_id != floor_id:
            continue
        room_assignments = [a for a in snapshot.assignments if a.room_id == room.id]
        summaries.append(
            FloorRoomSummary(
                room=room,
                assignment_count=len(room_assignments),
                in_room_count=sum(
                    1 for a in room_assignments if a.status == AssignmentStatus.IN_ROOM.value
                ),
                outstanding_needed=[
                    n for n in snapshot.needed_items if n.room_id == room.id and not n.fulfilled
                ],
            )
        )
    return summaries


def room_checklist(snapshot: Snapshot, floor_id: UUID | None = None) -> list[ChecklistRow]:
    floors = {f.id: f for f in snapshot.floors}
    rows = []
    for room in snapshot.rooms:
        if floor_id is not None and room.floor_id != floor_id:
            continue
        needed = [n for n in snapshot.needed_items if n.room_id == room.id]
        floor = floors.get(room.floor_id)
        rows.append(
            ChecklistRow(
                room=room,
                floor_display=floor.display_name if floor else "",
                needed_count=len(needed),
                fulfilled_count=sum(1 for n in needed if n.fulfilled),
            )
        )
    return rows


def item_report(snapshot: Snapshot) -> list[ItemReportRow]:
    floors = {f.id: f for f in snapshot.floors}
    rooms = {r.id: r for r in snapshot.rooms}
    rows = []
    for item in snapshot.items:
        placements = [
            ItemPlacement(assignment=a, location=room_label(rooms.get(a.room_id), floors))
            for a in snapshot.assignments
            if a.item_id == item.id
        ]
        rows.append(ItemReportRow(item=item, placements=placements))
    return rows


class ReportService:
    """Loads a consistent snapshot and runs the report functions over it."""

    def __init__(self, db: PostgresDB | None = None):
        self.db = db or get_db()

    def snapshot(self, floor_id: UUID | None = None) -> Snapshot:
        with self.db.transaction() as store:
            floors = store.list_floors()
            rooms = store.list_rooms(floor_id)
            room_ids = {r.id for r in rooms}
            items = store.list_items()
            assignments = [a for a in store.list_assignments() if a.room_id in room_ids]
            needed = [n for n in store.list_needed_items() if n.room_id in room_ids]
        return Snapshot(
            floors=floors,
            rooms=rooms,
            items=items,
            assignments=assignments,
            needed_items=needed,
        )

    def completion(self, floor_id: UUID | None = None) -> list[RoomCompletion]:
        return room_completion(self.snapshot(floor_id))

    def shortages(self, floor_id: UUID | None = None) -> list[RoomCompletion]:
        shortages = shortage_report(self.completion(floor_id))
        logger.info("shortage_report_built", rooms_short=len(shortages))
        return shortages

    def dashboard(self) -> DashboardSummary:
        return dashboard_summary(self.snapshot())

    def floor_overview(self, floor_id: UUID) -> list[FloorRoomSummary]:
        snapshot = self.snapshot(floor_id)
        if not any(f.id == floor_id for f in snapshot.floors):
            raise NotFoundError(f"Floor not found: {floor_id}")
        return floor_overview(snapshot, floor_id)

    def checklist(self, floor_id: UUID | None = None) -> list[ChecklistRow]:
        return room_checklist(self.snapshot(floor_id), floor_id)

    def items(self) -> list[ItemReportRow]:
        return item_report(self.snapshot())


# Global service instance
_service: ReportService | None = None


def get_report_service() -> ReportService:
    """Get the global report service instance."""
    global _service
    if _service is None:
        _service = ReportService()
    return _service
