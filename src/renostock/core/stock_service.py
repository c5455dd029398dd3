"""Stock service: site layout, inventory, room assignments and transfers."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

import structlog

from renostock.config import get_settings
from renostock.core.errors import ConflictError, NotFoundError, ValidationError
from renostock.core.models import AssignmentStatus, can_transition, next_status
from renostock.db.postgres import PostgresDB, StockStore, get_db
from renostock.db.schemas import Floor, Item, ItemAssignment, ItemTransfer, NeededItem, Room

logger = structlog.get_logger()


def _required(value: str | None, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} is required")
    return cleaned


def _optional(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


@dataclass
class RoomDetail:
    """A room with everything assigned to and requested for it."""

    room: Room
    floor: Floor
    assignments: list[tuple[ItemAssignment, Item]] = field(default_factory=list)
    needed_items: list[NeededItem] = field(default_factory=list)


@dataclass
class TransferRecord:
    """A transfer with human labels for both rooms."""

    transfer: ItemTransfer
    item_type: str | None
    from_room: str
    to_room: str


def room_label(room: Room | None, floors: dict[UUID, Floor]) -> str:
    """Label such as ``5 East - Room 501``."""
    if room is None:
        return "Unknown room"
    floor = floors.get(room.floor_id)
    prefix = f"{floor.display_name} - " if floor else ""
    return f"{prefix}Room {room.room_number}"


class StockService:
    """Business logic for floors, rooms, stock items and their assignments."""

    def __init__(self, db: PostgresDB | None = None):
        """Initialize stock service.

        Args:
            db: Database client. If None, uses global instance.
        """
        self.db = db or get_db()
        self._settings = get_settings().site

    # Lookups that raise

    @staticmethod
    def _floor_or_404(store: StockStore, floor_id: UUID) -> Floor:
        floor = store.get_floor(floor_id)
        if floor is None:
            raise NotFoundError(f"Floor not found: {floor_id}")
        return floor

    @staticmethod
    def _room_or_404(store: StockStore, room_id: UUID) -> Room:
        room = store.get_room(room_id)
        if room is None:
            raise NotFoundError(f"Room not found: {room_id}")
        return room

    @staticmethod
    def _item_or_404(store: StockStore, item_id: UUID, for_update: bool = False) -> Item:
        item = store.get_item(item_id, for_update=for_update)
        if item is None:
            raise NotFoundError(f"Item not found: {item_id}")
        return item

    @staticmethod
    def _assignment_or_404(store: StockStore, assignment_id: UUID) -> ItemAssignment:
        assignment = store.get_assignment(assignment_id, for_update=True)
        if assignment is None:
            raise NotFoundError(f"Assignment not found: {assignment_id}")
        return assignment

    def _resolve_room(self, store: StockStore, floor_id: UUID | None, room_number: str | None) -> Room:
        if floor_id is None:
            raise ValidationError("Please select a floor")
        number = _required(room_number, "Room number")
        self._floor_or_404(store, floor_id)
        return store.find_or_create_room(floor_id, number)

    # Floors

    def list_floors(self) -> list[Floor]:
        with self.db.transaction() as store:
            return store.list_floors()

    def create_floor(self, floor_number: str, display_name: str) -> Floor:
        number = _required(floor_number, "Floor number")
        name = _required(display_name, "Display name")
        with self.db.transaction() as store:
            floor = store.insert_floor(number, name)
        logger.info("floor_created", floor_id=str(floor.id), floor_number=number)
        return floor

    def update_floor(
        self, floor_id: UUID, floor_number: str | None = None, display_name: str | None = None
    ) -> Floor:
        with self.db.transaction() as store:
            floor = self._floor_or_404(store, floor_id)
            number = floor.floor_number if floor_number is None else _required(floor_number, "Floor number")
            name = floor.display_name if display_name is None else _required(display_name, "Display name")
            updated = store.update_floor(floor_id, number, name)
        logger.info("floor_updated", floor_id=str(floor_id))
        return updated

    def delete_floor(self, floor_id: UUID) -> None:
        """Delete a floor and, by cascade, its rooms and their assignments."""
        with self.db.transaction() as store:
            self._floor_or_404(store, floor_id)
            room_ids = [room.id for room in store.list_rooms(floor_id)]
            store.release_room_assignments(room_ids)
            store.delete_floor(floor_id)
        logger.info("floor_deleted", floor_id=str(floor_id), rooms_deleted=len(room_ids))

    # Rooms

    def list_rooms(self, floor_id: UUID | None = None) -> list[Room]:
        with self.db.transaction() as store:
            return store.list_rooms(floor_id)

    def create_rooms(self, floor_id: UUID, room_numbers: list[str]) -> tuple[list[Room], list[str]]:
        """Create rooms in bulk, skipping numbers the floor already has.

        Returns:
            Tuple of (created rooms, skipped room numbers)

        Raises:
            ValidationError: If no room numbers are given or all already exist
            NotFoundError: If the floor does not exist
        """
        wanted: list[str] = []
        for number in room_numbers:
            cleaned = (number or "").strip()
            if cleaned and cleaned not in wanted:
                wanted.append(cleaned)
        if not wanted:
            raise ValidationError("Please enter at least one room number")

        created: list[Room] = []
        skipped: list[str] = []
        with self.db.transaction() as store:
            self._floor_or_404(store, floor_id)
            for number in wanted:
                room = store.insert_room(floor_id, number)
                if room is None:
                    skipped.append(number)
                else:
                    created.append(room)
            if not created:
                raise ValidationError("All room numbers already exist on this floor")

        logger.info(
            "rooms_created",
            floor_id=str(floor_id),
            created=len(created),
            skipped=len(skipped),
        )
        return created, skipped

    def rename_room(self, room_id: UUID, room_number: str) -> Room:
        number = _required(room_number, "Room number")
        with self.db.transaction() as store:
            room = self._room_or_404(store, room_id)
            existing = store.find_room(room.floor_id, number)
            if existing is not None and existing.id != room.id:
                raise ConflictError(f"Room {number} already exists on this floor")
            updated = store.update_room_number(room_id, number)
        logger.info("room_renamed", room_id=str(room_id), room_number=number)
        return updated

    def delete_room(self, room_id: UUID) -> None:
        """Delete a room, giving back the assigned count of its assignments."""
        with self.db.transaction() as store:
            self._room_or_404(store, room_id)
            store.release_room_assignments([room_id])
            store.delete_room(room_id)
        logger.info("room_deleted", room_id=str(room_id))

    def get_room(self, room_id: UUID) -> RoomDetail:
        with self.db.transaction() as store:
            room = self._room_or_404(store, room_id)
            floor = self._floor_or_404(store, room.floor_id)
            assignments = store.list_assignments(room_id=room_id)
            items = {item.id: item for item in store.list_items()}
            needed = store.list_needed_items(room_id=room_id)
        return RoomDetail(
            room=room,
            floor=floor,
            assignments=[(a, items[a.item_id]) for a in assignments if a.item_id in items],
            needed_items=needed,
        )

    # Items

    def list_items(self) -> list[Item]:
        with self.db.transaction() as store:
            return store.list_items()

    def add_stock(self, item_type: str, quantity: int, description: str | None = None) -> Item:
        """Record newly acquired stock as a new item with nothing assigned."""
        name = _required(item_type, "Item type")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        with self.db.transaction() as store:
            item = store.insert_item(name, _optional(description), quantity, 0)
        logger.info("stock_added", item_id=str(item.id), item_type=name, quantity=quantity)
        return item

    def update_item(
        self,
        item_id: UUID,
        item_type: str | None = None,
        description: str | None = None,
        quantity_total: int | None = None,
        add_quantity: int = 0,
    ) -> Item:
        """Edit an item's type, description or total quantity.

        The new total is ``(quantity_total or current total) + add_quantity``
        and may not drop below the number of units already assigned.
        """
        if add_quantity < 0:
            raise ValidationError("Added quantity cannot be negative")
        with self.db.transaction() as store:
            item = self._item_or_404(store, item_id, for_update=True)
            name = item.item_type if item_type is None else _required(item_type, "Item type")
            desc = item.description if description is None else _optional(description)
            base = item.quantity_total if quantity_total is None else quantity_total
            new_total = base + add_quantity
            if new_total < item.quantity_assigned:
                raise ValidationError(
                    f"Total quantity {new_total} is below the {item.quantity_assigned} "
                    "units already assigned"
                )
            updated = store.update_item(item_id, name, desc, new_total)
        logger.info("item_updated", item_id=str(item_id), quantity_total=new_total)
        return updated

    def delete_item(self, item_id: UUID) -> None:
        """Delete an item that has no assigned units.

        Raises:
            ConflictError: If any units of the item are still assigned
        """
        with self.db.transaction() as store:
            item = self._item_or_404(store, item_id, for_update=True)
            if item.quantity_assigned != 0:
                raise ConflictError(
                    f"Cannot delete {item.item_type}: {item.quantity_assigned} units are assigned"
                )
            store.delete_item(item_id)
        logger.info("item_deleted", item_id=str(item_id), item_type=item.item_type)

    # Assignments

    def assign(self, item_id: UUID, floor_id: UUID | None, room_number: str | None) -> ItemAssignment:
        """Assign one unit of an item to a room, creating the room if needed.

        Raises:
            ValidationError: If no floor/room is given or the item has no units left
            NotFoundError: If the item or floor does not exist
        """
        with self.db.transaction() as store:
            item = self._item_or_404(store, item_id, for_update=True)
            if item.quantity_assigned >= item.quantity_total:
                raise ValidationError(f"No {item.item_type} units left to assign")
            room = self._resolve_room(store, floor_id, room_number)
            assignment = store.insert_assignment(item.id, room.id, AssignmentStatus.BUILDING.value)
            if store.adjust_item_quantities(item.id, assigned_delta=1) is None:
                raise ValidationError(f"No {item.item_type} units left to assign")

        logger.info(
            "assignment_created",
            assignment_id=str(assignment.id),
            item_id=str(item_id),
            room_id=str(room.id),
            room_number=room.room_number,
        )
        return assignment

    def edit_assignment(self, assignment_id: UUID, new_item_id: UUID) -> ItemAssignment:
        """Point an assignment at a different item, moving one unit across."""
        with self.db.transaction() as store:
            assignment = self._assignment_or_404(store, assignment_id)
            if assignment.item_id == new_item_id:
                return assignment

            new_item = self._item_or_404(store, new_item_id, for_update=True)
            if new_item.quantity_assigned >= new_item.quantity_total:
                raise ValidationError(f"Selected item {new_item.item_type} has no available quantity")

            old_item_id = assignment.item_id
            updated = store.update_assignment(assignment_id, item_id=new_item_id)
            store.adjust_item_quantities(old_item_id, assigned_delta=-1)
            if store.adjust_item_quantities(new_item_id, assigned_delta=1) is None:
                raise ValidationError(f"Selected item {new_item.item_type} has no available quantity")

        logger.info(
            "assignment_item_changed",
            assignment_id=str(assignment_id),
            old_item_id=str(old_item_id),
            new_item_id=str(new_item_id),
        )
        return updated

    def unassign(self, assignment_id: UUID) -> None:
        """Remove an assignment and give the unit back to its item."""
        with self.db.transaction() as store:
            assignment = self._assignment_or_404(store, assignment_id)
            store.delete_assignment(assignment_id)
            store.adjust_item_quantities(assignment.item_id, assigned_delta=-1)
        logger.info("assignment_deleted", assignment_id=str(assignment_id))

    # Status

    def update_status(self, assignment_id: UUID, new_status: AssignmentStatus | str) -> ItemAssignment:
        """Move an assignment exactly one step along the delivery sequence.

        Raises:
            ValidationError: If ``new_status`` is not the next status
        """
        try:
            target = AssignmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown status: {new_status}") from None

        with self.db.transaction() as store:
            assignment = self._assignment_or_404(store, assignment_id)
            current = AssignmentStatus(assignment.status)
            if not can_transition(current, target):
                expected = next_status(current)
                if expected is None:
                    raise ValidationError(f"Assignment is already {current.label}; no further status")
                raise ValidationError(
                    f"Cannot move from {current.label} to {target.label}; next is {expected.label}"
                )
            updated = store.update_assignment(assignment_id, status=target.value)

        logger.info(
            "assignment_status_updated",
            assignment_id=str(assignment_id),
            from_status=current.value,
            to_status=target.value,
        )
        return updated

    def advance_status(self, assignment_id: UUID) -> ItemAssignment:
        """Move an assignment to whatever status comes next."""
        with self.db.transaction() as store:
            current = AssignmentStatus(self._assignment_or_404(store, assignment_id).status)
        target = next_status(current)
        if target is None:
            raise ValidationError(f"Assignment is already {current.label}; no further status")
        return self.update_status(assignment_id, target)

    # Transfers

    def transfer(
        self,
        assignment_id: UUID,
        target_floor_id: UUID | None,
        target_room_number: str | None,
        reason: str | None = None,
    ) -> ItemTransfer:
        """Move an assignment to another room and record the move.

        Status is left as it is.
        """
        with self.db.transaction() as store:
            assignment = self._assignment_or_404(store, assignment_id)
            target = self._resolve_room(store, target_floor_id, target_room_number)
            if target.id == assignment.room_id:
                raise ValidationError("Item is already in that room")
            record = store.insert_transfer(
                assignment_id, assignment.room_id, target.id, _optional(reason)
            )
            store.update_assignment(assignment_id, room_id=target.id)

        logger.info(
            "assignment_transferred",
            assignment_id=str(assignment_id),
            from_room_id=str(record.from_room_id),
            to_room_id=str(record.to_room_id),
        )
        return record

    def transfer_history(
        self, assignment_id: UUID | None = None, limit: int | None = None
    ) -> list[TransferRecord]:
        limit = limit or self._settings.transfer_history_limit
        with self.db.transaction() as store:
            transfers = store.list_transfers(assignment_id=assignment_id, limit=limit)
            floors = {f.id: f for f in store.list_floors()}
            rooms = {r.id: r for r in store.list_rooms()}
            items = {i.id: i for i in store.list_items()}
            assignments = {a.id: a for a in store.list_assignments()}

        records = []
        for t in transfers:
            assignment = assignments.get(t.assignment_id)
            item = items.get(assignment.item_id) if assignment else None
            records.append(
                TransferRecord(
                    transfer=t,
                    item_type=item.item_type if item else None,
                    from_room=room_label(rooms.get(t.from_room_id), floors),
                    to_room=room_label(rooms.get(t.to_room_id), floors),
                )
            )
        return records


# Global service instance
_service: StockService | None = None


def get_service() -> StockService:
    """Get the global stock service instance."""
    global _service
    if _service is None:
        _service = StockService()
    return _service
