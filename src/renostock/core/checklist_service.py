"""Needed-item checklist and its reconciliation with stock and assignments.

A needed item is a free-text request ("3 x Headboard Type 1 for room 501").
Marking it fulfilled books the units into inventory and links them to the
room; marking it unfulfilled again takes them back out. Requests are tied to
stock items by case-insensitive ``item_type``, not by id, so renaming an item
breaks the link to requests fulfilled before the rename.
"""

from __future__ import annotations

from uuid import UUID

import structlog

from renostock.core.errors import NotFoundError, ValidationError
from renostock.core.models import AssignmentStatus
from renostock.db.postgres import PostgresDB, StockStore, get_db
from renostock.db.schemas import NeededItem

logger = structlog.get_logger()


class ChecklistService:
    """Business logic for the per-room needed-items checklist."""

    def __init__(self, db: PostgresDB | None = None):
        self.db = db or get_db()

    @staticmethod
    def _needed_or_404(store: StockStore, needed_item_id: UUID) -> NeededItem:
        needed = store.get_needed_item(needed_item_id, for_update=True)
        if needed is None:
            raise NotFoundError(f"Needed item not found: {needed_item_id}")
        return needed

    def list_needed_items(
        self, room_id: UUID | None = None, fulfilled: bool | None = None
    ) -> list[NeededItem]:
        with self.db.transaction() as store:
            return store.list_needed_items(room_id=room_id, fulfilled=fulfilled)

    def add_needed_item(
        self,
        room_id: UUID,
        item_type: str,
        quantity: int = 1,
        description: str | None = None,
        notes: str | None = None,
    ) -> NeededItem:
        item_type = (item_type or "").strip()
        if not item_type:
            raise ValidationError("Please enter an item type")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        with self.db.transaction() as store:
            if store.get_room(room_id) is None:
                raise NotFoundError(f"Room not found: {room_id}")
            needed = store.insert_needed_item(
                room_id,
                item_type,
                quantity,
                (description or "").strip() or None,
                (notes or "").strip() or None,
            )
        logger.info(
            "needed_item_added",
            needed_item_id=str(needed.id),
            room_id=str(room_id),
            item_type=item_type,
            quantity=quantity,
        )
        return needed

    def delete_needed_item(self, needed_item_id: UUID) -> None:
        """Remove a request. Stock booked by an earlier fulfilment stays put."""
        with self.db.transaction() as store:
            self._needed_or_404(store, needed_item_id)
            store.delete_needed_item(needed_item_id)
        logger.info("needed_item_deleted", needed_item_id=str(needed_item_id))

    def set_fulfilled(self, needed_item_id: UUID, fulfilled: bool) -> NeededItem:
        """Mark a request fulfilled or unfulfilled, reconciling stock.

        Raises:
            ValidationError: If the request is already in the requested state
            NotFoundError: If the request does not exist
        """
        with self.db.transaction() as store:
            needed = self._needed_or_404(store, needed_item_id)
            if needed.fulfilled == fulfilled:
                state = "fulfilled" if fulfilled else "not fulfilled"
                raise ValidationError(f"{needed.item_type} is already {state}")
            if fulfilled:
                self._book_in(store, needed)
            else:
                self._book_out(store, needed)
            return store.set_needed_fulfilled(needed_item_id, fulfilled)

    def toggle_fulfilled(self, needed_item_id: UUID) -> NeededItem:
        with self.db.transaction() as store:
            current = self._needed_or_404(store, needed_item_id).fulfilled
        return self.set_fulfilled(needed_item_id, not current)

    def _book_in(self, store: StockStore, needed: NeededItem) -> None:
        item = store.find_item_by_type(needed.item_type, for_update=True)
        if item is None:
            item = store.insert_item(
                needed.item_type.strip(),
                needed.description,
                quantity_total=needed.quantity,
                quantity_assigned=needed.quantity,
            )
            logger.info("item_created_from_request", item_id=str(item.id), item_type=item.item_type)
        else:
            item = store.adjust_item_quantities(
                item.id, total_delta=needed.quantity, assigned_delta=needed.quantity
            )

        # Already on site, so it skips the building/delivery stages
        if store.find_assignment(item.id, needed.room_id) is None:
            store.insert_assignment(item.id, needed.room_id, AssignmentStatus.IN_ROOM.value)

        logger.info(
            "needed_item_fulfilled",
            needed_item_id=str(needed.id),
            item_id=str(item.id),
            room_id=str(needed.room_id),
            quantity=needed.quantity,
        )

    def _book_out(self, store: StockStore, needed: NeededItem) -> None:
        item = store.find_item_by_type(needed.item_type, for_update=True)
        if item is None:
            logger.warning(
                "unfulfilled_request_has_no_item",
                needed_item_id=str(needed.id),
                item_type=needed.item_type,
            )
            return

        assignment = store.find_assignment(item.id, needed.room_id)
        if assignment is not None:
            store.delete_assignment(assignment.id)
        store.adjust_item_quantities(item.id, assigned_delta=-needed.quantity)

        logger.info(
            "needed_item_unfulfilled",
            needed_item_id=str(needed.id),
            item_id=str(item.id),
            room_id=str(needed.room_id),
            quantity=needed.quantity,
        )


# Global service instance
_service: ChecklistService | None = None


def get_checklist_service() -> ChecklistService:
    """Get the global checklist service instance."""
    global _service
    if _service is None:
        _service = ChecklistService()
    return _service
