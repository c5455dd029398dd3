"""SQLAlchemy ORM models for renostock."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


class Floor(Base):
    """A floor of the building, e.g. ``5`` / ``5 East``."""

    __tablename__ = "floors"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    floor_number: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_utc_now)


class Room(Base):
    """A room on a floor. Room numbers are unique per floor."""

    __tablename__ = "rooms"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    floor_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("floors.id", ondelete="CASCADE"), nullable=False
    )
    room_number: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=_utc_now)

    __table_args__ = (
        UniqueConstraint("floor_id", "room_number", name="uq_rooms_floor_room_number"),
    )


class Item(Base):
    """A stock type and how many units of it are on hand and assigned."""

    __tablename__ = "items"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    item_type: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity_total: Mapped[int] = mapped_column(nullable=False, default=0)
    quantity_assigned: Mapped[int] = mapped_column(nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=_utc_now)

    __table_args__ = (
        CheckConstraint(
            "quantity_assigned >= 0 AND quantity_assigned <= quantity_total",
            name="ck_items_quantity_assigned",
        ),
        Index("idx_items_item_type", "item_type"),
    )

    @property
    def quantity_available(self) -> int:
        return self.quantity_total - self.quantity_assigned


class ItemAssignment(Base):
    """One unit of an item assigned to a room, with its delivery status."""

    __tablename__ = "item_assignments"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    item_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("items.id", ondelete="CASCADE"), nullable=False
    )
    room_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="building")
    assigned_at: Mapped[datetime] = mapped_column(default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=_utc_now)

    __table_args__ = (
        CheckConstraint(
            "status IN ('building', 'built', 'delivering', 'in_room')",
            name="ck_item_assignments_status",
        ),
        Index("idx_item_assignments_room", "room_id"),
        Index("idx_item_assignments_item_room", "item_id", "room_id"),
    )


class ItemTransfer(Base):
    """Audit record of an assignment moving between rooms. Never updated."""

    __tablename__ = "item_transfers"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    assignment_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("item_assignments.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_room_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    to_room_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    transferred_at: Mapped[datetime] = mapped_column(default=_utc_now)

    __table_args__ = (
        Index("idx_item_transfers_assignment", "assignment_id", "transferred_at"),
    )


class NeededItem(Base):
    """A request for stock a room still needs, matched to items by type."""

    __tablename__ = "needed_items"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    room_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    item_type: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False, default=1)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fulfilled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requested_at: Mapped[datetime] = mapped_column(default=_utc_now)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_needed_items_quantity_positive"),
        Index("idx_needed_items_room", "room_id"),
    )
