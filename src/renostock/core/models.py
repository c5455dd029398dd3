"""Domain models for renostock."""

from enum import Enum


class AssignmentStatus(str, Enum):
    """Delivery status of an item assignment, in progression order."""

    BUILDING = "building"
    BUILT = "built"
    DELIVERING = "delivering"
    IN_ROOM = "in_room"

    @property
    def label(self) -> str:
        """Human label, e.g. ``In Room``."""
        return " ".join(word.capitalize() for word in self.value.split("_"))


STATUS_SEQUENCE: tuple[AssignmentStatus, ...] = tuple(AssignmentStatus)


def next_status(current: AssignmentStatus) -> AssignmentStatus | None:
    """Return the status that follows ``current``, or None if it is terminal."""
    index = STATUS_SEQUENCE.index(AssignmentStatus(current))
    if index + 1 >= len(STATUS_SEQUENCE):
        return None
    return STATUS_SEQUENCE[index + 1]


def can_transition(current: AssignmentStatus, new: AssignmentStatus) -> bool:
    """Only a single step forward is allowed."""
    return next_status(current) == AssignmentStatus(new)


def normalize_item_type(item_type: str) -> str:
    """Key used to match needed items against stock items by type."""
    return item_type.strip().lower()
