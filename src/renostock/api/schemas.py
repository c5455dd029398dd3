"""Pydantic request/response schemas for the renostock API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from renostock.core.models import AssignmentStatus

# Quantities are stored as Postgres INT
MAX_QUANTITY = 2_147_483_647


# Request models


class FloorCreateRequest(BaseModel):
    floor_number: str = Field(..., description="Short floor code, e.g. '5' or 'G'")
    display_name: str = Field(..., description="Human label, e.g. '5 East'")


class FloorUpdateRequest(BaseModel):
    floor_number: str | None = None
    display_name: str | None = None


class RoomsCreateRequest(BaseModel):
    """Request body for creating several rooms on a floor at once."""

    room_numbers: list[str] = Field(..., description="Room numbers to create")


class RoomUpdateRequest(BaseModel):
    room_number: str


class StockCreateRequest(BaseModel):
    """Request body for adding newly acquired stock."""

    item_type: str
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY, description="Units acquired")
    description: str | None = None


class ItemUpdateRequest(BaseModel):
    item_type: str | None = None
    description: str | None = None
    quantity_total: int | None = Field(default=None, ge=0, le=MAX_QUANTITY)
    add_quantity: int = Field(
        default=0, ge=0, le=MAX_QUANTITY, description="Units to add on top of the total"
    )


class AssignRequest(BaseModel):
    """Request body for assigning one unit of an item to a room."""

    floor_id: UUID | None = None
    room_number: str | None = None


class AssignmentUpdateRequest(BaseModel):
    item_id: UUID = Field(..., description="Item the assignment should point at")


class StatusUpdateRequest(BaseModel):
    status: AssignmentStatus


class TransferRequest(BaseModel):
    floor_id: UUID | None = None
    room_number: str | None = None
    reason: str | None = None


class NeededItemCreateRequest(BaseModel):
    room_id: UUID
    item_type: str
    quantity: int = Field(default=1, ge=1, le=MAX_QUANTITY)
    description: str | None = None
    notes: str | None = None


class FulfilledRequest(BaseModel):
    fulfilled: bool


# Response models


class FloorResponse(BaseModel):
    id: UUID
    floor_number: str
    display_name: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoomResponse(BaseModel):
    id: UUID
    floor_id: UUID
    room_number: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoomsCreateResponse(BaseModel):
    created: list[RoomResponse]
    skipped: list[str]


class ItemResponse(BaseModel):
    id: UUID
    item_type: str
    description: str | None
    quantity_total: int
    quantity_assigned: int
    quantity_available: int
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class AssignmentResponse(BaseModel):
    id: UUID
    item_id: UUID
    room_id: UUID
    status: AssignmentStatus
    assigned_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoomAssignmentResponse(AssignmentResponse):
    item_type: str
    description: str | None = None


class NeededItemResponse(BaseModel):
    id: UUID
    room_id: UUID
    item_type: str
    quantity: int
    description: str | None
    notes: str | None
    fulfilled: bool
    requested_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoomDetailResponse(BaseModel):
    room: RoomResponse
    floor: FloorResponse
    assignments: list[RoomAssignmentResponse]
    needed_items: list[NeededItemResponse]


class TransferResponse(BaseModel):
    id: UUID
    assignment_id: UUID
    from_room_id: UUID
    to_room_id: UUID
    reason: str | None
    transferred_at: datetime | None = None

    model_config = {"from_attributes": True}


class TransferRecordResponse(TransferResponse):
    item_type: str | None
    from_room: str
    to_room: str


class MissingItemResponse(BaseModel):
    item_type: str
    quantity: int


class AssignedSummaryResponse(BaseModel):
    item_type: str
    status: AssignmentStatus
    quantity: int


class RoomCompletionResponse(BaseModel):
    room_id: UUID
    room_number: str
    floor_id: UUID
    floor_display: str
    needed_items: list[NeededItemResponse]
    assigned_items: list[AssignedSummaryResponse]
    missing_items: list[MissingItemResponse]
    fulfilled_count: int
    is_complete: bool


class CompletionReportResponse(BaseModel):
    rooms: list[RoomCompletionResponse]
    complete_count: int
    incomplete_count: int


class ShortageResponse(BaseModel):
    room_id: UUID
    room_number: str
    floor_display: str
    missing_items: list[MissingItemResponse]


class DashboardResponse(BaseModel):
    total_units: int
    status_counts: dict[str, int]
    floor_count: int
    room_count: int


class FloorRoomSummaryResponse(BaseModel):
    room: RoomResponse
    assignment_count: int
    in_room_count: int
    outstanding_needed: list[NeededItemResponse]


class ChecklistRowResponse(BaseModel):
    room: RoomResponse
    floor_display: str
    needed_count: int
    fulfilled_count: int


class ItemPlacementResponse(BaseModel):
    assignment: AssignmentResponse
    location: str


class ItemReportResponse(BaseModel):
    item: ItemResponse
    placements: list[ItemPlacementResponse]


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str
    version: str
    database: str
