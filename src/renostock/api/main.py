"""FastAPI application for renostock."""

from uuid import UUID

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from renostock import __version__
from renostock.api.schemas import (
    AssignedSummaryResponse,
    AssignmentResponse,
    AssignmentUpdateRequest,
    AssignRequest,
    ChecklistRowResponse,
    CompletionReportResponse,
    DashboardResponse,
    FloorCreateRequest,
    FloorResponse,
    FloorRoomSummaryResponse,
    FloorUpdateRequest,
    FulfilledRequest,
    HealthResponse,
    ItemPlacementResponse,
    ItemReportResponse,
    ItemResponse,
    ItemUpdateRequest,
    MissingItemResponse,
    NeededItemCreateRequest,
    NeededItemResponse,
    RoomAssignmentResponse,
    RoomCompletionResponse,
    RoomDetailResponse,
    RoomResponse,
    RoomsCreateRequest,
    RoomsCreateResponse,
    RoomUpdateRequest,
    ShortageResponse,
    StatusUpdateRequest,
    StockCreateRequest,
    TransferRecordResponse,
    TransferRequest,
    TransferResponse,
)
from renostock.config import get_settings
from renostock.core.checklist_service import ChecklistService, get_checklist_service
from renostock.core.errors import StockError, TransientStoreError
from renostock.core.reporting import ReportService, RoomCompletion, get_report_service
from renostock.core.stock_service import StockService, get_service
from renostock.db.postgres import PostgresDB, get_db
from renostock.log import configure_logging

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)

logger = structlog.get_logger()

app = FastAPI(
    title=f"{settings.site.name} Stock API",
    description="Renovation stock tracking by floor and room",
    version=__version__,
)

# CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StockError)
async def stock_error_handler(request: Request, exc: StockError) -> JSONResponse:
    """Turn a rejected action into a JSON error the UI can show."""
    log = logger.error if isinstance(exc, TransientStoreError) else logger.warning
    log(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _completion_response(c: RoomCompletion) -> RoomCompletionResponse:
    return RoomCompletionResponse(
        room_id=c.room_id,
        room_number=c.room_number,
        floor_id=c.floor_id,
        floor_display=c.floor_display,
        needed_items=[NeededItemResponse.model_validate(n) for n in c.needed_items],
        assigned_items=[
            AssignedSummaryResponse(item_type=a.item_type, status=a.status, quantity=a.quantity)
            for a in c.assigned_items
        ],
        missing_items=[
            MissingItemResponse(item_type=m.item_type, quantity=m.quantity) for m in c.missing_items
        ],
        fulfilled_count=c.fulfilled_count,
        is_complete=c.is_complete,
    )


@app.get("/api/health", response_model=HealthResponse)
async def health(db: PostgresDB = Depends(get_db)) -> HealthResponse:
    """Health check endpoint with database connectivity status."""
    db_status = "connected" if db.health_check() else "disconnected"
    return HealthResponse(status="ok", version=__version__, database=db_status)


# Floors and rooms


@app.get("/api/floors", response_model=list[FloorResponse])
def list_floors(service: StockService = Depends(get_service)) -> list[FloorResponse]:
    return [FloorResponse.model_validate(f) for f in service.list_floors()]


@app.post("/api/floors", response_model=FloorResponse, status_code=201)
def create_floor(
    request: FloorCreateRequest, service: StockService = Depends(get_service)
) -> FloorResponse:
    floor = service.create_floor(request.floor_number, request.display_name)
    return FloorResponse.model_validate(floor)


@app.patch("/api/floors/{floor_id}", response_model=FloorResponse)
def update_floor(
    floor_id: UUID, request: FloorUpdateRequest, service: StockService = Depends(get_service)
) -> FloorResponse:
    floor = service.update_floor(floor_id, request.floor_number, request.display_name)
    return FloorResponse.model_validate(floor)


@app.delete("/api/floors/{floor_id}", status_code=204)
def delete_floor(floor_id: UUID, service: StockService = Depends(get_service)) -> None:
    """Delete a floor together with all of its rooms."""
    service.delete_floor(floor_id)


@app.get("/api/floors/{floor_id}/overview", response_model=list[FloorRoomSummaryResponse])
def floor_overview(
    floor_id: UUID, reports: ReportService = Depends(get_report_service)
) -> list[FloorRoomSummaryResponse]:
    """Rooms on a floor with assignment counts and outstanding requests."""
    return [
        FloorRoomSummaryResponse(
            room=RoomResponse.model_validate(s.room),
            assignment_count=s.assignment_count,
            in_room_count=s.in_room_count,
            outstanding_needed=[NeededItemResponse.model_validate(n) for n in s.outstanding_needed],
        )
        for s in reports.floor_overview(floor_id)
    ]


@app.post("/api/floors/{floor_id}/rooms", response_model=RoomsCreateResponse, status_code=201)
def create_rooms(
    floor_id: UUID, request: RoomsCreateRequest, service: StockService = Depends(get_service)
) -> RoomsCreateResponse:
    """Create rooms in bulk. Numbers that already exist are skipped."""
    created, skipped = service.create_rooms(floor_id, request.room_numbers)
    return RoomsCreateResponse(
        created=[RoomResponse.model_validate(r) for r in created],
        skipped=skipped,
    )


@app.get("/api/rooms/{room_id}", response_model=RoomDetailResponse)
def get_room(room_id: UUID, service: StockService = Depends(get_service)) -> RoomDetailResponse:
    detail = service.get_room(room_id)
    return RoomDetailResponse(
        room=RoomResponse.model_validate(detail.room),
        floor=FloorResponse.model_validate(detail.floor),
        assignments=[
            RoomAssignmentResponse(
                id=a.id,
                item_id=a.item_id,
                room_id=a.room_id,
                status=a.status,
                assigned_at=a.assigned_at,
                updated_at=a.updated_at,
                item_type=item.item_type,
                description=item.description,
            )
            for a, item in detail.assignments
        ],
        needed_items=[NeededItemResponse.model_validate(n) for n in detail.needed_items],
    )


@app.patch("/api/rooms/{room_id}", response_model=RoomResponse)
def rename_room(
    room_id: UUID, request: RoomUpdateRequest, service: StockService = Depends(get_service)
) -> RoomResponse:
    return RoomResponse.model_validate(service.rename_room(room_id, request.room_number))


@app.delete("/api/rooms/{room_id}", status_code=204)
def delete_room(room_id: UUID, service: StockService = Depends(get_service)) -> None:
    service.delete_room(room_id)


# Items and assignments


@app.get("/api/items", response_model=list[ItemResponse])
def list_items(service: StockService = Depends(get_service)) -> list[ItemResponse]:
    return [ItemResponse.model_validate(i) for i in service.list_items()]


@app.post("/api/items", response_model=ItemResponse, status_code=201)
def add_stock(
    request: StockCreateRequest, service: StockService = Depends(get_service)
) -> ItemResponse:
    item = service.add_stock(request.item_type, request.quantity, request.description)
    return ItemResponse.model_validate(item)


@app.patch("/api/items/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: UUID, request: ItemUpdateRequest, service: StockService = Depends(get_service)
) -> ItemResponse:
    item = service.update_item(
        item_id,
        item_type=request.item_type,
        description=request.description,
        quantity_total=request.quantity_total,
        add_quantity=request.add_quantity,
    )
    return ItemResponse.model_validate(item)


@app.delete("/api/items/{item_id}", status_code=204)
def delete_item(item_id: UUID, service: StockService = Depends(get_service)) -> None:
    """Delete an item. Rejected with 409 while any units are assigned."""
    service.delete_item(item_id)


@app.post("/api/items/{item_id}/assign", response_model=AssignmentResponse, status_code=201)
def assign_item(
    item_id: UUID, request: AssignRequest, service: StockService = Depends(get_service)
) -> AssignmentResponse:
    """Assign one unit to a room, creating the room on the floor if needed."""
    assignment = service.assign(item_id, request.floor_id, request.room_number)
    return AssignmentResponse.model_validate(assignment)


@app.patch("/api/assignments/{assignment_id}", response_model=AssignmentResponse)
def edit_assignment(
    assignment_id: UUID,
    request: AssignmentUpdateRequest,
    service: StockService = Depends(get_service),
) -> AssignmentResponse:
    assignment = service.edit_assignment(assignment_id, request.item_id)
    return AssignmentResponse.model_validate(assignment)


@app.delete("/api/assignments/{assignment_id}", status_code=204)
def unassign(assignment_id: UUID, service: StockService = Depends(get_service)) -> None:
    service.unassign(assignment_id)


@app.post("/api/assignments/{assignment_id}/status", response_model=AssignmentResponse)
def update_status(
    assignment_id: UUID,
    request: StatusUpdateRequest,
    service: StockService = Depends(get_service),
) -> AssignmentResponse:
    """Move an assignment to the next delivery status."""
    assignment = service.update_status(assignment_id, request.status)
    return AssignmentResponse.model_validate(assignment)


@app.post("/api/assignments/{assignment_id}/advance", response_model=AssignmentResponse)
def advance_status(
    assignment_id: UUID, service: StockService = Depends(get_service)
) -> AssignmentResponse:
    return AssignmentResponse.model_validate(service.advance_status(assignment_id))


@app.post("/api/assignments/{assignment_id}/transfer", response_model=TransferResponse)
def transfer_assignment(
    assignment_id: UUID,
    request: TransferRequest,
    service: StockService = Depends(get_service),
) -> TransferResponse:
    """Move an assignment to another room and record the transfer."""
    record = service.transfer(assignment_id, request.floor_id, request.room_number, request.reason)
    return TransferResponse.model_validate(record)


@app.get("/api/transfers", response_model=list[TransferRecordResponse])
def list_transfers(
    assignment_id: UUID | None = None,
    limit: int | None = Query(default=None, ge=1),
    service: StockService = Depends(get_service),
) -> list[TransferRecordResponse]:
    return [
        TransferRecordResponse(
            id=r.transfer.id,
            assignment_id=r.transfer.assignment_id,
            from_room_id=r.transfer.from_room_id,
            to_room_id=r.transfer.to_room_id,
            reason=r.transfer.reason,
            transferred_at=r.transfer.transferred_at,
            item_type=r.item_type,
            from_room=r.from_room,
            to_room=r.to_room,
        )
        for r in service.transfer_history(assignment_id=assignment_id, limit=limit)
    ]


# Needed items


@app.get("/api/needed-items", response_model=list[NeededItemResponse])
def list_needed_items(
    room_id: UUID | None = None,
    fulfilled: bool | None = None,
    checklist: ChecklistService = Depends(get_checklist_service),
) -> list[NeededItemResponse]:
    return [
        NeededItemResponse.model_validate(n)
        for n in checklist.list_needed_items(room_id=room_id, fulfilled=fulfilled)
    ]


@app.post("/api/needed-items", response_model=NeededItemResponse, status_code=201)
def add_needed_item(
    request: NeededItemCreateRequest,
    checklist: ChecklistService = Depends(get_checklist_service),
) -> NeededItemResponse:
    needed = checklist.add_needed_item(
        request.room_id,
        request.item_type,
        quantity=request.quantity,
        description=request.description,
        notes=request.notes,
    )
    return NeededItemResponse.model_validate(needed)


@app.post("/api/needed-items/{needed_item_id}/fulfilled", response_model=NeededItemResponse)
def set_fulfilled(
    needed_item_id: UUID,
    request: FulfilledRequest,
    checklist: ChecklistService = Depends(get_checklist_service),
) -> NeededItemResponse:
    """Mark a request fulfilled or not, booking stock in or out of the room."""
    needed = checklist.set_fulfilled(needed_item_id, request.fulfilled)
    return NeededItemResponse.model_validate(needed)


@app.post("/api/needed-items/{needed_item_id}/toggle", response_model=NeededItemResponse)
def toggle_fulfilled(
    needed_item_id: UUID, checklist: ChecklistService = Depends(get_checklist_service)
) -> NeededItemResponse:
    return NeededItemResponse.model_validate(checklist.toggle_fulfilled(needed_item_id))


@app.delete("/api/needed-items/{needed_item_id}", status_code=204)
def delete_needed_item(
    needed_item_id: UUID, checklist: ChecklistService = Depends(get_checklist_service)
) -> None:
    checklist.delete_needed_item(needed_item_id)


# Reports


@app.get("/api/reports/dashboard", response_model=DashboardResponse)
def dashboard(reports: ReportService = Depends(get_report_service)) -> DashboardResponse:
    summary = reports.dashboard()
    return DashboardResponse(
        total_units=summary.total_units,
        status_counts=summary.status_counts,
        floor_count=summary.floor_count,
        room_count=summary.room_count,
    )


@app.get("/api/reports/completion", response_model=CompletionReportResponse)
def completion_report(
    floor_id: UUID | None = None, reports: ReportService = Depends(get_report_service)
) -> CompletionReportResponse:
    """Per-room completion, judged by in-room quantities against requests."""
    rooms = [_completion_response(c) for c in reports.completion(floor_id)]
    complete = sum(1 for r in rooms if r.is_complete)
    return CompletionReportResponse(
        rooms=rooms,
        complete_count=complete,
        incomplete_count=len(rooms) - complete,
    )


@app.get("/api/reports/shortages", response_model=list[ShortageResponse])
def shortage_report(
    floor_id: UUID | None = None, reports: ReportService = Depends(get_report_service)
) -> list[ShortageResponse]:
    return [
        ShortageResponse(
            room_id=c.room_id,
            room_number=c.room_number,
            floor_display=c.floor_display,
            missing_items=[
                MissingItemResponse(item_type=m.item_type, quantity=m.quantity)
                for m in c.missing_items
            ],
        )
        for c in reports.shortages(floor_id)
    ]


@app.get("/api/reports/checklist", response_model=list[ChecklistRowResponse])
def checklist_report(
    floor_id: UUID | None = None, reports: ReportService = Depends(get_report_service)
) -> list[ChecklistRowResponse]:
    return [
        ChecklistRowResponse(
            room=RoomResponse.model_validate(row.room),
            floor_display=row.floor_display,
            needed_count=row.needed_count,
            fulfilled_count=row.fulfilled_count,
        )
        for row in reports.checklist(floor_id)
    ]


@app.get("/api/reports/items", response_model=list[ItemReportResponse])
def item_report(reports: ReportService = Depends(get_report_service)) -> list[ItemReportResponse]:
    return [
        ItemReportResponse(
            item=ItemResponse.model_validate(row.item),
            placements=[
                ItemPlacementResponse(
                    assignment=AssignmentResponse.model_validate(p.assignment),
                    location=p.location,
                )
                for p in row.placements
            ],
        )
        for row in reports.items()
    ]
