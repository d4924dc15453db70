from typing import List

from fastapi import APIRouter, Depends, Path, Query, status

from ..deps import get_reconciler, require_admin
from ..domain.identity import UserIdentity
from ..schemas import ReconcileRead, ReconcileRequest, SeatCount, SlotAvailability, SlotCreate, SlotUpdate
from ..usecases.slots import CapacityReconciler, SlotAvailabilityView

router = APIRouter(tags=["slots"])


@router.get("/treks/{trek_slug}/slots", response_model=List[SlotAvailability])
async def list_slots(
    trek_slug: str,
    only_available: bool = Query(default=False),
    reconciler: CapacityReconciler = Depends(get_reconciler),
) -> list[SlotAvailability]:
    views = await reconciler.list_availability(trek_slug, only_available=only_available)
    return [SlotAvailability.from_view(view) for view in views]


@router.post("/treks/{trek_slug}/slots", response_model=SlotAvailability, status_code=status.HTTP_201_CREATED)
async def create_slot(
    trek_slug: str,
    payload: SlotCreate,
    reconciler: CapacityReconciler = Depends(get_reconciler),
    admin: UserIdentity = Depends(require_admin),
) -> SlotAvailability:
    slot = await reconciler.create_slot(
        trek_slug=trek_slug,
        date=payload.date,
        capacity=payload.capacity,
        status=payload.status,
    )
    return SlotAvailability.from_view(SlotAvailabilityView(slot=slot, reserved=0, available=slot.capacity))


@router.patch("/slots/{slot_id}", response_model=SlotAvailability)
async def update_slot(
    payload: SlotUpdate,
    slot_id: int = Path(..., ge=1),
    reconciler: CapacityReconciler = Depends(get_reconciler),
    admin: UserIdentity = Depends(require_admin),
) -> SlotAvailability:
    slot, result = await reconciler.update_slot(
        slot_id,
        capacity=payload.capacity,
        date=payload.date,
        status=payload.status,
    )
    view = SlotAvailabilityView(slot=slot, reserved=result.new_booked, available=result.available)
    return SlotAvailability.from_view(view)


@router.get("/slots/{slot_id}/availability", response_model=SeatCount)
async def get_availability(
    slot_id: int = Path(..., ge=1),
    reconciler: CapacityReconciler = Depends(get_reconciler),
) -> SeatCount:
    available = await reconciler.get_available_seats(slot_id)
    return SeatCount(slot_id=slot_id, available=available)


@router.post("/slots/{slot_id}/reconcile", response_model=ReconcileRead)
async def reconcile_slot(
    slot_id: int = Path(..., ge=1),
    reconciler: CapacityReconciler = Depends(get_reconciler),
    admin: UserIdentity = Depends(require_admin),
) -> ReconcileRead:
    result = await reconciler.reconcile(slot_id, initiator="admin")
    return ReconcileRead.from_result(result)


@router.post("/slots/reconcile", response_model=List[ReconcileRead])
async def reconcile_slots(
    payload: ReconcileRequest,
    reconciler: CapacityReconciler = Depends(get_reconciler),
    admin: UserIdentity = Depends(require_admin),
) -> list[ReconcileRead]:
    if payload.trek_slug:
        results = await reconciler.reconcile_trek(payload.trek_slug, initiator="admin")
    else:
        results = await reconciler.reconcile_all(initiator="admin")
    return [ReconcileRead.from_result(result) for result in results]
