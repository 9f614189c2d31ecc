# API роутер для сервісного збору та ескроу-платежів

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from api.deps import get_current_user, require_admin
from models.escrow import (
    DeliverableReview,
    DisputeRequest,
    DisputeResolution,
    Escrow,
    EscrowCreateRequest,
    EscrowPaymentOrder,
    ReleaseRequest,
    ReleaseResult,
)
from models.payment import ChargeBreakdown, PaymentHistory, ServiceChargeRequest, ServiceChargeTierOut
from services import escrow_service
from services.service_charge import ServiceChargeError, calculate_service_charge, list_service_charge_tiers

router = APIRouter()


@router.post("/service-charge", response_model=ChargeBreakdown)
def calculate_service_charge_endpoint(
    request: ServiceChargeRequest,
    current_user: dict = Depends(get_current_user)
):
    """
    Розрахунок сервісного збору: скільки сплатить клієнт і скільки отримає фрилансер.
    """
    try:
        return calculate_service_charge(request.milestone_amount, request.project_budget)
    except ServiceChargeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/service-charge/tiers", response_model=List[ServiceChargeTierOut])
def get_service_charge_tiers():
    return list_service_charge_tiers()


@router.post("/escrow", response_model=EscrowPaymentOrder, status_code=status.HTTP_201_CREATED)
async def create_escrow_endpoint(
    request: EscrowCreateRequest,
    current_user: dict = Depends(get_current_user)
):
    return await escrow_service.create_escrow(request.milestone_id, current_user.get("uid"))


@router.post("/escrow/{milestone_id}/confirm", response_model=Escrow)
async def confirm_payment_endpoint(
    milestone_id: str,
    current_user: dict = Depends(get_current_user)
):
    return await escrow_service.confirm_payment(milestone_id, current_user.get("uid"))


@router.post("/escrow/{milestone_id}/deliverable", response_model=Escrow)
def submit_deliverable_endpoint(
    milestone_id: str,
    current_user: dict = Depends(get_current_user)
):
    return escrow_service.submit_deliverable(milestone_id, current_user.get("uid"))


@router.post("/escrow/{milestone_id}/review", response_model=Escrow)
def review_deliverable_endpoint(
    milestone_id: str,
    review: DeliverableReview,
    current_user: dict = Depends(get_current_user)
):
    return escrow_service.review_deliverable(
        milestone_id, current_user.get("uid"), review.approved, review.feedback
    )


@router.post("/escrow/{milestone_id}/release", response_model=ReleaseResult)
def release_escrow_endpoint(
    milestone_id: str,
    request: ReleaseRequest,
    current_user: dict = Depends(get_current_user)
):
    """
    Клієнт виплачує після здачі результату; адмін може виплатити без перевірок.
    """
    if escrow_service.is_admin(current_user):
        return escrow_service.release_funds(
            milestone_id,
            released_by=current_user.get("uid"),
            reason=request.reason,
            admin_override=True,
        )
    return escrow_service.release_by_client(milestone_id, current_user.get("uid"), request.reason)


@router.post("/escrow/{milestone_id}/dispute", response_model=Escrow)
def raise_dispute_endpoint(
    milestone_id: str,
    request: DisputeRequest,
    current_user: dict = Depends(get_current_user)
):
    return escrow_service.raise_dispute(milestone_id, current_user.get("uid"), request.reason)


@router.post("/escrow/{milestone_id}/resolve", response_model=Escrow)
def resolve_dispute_endpoint(
    milestone_id: str,
    request: DisputeResolution,
    admin: dict = Depends(require_admin)
):
    return escrow_service.resolve_dispute(
        milestone_id,
        admin.get("uid"),
        request.resolution,
        release_to_freelancer=request.release_to_freelancer,
        refund_to_client=request.refund_to_client,
        notes=request.notes,
    )


@router.get("/escrow/{milestone_id}", response_model=Escrow)
def get_escrow_endpoint(
    milestone_id: str,
    current_user: dict = Depends(get_current_user)
):
    return escrow_service.get_escrow(milestone_id, current_user)


@router.get("/workspace/{workspace_id}/escrows", response_model=List[Escrow])
def get_escrow_history_endpoint(
    workspace_id: str,
    current_user: dict = Depends(get_current_user)
):
    return escrow_service.get_escrow_history(workspace_id, current_user)


@router.get("/workspace/{workspace_id}/history", response_model=PaymentHistory)
def get_payment_history_endpoint(
    workspace_id: str,
    current_user: dict = Depends(get_current_user)
):
    return escrow_service.get_payment_history(workspace_id, current_user)
