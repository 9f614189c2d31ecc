# Pydantic моделі для ескроу етапів

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class EscrowStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RELEASED = "released"
    DISPUTED = "disputed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Escrow(BaseModel):
    # У Firestore зберігаємо рядки, а не Enum
    model_config = ConfigDict(use_enum_values=True, validate_default=True, validate_assignment=True)

    milestone_id: str
    workspace_id: str
    project_id: Optional[str] = None
    milestone_title: Optional[str] = None
    client_uid: str
    freelancer_uid: str

    # Фінанси
    milestone_amount: float
    service_charge: float
    service_charge_percentage: Union[int, float]
    total_amount: float
    amount_to_freelancer: float
    project_budget: Optional[float] = None

    status: EscrowStatus = EscrowStatus.PENDING
    invoice_id: Optional[str] = None
    payment_page_url: Optional[str] = None
    payment_failure_reason: Optional[str] = None
    created_at: datetime
    activated_at: Optional[datetime] = None

    # Результат роботи
    deliverable_submitted: bool = False
    deliverable_submitted_at: Optional[datetime] = None
    client_approval_status: ApprovalStatus = ApprovalStatus.PENDING
    client_reviewed_at: Optional[datetime] = None
    client_feedback: Optional[str] = None

    # Виплата
    released_at: Optional[datetime] = None
    released_by: Optional[str] = None
    release_reason: Optional[str] = None

    # Спір
    dispute_reason: Optional[str] = None
    dispute_raised_by: Optional[str] = None
    dispute_raised_at: Optional[datetime] = None
    dispute_resolution: Optional[str] = None
    dispute_resolved_by: Optional[str] = None
    dispute_resolved_at: Optional[datetime] = None
    dispute_notes: Optional[str] = None

    # Повернення коштів
    refunded_at: Optional[datetime] = None
    refund_amount: Optional[float] = None

    auto_release_after_days: int = 7


class EscrowCreateRequest(BaseModel):
    milestone_id: str


class EscrowPaymentOrder(BaseModel):
    escrow: Escrow
    payment_page_url: str


class DeliverableReview(BaseModel):
    approved: bool
    feedback: Optional[str] = None


class ReleaseRequest(BaseModel):
    reason: str = ""


class ReleaseResult(BaseModel):
    escrow: Escrow
    amount_released: float
    already_released: bool = False
    message: str


class DisputeRequest(BaseModel):
    reason: str = Field(min_length=1)


class DisputeResolution(BaseModel):
    resolution: str
    release_to_freelancer: bool = False
    refund_to_client: bool = False
    notes: Optional[str] = None
