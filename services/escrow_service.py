# Сервісний шар для ескроу-платежів за етапи
"""
Один ескроу на етап (документ `escrows/{milestone_id}`).

    pending --оплата--> active --виплата--> released
       |                  |
       v                  +--спір--> disputed --рішення--> released | refunded
    cancelled

Клієнт сплачує суму етапу разом із сервісним збором, фрилансер отримує
суму етапу. Кожен перехід дублюється у документ етапу (`milestones`).
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from google.cloud.firestore_v1.base_query import FieldFilter

import core.firebase as firebase
from core.config import settings
from models.escrow import (
    ApprovalStatus,
    Escrow,
    EscrowPaymentOrder,
    EscrowStatus,
    ReleaseResult,
)
from models.payment import PaymentHistory, PaymentRecord
from services import monobank, notification_service
from services.service_charge import (
    ServiceChargeError,
    calculate_flat_service_charge,
    calculate_service_charge,
)

logger = logging.getLogger(__name__)

COLLECTION = "escrows"

# Ескроу в цих статусах не можна створити заново
LOCKED_STATUSES = {EscrowStatus.ACTIVE.value, EscrowStatus.RELEASED.value, EscrowStatus.DISPUTED.value}

# Хто виплатив при автоматичній виплаті
SYSTEM_RELEASER = "system"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_admin(current_user: dict) -> bool:
    return bool(current_user.get("admin") or current_user.get("is_admin"))


def _load_escrow(milestone_id: str) -> Escrow | None:
    db = firebase.ensure_initialized()
    doc = db.collection(COLLECTION).document(milestone_id).get()
    if not doc.exists:
        return None
    return Escrow(**doc.to_dict())


def _get_escrow_or_404(milestone_id: str) -> Escrow:
    escrow = _load_escrow(milestone_id)
    if escrow is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No escrow found for this milestone",
        )
    return escrow


def _save(escrow: Escrow) -> None:
    db = firebase.ensure_initialized()
    db.collection(COLLECTION).document(escrow.milestone_id).set(escrow.model_dump())


def _sync_milestone(milestone_id: str, **fields) -> None:
    db = firebase.ensure_initialized()
    doc_ref = db.collection("milestones").document(milestone_id)
    if not doc_ref.get().exists:
        logger.warning("Milestone %s disappeared, escrow state not mirrored", milestone_id)
        return
    doc_ref.update(fields)


def _require_status(escrow: Escrow, expected: EscrowStatus, action: str) -> None:
    if escrow.status != expected:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot {action}: escrow status is '{escrow.status}', expected '{expected.value}'",
        )


async def _reuse_open_invoice(escrow: Escrow) -> EscrowPaymentOrder | None:
    """
    Повертає ще відкритий інвойс попереднього запиту на оплату.

    None означає, що попередній інвойс не відбувся і потрібен новий.
    Оплачений інвойс дає 409: його треба підтвердити, а не створювати інший.
    """
    invoice_status = await monobank.get_invoice_status(escrow.invoice_id)

    if invoice_status == monobank.PAID_INVOICE_STATUS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Previous invoice is already paid, confirm the payment instead",
        )
    if invoice_status in monobank.FAILED_INVOICE_STATUSES or not escrow.payment_page_url:
        logger.info("Invoice %s for milestone %s is %s, issuing a new one", escrow.invoice_id, escrow.milestone_id, invoice_status)
        return None

    logger.info("Reusing open invoice %s for milestone %s", escrow.invoice_id, escrow.milestone_id)
    return EscrowPaymentOrder(escrow=escrow, payment_page_url=escrow.payment_page_url)


async def create_escrow(milestone_id: str, client_uid: str) -> EscrowPaymentOrder:
    """
    Створює ескроу для етапу та інвойс Monobank на повну суму
    (етап + сервісний збір).
    """
    db = firebase.ensure_initialized()
    milestone_doc = db.collection("milestones").document(milestone_id).get()
    if not milestone_doc.exists:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Milestone not found")

    milestone = milestone_doc.to_dict()
    if milestone.get("client_uid") != client_uid:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the client can fund this milestone",
        )

    existing = _load_escrow(milestone_id)
    if existing is not None and existing.status in LOCKED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Escrow already exists for this milestone",
        )
    if existing is not None and existing.status == EscrowStatus.PENDING and existing.invoice_id:
        order = await _reuse_open_invoice(existing)
        if order is not None:
            return order

    project_id = milestone.get("project_id")
    project_budget = None
    if project_id:
        project_doc = db.collection("projects").document(project_id).get()
        if project_doc.exists:
            project_budget = project_doc.to_dict().get("budget")

    try:
        if project_budget is None:
            breakdown = calculate_flat_service_charge(
                milestone.get("amount"), settings.DEFAULT_SERVICE_CHARGE_PERCENT
            )
        else:
            breakdown = calculate_service_charge(milestone.get("amount"), project_budget)
    except ServiceChargeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    title = milestone.get("title") or "Milestone"
    invoice = await monobank.create_invoice(
        breakdown.total_amount,
        destination=f"Escrow payment for '{title}'",
        reference=milestone_id,
    )

    escrow = Escrow(
        milestone_id=milestone_id,
        workspace_id=milestone.get("workspace_id", ""),
        project_id=project_id,
        milestone_title=milestone.get("title"),
        client_uid=client_uid,
        freelancer_uid=milestone.get("freelancer_uid", ""),
        milestone_amount=breakdown.milestone_amount,
        service_charge=breakdown.service_charge,
        service_charge_percentage=breakdown.percentage,
        total_amount=breakdown.total_amount,
        amount_to_freelancer=breakdown.amount_to_freelancer,
        project_budget=breakdown.project_budget,
        status=EscrowStatus.PENDING,
        invoice_id=invoice.invoice_id,
        payment_page_url=invoice.page_url,
        created_at=_now(),
        auto_release_after_days=settings.ESCROW_AUTO_RELEASE_DAYS,
    )
    _save(escrow)
    _sync_milestone(milestone_id, escrow_status=escrow.status, payment_status="pending")

    logger.info(
        "Escrow created for milestone %s: %.2f + %.2f (%s%%)",
        milestone_id, escrow.milestone_amount, escrow.service_charge, escrow.service_charge_percentage,
    )
    return EscrowPaymentOrder(escrow=escrow, payment_page_url=invoice.page_url)


async def confirm_payment(milestone_id: str, client_uid: str) -> Escrow:
    """
    Перевіряє статус інвойсу та активує ескроу після успішної оплати.
    """
    escrow = _get_escrow_or_404(milestone_id)
    if escrow.client_uid != client_uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the client can confirm payment")

    if escrow.status == EscrowStatus.ACTIVE:
        return escrow
    _require_status(escrow, EscrowStatus.PENDING, "confirm payment")

    invoice_status = await monobank.get_invoice_status(escrow.invoice_id)

    if invoice_status == monobank.PAID_INVOICE_STATUS:
        escrow.status = EscrowStatus.ACTIVE
        escrow.activated_at = _now()
        _save(escrow)
        _sync_milestone(milestone_id, escrow_status=escrow.status, payment_status="completed")
        notification_service.notify_escrow_event(escrow, "payment_received")
        logger.info("Escrow for milestone %s is active", milestone_id)
        return escrow

    if invoice_status in monobank.FAILED_INVOICE_STATUSES:
        escrow.status = EscrowStatus.CANCELLED
        escrow.payment_failure_reason = f"Invoice {invoice_status}"
        _save(escrow)
        _sync_milestone(milestone_id, escrow_status=escrow.status, payment_status="failed")
        logger.warning("Payment for milestone %s failed: %s", milestone_id, invoice_status)
        return escrow

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Payment not completed yet (invoice status: '{invoice_status}')",
    )


def submit_deliverable(milestone_id: str, freelancer_uid: str) -> Escrow:
    escrow = _get_escrow_or_404(milestone_id)
    _require_status(escrow, EscrowStatus.ACTIVE, "submit deliverable")
    if escrow.freelancer_uid != freelancer_uid:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the assigned freelancer can submit deliverables",
        )

    escrow.deliverable_submitted = True
    escrow.deliverable_submitted_at = _now()
    # Повторна здача після відхилення знову чекає на рішення клієнта
    escrow.client_approval_status = ApprovalStatus.PENDING
    escrow.client_feedback = None
    _save(escrow)
    _sync_milestone(milestone_id, status="review")
    notification_service.notify_escrow_event(escrow, "deliverable_submitted")
    return escrow


def review_deliverable(milestone_id: str, client_uid: str, approved: bool, feedback: str | None = None) -> Escrow:
    """
    Рішення клієнта щодо результату. Схвалення одразу виплачує кошти.
    """
    escrow = _get_escrow_or_404(milestone_id)
    _require_status(escrow, EscrowStatus.ACTIVE, "review deliverable")
    if escrow.client_uid != client_uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the client can review deliverables")
    if not escrow.deliverable_submitted or escrow.client_approval_status != ApprovalStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No deliverable is awaiting review")

    escrow.client_approval_status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
    escrow.client_reviewed_at = _now()
    escrow.client_feedback = feedback
    _save(escrow)

    if not approved:
        _sync_milestone(milestone_id, status="rejected")
        notification_service.notify_escrow_event(escrow, "deliverable_rejected")
        return escrow

    _sync_milestone(milestone_id, status="approved")
    return release_funds(milestone_id, released_by=client_uid, reason="Deliverable approved by client").escrow


def release_funds(
    milestone_id: str,
    released_by: str = SYSTEM_RELEASER,
    reason: str = "",
    admin_override: bool = False,
) -> ReleaseResult:
    """
    Виплачує кошти фрилансеру.

    Автоматична виплата записується як released_by="system". Без admin_override
    результат має бути зданий і не відхилений клієнтом.
    """
    escrow = _get_escrow_or_404(milestone_id)

    if escrow.status == EscrowStatus.RELEASED:
        logger.info("Escrow for milestone %s already released at %s", milestone_id, escrow.released_at)
        return ReleaseResult(
            escrow=escrow,
            amount_released=escrow.amount_to_freelancer,
            already_released=True,
            message="Funds have already been released to the freelancer",
        )

    _require_status(escrow, EscrowStatus.ACTIVE, "release funds")

    if not admin_override:
        if not escrow.deliverable_submitted or escrow.client_approval_status == ApprovalStatus.REJECTED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot release funds: deliverable not submitted or rejected by client",
            )
    else:
        logger.info(
            "Admin release for milestone %s (deliverable_submitted=%s, approval=%s)",
            milestone_id, escrow.deliverable_submitted, escrow.client_approval_status,
        )

    escrow.status = EscrowStatus.RELEASED
    escrow.released_at = _now()
    escrow.released_by = released_by
    escrow.release_reason = reason
    _save(escrow)
    _sync_milestone(milestone_id, escrow_status=escrow.status, status="paid", paid_at=escrow.released_at)
    notification_service.notify_escrow_event(escrow, "funds_released")

    logger.info("Released %.2f to freelancer %s", escrow.amount_to_freelancer, escrow.freelancer_uid)
    return ReleaseResult(
        escrow=escrow,
        amount_released=escrow.amount_to_freelancer,
        message="Funds released to freelancer successfully",
    )


def release_by_client(milestone_id: str, client_uid: str, reason: str = "") -> ReleaseResult:
    escrow = _get_escrow_or_404(milestone_id)
    if escrow.client_uid != client_uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the client can release funds")
    return release_funds(milestone_id, released_by=client_uid, reason=reason)


def raise_dispute(milestone_id: str, uid: str, reason: str) -> Escrow:
    escrow = _get_escrow_or_404(milestone_id)
    _require_status(escrow, EscrowStatus.ACTIVE, "raise dispute")
    if uid not in (escrow.client_uid, escrow.freelancer_uid):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the client or freelancer can raise disputes",
        )

    escrow.status = EscrowStatus.DISPUTED
    escrow.dispute_reason = reason
    escrow.dispute_raised_by = uid
    escrow.dispute_raised_at = _now()
    _save(escrow)
    _sync_milestone(milestone_id, escrow_status=escrow.status, status="disputed")
    notification_service.notify_escrow_event(escrow, "dispute_raised")
    logger.warning("Dispute raised on milestone %s by %s", milestone_id, uid)
    return escrow


def resolve_dispute(
    milestone_id: str,
    admin_uid: str,
    resolution: str,
    release_to_freelancer: bool = False,
    refund_to_client: bool = False,
    notes: str | None = None,
) -> Escrow:
    if release_to_freelancer == refund_to_client:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Choose exactly one of release_to_freelancer or refund_to_client",
        )

    escrow = _get_escrow_or_404(milestone_id)
    _require_status(escrow, EscrowStatus.DISPUTED, "resolve dispute")

    now = _now()
    escrow.dispute_resolution = resolution
    escrow.dispute_resolved_by = admin_uid
    escrow.dispute_resolved_at = now
    escrow.dispute_notes = notes

    if release_to_freelancer:
        escrow.status = EscrowStatus.RELEASED
        escrow.released_at = now
        escrow.released_by = admin_uid
        escrow.release_reason = f"Dispute resolved: {resolution}"
        milestone_status = "paid"
    else:
        escrow.status = EscrowStatus.REFUNDED
        escrow.refunded_at = now
        escrow.refund_amount = escrow.total_amount
        milestone_status = "refunded"

    _save(escrow)
    _sync_milestone(milestone_id, escrow_status=escrow.status, status=milestone_status)
    notification_service.notify_escrow_event(escrow, "dispute_resolved")
    logger.info("Dispute on milestone %s resolved by %s: %s", milestone_id, admin_uid, escrow.status)
    return escrow


def get_escrow(milestone_id: str, current_user: dict) -> Escrow:
    escrow = _get_escrow_or_404(milestone_id)
    uid = current_user.get("uid")
    if not is_admin(current_user) and uid not in (escrow.client_uid, escrow.freelancer_uid):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this escrow")
    return escrow


def get_escrow_history(workspace_id: str, current_user: dict) -> list[Escrow]:
    db = firebase.ensure_initialized()
    docs = (
        db.collection(COLLECTION)
        .where(filter=FieldFilter("workspace_id", "==", workspace_id))
        .stream()
    )
    uid = current_user.get("uid")
    admin = is_admin(current_user)

    escrows = []
    for doc in docs:
        escrow = Escrow(**doc.to_dict())
        if admin or uid in (escrow.client_uid, escrow.freelancer_uid):
            escrows.append(escrow)

    escrows.sort(key=lambda e: e.created_at, reverse=True)
    return escrows


def get_payment_history(workspace_id: str, current_user: dict) -> PaymentHistory:
    released = [
        e for e in get_escrow_history(workspace_id, current_user)
        if e.status == EscrowStatus.RELEASED
    ]
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    released.sort(key=lambda e: e.released_at or epoch, reverse=True)

    payments = [
        PaymentRecord(
            milestone_id=e.milestone_id,
            milestone_title=e.milestone_title,
            amount=e.amount_to_freelancer,
            service_charge=e.service_charge,
            total_amount=e.total_amount,
            invoice_id=e.invoice_id,
            released_at=e.released_at,
        )
        for e in released
    ]
    return PaymentHistory(
        payments=payments,
        total_paid=sum(p.amount for p in payments),
        payment_count=len(payments),
    )


def is_auto_release_due(escrow: Escrow, now: datetime | None = None) -> bool:
    if escrow.status != EscrowStatus.ACTIVE or not escrow.deliverable_submitted:
        return False
    if escrow.client_approval_status == ApprovalStatus.APPROVED:
        return True
    if escrow.client_approval_status == ApprovalStatus.REJECTED:
        return False

    reference = escrow.deliverable_submitted_at or escrow.activated_at
    if reference is None:
        return False
    now = now or _now()
    return now >= reference + timedelta(days=escrow.auto_release_after_days)


def process_auto_releases(now: datetime | None = None) -> int:
    """
    Автоматична виплата: схвалені результати та ті, на які клієнт
    не відповів протягом auto_release_after_days.
    """
    db = firebase.ensure_initialized()
    docs = (
        db.collection(COLLECTION)
        .where(filter=FieldFilter("status", "==", EscrowStatus.ACTIVE.value))
        .stream()
    )

    released = 0
    for doc in docs:
        escrow = Escrow(**doc.to_dict())
        if not is_auto_release_due(escrow, now):
            continue

        if escrow.client_approval_status == ApprovalStatus.APPROVED:
            reason = "Auto-release: deliverable approved by client"
        else:
            reason = "Auto-release after review period"

        try:
            release_funds(escrow.milestone_id, released_by=SYSTEM_RELEASER, reason=reason)
            released += 1
        except Exception as e:
            # Одна невдала виплата не зупиняє решту
            logger.error("Failed to auto-release escrow %s: %s", escrow.milestone_id, e)

    logger.info("Auto-released %d escrows", released)
    return released
