# Сервісний шар для сповіщень користувачів
import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from fastapi import HTTPException, status
from google.cloud.firestore_v1.base_query import FieldFilter

import core.firebase as firebase
from models.escrow import Escrow
from models.notification import NotificationOut

logger = logging.getLogger(__name__)

COLLECTION = "notifications"

_WORKSPACE_KEYS = ("workspace_id", "workspaceId")


def _unwrap_id(value) -> str | None:
    # Посилання на робочий простір буває рядком, числом, вкладеним документом
    # або DocumentReference з Firestore
    if isinstance(value, Mapping):
        value = value.get("id") or value.get("_id")
    elif not isinstance(value, (str, int)) and isinstance(getattr(value, "id", None), str):
        value = value.id

    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    value = str(value).strip()
    return value or None


def extract_workspace_id(notification: Mapping) -> str | None:
    """
    Дістає ID робочого простору зі сповіщення.

    Старі записи мають різну форму: ID може лежати на верхньому рівні
    або в `data`, у snake_case чи camelCase, і бути рядком, числом,
    словником з `id` / `_id` або посиланням на документ. Інші типи
    (списки, float, довільні обʼєкти) ігноруються.
    """
    for key in _WORKSPACE_KEYS:
        workspace_id = _unwrap_id(notification.get(key))
        if workspace_id:
            return workspace_id

    data = notification.get("data")
    if isinstance(data, Mapping):
        for key in _WORKSPACE_KEYS:
            workspace_id = _unwrap_id(data.get(key))
            if workspace_id:
                return workspace_id

    return None


def create_notification(user_uid: str, type: str, title: str, body: str, data: dict | None = None) -> str:
    db = firebase.ensure_initialized()
    _, doc_ref = db.collection(COLLECTION).add({
        "user_uid": user_uid,
        "type": type,
        "title": title,
        "body": body,
        "data": data or {},
        "read": False,
        "read_at": None,
        "created_at": datetime.now(timezone.utc),
    })
    return doc_ref.id


def _escrow_messages(escrow: Escrow, event: str) -> list[tuple[str, str, str]]:
    """(отримувач, заголовок, текст) для кожної події ескроу."""
    title = escrow.milestone_title or "Milestone"
    amount = f"{escrow.amount_to_freelancer:,.2f}"

    if event == "payment_received":
        return [(escrow.freelancer_uid, "Milestone funded",
                 f"The client has funded '{title}'. {amount} is held in escrow.")]
    if event == "deliverable_submitted":
        return [(escrow.client_uid, "Deliverable submitted",
                 f"A deliverable for '{title}' is waiting for your review.")]
    if event == "deliverable_rejected":
        return [(escrow.freelancer_uid, "Deliverable rejected",
                 f"The client requested changes to '{title}'.")]
    if event == "funds_released":
        return [(escrow.freelancer_uid, "Payment released",
                 f"{amount} for '{title}' has been released to you.")]
    if event == "dispute_raised":
        other = escrow.freelancer_uid if escrow.dispute_raised_by == escrow.client_uid else escrow.client_uid
        return [(other, "Dispute raised",
                 f"A dispute was raised on '{title}'. An admin will review it.")]
    if event == "dispute_resolved":
        body = f"The dispute on '{title}' was resolved: {escrow.dispute_resolution}."
        return [
            (escrow.client_uid, "Dispute resolved", body),
            (escrow.freelancer_uid, "Dispute resolved", body),
        ]
    return []


def notify_escrow_event(escrow: Escrow, event: str) -> None:
    """
    Надсилає сповіщення про подію ескроу.
    Помилки лише логуються: платіж на цей момент вже збережено.
    """
    data = {
        "workspace_id": escrow.workspace_id,
        "milestone_id": escrow.milestone_id,
        "project_id": escrow.project_id,
        "event": event,
    }
    for user_uid, title, body in _escrow_messages(escrow, event):
        try:
            create_notification(user_uid, "payment", title, body, data)
        except Exception as e:
            logger.warning("Failed to notify %s about %s on %s: %s", user_uid, event, escrow.milestone_id, e)


def _to_out(doc_id: str, data: dict) -> NotificationOut:
    return NotificationOut(
        id=doc_id,
        type=data.get("type", "system"),
        title=data.get("title", ""),
        body=data.get("body", ""),
        data=data.get("data") or {},
        workspace_id=extract_workspace_id(data),
        read=bool(data.get("read")),
        read_at=data.get("read_at"),
        created_at=data.get("created_at"),
    )


def _user_query(user_uid: str):
    db = firebase.ensure_initialized()
    return db.collection(COLLECTION).where(filter=FieldFilter("user_uid", "==", user_uid))


def list_notifications(user_uid: str, unread_only: bool = False) -> list[NotificationOut]:
    results = [_to_out(doc.id, doc.to_dict()) for doc in _user_query(user_uid).stream()]
    if unread_only:
        results = [n for n in results if not n.read]

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    results.sort(key=lambda n: n.created_at or epoch, reverse=True)
    return results


def unread_count(user_uid: str) -> int:
    return sum(1 for doc in _user_query(user_uid).stream() if not doc.to_dict().get("read"))


def mark_read(notification_id: str, user_uid: str) -> NotificationOut:
    db = firebase.ensure_initialized()
    doc_ref = db.collection(COLLECTION).document(notification_id)
    doc = doc_ref.get()
    if not doc.exists:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")

    data = doc.to_dict()
    if data.get("user_uid") != user_uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your notification")

    if not data.get("read"):
        update = {"read": True, "read_at": datetime.now(timezone.utc)}
        doc_ref.update(update)
        data.update(update)
    return _to_out(notification_id, data)


def mark_all_read(user_uid: str) -> int:
    db = firebase.ensure_initialized()
    now = datetime.now(timezone.utc)
    updated = 0
    for doc in _user_query(user_uid).stream():
        if doc.to_dict().get("read"):
            continue
        db.collection(COLLECTION).document(doc.id).update({"read": True, "read_at": now})
        updated += 1
    return updated
