# Pydantic моделі для сповіщень

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)
    workspace_id: Optional[str] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UnreadCount(BaseModel):
    unread: int
