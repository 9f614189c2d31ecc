# Pydantic моделі для сервісного збору та історії платежів

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class ServiceChargeRequest(BaseModel):
    milestone_amount: float
    project_budget: float


class ChargeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_budget: Optional[float] = None  # None, якщо застосовано фіксований відсоток
    milestone_amount: float
    percentage: Union[int, float]  # ціле для тарифів бюджету
    service_charge: float
    total_amount: float  # сплачує клієнт
    amount_to_freelancer: float


class ServiceChargeTierOut(BaseModel):
    min_budget: float
    max_budget: Optional[float] = None
    percentage: int


class PaymentRecord(BaseModel):
    milestone_id: str
    milestone_title: Optional[str] = None
    amount: float
    service_charge: float
    total_amount: float
    invoice_id: Optional[str] = None
    released_at: Optional[datetime] = None


class PaymentHistory(BaseModel):
    payments: List[PaymentRecord]
    total_paid: float
    payment_count: int
