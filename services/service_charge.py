# Сервісний збір платформи за етап (milestone)
"""
Сервісний збір додається ЗВЕРХУ суми етапу і сплачується клієнтом.
Фрилансер завжди отримує повну суму етапу.

Відсоток залежить від бюджету проєкту (верхня межа не включно):

    < 5 000            -> 8%
    5 000 - 20 000     -> 6%
    20 000 - 50 000    -> 5%
    50 000 - 100 000   -> 4%
    >= 100 000         -> 3%
"""

import math
from bisect import bisect_right
from decimal import Decimal
from typing import NamedTuple

from models.payment import ChargeBreakdown


class ServiceChargeError(ValueError):
    pass


class InvalidAmount(ServiceChargeError):
    pass


class InvalidBudget(ServiceChargeError):
    pass


class ServiceChargeTier(NamedTuple):
    upper_bound: float  # не включно
    percentage: int


def validate_tiers(tiers: tuple[ServiceChargeTier, ...]) -> None:
    if not tiers:
        raise ValueError("Tier table is empty")

    previous = 0
    for tier in tiers:
        if tier.upper_bound <= previous:
            raise ValueError(f"Tier bounds must be strictly increasing: {tier.upper_bound}")
        if tier.percentage < 0 or int(tier.percentage) != tier.percentage:
            raise ValueError(f"Tier percentage must be a whole non-negative number: {tier.percentage}")
        previous = tier.upper_bound

    if not math.isinf(tiers[-1].upper_bound):
        raise ValueError("Last tier must be open-ended")


SERVICE_CHARGE_TIERS: tuple[ServiceChargeTier, ...] = (
    ServiceChargeTier(5_000, 8),
    ServiceChargeTier(20_000, 6),
    ServiceChargeTier(50_000, 5),
    ServiceChargeTier(100_000, 4),
    ServiceChargeTier(math.inf, 3),
)

validate_tiers(SERVICE_CHARGE_TIERS)

_UPPER_BOUNDS = [tier.upper_bound for tier in SERVICE_CHARGE_TIERS]


def _as_money(value, error_cls: type[ServiceChargeError], name: str) -> float:
    # bool є підкласом int, але це не сума
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise error_cls(f"{name} must be a number, got {type(value).__name__}")

    try:
        number = float(value)
    except (OverflowError, ValueError):
        # int поза межами float або Decimal("sNaN")
        raise error_cls(f"{name} is not a representable amount, got {value!r}")
    if not math.isfinite(number):
        raise error_cls(f"{name} must be finite, got {value}")
    if number < 0:
        raise error_cls(f"{name} must not be negative, got {value}")
    return number


def get_service_charge_percentage(project_budget) -> int:
    budget = _as_money(project_budget, InvalidBudget, "Project budget")
    return SERVICE_CHARGE_TIERS[bisect_right(_UPPER_BOUNDS, budget)].percentage


def calculate_service_charge(milestone_amount, project_budget) -> ChargeBreakdown:
    """
    Розраховує сервісний збір для оплати етапу.

    Сума етапу перевіряється першою (InvalidAmount), потім бюджет
    (InvalidBudget). Функція чиста: без стану та I/O.
    """
    amount = _as_money(milestone_amount, InvalidAmount, "Milestone amount")
    budget = _as_money(project_budget, InvalidBudget, "Project budget")

    return _breakdown(amount, get_service_charge_percentage(budget), budget)


def calculate_flat_service_charge(milestone_amount, percentage) -> ChargeBreakdown:
    """Збір за фіксованим відсотком, коли бюджет проєкту невідомий."""
    amount = _as_money(milestone_amount, InvalidAmount, "Milestone amount")
    if isinstance(percentage, bool) or not isinstance(percentage, (int, float, Decimal)):
        raise ServiceChargeError(f"Percentage must be a number, got {type(percentage).__name__}")
    if not math.isfinite(float(percentage)) or percentage < 0:
        raise ServiceChargeError(f"Percentage must be a finite non-negative number, got {percentage}")

    if not isinstance(percentage, int):
        percentage = float(percentage)
    return _breakdown(amount, percentage, None)


def _breakdown(amount: float, percentage: int | float, budget: float | None) -> ChargeBreakdown:
    service_charge = amount * percentage / 100
    return ChargeBreakdown(
        project_budget=budget,
        milestone_amount=amount,
        percentage=percentage,
        service_charge=service_charge,
        total_amount=amount + service_charge,
        amount_to_freelancer=amount,
    )


def list_service_charge_tiers() -> list[dict]:
    tiers = []
    lower = 0
    for tier in SERVICE_CHARGE_TIERS:
        tiers.append({
            "min_budget": lower,
            "max_budget": None if math.isinf(tier.upper_bound) else tier.upper_bound,
            "percentage": tier.percentage,
        })
        lower = tier.upper_bound
    return tiers
