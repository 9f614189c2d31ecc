import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple

import httpx
from fastapi import HTTPException, status

from core.config import settings

logger = logging.getLogger(__name__)

# Статуси інвойсу Monobank, після яких оплата вже не відбудеться
FAILED_INVOICE_STATUSES = {"failure", "expired", "reversed"}
PAID_INVOICE_STATUS = "success"


class MonoInvoice(NamedTuple):
    invoice_id: str
    page_url: str


def to_minor_units(amount: float | int | Decimal) -> int:
    """Monobank приймає суму в мінімальних одиницях (копійки)."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(value * 100)


def _headers() -> dict:
    return {"X-Token": settings.MONOBANK_API_TOKEN}


async def create_invoice(amount: float, destination: str, reference: str) -> MonoInvoice:
    """
    Створює інвойс (рахунок) на оплату через Monobank Acquiring API.
    """
    payload = {
        "amount": to_minor_units(amount),
        "ccy": settings.PAYMENT_CURRENCY_CODE,
        "merchantPaymInfo": {
            "reference": reference,
            "destination": destination,
        },
    }
    if settings.MONOBANK_REDIRECT_URL:
        payload["redirectUrl"] = settings.MONOBANK_REDIRECT_URL

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(
                f"{settings.MONOBANK_API_URL}/api/merchant/invoice/create",
                json=payload,
                headers=_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Monobank invoice create failed: %s", e.response.text)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Monobank API error: {e.response.text}",
            )
        except httpx.HTTPError as e:
            logger.error("Monobank is unreachable: %s", e)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Monobank API is unavailable",
            )

    data = response.json()
    logger.info("Monobank invoice %s created for %s", data["invoiceId"], reference)
    return MonoInvoice(invoice_id=data["invoiceId"], page_url=data["pageUrl"])


async def get_invoice_status(invoice_id: str) -> str:
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(
                f"{settings.MONOBANK_API_URL}/api/merchant/invoice/status",
                params={"invoiceId": invoice_id},
                headers=_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Monobank invoice status failed: %s", e.response.text)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Monobank API error: {e.response.text}",
            )
        except httpx.HTTPError as e:
            logger.error("Monobank is unreachable: %s", e)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Monobank API is unavailable",
            )

    return response.json().get("status", "")
