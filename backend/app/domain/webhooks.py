"""
Webhook Domain Models

Envelope parsing and processing outcomes for gateway notifications.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Gateway(str, Enum):
    MERCADOPAGO = "mercadopago"
    STRIPE = "stripe"


class WebhookStatus(str, Enum):
    """Processing status recorded in webhook_logs."""
    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


class MercadoPagoEventType(str, Enum):
    PAYMENT = "payment"
    SUBSCRIPTION_PREAPPROVAL = "subscription_preapproval"
    SUBSCRIPTION_AUTHORIZED_PAYMENT = "subscription_authorized_payment"
    PLAN = "plan"
    INVOICE = "invoice"
    MERCHANT_ORDER = "topic_merchant_order_wh"


class WebhookData(BaseModel):
    id: Optional[str] = None


class MercadoPagoNotification(BaseModel):
    """
    Mercado Pago notification envelope.

    Ids arrive as numbers or strings depending on the topic; both are
    normalized to strings.
    """
    id: Optional[str] = None
    type: Optional[str] = None
    action: Optional[str] = None
    live_mode: Optional[bool] = None
    data: WebhookData = Field(default_factory=WebhookData)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "MercadoPagoNotification":
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        return cls(
            id=_as_str(payload.get("id")),
            type=payload.get("type") or payload.get("topic"),
            action=payload.get("action"),
            live_mode=payload.get("live_mode"),
            data=WebhookData(id=_as_str(data.get("id"))),
        )

    def is_valid(self) -> bool:
        """Merchant-order notifications only carry an id; others need type and data.id."""
        if self.type == MercadoPagoEventType.MERCHANT_ORDER.value:
            return bool(self.id)
        return bool(self.type) and bool(self.data.id)

    @property
    def idempotency_key(self) -> str:
        if self.id:
            return f"{Gateway.MERCADOPAGO.value}:{self.id}"
        return f"{Gateway.MERCADOPAGO.value}:{self.type}:{self.data.id}:{self.action}"


class ProcessingResult(BaseModel):
    """What a webhook handler did with an event."""
    status: WebhookStatus
    message: str = ""
    record_id: Optional[str] = None

    @classmethod
    def processed(cls, message: str = "", record_id: Optional[str] = None) -> "ProcessingResult":
        return cls(status=WebhookStatus.PROCESSED, message=message, record_id=record_id)

    @classmethod
    def ignored(cls, message: str) -> "ProcessingResult":
        return cls(status=WebhookStatus.IGNORED, message=message)


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
