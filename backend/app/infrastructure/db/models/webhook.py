"""
Webhook bookkeeping SQLModels

`webhook_logs` is for observability. `processed_webhook_events` is the
durable idempotency set keyed by gateway-prefixed event id.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.domain.webhooks import WebhookStatus
from app.infrastructure.db.models.base import DateTimeField, TimestampMixin, utcnow


class WebhookLog(TimestampMixin, table=True):
    """One row per webhook receipt."""

    __tablename__ = "webhook_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    gateway: str = Field(..., max_length=20, index=True)
    event_id: Optional[str] = Field(default=None, max_length=255)
    event_type: Optional[str] = Field(default=None, max_length=100)
    action: Optional[str] = Field(default=None, max_length=100)
    data_id: Optional[str] = Field(default=None, max_length=255)
    payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    status: str = Field(default=WebhookStatus.RECEIVED.value, max_length=20, index=True)
    error: Optional[str] = Field(default=None)
    processing_time_ms: Optional[int] = Field(default=None)


class ProcessedWebhookEvent(SQLModel, table=True):
    __tablename__ = "processed_webhook_events"

    event_id: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(..., max_length=100)
    processed_at: datetime = DateTimeField(default_factory=utcnow, nullable=False, index=True)
