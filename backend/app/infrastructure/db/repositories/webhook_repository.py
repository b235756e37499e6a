"""
Webhook Repository

Webhook receipt logging and the durable processed-event set.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.webhooks import WebhookStatus
from app.infrastructure.db.models.webhook import ProcessedWebhookEvent, WebhookLog
from app.infrastructure.db.repositories.base_repository import BaseRepository


class WebhookLogRepository(BaseRepository[WebhookLog, WebhookLog, WebhookLog]):
    """Repository for webhook_logs."""

    def __init__(self, session: AsyncSession):
        super().__init__(WebhookLog, session)

    async def record(
        self,
        gateway: str,
        event_id: Optional[str],
        event_type: Optional[str],
        payload: Optional[Dict[str, Any]],
        action: Optional[str] = None,
        data_id: Optional[str] = None,
    ) -> WebhookLog:
        return await self.add(
            WebhookLog(
                gateway=gateway,
                event_id=event_id,
                event_type=event_type,
                action=action,
                data_id=data_id,
                payload=payload,
                status=WebhookStatus.RECEIVED.value,
            )
        )

    async def finish(
        self,
        log: WebhookLog,
        status: WebhookStatus,
        processing_time_ms: int,
        error: Optional[str] = None,
    ) -> WebhookLog:
        return await self.apply(
            log,
            {
                "status": status.value,
                "processing_time_ms": processing_time_ms,
                "error": error,
            },
        )

    async def list_recent(
        self,
        gateway: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[WebhookLog]:
        stmt = select(WebhookLog)
        if gateway:
            stmt = stmt.where(WebhookLog.gateway == gateway)
        if status:
            stmt = stmt.where(WebhookLog.status == status)
        stmt = stmt.order_by(WebhookLog.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class ProcessedEventRepository:
    """Durable set of processed webhook event ids."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_processed(self, event_id: str) -> bool:
        stmt = select(ProcessedWebhookEvent.event_id).where(
            ProcessedWebhookEvent.event_id == event_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        stmt = (
            pg_insert(ProcessedWebhookEvent)
            .values(event_id=event_id, event_type=event_type)
            .on_conflict_do_nothing(index_elements=["event_id"])
        )
        await self._session.execute(stmt)
