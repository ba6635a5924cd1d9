import logging
from dataclasses import dataclass

from app.stockledger.db.models import ActivityLog, utcnow
from app.stockledger.repos.activity import ActivityLogRepository

logger = logging.getLogger(__name__)


@dataclass
class ActivityEventPayload:
    actor: str
    action: str
    entity_id: str | None
    description: str
    metadata: dict | None = None
    trace_id: str | None = None


class ActivityLogService:
    """Best-effort activity logging.

    Strategy: failures are logged and swallowed so a committed voucher is never undone by them.
    """

    def __init__(self, db):
        self.db = db
        self.repo = ActivityLogRepository(db)

    def record_event(self, payload: ActivityEventPayload) -> None:
        try:
            event = ActivityLog(
                actor=payload.actor,
                action=payload.action,
                entity_id=payload.entity_id,
                description=payload.description,
                event_metadata=dict(payload.metadata or {}),
                trace_id=payload.trace_id,
                created_at=utcnow(),
            )
            self.repo.create(event)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Failed to write activity event",
                extra={
                    "action": payload.action,
                    "trace_id": payload.trace_id,
                    "entity_id": payload.entity_id,
                },
            )
