"""
Append-only audit trail.

Every lifecycle transition and signature submission writes one entry here.
Writes go through a dedicated session so a failing audit insert can never
roll back, or be rolled back by, the caller's unit of work.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from database import SessionLocal
from modules.audit.context import RequestOrigin, UNKNOWN_ORIGIN
from modules.audit.models.audit_log import AuditAction, AuditLog, AuditStatus

logger = logging.getLogger(__name__)


class AuditTrailRecorder:

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def record(
        self,
        action: AuditAction,
        *,
        document_id: Optional[int] = None,
        user_id: Optional[int] = None,
        details: Optional[dict] = None,
        origin: RequestOrigin = UNKNOWN_ORIGIN,
        status: AuditStatus = AuditStatus.SUCCESS,
        error_message: Optional[str] = None,
    ) -> None:
        """Persist one entry. Never raises."""
        entry = AuditLog(
            user_id=user_id,
            document_id=document_id,
            action=action,
            details=details or {},
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
            timestamp=datetime.utcnow(),
            status=status,
            error_message=error_message[:1024] if error_message else None,
        )
        try:
            with self.session_factory() as session:
                session.add(entry)
                session.commit()
        except Exception:
            logger.exception(
                "Failed to record audit entry %s for document %s", action.value, document_id
            )

    def record_failure(self, action: AuditAction, error: Exception, **kwargs) -> None:
        message = getattr(error, "message", None) or str(error)
        self.record(action, status=AuditStatus.FAILURE, error_message=message, **kwargs)

    def list_for_document(self, document_id: int) -> List[AuditLog]:
        with self.session_factory() as session:
            entries = (
                session.query(AuditLog)
                .filter(AuditLog.document_id == document_id)
                .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
                .all()
            )
            session.expunge_all()
            return entries

    def purge_older_than(self, cutoff: datetime) -> int:
        with self.session_factory() as session:
            deleted = (
                session.query(AuditLog)
                .filter(AuditLog.timestamp < cutoff)
                .delete(synchronize_session=False)
            )
            session.commit()
        return deleted

    def purge_expired(self, retention_days: int) -> int:
        return self.purge_older_than(datetime.utcnow() - timedelta(days=retention_days))


def get_audit_recorder() -> AuditTrailRecorder:
    """FastAPI dependency; overridden in tests."""
    return AuditTrailRecorder()
