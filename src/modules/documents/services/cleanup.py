import logging
from datetime import datetime
from sqlalchemy.orm import Session
from modules.audit.services.audit_service import AuditTrailRecorder
from modules.documents.services.token_service import SigningTokenService
from modules.documents.services.token_store import SqlTokenStore

logger = logging.getLogger(__name__)

def sweep_expired_tokens(session: Session, now: datetime = None) -> int:
    """Delete signing tokens past their expiry, used or not."""
    removed = SigningTokenService(SqlTokenStore(session)).sweep_expired(now)
    session.commit()
    if removed:
        logger.info("Swept %d expired signing token(s)", removed)
    return removed

def purge_expired_audit_logs(recorder: AuditTrailRecorder, retention_days: int) -> int:
    removed = recorder.purge_expired(retention_days)
    if removed:
        logger.info("Purged %d audit entries older than %d days", removed, retention_days)
    return removed
