import logging
from apscheduler.schedulers.background import BackgroundScheduler

import config
from database import SessionLocal
from modules.audit.services.audit_service import AuditTrailRecorder
from modules.documents.services.cleanup import purge_expired_audit_logs, sweep_expired_tokens

logger = logging.getLogger(__name__)

def run_token_sweep():
    with SessionLocal() as session:
        try:
            sweep_expired_tokens(session)
        except Exception:
            session.rollback()
            logger.exception("Signing token sweep failed")

def run_audit_purge():
    try:
        purge_expired_audit_logs(AuditTrailRecorder(SessionLocal), config.AUDIT_RETENTION_DAYS)
    except Exception:
        logger.exception("Audit retention purge failed")

def start_maintenance_jobs() -> BackgroundScheduler:
    """Start the background sweeps; the caller shuts the scheduler down."""
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_token_sweep, 'interval', minutes=config.TOKEN_SWEEP_INTERVAL_MINUTES,
        id='token_sweep', replace_existing=True
    )
    scheduler.add_job(run_audit_purge, 'interval', days=1, id='audit_purge', replace_existing=True)
    scheduler.start()
    logger.info(
        "Maintenance jobs started: token sweep every %d min, audit purge daily",
        config.TOKEN_SWEEP_INTERVAL_MINUTES
    )
    return scheduler
