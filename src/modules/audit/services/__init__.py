from .audit_service import AuditTrailRecorder

__all__ = ['AuditTrailRecorder']
