from .audit_log import AuditLog, AuditAction, AuditStatus

__all__ = ['AuditLog', 'AuditAction', 'AuditStatus']
