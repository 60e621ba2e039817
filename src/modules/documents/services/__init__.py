from .cleanup import purge_expired_audit_logs, sweep_expired_tokens
from .document_service import DocumentService, SignerInvite
from .document_state_service import DocumentStateService
from .signature_service import SignatureService
from .token_service import SigningTokenService

__all__ = [
    'purge_expired_audit_logs', 'sweep_expired_tokens', 'DocumentService', 'SignerInvite',
    'DocumentStateService', 'SignatureService', 'SigningTokenService'
]
