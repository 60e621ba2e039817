from .user import User, UserRole
from .document import Document, DocumentStatus, Signer
from .signature import Signature, SignatureMethod
from .signing_token import SigningToken

__all__ = [
    'User', 'UserRole', 'Document', 'DocumentStatus', 'Signer',
    'Signature', 'SignatureMethod', 'SigningToken',
]
