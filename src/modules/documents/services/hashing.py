"""
SHA-256 helpers shared by upload, completion and integrity verification.
"""

import hashlib
import json


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: str, chunk_size: int = 4096) -> str:
    """Hash a file in chunks so large PDFs are never loaded whole."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(chunk_size), b""):
            digest.update(block)
    return digest.hexdigest()


def sha256_json(data: dict) -> str:
    """Stable hash of a dict: sorted keys, compact separators."""
    serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(serialized.encode()).hexdigest()


def _coordinate(value):
    # Float columns come back as floats; hash 100 and 100.0 alike
    return None if value is None else float(value)


def compute_signature_event_hash(signature) -> str:
    """
    Tamper-evident hash over the immutable fields of a Signature.

    Recomputing it later and comparing with the stored ``event_hash`` detects
    edits made to the record after it was written.
    """
    return sha256_json({
        "document_id": signature.document_id,
        "signer_email": signature.signer_email,
        "signer_name": signature.signer_name,
        "payload_sha256": sha256_hex(signature.payload or b""),
        "method": signature.method.value if signature.method else None,
        "page_number": signature.page_number,
        "x": _coordinate(signature.x),
        "y": _coordinate(signature.y),
        "width": _coordinate(signature.width),
        "height": _coordinate(signature.height),
        "signed_at": signature.signed_at.isoformat() if signature.signed_at else None,
    })
