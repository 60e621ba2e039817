from dataclasses import dataclass
from typing import Optional

from fastapi import Request


@dataclass(frozen=True)
class RequestOrigin:
    """Where a request came from, copied onto signatures and audit entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


UNKNOWN_ORIGIN = RequestOrigin()


def get_request_origin(request: Request) -> RequestOrigin:
    """FastAPI dependency: the caller's address and user agent."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestOrigin(ip_address=ip_address, user_agent=request.headers.get("user-agent"))
