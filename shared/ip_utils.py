"""
Client IP and device metadata resolution for FastAPI requests.

Takes an explicit ``Request`` so the functions are testable without a running
app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from schemas.models.activation_key import DeviceInfo

_IP_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Client-IP",
)


def get_client_ip(request: Request) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    Proxy headers are checked in order (``CF-Connecting-IP``,
    ``True-Client-IP``, ``X-Forwarded-For`` first hop, ``X-Real-IP``,
    ``X-Client-IP``) before falling back to the direct connection address.

    Returns:
        The resolved client IP string, or ``""`` if none can be found.
    """
    for header in _IP_HEADERS:
        ip_value: str | None = request.headers.get(header)
        if ip_value:
            client_ip: str = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else ""


def device_info_from_request(request: Request, platform: Optional[str] = None) -> DeviceInfo:
    """Build the DeviceInfo recorded when a device is bound."""
    return DeviceInfo(
        user_agent=request.headers.get("User-Agent") or "Unknown",
        ip_address=get_client_ip(request) or "Unknown",
        platform=platform or "Web",
    )
