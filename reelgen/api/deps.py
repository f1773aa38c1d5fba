import ipaddress
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from reelgen.services.container import ServiceContainer

LOCALHOST = "127.0.0.1"
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "x-client-ip")


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def normalize_ip(raw: str | None) -> str | None:
    """Strip IPv4-mapped prefixes and reject anything that is not an IP."""
    if not raw:
        return None
    candidate = raw.strip()
    if candidate.lower().startswith("::ffff:"):
        candidate = candidate[7:]
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def resolve_client_ip(headers, peer_host: str | None) -> str:
    """Network identity: proxy headers first, then the socket peer."""
    for name in CLIENT_IP_HEADERS:
        value = headers.get(name)
        if not value:
            continue
        # X-Forwarded-For: client, proxy1, proxy2
        ip = normalize_ip(value.split(",")[0])
        if ip:
            return ip
    return normalize_ip(peer_host) or LOCALHOST


def get_client_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    return resolve_client_ip(request.headers, peer)


def get_header_session_id(
    x_session_id: Annotated[Optional[str], Header(alias="X-Session-Id")] = None,
) -> str | None:
    if x_session_id is not None and x_session_id.strip():
        return x_session_id.strip()
    return None


Services = Annotated[ServiceContainer, Depends(get_services)]
ClientIP = Annotated[str, Depends(get_client_ip)]
HeaderSessionId = Annotated[Optional[str], Depends(get_header_session_id)]
