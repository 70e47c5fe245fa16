"""Request helpers shared by middleware and handlers."""

from aiohttp import web

UNKNOWN_CLIENT = "unknown ip"


def client_identifier(request: web.Request) -> str:
    """Best-effort real client address for logging and filtering.

    Checks, in order: the first "for=" of the Forwarded header, the first
    X-Forwarded-For entry, X-Real-IP, then the peer address.

    Args:
        request: aiohttp request

    Returns:
        Client address, or "unknown ip"
    """
    for forwarded in request.forwarded:
        client = forwarded.get("for")
        if client:
            return _strip_port(client)

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client = forwarded_for.split(",")[0].strip()
        if client:
            return _strip_port(client)

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return _strip_port(real_ip.strip())

    return peer_address(request)


def _strip_port(address: str) -> str:
    # "[::1]:8080" -> "::1", "10.0.0.1:8080" -> "10.0.0.1", "::1" unchanged
    if address.startswith("["):
        return address[1:].split("]", 1)[0]
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def peer_address(request: web.Request) -> str:
    """Address of the directly connected peer, ignoring forwarding headers.

    Args:
        request: aiohttp request

    Returns:
        Peer address, or "unknown ip"
    """
    return request.remote or UNKNOWN_CLIENT
