"""Client filtering gates.

Gates decide, per client identifier, whether a request may reach the file
handlers. They run as aiohttp middleware ahead of every route and know nothing
about path resolution.
"""

import ipaddress
import logging
import math
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from aiohttp import web

from pubserve.config import FilteringConfig
from pubserve.request import client_identifier, peer_address

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@dataclass(frozen=True)
class GateDecision:
    """Outcome of a gate check."""

    allowed: bool
    status: int = 200
    reason: str = ""
    retry_after: float | None = None


ALLOW = GateDecision(allowed=True)


class Gate(Protocol):
    """Allow/deny decision for a client."""

    def client_key(self, request: web.Request) -> str: ...

    def check(self, client: str) -> GateDecision: ...


def parse_networks(entries: Iterable[str]) -> list[IPNetwork]:
    """Parse IP addresses and CIDR networks.

    Args:
        entries: Strings such as "10.0.0.1" or "192.168.0.0/16"

    Returns:
        Parsed networks; single addresses become /32 or /128 networks

    Raises:
        ValueError: If an entry is neither an address nor a network
    """
    return [ipaddress.ip_network(entry.strip(), strict=False) for entry in entries]


class IPFilter:
    """IP allow/block list.

    The block list always wins. When the allow list is non-empty, clients not
    on it are denied as well.
    """

    def __init__(self, allow: Iterable[str] = (), block: Iterable[str] = ()) -> None:
        """Initialize filter.

        Args:
            allow: Allowed addresses or networks (empty allows everyone)
            block: Blocked addresses or networks
        """
        self._allow = parse_networks(allow)
        self._block = parse_networks(block)

    def client_key(self, request: web.Request) -> str:
        return client_identifier(request)

    def check(self, client: str) -> GateDecision:
        try:
            address = ipaddress.ip_address(client)
        except ValueError:
            if self._allow:
                return GateDecision(allowed=False, status=403, reason="Forbidden")
            return ALLOW

        if any(address in network for network in self._block):
            return GateDecision(allowed=False, status=403, reason="Forbidden")
        if self._allow and not any(address in network for network in self._allow):
            return GateDecision(allowed=False, status=403, reason="Forbidden")
        return ALLOW


class RateLimiter:
    """Per-peer token bucket.

    Each client starts with burst_size tokens; one request costs one token and
    tokens refill at per_second. State is only touched from the event loop.
    """

    def __init__(
        self,
        per_second: float,
        burst_size: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize rate limiter.

        Args:
            per_second: Refill rate in requests per second
            burst_size: Bucket capacity
            clock: Monotonic time source
        """
        if per_second <= 0:
            raise ValueError("per_second must be positive")
        self._rate = per_second
        self._capacity = float(burst_size)
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}

    def client_key(self, request: web.Request) -> str:
        # Forwarding headers are client-supplied, so buckets follow the TCP peer
        return peer_address(request)

    def check(self, client: str) -> GateDecision:
        now = self._clock()
        tokens, updated = self._buckets.get(client, (self._capacity, now))
        tokens = min(self._capacity, tokens + (now - updated) * self._rate)

        if tokens < 1:
            self._buckets[client] = (tokens, now)
            retry_after = (1 - tokens) / self._rate
            return GateDecision(
                allowed=False,
                status=429,
                reason="Too Many Requests",
                retry_after=retry_after,
            )

        self._buckets[client] = (tokens - 1, now)
        self._prune(now)
        return ALLOW

    def _prune(self, now: float) -> None:
        # Buckets refilled to capacity carry no information
        full_after = self._capacity / self._rate
        if len(self._buckets) < 1024:
            return
        stale = [c for c, (_, t) in self._buckets.items() if now - t >= full_after]
        for client in stale:
            del self._buckets[client]


def create_gates(config: FilteringConfig) -> list[Gate]:
    """Build the gate chain described by the filtering configuration.

    Args:
        config: Filtering configuration

    Returns:
        Gates in evaluation order (IP filter, then rate limiter)
    """
    gates: list[Gate] = []
    if config.ip_whitelist or config.ip_blacklist:
        gates.append(IPFilter(allow=config.ip_whitelist, block=config.ip_blacklist))
    if config.rate_limit.per_second > 0:
        gates.append(
            RateLimiter(config.rate_limit.per_second, config.rate_limit.burst_size),
        )
    return gates


def filtering_middleware(gates: Sequence[Gate]) -> Callable[..., Awaitable[web.StreamResponse]]:
    """Create middleware running the gates before each handler.

    Args:
        gates: Gates evaluated in order; the first denial answers the request

    Returns:
        aiohttp middleware
    """

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        client = client_identifier(request)
        for gate in gates:
            decision = gate.check(gate.client_key(request))
            if decision.allowed:
                continue
            logger.warning(
                f"[{client}] Blocked: {request.path}",
                extra={"client": client, "event": "blocked", "path": request.path},
            )
            headers = {}
            if decision.retry_after is not None:
                headers["Retry-After"] = str(math.ceil(decision.retry_after))
            return web.Response(status=decision.status, text=decision.reason, headers=headers)
        return await handler(request)

    return middleware
