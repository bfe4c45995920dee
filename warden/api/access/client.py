"""
WARDEN - Client Metadata

Best-effort client details attached to every audit event: IP address,
agent string and the audit session id.
"""

import ipaddress
import logging
import re
import time
from dataclasses import dataclass, field
from typing import MutableMapping, Optional
from uuid import uuid4

import httpx

from warden.api.config import settings

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

SESSION_ID_KEY = "auditSessionId"

SESSION_ID_PATTERN = re.compile(r"session_\d{13}_[0-9a-f]{9}")


def new_session_id() -> str:
    """Generate a session token: session_<epoch ms>_<9 random chars>."""
    return f"session_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def is_valid_session_id(value: Optional[str]) -> bool:
    """True for ids this module could have issued; anything else is client noise."""
    return isinstance(value, str) and SESSION_ID_PATTERN.fullmatch(value) is not None


def normalize_ip(value: Optional[str]) -> Optional[str]:
    """Canonical form of an IPv4/IPv6 address, or None if ``value`` is not one."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def get_or_create_session_id(storage: MutableMapping[str, str], key: str = SESSION_ID_KEY) -> str:
    """
    Return the session id cached in client storage, creating one if absent.

    ``storage`` is whatever ephemeral scope the client has (cookie jar,
    session mapping, tab storage bridge). The id is reused for as long as
    that scope lives.
    """
    session_id = storage.get(key)
    if not is_valid_session_id(session_id):
        session_id = new_session_id()
        storage[key] = session_id
    return session_id


class ClientIPResolver:
    """
    Resolve the caller's public IP through an external lookup service.

    Failures of any kind, including timeouts, yield "unknown". A
    successful lookup is remembered for the resolver's lifetime.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.IP_LOOKUP_URL
        self.timeout = timeout if timeout is not None else settings.IP_LOOKUP_TIMEOUT_SEC
        self._transport = transport
        self._cached: Optional[str] = None

    async def resolve(self) -> str:
        if self._cached:
            return self._cached

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                ip = response.json().get("ip")
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, AttributeError) as e:
            logger.debug(f"Client IP lookup failed: {e}")
            return UNKNOWN

        address = normalize_ip(str(ip)) if ip else None
        if address is None:
            logger.debug(f"Client IP lookup returned unusable value {ip!r}")
            return UNKNOWN

        self._cached = address
        return self._cached


@dataclass
class ClientContext:
    """Client metadata for one session."""

    session_id: str = field(default_factory=new_session_id)
    user_agent: str = UNKNOWN
    ip_address: Optional[str] = None
    ip_resolver: Optional[ClientIPResolver] = None

    async def resolve_ip(self) -> str:
        """Known address first, then the lookup service, else "unknown"."""
        if self.ip_address:
            return self.ip_address
        if self.ip_resolver is None:
            return UNKNOWN
        return await self.ip_resolver.resolve()


def client_ip_from_headers(headers, fallback: Optional[str] = None) -> Optional[str]:
    """
    First hop of the forwarded-for header, or the socket peer address.

    The header is read only when FORWARDED_FOR_HEADER names it, i.e. when
    a trusted proxy sets it. A first hop that is not an IP address is
    ignored.
    """
    header = settings.FORWARDED_FOR_HEADER
    if header:
        forwarded = headers.get(header)
        if forwarded:
            first = normalize_ip(forwarded.split(",")[0])
            if first:
                return first
    return fallback
