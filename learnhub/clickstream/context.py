"""Client context for clickstream events.

Everything an event needs to know about the browser that produced it:
the environment reported with each request, the tab's session identity,
and the public IP (looked up once per session against external services).
"""
from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, MutableMapping, Optional

import httpx

from config.settings import settings
from learnhub.clickstream.models import UNKNOWN_IP
from learnhub.clickstream.session import SessionIdentityProvider

logger = logging.getLogger(__name__)

# Keys under which the supported services report the caller's address
IP_FIELDS = ("ip", "origin", "query", "ip_address")


@dataclass(frozen=True)
class ClientEnvironment:
    """Browser-side facts at emission time. Any of them may be missing."""
    page_url: Optional[str] = None
    path: Optional[str] = None
    search: Optional[str] = None
    title: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    timezone_offset: Optional[int] = None  # minutes, UTC minus local
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None

    @property
    def screen_resolution(self) -> Optional[str]:
        if self.screen_width is None or self.screen_height is None:
            return None
        return f"{self.screen_width}x{self.screen_height}"

    @property
    def viewport_size(self) -> Optional[str]:
        if self.viewport_width is None or self.viewport_height is None:
            return None
        return f"{self.viewport_width}x{self.viewport_height}"

    def merged(self, **changes: Any) -> "ClientEnvironment":
        """Copy with the given non-None values applied."""
        known = {k: v for k, v in changes.items() if v is not None and k in self.__dataclass_fields__}
        return replace(self, **known)

    @classmethod
    def from_request(
        cls,
        headers: Mapping[str, str],
        reported: Optional[Mapping[str, Any]] = None,
    ) -> "ClientEnvironment":
        """Build from what the page reported, falling back to request headers."""
        env = cls(
            user_agent=headers.get("user-agent"),
            referrer=headers.get("referer") or None,
            language=_primary_language(headers.get("accept-language")),
        )
        return env.merged(**dict(reported or {}))


def _primary_language(accept_language: Optional[str]) -> Optional[str]:
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first or None


def extract_ip(payload: Any) -> Optional[str]:
    """Pull an IP out of any of the known response shapes."""
    if not isinstance(payload, dict):
        return None
    for field in IP_FIELDS:
        value = payload.get(field)
        if not isinstance(value, str):
            continue
        # httpbin reports "client, proxy" when forwarded
        candidate = value.split(",")[0].strip()
        try:
            ipaddress.ip_address(candidate)
        except ValueError:
            continue
        return candidate
    return None


def request_client_ip(headers: Mapping[str, str], client_host: Optional[str]) -> Optional[str]:
    """Caller address as the API sees it, honoring X-Forwarded-For behind a proxy.

    Loopback and unparseable addresses give None; the IP services answer then.
    """
    forwarded = headers.get("x-forwarded-for")
    candidate = forwarded.split(",")[0].strip() if forwarded else client_host
    if not candidate:
        return None
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return None
    if address.is_loopback or address.is_unspecified:
        return None
    return str(address)


class ClientIPResolver:
    """Ask public IP services, in priority order, who we are.

    Each service gets `timeout` seconds before it is abandoned. The first
    usable answer wins; when none answers the sentinel "unknown" is returned.
    Never raises.
    """

    def __init__(
        self,
        services: Optional[list[str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.services = list(settings.CLICKSTREAM_IP_SERVICES if services is None else services)
        self.timeout = settings.CLICKSTREAM_IP_TIMEOUT if timeout is None else timeout
        self._transport = transport

    async def lookup(self) -> str:
        if not self.services:
            return UNKNOWN_IP

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            for url in self.services:
                ip = await self._ask(client, url)
                if ip:
                    logger.debug("Client IP resolved via %s", url)
                    return ip

        logger.info("Client IP unresolved after %d services", len(self.services))
        return UNKNOWN_IP

    async def _ask(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        try:
            resp = await asyncio.wait_for(client.get(url), timeout=self.timeout)
            payload = resp.json()
        except (httpx.HTTPError, ValueError, asyncio.TimeoutError) as exc:
            logger.debug("IP lookup via %s failed: %r", url, exc)
            return None
        return extract_ip(payload)


class ClickstreamContext:
    """Tracking state owned by one browser tab.

    Holds the tab's session storage, the latest client environment and the
    session's cached IP. The address the tab's requests arrive from wins;
    the IP services are asked only when there is none. Starting a new session
    (or calling `reset`) drops the cached IP so it is looked up again.
    """

    def __init__(
        self,
        resolver: ClientIPResolver,
        storage: Optional[MutableMapping[str, str]] = None,
        environment: Optional[ClientEnvironment] = None,
    ):
        self.storage: MutableMapping[str, str] = {} if storage is None else storage
        self.environment = environment or ClientEnvironment()
        self.sessions = SessionIdentityProvider(self.storage, on_new_session=self._session_started)
        self._resolver = resolver
        self.request_ip: Optional[str] = None
        self._ip: Optional[str] = None
        self._ip_lookup: Optional[asyncio.Future] = None

    def session_id(self) -> str:
        return self.sessions.get_or_create_session_id()

    def update_environment(self, environment: ClientEnvironment) -> None:
        self.environment = environment

    def observe_request_ip(self, ip: Optional[str]) -> None:
        if ip:
            self.request_ip = ip

    async def client_ip(self) -> str:
        """Resolved at most once per session; concurrent callers share the lookup."""
        if self._ip is not None:
            return self._ip
        if self.request_ip:
            self._ip = self.request_ip
            self._ip_lookup = None
            return self._ip
        if self._ip_lookup is None or self._ip_lookup.cancelled():
            self._ip_lookup = asyncio.ensure_future(self._resolver.lookup())
        lookup = self._ip_lookup
        ip = await lookup
        # Ignore the answer if the session changed while we waited
        if self._ip_lookup is lookup:
            self._ip = ip
            self._ip_lookup = None
        return ip

    def invalidate_client_ip(self) -> None:
        self._ip = None
        self._ip_lookup = None

    def reset(self) -> None:
        """End the session: the next event starts a fresh one."""
        self.sessions.reset()
        self.invalidate_client_ip()

    def _session_started(self, session_id: str) -> None:
        self.invalidate_client_ip()
