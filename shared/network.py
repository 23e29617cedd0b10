"""
StalkerKit Async Network Client
================================

Thin async HTTP transport built on **httpx**, plus the tagged
:class:`Envelope` type describing the ``{"js": ...}`` response shape
that Stalker middleware wraps every payload in.

The transport deliberately performs a single attempt per call: retrying
with different credentials is the caller's job, and a transparent retry
would double the load placed on a portal during discovery.

References:
    - HTTPX documentation. https://www.python-httpx.org/
    - Fielding, R. T. (2000). Architectural Styles and the Design of
      Network-based Software Architectures. UC Irvine PhD Dissertation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

import httpx

logger = logging.getLogger("stalkerkit.network")


# ========================== Exception ======================================


class TransportError(Exception):
    """Raised for every transport-level fault.

    Covers DNS/connection failures, timeouts, non-2xx HTTP statuses and
    bodies that are not valid JSON.

    Attributes:
        url:         Requested URL.
        status_code: HTTP status if a response was received.
        timed_out:   ``True`` when the request exceeded its timeout.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.timed_out = timed_out


# ========================== Response Envelope ==============================


class EnvelopeKind(str, Enum):
    """Shape of a decoded portal response.

    Attributes:
        OK:        ``js`` carries a usable payload.
        EMPTY:     Well-formed object without a usable ``js`` value.
        MALFORMED: Decoded JSON that is not an object at all.
    """

    OK = "ok"
    EMPTY = "empty"
    MALFORMED = "malformed"


_EMPTY_VALUES: tuple[Any, ...] = (None, "", False)


@dataclass(frozen=True, slots=True)
class Envelope:
    """Tagged result of unwrapping the ``js`` member of a portal response."""

    kind: EnvelopeKind
    payload: Any = None

    @classmethod
    def parse(cls, data: Any) -> Envelope:
        """Classify decoded JSON into OK / EMPTY / MALFORMED."""
        if not isinstance(data, dict):
            return cls(EnvelopeKind.MALFORMED, data)

        js = data.get("js")
        if js in _EMPTY_VALUES or (isinstance(js, (list, dict)) and not js):
            return cls(EnvelopeKind.EMPTY)
        return cls(EnvelopeKind.OK, js)

    @property
    def ok(self) -> bool:
        return self.kind is EnvelopeKind.OK

    def field(self, name: str) -> Any:
        """Return ``payload[name]`` when the payload is an object, else ``None``."""
        if self.kind is EnvelopeKind.OK and isinstance(self.payload, dict):
            return self.payload.get(name)
        return None


# ========================== Transport Protocol =============================


class Transport(Protocol):
    """Anything able to GET a URL and hand back decoded JSON."""

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        ...


# ========================== HTTP Client ====================================


class PortalHTTP:
    """Async HTTP transport over :class:`httpx.AsyncClient`.

    Usage::

        async with PortalHTTP(timeout=10.0) as http:
            data = await http.get_json(
                "http://portal.example/portal.php",
                params={"type": "stb", "action": "handshake"},
            )

    Args:
        timeout:   Default per-request timeout in seconds.
        transport: Optional custom httpx transport (e.g. ``httpx.MockTransport``).
        verify:    TLS certificate verification; many portals use self-signed certs.
    """

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        verify: bool = True,
    ) -> None:
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
            verify=verify,
        )

    # ------------------------------------------------------------------ #
    #  Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> PortalHTTP:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Gracefully close the underlying httpx client."""
        await self._client.aclose()

    @property
    def timeout(self) -> float:
        return self._timeout

    # ------------------------------------------------------------------ #
    #  Core fetch
    # ------------------------------------------------------------------ #

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Issue one GET and decode the JSON body.

        Args:
            url:     Absolute URL.
            params:  Query-string parameters (encoded by httpx).
            headers: Per-request headers.
            timeout: Override of the default timeout for this call.

        Returns:
            The decoded JSON value.

        Raises:
            TransportError: On connection failure, timeout, non-2xx
                status or an undecodable body.
        """
        request_timeout = httpx.Timeout(timeout if timeout is not None else self._timeout)

        try:
            response = await self._client.get(
                url,
                params=params,
                headers=headers,
                timeout=request_timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.debug("Timeout on GET %s: %s", url, exc)
            raise TransportError(
                f"Request to {url} timed out", url=url, timed_out=True
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.debug("HTTP %d on GET %s", status, url)
            raise TransportError(
                f"HTTP {status} from {url}", url=url, status_code=status
            ) from exc
        except httpx.TransportError as exc:
            logger.debug("Transport error on GET %s: %s", url, exc)
            raise TransportError(
                f"Could not reach {url}: {exc}", url=url
            ) from exc
        except httpx.HTTPError as exc:
            logger.debug("Request error on GET %s: %s", url, exc)
            raise TransportError(
                f"Request to {url} failed: {exc}", url=url
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"JSON decode error from {url}",
                url=url,
                status_code=response.status_code,
            ) from exc
