"""Steam Web API ticket authority adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.adapters.steam.base import AbstractTicketAuthority, TicketCheckResult
from app.core.errors import AuthUnavailableError

logger = logging.getLogger(__name__)

AUTHENTICATE_PATH = "/ISteamUserAuth/AuthenticateUserTicket/v1/"


class SteamWebApiAuthority(AbstractTicketAuthority):
    """Validates session tickets with ``ISteamUserAuth/AuthenticateUserTicket``.

    Uses one pooled ``httpx.AsyncClient``; every call is bounded by the
    configured timeout.
    """

    def __init__(
        self,
        web_api_key: str,
        *,
        base_url: str = "https://partner.steam-api.com",
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Steam Web API client.

        Args:
            web_api_key: Publisher Web API key.
            base_url: Steam Web API host.
            timeout_seconds: Timeout for a single validation call.
            transport: Optional transport override (tests use httpx.MockTransport).
        """
        self._key = web_api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def check_ticket(self, ticket: bytes, app_id: int) -> TicketCheckResult:
        params = {
            "key": self._key,
            "appid": str(app_id),
            "ticket": ticket.decode("ascii"),
        }
        try:
            response = await self.client.get(AUTHENTICATE_PATH, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("steam.timeout", extra={"timeout_s": self.timeout})
            raise AuthUnavailableError("Steam ticket validation timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("steam.transport_error", extra={"error_type": type(exc).__name__})
            raise AuthUnavailableError("Steam ticket validation failed to connect") from exc

        # Steam answers 403 for a bad publisher key and 5xx when degraded;
        # neither says anything about the ticket itself.
        if response.status_code != 200:
            logger.warning("steam.bad_status", extra={"status_code": response.status_code})
            raise AuthUnavailableError(
                f"Steam ticket validation returned HTTP {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise AuthUnavailableError("Steam ticket validation returned invalid JSON") from exc

        return parse_authenticate_response(body)


def parse_authenticate_response(body: Any) -> TicketCheckResult:
    """Turn an AuthenticateUserTicket JSON body into a verdict.

    Raises:
        AuthUnavailableError: If the body holds neither params nor an error.
    """
    inner = body.get("response") if isinstance(body, dict) else None
    if not isinstance(inner, dict):
        raise AuthUnavailableError("Steam ticket validation returned an unexpected body")

    error = inner.get("error")
    if isinstance(error, dict):
        return TicketCheckResult(
            valid=False,
            reason=str(error.get("errordesc") or error.get("errorcode") or "rejected"),
        )

    params = inner.get("params")
    if not isinstance(params, dict):
        raise AuthUnavailableError("Steam ticket validation returned an unexpected body")

    if params.get("result") != "OK":
        return TicketCheckResult(valid=False, reason=str(params.get("result") or "rejected"))

    try:
        steam_id = int(params["steamid"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthUnavailableError("Steam ticket validation response lacks a steamid") from exc

    return TicketCheckResult(valid=True, identity=steam_id)
