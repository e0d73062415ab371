"""Session ticket verification with a short-lived positive-result cache.

Turns an opaque client ticket into a Steam id. The cache only bounds the
load on the external authority when a client replays the same ticket in a
short window; it never extends trust past its TTL and never stores
failures.
"""

from __future__ import annotations

import logging
import re

from app.adapters.steam.base import AbstractTicketAuthority
from app.core.errors import AuthRejectedError, InvalidCredentialError
from app.core.logging import hash_for_log
from app.utils.simple_cache import SimpleTTLCache, build_cache_key

logger = logging.getLogger(__name__)

_HEX_TICKET = re.compile(rb"^[0-9A-Fa-f]+$")


class IdentityVerifier:
    """Resolve session tickets to Steam ids.

    Attributes:
        authority: External ticket authority adapter.
        cache: TTL cache of ticket-hash -> Steam id.
        app_id: Steam application id tickets must belong to.
        max_ticket_bytes: Upper bound on accepted ticket size.
    """

    def __init__(
        self,
        authority: AbstractTicketAuthority,
        cache: SimpleTTLCache[int],
        *,
        app_id: int,
        max_ticket_bytes: int = 4096,
    ) -> None:
        self.authority = authority
        self.cache = cache
        self.app_id = app_id
        self.max_ticket_bytes = max_ticket_bytes

    def _validate_ticket(self, ticket: bytes) -> None:
        """Reject tickets that cannot possibly be valid.

        Raises:
            InvalidCredentialError: If the ticket is empty, too long or not hex.
        """
        if not ticket:
            raise InvalidCredentialError("Missing session ticket")
        if len(ticket) > self.max_ticket_bytes:
            raise InvalidCredentialError(
                "Session ticket is too long",
                details={"max_value": self.max_ticket_bytes, "actual_value": len(ticket)},
            )
        if not _HEX_TICKET.match(ticket):
            raise InvalidCredentialError("Session ticket must be hex encoded")

    async def verify(self, ticket: bytes) -> int:
        """Resolve ``ticket`` to a Steam id.

        Args:
            ticket: Hex-encoded session ticket bytes.

        Returns:
            The Steam id the authority vouched for.

        Raises:
            InvalidCredentialError: Malformed ticket (authority not contacted).
            AuthRejectedError: The authority said the ticket is invalid.
            AuthUnavailableError: The authority could not be reached in time.
        """
        self._validate_ticket(ticket)

        cache_key = build_cache_key(ticket, salt=str(self.app_id))
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("identity.cache_hit", extra={"ticket_hash": cache_key[:16]})
            return cached

        result = await self.authority.check_ticket(ticket, self.app_id)
        if not result.valid or result.identity is None:
            logger.info(
                "identity.rejected",
                extra={"ticket_hash": hash_for_log(ticket), "reason": result.reason},
            )
            raise AuthRejectedError(details={"hint": result.reason} if result.reason else None)

        self.cache.set(cache_key, result.identity)
        logger.info(
            "identity.verified",
            extra={"ticket_hash": hash_for_log(ticket), "steam_id": result.identity},
        )
        return result.identity
