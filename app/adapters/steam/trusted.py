"""Ticket authority that trusts numeric tickets (development/testing)."""

from __future__ import annotations

from app.adapters.steam.base import AbstractTicketAuthority, TicketCheckResult
from app.adapters.storage.base import STORAGE_INT_MAX


class TrustedTicketAuthority(AbstractTicketAuthority):
    """Accepts a ticket whose text is a decimal Steam id as that id.

    Enabled with STEAM_SKIP_TICKET_VALIDATION=true. Never use in production.
    """

    def __init__(self) -> None:
        self.calls = 0

    async def check_ticket(self, ticket: bytes, app_id: int) -> TicketCheckResult:
        self.calls += 1
        text = ticket.decode("ascii", errors="replace")
        if text.isdigit() and 0 < int(text) <= STORAGE_INT_MAX:
            return TicketCheckResult(valid=True, identity=int(text))
        return TicketCheckResult(valid=False, reason="not a numeric development ticket")
