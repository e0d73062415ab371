"""Session ticket extraction for the HTTP layer.

The game client sends its Steam session ticket (hex) in a header. This
module only reads and normalizes it; verification against Steam happens in
the request pipeline so it can be ordered before rate limiting.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header

from app.core.errors import InvalidCredentialError

logger = logging.getLogger(__name__)

STEAM_TICKET_HEADER = "X-Steam-Auth-Ticket"


def parse_ticket(raw: str | None) -> bytes:
    """Normalize a ticket header value to bytes.

    Args:
        raw: Header value, possibly None or padded with whitespace.

    Returns:
        ASCII bytes of the trimmed ticket.

    Raises:
        InvalidCredentialError: If the header is missing, blank or not ASCII.

    Examples:
        >>> parse_ticket(" 0a1b ")
        b'0a1b'
    """
    if raw is None or not raw.strip():
        raise InvalidCredentialError(
            f"Missing session ticket. Provide the {STEAM_TICKET_HEADER} header.",
        )
    try:
        return raw.strip().encode("ascii")
    except UnicodeEncodeError as exc:
        raise InvalidCredentialError("Session ticket must be hex encoded") from exc


async def session_ticket(
    x_steam_auth_ticket: Annotated[str | None, Header(alias=STEAM_TICKET_HEADER)] = None,
) -> bytes:
    """FastAPI dependency returning the caller's raw session ticket.

    Usage:
        @router.post("/structures")
        async def submit(ticket: bytes = Depends(session_ticket)):
            ...

    Raises:
        InvalidCredentialError: Mapped to 401 by the exception handlers.
    """
    if x_steam_auth_ticket is None:
        logger.warning("auth.missing_ticket", extra={"ticket_present": False})
    return parse_ticket(x_steam_auth_ticket)
