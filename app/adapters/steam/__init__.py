"""Identity authority adapters - abstract over how session tickets are checked."""

from app.adapters.steam.base import AbstractTicketAuthority, TicketCheckResult
from app.adapters.steam.factory import create_ticket_authority
from app.adapters.steam.trusted import TrustedTicketAuthority
from app.adapters.steam.web_api import SteamWebApiAuthority

__all__ = [
    "AbstractTicketAuthority",
    "SteamWebApiAuthority",
    "TicketCheckResult",
    "TrustedTicketAuthority",
    "create_ticket_authority",
]
