"""Factory pattern for creating ticket authority instances."""

import logging

from app.adapters.steam.base import AbstractTicketAuthority
from app.adapters.steam.trusted import TrustedTicketAuthority
from app.adapters.steam.web_api import SteamWebApiAuthority
from app.core.config import SteamSettings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_ticket_authority(steam_settings: SteamSettings) -> AbstractTicketAuthority:
    """Instantiate the ticket authority selected by configuration.

    Returns:
        AbstractTicketAuthority: Trusted authority when validation is skipped,
            otherwise the Steam Web API client.

    Raises:
        ValidationAppError: If the Steam Web API key is missing.
    """
    if steam_settings.skip_ticket_validation:
        logger.warning(
            "steam.validation_skipped",
            extra={"hint": "STEAM_SKIP_TICKET_VALIDATION is enabled; numeric tickets are trusted"},
        )
        return TrustedTicketAuthority()

    if not steam_settings.web_api_key:
        raise ValidationAppError(
            code="steam_missing_web_api_key",
            message="Steam ticket validation requires STEAM_WEB_API_KEY",
            details={"hint": "Set STEAM_WEB_API_KEY or STEAM_SKIP_TICKET_VALIDATION=true for development"},
        )

    return SteamWebApiAuthority(
        web_api_key=steam_settings.web_api_key,
        base_url=steam_settings.base_url,
        timeout_seconds=steam_settings.timeout_seconds,
    )
