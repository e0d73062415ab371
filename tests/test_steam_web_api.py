"""Tests for the Steam Web API ticket authority and its factory."""

import httpx
import pytest

from app.adapters.steam.factory import create_ticket_authority
from app.adapters.steam.trusted import TrustedTicketAuthority
from app.adapters.steam.web_api import (
    AUTHENTICATE_PATH,
    SteamWebApiAuthority,
    parse_authenticate_response,
)
from app.core.config import SteamSettings
from app.core.errors import AuthUnavailableError, ValidationAppError

TICKET = b"14000000abcdef"


def _authority(handler) -> SteamWebApiAuthority:
    return SteamWebApiAuthority(
        "publisher-key",
        base_url="https://steam.test",
        timeout_seconds=1.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_ok_response_yields_steam_id() -> None:
    seen: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(
            200,
            json={
                "response": {
                    "params": {
                        "result": "OK",
                        "steamid": "76561198000000001",
                        "ownersteamid": "76561198000000001",
                    }
                }
            },
        )

    authority = _authority(handler)
    result = await authority.check_ticket(TICKET, 480)
    await authority.aclose()

    assert result.valid is True
    assert result.identity == 76561198000000001
    request = seen["request"]
    assert request.url.path == AUTHENTICATE_PATH
    assert request.url.params["appid"] == "480"
    assert request.url.params["ticket"] == TICKET.decode()
    assert request.url.params["key"] == "publisher-key"


@pytest.mark.asyncio
async def test_error_body_is_a_rejection() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"response": {"error": {"errorcode": 101, "errordesc": "Invalid ticket"}}},
        )

    authority = _authority(handler)
    result = await authority.check_ticket(TICKET, 480)

    assert result.valid is False
    assert result.identity is None
    assert result.reason == "Invalid ticket"


@pytest.mark.asyncio
async def test_timeout_is_unavailable_not_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    authority = _authority(handler)
    with pytest.raises(AuthUnavailableError):
        await authority.check_ticket(TICKET, 480)


@pytest.mark.asyncio
async def test_connection_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    authority = _authority(handler)
    with pytest.raises(AuthUnavailableError):
        await authority.check_ticket(TICKET, 480)


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [403, 500, 503])
async def test_non_200_status_is_unavailable(status_code: int) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text="nope")

    authority = _authority(handler)
    with pytest.raises(AuthUnavailableError) as exc_info:
        await authority.check_ticket(TICKET, 480)

    assert str(status_code) in exc_info.value.message


@pytest.mark.asyncio
async def test_invalid_json_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    authority = _authority(handler)
    with pytest.raises(AuthUnavailableError):
        await authority.check_ticket(TICKET, 480)


@pytest.mark.asyncio
async def test_client_is_recreated_after_close() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"response": {"params": {"result": "OK", "steamid": "7"}}}
        )

    authority = _authority(handler)
    await authority.check_ticket(TICKET, 480)
    await authority.aclose()

    result = await authority.check_ticket(TICKET, 480)
    assert result.identity == 7


def test_parse_non_ok_result_is_rejection() -> None:
    result = parse_authenticate_response(
        {"response": {"params": {"result": "Denied", "steamid": "7"}}}
    )
    assert result.valid is False
    assert result.reason == "Denied"


@pytest.mark.parametrize(
    "body",
    [
        [],
        {},
        {"response": "oops"},
        {"response": {}},
        {"response": {"params": {"result": "OK"}}},
        {"response": {"params": {"result": "OK", "steamid": "not-a-number"}}},
    ],
)
def test_parse_unexpected_bodies_are_unavailable(body) -> None:
    with pytest.raises(AuthUnavailableError):
        parse_authenticate_response(body)


def test_factory_returns_trusted_authority_when_validation_skipped() -> None:
    authority = create_ticket_authority(SteamSettings(skip_ticket_validation=True))
    assert isinstance(authority, TrustedTicketAuthority)


def test_factory_requires_web_api_key() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        create_ticket_authority(
            SteamSettings(skip_ticket_validation=False, web_api_key=None)
        )

    assert exc_info.value.code == "steam_missing_web_api_key"


def test_factory_builds_web_api_authority() -> None:
    authority = create_ticket_authority(
        SteamSettings(
            skip_ticket_validation=False,
            web_api_key="key",
            base_url="https://steam.test/",
            timeout_seconds=2.5,
        )
    )

    assert isinstance(authority, SteamWebApiAuthority)
    assert authority.base_url == "https://steam.test"
    assert authority.timeout == 2.5
