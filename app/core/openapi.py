"""OpenAPI additions: the session ticket security scheme and tag docs."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.auth import STEAM_TICKET_HEADER

SECURITY_SCHEME_NAME = "SteamTicket"

TAGS_METADATA = [
    {
        "name": "Structures",
        "description": (
            "Submit structures for a scene, fetch a random selection placed by "
            "other players and like the ones that helped."
        ),
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Wrap ``app.openapi`` so the generated schema documents ticket auth.

    Every route requires the ticket, so the requirement is declared once
    at the top level instead of per operation.
    """

    generate = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = generate()

        schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        schemes[SECURITY_SCHEME_NAME] = {
            "type": "apiKey",
            "in": "header",
            "name": STEAM_TICKET_HEADER,
            "description": "Hex-encoded Steam session ticket (GetAuthSessionTicket).",
        }
        schema["security"] = [{SECURITY_SCHEME_NAME: []}]

        known = {tag.get("name") for tag in schema.setdefault("tags", [])}
        schema["tags"].extend(tag for tag in TAGS_METADATA if tag["name"] not in known)
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
