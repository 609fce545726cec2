"""Discord webhook output."""

from __future__ import annotations

import logging
from typing import Any

from . import constants
from .client import Client, OutputError
from .payload import FalcoPayload, Priority
from .settings import Configuration

log = logging.getLogger(__name__)

DESTINATION = "discord"

_COLORS = {
    Priority.EMERGENCY: "15158332",  # red
    Priority.ALERT: "11027200",  # dark orange
    Priority.CRITICAL: "15105570",  # orange
    Priority.ERROR: "15844367",  # gold
    Priority.WARNING: "12745742",  # dark gold
    Priority.NOTICE: "3066993",  # teal
    Priority.INFORMATIONAL: "3447003",  # blue
    Priority.DEBUG: "12370112",  # light grey
}


def _field(name: str, value: str) -> dict[str, Any]:
    return {"name": name, "value": value, "inline": True}


def new_discord_payload(payload: FalcoPayload, config: Configuration) -> dict[str, Any]:
    """Build the Discord webhook message for ``payload``."""
    embed_fields = [
        _field(key, f"```{value}```")
        for key, value in payload.output_fields.items()
        if isinstance(value, str)
    ]
    embed_fields.append(_field(constants.RULE, payload.rule))
    embed_fields.append(_field(constants.PRIORITY, str(payload.priority)))
    embed_fields.append(_field(constants.TIME, payload.time_string()))

    embed = {
        "title": "",
        "url": "",
        "description": payload.output,
        "color": _COLORS.get(payload.priority, ""),
        "fields": embed_fields,
    }
    return {
        "content": "",
        "avatar_url": config.discord.icon or constants.DEFAULT_ICON_URL,
        "embeds": [embed],
    }


def discord_post(client: Client, payload: FalcoPayload) -> None:
    """Send ``payload`` to Discord and record the outcome."""
    client.record(DESTINATION, constants.TOTAL)
    try:
        client.post(new_discord_payload(payload, client.config))
    except OutputError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : Discord - %s", exc)
        return
    client.record(DESTINATION, constants.OK)