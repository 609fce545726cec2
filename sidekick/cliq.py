"""Zoho Cliq output."""

from __future__ import annotations

import logging
from typing import Any

from . import constants
from .client import Client, OutputError
from .payload import FalcoPayload, Priority
from .settings import Configuration

log = logging.getLogger(__name__)

DESTINATION = "cliq"

TABLE_SLIDE_TYPE = "table"
TEXT_SLIDE_TYPE = "text"
BOT_NAME = "Falco Sidekick"
TABLE_SLIDE_HEADERS = ("field", "value")

EMERGENCY_EMOJI = "\U0001F6A8"
ERROR_EMOJI = "\U0001F7E0"
WARNING_EMOJI = "\U0001F7E1"
NOTICE_EMOJI = "\U0001F535"
INFORMATION_EMOJI = "\U0001F7E2"
DEBUG_EMOJI = "\u26AA"

_EMOJIS = {
    Priority.EMERGENCY: EMERGENCY_EMOJI,
    Priority.ALERT: ERROR_EMOJI,
    Priority.CRITICAL: ERROR_EMOJI,
    Priority.ERROR: EMERGENCY_EMOJI,
    Priority.WARNING: WARNING_EMOJI,
    Priority.NOTICE: NOTICE_EMOJI,
    Priority.INFORMATIONAL: INFORMATION_EMOJI,
    Priority.DEBUG: DEBUG_EMOJI,
}


def _table_rows(payload: FalcoPayload) -> list[dict[str, str]]:
    rows = [
        {"field": constants.RULE, "value": payload.rule},
        {"field": constants.PRIORITY, "value": str(payload.priority)},
    ]
    keys = sorted(key for key, value in payload.output_fields.items() if isinstance(value, str))
    rows.extend({"field": key, "value": payload.output_fields[key]} for key in keys)
    rows.append({"field": constants.TIME, "value": payload.time_string()})
    return rows


def new_cliq_payload(payload: FalcoPayload, config: Configuration) -> dict[str, Any]:
    """Build the Cliq message for ``payload``."""
    cliq = config.cliq
    output_format = cliq.output_format
    slides: list[dict[str, Any]] = []
    text = ""

    template = cliq.message_format_template
    if template is not None:
        try:
            text = template.render(payload)
        except ValueError as exc:
            log.error("[ERROR] : Cliq - Error expanding Cliq message %s", exc)
        else:
            if output_format in (constants.ALL, constants.TEXT, ""):
                slides.append({"type": TEXT_SLIDE_TYPE, "data": payload.output})
    else:
        text = payload.output

    if output_format in (constants.ALL, constants.FIELDS, ""):
        table = {"headers": list(TABLE_SLIDE_HEADERS), "rows": _table_rows(payload)}
        slides.append({"type": TABLE_SLIDE_TYPE, "data": table})

    if cliq.use_emoji:
        text = f"{_EMOJIS.get(payload.priority, '?')} {text}"

    message: dict[str, Any] = {
        "text": text,
        "bot": {"name": BOT_NAME, "image": cliq.icon or constants.DEFAULT_ICON_URL},
    }
    if slides:
        message["slides"] = slides
    return message


def cliq_post(client: Client, payload: FalcoPayload) -> None:
    """Send ``payload`` to Cliq and record the outcome."""
    client.record(DESTINATION, constants.TOTAL)
    client.add_header("Content-Type", "application/json")
    try:
        client.post(new_cliq_payload(payload, client.config))
    except OutputError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : Cliq - %s", exc)
        return
    client.record(DESTINATION, constants.OK)