"""Datadog events output."""

from __future__ import annotations

import logging
from typing import Any

from . import constants
from .client import Client, OutputError
from .payload import FalcoPayload, Priority

log = logging.getLogger(__name__)

DATADOG_PATH = "/api/v1/events"
DESTINATION = "datadog"

_ERROR_PRIORITIES = frozenset(
    {Priority.EMERGENCY, Priority.ALERT, Priority.CRITICAL, Priority.ERROR}
)


def _alert_type(priority: Priority) -> str:
    if priority in _ERROR_PRIORITIES:
        return constants.ERROR
    if priority is Priority.WARNING:
        return constants.WARNING
    return constants.INFO


def new_datadog_payload(payload: FalcoPayload) -> dict[str, Any]:
    """Build the Datadog event for ``payload``; empty fields are left out."""
    tags = [f"{key}:{value}" for key, value in payload.output_fields.items() if isinstance(value, str)]
    event = {
        "title": payload.rule,
        "text": payload.output,
        "alert_type": _alert_type(payload.priority),
        "source_type_name": "falco",
        "tags": tags,
    }
    return {key: value for key, value in event.items() if value}


def datadog_post(client: Client, payload: FalcoPayload) -> None:
    """Send ``payload`` to Datadog and record the outcome."""
    client.record(DESTINATION, constants.TOTAL)
    try:
        client.post(new_datadog_payload(payload))
    except OutputError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : Datadog - %s", exc)
        return
    client.record(DESTINATION, constants.OK)