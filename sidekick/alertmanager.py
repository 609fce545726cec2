"""Alertmanager output."""

from __future__ import annotations

import logging
import re
from typing import Any

from . import constants
from .client import Client, OutputError
from .payload import FalcoPayload, Priority

log = logging.getLogger(__name__)

DESTINATION = "alertmanager"

# Characters Alertmanager does not accept in label names.
_LABEL_CHARS = str.maketrans({".": "_", "[": "_", "]": ""})
_INTEGER = re.compile(r"[+-]?\d+")


def _drop_bucket(text: str, count: int) -> tuple[str, Priority]:
    """Reduce the cardinality of a syscall drop counter."""
    if count == 0:
        return "0", Priority.WARNING
    if count < 10:
        return "<10", Priority.WARNING
    if count > 10000:
        return ">10000", Priority.CRITICAL
    if count > 1000:
        return ">1000", Priority.CRITICAL
    if count > 100:
        return ">100", Priority.CRITICAL
    if count > 10:
        return ">10", Priority.WARNING
    return text, Priority.CRITICAL


def new_alertmanager_payload(payload: FalcoPayload) -> list[dict[str, Any]]:
    """Build the alert list Alertmanager expects for ``payload``."""
    labels: dict[str, str] = {}
    priority = payload.priority
    for key, value in payload.output_fields.items():
        if key.startswith("n_evts"):
            continue
        if key.startswith("n_drop"):
            text = value if isinstance(value, str) else str(value)
            if not isinstance(value, bool) and _INTEGER.fullmatch(text):
                labels[key], priority = _drop_bucket(text, int(text))
            continue
        if isinstance(value, str):
            labels[key.translate(_LABEL_CHARS)] = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            labels[key.translate(_LABEL_CHARS)] = str(value)
    labels["source"] = "falco"
    labels["rule"] = payload.rule
    labels["priority"] = str(priority)
    annotations = {"info": payload.output, "summary": payload.rule}
    return [{"labels": labels, "annotations": annotations}]


def alertmanager_post(client: Client, payload: FalcoPayload) -> None:
    """Send ``payload`` to Alertmanager and record the outcome."""
    client.record(DESTINATION, constants.TOTAL)
    try:
        client.post(new_alertmanager_payload(payload))
    except OutputError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : AlertManager - %s", exc)
        return
    client.record(DESTINATION, constants.OK)