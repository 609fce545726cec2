"""Google Cloud Run output."""

from __future__ import annotations

import logging

from . import constants
from .client import AUTHORIZATION_HEADER, Client, OutputError
from .payload import FalcoPayload

log = logging.getLogger(__name__)

DESTINATION = "gcpcloudrun"


def cloudrun_post(client: Client, payload: FalcoPayload) -> None:
    """Send ``payload`` to a Cloud Run endpoint and record the outcome."""
    client.record(DESTINATION, constants.TOTAL)
    jwt = client.config.cloudrun.jwt
    if jwt:
        client.add_header(AUTHORIZATION_HEADER, "Bearer " + jwt)
    try:
        client.post(payload)
    except OutputError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : GCPCloudRun - %s", exc)
        return
    client.record(DESTINATION, constants.OK)