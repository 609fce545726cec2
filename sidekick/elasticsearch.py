"""Elasticsearch output."""

from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import urlsplit

from . import constants
from .client import Client, OutputError
from .payload import FalcoPayload
from .settings import ElasticsearchConfig

log = logging.getLogger(__name__)

DESTINATION = "elasticsearch"

_SUFFIX_FORMATS = {
    "monthly": "%Y.%m",
    "annually": "%Y",
}
_DAILY_FORMAT = "%Y.%m.%d"


def elasticsearch_url(config: ElasticsearchConfig, now: datetime) -> str:
    """Return the document URL for the index that covers ``now``."""
    if config.suffix == "none":
        index = config.index
    else:
        index = f"{config.index}-{now.strftime(_SUFFIX_FORMATS.get(config.suffix, _DAILY_FORMAT))}"
    return f"{config.host_port}/{index}/{config.type}"


def elasticsearch_post(client: Client, payload: FalcoPayload) -> None:
    """Index ``payload`` in Elasticsearch and record the outcome."""
    client.record(DESTINATION, constants.TOTAL)
    config = client.config.elasticsearch
    url = elasticsearch_url(config, datetime.now())
    try:
        urlsplit(url).port
    except ValueError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : %s - %s", client.output_type, exc)
        return

    client.endpoint_url = url
    if config.username and config.password:
        client.basic_auth(config.username, config.password)

    try:
        client.post(payload)
    except OutputError as exc:
        client.record(DESTINATION, constants.ERROR)
        log.error("[ERROR] : ElasticSearch - %s", exc)
        return
    client.record(DESTINATION, constants.OK)