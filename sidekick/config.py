"""Loading the daemon configuration from defaults, a config file and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml

from .settings import (
    AlertmanagerConfig,
    CliqConfig,
    CloudRunConfig,
    ConfigError,
    Configuration,
    DatadogConfig,
    DiscordConfig,
    ElasticsearchConfig,
)

log = logging.getLogger(__name__)

_SECTIONS: tuple[tuple[tuple[str, ...], type], ...] = (
    ((), Configuration),
    (("alertmanager",), AlertmanagerConfig),
    (("datadog",), DatadogConfig),
    (("cliq",), CliqConfig),
    (("discord",), DiscordConfig),
    (("elasticsearch",), ElasticsearchConfig),
    (("gcp", "cloudrun"), CloudRunConfig),
)


def parse_pairs(value: str) -> dict[str, str]:
    """Parse ``key:value,key:value``; entries without exactly one colon are skipped."""
    pairs: dict[str, str] = {}
    for label in value.split(","):
        parts = label.split(":")
        if len(parts) == 2:
            pairs[parts[0]] = parts[1]
    return pairs


def _known_keys() -> Iterator[tuple[str, ...]]:
    for prefix, cls in _SECTIONS:
        for item in fields(cls):
            key = item.metadata.get("key")
            if key is not None:
                yield (*prefix, key)


def _lower_tree(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key).lower(): _lower_tree(item) for key, item in value.items()}
    return value


def _assign(data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    current = data
    for key in path[:-1]:
        child = current.get(key)
        if not isinstance(child, dict):
            child = {}
            current[key] = child
        current = child
    current[path[-1]] = value


def _read_file(path: str) -> dict[str, Any]:
    file = Path(path)
    if not file.is_file():
        raise ConfigError(f"path '{path}' does not exist")
    try:
        with file.open(encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        log.error("[ERROR] : Error when reading config file : %s", exc)
        return {}
    if loaded is None:
        return {}
    if not isinstance(loaded, Mapping):
        log.error("[ERROR] : Error when reading config file : not a mapping")
        return {}
    return _lower_tree(loaded)


def load_config(path: str | None = None, environ: Mapping[str, str] | None = None) -> Configuration:
    """Build the configuration; environment variables override the file.

    Raises ConfigError when the file is missing or the result is invalid.
    """
    environ = os.environ if environ is None else environ
    data = _read_file(path) if path else {}

    for key_path in _known_keys():
        value = environ.get("_".join(key_path).upper())
        if value:
            _assign(data, key_path, value)

    config = Configuration.from_mapping(data)

    if "CUSTOMFIELDS" in environ:
        config.customfields.update(parse_pairs(environ["CUSTOMFIELDS"]))
    return config