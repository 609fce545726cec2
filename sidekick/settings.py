"""Configuration model for the daemon and its outputs, with message templates."""

from __future__ import annotations

import ipaddress
import json
import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Callable, Mapping

from . import constants
from .payload import FalcoPayload, format_go_time


class ConfigError(ValueError):
    """Raised when the configuration is invalid."""


_PRIORITY_RE = re.compile(
    r"emergency|alert|critical|error|warning|notice|informational|debug", re.IGNORECASE
)


def check_priority(value: str) -> str:
    """Return ``value`` if it names a priority, otherwise an empty string."""
    return value if _PRIORITY_RE.search(value) else ""


# --- message templates -------------------------------------------------------

_ACTION = re.compile(r"\{\{(-\s)?(.*?)(\s-)?\}\}", re.DOTALL)
_INDEX = re.compile(r'index\s+\.(\w+)\s+"((?:[^"\\]|\\.)*)"$')
_FIELD = re.compile(r"\.(\w+)$")
_COMMENT = re.compile(r"/\*.*\*/$", re.DOTALL)

_FIELDS: dict[str, Callable[[FalcoPayload], Any]] = {
    "Output": lambda p: p.output,
    "Priority": lambda p: str(p.priority),
    "Rule": lambda p: p.rule,
    "Time": lambda p: p.time,
    "OutputFields": lambda p: p.output_fields,
}


def _go_format(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if value is None:
        return "<nil>"
    if isinstance(value, datetime):
        return format_go_time(value)
    if isinstance(value, Mapping):
        items = " ".join(f"{key}:{_go_format(value[key])}" for key in sorted(value))
        return f"map[{items}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_go_format(item) for item in value) + "]"
    return str(value)


def _parse_action(expr: str) -> tuple | None:
    if not expr:
        raise ConfigError("missing value for command")
    if _COMMENT.match(expr):
        return None
    match = _INDEX.match(expr)
    if match:
        return ("index", match.group(1), json.loads(f'"{match.group(2)}"'))
    match = _FIELD.match(expr)
    if match:
        return ("field", match.group(1))
    raise ConfigError(f"unsupported template action {expr!r}")


def _parse_template(text: str) -> list[tuple]:
    parts: list[tuple] = []
    pos = 0
    trim_next = False
    for match in _ACTION.finditer(text):
        literal = text[pos:match.start()]
        if trim_next:
            literal = literal.lstrip()
        if match.group(1):
            literal = literal.rstrip()
        if literal:
            parts.append(("text", literal))
        action = _parse_action(match.group(2).strip())
        if action is not None:
            parts.append(action)
        trim_next = bool(match.group(3))
        pos = match.end()
    tail = text[pos:]
    if "{{" in tail:
        raise ConfigError("unclosed action")
    if trim_next:
        tail = tail.lstrip()
    if tail:
        parts.append(("text", tail))
    return parts


def _field_value(payload: FalcoPayload, name: str) -> Any:
    try:
        getter = _FIELDS[name]
    except KeyError:
        raise ValueError(f"can't evaluate field {name}") from None
    return getter(payload)


class MessageTemplate:
    """A compiled message template over a FalcoPayload.

    Supports ``{{ .Field }}``, ``{{ index .OutputFields "key" }}``,
    comments and ``{{-``/``-}}`` whitespace trimming.
    """

    def __init__(self, text: str, name: str = "") -> None:
        self.name = name
        self.text = text
        self._parts = _parse_template(text)

    def render(self, payload: FalcoPayload) -> str:
        """Expand the template for ``payload``; raise ValueError on bad fields."""
        out: list[str] = []
        for part in self._parts:
            kind = part[0]
            if kind == "text":
                out.append(part[1])
            elif kind == "field":
                out.append(_go_format(_field_value(payload, part[1])))
            else:
                container = _field_value(payload, part[1])
                if not isinstance(container, Mapping):
                    raise ValueError(f"can't index item of field {part[1]}")
                key = part[2]
                out.append(_go_format(container[key]) if key in container else "<no value>")
        return "".join(out)

    def __repr__(self) -> str:
        return f"MessageTemplate({self.text!r}, name={self.name!r})"


def compile_template(output: str, text: str) -> MessageTemplate | None:
    """Compile ``text`` for the named output; None when ``text`` is empty."""
    if not text:
        return None
    try:
        return MessageTemplate(text, output)
    except ConfigError as exc:
        raise ConfigError(f"Error compiling {output} message template : {exc}") from exc


# --- value coercion -----------------------------------------------------------

def _opt(key: str, default: Any) -> Any:
    return field(default=default, metadata={"key": key})


def _named(default: Any) -> Any:
    """An option whose key is the field name with underscores removed."""
    return field(default=default, metadata={"key": None})


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "t", "true"):
            return True
        if lowered in ("", "0", "f", "false"):
            return False
    raise ConfigError(f"{name}: cannot parse {value!r} as a boolean")


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if not value.strip():
            return 0
        try:
            return int(value.strip(), 0)
        except ValueError:
            pass
    raise ConfigError(f"{name}: cannot parse {value!r} as an integer")


def _as_str(value: Any, name: str) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return _go_format(value)
    if value is None:
        return ""
    raise ConfigError(f"{name}: cannot use {value!r} as a string")


def _coerce(value: Any, default: Any, name: str) -> Any:
    if isinstance(default, bool):
        return _as_bool(value, name)
    if isinstance(default, int):
        return _as_int(value, name)
    return _as_str(value, name)


def _lower(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"expected a mapping, got {data!r}")
    return {str(key).lower(): value for key, value in data.items()}


def _section(data: Mapping[str, Any], *path: str) -> dict[str, Any]:
    current: Any = data
    for key in path:
        current = _lower(current).get(key)
    return _lower(current)


def _build(cls: type, section: Mapping[str, Any], prefix: str) -> Any:
    values = {}
    for item in fields(cls):
        if "key" not in item.metadata:
            continue
        key = item.metadata["key"] or item.name.replace("_", "")
        if key not in section:
            continue
        values[item.name] = _coerce(section[key], item.default, f"{prefix}{key}")
    return cls(**values)


def _string_map(data: Any, name: str) -> dict[str, str]:
    return {key: _as_str(value, f"{name}.{key}") for key, value in _lower(data).items()}


# --- output sections ----------------------------------------------------------

@dataclass
class AlertmanagerConfig:
    host_port: str = _opt("hostport", "")
    minimum_priority: str = _opt("minimumpriority", "")
    mutual_tls: bool = _opt("mutualtls", False)
    check_cert: bool = _opt("checkcert", True)
    endpoint: str = _opt("endpoint", "/api/v1/alerts")


@dataclass
class DatadogConfig:
    api_key: str = _named("")
    host: str = _opt("host", "https://api.datadoghq.com")
    minimum_priority: str = _opt("minimumpriority", "")
    mutual_tls: bool = _opt("mutualtls", False)
    check_cert: bool = _opt("checkcert", True)


@dataclass
class CliqConfig:
    webhook_url: str = _opt("webhookurl", "")
    icon: str = _opt("icon", constants.DEFAULT_COLOR_ICON_URL)
    output_format: str = _opt("outputformat", constants.ALL)
    use_emoji: bool = _opt("useemoji", False)
    message_format: str = _opt("messageformat", "")
    minimum_priority: str = _opt("minimumpriority", "")
    mutual_tls: bool = _opt("mutualtls", False)
    check_cert: bool = _opt("checkcert", True)
    message_format_template: MessageTemplate | None = field(default=None, compare=False)


@dataclass
class DiscordConfig:
    webhook_url: str = _opt("webhookurl", "")
    minimum_priority: str = _opt("minimumpriority", "")
    icon: str = _opt("icon", constants.DEFAULT_COLOR_ICON_URL)
    mutual_tls: bool = _opt("mutualtls", False)
    check_cert: bool = _opt("checkcert", True)


@dataclass
class ElasticsearchConfig:
    host_port: str = _opt("hostport", "")
    index: str = _opt("index", "falco")
    type: str = _opt("type", "event")
    minimum_priority: str = _opt("minimumpriority", "")
    suffix: str = _opt("suffix", "daily")
    mutual_tls: bool = _opt("mutualtls", False)
    check_cert: bool = _opt("checkcert", True)
    username: str = _opt("username", "")
    password: str = _named("")


@dataclass
class CloudRunConfig:
    endpoint: str = _opt("endpoint", "")
    jwt: str = _opt("jwt", "")
    minimum_priority: str = _opt("minimumpriority", "")


_PRIORITY_SECTIONS = ("alertmanager", "datadog", "cliq", "discord", "elasticsearch", "cloudrun")


@dataclass
class Configuration:
    """The whole daemon configuration."""

    listen_address: str = _opt("listenaddress", "")
    listen_port: int = _opt("listenport", 2801)
    debug: bool = _opt("debug", False)
    mutual_tls_files_path: str = _opt("mutualtlsfilespath", "/etc/certs")
    customfields: dict[str, str] = field(default_factory=dict)
    alertmanager: AlertmanagerConfig = field(default_factory=AlertmanagerConfig)
    datadog: DatadogConfig = field(default_factory=DatadogConfig)
    cliq: CliqConfig = field(default_factory=CliqConfig)
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    elasticsearch: ElasticsearchConfig = field(default_factory=ElasticsearchConfig)
    cloudrun: CloudRunConfig = field(default_factory=CloudRunConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Configuration":
        """Build and validate a configuration from a nested, case-insensitive mapping."""
        top = _lower(data)
        config = _build(cls, top, "")
        config.customfields = _string_map(top.get("customfields"), "customfields")
        config.alertmanager = _build(AlertmanagerConfig, _section(top, "alertmanager"), "alertmanager.")
        config.datadog = _build(DatadogConfig, _section(top, "datadog"), "datadog.")
        config.cliq = _build(CliqConfig, _section(top, "cliq"), "cliq.")
        config.discord = _build(DiscordConfig, _section(top, "discord"), "discord.")
        config.elasticsearch = _build(
            ElasticsearchConfig, _section(top, "elasticsearch"), "elasticsearch."
        )
        config.cloudrun = _build(CloudRunConfig, _section(top, "gcp", "cloudrun"), "gcp.cloudrun.")
        config._finalise()
        return config

    def _finalise(self) -> None:
        if self.listen_port == 0 or self.listen_port > 65536:
            raise ConfigError("Bad port number")
        if self.listen_address:
            try:
                ipaddress.ip_address(self.listen_address)
            except ValueError:
                raise ConfigError("Failed to parse ListenAddress") from None
        for name in _PRIORITY_SECTIONS:
            section = getattr(self, name)
            section.minimum_priority = check_priority(section.minimum_priority)
        self.cliq.message_format_template = compile_template("Cliq", self.cliq.message_format)