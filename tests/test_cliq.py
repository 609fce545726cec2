from unittest.mock import MagicMock, patch

import pytest

from sidekick import constants
from sidekick.cliq import cliq_post, new_cliq_payload
from sidekick.client import Client
from sidekick.payload import Priority, parse_payload
from sidekick.settings import CliqConfig, Configuration, MessageTemplate

FALCO_TEST_INPUT = (
    '{"output":"This is a test from falcosidekick","priority":"Debug","rule":"Test rule", '
    '"time":"2001-01-01T01:10:00Z","output_fields": {"proc.name":"falcosidekick", "proc.tty": 1234}}'
)


def _response(code):
    resp = MagicMock()
    resp.status_code = code
    resp.text = ""
    resp.reason = ""
    return resp


def _config(**kwargs):
    return Configuration(cliq=CliqConfig(**kwargs))


def test_new_cliq_payload():
    expected = {
        "text": "\u26AA Rule: Test rule Priority: Debug",
        "bot": {"name": "Falco Sidekick", "image": constants.DEFAULT_ICON_URL},
        "slides": [
            {"type": "text", "data": "This is a test from falcosidekick"},
            {
                "type": "table",
                "data": {
                    "headers": ["field", "value"],
                    "rows": [
                        {"field": "rule", "value": "Test rule"},
                        {"field": "priority", "value": "Debug"},
                        {"field": "proc.name", "value": "falcosidekick"},
                        {"field": "time", "value": "2001-01-01 01:10:00 +0000 UTC"},
                    ],
                },
            },
        ],
    }
    payload = parse_payload(FALCO_TEST_INPUT)
    config = _config(
        icon=constants.DEFAULT_ICON_URL,
        use_emoji=True,
        message_format_template=MessageTemplate("Rule: {{ .Rule }} Priority: {{ .Priority }}"),
    )
    assert new_cliq_payload(payload, config) == expected


def test_without_template_text_is_output_and_no_text_slide():
    payload = parse_payload(FALCO_TEST_INPUT)
    result = new_cliq_payload(payload, _config())
    assert result["text"] == "This is a test from falcosidekick"
    assert [slide["type"] for slide in result["slides"]] == ["table"]


def test_text_format_without_template_has_no_slides():
    payload = parse_payload(FALCO_TEST_INPUT)
    result = new_cliq_payload(payload, _config(output_format="text"))
    assert "slides" not in result
    assert result["text"] == payload.output


def test_fields_format_with_template_skips_text_slide():
    payload = parse_payload(FALCO_TEST_INPUT)
    config = _config(
        output_format="fields", message_format_template=MessageTemplate("{{ .Rule }}")
    )
    result = new_cliq_payload(payload, config)
    assert result["text"] == "Test rule"
    assert [slide["type"] for slide in result["slides"]] == ["table"]


def test_bad_template_leaves_text_empty():
    payload = parse_payload(FALCO_TEST_INPUT)
    config = _config(message_format_template=MessageTemplate("{{ .Unknown }}"))
    result = new_cliq_payload(payload, config)
    assert result["text"] == ""
    assert [slide["type"] for slide in result["slides"]] == ["table"]


def test_empty_icon_uses_default():
    payload = parse_payload(FALCO_TEST_INPUT)
    result = new_cliq_payload(payload, _config(icon=""))
    assert result["bot"]["image"] == constants.DEFAULT_ICON_URL


@pytest.mark.parametrize(
    "priority, emoji",
    [
        (Priority.EMERGENCY, "\U0001F6A8"),
        (Priority.ALERT, "\U0001F7E0"),
        (Priority.CRITICAL, "\U0001F7E0"),
        (Priority.ERROR, "\U0001F6A8"),
        (Priority.WARNING, "\U0001F7E1"),
        (Priority.NOTICE, "\U0001F535"),
        (Priority.INFORMATIONAL, "\U0001F7E2"),
        (Priority.DEBUG, "\u26AA"),
        (Priority.DEFAULT, "?"),
    ],
)
def test_emoji_by_priority(priority, emoji):
    payload = parse_payload(FALCO_TEST_INPUT)
    payload.priority = priority
    result = new_cliq_payload(payload, _config(use_emoji=True, output_format="text"))
    assert result["text"] == f"{emoji} {payload.output}"


def test_cliq_post_success_records_ok():
    payload = parse_payload(FALCO_TEST_INPUT)
    client = Client("Cliq", "http://localhost/cliq", _config())
    with patch("requests.post", return_value=_response(200)) as post:
        cliq_post(client, payload)
    headers = post.call_args.kwargs["headers"]
    assert "application/json" in [part.strip() for part in headers["Content-Type"].split(",")]
    assert client.stats.get("cliq", constants.TOTAL) == 1
    assert client.stats.get("cliq", constants.OK) == 1
    assert client.stats.get("cliq", constants.ERROR) == 0
    assert client.headers == []


def test_cliq_post_failure_records_error():
    payload = parse_payload(FALCO_TEST_INPUT)
    client = Client("Cliq", "http://localhost/cliq", _config())
    with patch("requests.post", return_value=_response(403)):
        cliq_post(client, payload)
    assert client.stats.get("cliq", constants.ERROR) == 1
    assert client.stats.get("cliq", constants.OK) == 0