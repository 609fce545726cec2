import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from sidekick.client import Client
from sidekick.datadog import datadog_post, new_datadog_payload
from sidekick.payload import FalcoPayload, Priority, parse_payload
from sidekick.settings import Configuration

FALCO_TEST_INPUT = (
    '{"output":"This is a test from falcosidekick","priority":"Debug","rule":"Test rule", '
    '"time":"2001-01-01T01:10:00Z","output_fields": {"proc.name":"falcosidekick", "proc.tty": 1234}}'
)


class _Handler(BaseHTTPRequestHandler):
    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        self.server.bodies.append(self.rfile.read(length))
        stripped = self.path.strip("/")
        code = int(stripped) if stripped.isdigit() else 200
        self.send_response(code)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.bodies = []
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


def _url(httpd, path=""):
    return f"http://127.0.0.1:{httpd.server_address[1]}{path}"


def test_new_datadog_payload():
    expected = json.loads(
        '{"title":"Test rule","text":"This is a test from falcosidekick","alert_type":"info",'
        '"source_type_name":"falco","tags":["proc.name:falcosidekick"]}'
    )
    payload = parse_payload(FALCO_TEST_INPUT)
    assert json.loads(json.dumps(new_datadog_payload(payload))) == expected


@pytest.mark.parametrize(
    "priority, alert_type",
    [
        (Priority.EMERGENCY, "error"),
        (Priority.ALERT, "error"),
        (Priority.CRITICAL, "error"),
        (Priority.ERROR, "error"),
        (Priority.WARNING, "warning"),
        (Priority.NOTICE, "info"),
        (Priority.DEBUG, "info"),
    ],
)
def test_alert_type(priority, alert_type):
    payload = FalcoPayload(rule="r", priority=priority)
    assert new_datadog_payload(payload)["alert_type"] == alert_type


def test_empty_fields_are_omitted():
    assert new_datadog_payload(FalcoPayload()) == {
        "alert_type": "info",
        "source_type_name": "falco",
    }


def test_datadog_post_success(server):
    client = Client("Datadog", _url(server), Configuration())
    datadog_post(client, parse_payload(FALCO_TEST_INPUT))
    assert client.stats.get("datadog", "total") == 1
    assert client.stats.get("datadog", "ok") == 1
    assert json.loads(server.bodies[0])["title"] == "Test rule"


def test_datadog_post_error(server):
    client = Client("Datadog", _url(server, "/401"), Configuration())
    datadog_post(client, parse_payload(FALCO_TEST_INPUT))
    assert client.stats.get("datadog", "total") == 1
    assert client.stats.get("datadog", "error") == 1
    assert client.stats.get("datadog", "ok") == 0