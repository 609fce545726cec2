import json
import threading
from datetime import datetime, timezone
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from sidekick.client import Statistics
from sidekick.handlers import Dispatcher, create_server, main, make_test_event
from sidekick.payload import FalcoPayload, Priority, parse_payload
from sidekick.settings import Configuration

VALID_BODY = (
    b'{"output":"This is a test from falcosidekick","priority":"Debug",'
    b'"rule":"Test rule","time":"2001-01-01T01:10:00Z",'
    b'"output_fields":{"proc.name":"falcosidekick"}}'
)


class _Recorder(BaseHTTPRequestHandler):
    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        self.server.received.append((self.path, self.rfile.read(length)))
        self.send_response(200)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


@pytest.fixture
def receiver():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Recorder)
    server.received = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def _url(server):
    return f"http://127.0.0.1:{server.server_address[1]}"


def test_make_test_event_round_trip():
    now = datetime(2001, 1, 1, 1, 10, tzinfo=timezone.utc)
    payload = parse_payload(make_test_event(now))
    assert payload.rule == "Test rule"
    assert payload.priority is Priority.DEBUG
    assert payload.time == now
    assert payload.output_fields["proc.name"] == "falcosidekick"


def test_handle_rejects_non_post():
    dispatcher = Dispatcher(Configuration())
    status, body = dispatcher.handle("GET", VALID_BODY)
    assert status == HTTPStatus.BAD_REQUEST
    assert body == "Please send with post http method\n"
    assert dispatcher.stats.get("requests", "rejected") == 1
    assert dispatcher.stats.get("requests", "total") == 1


def test_handle_rejects_missing_body():
    dispatcher = Dispatcher(Configuration())
    status, body = dispatcher.handle("POST", None)
    assert status == HTTPStatus.BAD_REQUEST
    assert body == "Please send a valid request body\n"


@pytest.mark.parametrize("body", [b"not json", b"", b'{"rule":"x"}'])
def test_handle_rejects_invalid_payload(body):
    dispatcher = Dispatcher(Configuration())
    status, _ = dispatcher.handle("POST", body)
    assert status == HTTPStatus.BAD_REQUEST
    assert dispatcher.stats.get("requests", "accepted") == 0


def test_handle_accepts_valid_payload():
    stats = Statistics()
    dispatcher = Dispatcher(Configuration(), stats)
    status, body = dispatcher.handle("POST", VALID_BODY)
    assert status == HTTPStatus.OK
    assert body == ""
    assert stats.get("requests", "accepted") == 1
    assert stats.get("falco", "debug") == 1


def test_invalid_endpoint_disables_output():
    config = Configuration.from_mapping({"alertmanager": {"hostport": "localhost:9093"}})
    dispatcher = Dispatcher(config)
    assert dispatcher.enabled_outputs == []
    assert dispatcher.forward(FalcoPayload(output="x", rule="Test rule")) == {}


def test_forward_filters_by_priority(receiver):
    config = Configuration.from_mapping(
        {"alertmanager": {"hostport": _url(receiver), "minimumpriority": "critical"}}
    )
    dispatcher = Dispatcher(config)
    low = FalcoPayload(output="o", rule="r", priority=Priority.DEBUG)
    assert dispatcher.forward(low) == {}

    high = FalcoPayload(output="o", rule="r", priority=Priority.CRITICAL)
    pending = dispatcher.forward(high)
    assert list(pending) == ["alertmanager"]
    pending["alertmanager"].result(timeout=10)
    assert dispatcher.stats.get("alertmanager", "ok") == 1
    path, body = receiver.received[0]
    assert path == "/api/v1/alerts"
    assert json.loads(body)[0]["labels"]["rule"] == "r"


def test_forward_always_sends_test_rule(receiver):
    config = Configuration.from_mapping(
        {"alertmanager": {"hostport": _url(receiver), "minimumpriority": "emergency"}}
    )
    dispatcher = Dispatcher(config)
    pending = dispatcher.forward(FalcoPayload(output="o", rule="Test rule", priority=Priority.DEBUG))
    assert "alertmanager" in pending
    pending["alertmanager"].result(timeout=10)
    assert len(receiver.received) == 1


@pytest.fixture
def running_server():
    server = create_server(Dispatcher(Configuration()), "127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_server_ping(running_server):
    response = requests.get(running_server + "/ping", timeout=10)
    assert response.status_code == 200
    assert response.text == "pong\n"


def test_server_health(running_server):
    response = requests.get(running_server + "/healthz", timeout=10)
    assert response.json() == {"status": "ok"}
    assert response.headers["Content-Type"] == "application/json"


def test_server_rejects_invalid_post(running_server):
    response = requests.post(running_server + "/", data=b"{", timeout=10)
    assert response.status_code == 400
    assert response.text == "Please send a valid request body\n"


def test_server_test_endpoint(running_server):
    assert requests.post(running_server + "/test", timeout=10).status_code == 200
    assert requests.get(running_server + "/test", timeout=10).status_code == 400


def test_server_main_endpoint_accepts_event(running_server):
    response = requests.post(running_server + "/", data=VALID_BODY, timeout=10)
    assert response.status_code == 200


def test_main_version(capsys):
    assert main(["--version"]) == 0
    assert capsys.readouterr().out.startswith("sidekick")


def test_main_missing_config_file(tmp_path):
    assert main(["-c", str(tmp_path / "absent.yaml")]) == 1