"""Request handling, event dispatch to the outputs and the HTTP server."""

from __future__ import annotations

import argparse
import json
import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from importlib.metadata import PackageNotFoundError, version
from typing import Callable, NamedTuple
from urllib.parse import urlsplit

from . import constants
from .alertmanager import alertmanager_post
from .client import Client, ClientCreationError, Statistics
from .cliq import cliq_post
from .config import load_config
from .datadog import DATADOG_PATH, datadog_post
from .discord import discord_post
from .elasticsearch import elasticsearch_post
from .gcpcloudrun import cloudrun_post
from .payload import FalcoPayload, Priority, parse_payload
from .settings import ConfigError, Configuration

log = logging.getLogger(__name__)

TEST_RULE = "Test rule"
REQUESTS = "requests"
FALCO = "falco"

INVALID_BODY = "Please send a valid request body\n"
NOT_POST = "Please send with post http method\n"


class _Output(NamedTuple):
    name: str
    client: Client
    minimum_priority: Priority
    send: Callable[[Client, FalcoPayload], None]


class _Spec(NamedTuple):
    name: str
    output_type: str
    enabled_by: str
    url: str
    mutual_tls: bool
    check_cert: bool
    minimum_priority: str
    send: Callable[[Client, FalcoPayload], None]


def _specs(config: Configuration) -> list[_Spec]:
    am, dd, cq, dc = config.alertmanager, config.datadog, config.cliq, config.discord
    es, cr = config.elasticsearch, config.cloudrun
    return [
        _Spec("alertmanager", "AlertManager", am.host_port, am.host_port + am.endpoint,
              am.mutual_tls, am.check_cert, am.minimum_priority, alertmanager_post),
        _Spec("datadog", "Datadog", dd.api_key, f"{dd.host}{DATADOG_PATH}?api_key={dd.api_key}",
              dd.mutual_tls, dd.check_cert, dd.minimum_priority, datadog_post),
        _Spec("cliq", "Cliq", cq.webhook_url, cq.webhook_url,
              cq.mutual_tls, cq.check_cert, cq.minimum_priority, cliq_post),
        _Spec("discord", "Discord", dc.webhook_url, dc.webhook_url,
              dc.mutual_tls, dc.check_cert, dc.minimum_priority, discord_post),
        _Spec("elasticsearch", "Elasticsearch", es.host_port, es.host_port,
              es.mutual_tls, es.check_cert, es.minimum_priority, elasticsearch_post),
        _Spec("gcpcloudrun", "GCPCloudRun", cr.endpoint, cr.endpoint,
              False, True, cr.minimum_priority, cloudrun_post),
    ]


class Dispatcher:
    """Accepts events and forwards them to every enabled output."""

    def __init__(self, config: Configuration, stats: Statistics | None = None) -> None:
        self.config = config
        self.stats = stats if stats is not None else Statistics()
        self._executor = ThreadPoolExecutor(max_workers=32, thread_name_prefix="output")
        self._outputs: list[_Output] = []
        for spec in _specs(config):
            if not spec.enabled_by:
                continue
            try:
                client = Client(spec.output_type, spec.url, config,
                                spec.mutual_tls, spec.check_cert, self.stats)
            except ClientCreationError:
                log.error("[ERROR] : %s - output disabled", spec.output_type)
                continue
            self._outputs.append(
                _Output(spec.name, client, Priority.parse(spec.minimum_priority), spec.send)
            )
        self.enabled_outputs = [output.name for output in self._outputs]

    def forward(self, payload: FalcoPayload) -> dict[str, Future]:
        """Send ``payload`` to every matching output; return the pending sends by name."""
        pending: dict[str, Future] = {}
        for output in self._outputs:
            if payload.priority >= output.minimum_priority or payload.rule == TEST_RULE:
                pending[output.name] = self._executor.submit(output.send, output.client, payload)
        return pending

    def _reject(self, message: str) -> tuple[HTTPStatus, str]:
        self.stats.add(REQUESTS, constants.REJECTED)
        return HTTPStatus.BAD_REQUEST, message

    def _decode(self, body: bytes | str) -> FalcoPayload:
        payload = parse_payload(body, self.config.customfields)
        self.stats.add(FALCO, str(payload.priority).lower())
        if self.config.debug:
            log.debug("[DEBUG] : Falco's payload : %s", payload.to_json())
        return payload

    def handle(self, method: str, body: bytes | str | None) -> tuple[HTTPStatus, str]:
        """Process one request to the main endpoint; return its status and body."""
        self.stats.add(REQUESTS, constants.TOTAL)
        if body is None:
            return self._reject(INVALID_BODY)
        if method != "POST":
            return self._reject(NOT_POST)
        try:
            payload = self._decode(body)
        except ValueError as exc:
            log.debug("[DEBUG] : invalid request body : %s", exc)
            return self._reject(INVALID_BODY)
        if not payload.output:
            return self._reject(INVALID_BODY)
        self.stats.add(REQUESTS, constants.ACCEPTED)
        self.forward(payload)
        return HTTPStatus.OK, ""


def make_test_event(now: datetime | None = None) -> bytes:
    """Return the body of the built-in test event."""
    now = now if now is not None else datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    event = {
        "output": "This is a test from falcosidekick",
        "priority": "Debug",
        "rule": TEST_RULE,
        "time": stamp,
        "output_fields": {"proc.name": "falcosidekick", "user.name": "falcosidekick"},
    }
    return json.dumps(event).encode("utf-8")


class _Server(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], dispatcher: Dispatcher) -> None:
        self.dispatcher = dispatcher
        super().__init__(address, _RequestHandler)


class _RequestHandler(BaseHTTPRequestHandler):
    server: _Server

    def _respond(self, status: int, body: str, content_type: str) -> None:
        data = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        return self.rfile.read(length) if length > 0 else b""

    def _serve(self) -> None:
        path = urlsplit(self.path).path
        if path == "/ping":
            self._respond(HTTPStatus.OK, "pong\n", "text/plain; charset=utf-8")
            return
        if path == "/healthz":
            self._respond(HTTPStatus.OK, '{"status": "ok"}', "application/json")
            return
        body = self._read_body()
        if path == "/test":
            body = make_test_event()
        status, text = self.server.dispatcher.handle(self.command, body)
        self._respond(status, text, "text/plain; charset=utf-8")

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = _serve

    def log_message(self, format: str, *args: object) -> None:
        log.debug("%s - %s", self.address_string(), format % args)


def create_server(dispatcher: Dispatcher, address: str = "", port: int = 2801) -> ThreadingHTTPServer:
    """Create (but do not start) the HTTP server for ``dispatcher``."""
    return _Server((address, port), dispatcher)


def _version_string() -> str:
    try:
        number = version("sidekick")
    except PackageNotFoundError:
        number = "unknown"
    return f"sidekick {number}"


def main(argv: list[str] | None = None) -> int:
    """Run the daemon."""
    parser = argparse.ArgumentParser(prog="sidekick")
    parser.add_argument("-c", "--config-file", help="config file")
    parser.add_argument("-v", "--version", action="store_true", help="show the version")
    args = parser.parse_args(argv)

    if args.version:
        print(_version_string())
        return 0

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        config = load_config(args.config_file, os.environ)
    except ConfigError as exc:
        log.error("[ERROR] : %s", exc)
        return 1
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    dispatcher = Dispatcher(config)
    log.info("[INFO]  : Enabled Outputs : %s", dispatcher.enabled_outputs)
    server = create_server(dispatcher, config.listen_address, config.listen_port)
    log.info("[INFO]  : Falco Sidekick is up and listening on %s:%d",
             config.listen_address, config.listen_port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
    return 0