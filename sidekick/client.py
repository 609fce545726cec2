"""HTTP client shared by the outputs, with per-output delivery statistics."""

from __future__ import annotations

import base64
import json
import logging
import re
import threading
from collections import Counter
from http import HTTPStatus
from typing import Any
from urllib.parse import urlsplit

import requests
from requests.structures import CaseInsensitiveDict

from . import constants
from .payload import FalcoPayload
from .settings import Configuration

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json; charset=utf-8"
CONTENT_TYPE_HEADER = "Content-Type"
USER_AGENT_HEADER = "User-Agent"
AUTHORIZATION_HEADER = "Authorization"
USER_AGENT = "Falcosidekick"

# File names are fixed so that containers and charts can mount them predictably.
MUTUAL_TLS_CLIENT_CERT = "/client.crt"
MUTUAL_TLS_CLIENT_KEY = "/client.key"
MUTUAL_TLS_CA_CERT = "/ca.crt"

_ENDPOINT_RE = re.compile(r"(http|nats)(s?)://.*")
_SUCCESS_CODES = frozenset({200, 201, 202, 204})
_FUNCTION_OUTPUTS = frozenset({constants.KUBELESS, constants.OPENFAAS, constants.FISSION})


class OutputError(Exception):
    """Raised when an event could not be delivered to an output."""

    default_message = "Output error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class HeaderMissingError(OutputError):
    """The output answered 400."""

    default_message = "Header missing"


class ClientAuthenticationError(OutputError):
    """The output answered 401."""

    default_message = "Authentication Error"


class ForbiddenError(OutputError):
    """The output answered 403."""

    default_message = "Access Denied"


class NotFoundError(OutputError):
    """The output answered 404."""

    default_message = "Resource not found"


class UnprocessableEntityError(OutputError):
    """The output answered 422."""

    default_message = "Bad Request"


class TooManyRequestsError(OutputError):
    """The output answered 429."""

    default_message = "Exceeding post rate limit"


class UnexpectedResponseError(OutputError):
    """The output answered with a status that has no dedicated error."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"{status_code} {reason}".rstrip())


class ClientCreationError(OutputError):
    """The client could not be created, usually because of a bad endpoint."""

    default_message = "Client creation Error"


_STATUS_ERRORS: dict[int, type[OutputError]] = {
    400: HeaderMissingError,
    401: ClientAuthenticationError,
    403: ForbiddenError,
    404: NotFoundError,
    422: UnprocessableEntityError,
    429: TooManyRequestsError,
}


class Statistics:
    """Thread-safe counters keyed by output and status."""

    def __init__(self) -> None:
        self._counts: Counter[tuple[str, str]] = Counter()
        self._lock = threading.Lock()

    def add(self, output: str, status: str, count: int = 1) -> None:
        """Increase the counter of ``status`` for ``output``."""
        with self._lock:
            self._counts[(output, status)] += count

    def get(self, output: str, status: str) -> int:
        """Return the counter of ``status`` for ``output``."""
        with self._lock:
            return self._counts[(output, status)]


def _validate_endpoint(url: str) -> None:
    if not _ENDPOINT_RE.search(url):
        raise ClientCreationError("Bad Endpoint")
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url):
        raise ClientCreationError(f"invalid URI for request: {url!r}")
    try:
        parts = urlsplit(url)
        parts.port  # validates the port number
    except ValueError as exc:
        raise ClientCreationError(str(exc)) from exc
    if not parts.scheme or not parts.netloc:
        raise ClientCreationError(f"invalid URI for request: {url!r}")


def _encode(payload: Any) -> str:
    if isinstance(payload, FalcoPayload):
        text = payload.to_json()
    else:
        text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return text + "\n"


def _status_phrase(code: int, fallback: str) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return fallback or ""


class Client:
    """Posts payloads to one output endpoint."""

    def __init__(
        self,
        output_type: str,
        endpoint_url: str,
        config: Configuration | None = None,
        mutual_tls: bool = False,
        check_cert: bool = True,
        stats: Statistics | None = None,
    ) -> None:
        try:
            _validate_endpoint(endpoint_url)
        except ClientCreationError as exc:
            log.error("[ERROR] : %s - %s", output_type, exc)
            raise
        self.output_type = output_type
        self.endpoint_url = endpoint_url
        self.config = config if config is not None else Configuration()
        self.mutual_tls = mutual_tls
        self.check_cert = check_cert
        self.stats = stats if stats is not None else Statistics()
        self.headers: list[tuple[str, str]] = []
        self.content_type = DEFAULT_CONTENT_TYPE

    def _tls_options(self) -> tuple[Any, Any]:
        if self.mutual_tls:
            base = self.config.mutual_tls_files_path
            cert = (base + MUTUAL_TLS_CLIENT_CERT, base + MUTUAL_TLS_CLIENT_KEY)
            return base + MUTUAL_TLS_CA_CERT, cert
        # With mutual TLS enabled the check-cert flag is ignored.
        if not self.check_cert:
            return False, None
        return True, None

    def _request_headers(self) -> CaseInsensitiveDict:
        headers: CaseInsensitiveDict = CaseInsensitiveDict()
        pairs = [(CONTENT_TYPE_HEADER, self.content_type), (USER_AGENT_HEADER, USER_AGENT)]
        for key, value in pairs + self.headers:
            headers[key] = f"{headers[key]}, {value}" if key in headers else value
        return headers

    def post(self, payload: Any) -> None:
        """Send ``payload`` as JSON; raise an OutputError subclass on failure."""
        body = _encode(payload)
        if self.config.debug:
            log.debug("[DEBUG] : %s payload : %s", self.output_type, body)
        verify, cert = self._tls_options()
        try:
            response = requests.post(
                self.endpoint_url,
                data=body.encode("utf-8"),
                headers=self._request_headers(),
                verify=verify,
                cert=cert,
            )
        except (requests.RequestException, OSError) as exc:
            log.error("[ERROR] : %s - %s", self.output_type, exc)
            raise OutputError(str(exc)) from exc

        with response:
            # Headers apply to one request only.
            self.headers = []
            code = response.status_code
            if code in _SUCCESS_CODES:
                log.info("[INFO]  : %s - Post OK (%d)", self.output_type, code)
                if self.output_type in _FUNCTION_OUTPUTS:
                    log.info(
                        "[INFO]  : %s - Function Response : %s", self.output_type, response.text
                    )
                return
            error_cls = _STATUS_ERRORS.get(code)
            if error_cls is not None:
                error = error_cls()
                log.error("[ERROR] : %s - %s (%d)", self.output_type, error, code)
                raise error
            log.error("[ERROR] : %s - Unexpected Response  (%d)", self.output_type, code)
            raise UnexpectedResponseError(code, _status_phrase(code, response.reason))

    def basic_auth(self, username: str, password: str) -> None:
        """Add an HTTP Basic Authorization header for the next request."""
        digest = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        self.add_header(AUTHORIZATION_HEADER, "Basic " + digest)

    def add_header(self, key: str, value: str) -> None:
        """Add a header for the next request."""
        self.headers.append((key, value))

    def record(self, destination: str, status: str) -> None:
        """Count one ``status`` outcome for ``destination``."""
        self.stats.add(destination, status)