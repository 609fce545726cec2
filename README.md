# sidekick

`sidekick` is a small daemon that receives Falco security events as JSON over
HTTP and forwards each one to the outputs you have configured:

- Alertmanager (`sidekick.alertmanager`)
- Datadog events (`sidekick.datadog`)
- Zoho Cliq (`sidekick.cliq`)
- Discord (`sidekick.discord`)
- Elasticsearch (`sidekick.elasticsearch`)
- Google Cloud Run (`sidekick.gcpcloudrun`)

Every output has a minimum priority. An event is forwarded to an output only
when its priority is at least that high. The built-in test event, whose rule is
`Test rule`, is always forwarded.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running the daemon

```
sidekick --config-file config.yaml
```

`sidekick --version` prints the version and exits.

By default the daemon listens on port 2801 on all interfaces. It answers:

- `/ping` with `pong`;
- `/healthz` with `{"status": "ok"}`;
- `/test` (POST) by forwarding the built-in test event;
- any other path as the event endpoint.

Events must be sent with the POST method. A request with another method, a
body that is not valid JSON, or a payload without an `output` field is
rejected with status 400.

## Configuration

Settings come from three places, and later ones win:

1. the built-in defaults;
2. a YAML file given with `--config-file`; keys are case-insensitive, and a
   file that does not exist stops the daemon with an error;
3. environment variables, named after the setting path with dots replaced by
   underscores, in upper case, such as `LISTENPORT`, `DEBUG`,
   `ALERTMANAGER_HOSTPORT`, `CLIQ_WEBHOOKURL` or `GCP_CLOUDRUN_JWT`. Empty
   variables are ignored.

The Datadog API key (`datadog.apikey`) and the Elasticsearch password
(`elasticsearch.password`) are read from the configuration file only.

`CUSTOMFIELDS` takes `key:value` pairs separated by commas and adds them to
every event's `output_fields`; entries without exactly one colon are skipped.

An output is enabled when its key setting is set:

| Output        | Section          | Enabled by   | Other settings                                           |
|---------------|------------------|--------------|----------------------------------------------------------|
| Alertmanager  | `alertmanager`   | `hostport`   | `endpoint` (default `/api/v1/alerts`)                    |
| Datadog       | `datadog`        | `apikey`     | `host` (default `https://api.datadoghq.com`)             |
| Cliq          | `cliq`           | `webhookurl` | `icon`, `outputformat`, `useemoji`, `messageformat`      |
| Discord       | `discord`        | `webhookurl` | `icon`                                                   |
| Elasticsearch | `elasticsearch`  | `hostport`   | `index`, `type`, `suffix`, `username`, `password`        |
| Cloud Run     | `gcp.cloudrun`   | `endpoint`   | `jwt`, sent as a Bearer token                            |

Each section also has `minimumpriority`; all but Cloud Run have `mutualtls`
and `checkcert`. With mutual TLS, the client certificate, key and CA are read
from `client.crt`, `client.key` and `ca.crt` in `mutualtlsfilespath`
(default `/etc/certs`). Elasticsearch writes to a daily index by default;
`suffix` may also be `monthly`, `annually` or `none`.

A minimum priority is one of `emergency`, `alert`, `critical`, `error`,
`warning`, `notice`, `informational` or `debug`, in any case. Any other value
is treated as empty, which lets every event through.

The Cliq output accepts a message template, for example
`Rule: {{ .Rule }} Priority: {{ .Priority }}`. Templates support fields
(`.Output`, `.Priority`, `.Rule`, `.Time`, `.OutputFields`),
`{{ index .OutputFields "key" }}`, comments and `{{-`/`-}}` trimming. A
template that does not compile raises `ConfigError`, and the daemon exits with
an error.

## Using it as a library

```python
from sidekick.client import Statistics
from sidekick.config import load_config
from sidekick.handlers import Dispatcher, create_server

config = load_config("config.yaml", {"ALERTMANAGER_HOSTPORT": "http://localhost:9093"})
stats = Statistics()
dispatcher = Dispatcher(config, stats)

server = create_server(dispatcher, "127.0.0.1", 2801)
server.serve_forever()
```

Events can also be parsed and dispatched without a server:

```python
from sidekick.payload import parse_payload

event = parse_payload(
    b'{"output": "shell spawned", "priority": "Warning", "rule": "Terminal shell",'
    b' "time": "2001-01-01T01:10:00Z", "output_fields": {"proc.name": "bash"}}',
    {"cluster": "staging"},
)
pending = dispatcher.forward(event)  # futures keyed by output name
```

`Dispatcher.handle(method, body)` processes one request and returns its HTTP
status and body text; `make_test_event()` returns the body of the test event.

Each output exposes the function that builds its request body, such as
`new_alertmanager_payload`, `new_datadog_payload`, `new_cliq_payload` and
`new_discord_payload`, and `sidekick.elasticsearch.elasticsearch_url` gives the
index URL for a given time.

`Client.post` raises subclasses of `sidekick.client.OutputError`, such as
`NotFoundError` or `TooManyRequestsError`. The output functions catch them and
count each delivery in `Statistics` under the output's name with the status
`total`, `ok` or `error`.

## What it does not do

- It forwards only to the six outputs listed above.
- Counters live in memory in `Statistics`; nothing exports them as metrics.
- There is no setting for custom webhook headers or other extra request data
  beyond what each output above describes.