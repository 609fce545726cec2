"""Receive Falco events over HTTP and forward them to Alertmanager, Datadog, Cliq, Discord, Elasticsearch and Cloud Run."""

__version__ = "0.1.0"