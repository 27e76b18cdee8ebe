"""Tests for the downstream HTTP surface."""
import socket
from unittest.mock import Mock, patch

import pytest
import requests
from fastapi.testclient import TestClient

from staleproxy.config import StalenessConfig, load_config
from staleproxy.server import ListenerError, ListenerGroup, TargetAPI
from staleproxy.target import ScrapeTarget


@pytest.fixture
def client():
    target = ScrapeTarget(9100, staleness=StalenessConfig(start_stale=False))
    return TestClient(TargetAPI(target, 9101).app)


def test_metrics_returns_filtered_text(client):
    upstream = Mock(status_code=200, text="# TYPE up gauge\nup 1\n")
    with patch("staleproxy.target.requests.get", return_value=upstream):
        response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "# HELP up \n# TYPE up gauge\nup 1\n"


def test_metrics_upstream_failure_is_bad_gateway(client):
    with patch("staleproxy.target.requests.get", side_effect=requests.Timeout("timed out")):
        response = client.get("/metrics")

    assert response.status_code == 502


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_status_reports_listen_port(client):
    response = client.get("/status")
    assert response.status_code == 200
    assert response.json()["listen_port"] == 9101
    assert response.json()["cycles"] == 0


def test_internal_metrics(client):
    with patch("staleproxy.target.requests.get", side_effect=requests.ConnectionError("refused")):
        client.get("/metrics")

    response = client.get("/internal/metrics")
    assert response.status_code == 200
    assert "staleproxy_upstream_errors_total 1.0" in response.text


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def local_config(listen_port):
    return load_config(
        ports=[9100, listen_port],
        overrides={"server": {"bind_address": "127.0.0.1"}, "global": {"log_level": "WARNING"}}
    )


def test_listener_group_starts_and_stops():
    group = ListenerGroup(local_config(free_port()))
    group.start(timeout=10)
    try:
        assert all(server.started for server in group.servers)
    finally:
        group.stop()

    assert not any(thread.is_alive() for thread in group.threads)


def test_listener_group_reports_port_in_use():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        port = busy.getsockname()[1]

        group = ListenerGroup(local_config(port))
        with pytest.raises(ListenerError, match=str(port)):
            group.start(timeout=10)
