"""Tests for the command-line interface."""

import socket

import pytest
from typer.testing import CliRunner

from supportdesk.cli import app, bind_socket
from supportdesk.exceptions import BindConflict

runner = CliRunner()


@pytest.fixture
def busy_port():
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("127.0.0.1", 0))
    blocker.listen(1)
    yield blocker.getsockname()[1]
    blocker.close()


def test_bind_conflict_when_range_exhausted(busy_port):
    with pytest.raises(BindConflict):
        bind_socket("127.0.0.1", busy_port, 0)


def test_bind_moves_past_busy_port(busy_port):
    sock = bind_socket("127.0.0.1", busy_port, 5)
    try:
        assert sock.getsockname()[1] > busy_port
    finally:
        sock.close()


def test_ask_local(data_dir):
    result = runner.invoke(app, ["ask", "vpn is not working", "--local", "--data-dir", str(data_dir)])
    assert result.exit_code == 0
    assert "network_vpn" in result.output
    assert "VPN setup" in result.output


def test_metrics_local(data_dir):
    result = runner.invoke(app, ["metrics", "--local", "--data-dir", str(data_dir)])
    assert result.exit_code == 0
    assert "deflectionRate" in result.output
