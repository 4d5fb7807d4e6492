#!/usr/bin/env python3
"""Tests for the startup sequence: credentials, local server, tunnel, readiness."""

import sys
import os
import asyncio
import json

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from devtunnel import runner
from devtunnel.config import ConfigResolver, ServeSettings
from devtunnel.errors import BindError, ConfigurationError
from devtunnel.readiness import ReadinessNotifier
from devtunnel.runner import TunnelSession, main_serve, print_summary
from devtunnel.server.listener import bind_socket
from devtunnel.tunnel import TunnelHandle


class LiveCheckingProvider:
    """Fake provider that fetches the artifact through the local port when asked for a tunnel."""

    def __init__(self, public_url="https://abc123.ngrok-free.app"):
        self.public_url = public_url
        self.calls = []
        self.fetched = None
        self.closed = False

    def open(self, local_port, auth_token, domain=None):
        self.calls.append((local_port, auth_token, domain))
        self.fetched = httpx.get(f"http://127.0.0.1:{local_port}/dist.zip", timeout=5)
        return TunnelHandle(public_url=self.public_url, close=self.close)

    def close(self):
        self.closed = True


class StopServing(Exception):
    pass


class RecordingNotifier:
    def __init__(self):
        self.notified = False

    def notify(self):
        self.notified = True
        raise StopServing()


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    (root / "dist.zip").write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    return root


@pytest.fixture
def ngrok_config(tmp_path):
    path = tmp_path / "ngrok.yml"
    path.write_text("agent:\n  authtoken: tok-123\n  domain: acode-prettier.ngrok-free.app\n")
    return path


def make_settings(project, **overrides):
    defaults = dict(project_root=project, host="127.0.0.1", port=0)
    defaults.update(overrides)
    return ServeSettings(**defaults)


def test_tunnel_opens_after_server_accepts(project, ngrok_config):
    provider = LiveCheckingProvider(public_url="https://acode-prettier.ngrok-free.app")
    session = TunnelSession(make_settings(project), ConfigResolver([ngrok_config]), provider)

    async def run():
        try:
            url = await session.start()
            return url, session.local_port
        finally:
            await session.close()

    url, port = asyncio.run(run())

    assert url == "https://acode-prettier.ngrok-free.app/dist.zip"
    assert provider.calls == [(port, "tok-123", "acode-prettier.ngrok-free.app")]
    assert provider.fetched.status_code == 200
    assert provider.fetched.content == b"PK\x05\x06" + b"\x00" * 18
    assert provider.closed


def test_missing_token_never_binds(project, tmp_path, monkeypatch):
    bound = []
    monkeypatch.setattr(runner, "bind_socket", lambda host, port: bound.append((host, port)))
    provider = LiveCheckingProvider()
    session = TunnelSession(make_settings(project), ConfigResolver([tmp_path / "missing.yml"]), provider)

    with pytest.raises(ConfigurationError):
        asyncio.run(session.start())

    assert bound == []
    assert provider.calls == []


def test_bind_error_when_port_taken():
    sock = bind_socket("127.0.0.1", 0)
    sock.listen(1)
    try:
        port = sock.getsockname()[1]
        with pytest.raises(BindError) as excinfo:
            # SO_REUSEADDR does not allow two listeners on one port
            bind_socket("127.0.0.1", port).listen(1)
        assert str(port) in str(excinfo.value)
    finally:
        sock.close()


def test_main_serve_summarises_then_notifies_and_cleans_up(project, ngrok_config, capsys):
    provider = LiveCheckingProvider()
    notifier = RecordingNotifier()
    settings = make_settings(project, artifact="build/plugin.zip")

    with pytest.raises(StopServing):
        asyncio.run(main_serve(settings, ConfigResolver([ngrok_config]), provider, notifier))

    out = capsys.readouterr().out
    assert "Local server running on port" in out
    assert "Using static domain: acode-prettier.ngrok-free.app" in out
    assert "https://abc123.ngrok-free.app/build/plugin.zip" in out
    assert "TIP" not in out
    assert notifier.notified
    assert provider.closed


def test_summary_without_domain_shows_tip(project, capsys):
    session = TunnelSession(make_settings(project), ConfigResolver([]), LiveCheckingProvider())
    session.provider_config = None
    session.tunnel = TunnelHandle(public_url="https://ephemeral.ngrok-free.app", close=lambda: None)

    print_summary(session)

    out = capsys.readouterr().out
    assert "https://ephemeral.ngrok-free.app/dist.zip" in out
    assert "TIP: URL changes each time on free plan." in out
    assert "https://dashboard.ngrok.com/domains" in out
    assert "Settings → Plugins → + → REMOTE" in out


def test_readiness_on_explicit_fd():
    read_fd, write_fd = os.pipe()
    try:
        notifier = ReadinessNotifier.from_environment(environ={}, ready_fd=write_fd)

        assert notifier.supervised
        assert notifier.notify()
        assert not notifier.notify()
        assert os.read(read_fd, 100) == b"OK\n"
    finally:
        os.close(read_fd)
        os.close(write_fd)


def test_readiness_on_node_ipc_channel():
    read_fd, write_fd = os.pipe()
    try:
        notifier = ReadinessNotifier.from_environment(environ={"NODE_CHANNEL_FD": str(write_fd)})

        assert notifier.notify()
        line = os.read(read_fd, 100)
        assert line.endswith(b"\n")
        assert json.loads(line) == "OK"
    finally:
        os.close(read_fd)
        os.close(write_fd)


def test_readiness_without_parent_is_noop():
    notifier = ReadinessNotifier.from_environment(environ={})

    assert not notifier.supervised
    assert not notifier.notify()


def test_readiness_write_failure_is_not_fatal():
    """Parent already gone: the pipe is broken but serving carries on"""
    read_fd, write_fd = os.pipe()
    os.close(read_fd)
    try:
        notifier = ReadinessNotifier(fd=write_fd)
        assert not notifier.notify()
        assert not notifier.notified
    finally:
        os.close(write_fd)
