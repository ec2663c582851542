"""
Pytest configuration for unit tests.

Provides fake service executables and free ports for supervisor tests.
"""
import os
import socket
import stat
import sys

import pytest


# Node settings that would leak into config tests from the developer's shell
for _name in list(os.environ):
    if _name.startswith("CARTESI_"):
        del os.environ[_name]


FAKE_SERVICE_TEMPLATE = '''#!{python}
import signal
import socket
import sys
import time

PORT = {port!r}
DELAY = {delay!r}
EXIT_CODE = {exit_code!r}

if {ignore_sigterm!r}:
    signal.signal(signal.SIGTERM, signal.SIG_IGN)

time.sleep(DELAY)

if EXIT_CODE is not None:
    sys.exit(EXIT_CODE)

if PORT is None:
    while True:
        time.sleep(1)

server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
server.bind(("127.0.0.1", PORT))
server.listen()
while True:
    conn, _ = server.accept()
    conn.close()
'''


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def free_port():
    """A TCP port nothing is listening on."""
    return _free_port()


@pytest.fixture
def free_port_factory():
    """Factory returning distinct free TCP ports."""
    used = set()

    def _make():
        port = _free_port()
        while port in used:
            port = _free_port()
        used.add(port)
        return port

    return _make


@pytest.fixture
def fake_bin_dir(tmp_path, monkeypatch):
    """Directory for fake service binaries, prepended to PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return bin_dir


@pytest.fixture
def make_fake_service(fake_bin_dir):
    """
    Factory writing a fake service executable onto PATH.

    The fake service sleeps for `delay` seconds, then either exits with
    `exit_code` or listens on `port` until killed.
    """
    def _make(binary_name, port=None, delay=0.0, exit_code=None, ignore_sigterm=False):
        script = fake_bin_dir / binary_name
        script.write_text(FAKE_SERVICE_TEMPLATE.format(
            python=sys.executable,
            port=port,
            delay=delay,
            exit_code=exit_code,
            ignore_sigterm=ignore_sigterm
        ))
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make
