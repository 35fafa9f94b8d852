"""Pytest bootstrap configuration.

Shared certificate and port fixtures for the TLS tests. Certificates are
generated once per session since RSA key generation dominates test time.
"""
import json
import os
import socket
import subprocess
import sys
from pathlib import Path

import pytest

# Console renderer for readable test output
os.environ.setdefault("DEBUG", "true")

from infrastructure.security.certificates import CertificateBundle, generate  # noqa: E402


ROOT = Path(__file__).resolve().parents[1]
BIND_FAILURE_RUNNER = Path(__file__).with_name("bind_failure_runner.py")


@pytest.fixture(scope="session")
def bundle() -> CertificateBundle:
    return generate()


@pytest.fixture(scope="session")
def foreign_bundle() -> CertificateBundle:
    """A second, unrelated self-signed certificate with the same subject."""
    return generate()


@pytest.fixture
def occupied_port():
    """A loopback port held by a plain listening socket for the test's duration."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


@pytest.fixture
def run_isolated():
    """Run a `bind_failure_runner.py` scenario in a child interpreter.

    A server whose bind failed is never created inside the pytest process.
    Returns the scenario's JSON result; a non-zero exit fails the test.
    """
    def _run(scenario: str) -> dict:
        pythonpath = os.pathsep.join(filter(None, [str(ROOT), os.environ.get("PYTHONPATH")]))
        proc = subprocess.run(
            [sys.executable, str(BIND_FAILURE_RUNNER), scenario],
            cwd=ROOT,
            env=dict(os.environ, PYTHONPATH=pythonpath),
            capture_output=True,
            text=True,
            timeout=60,
        )
        assert proc.returncode == 0, proc.stderr
        return json.loads(proc.stdout.strip().splitlines()[-1])

    return _run
