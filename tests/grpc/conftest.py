import pytest

from grpc_app.client import SecureClient
from grpc_app.server import SecureServer


@pytest.fixture
async def secure_server(bundle):
    """TLS server on an ephemeral loopback port."""
    server = SecureServer(grace=0)
    await server.start("127.0.0.1:0", bundle)
    assert server.is_listening
    try:
        yield server
    finally:
        await server.shutdown()


@pytest.fixture
async def ready_client(secure_server, bundle):
    client = SecureClient(send_timeout=2.0, close_grace=0)
    await client.connect(f"ipv4:127.0.0.1:{secure_server.port}", bundle)
    await client.wait_for_ready(5.0)
    try:
        yield client
    finally:
        await client.close()
