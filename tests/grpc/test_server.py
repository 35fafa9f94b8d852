import pytest

from grpc_app.server import SecureServer, ServerState


async def test_start_reports_bound_port(bundle):
    server = SecureServer(grace=0)
    assert server.state is ServerState.UNBOUND

    await server.start("127.0.0.1:0", bundle)
    try:
        assert server.state is ServerState.LISTENING
        assert server.port and server.port > 0
        assert server.address == f"127.0.0.1:{server.port}"
    finally:
        await server.shutdown()
    assert server.state is ServerState.STOPPED


def test_bind_failure_is_logged_not_raised(run_isolated):
    result = run_isolated("occupied")

    assert result["state"] == ServerState.STOPPED.value
    assert result["error_type"] == "ServerBind"
    assert result["error_address"] == result["expected_address"]
    assert result["port"] is None


def test_second_server_on_same_port_fails(run_isolated):
    result = run_isolated("second_server")

    assert result["state"] == ServerState.STOPPED.value
    assert result["has_error"]
    assert result["first_listening"]


async def test_shutdown_is_idempotent(bundle):
    server = SecureServer(grace=0)
    await server.start("127.0.0.1:0", bundle)

    await server.shutdown()
    await server.shutdown()
    assert server.state is ServerState.STOPPED


async def test_shutdown_without_start_is_noop():
    server = SecureServer()
    await server.shutdown()
    assert server.state is ServerState.UNBOUND


async def test_start_twice_is_rejected(secure_server, bundle):
    with pytest.raises(RuntimeError):
        await secure_server.start("127.0.0.1:0", bundle)
