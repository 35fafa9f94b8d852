from pathlib import Path

import grpc
import pytest
from grpc_health.v1 import health_pb2, health_pb2_grpc

from grpc_app.client import channel_credentials
from grpc_app.schema import PROTO_PATH, SERVICE_NAME, CoreStub, Data, core_pb2
from grpc_app.services.core_service import CoreService, build_reply


pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    "message",
    ["", "Message No. 1", "a,b;c|d\n\te", "Reply for x", "ünïcødé ✓", "x" * 10_000],
)
async def test_handler_prefixes_reply(message):
    reply = await CoreService().send(Data(message=message), None)
    assert reply.message == "Reply for " + message
    assert build_reply(message) == reply.message


async def test_end_to_end_over_tls(ready_client):
    reply = await ready_client.send("Message No. 1")
    assert reply.message == "Reply for Message No. 1"


async def test_localhost_name_validates(secure_server, bundle):
    async with grpc.aio.secure_channel(f"localhost:{secure_server.port}", channel_credentials(bundle)) as channel:
        reply = await CoreStub(channel).send(Data(message="hi"), timeout=5, wait_for_ready=True)
    assert reply.message == "Reply for hi"


async def test_health_reports_serving(secure_server, bundle):
    async with grpc.aio.secure_channel(f"127.0.0.1:{secure_server.port}", channel_credentials(bundle)) as channel:
        stub = health_pb2_grpc.HealthStub(channel)
        overall = await stub.Check(health_pb2.HealthCheckRequest(service=""), timeout=5)
        core = await stub.Check(health_pb2.HealthCheckRequest(service=SERVICE_NAME), timeout=5)
    assert overall.status == health_pb2.HealthCheckResponse.SERVING
    assert core.status == health_pb2.HealthCheckResponse.SERVING


async def test_schema_is_compiled_from_shipped_proto():
    proto = Path(__file__).resolve().parents[2] / PROTO_PATH
    assert proto.is_file()
    assert core_pb2.DESCRIPTOR.name == PROTO_PATH
    assert core_pb2.DESCRIPTOR.package == "core"

    method = core_pb2.DESCRIPTOR.services_by_name["Core"].methods_by_name["send"]
    assert method.input_type.full_name == "core.Data"
    assert method.output_type.full_name == "core.Data"
    assert SERVICE_NAME == "core.Core"

    field = Data.DESCRIPTOR.fields_by_name["message"]
    assert field.number == 1
    assert field.type == field.TYPE_STRING
    # field 1, wire type 2 (length-delimited)
    assert Data(message="hi").SerializeToString() == b"\x0a\x02hi"
