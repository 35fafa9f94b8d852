"""`core.Core` service definition, compiled from `protos/core.proto`.

The .proto is compiled at import time with grpcio-tools, so the shipped file
is the single source of the schema. The module-level names match the ones
protoc emits in `core_pb2` / `core_pb2_grpc`.
"""

from __future__ import annotations

import grpc


PROTO_PATH = "grpc_app/protos/core.proto"

core_pb2, core_pb2_grpc = grpc.protos_and_services(PROTO_PATH)

Data = core_pb2.Data
CoreStub = core_pb2_grpc.CoreStub
CoreServicer = core_pb2_grpc.CoreServicer
add_CoreServicer_to_server = core_pb2_grpc.add_CoreServicer_to_server

SERVICE_NAME = core_pb2.DESCRIPTOR.services_by_name["Core"].full_name
SEND_METHOD = f"/{SERVICE_NAME}/send"
