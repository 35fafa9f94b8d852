from __future__ import annotations

import grpc

from core.logging_config import get_logger
from grpc_app.schema import CoreServicer, Data


logger = get_logger(__name__, component="server")

REPLY_PREFIX = "Reply for "


def build_reply(message: str) -> str:
    return f"{REPLY_PREFIX}{message}"


class CoreService(CoreServicer):
    async def send(self, request: Data, context: grpc.aio.ServicerContext) -> Data:  # type: ignore[override]
        logger.info("received", message=request.message)
        return Data(message=build_reply(request.message))
