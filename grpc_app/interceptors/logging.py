from __future__ import annotations

import time
from typing import Callable, Awaitable

import grpc

from core.logging_config import get_logger


logger = get_logger(__name__, component="server")


class LoggingInterceptor(grpc.aio.ServerInterceptor):
    async def intercept_service(
        self,
        continuation: Callable[[grpc.HandlerCallDetails], Awaitable[grpc.RpcMethodHandler]],
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        handler = await continuation(handler_call_details)
        if handler is None:
            return handler

        method = handler_call_details.method
        # Health checks are served by a sync servicer; leave them untouched
        if not handler.unary_unary or method.startswith("/grpc.health."):
            return handler

        async def _unary_unary(request, context: grpc.aio.ServicerContext):
            start = time.perf_counter()
            peer = context.peer() if hasattr(context, "peer") else None
            logger.debug("grpc_request", method=method, peer=peer)
            try:
                return await handler.unary_unary(request, context)
            except (grpc.RpcError, grpc.aio.AbortError):
                # Aborted with a status already
                raise
            except Exception as exc:
                logger.error("grpc_unhandled_error", method=method, error=str(exc), exc_info=True)
                raise
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                logger.debug("grpc_request_done", method=method, elapsed_ms=round(elapsed_ms, 2))

        return grpc.unary_unary_rpc_method_handler(
            _unary_unary,
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )
