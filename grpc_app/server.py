from __future__ import annotations

import asyncio
import enum
from typing import Optional, Sequence

import grpc
from grpc_health.v1 import health, health_pb2_grpc, health_pb2

from core.config import settings
from core.exceptions import ServerBindError
from core.logging_config import get_logger
from grpc_app.interceptors.logging import LoggingInterceptor
from grpc_app.schema import SERVICE_NAME, add_CoreServicer_to_server
from grpc_app.services.core_service import CoreService
from infrastructure.security.certificates import CertificateBundle


logger = get_logger(__name__, component="server")


class ServerState(str, enum.Enum):
    UNBOUND = "unbound"
    BINDING = "binding"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def server_credentials(bundle: CertificateBundle) -> grpc.ServerCredentials:
    # The self-signed certificate is both the chain and its own CA
    return grpc.ssl_server_credentials(
        [(bundle.private_key, bundle.certificate)],
        root_certificates=None,
        require_client_auth=False,
    )


def create_server() -> tuple[grpc.aio.Server, health.HealthServicer]:
    interceptors: Sequence[grpc.aio.ServerInterceptor] = (
        LoggingInterceptor(),
    )

    options = [
        # An occupied port must fail the bind instead of being shared
        ("grpc.so_reuseport", 0),
    ]
    server = grpc.aio.server(interceptors=interceptors, options=options)

    add_CoreServicer_to_server(CoreService(), server)

    health_svc = health.HealthServicer()
    health_pb2_grpc.add_HealthServicer_to_server(health_svc, server)
    health_svc.set("", health_pb2.HealthCheckResponse.NOT_SERVING)
    health_svc.set(SERVICE_NAME, health_pb2.HealthCheckResponse.NOT_SERVING)

    return server, health_svc


class SecureServer:
    """TLS gRPC server hosting the `core.Core` service.

    Bind failures are logged and leave the server `STOPPED`; they are not
    raised. `shutdown()` never raises and is safe to call repeatedly.
    """

    def __init__(self, grace: Optional[float] = None) -> None:
        self.grace = settings.grpc.shutdown_grace_s if grace is None else grace
        self.state = ServerState.UNBOUND
        self.address: Optional[str] = None
        self.port: Optional[int] = None
        self.bind_error: Optional[ServerBindError] = None
        self._server: Optional[grpc.aio.Server] = None
        self._health: Optional[health.HealthServicer] = None

    @property
    def is_listening(self) -> bool:
        return self.state is ServerState.LISTENING

    async def start(self, bind_address: str, bundle: CertificateBundle) -> None:
        if self.state is not ServerState.UNBOUND:
            raise RuntimeError(f"server already started (state={self.state.value})")

        logger.info("starting gRPC server", address=bind_address)
        self.state = ServerState.BINDING
        server, health_svc = create_server()
        try:
            port = server.add_secure_port(bind_address, server_credentials(bundle))
            if not port:
                # Older grpcio reports a failed bind as port 0
                raise RuntimeError(f"unable to bind {bind_address}")
            await server.start()
        except Exception as exc:
            self.bind_error = ServerBindError(bind_address, str(exc))
            self.state = ServerState.STOPPED
            logger.error("bind_failed", address=bind_address, error=self.bind_error.message)
            try:
                await server.stop(None)
            except Exception as stop_exc:
                logger.debug("release_after_bind_failure_failed", error=str(stop_exc))
            return

        host = bind_address.rsplit(":", 1)[0]
        self._server = server
        self._health = health_svc
        self.port = port
        self.address = f"{host}:{port}"
        self.state = ServerState.LISTENING
        health_svc.set("", health_pb2.HealthCheckResponse.SERVING)
        health_svc.set(SERVICE_NAME, health_pb2.HealthCheckResponse.SERVING)
        logger.info("gRPC listening", address=self.address)

    async def shutdown(self) -> None:
        if self.state is not ServerState.LISTENING:
            return

        self.state = ServerState.SHUTTING_DOWN
        logger.info("shutting_down", grace=self.grace)
        try:
            if self._health is not None:
                self._health.enter_graceful_shutdown()
            await self._server.stop(self.grace)
        except asyncio.CancelledError:
            logger.warning("shutdown_cancelled", grace=self.grace)
            raise
        except Exception as exc:
            logger.error("Shutdown error", error=str(exc), exc_info=True)
        finally:
            self.state = ServerState.STOPPED
            self._server = None
            logger.info("stopped")
