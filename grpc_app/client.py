from __future__ import annotations

import asyncio
import contextlib
import enum
from typing import Optional

import grpc

from core.config import MAX_RECONNECT_BACKOFF_CEILING_MS, settings
from core.exceptions import ChannelClosedError, ChannelException, ChannelNotReadyError, SendError
from core.logging_config import get_logger
from grpc_app.schema import CoreStub, Data
from infrastructure.security.certificates import CertificateBundle


logger = get_logger(__name__, component="client")

MESSAGE_TEMPLATE = "Message No. {}"


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


def channel_credentials(bundle: CertificateBundle) -> grpc.ChannelCredentials:
    # Trust exactly the generated certificate; the system store is never consulted
    return grpc.ssl_channel_credentials(root_certificates=bundle.certificate)


class SecureClient:
    """TLS client for `core.Core` with a readiness deadline and a periodic sender.

    Connection establishment failure is terminal for the client: the caller
    is expected to tear down rather than retry. Retries only happen inside the
    transport's own reconnect backoff while `wait_for_ready` is pending.
    """

    def __init__(
        self,
        send_timeout: Optional[float] = None,
        close_grace: Optional[float] = None,
    ) -> None:
        self.send_timeout = settings.grpc.send_timeout_s if send_timeout is None else send_timeout
        self.close_grace = settings.grpc.shutdown_grace_s if close_grace is None else close_grace
        self.state = ConnectionState.DISCONNECTED
        self.target: Optional[str] = None
        self.counter = 0
        self.in_flight = 0
        self.last_reply: Optional[str] = None
        self._channel: Optional[grpc.aio.Channel] = None
        self._stub: Optional[CoreStub] = None
        self._periodic: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def periodic_task(self) -> Optional[asyncio.Task]:
        return self._periodic

    async def connect(
        self,
        target: str,
        bundle: CertificateBundle,
        max_reconnect_backoff_ms: int = MAX_RECONNECT_BACKOFF_CEILING_MS,
    ) -> None:
        if not 0 < max_reconnect_backoff_ms <= MAX_RECONNECT_BACKOFF_CEILING_MS:
            raise ValueError(
                f"max_reconnect_backoff_ms must be in (0, {MAX_RECONNECT_BACKOFF_CEILING_MS}], "
                f"got {max_reconnect_backoff_ms}"
            )
        if self.state is not ConnectionState.DISCONNECTED:
            raise RuntimeError(f"client already used (state={self.state.value})")

        logger.info("Attempting connection", target=target)
        options = [
            ("grpc.initial_reconnect_backoff_ms", min(1_000, max_reconnect_backoff_ms)),
            ("grpc.max_reconnect_backoff_ms", max_reconnect_backoff_ms),
        ]
        self._channel = grpc.aio.secure_channel(target, channel_credentials(bundle), options=options)
        self._stub = CoreStub(self._channel)
        self.target = target
        self.state = ConnectionState.CONNECTING

    async def wait_for_ready(self, timeout: Optional[float] = None) -> None:
        """Suspend until the channel is READY.

        Returns immediately when already ready. On timeout the channel is
        closed and `ChannelNotReadyError` is raised; nothing may be sent after.
        """
        if timeout is None:
            timeout = settings.grpc.ready_timeout_s
        if self.state is ConnectionState.READY:
            return
        if self.state is not ConnectionState.CONNECTING:
            raise ChannelClosedError(self.target)

        try:
            await asyncio.wait_for(self._channel.channel_ready(), timeout)
        except asyncio.TimeoutError:
            error = ChannelNotReadyError(self.target, timeout)
            logger.error("Failed to connect to server", target=self.target, error=error.message)
            await self.close()
            raise error from None
        except Exception as exc:
            if self.state is ConnectionState.CLOSED:
                raise ChannelClosedError(self.target) from exc
            raise

        self.state = ConnectionState.READY
        logger.info("Connected to server", target=self.target)

    async def send(self, message: str) -> Data:
        if self.state is not ConnectionState.READY:
            raise ChannelClosedError(self.target)

        self.in_flight += 1
        try:
            return await self._stub.send(Data(message=message), timeout=self.send_timeout)
        except grpc.aio.AioRpcError as exc:
            raise SendError(exc.code(), exc.details() or str(exc)) from exc
        except grpc.aio.UsageError as exc:
            raise SendError(None, str(exc)) from exc
        finally:
            self.in_flight -= 1

    def start_periodic_send(self, interval: Optional[float] = None) -> asyncio.Task:
        """Start the fixed-rate send loop and return its task handle.

        Ticks fire every `interval` seconds whether or not earlier sends have
        completed. A failed send is logged and the schedule continues.
        """
        if interval is None:
            interval = settings.grpc.send_interval_s
        if self._periodic is not None and not self._periodic.done():
            return self._periodic
        if self.state is not ConnectionState.READY:
            raise ChannelClosedError(self.target)

        self._periodic = asyncio.create_task(self._run_periodic(interval), name="client-periodic-send")
        return self._periodic

    async def _run_periodic(self, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            next_tick += interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            self.counter += 1
            task = asyncio.create_task(self._send_tick(self.counter))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _send_tick(self, n: int) -> None:
        logger.info("Sending", n=n)
        try:
            reply = await self.send(MESSAGE_TEMPLATE.format(n))
        except ChannelException as exc:
            logger.error("Failed to send message to server", n=n, error=exc.message)
            return
        except Exception as exc:
            logger.error("Failed to send message to server", n=n, error=str(exc), exc_info=True)
            return
        self.last_reply = reply.message
        logger.info("reply", n=n, message=reply.message)

    async def close(self) -> None:
        periodic, self._periodic = self._periodic, None
        if periodic is not None and not periodic.done():
            periodic.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await periodic

        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        channel, self._channel = self._channel, None
        if channel is not None:
            try:
                await channel.close(self.close_grace)
            except asyncio.CancelledError:
                logger.warning("close_cancelled", target=self.target, grace=self.close_grace)
                raise
            except Exception as exc:
                logger.error("close_error", error=str(exc), exc_info=True)
        logger.info("closed", target=self.target)
