"""Process lifecycle for the secure server/client pair.

Startup runs as declared steps: certificate, then server, then client. Each
step names the steps it requires, and the client step only begins once the
server step has finished (listening or logged bind failure).

Every active resource registers an async disposer. On SIGINT, or when the
client cannot connect, all disposers run newest first inside a bounded
grace window, after which `run()` returns and the process may exit.
"""
from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from core.config import CertificateSettings, GrpcSettings, settings
from core.exceptions import ChannelException
from core.logging_config import get_logger
from grpc_app.client import SecureClient
from grpc_app.server import SecureServer
from infrastructure.security.certificates import CertificateBundle, generate_from_settings


logger = get_logger(__name__, component="lifecycle")

Disposer = Callable[[], Awaitable[None]]
CertificateFactory = Callable[[CertificateSettings], CertificateBundle]


class DisposerRegistry:
    """Ordered set of cleanup actions; all of them run on teardown."""

    def __init__(self) -> None:
        self._disposers: list[tuple[str, Disposer]] = []

    def __len__(self) -> int:
        return len(self._disposers)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._disposers]

    def register(self, name: str, disposer: Disposer) -> None:
        self._disposers.append((name, disposer))
        logger.debug("disposer_registered", resource=name)

    async def dispose_all(self) -> None:
        while self._disposers:
            name, disposer = self._disposers.pop()
            try:
                await disposer()
            except asyncio.CancelledError:
                logger.warning("dispose_cancelled", resource=name)
                raise
            except Exception as exc:
                logger.error("dispose_failed", resource=name, error=str(exc), exc_info=True)
            else:
                logger.info("disposed", resource=name)


@dataclass(frozen=True)
class StartupStep:
    name: str
    action: Callable[[], Awaitable[bool]]
    requires: tuple[str, ...] = ()


class LifecycleCoordinator:
    def __init__(
        self,
        grpc_settings: Optional[GrpcSettings] = None,
        certificate_settings: Optional[CertificateSettings] = None,
        certificate_factory: CertificateFactory = generate_from_settings,
        server: Optional[SecureServer] = None,
        client: Optional[SecureClient] = None,
    ) -> None:
        self.grpc = grpc_settings or settings.grpc
        self.certificate_settings = certificate_settings or settings.certificate
        self.certificate_factory = certificate_factory
        # Teardown is sequential, so each component gets half the window
        component_grace = self.grpc.shutdown_grace_s / 2
        self.server = server or SecureServer(grace=component_grace)
        self.client = client or SecureClient(
            send_timeout=self.grpc.send_timeout_s,
            close_grace=component_grace,
        )
        self.disposers = DisposerRegistry()
        self.bundle: Optional[CertificateBundle] = None
        self.completed: list[str] = []
        self._stop = asyncio.Event()

    @property
    def exit_requested(self) -> bool:
        return self._stop.is_set()

    def request_exit(self, reason: str = "requested") -> None:
        if self._stop.is_set():
            return
        logger.info("Exiting...", reason=reason)
        self._stop.set()

    def steps(self) -> list[StartupStep]:
        return [
            StartupStep("certificate", self._create_certificate),
            StartupStep("server", self._start_server, requires=("certificate",)),
            StartupStep("client", self._start_client, requires=("certificate", "server")),
        ]

    async def _create_certificate(self) -> bool:
        # CertificateGenerationError propagates: nothing can run without TLS
        self.bundle = self.certificate_factory(self.certificate_settings)
        return True

    async def _start_server(self) -> bool:
        await self.server.start(self.grpc.bind_address, self.bundle)
        if self.server.is_listening:
            self.disposers.register("server", self.server.shutdown)
        # A bind failure is logged by the server; the client step still runs
        return True

    async def _start_client(self) -> bool:
        target = self.grpc.client_target(self.server.port)
        await self.client.connect(target, self.bundle, self.grpc.max_reconnect_backoff_ms)
        self.disposers.register("client", self.client.close)
        try:
            await self.client.wait_for_ready(self.grpc.ready_timeout_s)
        except ChannelException as exc:
            logger.error("Failed to connect to server", target=target, error=exc.message)
            self.request_exit("client_connect_failed")
            return False
        self.client.start_periodic_send(self.grpc.send_interval_s)
        return True

    async def startup(self) -> None:
        for step in self.steps():
            missing = [name for name in step.requires if name not in self.completed]
            if missing:
                raise RuntimeError(f"step {step.name!r} requires {missing}")
            if self.exit_requested:
                return
            ok = await step.action()
            self.completed.append(step.name)
            if not ok:
                return

    async def shutdown(self) -> None:
        grace = self.grpc.shutdown_grace_s
        try:
            await asyncio.wait_for(self.disposers.dispose_all(), grace)
        except asyncio.TimeoutError:
            logger.warning("teardown_grace_exceeded", grace=grace, skipped=self.disposers.names)

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        restore = self._install_signal_handler(loop)
        # An exit request must also interrupt a startup still waiting for readiness
        startup = asyncio.create_task(self.startup(), name="lifecycle-startup")
        stopped = asyncio.create_task(self._stop.wait(), name="lifecycle-stop")
        try:
            await asyncio.wait({startup, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if startup.done():
                startup.result()
                await stopped
        finally:
            for task in (startup, stopped):
                task.cancel()
            await asyncio.gather(startup, stopped, return_exceptions=True)
            restore()
            await self.shutdown()

    def _install_signal_handler(self, loop: asyncio.AbstractEventLoop) -> Callable[[], None]:
        try:
            loop.add_signal_handler(signal.SIGINT, self.request_exit, "SIGINT")
            return lambda: loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

        try:
            previous = signal.signal(
                signal.SIGINT,
                lambda *_: loop.call_soon_threadsafe(self.request_exit, "SIGINT"),
            )
        except ValueError:
            # signal handlers can only be installed from the main thread
            logger.warning("sigint_handler_unavailable")
            return lambda: None
        return lambda: signal.signal(signal.SIGINT, previous)
