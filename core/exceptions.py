"""Secure channel exceptions.

Certificate generation failure is fatal. A server bind failure is only logged.
A readiness timeout ends the client, and a failed send affects only that call.
"""
from __future__ import annotations

from typing import Optional

import grpc


class ChannelException(Exception):
    """Base class for secure channel errors"""

    def __init__(
        self,
        message: str,
        error_type: str = "ChannelError",
        details: Optional[dict] = None,
    ) -> None:
        self.message = message
        self.error_type = error_type
        self.details = details
        super().__init__(self.message)


class CertificateGenerationError(ChannelException):
    def __init__(self, reason: str):
        super().__init__(
            message=f"Failed to generate certificate: {reason}",
            error_type="CertificateGeneration",
            details={"reason": reason},
        )


class ServerBindError(ChannelException):
    def __init__(self, address: str, reason: str):
        super().__init__(
            message=f"Failed to bind grpc server: {reason}",
            error_type="ServerBind",
            details={"address": address, "reason": reason},
        )


class ChannelNotReadyError(ChannelException):
    def __init__(self, target: str, timeout: float):
        super().__init__(
            message=f"Channel to {target} not ready within {timeout}s",
            error_type="ChannelNotReady",
            details={"target": target, "timeout": timeout},
        )


class ChannelClosedError(ChannelException):
    def __init__(self, target: Optional[str] = None):
        super().__init__(
            message="Channel is not connected",
            error_type="ChannelClosed",
            details={"target": target} if target else None,
        )


class SendError(ChannelException):
    """A single RPC failed; keeps the gRPC status code"""

    def __init__(self, code: Optional[grpc.StatusCode], reason: str):
        self.code = code
        super().__init__(
            message=f"Failed to send message to server: {reason}",
            error_type="SendError",
            details={"code": code.name if code is not None else None},
        )
