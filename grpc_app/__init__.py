"""gRPC transport layer for the secure server/client pair.

This package hosts:
- The `core.Core` protocol buffer (in `protos/`) and its runtime-built
  message and stub classes (`schema.py`).
- The TLS server, its interceptors and the request handler.
- The TLS client with readiness waiting and the periodic sender.
"""
