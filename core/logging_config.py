"""
Structlog logging configuration
"""
import logging
import json
import structlog
from structlog.processors import TimeStamper, add_log_level, JSONRenderer
from structlog.dev import ConsoleRenderer
from structlog.contextvars import merge_contextvars
from structlog.stdlib import ProcessorFormatter
from typing import Any, List, Optional

from core.config import settings


def get_renderer() -> Any:
    """Pick the renderer: Console in DEBUG, JSON otherwise.
    structlog passes default/sort_keys and similar kwargs to the serializer.
    """
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def add_component_prefix(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Prefix the event with ``[component]`` so server and client lines read apart."""
    component = event_dict.get("component")
    if component and isinstance(event_dict.get("event"), str):
        event_dict["event"] = f"[{component}] {event_dict['event']}"
    return event_dict


def configure_logging() -> None:
    """Configure structlog and route stdlib logging through the same chain."""
    timestamper = TimeStamper(fmt="iso")

    # Shared pre-chain for both ProcessorFormatter and structlog.configure
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        timestamper,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = get_renderer()
    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            add_component_prefix,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


def get_logger(name: str = __name__, component: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, bound to a server/client component tag when given."""
    logger = structlog.get_logger(name)
    if component:
        logger = logger.bind(component=component)
    return logger


# Configure on import
configure_logging()
