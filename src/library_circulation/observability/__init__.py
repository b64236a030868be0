"""Logfire observability for the Library Circulation Engine."""

import logging

import logfire

from .config import ObservabilityConfig, get_environment_config
from .context import trace_repository_operation
from .decorators import trace_operation

logger = logging.getLogger(__name__)


def initialize_observability(config: ObservabilityConfig | None = None) -> None:
    """Configure Logfire once for the process."""
    config = config or get_environment_config()

    if not config.enabled:
        logger.debug("Observability disabled via configuration")
        return

    # Spans are only exported when explicitly asked to; local runs need no token
    logfire.configure(
        token=config.token,
        service_name=config.service_name,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=None if config.console_output else False,
    )
    logger.debug("Logfire configured for %s (%s)", config.service_name, config.environment)


__all__ = [
    "ObservabilityConfig",
    "initialize_observability",
    "logfire",
    "trace_operation",
    "trace_repository_operation",
]
