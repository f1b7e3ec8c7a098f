"""Structured logging configuration for the DeFi alerts service.

Uses structlog with context variables and ISO timestamps. Output is rendered
for the console in debug mode and as JSON lines otherwise. Provides
get_logger() for named loggers and configure_logging() for one-time setup.
"""

import logging

import structlog

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Configure structlog processors once.

    Safe to call multiple times -- only the first invocation takes effect.
    """
    global _configured
    if _configured:
        return

    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a bound logger with the given name.

    Ensures logging is configured before returning.

    Args:
        name: Logger name, typically the module or service name.

    Returns:
        A structlog BoundLogger instance bound with the given name.
    """
    configure_logging()
    return structlog.get_logger(logger_name=name)
