"""Logfire tracing for the settlement service.

Payouts and refunds open ``settlement.*`` spans (see ``nightfall.settlement``);
they leave the process only after ``initialize_logfire`` has configured a
token.
"""

import logging

import logfire
from fastapi import FastAPI

from nightfall import __version__
from nightfall.config import Settings

logger = logging.getLogger(__name__)

_configured = False


def logfire_environment(settings: Settings) -> str:
    """Deployment label for traces: paper rail, devnet or mainnet."""
    if settings.rail.paper_mode:
        return "paper"
    return "mainnet" if settings.rail.use_mainnet else "devnet"


def initialize_logfire(settings: Settings, app: FastAPI | None = None) -> bool:
    """Ship traces and log records to Logfire when a token is set.

    The SDK, HTTPX (Solana JSON-RPC) and the root logger are set up on the
    first call only; every call instruments the ``app`` it is given. Returns
    whether Logfire is active.
    """
    global _configured

    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    if not _configured:
        environment = logfire_environment(settings)
        try:
            logfire.configure(
                token=settings.logfire_token,
                service_name="nightfall",
                service_version=__version__,
                environment=environment,
            )
            logfire.instrument_httpx()
            logging.getLogger().addHandler(logfire.LogfireLoggingHandler())
        except Exception as e:
            logger.warning(f"Failed to initialize Logfire: {e}")
            return False
        _configured = True
        logger.info(f"Logfire tracing enabled for {environment}")

    if app is not None:
        try:
            logfire.instrument_fastapi(app)
        except Exception as e:
            logger.warning(f"FastAPI instrumentation skipped: {e}")
    return True
