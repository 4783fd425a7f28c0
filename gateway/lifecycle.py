"""Process-level failure policy.

An exception that escapes every handler (a crashed background task, a
failure on the main thread) leaves the process in an unknown state. It is
logged and the process sends itself SIGTERM so uvicorn shuts down through
its normal path, lifespan cleanup included.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from typing import Callable

logger = logging.getLogger(__name__)


def request_shutdown() -> None:
    os.kill(os.getpid(), signal.SIGTERM)


def install_fatal_handlers(
    loop: asyncio.AbstractEventLoop | None = None,
    shutdown: Callable[[], None] = request_shutdown,
) -> None:
    """Route uncaught loop and main-thread exceptions to ``shutdown``."""

    def _loop_handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        message = context.get("message", "no message")
        if exc is None:
            logger.warning("Event loop reported: %s", message)
            return
        logger.critical("Unhandled exception in event loop: %s", message, exc_info=exc)
        shutdown()

    def _excepthook(exc_type, exc, tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        logger.critical("Uncaught exception, shutting down", exc_info=(exc_type, exc, tb))
        shutdown()

    if loop is not None:
        loop.set_exception_handler(_loop_handler)
    sys.excepthook = _excepthook
