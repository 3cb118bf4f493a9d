"""Logging utilities for minigit.

minigit is usable as a library, so the top-level logger carries a null
handler and stays silent until the application configures logging. The
command line front-end calls default_logging_config().
"""

import logging
import os
import sys

getLogger = logging.getLogger

TRACE_ENV = 'MINIGIT_TRACE'


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_MINIGIT_LOGGER = getLogger('minigit')
_MINIGIT_LOGGER.addHandler(_NULL_HANDLER)


def _should_trace() -> bool:
    return os.environ.get(TRACE_ENV, '').lower() in ('1', 'true', 'yes')


def default_logging_config() -> None:
    """Send minigit log records to stderr.

    DEBUG level when MINIGIT_TRACE is set to 1/true/yes, INFO otherwise.
    """
    remove_null_handler()
    logging.basicConfig(
        level=logging.DEBUG if _should_trace() else logging.INFO,
        stream=sys.stderr,
        format='%(levelname)s: %(message)s',
    )


def remove_null_handler() -> None:
    _MINIGIT_LOGGER.removeHandler(_NULL_HANDLER)
