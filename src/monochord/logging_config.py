"""
Central log levels for the monochord components.

The CLI calls setup_logging() once; MONOCHORD_DEBUG=1 or MONOCHORD_QUIET=1
configure it at import for embedding without the CLI.
"""

import logging
import os

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

LOGGER_NAMES = [
    'monochord.core.scheduler',
    'monochord.core.audio_backend',
    'monochord.core.signal_graph',
    'monochord.core.tone_engine',
    'monochord.core.tuner',
    'monochord.core.pitch_detector',
    'monochord.core.live_effects',
    'monochord.session.controller',
    'monochord.session.chime',
    'monochord.cli',
    'monochord.ui',
]

# per-block and per-frame output
REALTIME_LOGGERS = (
    'monochord.core.signal_graph',
    'monochord.core.pitch_detector',
    'monochord.core.scheduler',
)

_installed_handlers = []


def setup_logging(debug: bool = False, log_file: str = None):
    """
    Install a console handler (and optionally a file handler) on the root
    logger. Calling it again replaces the handlers from the previous call.
    """
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')
    root_logger = logging.getLogger()

    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    _installed_handlers.append(console_handler)

    if log_file:
        # the file always gets the full detail
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        _installed_handlers.append(file_handler)

    for handler in _installed_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)
    set_logging_level(level)


def set_debug_mode(enabled: bool):
    set_logging_level(logging.DEBUG if enabled else logging.INFO)


def set_logging_level(level: int):
    for name in LOGGER_NAMES:
        logging.getLogger(name).setLevel(level)


def quiet_realtime_loggers():
    for name in REALTIME_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


if _env_flag('MONOCHORD_DEBUG'):
    setup_logging(debug=True)
elif _env_flag('MONOCHORD_QUIET'):
    setup_logging()
    set_logging_level(logging.WARNING)
