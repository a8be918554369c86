"""
Tests for the central logging setup.
"""

import logging

from monochord import logging_config
from monochord.logging_config import (
    LOGGER_NAMES, REALTIME_LOGGERS, quiet_realtime_loggers, set_debug_mode, set_logging_level,
    setup_logging,
)


def _ours(root):
    return [h for h in root.handlers if h in logging_config._installed_handlers]


class TestSetup:

    def test_levels(self):
        setup_logging(debug=True)
        assert all(logging.getLogger(n).level == logging.DEBUG for n in LOGGER_NAMES)
        setup_logging()
        assert all(logging.getLogger(n).level == logging.INFO for n in LOGGER_NAMES)

    def test_repeated_setup_does_not_stack_handlers(self):
        root = logging.getLogger()
        setup_logging()
        setup_logging()
        assert len(_ours(root)) == 1

    def test_log_file(self, tmp_path):
        path = tmp_path / 'monochord.log'
        setup_logging(log_file=str(path))
        logging.getLogger('monochord.session.controller').info("Session started")
        for handler in _ours(logging.getLogger()):
            handler.flush()
        assert 'Session started' in path.read_text()
        assert '[INFO] monochord.session.controller' in path.read_text()
        setup_logging()


class TestLevels:

    def test_debug_mode_toggle(self):
        set_debug_mode(True)
        assert logging.getLogger('monochord.core.tuner').level == logging.DEBUG
        set_debug_mode(False)
        assert logging.getLogger('monochord.core.tuner').level == logging.INFO

    def test_quiet_realtime_leaves_others(self):
        set_logging_level(logging.INFO)
        quiet_realtime_loggers()
        for name in REALTIME_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
        assert logging.getLogger('monochord.session.controller').level == logging.INFO
