"""Tests for component loggers and runtime level changes."""

import logging
import unittest
from unittest.mock import patch

from shared import logging_config


class TestLoggingConfig(unittest.TestCase):

    def setUp(self):
        self._level_patch = patch.object(logging_config, '_default_level', "INFO")
        self._level_patch.start()
        self.created = []

    def tearDown(self):
        logging_config.set_log_level("INFO")
        self._level_patch.stop()
        for name in self.created:
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()

    def make(self, component, level="INFO"):
        logger = logging_config.setup_logging(component, level, log_to_file=False)
        self.created.append(logger.name)
        return logger

    def test_component_logger_name(self):
        logger = self.make("PAYROLL")
        self.assertEqual(logger.name, "tradietime.payroll")
        self.assertEqual(logger.level, logging.INFO)
        self.assertEqual(len(logger.handlers), 1)

    def test_setup_is_idempotent(self):
        first = self.make("JOBS")
        second = self.make("JOBS", level="DEBUG")
        self.assertIs(first, second)
        self.assertEqual(len(second.handlers), 1)
        self.assertEqual(second.level, logging.INFO)

    def test_set_log_level_reaches_existing_and_later_loggers(self):
        existing = self.make("SYNC")
        logging_config.set_log_level("debug")
        self.assertEqual(existing.level, logging.DEBUG)
        self.assertEqual(existing.handlers[0].level, logging.DEBUG)

        with patch.object(logging_config, 'setup_logging', wraps=self.make) as setup:
            logging_config.get_logger("EXPORT")
        setup.assert_called_once_with("EXPORT", "DEBUG")

    def test_plain_output_without_terminal(self):
        formatter = logging_config.TradieTimeFormatter("TIMER", use_colors=False)
        record = logging.LogRecord("tradietime.timer", logging.WARNING, __file__, 1, "Timer changed", None, None)
        line = formatter.format(record)
        self.assertTrue(line.endswith("[TIMER] [WARNING] Timer changed"))
        self.assertNotIn("\x1b[", line)


if __name__ == '__main__':
    unittest.main()
