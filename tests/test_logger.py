from __future__ import annotations

import logging
import tempfile
import unittest
from pathlib import Path

from challenge.logger import configure_logging


class ConfigureLoggingTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.logger = logging.getLogger("challenge")
        self.saved = list(self.logger.handlers)
        self.logger.handlers = []

    def tearDown(self) -> None:
        for handler in self.logger.handlers:
            handler.close()
        self.logger.handlers = self.saved
        self.tmp.cleanup()

    def test_writes_rotating_log_file(self) -> None:
        log_dir = Path(self.tmp.name) / "logs"
        logger = configure_logging(log_dir=log_dir, level="DEBUG")
        self.assertIs(logger, self.logger)
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 2)

        logging.getLogger("challenge.lifecycle").info("plan saved")
        for handler in logger.handlers:
            handler.flush()
        content = (log_dir / "upload-challenge.log").read_text(encoding="utf-8")
        self.assertIn("[INFO] challenge.lifecycle: plan saved", content)

    def test_second_call_keeps_existing_handlers(self) -> None:
        configure_logging(log_dir=Path(self.tmp.name))
        configure_logging(log_dir=Path(self.tmp.name))
        self.assertEqual(len(self.logger.handlers), 2)


if __name__ == "__main__":
    unittest.main()
