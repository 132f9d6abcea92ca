import logging
import os
import shutil
import tempfile
import unittest
from logging.handlers import RotatingFileHandler
from unittest import mock

from upi_reconciler.utils import logger as logger_module
from upi_reconciler.utils.logger import ROOT_LOGGER, get_logger, setup_logging


class TestLogger(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.cwd = os.getcwd()
        self.package_logger = logging.getLogger(ROOT_LOGGER)
        self.handlers = list(self.package_logger.handlers)

    def tearDown(self):
        os.chdir(self.cwd)
        for handler in self.package_logger.handlers:
            if handler not in self.handlers:
                handler.close()
                self.package_logger.removeHandler(handler)
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_get_logger_does_not_touch_the_filesystem(self):
        os.chdir(self.tmp)
        log = get_logger('core.extractor')
        self.assertEqual(log.name, 'upi_reconciler.core.extractor')
        self.assertEqual(os.listdir(self.tmp), [])

    @mock.patch.object(logger_module, '_configured', False)
    def test_setup_logging_writes_rotating_file(self):
        log_dir = os.path.join(self.tmp, 'logs')
        setup_logging(log_dir=log_dir, level='INFO')

        file_handlers = [h for h in self.package_logger.handlers
                         if isinstance(h, RotatingFileHandler)]
        self.assertEqual(len(file_handlers), 1)
        self.assertEqual(file_handlers[0].maxBytes, 1_000_000)
        self.assertTrue(os.path.isdir(log_dir))


if __name__ == '__main__':
    unittest.main()
