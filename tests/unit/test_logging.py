"""
Unit tests for the logging utilities.

Tests prefixes, debug/quiet switches, stream routing and value formatting.
"""

import sys
import unittest
from unittest.mock import patch

from crf_tuner.utils import logging as log_utils
from crf_tuner.utils.logging import (
    create_progress_bar, format_duration, format_size, format_thousands, get_logger,
    set_debug_mode, set_log_level, set_quiet_mode
)


class TestLogger(unittest.TestCase):

    def setUp(self):
        self.saved = (log_utils._DEBUG_ENABLED, log_utils._QUIET_MODE, log_utils._LOG_LEVEL)
        set_debug_mode(False)
        set_quiet_mode(False)
        set_log_level("INFO")
        patcher = patch('crf_tuner.utils.logging.tqdm.write')
        self.mock_write = patcher.start()
        self.addCleanup(patcher.stop)
        self.logger = get_logger("crf_search")

    def tearDown(self):
        log_utils._DEBUG_ENABLED, log_utils._QUIET_MODE, log_utils._LOG_LEVEL = self.saved

    def _lines(self):
        return [c[0][0] for c in self.mock_write.call_args_list]

    def test_info_prefix(self):
        self.logger.info("starting")

        self.assertEqual(self._lines(), ["[INFO] [crf_search] starting"])

    def test_channel_prefix(self):
        self.logger.search("crf: 20, vmaf: 93.10")

        self.assertEqual(self._lines(), ["[SEARCH] crf: 20, vmaf: 93.10"])

    def test_debug_hidden_unless_enabled(self):
        self.logger.debug("hidden")
        self.logger.cmd("ffmpeg -i in.mkv")
        self.assertEqual(self._lines(), [])

        set_debug_mode(True)
        set_log_level("DEBUG")
        self.logger.debug("shown")
        self.logger.cmd("ffmpeg -i in.mkv")

        self.assertEqual(self._lines(), ["[DEBUG] [crf_search] shown", "[CMD] ffmpeg -i in.mkv"])

    def test_quiet_mode_keeps_warnings_and_results(self):
        set_quiet_mode(True)

        self.logger.info("hidden")
        self.logger.scene("hidden")
        self.logger.warn("careful")
        self.logger.result("done")

        self.assertEqual(self._lines(), ["[WARN] [crf_search] careful", "[RESULT] [crf_search] done"])

    def test_warnings_and_errors_go_to_stderr(self):
        self.logger.error("broken")
        self.logger.info("fine")

        streams = [c[1]['file'] for c in self.mock_write.call_args_list]
        self.assertEqual(streams, [sys.stderr, sys.stdout])

    def test_unknown_level(self):
        with self.assertRaises(ValueError):
            set_log_level("LOUD")


class TestFormatting(unittest.TestCase):

    def test_format_duration(self):
        self.assertEqual(format_duration(42.0), "42.0s")
        self.assertEqual(format_duration(90.0), "1.5m")
        self.assertEqual(format_duration(3723.0), "1h 2m")

    def test_format_size(self):
        self.assertEqual(format_size(512), "512.0B")
        self.assertEqual(format_size(1536), "1.5KB")

    def test_format_thousands(self):
        self.assertEqual(format_thousands(12345), "12,345")

    def test_progress_bar_disabled_in_quiet_mode(self):
        saved = log_utils._QUIET_MODE
        try:
            set_quiet_mode(True)
            bar = create_progress_bar(total=3, desc="test")
            self.assertTrue(bar.disable)
            bar.close()
        finally:
            set_quiet_mode(saved)


if __name__ == '__main__':
    unittest.main()
