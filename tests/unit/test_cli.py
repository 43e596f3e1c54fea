"""
Unit tests for the command line interface.

Runs crf_tuner.core.main.main with a FakeToolkit and checks argument
validation, dispatch and exit codes.
"""

import json
import signal
import tempfile
import unittest
from pathlib import Path

from crf_tuner.core.errors import EncodeFailure, OperationCancelled
from crf_tuner.core.main import (
    EXIT_CANCELLED, EXIT_FAILURE, EXIT_OK, EXIT_SEARCH_ABORTED, build_parser, expand_path, main
)
from crf_tuner.utils.logging import set_debug_mode, set_quiet_mode
from tests.fakes import FakeToolkit

PARSER_CONFIG = {
    'vmaf_target': 95.0, 'search_tolerance': 0.5, 'crf_initial': 20, 'crf_min': 30,
    'crf_max': 15, 'vmaf_speed': 5, 'codec': 'libx264', 'debug': False,
}


class TestParser(unittest.TestCase):

    def test_search_defaults_from_config(self):
        args = build_parser(PARSER_CONFIG).parse_args(["search", "-i", "in.mkv"])

        self.assertEqual(args.target_vmaf, 95.0)
        self.assertEqual((args.initial_crf, args.min_crf, args.max_crf), (20, 30, 15))
        self.assertEqual(args.codec, "libx264")
        self.assertFalse(args.strict)

    def test_search_takes_no_output(self):
        with self.assertRaises(SystemExit):
            build_parser(PARSER_CONFIG).parse_args(["search", "-i", "in.mkv", "-o", "out.mp4"])

    def test_invalid_tune_rejected(self):
        with self.assertRaises(SystemExit):
            build_parser(PARSER_CONFIG).parse_args(["search", "-i", "in.mkv", "--tune", "fast"])

    def test_crf_and_bitrate_exclusive(self):
        with self.assertRaises(SystemExit):
            build_parser(PARSER_CONFIG).parse_args(
                ["encode", "-i", "in.mkv", "-o", "out.mp4", "--crf", "20", "--bitrate", "3000"])

    def test_expand_home(self):
        self.assertEqual(expand_path("~/videos/in.mkv"), Path.home() / "videos" / "in.mkv")


class TestMain(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()
        set_quiet_mode(False)
        set_debug_mode(False)

    def test_search(self):
        toolkit = FakeToolkit(scores={20: 85.0, 15: 98.0, 18: 90.2}, duration_sec=30.0)

        code = main(["search", "-i", "in.mp4", "--target-vmaf", "90", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_OK)
        self.assertEqual(toolkit.encoded_crfs, [20, 15, 18])

    def test_search_passes_encoder_flags(self):
        toolkit = FakeToolkit(scores={20: 95.0}, duration_sec=30.0)

        main(["search", "-i", "in.mp4", "--codec", "libx265", "--max-bitrate", "8000",
              "--tune", "grain", "--quiet"], toolkit)

        config = [args[2] for name, args in toolkit.calls if name == "encode"][0]
        self.assertEqual((config.codec, config.max_bitrate_kbps, config.tune), ("libx265", 8000, "grain"))

    def test_strict_search_miss_is_ordinary_failure(self):
        toolkit = FakeToolkit(scores={20: 85.0, 15: 98.0}, duration_sec=30.0)

        code = main(["search", "-i", "in.mp4", "--target-vmaf", "99", "--strict", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_FAILURE)

    def test_optimize(self):
        toolkit = FakeToolkit(scores={20: 95.1}, duration_sec=30.0)
        target = self.root / "out.mp4"

        code = main(["optimize", "-i", "in.mp4", "-o", str(target), "--quiet"], toolkit)

        self.assertEqual(code, EXIT_OK)
        self.assertEqual(toolkit.calls[-2][0], "measure_quality")
        self.assertEqual(toolkit.calls[-2][1][0], target)

    def test_optimize_requires_mp4_target(self):
        toolkit = FakeToolkit()

        code = main(["optimize", "-i", "in.mkv", "-o", "out.mkv", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_FAILURE)
        self.assertEqual(toolkit.calls, [])

    def test_optimize_search_failure_exit_code(self):
        toolkit = FakeToolkit(scores={20: 85.0}, duration_sec=30.0,
                              fail_encode={15: EncodeFailure("disk full")})

        code = main(["optimize", "-i", "in.mp4", "-o", str(self.root / "out.mp4"),
                     "--target-vmaf", "90", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_SEARCH_ABORTED)

    def test_cancelled_exit_code(self):
        toolkit = FakeToolkit(duration_sec=30.0, fail_encode={20: OperationCancelled("interrupted")})

        code = main(["search", "-i", "in.mp4", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_CANCELLED)

    def test_sigint_handler_restored(self):
        previous = signal.getsignal(signal.SIGINT)

        main(["search", "-i", "in.mp4", "--quiet"], FakeToolkit(scores={20: 95.0}, duration_sec=30.0))

        self.assertIs(signal.getsignal(signal.SIGINT), previous)

    def test_encode_requires_rate_control(self):
        toolkit = FakeToolkit()

        code = main(["encode", "-i", "in.mkv", "-o", str(self.root / "out.mp4"), "--quiet"], toolkit)

        self.assertEqual(code, EXIT_FAILURE)
        self.assertEqual(toolkit.calls, [])

    def test_encode_with_bitrate(self):
        toolkit = FakeToolkit()
        target = self.root / "out.mp4"

        code = main(["encode", "-i", "in.mkv", "-o", str(target), "--bitrate", "3000", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_OK)
        config = toolkit.calls[0][1][2]
        self.assertEqual((config.bitrate_kbps, config.crf), (3000, 0))
        self.assertIn(("measure_quality", (target, Path("in.mkv"), 5)), toolkit.calls)

    def test_score(self):
        toolkit = FakeToolkit(default_vmaf=91.5)

        code = main(["score", "-i", "ref.mkv", "-o", "dist.mp4", "--vmaf-speed", "2", "--quiet"], toolkit)

        self.assertEqual(code, EXIT_OK)
        self.assertEqual(toolkit.calls[0], ("measure_quality", (Path("dist.mp4"), Path("ref.mkv"), 2)))

    def test_inspect_writes_json(self):
        source = self.root / "in.mkv"

        code = main(["inspect", "-i", str(source), "--quiet"], FakeToolkit(duration_sec=42.0))

        self.assertEqual(code, EXIT_OK)
        written = self.root / "in.mkv_inspect.json"
        with open(written, encoding='utf-8') as f:
            self.assertEqual(json.load(f), {"format": {"duration": "42.0"}})


if __name__ == '__main__':
    unittest.main()
