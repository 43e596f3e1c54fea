"""
Command line orchestration for crf_tuner.

Actions:
- optimize: CRF search, full encode at the selected CRF, final VMAF
- search:   CRF search only
- encode:   single encode at a given CRF or bitrate, then VMAF
- score:    VMAF of a distorted file against its reference, with rate stats
- inspect:  dump probed metadata of a source as JSON
"""

import argparse
import json
import os
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional

from ..config import get_config
from ..utils.logging import get_logger, set_debug_mode, set_log_level, set_quiet_mode
from .errors import CrfTunerError, OperationCancelled, SearchAborted
from .models import EncodeConfig, OptimizedEncodeRequest, SearchRequest
from .modules.analysis.quality_scorer import QualityScorer
from .modules.optimization.crf_search import CrfSearch
from .modules.optimization.optimized_encode import OptimizedEncode
from .modules.processing.transcoding_engine import VALID_TUNES
from .modules.system.system_utils import CancelToken, cleanup_temp_files
from .modules.toolkit import FFmpegToolkit, MediaToolkit

logger = get_logger("main")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SEARCH_ABORTED = 2
EXIT_CANCELLED = 130


def expand_path(value: str) -> Path:
    """Path from a command line argument, with a leading ~/ expanded."""
    return Path(os.path.expanduser(value))


def _add_encoder_args(parser: argparse.ArgumentParser, config: Dict):
    group = parser.add_argument_group("encoder")
    group.add_argument("--codec", default=config['codec'], help="Video codec (default: %(default)s)")
    group.add_argument("-W", "--width", type=int, default=0, help="Output width, 0 keeps the source")
    group.add_argument("-H", "--height", type=int, default=0, help="Output height, 0 keeps the source")
    group.add_argument("--max-bitrate", type=int, default=0, metavar="KBPS",
                       help="Limit peak bitrate of the output")
    group.add_argument("--min-bitrate", type=int, default=0, metavar="KBPS",
                       help="Limit minimum bitrate of the output (forces CBR-like behaviour)")
    group.add_argument("--buffer-size", type=int, default=0, metavar="KBPS",
                       help="HRD buffer size of the output")
    group.add_argument("-t", "--tune", choices=VALID_TUNES, default="", help="Encoder tune")


def _add_search_args(parser: argparse.ArgumentParser, config: Dict):
    group = parser.add_argument_group("search")
    group.add_argument("--target-vmaf", type=float, default=config['vmaf_target'],
                       help="Target VMAF score (default: %(default)s)")
    group.add_argument("--tolerance", type=float, default=config['search_tolerance'],
                       help="Accepted distance from the target VMAF (default: %(default)s)")
    group.add_argument("--initial-crf", type=int, default=config['crf_initial'],
                       help="First CRF to score (default: %(default)s)")
    group.add_argument("--min-crf", type=int, default=config['crf_min'],
                       help="Lowest-quality CRF to consider, higher is lower quality (default: %(default)s)")
    group.add_argument("--max-crf", type=int, default=config['crf_max'],
                       help="Highest-quality CRF to consider (default: %(default)s)")
    group.add_argument("--max-iterations", type=int, default=None,
                       help="Interpolation steps before giving up (default: size of the CRF range)")
    group.add_argument("--strict", action="store_true",
                       help="Fail instead of returning the closest CRF when the target is not met")


def _add_common_args(parser: argparse.ArgumentParser, config: Dict):
    parser.add_argument("-i", "--input", required=True, help="Source (reference) video")
    parser.add_argument("--vmaf-speed", type=int, default=config['vmaf_speed'], choices=range(1, 11),
                        metavar="1-10", help="VMAF subsampling, 1 slowest (default: %(default)s)")
    parser.add_argument("--deadline", type=float, default=None, metavar="SECONDS",
                        help="Cancel the run after this many seconds")
    parser.add_argument("--debug", action="store_true", default=config['debug'],
                        help="Enable debug output")
    parser.add_argument("--quiet", action="store_true", help="Only print warnings, errors and results")


def build_parser(config: Optional[Dict] = None) -> argparse.ArgumentParser:
    config = config or get_config()
    parser = argparse.ArgumentParser(
        prog="crf-tuner",
        description="Find the CRF that hits a target VMAF score and encode with it",
    )
    subparsers = parser.add_subparsers(dest="action", metavar="ACTION")
    subparsers.required = True

    optimize = subparsers.add_parser("optimize", help="Search the CRF, then encode the full source")
    _add_common_args(optimize, config)
    optimize.add_argument("-o", "--output", required=True, help="Output file ({name}.mp4)")
    _add_encoder_args(optimize, config)
    _add_search_args(optimize, config)

    search = subparsers.add_parser("search", help="Search the CRF only")
    _add_common_args(search, config)
    _add_encoder_args(search, config)
    _add_search_args(search, config)

    encode = subparsers.add_parser("encode", help="Encode once and score the result")
    _add_common_args(encode, config)
    encode.add_argument("-o", "--output", required=True, help="Output file ({name}.mp4)")
    rate = encode.add_mutually_exclusive_group()
    rate.add_argument("--crf", type=int, default=0, help="CRF to encode with")
    rate.add_argument("--bitrate", type=int, default=0, metavar="KBPS", help="Bitrate to encode with")
    _add_encoder_args(encode, config)

    score = subparsers.add_parser("score", help="VMAF of a distorted file against its reference")
    _add_common_args(score, config)
    score.add_argument("-o", "--output", required=True, help="Distorted file ({name}.mp4)")

    inspect = subparsers.add_parser("inspect", help="Write probed metadata to SRC_inspect.json")
    _add_common_args(inspect, config)

    return parser


def validate_args(args: argparse.Namespace):
    """Cross-argument checks argparse cannot express; raises ValueError."""
    if args.action == "encode" and args.crf <= 0 and args.bitrate <= 0:
        raise ValueError("bitrate or crf required for encode action")
    output = getattr(args, "output", None)
    if output is not None and not output.endswith(".mp4"):
        raise ValueError("target path of {name}.mp4 required")


def build_encode_config(args: argparse.Namespace) -> EncodeConfig:
    return EncodeConfig(
        codec=args.codec,
        width=args.width,
        height=args.height,
        crf=getattr(args, "crf", 0),
        bitrate_kbps=getattr(args, "bitrate", 0),
        min_bitrate_kbps=args.min_bitrate,
        max_bitrate_kbps=args.max_bitrate,
        buffer_size_kbps=args.buffer_size,
        tune=args.tune,
    )


def _search_fields(args: argparse.Namespace) -> Dict:
    return dict(
        source=expand_path(args.input),
        target_vmaf=args.target_vmaf,
        tolerance=args.tolerance,
        crf_initial=args.initial_crf,
        crf_min=args.min_crf,
        crf_max=args.max_crf,
        base_config=build_encode_config(args),
        max_iterations=args.max_iterations,
        require_match=args.strict,
        vmaf_speed=args.vmaf_speed,
    )


def run_optimize(args: argparse.Namespace, toolkit: MediaToolkit) -> int:
    request = OptimizedEncodeRequest(target=expand_path(args.output), **_search_fields(args))
    result = OptimizedEncode(request, toolkit).run()
    logger.result(f"Done: encoded {result.target_path} with crf: {result.crf}, "
                  f"vmaf: {result.final_vmaf:.2f}, size: {result.stream_size_mb:.2f}MB")
    return EXIT_OK


def run_search_action(args: argparse.Namespace, toolkit: MediaToolkit) -> int:
    request = SearchRequest(**_search_fields(args))
    result = CrfSearch.from_request(request, toolkit).run()
    logger.result(f"Done: Found crf: {result.crf}, score: {result.vmaf:.2f}")
    return EXIT_OK


def run_encode(args: argparse.Namespace, toolkit: MediaToolkit) -> int:
    source = expand_path(args.input)
    target = expand_path(args.output)
    config = build_encode_config(args)
    toolkit.encode(source, target, config)
    scorer = QualityScorer(toolkit, args.vmaf_speed)
    result = scorer.measure(target, source)
    scorer.log_stats(result, config)
    logger.result(f"Done: Encode with {config.describe()}, score: {result.vmaf:.2f}")
    return EXIT_OK


def run_score(args: argparse.Namespace, toolkit: MediaToolkit) -> int:
    reference = expand_path(args.input)
    distorted = expand_path(args.output)
    result = QualityScorer(toolkit, args.vmaf_speed).measure(distorted, reference)
    logger.result(f"Done: VMAF: {result.vmaf:.2f}, avg bitrate: {result.avg_bitrate_kbps}kbps, "
                  f"max bitrate: {result.max_bitrate_kbps}kbps, stream size: {result.stream_size_kb}kb")
    return EXIT_OK


def run_inspect(args: argparse.Namespace, toolkit: MediaToolkit) -> int:
    source = expand_path(args.input)
    metadata = toolkit.probe_metadata(source)
    target = source.with_name(source.name + "_inspect.json")
    with open(target, 'w', encoding='utf-8') as f:
        json.dump(metadata.raw, f, indent=1)
    logger.result(f"Done. Wrote metadata to: {target}")
    return EXIT_OK


ACTIONS = {
    "optimize": run_optimize,
    "search": run_search_action,
    "encode": run_encode,
    "score": run_score,
    "inspect": run_inspect,
}


def main(argv: Optional[List[str]] = None, toolkit: Optional[MediaToolkit] = None) -> int:
    """Parse ``argv``, run the chosen action and return the process exit status."""
    config = get_config()
    args = build_parser(config).parse_args(argv)

    set_debug_mode(args.debug)
    if args.debug:
        set_log_level("DEBUG")
    set_quiet_mode(args.quiet)

    try:
        validate_args(args)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FAILURE

    token = CancelToken(args.deadline)
    toolkit = toolkit or FFmpegToolkit(token)

    def _on_interrupt(signum, frame):
        logger.warn("Interrupted, cancelling...")
        token.cancel()

    previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        return ACTIONS[args.action](args, toolkit)
    except OperationCancelled as e:
        logger.error(f"Cancelled: {e}")
        return EXIT_CANCELLED
    except SearchAborted as e:
        logger.error(f"Search failed: {e}")
        return EXIT_SEARCH_ABORTED
    except CrfTunerError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    except (ValueError, OSError) as e:
        logger.error(str(e))
        return EXIT_FAILURE
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        cleanup_temp_files()


if __name__ == "__main__":
    sys.exit(main())
