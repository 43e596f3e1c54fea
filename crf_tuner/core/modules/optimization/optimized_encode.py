"""
Optimized encode for crf_tuner.

Runs the CRF search on a source, encodes the whole source at the selected
CRF and scores that final encode against the full source.
"""

import time
from pathlib import Path
from typing import Optional

from ....utils.logging import format_duration, format_thousands, get_logger
from ...errors import CrfTunerError, OperationCancelled, SearchAborted, with_context
from ...models import OptimizedEncodeRequest, OptimizedEncodeResult, SearchResult
from ..analysis.quality_scorer import QualityScorer
from ..toolkit import FFmpegToolkit, MediaToolkit
from .crf_search import CrfSearch

logger = get_logger("optimized_encode")


class OptimizedEncode:
    """Search, final encode, final score."""

    def __init__(self, request: OptimizedEncodeRequest, toolkit: MediaToolkit,
                 scorer: Optional[QualityScorer] = None):
        if request.target is None:
            raise ValueError("optimized encode requires a target path")
        self.request = request
        self.toolkit = toolkit
        self.scorer = scorer or QualityScorer(toolkit, request.vmaf_speed)

    def search(self) -> SearchResult:
        try:
            return CrfSearch.from_request(self.request, self.toolkit, self.scorer).run()
        except OperationCancelled:
            raise
        except CrfTunerError as e:
            raise SearchAborted(f"crf search of {self.request.source} failed: {e.message}",
                                crf=e.crf) from e

    def run(self) -> OptimizedEncodeResult:
        source = Path(self.request.source)
        target = Path(self.request.target)

        started = time.monotonic()
        search = self.search()
        logger.info(f"Encoding {source.name} at crf {search.crf} (search vmaf: {search.vmaf:.2f})")

        config = self.request.base_config.with_crf(search.crf)
        try:
            self.toolkit.encode(source, target, config)
        except CrfTunerError as e:
            raise with_context(e, crf=search.crf)

        logger.vmaf(f"Scoring final encode {target.name} against the full source")
        try:
            final = self.scorer.measure(target, source)
        except CrfTunerError as e:
            raise with_context(e, crf=search.crf)
        self.scorer.log_stats(final, config)

        stream_size_mb = final.stream_size_kb / 1000.0
        logger.result(f"crf: {search.crf}, search vmaf: {search.vmaf:.2f}, final vmaf: {final.vmaf:.2f}, "
                      f"avg bitrate: {format_thousands(final.avg_bitrate_kbps)}kbps, "
                      f"stream size: {stream_size_mb:.2f}MB, took {format_duration(time.monotonic() - started)}")
        return OptimizedEncodeResult(
            crf=search.crf,
            search_vmaf=search.vmaf,
            final_vmaf=final.vmaf,
            avg_bitrate_kbps=final.avg_bitrate_kbps,
            max_bitrate_kbps=final.max_bitrate_kbps,
            stream_size_mb=stream_size_mb,
            target_path=target,
            search_outcome=search.outcome,
        )


def run_optimized_encode(request: OptimizedEncodeRequest,
                         toolkit: Optional[MediaToolkit] = None) -> OptimizedEncodeResult:
    """Run an optimized encode with the ffmpeg toolkit unless one is given."""
    return OptimizedEncode(request, toolkit or FFmpegToolkit()).run()
