"""
Quality scoring for crf_tuner.

Encodes a sample with a candidate configuration, measures the VMAF of the
trial encode against the sample and probes the trial for its rate
statistics. The trial file only lives for the duration of one score() call.
"""

from pathlib import Path

from ....utils.logging import format_thousands, get_logger
from ...errors import CrfTunerError, with_context
from ...models import EncodeConfig, ScoreResult
from ..system.system_utils import temporary_file
from ..toolkit import MediaToolkit

logger = get_logger("quality_scorer")

DEFAULT_VMAF_SPEED = 5


class QualityScorer:
    """Scores encoder configurations against a reference clip."""

    def __init__(self, toolkit: MediaToolkit, speed: int = DEFAULT_VMAF_SPEED):
        if not 1 <= speed <= 10:
            raise ValueError(f"vmaf speed must be between 1 and 10, got {speed}")
        self.toolkit = toolkit
        self.speed = speed

    def score(self, sample: Path, config: EncodeConfig) -> ScoreResult:
        """Encode ``sample`` with ``config`` and score the result against it."""
        crf = config.crf or None
        with temporary_file(suffix=".mp4", prefix="crf_tuner_trial_") as trial:
            try:
                self.toolkit.encode(sample, trial, config)
                result = self.measure(trial, sample)
            except CrfTunerError as e:
                raise with_context(e, crf=crf)

        self.log_stats(result, config)
        return result

    def measure(self, distorted: Path, reference: Path) -> ScoreResult:
        """VMAF of ``distorted`` against ``reference`` plus its rate statistics."""
        vmaf = self.toolkit.measure_quality(distorted, reference, self.speed)
        metadata = self.toolkit.probe_metadata(distorted)
        track = metadata.video_track
        if track is None:
            return ScoreResult(vmaf=vmaf)
        return ScoreResult(
            vmaf=vmaf,
            avg_bitrate_kbps=track.bitrate_kbps,
            max_bitrate_kbps=track.max_bitrate_kbps,
            stream_size_kb=track.stream_size_kb,
        )

    def log_stats(self, result: ScoreResult, config: EncodeConfig):
        logger.vmaf(f"{config.describe()}, vmaf: {result.vmaf:.2f}")
        logger.debug(
            f"stats {config.describe()}, avg bitrate: {format_thousands(result.avg_bitrate_kbps)}kbps, "
            f"max bitrate: {format_thousands(result.max_bitrate_kbps)}kbps, "
            f"buffer size: {format_thousands(config.buffer_size_kbps)}kbps, "
            f"stream size: {format_thousands(result.stream_size_kb)}kb"
        )
