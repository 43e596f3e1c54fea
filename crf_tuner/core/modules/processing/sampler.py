"""
Scene sample assembly for crf_tuner.

A sample is the concatenation of the selected scenes of a source, cut by
stream copy so building it costs no re-encode. The CRF search scores trial
encodes of the sample instead of the whole source.
"""

import contextlib
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence

from ....utils.logging import get_logger
from ....utils.math_utils import round_half_up
from ...errors import SampleExtractionFailure
from ...models import Scene
from ..optimization.scene_selector import detect_scenes
from ..system.system_utils import CancelToken, run_command, stderr_tail, temporary_file

if TYPE_CHECKING:
    from ..toolkit import MediaToolkit

logger = get_logger("sampler")

# Sources shorter than this are searched directly instead of sampled
MIN_SOURCE_DURATION_FOR_SAMPLE = 60.0

SEGMENT_SUFFIX = ".ts"
SAMPLE_SUFFIX = ".mp4"


def frames_for_scene(scene: Scene, frame_rate: float) -> int:
    """Number of frames a scene contributes to the sample."""
    return round_half_up(frame_rate * scene.duration_sec)


def extract_stream_copy(source: Path, dest: Path, start_time_sec: float, frame_count: int,
                        cancel_token: Optional[CancelToken] = None) -> None:
    """Copy ``frame_count`` video frames starting at ``start_time_sec`` into ``dest``."""
    cmd = [
        "ffmpeg", "-hide_banner",
        "-i", str(source),
        "-ss", f"{start_time_sec:f}",
        "-frames:v", str(frame_count),
        "-c:v", "copy",
        "-an",
        "-y", str(dest),
    ]
    try:
        result = run_command(cmd, cancel_token=cancel_token)
    except FileNotFoundError as e:
        raise SampleExtractionFailure("ffmpeg executable was not found") from e
    if result.returncode != 0:
        raise SampleExtractionFailure(f"ffmpeg sample creation {dest} failed: {stderr_tail(result)}")


def concat_stream_copy(segments: Sequence[Path], dest: Path,
                       cancel_token: Optional[CancelToken] = None) -> None:
    """Join ``segments`` in order into ``dest`` without re-encoding."""
    if not segments:
        raise SampleExtractionFailure("no segments to concatenate")
    concat = "concat:" + "|".join(str(s) for s in segments)
    cmd = [
        "ffmpeg", "-hide_banner",
        "-i", concat,
        "-c:v", "copy",
        "-y", str(dest),
    ]
    try:
        result = run_command(cmd, cancel_token=cancel_token)
    except FileNotFoundError as e:
        raise SampleExtractionFailure("ffmpeg executable was not found") from e
    if result.returncode != 0:
        raise SampleExtractionFailure(f"ffmpeg sample concat {concat} failed: {stderr_tail(result)}")


def build_sample(source: Path, scenes: Sequence[Scene], frame_rate: float, dest: Path,
                 toolkit: "MediaToolkit") -> Path:
    """Extract every scene of ``source`` and concatenate them into ``dest``.

    Segments are extracted one after another and removed before returning,
    whether or not assembly succeeded.
    """
    if not scenes:
        raise SampleExtractionFailure("no scenes selected for sample")

    total = sum(scene.duration_sec for scene in scenes)
    logger.sample(f"Creating sample of {total:.2f}s from {len(scenes)} scenes")

    with contextlib.ExitStack() as stack:
        segments: List[Path] = []
        for i, scene in enumerate(scenes):
            logger.sample(f"scene #{i + 1}: start: {scene.start_time_sec:.2f}s, "
                          f"dur: {scene.duration_sec:.2f}s")
            segment = stack.enter_context(temporary_file(suffix=SEGMENT_SUFFIX, prefix="crf_tuner_seg_"))
            try:
                toolkit.extract_stream_copy(source, segment, scene.start_time_sec,
                                            frames_for_scene(scene, frame_rate))
            except OSError as e:
                raise SampleExtractionFailure(f"failed to extract scene #{i + 1}: {e}") from e
            segments.append(segment)

        toolkit.concat_stream_copy(segments, dest)

    return dest


@contextlib.contextmanager
def scene_sample(source: Path, toolkit: "MediaToolkit") -> Iterator[Path]:
    """Yield the file the CRF search should score.

    Short sources are yielded as-is. Otherwise scenes are detected, a sample is
    assembled into a temporary file and that file is removed on exit.
    """
    metadata = toolkit.probe_metadata(source)
    if metadata.duration_sec < MIN_SOURCE_DURATION_FOR_SAMPLE:
        logger.sample("Source is less than 60 seconds, skipping creation of scene sample")
        yield Path(source)
        return

    scenes, frame_rate = detect_scenes(source, toolkit, metadata)
    with temporary_file(suffix=SAMPLE_SUFFIX, prefix="crf_tuner_sample_") as sample:
        build_sample(source, scenes, frame_rate, sample, toolkit)
        yield sample
