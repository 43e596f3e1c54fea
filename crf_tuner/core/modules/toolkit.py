"""
Media toolkit seam for crf_tuner.

Everything the search, the sampler and the scorer need from the outside
world goes through a MediaToolkit, so they can be driven by a stub in tests.
FFmpegToolkit is the production implementation on top of ffprobe, ffmpeg and
libvmaf, sharing one cancel token across every process it starts.
"""

from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from ..models import EncodeConfig, MediaMetadata, SceneCut
from .analysis import media_utils
from .processing import sampler, transcoding_engine
from .system.system_utils import CancelToken


class MediaToolkit(Protocol):
    def probe_metadata(self, path: Path) -> MediaMetadata:
        ...

    def detect_scene_cuts(self, path: Path) -> List[SceneCut]:
        ...

    def encode(self, source: Path, dest: Path, config: EncodeConfig) -> None:
        ...

    def measure_quality(self, distorted: Path, reference: Path, speed: int) -> float:
        ...

    def extract_stream_copy(self, source: Path, dest: Path, start_time_sec: float,
                            frame_count: int) -> None:
        ...

    def concat_stream_copy(self, segments: Sequence[Path], dest: Path) -> None:
        ...


class FFmpegToolkit:
    """MediaToolkit backed by the ffmpeg command line tools."""

    def __init__(self, cancel_token: Optional[CancelToken] = None,
                 scene_threshold: float = media_utils.SCENE_THRESHOLD):
        self.cancel_token = cancel_token or CancelToken()
        self.scene_threshold = scene_threshold

    def probe_metadata(self, path: Path) -> MediaMetadata:
        return media_utils.probe_metadata(path, self.cancel_token)

    def detect_scene_cuts(self, path: Path) -> List[SceneCut]:
        return media_utils.detect_scene_cuts(path, self.scene_threshold, self.cancel_token)

    def encode(self, source: Path, dest: Path, config: EncodeConfig) -> None:
        transcoding_engine.encode(source, dest, config, self.cancel_token)

    def measure_quality(self, distorted: Path, reference: Path, speed: int) -> float:
        return media_utils.compute_vmaf_score(distorted, reference, speed, self.cancel_token)

    def extract_stream_copy(self, source: Path, dest: Path, start_time_sec: float,
                            frame_count: int) -> None:
        sampler.extract_stream_copy(source, dest, start_time_sec, frame_count, self.cancel_token)

    def concat_stream_copy(self, segments: Sequence[Path], dest: Path) -> None:
        sampler.concat_stream_copy(segments, dest, self.cancel_token)
