"""Value objects shared across the crf_tuner modules."""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class SceneCut:
    """A raw scene-change candidate reported by the detector."""
    pts_time_sec: float
    significance: float
    is_keyframe: bool = False


@dataclass(frozen=True)
class Scene:
    """A source range selected for the search sample."""
    start_time_sec: float
    duration_sec: float
    significance: float
    starts_on_keyframe: bool = False


@dataclass(frozen=True)
class EncodeConfig:
    """Encoder settings for one encode. A zero/empty field means "not set"."""
    codec: str = "libx264"
    width: int = 0
    height: int = 0
    crf: int = 0
    bitrate_kbps: int = 0
    min_bitrate_kbps: int = 0
    max_bitrate_kbps: int = 0
    buffer_size_kbps: int = 0
    fps_num: int = 0
    fps_den: int = 0
    tune: str = ""
    audio_codec: str = ""
    audio_bitrate_kbps: int = 0

    def with_crf(self, crf: int) -> "EncodeConfig":
        """Copy of this config rate-controlled by ``crf`` instead of a bitrate."""
        return replace(self, crf=crf, bitrate_kbps=0)

    def describe(self) -> str:
        if self.crf > 0:
            return f"crf: {self.crf}"
        return f"bitrate: {self.bitrate_kbps}kbps"


@dataclass(frozen=True)
class VideoTrack:
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    bitrate_kbps: int = 0
    max_bitrate_kbps: int = 0
    stream_size_kb: int = 0
    codec: Optional[str] = None


@dataclass(frozen=True)
class MediaMetadata:
    path: Path
    duration_sec: float
    video_tracks: Tuple[VideoTrack, ...] = ()
    audio_track_count: int = 0
    format_name: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def video_track(self) -> Optional[VideoTrack]:
        return self.video_tracks[0] if self.video_tracks else None


@dataclass(frozen=True)
class ScoreResult:
    """VMAF of one encode together with its rate statistics."""
    vmaf: float
    avg_bitrate_kbps: int = 0
    max_bitrate_kbps: int = 0
    stream_size_kb: int = 0


@dataclass(frozen=True)
class ScoreSample:
    """One measurement point of a CRF search."""
    crf: int
    vmaf: float


@dataclass(frozen=True)
class SearchState:
    """Interpolation bounds and the scores probed so far, keyed by position.

    Position ``p`` corresponds to ``crf_min - p``.
    """
    low: int
    high: int
    scores: Dict[int, float] = field(default_factory=dict)
    last_position: Optional[int] = None


class SearchOutcome(Enum):
    FOUND = "found"
    STAGNATED = "stagnated"
    OUT_OF_RANGE = "out-of-range"
    ITERATION_LIMIT = "iteration-limit"


@dataclass(frozen=True)
class SearchResult:
    crf: int
    vmaf: float
    outcome: SearchOutcome
    samples: Tuple[ScoreSample, ...] = ()

    @property
    def found(self) -> bool:
        return self.outcome is SearchOutcome.FOUND


@dataclass(frozen=True)
class OptimizedEncodeResult:
    crf: int
    search_vmaf: float
    final_vmaf: float
    avg_bitrate_kbps: int
    max_bitrate_kbps: int
    stream_size_mb: float
    target_path: Path
    search_outcome: SearchOutcome = SearchOutcome.FOUND


@dataclass(frozen=True)
class SearchRequest:
    source: Path
    target_vmaf: float = 95.0
    tolerance: float = 0.5
    crf_initial: int = 20
    crf_min: int = 30
    crf_max: int = 15
    base_config: EncodeConfig = EncodeConfig()
    max_iterations: Optional[int] = None
    require_match: bool = False
    vmaf_speed: int = 5


@dataclass(frozen=True)
class OptimizedEncodeRequest(SearchRequest):
    target: Optional[Path] = None
