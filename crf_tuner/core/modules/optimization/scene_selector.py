"""
Scene selection for the CRF search sample.

Algorithm:
1. Drop scene-change candidates whose scene (gap to the next candidate, or to
   the end of the stream for the last one) is shorter than MIN_SCENE_DURATION
2. When more than MAX_SCENES_FOR_SAMPLE remain, keep the most significant
   ones (highest scene score, earlier scene first on ties) in time order
3. Each scene lasts until the next kept scene, capped at MAX_SCENE_DURATION
"""

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from ....utils.logging import get_logger
from ...errors import NoVideoStream, ProbeFailure
from ...models import MediaMetadata, Scene, SceneCut

if TYPE_CHECKING:
    from ..toolkit import MediaToolkit

logger = get_logger("scene_selector")

MIN_SCENE_DURATION = 2.0
MAX_SCENE_DURATION = 10.0
MAX_SCENES_FOR_SAMPLE = 15


def filter_short_scenes(cuts: Sequence[SceneCut], stream_duration: float,
                        min_duration: float = MIN_SCENE_DURATION) -> List[SceneCut]:
    """Keep only cuts that open a scene of at least ``min_duration`` seconds."""
    kept = []
    for i, cut in enumerate(cuts):
        if i == len(cuts) - 1:
            end = stream_duration
        else:
            end = cuts[i + 1].pts_time_sec
        if end - cut.pts_time_sec >= min_duration:
            kept.append(cut)
    return kept


def most_significant(cuts: Sequence[SceneCut], limit: int = MAX_SCENES_FOR_SAMPLE) -> List[SceneCut]:
    """The ``limit`` highest-scoring cuts, returned in time order."""
    if len(cuts) <= limit:
        return list(cuts)
    by_time = sorted(cuts, key=lambda c: c.pts_time_sec)
    # sorted() is stable with reverse=True, so equal scores keep time order
    by_score = sorted(by_time, key=lambda c: c.significance, reverse=True)
    return sorted(by_score[:limit], key=lambda c: c.pts_time_sec)


def select_scenes(cuts: Sequence[SceneCut], stream_duration: float,
                  min_duration: float = MIN_SCENE_DURATION,
                  max_duration: float = MAX_SCENE_DURATION,
                  max_scenes: int = MAX_SCENES_FOR_SAMPLE) -> List[Scene]:
    """Select sample scenes from raw detector output.

    When no candidate survives filtering the sample falls back to a single
    scene at the start of the stream.
    """
    ordered = sorted(cuts, key=lambda c: c.pts_time_sec)
    frames = filter_short_scenes(ordered, stream_duration, min_duration)

    if len(frames) > max_scenes:
        logger.scene(f"Found {len(frames)} scenes, reducing to {max_scenes}")
        frames = most_significant(frames, max_scenes)

    if not frames:
        logger.warn("No usable scene changes found, sampling from the start of the source")
        return [Scene(start_time_sec=0.0,
                      duration_sec=min(max_duration, stream_duration),
                      significance=0.0,
                      starts_on_keyframe=True)]

    scenes = []
    for i, frame in enumerate(frames):
        if i + 1 < len(frames):
            gap = frames[i + 1].pts_time_sec - frame.pts_time_sec
        else:
            gap = stream_duration - frame.pts_time_sec
        scenes.append(Scene(
            start_time_sec=frame.pts_time_sec,
            duration_sec=min(max_duration, gap),
            significance=frame.significance,
            starts_on_keyframe=frame.is_keyframe,
        ))
    return scenes


def detect_scenes(source: Path, toolkit: "MediaToolkit",
                  metadata: Optional[MediaMetadata] = None) -> Tuple[List[Scene], float]:
    """Probe ``source`` and select the scenes used to build its sample.

    ``metadata`` skips the probe when the caller already has it.
    Returns (scenes, frame_rate).
    """
    if metadata is None:
        metadata = toolkit.probe_metadata(source)
    track = metadata.video_track
    if track is None:
        raise NoVideoStream(f"no video stream found in source: {source}")
    if not track.frame_rate or track.frame_rate <= 0:
        raise ProbeFailure(f"failed to parse fps from source: {source}")
    if metadata.duration_sec <= 0:
        raise ProbeFailure(f"failed to parse video duration from source: {source}")

    cuts = toolkit.detect_scene_cuts(source)
    scenes = select_scenes(cuts, metadata.duration_sec)

    logger.scene(f"Found {len(scenes)} scenes")
    for i, scene in enumerate(scenes):
        logger.scene(f"scene {i}, start: {scene.start_time_sec:.2f}, "
                     f"dur: {scene.duration_sec:.2f}, score: {scene.significance:.2f}")
    return scenes, track.frame_rate
